"""Template source loading for extends/include references."""

from __future__ import annotations

import logging
from pathlib import Path

log = logging.getLogger(__name__)


def resolve_template_path(name: str, base_dir: str | Path) -> Path:
    """Resolve a template reference against the base directory.

    Absolute paths are used as-is.
    """
    p = Path(name)
    if not p.is_absolute():
        p = Path(base_dir) / p
    return p


def read_template(name: str, base_dir: str | Path) -> tuple[str, Path]:
    """Read a referenced template.

    Returns:
        (source text, resolved path)

    Raises:
        FileNotFoundError: If the path does not exist.
        IsADirectoryError: If the path is not a regular file.
    """
    p = resolve_template_path(name, base_dir)
    if not p.exists():
        raise FileNotFoundError(f"template not found: {p}")
    if not p.is_file():
        raise IsADirectoryError(f"template path is not a file: {p}")

    log.debug("Loading template %s", p)
    return p.read_text(encoding="utf-8"), p
