"""Configuration for template parsing and rendering.

Options are resolved once when a template is built:
- defaults
- values from a config file (YAML or TOML)
- explicit overrides passed by the caller

Unknown keys are rejected rather than ignored.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from kiln.exceptions import ConfigError

log = logging.getLogger(__name__)


class TemplateConfig(BaseModel):
    """Immutable set of options consumed by the lexer, parser and compiler."""

    model_config = {"frozen": True, "extra": "forbid"}

    control_block_start: str = "{%"
    control_block_end: str = "%}"
    expression_block_start: str = "{{"
    expression_block_end: str = "}}"
    code_block_start: str = "{<"
    code_block_end: str = ">}"
    comment_block_start: str = "{#"
    comment_block_end: str = "#}"

    autospace: bool = False
    lstrip_blocks: bool = False
    trim_blocks: bool = False
    autoescape: bool = True

    dir: Path = Field(
        default_factory=Path.cwd,
        description="Base directory for extends/include references",
    )

    @model_validator(mode="after")
    def check_delimiters(self) -> "TemplateConfig":
        """Delimiters must be non-empty and start markers must be distinct."""
        for name, value in self.delimiters.items():
            if not value[0] or not value[1]:
                raise ValueError(f"empty delimiter for {name} blocks")
        starts = [start for start, _ in self.delimiters.values()]
        if len(set(starts)) != len(starts):
            raise ValueError(f"start delimiters must be distinct: {starts}")
        return self

    @property
    def delimiters(self) -> dict[str, tuple[str, str]]:
        """Delimiter pairs keyed by marker kind."""
        return {
            "control": (self.control_block_start, self.control_block_end),
            "expression": (self.expression_block_start, self.expression_block_end),
            "code": (self.code_block_start, self.code_block_end),
            "comment": (self.comment_block_start, self.comment_block_end),
        }


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load config options from a .yaml/.yml or .toml file."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    if p.suffix == ".toml":
        with open(p, "rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {p}: {e}") from e
    elif p.suffix in (".yaml", ".yml"):
        with open(p) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    else:
        raise ConfigError(f"Unsupported config file type: {p.suffix!r}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {p}")

    log.debug("Loaded %d config option(s) from %s", len(data), p)
    return data


def build_config(
    base_dir: str | Path | None = None,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> TemplateConfig:
    """Resolve the final configuration.

    Args:
        base_dir: Default base directory (used unless options name one).
        config_path: Optional YAML/TOML file with options.
        overrides: Options that win over the file.

    Returns:
        Frozen TemplateConfig.

    Raises:
        ConfigError: On unknown keys, bad values or unreadable files.
    """
    data: dict[str, Any] = {}
    if base_dir is not None:
        data["dir"] = Path(base_dir)
    if config_path is not None:
        data.update(load_config_file(config_path))
    if overrides:
        data.update(overrides)

    try:
        return TemplateConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid template configuration: {e}") from e
