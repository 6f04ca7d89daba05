"""Template - the compiled unit.

Usage:
    >>> t = Template("Hello {{ name |> upper }}!")
    >>> t.render(name="kiln")
    'Hello KILN!'

A Template is immutable after construction. When the source extends another
template, the parent is loaded and parsed right away and kept in `super`;
inheritance errors therefore surface at construction, not at render time.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from kiln.ast.parser import Parser
from kiln.ast.spec import Body
from kiln.compiler.compiler import Compiler
from kiln.compiler.executor import CodeExecutor, InProcessExecutor
from kiln.compiler.resolver import Resolver
from kiln.config import TemplateConfig, build_config
from kiln.exceptions import ParseError
from kiln.filters import Filter, FilterRegistry, build_filters
from kiln.loader import read_template

log = logging.getLogger(__name__)


class Template:
    """A compiled template.

    Args:
        source: Template text, or a file path when `path=True`.
        path: Treat `source` as a path; its directory becomes the base dir.
        filters: Extra filters (name -> unary callable) or a FilterRegistry.
        config: Option overrides (mapping) or a ready TemplateConfig.
        config_path: YAML/TOML file with options (overridden by `config`).
        base_dir: Base directory for extends/include references.
        executor: CodeExecutor for `{< ... >}` blocks.
    """

    def __init__(
        self,
        source: str | Path,
        *,
        path: bool = False,
        filters: Mapping[str, Filter] | FilterRegistry | None = None,
        config: Mapping[str, Any] | TemplateConfig | None = None,
        config_path: str | Path | None = None,
        base_dir: str | Path | None = None,
        executor: Optional[CodeExecutor] = None,
    ):
        origin: Optional[Path] = None
        if path:
            origin = Path(source)
            if base_dir is None:
                base_dir = origin.parent
            source = origin.read_text(encoding="utf-8")

        registry = filters if isinstance(filters, FilterRegistry) else build_filters(filters)
        if isinstance(config, TemplateConfig):
            cfg = config
        else:
            cfg = build_config(base_dir, config_path, dict(config or {}))

        lineage = (origin.resolve(),) if origin is not None else ()
        self._build(str(source), registry, cfg, executor or InProcessExecutor(), lineage)

    @classmethod
    def _parent(
        cls,
        name: str,
        filters: FilterRegistry,
        config: TemplateConfig,
        executor: CodeExecutor,
        lineage: Tuple[Path, ...],
    ) -> "Template":
        try:
            source, path = read_template(name, config.dir)
        except OSError as e:
            raise ParseError(f"cannot load parent template: {e}") from e

        path = path.resolve()
        if path in lineage:
            raise ParseError(f"circular extends: {path}")

        parent = cls.__new__(cls)
        parent._build(source, filters, config, executor, lineage + (path,))
        return parent

    def _build(
        self,
        source: str,
        filters: FilterRegistry,
        config: TemplateConfig,
        executor: CodeExecutor,
        lineage: Tuple[Path, ...],
    ) -> None:
        parsed = Parser(config).parse(source)

        self._filters = filters
        self._config = config
        self._executor = executor
        self._elements = parsed.elements
        self._top_codes = parsed.top_codes
        self._blocks = MappingProxyType(dict(parsed.blocks))
        self._super: Optional[Template] = None
        if parsed.super_name is not None:
            self._super = Template._parent(
                parsed.super_name, filters, config, executor, lineage
            )

        resolution = Resolver().resolve(self)
        self._render = Compiler(filters, config, executor).compile(
            resolution.root.elements, resolution.blocks, resolution.top_codes
        )
        log.debug(
            "Compiled template with %d element(s), extends=%s",
            len(self._elements),
            parsed.super_name,
        )

    # ------------------------------------------------------------------

    @property
    def super(self) -> Optional["Template"]:
        return self._super

    @property
    def elements(self) -> Body:
        return self._elements

    @property
    def top_codes(self) -> Tuple[str, ...]:
        return self._top_codes

    @property
    def blocks(self) -> Mapping[str, Body]:
        """The template's own block definitions, before any override."""
        return self._blocks

    @property
    def filters(self) -> FilterRegistry:
        return self._filters

    @property
    def config(self) -> TemplateConfig:
        return self._config

    def render(self, bindings: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> str:
        """Render with the given bindings.

        Raises:
            RenderError: UndefinedVariableError, FilterNotFoundError,
                HostCodeError or a generic RenderError. No partial output is
                returned on failure.
        """
        values = dict(bindings or {})
        values.update(kwargs)
        log.debug("Rendering template with bindings: %s", sorted(values))
        return self._render(values)

    __call__ = render


def compile_template(
    source: str,
    filters: Mapping[str, Filter] | None = None,
    config: Mapping[str, Any] | None = None,
    *,
    config_path: str | Path | None = None,
    base_dir: str | Path | None = None,
    executor: Optional[CodeExecutor] = None,
) -> Template:
    """Compile template text.

    Raises:
        ParseError: If the template (or a template it extends/includes) is
            malformed.
        ConfigError: If the configuration is invalid.
    """
    return Template(
        source,
        filters=filters,
        config=config,
        config_path=config_path,
        base_dir=base_dir,
        executor=executor,
    )
