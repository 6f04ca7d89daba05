"""Kiln - a small Jinja-style template compiler"""

from kiln._version import __version__

from kiln.compiler.executor import (
    CodeExecutor,
    ExecutionContext,
    InProcessExecutor,
    SubprocessExecutor,
)
from kiln.config import TemplateConfig, build_config
from kiln.exceptions import (
    ConfigError,
    FilterNotFoundError,
    HostCodeError,
    ParseError,
    Position,
    RenderError,
    TemplateError,
    UndefinedVariableError,
)
from kiln.filters import FilterRegistry, build_filters
from kiln.template import Template, compile_template

__all__ = [
    # templates
    "__version__",
    "Template",
    "compile_template",
    # config / filters
    "TemplateConfig",
    "build_config",
    "FilterRegistry",
    "build_filters",
    # code execution
    "CodeExecutor",
    "ExecutionContext",
    "InProcessExecutor",
    "SubprocessExecutor",
    # errors
    "TemplateError",
    "ConfigError",
    "ParseError",
    "RenderError",
    "UndefinedVariableError",
    "FilterNotFoundError",
    "HostCodeError",
    "Position",
]
