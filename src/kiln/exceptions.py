"""Kiln Exceptions

Custom exceptions raised while configuring, parsing and rendering templates.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Position:
    """Line/column of a marker in template source (both 1-based)."""

    line: int = 1
    column: int = 1

    def __str__(self) -> str:
        return f"line {self.line}, column {self.column}"


def _locate(message: str, position: Position | None) -> str:
    if position is None:
        return message
    return f"{message} ({position})"


class TemplateError(Exception):
    """Base exception for all kiln errors."""

    pass


class ConfigError(TemplateError):
    """Raised when configuration options are invalid or cannot be loaded."""

    pass


class ParseError(TemplateError):
    """Raised at compile time for malformed template structure."""

    def __init__(self, message: str, position: Position | None = None):
        self.message = message
        self.position = position
        super().__init__(_locate(message, position))


class RenderError(TemplateError):
    """Raised when rendering a compiled template fails."""

    def __init__(self, message: str, position: Position | None = None):
        self.message = message
        self.position = position
        super().__init__(_locate(f"failed to render: {message}", position))


class UndefinedVariableError(RenderError):
    """Raised when an expression references a name absent from the bindings."""

    def __init__(self, name: str, position: Position | None = None):
        self.name = name
        super().__init__(f"undefined variable: {name!r}", position)


class FilterNotFoundError(RenderError):
    """Raised when a filter name is not registered."""

    def __init__(self, name: str, position: Position | None = None):
        self.name = name
        super().__init__(f"filter not found: {name!r}", position)


class HostCodeError(RenderError):
    """Raised when an embedded code block fails."""

    pass
