"""Filter registry.

Filters are unary text transforms applied with `{{ value |> name }}`.
Built-in filters:
- escape / e: HTML-escape & < > " '
- upper
- lower
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

from markupsafe import escape as _markup_escape

from kiln.exceptions import FilterNotFoundError

Filter = Callable[[Any], Any]


def html_escape(value: Any) -> str:
    """HTML-escape a value, returning a plain str."""
    # plain str so later filters and autoescape see ordinary text
    return str(_markup_escape(str(value)))


def upper(value: Any) -> str:
    return str(value).upper()


def lower(value: Any) -> str:
    return str(value).lower()


BUILTIN_FILTERS: dict[str, Filter] = {
    "e": html_escape,
    "escape": html_escape,
    "upper": upper,
    "lower": lower,
}


class FilterRegistry:
    """Name -> filter function mapping seeded with the built-ins."""

    def __init__(self, filters: Mapping[str, Filter] | None = None):
        self._filters: dict[str, Filter] = dict(BUILTIN_FILTERS)
        for name, fn in (filters or {}).items():
            self.register(name, fn)

    def register(self, name: str, function: Filter) -> None:
        """Register a filter; an existing entry with the same name is replaced."""
        if not callable(function):
            raise TypeError(f"Filter '{name}' must be callable")
        self._filters[name] = function

    def unregister(self, name: str) -> None:
        """Remove a user filter. Built-in names cannot be removed."""
        if name in BUILTIN_FILTERS:
            raise ValueError(f"Built-in filter '{name}' cannot be removed")
        self._filters.pop(name, None)

    def lookup(self, name: str) -> Filter:
        try:
            return self._filters[name]
        except KeyError:
            raise FilterNotFoundError(name) from None

    @staticmethod
    def is_escape(function: Filter) -> bool:
        """Whether `function` is the built-in escape filter (by identity)."""
        return function is html_escape

    def __contains__(self, name: object) -> bool:
        return name in self._filters

    def names(self) -> list[str]:
        return sorted(self._filters)


def build_filters(filters: Mapping[str, Filter] | None = None) -> FilterRegistry:
    """Build a registry from built-ins plus user overrides."""
    return FilterRegistry(filters)
