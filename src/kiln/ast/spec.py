"""Template element tree.

The parser turns source text into a tuple of these elements. Bodies of
structural elements are tuples too, so a parsed tree is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import CodeType
from typing import Dict, Optional, Tuple, Union

from kiln.exceptions import Position


@dataclass(frozen=True)
class RawText:
    """Literal text copied verbatim."""

    content: str
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class Expression:
    """`{{ expr |> f |> g }}` - value expression plus filter chain."""

    expr: str
    filters: Tuple[str, ...] = ()
    position: Position = field(default_factory=Position)
    code: Optional[CodeType] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class IfBlock:
    """if/elif/else chain. Each branch is (condition source, compiled, body)."""

    branches: Tuple[Tuple[str, CodeType, "Body"], ...]
    else_body: Optional["Body"] = None
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class ForBlock:
    """`for targets in iterable` loop."""

    targets: Tuple[str, ...]
    iterable: str
    body: "Body"
    position: Position = field(default_factory=Position)
    code: Optional[CodeType] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class SetBlock:
    """`set targets = expr` - binds names in the current scope."""

    targets: Tuple[str, ...]
    expr: str
    position: Position = field(default_factory=Position)
    code: Optional[CodeType] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class CodeBlock:
    """Embedded host code whose stringified result is spliced in."""

    code: str
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class NamedBlock:
    """Overridable region, the unit of inheritance."""

    name: str
    body: "Body"
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class SuperMarker:
    """Placeholder for the parent's body of the enclosing block."""

    name: str
    position: Position = field(default_factory=Position)


Element = Union[RawText, Expression, IfBlock, ForBlock, SetBlock, CodeBlock, NamedBlock, SuperMarker]
Body = Tuple[Element, ...]


@dataclass
class ParsedTemplate:
    """Parser output for one template source."""

    super_name: Optional[str] = None
    elements: Body = ()
    top_codes: Tuple[str, ...] = ()
    blocks: Dict[str, Body] = field(default_factory=dict)
