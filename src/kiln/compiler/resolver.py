"""Resolver - merges named blocks along a template's extends chain.

Merge rule, applied from the invoked template upwards:
- a block defined lower in the chain replaces the ancestor's body
- `super()` inside that body becomes the nearest ancestor's body for the same
  block name (which may itself contain `super()` for the next level up)
- the template at the top of the chain is the one whose elements are rendered
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Tuple

from kiln.ast.spec import Body, Element, ForBlock, IfBlock, SuperMarker
from kiln.exceptions import ParseError

if TYPE_CHECKING:
    from kiln.template import Template

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Result of resolving an extends chain."""

    root: "Template"  # top of the chain; its elements are rendered
    blocks: Dict[str, Body]  # effective block bodies
    top_codes: Tuple[str, ...]  # ancestors first


def substitute_super(body: Body, name: str, replacement: Body) -> Body:
    """Replace `SuperMarker(name)` in `body` (recursively) with `replacement`.

    Nested named blocks are left untouched: each one is resolved under its own
    name and compiled from the merged block map.
    """
    out: List[Element] = []
    for element in body:
        if isinstance(element, SuperMarker) and element.name == name:
            out.extend(replacement)
        elif isinstance(element, IfBlock):
            branches = tuple(
                (cond, code, substitute_super(branch, name, replacement))
                for cond, code, branch in element.branches
            )
            else_body = (
                substitute_super(element.else_body, name, replacement)
                if element.else_body is not None
                else None
            )
            out.append(dataclasses.replace(element, branches=branches, else_body=else_body))
        elif isinstance(element, ForBlock):
            out.append(
                dataclasses.replace(
                    element, body=substitute_super(element.body, name, replacement)
                )
            )
        else:
            out.append(element)
    return tuple(out)


def find_super_markers(body: Body) -> List[SuperMarker]:
    """Collect SuperMarkers left in `body`, not descending into named blocks."""
    found: List[SuperMarker] = []
    for element in body:
        if isinstance(element, SuperMarker):
            found.append(element)
        elif isinstance(element, IfBlock):
            for _, _, branch in element.branches:
                found.extend(find_super_markers(branch))
            if element.else_body is not None:
                found.extend(find_super_markers(element.else_body))
        elif isinstance(element, ForBlock):
            found.extend(find_super_markers(element.body))
    return found


def merge_blocks(derived: Mapping[str, Body], own: Mapping[str, Body]) -> Dict[str, Body]:
    """Merge one ancestor level's blocks under the overrides from below it."""
    merged: Dict[str, Body] = dict(derived)
    for name, body in own.items():
        if name in derived:
            merged[name] = substitute_super(derived[name], name, body)
        else:
            merged[name] = body
    return merged


class Resolver:
    """Resolves the effective block set for a template."""

    def resolve(
        self,
        template: "Template",
        overrides: Optional[Mapping[str, Body]] = None,
    ) -> Resolution:
        """Walk up the extends chain merging blocks.

        Args:
            template: The template the caller invoked.
            overrides: Blocks accumulated from descendants (empty when the
                template is invoked directly).

        Returns:
            Resolution with the chain's root template and merged blocks.

        Raises:
            ParseError: If a `super()` has no ancestor block to refer to.
        """
        blocks: Dict[str, Body] = dict(overrides or {})
        chain: List["Template"] = []
        current = template

        while True:
            chain.append(current)
            blocks = merge_blocks(blocks, current.blocks)
            if current.super is None:
                break
            current = current.super

        for body in blocks.values():
            for marker in find_super_markers(body):
                raise ParseError(
                    f"super() in block '{marker.name}' has no parent block to refer to",
                    marker.position,
                )

        top_codes: List[str] = []
        for level in reversed(chain):
            top_codes.extend(level.top_codes)

        log.debug(
            "Resolved %d template level(s) into %d block(s)", len(chain), len(blocks)
        )
        return Resolution(root=current, blocks=blocks, top_codes=tuple(top_codes))
