"""Parser - turns a token stream into the element tree.

Control keywords:
- extends "<name>"          first statement only
- block <name> / endblock   overridable region
- super                     parent body of the enclosing block (also `{{ super() }}`)
- if / elif / else / endif
- for <targets> in <expr> / endfor
- set <targets> = <expr>
- include "<name>"          inline another template at parse time
- raw / endraw              handled by the lexer
"""

from __future__ import annotations

import ast
import dataclasses
import logging
import re
import textwrap
from pathlib import Path
from types import CodeType
from typing import List, Optional, Tuple

from kiln.ast.lexer import Lexer, Token
from kiln.ast.spec import (
    Body,
    CodeBlock,
    Element,
    Expression,
    ForBlock,
    IfBlock,
    NamedBlock,
    ParsedTemplate,
    RawText,
    SetBlock,
    SuperMarker,
)
from kiln.config import TemplateConfig
from kiln.exceptions import ParseError
from kiln.loader import read_template

log = logging.getLogger(__name__)

FILTER_SEPARATOR = "|>"
END_KEYWORDS = {"endif", "endfor", "endblock", "elif", "else"}

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
FOR_RE = re.compile(r"^(?P<targets>.+?)\s+in\s+(?P<iterable>.+)$", re.DOTALL)
SET_RE = re.compile(r"^(?P<targets>[\w\s,()]+?)\s*=(?!=)\s*(?P<expr>.+)$", re.DOTALL)
SUPER_CALL = "super()"


def split_unquoted(s: str, sep: str) -> list[str]:
    """Split `s` on `sep` occurrences that are outside string quotes."""
    parts: list[str] = []
    current: list[str] = []
    quote_char = ""
    i = 0

    while i < len(s):
        ch = s[i]
        if ch in ("'", '"'):
            if not quote_char:
                quote_char = ch
            elif quote_char == ch:
                quote_char = ""
        if not quote_char and s.startswith(sep, i):
            parts.append("".join(current))
            current = []
            i += len(sep)
            continue
        current.append(ch)
        i += 1
    parts.append("".join(current))
    return parts


def parse_code(code: str) -> ast.Module:
    """Parse an embedded code fragment.

    Code starting on the marker line is taken as written (first line
    left-stripped); code starting on the next line is dedented.
    """
    head, sep, tail = code.partition("\n")
    if head.strip():
        text = head.lstrip() + sep + tail
    else:
        text = textwrap.dedent(tail)
    return ast.parse(text, mode="exec")


def split_tag(content: str) -> Tuple[str, str]:
    """Split control marker content into (keyword, argument) at the first whitespace."""
    parts = content.split(None, 1)
    if not parts:
        return "", ""
    return parts[0], parts[1].strip() if len(parts) > 1 else ""


def inline_blocks(body: Body) -> Body:
    """Replace named blocks in `body` by their contents.

    Used for included templates, whose blocks are not overridable.

    Raises:
        ParseError: If the body uses `super()`.
    """
    out: List[Element] = []
    for element in body:
        if isinstance(element, NamedBlock):
            out.extend(inline_blocks(element.body))
        elif isinstance(element, SuperMarker):
            raise ParseError(
                "'super' cannot be used in an included template", element.position
            )
        elif isinstance(element, IfBlock):
            branches = tuple(
                (cond, code, inline_blocks(branch)) for cond, code, branch in element.branches
            )
            else_body = (
                inline_blocks(element.else_body) if element.else_body is not None else None
            )
            out.append(dataclasses.replace(element, branches=branches, else_body=else_body))
        elif isinstance(element, ForBlock):
            out.append(dataclasses.replace(element, body=inline_blocks(element.body)))
        else:
            out.append(element)
    return tuple(out)


def _unquote(arg: str) -> str:
    arg = arg.strip()
    if len(arg) >= 2 and arg[0] == arg[-1] and arg[0] in ("'", '"'):
        return arg[1:-1]
    return arg


class Parser:
    """Parses template source into a ParsedTemplate."""

    def __init__(
        self,
        config: TemplateConfig,
        include_stack: Tuple[Path, ...] = (),
    ):
        self.config = config
        self.lexer = Lexer(config)
        self._include_stack = include_stack

    def parse(self, source: str) -> ParsedTemplate:
        """Parse template source.

        Raises:
            ParseError: On any structural problem, with its position.
        """
        self._tokens: List[Token] = self.lexer.tokenize(source)
        self._index = 0
        self._blocks: dict[str, Body] = {}
        self._open_blocks: List[str] = []
        self._top_codes: List[str] = []
        self._super_name: Optional[str] = None
        self._seen_content = False
        self._depth = 0

        elements, _, _ = self._parse_body(None, ())
        log.debug(
            "Parsed %d element(s), %d block(s), extends=%s",
            len(elements),
            len(self._blocks),
            self._super_name,
        )
        return ParsedTemplate(
            super_name=self._super_name,
            elements=elements,
            top_codes=tuple(self._top_codes),
            blocks=dict(self._blocks),
        )

    # ------------------------------------------------------------------
    # Body parsing
    # ------------------------------------------------------------------

    def _parse_body(
        self, opener: Optional[Token], ends: Tuple[str, ...]
    ) -> Tuple[Body, Optional[str], Optional[Token]]:
        """Parse elements until one of `ends` (or EOF when `ends` is empty).

        Returns:
            (body, terminating keyword, terminating token)
        """
        body: List[Element] = []

        while self._index < len(self._tokens):
            tok = self._tokens[self._index]
            self._index += 1

            if tok.kind == "comment":
                continue
            if tok.kind == "text":
                body.append(RawText(tok.content, tok.position))
                if tok.content.strip():
                    self._seen_content = True
                continue
            if tok.kind == "expression":
                body.append(self._parse_expression(tok))
                self._seen_content = True
                continue
            if tok.kind == "code":
                element = self._parse_code(tok)
                if element is not None:
                    body.append(element)
                continue

            keyword, arg = split_tag(tok.content)

            if keyword in END_KEYWORDS:
                if keyword in ends:
                    if keyword not in ("endblock", "elif") and arg:
                        raise ParseError(f"unexpected arguments to '{keyword}'", tok.position)
                    return tuple(body), keyword, tok
                if opener is None:
                    raise ParseError(f"unmatched '{keyword}'", tok.position)
                raise ParseError(
                    f"unexpected '{keyword}', expected one of {list(ends)}",
                    tok.position,
                )

            if keyword == "extends":
                self._parse_extends(tok, arg)
                continue

            self._seen_content = True
            if keyword == "include":
                body.extend(self._parse_include(tok, arg))
            elif keyword in ("super", SUPER_CALL):
                if arg not in ("", "()"):
                    raise ParseError("'super' takes no arguments", tok.position)
                body.append(self._super_marker(tok))
            else:
                self._depth += 1
                try:
                    body.append(self._parse_statement(tok, keyword, arg))
                finally:
                    self._depth -= 1

        if opener is not None:
            raise ParseError(
                f"unterminated '{split_tag(opener.content)[0]}' block, expected '{ends[-1]}'",
                opener.position,
            )
        return tuple(body), None, None

    def _parse_statement(self, tok: Token, keyword: str, arg: str) -> Element:
        if keyword == "block":
            return self._parse_block(tok, arg)
        if keyword == "if":
            return self._parse_if(tok, arg)
        if keyword == "for":
            return self._parse_for(tok, arg)
        if keyword == "set":
            return self._parse_set(tok, arg)
        raise ParseError(f"unknown tag '{keyword}'", tok.position)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_extends(self, tok: Token, arg: str) -> None:
        if self._super_name is not None:
            raise ParseError("'extends' may only appear once", tok.position)
        if self._seen_content or self._depth or self._top_codes:
            raise ParseError("'extends' must be the first statement", tok.position)
        name = _unquote(arg)
        if not name:
            raise ParseError("'extends' requires a template name", tok.position)
        self._super_name = name

    def _parse_block(self, tok: Token, arg: str) -> NamedBlock:
        name = arg
        if not NAME_RE.match(name):
            raise ParseError(f"invalid block name {name!r}", tok.position)
        if name in self._blocks or name in self._open_blocks:
            raise ParseError(f"block '{name}' defined twice", tok.position)

        self._open_blocks.append(name)
        body, _, end = self._parse_body(tok, ("endblock",))
        self._open_blocks.pop()

        end_name = split_tag(end.content)[1] if end is not None else ""
        if end is not None and end_name and end_name != name:
            raise ParseError(
                f"mismatched 'endblock {end_name}' for block '{name}'", end.position
            )

        self._blocks[name] = body
        return NamedBlock(name, body, tok.position)

    def _parse_if(self, tok: Token, arg: str) -> IfBlock:
        branches: List[Tuple[str, CodeType, Body]] = []
        else_body: Optional[Body] = None
        condition, branch_tok = arg, tok

        while True:
            code = self._compile_expr(condition, branch_tok)
            body, keyword, end = self._parse_body(tok, ("elif", "else", "endif"))
            branches.append((condition, code, body))
            if keyword == "elif" and end is not None:
                condition = split_tag(end.content)[1]
                branch_tok = end
                continue
            if keyword == "else":
                else_body, _, _ = self._parse_body(tok, ("endif",))
            break

        return IfBlock(tuple(branches), else_body, tok.position)

    def _parse_for(self, tok: Token, arg: str) -> ForBlock:
        match = FOR_RE.match(arg)
        if match is None:
            raise ParseError(f"invalid for loop: {tok.content!r}", tok.position)
        targets = self._parse_targets(match.group("targets"), tok)
        iterable = match.group("iterable").strip()
        code = self._compile_expr(iterable, tok)
        body, _, _ = self._parse_body(tok, ("endfor",))
        return ForBlock(targets, iterable, body, tok.position, code)

    def _parse_set(self, tok: Token, arg: str) -> SetBlock:
        match = SET_RE.match(arg)
        if match is None:
            raise ParseError(f"invalid set statement: {tok.content!r}", tok.position)
        targets = self._parse_targets(match.group("targets"), tok)
        expr = match.group("expr").strip()
        return SetBlock(targets, expr, tok.position, self._compile_expr(expr, tok))

    def _parse_include(self, tok: Token, arg: str) -> Body:
        name = _unquote(arg)
        if not name:
            raise ParseError("'include' requires a template name", tok.position)
        try:
            source, path = read_template(name, self.config.dir)
        except OSError as e:
            raise ParseError(str(e), tok.position) from e

        path = path.resolve()
        if path in self._include_stack:
            raise ParseError(f"recursive include of {path}", tok.position)

        included = Parser(self.config, self._include_stack + (path,)).parse(source)
        if included.super_name is not None:
            raise ParseError(
                f"included template {name!r} cannot use 'extends'", tok.position
            )
        self._top_codes.extend(included.top_codes)
        return inline_blocks(included.elements)

    def _super_marker(self, tok: Token) -> SuperMarker:
        if not self._open_blocks:
            raise ParseError("'super' used outside of a block", tok.position)
        return SuperMarker(self._open_blocks[-1], tok.position)

    # ------------------------------------------------------------------
    # Expressions and code
    # ------------------------------------------------------------------

    def _parse_expression(self, tok: Token) -> Element:
        if tok.content == SUPER_CALL:
            return self._super_marker(tok)

        parts = [p.strip() for p in split_unquoted(tok.content, FILTER_SEPARATOR)]
        expr, filters = parts[0], tuple(parts[1:])
        if not expr:
            raise ParseError("empty expression", tok.position)
        for name in filters:
            if not NAME_RE.match(name):
                raise ParseError(f"invalid filter name {name!r}", tok.position)
        return Expression(expr, filters, tok.position, self._compile_expr(expr, tok))

    def _parse_code(self, tok: Token) -> Optional[CodeBlock]:
        """Return an inline CodeBlock, or None when recorded as top-level code."""
        try:
            module = parse_code(tok.content)
        except SyntaxError as e:
            raise ParseError(f"invalid code block: {e.msg}", tok.position) from e

        produces_output = bool(module.body) and isinstance(module.body[-1], ast.Expr)
        if not self._seen_content and not self._depth and not produces_output:
            self._top_codes.append(tok.content)
            return None

        self._seen_content = True
        return CodeBlock(tok.content, tok.position)

    def _compile_expr(self, expr: str, tok: Token) -> CodeType:
        try:
            return compile(expr, f"<template {tok.position}>", "eval")
        except SyntaxError as e:
            raise ParseError(f"invalid expression {expr!r}: {e.msg}", tok.position) from e

    def _parse_targets(self, raw: str, tok: Token) -> Tuple[str, ...]:
        raw = raw.strip()
        if raw.startswith("(") and raw.endswith(")"):
            raw = raw[1:-1]
        targets = tuple(t.strip() for t in raw.split(",") if t.strip())
        if not targets or not all(NAME_RE.match(t) for t in targets):
            raise ParseError(f"invalid target names {raw!r}", tok.position)
        return targets
