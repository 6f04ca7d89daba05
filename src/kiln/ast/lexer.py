"""Template tokenization.

Splits source text into a flat token stream using the four configured
delimiter pairs. Whitespace options (lstrip_blocks, trim_blocks, autospace)
are applied here so the parser only ever sees final literal text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from kiln.config import TemplateConfig
from kiln.exceptions import ParseError, Position

TokenKind = Literal["text", "control", "expression", "code", "comment"]


@dataclass(frozen=True, slots=True)
class Token:
    """
    One lexical unit of a template.

    - `text`: literal content, already whitespace-adjusted
    - `control` / `expression` / `code` / `comment`: marker contents without
      delimiters. Control and expression contents are stripped; code is kept
      verbatim.
    """

    kind: TokenKind
    content: str
    position: Position


def position_at(source: str, index: int) -> Position:
    """Compute the 1-based line/column of `index` in `source`."""
    line_start = source.rfind("\n", 0, index) + 1
    return Position(line=source.count("\n", 0, index) + 1, column=index - line_start + 1)


class Lexer:
    """Single left-to-right scanner over template source."""

    def __init__(self, config: TemplateConfig):
        self.config = config
        self._delimiters = config.delimiters
        cstart, cend = self._delimiters["control"]
        self._endraw = re.compile(
            re.escape(cstart) + r"\s*endraw\s*" + re.escape(cend)
        )

    def tokenize(self, source: str) -> list[Token]:
        tokens: list[Token] = []
        pos = 0

        while True:
            found = self._next_marker(source, pos)
            if found is None:
                if pos < len(source):
                    tokens.append(
                        Token("text", source[pos:], position_at(source, pos))
                    )
                break

            index, kind = found
            start, end = self._delimiters[kind]

            text = source[pos:index]
            if kind == "control" and self.config.lstrip_blocks:
                text = self._lstrip_line(source, pos, index)
            if text:
                tokens.append(Token("text", text, position_at(source, pos)))

            body_start = index + len(start)
            close = source.find(end, body_start)
            if close == -1:
                raise ParseError(
                    f"unterminated {kind} marker, expected {end!r}",
                    position_at(source, index),
                )

            content = source[body_start:close]
            pos = close + len(end)
            position = position_at(source, index)

            if kind == "code":
                tokens.append(Token("code", content, position))
                continue
            if kind == "comment":
                tokens.append(Token("comment", content.strip(), position))
                continue
            if kind == "expression":
                tokens.append(Token("expression", content.strip(), position))
                continue

            content = content.strip()
            if self.config.trim_blocks:
                pos = self._trim_newline(source, pos)

            if content == "raw":
                match = self._endraw.search(source, pos)
                if match is None:
                    raise ParseError("unterminated raw block", position)
                if match.start() > pos:
                    tokens.append(
                        Token(
                            "text",
                            source[pos : match.start()],
                            position_at(source, pos),
                        )
                    )
                pos = match.end()
                if self.config.trim_blocks:
                    pos = self._trim_newline(source, pos)
                continue

            tokens.append(Token("control", content, position))

        if self.config.autospace:
            tokens = self._autospace(tokens)
        return tokens

    def _next_marker(self, source: str, pos: int) -> tuple[int, str] | None:
        """Find the earliest start delimiter at or after `pos`."""
        best: tuple[int, int, str] | None = None
        for kind, (start, _) in self._delimiters.items():
            index = source.find(start, pos)
            if index == -1:
                continue
            # earliest wins; on a tie the longer delimiter wins
            key = (index, -len(start), kind)
            if best is None or key < best:
                best = key
        if best is None:
            return None
        return best[0], best[2]

    @staticmethod
    def _lstrip_line(source: str, pos: int, index: int) -> str:
        """Drop spaces/tabs between line start and a control marker."""
        line_start = source.rfind("\n", 0, index) + 1
        if line_start >= pos and source[line_start:index].strip(" \t") == "":
            return source[pos:line_start]
        return source[pos:index]

    @staticmethod
    def _trim_newline(source: str, pos: int) -> int:
        if source.startswith("\r\n", pos):
            return pos + 2
        if source.startswith("\n", pos):
            return pos + 1
        return pos

    @staticmethod
    def _autospace(tokens: list[Token]) -> list[Token]:
        """Ensure a space separates value markers from adjacent literal text."""
        out = list(tokens)
        for i, tok in enumerate(out):
            if tok.kind not in ("expression", "code"):
                continue
            if i > 0 and out[i - 1].kind == "text":
                prev = out[i - 1]
                if prev.content and not prev.content[-1].isspace():
                    out[i - 1] = Token("text", prev.content + " ", prev.position)
            if i + 1 < len(out) and out[i + 1].kind == "text":
                nxt = out[i + 1]
                if nxt.content and not nxt.content[0].isspace():
                    out[i + 1] = Token("text", " " + nxt.content, nxt.position)
        return out
