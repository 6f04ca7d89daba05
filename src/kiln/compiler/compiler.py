"""Compiler - turns an element tree into a render procedure.

Each element becomes a small closure `(scope, out, state) -> None` that
appends text to `out`. The closures are built once per Template and invoked
for every render; nothing is generated as source text.

Scoping:
- the root scope is a ChainMap over a copy of the caller's bindings
- `for` bodies run in a child scope, so loop targets (and `set` inside the
  body) shadow outer names only until the loop ends
"""

from __future__ import annotations

import logging
from collections import ChainMap
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from kiln.ast.spec import (
    Body,
    CodeBlock,
    Element,
    Expression,
    ForBlock,
    IfBlock,
    NamedBlock,
    RawText,
    SetBlock,
    SuperMarker,
)
from kiln.compiler.executor import CodeExecutor, ExecutionContext, InProcessExecutor
from kiln.config import TemplateConfig
from kiln.exceptions import (
    FilterNotFoundError,
    HostCodeError,
    ParseError,
    Position,
    RenderError,
    UndefinedVariableError,
)
from kiln.filters import FilterRegistry, html_escape

log = logging.getLogger(__name__)

Scope = ChainMap
Output = List[str]


@dataclass
class RenderState:
    """Per-render mutable state shared by all closures."""

    executor: CodeExecutor
    context: ExecutionContext
    host: Dict[str, Any] = field(default_factory=dict)


Node = Callable[[Scope, Output, RenderState], None]
RenderFunction = Callable[[Mapping[str, Any]], str]


def _namespace(scope: Scope, state: RenderState) -> Dict[str, Any]:
    """Flatten host namespace + scope into an eval() globals dict."""
    namespace = dict(state.host)
    namespace.update(scope)
    return namespace


def evaluate(code: CodeType, source: str, scope: Scope, state: RenderState, position: Position) -> Any:
    """Evaluate a compiled expression, mapping failures to render errors."""
    try:
        return eval(code, _namespace(scope, state))
    except NameError as e:
        raise UndefinedVariableError(e.name or source, position) from e
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(
            f"error evaluating {source!r}: {type(e).__name__}: {e}", position
        ) from e


class Compiler:
    """Compiles element trees using one filter registry and configuration."""

    def __init__(
        self,
        filters: FilterRegistry,
        config: TemplateConfig,
        executor: Optional[CodeExecutor] = None,
    ):
        self.filters = filters
        self.config = config
        self.executor = executor or InProcessExecutor()

    def compile(
        self,
        elements: Body,
        blocks: Mapping[str, Body],
        top_codes: Sequence[str] = (),
    ) -> RenderFunction:
        """Build the render procedure.

        Args:
            elements: Elements of the template at the top of the extends chain.
            blocks: Inheritance-resolved block bodies.
            top_codes: Code run once per render before any output.

        Returns:
            A function taking bindings and returning the output text.
        """
        self._blocks = blocks
        self._block_stack: List[str] = []
        body = self._compile_body(elements)
        top_codes = tuple(top_codes)
        executor = self.executor
        base_dir = self.config.dir

        def render(bindings: Mapping[str, Any]) -> str:
            context = ExecutionContext(base_dir=base_dir, top_codes=top_codes)
            state = RenderState(executor=executor, context=context, host=context.namespace)
            scope: Scope = ChainMap({}, dict(bindings))
            for code in top_codes:
                context.bindings = dict(scope)
                executor.run_top_level(code, context)
            out: Output = []
            body(scope, out, state)
            return "".join(out)

        return render

    # ------------------------------------------------------------------

    def _compile_body(self, body: Body) -> Node:
        nodes = tuple(self._compile_element(e) for e in body)

        def run(scope: Scope, out: Output, state: RenderState) -> None:
            for node in nodes:
                node(scope, out, state)

        return run

    def _compile_element(self, element: Element) -> Node:
        if isinstance(element, RawText):
            return self._compile_raw(element)
        if isinstance(element, Expression):
            return self._compile_expression(element)
        if isinstance(element, IfBlock):
            return self._compile_if(element)
        if isinstance(element, ForBlock):
            return self._compile_for(element)
        if isinstance(element, SetBlock):
            return self._compile_set(element)
        if isinstance(element, CodeBlock):
            return self._compile_code(element)
        if isinstance(element, NamedBlock):
            return self._compile_named(element)
        if isinstance(element, SuperMarker):
            raise ParseError(
                f"super() in block '{element.name}' cannot be resolved",
                element.position,
            )
        raise TypeError(f"Unknown element type: {type(element).__name__}")

    def _compile_raw(self, element: RawText) -> Node:
        content = element.content

        def raw(scope: Scope, out: Output, state: RenderState) -> None:
            out.append(content)

        return raw

    def _compile_expression(self, element: Expression) -> Node:
        code = element.code or compile(element.expr, "<template>", "eval")
        names = element.filters
        position = element.position
        registry = self.filters
        autoescape = self.config.autoescape

        def expression(scope: Scope, out: Output, state: RenderState) -> None:
            text: Any = str(evaluate(code, element.expr, scope, state, position))
            escaped = False
            for name in names:
                try:
                    fn = registry.lookup(name)
                except FilterNotFoundError as e:
                    raise FilterNotFoundError(name, position) from e
                try:
                    text = fn(text)
                except Exception as e:
                    raise RenderError(
                        f"filter '{name}' failed: {type(e).__name__}: {e}", position
                    ) from e
                escaped = registry.is_escape(fn)
            if autoescape and not escaped:
                text = html_escape(text)
            out.append(str(text))

        return expression

    def _compile_if(self, element: IfBlock) -> Node:
        branches: Tuple[Tuple[str, CodeType, Node], ...] = tuple(
            (cond, code, self._compile_body(body)) for cond, code, body in element.branches
        )
        else_body = self._compile_body(element.else_body) if element.else_body is not None else None
        position = element.position

        def if_block(scope: Scope, out: Output, state: RenderState) -> None:
            for cond, code, body in branches:
                if evaluate(code, cond, scope, state, position):
                    body(scope, out, state)
                    return
            if else_body is not None:
                else_body(scope, out, state)

        return if_block

    def _compile_for(self, element: ForBlock) -> Node:
        code = element.code or compile(element.iterable, "<template>", "eval")
        targets = element.targets
        body = self._compile_body(element.body)
        position = element.position

        def for_block(scope: Scope, out: Output, state: RenderState) -> None:
            iterable = evaluate(code, element.iterable, scope, state, position)
            try:
                iterator = iter(iterable)
            except TypeError as e:
                raise RenderError(
                    f"{element.iterable!r} is not iterable", position
                ) from e
            for item in iterator:
                inner = scope.new_child()
                _assign(inner, targets, item, position)
                body(inner, out, state)

        return for_block

    def _compile_set(self, element: SetBlock) -> Node:
        code = element.code or compile(element.expr, "<template>", "eval")
        position = element.position

        def set_block(scope: Scope, out: Output, state: RenderState) -> None:
            _assign(scope, element.targets, evaluate(code, element.expr, scope, state, position), position)

        return set_block

    def _compile_code(self, element: CodeBlock) -> Node:
        source = element.code
        position = element.position

        def code_block(scope: Scope, out: Output, state: RenderState) -> None:
            state.context.bindings = dict(scope)
            try:
                text = state.executor.execute(source, state.context)
            except HostCodeError as e:
                raise HostCodeError(e.message, position) from (e.__cause__ or e)
            except Exception as e:
                raise HostCodeError(f"{type(e).__name__}: {e}", position) from e
            out.append(text)

        return code_block

    def _compile_named(self, element: NamedBlock) -> Node:
        name = element.name
        if name in self._block_stack:
            raise ParseError(f"block '{name}' contains itself", element.position)
        body = self._blocks.get(name, element.body)

        self._block_stack.append(name)
        try:
            return self._compile_body(body)
        finally:
            self._block_stack.pop()


def _assign(scope: Scope, targets: Tuple[str, ...], value: Any, position: Position) -> None:
    """Bind `value` to `targets` in the innermost map of `scope`."""
    if len(targets) == 1:
        scope[targets[0]] = value
        return
    try:
        values = tuple(value)
    except TypeError as e:
        raise RenderError(f"cannot unpack {type(value).__name__}", position) from e
    if len(values) != len(targets):
        raise RenderError(
            f"expected {len(targets)} values to unpack, got {len(values)}", position
        )
    for name, item in zip(targets, values):
        scope[name] = item
