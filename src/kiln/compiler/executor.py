"""Embedded code execution for `{< ... >}` blocks.

A CodeExecutor receives the code text plus an ExecutionContext and returns
the text to splice into the output. Two implementations:
- InProcessExecutor (default): runs the fragment in this interpreter
- SubprocessExecutor: runs the fragment in a child Python process
"""

from __future__ import annotations

import ast
import json
import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

from kiln.ast.parser import parse_code
from kiln.exceptions import HostCodeError

log = logging.getLogger(__name__)

RESULT_NAME = "__kiln_result__"

# top-level statements replayed in subprocess fragments
DEFINITIONS = (ast.Import, ast.ImportFrom, ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass
class ExecutionContext:
    """What a code block can see while it runs."""

    bindings: Dict[str, Any] = field(default_factory=dict)
    # Shared by all code blocks of one render; top-level code writes here.
    namespace: Dict[str, Any] = field(default_factory=dict)
    base_dir: Path = field(default_factory=Path.cwd)
    top_codes: Tuple[str, ...] = ()


def split_result(code: str) -> Tuple[ast.Module, ast.Expression | None]:
    """Split a fragment into (statements, trailing expression or None)."""
    module = parse_code(code)
    if module.body and isinstance(module.body[-1], ast.Expr):
        last = module.body.pop()
        return module, ast.Expression(body=last.value)
    return module, None


def stringify(value: Any) -> str:
    return "" if value is None else str(value)



def run_in_namespace(code: str, context: ExecutionContext) -> None:
    """Execute top-level code in the shared namespace, seeded with bindings."""
    context.namespace.update(context.bindings)
    try:
        exec(compile(parse_code(code), "<top-level code>", "exec"), context.namespace)
    except Exception as e:
        raise HostCodeError(f"{type(e).__name__}: {e}") from e


class CodeExecutor(ABC):
    """Runs embedded code fragments."""

    @abstractmethod
    def execute(self, code: str, context: ExecutionContext) -> str:
        """Run an inline fragment and return its stringified result.

        Raises:
            HostCodeError: If the fragment fails.
        """
        ...

    @abstractmethod
    def run_top_level(self, code: str, context: ExecutionContext) -> None:
        """Run a top-level fragment once per render, before any output.

        Names it defines must end up in `context.namespace`, where template
        expressions and later fragments look them up.

        Raises:
            HostCodeError: If the fragment fails.
        """
        ...


class InProcessExecutor(CodeExecutor):
    """Executes fragments with exec/eval in an isolated namespace.

    Each inline fragment gets a copy of the shared namespace overlaid with the
    current bindings, so its assignments do not leak into the template.
    """

    def execute(self, code: str, context: ExecutionContext) -> str:
        namespace = dict(context.namespace)
        namespace.update(context.bindings)
        try:
            module, result = split_result(code)
            exec(compile(module, "<code block>", "exec"), namespace)
            value = (
                eval(compile(result, "<code block>", "eval"), namespace)
                if result is not None
                else None
            )
        except Exception as e:
            raise HostCodeError(f"{type(e).__name__}: {e}") from e
        return stringify(value)

    def run_top_level(self, code: str, context: ExecutionContext) -> None:
        run_in_namespace(code, context)


class SubprocessExecutor(CodeExecutor):
    """Executes each inline fragment in a fresh Python process.

    Top-level code runs once per render in this process, so its names are
    visible to template expressions. A fragment's child process receives the
    JSON-serializable part of that namespace plus the bindings on stdin; the
    imports, functions and classes of the top-level code are replayed in the
    child, other top-level statements are not. The child's working directory
    is the template base directory.
    """

    def __init__(self, python: str | None = None):
        self.python = python or sys.executable

    def run_top_level(self, code: str, context: ExecutionContext) -> None:
        run_in_namespace(code, context)

    def execute(self, code: str, context: ExecutionContext) -> str:
        script = self.build_script(code, context.top_codes)
        values = {k: v for k, v in context.namespace.items() if not k.startswith("__")}
        values.update(context.bindings)
        payload = json.dumps(self._serializable(values))

        log.debug("Running code block in subprocess (%s)", self.python)
        try:
            result = subprocess.run(
                [self.python, "-c", script],
                input=payload,
                cwd=context.base_dir,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise HostCodeError(f"failed to start {self.python}: {e}") from e

        if result.returncode != 0:
            raise HostCodeError(
                f"code block exited with status {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result.stdout.rstrip()

    @staticmethod
    def build_script(code: str, top_codes: Tuple[str, ...] = ()) -> str:
        """Build the child script: load values, replay definitions, print result."""
        try:
            module, result = split_result(code)
            prelude = [parse_code(top) for top in top_codes]
        except SyntaxError as e:
            raise HostCodeError(f"invalid code block: {e.msg}") from e

        body = []
        for top in prelude:
            body.extend(stmt for stmt in top.body if isinstance(stmt, DEFINITIONS))
        body.extend(module.body)
        if result is not None:
            body.append(
                ast.Assign(
                    targets=[ast.Name(id=RESULT_NAME, ctx=ast.Store())],
                    value=result.body,
                )
            )
        script = ast.unparse(ast.fix_missing_locations(ast.Module(body=body, type_ignores=[])))

        lines = [
            "import json as __kiln_json__, sys as __kiln_sys__",
            "globals().update(__kiln_json__.load(__kiln_sys__.stdin))",
            f"{RESULT_NAME} = None",
            script,
            f"if {RESULT_NAME} is not None:",
            f"    print({RESULT_NAME})",
        ]
        return "\n".join(lines)

    @staticmethod
    def _serializable(values: Dict[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name, value in values.items():
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                log.debug("Value %r is not JSON-serializable, skipped", name)
                continue
            out[name] = value
        return out
