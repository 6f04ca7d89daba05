"""Kiln CLI

Usage:
    kiln render page.html                       # render with no bindings
    kiln render page.html -d data.yaml          # bindings from YAML/JSON
    kiln render page.html -s name=world         # single binding
    kiln render page.html -o out.html           # write to file
    kiln check page.html                        # compile only
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from kiln import __version__
from kiln.exceptions import TemplateError
from kiln.template import Template

console = Console()
log = logging.getLogger(__name__)

typer_app = typer.Typer(help="Compile and render kiln templates.")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the kiln CLI.

    Log levels:
    - Normal: only warnings/errors
    - Verbose (-v): INFO
    - Debug (KILN_DEBUG=1): DEBUG
    """
    if os.environ.get("KILN_DEBUG"):
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbose,
        show_path=bool(os.environ.get("KILN_DEBUG")),
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    kiln_logger = logging.getLogger("kiln")
    kiln_logger.setLevel(level)
    kiln_logger.handlers = [handler]
    kiln_logger.propagate = False


def load_bindings(data_file: Optional[Path], assignments: List[str]) -> dict[str, Any]:
    """Collect bindings from a YAML/JSON file plus key=value pairs."""
    bindings: dict[str, Any] = {}
    if data_file is not None:
        with open(data_file) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise typer.BadParameter(f"{data_file} must contain a mapping")
        bindings.update(data)

    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {item!r}")
        bindings[key.strip()] = value
    return bindings


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"Error: {exc}", err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@typer_app.command()
def render(
    template: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template file."),
    data: Optional[Path] = typer.Option(
        None, "-d", "--data", exists=True, dir_okay=False, help="YAML/JSON bindings file."
    ),
    assignments: Optional[List[str]] = typer.Option(
        None, "-s", "--set", help="Binding as key=value (repeatable)."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "-c", "--config", exists=True, dir_okay=False, help="YAML/TOML config file."
    ),
    output: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write output to file instead of stdout."
    ),
    no_autoescape: bool = typer.Option(
        False, "--no-autoescape", help="Disable HTML autoescaping."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
) -> None:
    """Render TEMPLATE with bindings."""
    setup_logging(verbose)
    bindings = load_bindings(data, list(assignments or []))

    overrides: dict[str, Any] = {}
    if no_autoescape:
        overrides["autoescape"] = False

    try:
        tmpl = Template(template, path=True, config=overrides, config_path=config_path)
        text = tmpl.render(bindings)
    except TemplateError as exc:
        _fail(exc)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        log.info("Wrote %s", output)
    else:
        typer.echo(text, nl=False)


@typer_app.command()
def check(
    templates: List[Path] = typer.Argument(..., exists=True, dir_okay=False),
    config_path: Optional[Path] = typer.Option(
        None, "-c", "--config", exists=True, dir_okay=False, help="YAML/TOML config file."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
) -> None:
    """Compile TEMPLATES without rendering and report errors."""
    setup_logging(verbose)
    failed = 0
    for path in templates:
        try:
            Template(path, path=True, config_path=config_path)
        except TemplateError as exc:
            failed += 1
            console.print(f"[red]✗[/red] {path}: {escape(str(exc))}")
        else:
            console.print(f"[green]✓[/green] {path}")
    if failed:
        raise typer.Exit(code=1)


@typer_app.command()
def version() -> None:
    """Show version and exit."""
    typer.echo(f"kiln {__version__}")


def app() -> None:
    """Entry point for the `kiln` console script."""
    typer_app()


if __name__ == "__main__":
    app()
