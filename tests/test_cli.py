"""Tests for the kiln command line."""

from typer.testing import CliRunner

from kiln import __version__
from kiln.cli import load_bindings, typer_app

runner = CliRunner()


def test_render_to_stdout(tmp_path):
    tmpl = tmp_path / "hello.txt"
    tmpl.write_text("Hello {{ name }}!")

    result = runner.invoke(typer_app, ["render", str(tmpl), "-s", "name=<you>"])
    assert result.exit_code == 0
    assert result.stdout == "Hello &lt;you&gt;!"


def test_render_with_data_file(tmp_path):
    tmpl = tmp_path / "list.txt"
    tmpl.write_text("{% for u in users %}<{{ u }}>{% endfor %}")
    data = tmp_path / "data.yaml"
    data.write_text("users:\n  - a\n  - b\n")

    result = runner.invoke(
        typer_app, ["render", str(tmpl), "--data", str(data), "--no-autoescape"]
    )
    assert result.exit_code == 0
    assert result.stdout == "<a><b>"


def test_render_to_output_file(tmp_path):
    tmpl = tmp_path / "page.html"
    tmpl.write_text("{{ x }}")
    out = tmp_path / "build" / "page.html"

    result = runner.invoke(typer_app, ["render", str(tmpl), "-s", "x=1", "-o", str(out)])
    assert result.exit_code == 0
    assert out.read_text() == "1"


def test_render_error_exits_nonzero(tmp_path):
    tmpl = tmp_path / "bad.txt"
    tmpl.write_text("{{ missing }}")

    result = runner.invoke(typer_app, ["render", str(tmpl)])
    assert result.exit_code == 1


def test_check_reports_failures(tmp_path):
    good = tmp_path / "good.txt"
    good.write_text("{% if x %}ok{% endif %}")
    bad = tmp_path / "bad.txt"
    bad.write_text("{% if x %}no end")

    assert runner.invoke(typer_app, ["check", str(good)]).exit_code == 0
    result = runner.invoke(typer_app, ["check", str(good), str(bad)])
    assert result.exit_code == 1
    assert "unterminated" in result.stdout


def test_version():
    result = runner.invoke(typer_app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_load_bindings_merges_file_and_pairs(tmp_path):
    data = tmp_path / "data.yaml"
    data.write_text("a: 1\nb: 2\n")
    assert load_bindings(data, ["b=x", "c = y"]) == {"a": 1, "b": "x", "c": " y"}
