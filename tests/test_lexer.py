"""Tests for tokenization and whitespace control."""

import pytest

from kiln import ParseError, Position, compile_template
from kiln.ast.lexer import Lexer
from kiln.config import TemplateConfig


def test_tokenize_all_marker_kinds():
    """Each delimiter pair produces its own token kind."""
    tokens = Lexer(TemplateConfig()).tokenize("a{% if x %}{{ y }}{< z >}{# c #}b")
    assert [t.kind for t in tokens] == [
        "text",
        "control",
        "expression",
        "code",
        "comment",
        "text",
    ]
    assert tokens[1].content == "if x"
    assert tokens[2].content == "y"
    # code is kept verbatim
    assert tokens[3].content == " z "


def test_token_positions():
    """Positions are 1-based line/column of the opening delimiter."""
    tokens = Lexer(TemplateConfig()).tokenize("a\n  {{ b }}")
    assert tokens[1].position == Position(line=2, column=3)


def test_unterminated_marker_reports_position():
    with pytest.raises(ParseError) as exc_info:
        compile_template("ok\n{{ x")
    assert exc_info.value.position == Position(line=2, column=1)
    assert "line 2" in str(exc_info.value)


def test_unterminated_code_marker():
    with pytest.raises(ParseError, match="unterminated code marker"):
        compile_template("{< 1 + 1")


def test_trim_blocks_removes_newline_after_control():
    tmpl = compile_template("{% if x %}\nA\n{% endif %}\nB", config={"trim_blocks": True})
    assert tmpl.render(x=True) == "A\nB"


def test_without_trim_blocks_newlines_are_kept():
    tmpl = compile_template("{% if x %}\nA\n{% endif %}\nB")
    assert tmpl.render(x=True) == "\nA\n\nB"


def test_lstrip_blocks_strips_indentation_before_control():
    tmpl = compile_template("  {% if x %}A{% endif %}", config={"lstrip_blocks": True})
    assert tmpl.render(x=True) == "A"


def test_lstrip_blocks_keeps_text_on_same_line():
    tmpl = compile_template("x {% if x %}A{% endif %}", config={"lstrip_blocks": True})
    assert tmpl.render(x=True) == "x A"


def test_trim_and_lstrip_blocks_together():
    source = "<ul>\n  {% for i in items %}\n  <li>{{ i }}</li>\n  {% endfor %}\n</ul>"
    tmpl = compile_template(source, config={"trim_blocks": True, "lstrip_blocks": True})
    assert tmpl.render(items=[1, 2]) == "<ul>\n  <li>1</li>\n  <li>2</li>\n</ul>"


def test_autospace_inserts_spaces_around_values():
    tmpl = compile_template("Hello{{ name }}!", config={"autospace": True})
    assert tmpl.render(name="kiln") == "Hello kiln !"


def test_autospace_does_not_double_spaces():
    tmpl = compile_template("Hello {{ name }} !", config={"autospace": True})
    assert tmpl.render(name="kiln") == "Hello kiln !"


def test_raw_block_is_verbatim():
    tmpl = compile_template("{% raw %}{{ x }}{% if %}{% endraw %}")
    assert tmpl.render() == "{{ x }}{% if %}"


def test_unterminated_raw_block():
    with pytest.raises(ParseError, match="unterminated raw block"):
        compile_template("{% raw %}{{ x }}")


def test_custom_delimiters():
    config = {"expression_block_start": "[[", "expression_block_end": "]]"}
    tmpl = compile_template("[[ x ]] {{ x }}", config=config)
    assert tmpl.render(x="v") == "v {{ x }}"
