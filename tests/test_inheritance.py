"""Tests for extends/block inheritance."""

import pytest

from kiln import ParseError, Template, compile_template
from kiln.compiler import Resolver


def write(directory, name, text):
    path = directory / name
    path.write_text(text)
    return path


def test_child_block_overrides_parent(tmp_path):
    write(tmp_path, "parent", "{% block body %}P{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block body %}C{% endblock %}", base_dir=tmp_path
    )
    assert child.render() == "C"


def test_super_splices_parent_body(tmp_path):
    write(tmp_path, "parent", "{% block body %}P{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block body %}{{ super() }}X{% endblock %}",
        base_dir=tmp_path,
    )
    assert child.render() == "PX"


def test_parent_kept_for_blocks_not_overridden(tmp_path):
    write(tmp_path, "base.html", "{% block a %}A{% endblock %}-{% block b %}B{% endblock %}")
    child = compile_template(
        '{% extends "base.html" %}{% block b %}X{% endblock %}', base_dir=tmp_path
    )
    assert child.render() == "A-X"


def test_three_level_super_chain(tmp_path):
    write(tmp_path, "base.html", "<{% block a %}A{% endblock %}>")
    write(tmp_path, "mid.html", '{% extends "base.html" %}{% block a %}M{{ super() }}{% endblock %}')
    child = compile_template(
        '{% extends "mid.html" %}{% block a %}C{{ super() }}{% endblock %}',
        base_dir=tmp_path,
    )
    assert child.render() == "<CMA>"


def test_super_skips_levels_without_the_block(tmp_path):
    write(tmp_path, "base.html", "{% block a %}A{% endblock %}")
    write(tmp_path, "mid.html", '{% extends "base.html" %}')
    child = compile_template(
        '{% extends "mid.html" %}{% block a %}{{ super() }}C{% endblock %}',
        base_dir=tmp_path,
    )
    assert child.render() == "AC"


def test_child_content_outside_blocks_is_ignored(tmp_path):
    write(tmp_path, "parent", "[{% block body %}P{% endblock %}]")
    child = compile_template(
        "{% extends parent %}ignored{% block body %}C{% endblock %}also ignored",
        base_dir=tmp_path,
    )
    assert child.render() == "[C]"


def test_nested_blocks(tmp_path):
    write(
        tmp_path,
        "parent",
        "{% block outer %}[{% block inner %}i{% endblock %}]{% endblock %}",
    )
    child = compile_template(
        "{% extends parent %}{% block inner %}c{% endblock %}", base_dir=tmp_path
    )
    assert child.render() == "[c]"


def test_blocks_see_bindings_and_parent_loops(tmp_path):
    write(
        tmp_path,
        "list.html",
        "{% for item in items %}{% block row %}{{ item }}{% endblock %},{% endfor %}",
    )
    child = compile_template(
        '{% extends "list.html" %}{% block row %}{{ prefix }}{{ super() }}{% endblock %}',
        base_dir=tmp_path,
    )
    assert child.render(items=[1, 2], prefix="#") == "#1,#2,"


def test_parent_linked_at_construction(tmp_path):
    write(tmp_path, "parent", "{% block body %}P{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block body %}C{% endblock %}", base_dir=tmp_path
    )
    assert child.super is not None
    assert set(child.super.blocks) == {"body"}
    # own, pre-override blocks
    assert child.blocks["body"][0].content == "C"


def test_resolver_merges_most_derived(tmp_path):
    write(tmp_path, "parent", "{% block a %}P{% endblock %}{% block b %}Q{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block a %}C{{ super() }}{% endblock %}", base_dir=tmp_path
    )
    resolution = Resolver().resolve(child)
    assert resolution.root is child.super
    assert [e.content for e in resolution.blocks["a"]] == ["C", "P"]
    assert [e.content for e in resolution.blocks["b"]] == ["Q"]


def test_super_without_parent_block_is_parse_error():
    with pytest.raises(ParseError, match="no parent block"):
        compile_template("{% block a %}{{ super() }}{% endblock %}")


def test_super_for_block_missing_in_parent(tmp_path):
    write(tmp_path, "parent", "{% block a %}A{% endblock %}")
    with pytest.raises(ParseError, match="no parent block"):
        compile_template(
            "{% extends parent %}{% block b %}{{ super() }}{% endblock %}",
            base_dir=tmp_path,
        )


def test_missing_parent_template(tmp_path):
    with pytest.raises(ParseError, match="cannot load parent"):
        compile_template('{% extends "missing.html" %}', base_dir=tmp_path)


def test_circular_extends(tmp_path):
    a = write(tmp_path, "a.html", '{% extends "b.html" %}')
    write(tmp_path, "b.html", '{% extends "a.html" %}')
    with pytest.raises(ParseError, match="circular extends"):
        Template(a, path=True)


def test_child_top_level_code_after_extends(tmp_path):
    write(tmp_path, "parent", "{% block body %}{% endblock %}")
    child = compile_template(
        "{% extends parent %}{< import math >}{% block body %}{{ math.floor(x) }}{% endblock %}",
        base_dir=tmp_path,
    )
    assert child.top_codes == (" import math ",)
    assert child.render(x=2.7) == "2"


def test_super_in_nested_block_when_outer_block_is_overridden(tmp_path):
    write(tmp_path, "parent", "{% block y %}[{% block x %}PX{% endblock %}]{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block y %}<{% block x %}{{ super() }}C{% endblock %}>{% endblock %}",
        base_dir=tmp_path,
    )
    # the child's y replaces the parent's brackets; x still reaches the parent's x
    assert child.render() == "<PXC>"


def test_super_in_outer_block_keeps_inner_override(tmp_path):
    write(tmp_path, "parent", "{% block y %}[{% block x %}PX{% endblock %}]{% endblock %}")
    child = compile_template(
        "{% extends parent %}{% block y %}{{ super() }}!{% endblock %}{% block x %}CX{% endblock %}",
        base_dir=tmp_path,
    )
    assert child.render() == "[CX]!"


def test_included_blocks_are_not_overridden_by_child(tmp_path):
    write(tmp_path, "part.html", "{% block title %}part{% endblock %}")
    write(tmp_path, "parent", '{% include "part.html" %}|{% block body %}P{% endblock %}')
    child = compile_template(
        "{% extends parent %}{% block title %}child{% endblock %}{% block body %}C{% endblock %}",
        base_dir=tmp_path,
    )
    assert child.render() == "part|C"
