"""Tests for configuration resolution."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from kiln import ConfigError, TemplateConfig, build_config, compile_template
from kiln.config import load_config_file


def test_defaults():
    cfg = TemplateConfig()
    assert cfg.delimiters == {
        "control": ("{%", "%}"),
        "expression": ("{{", "}}"),
        "code": ("{<", ">}"),
        "comment": ("{#", "#}"),
    }
    assert cfg.autoescape is True
    assert cfg.autospace is False
    assert cfg.lstrip_blocks is False
    assert cfg.trim_blocks is False
    assert cfg.dir == Path.cwd()


def test_config_is_frozen():
    cfg = TemplateConfig()
    with pytest.raises(ValidationError):
        cfg.autoescape = False


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="bogus"):
        build_config(overrides={"bogus": 1})


def test_unknown_key_rejected_by_template():
    with pytest.raises(ConfigError):
        compile_template("x", config={"trim_block": True})


def test_duplicate_start_delimiters_rejected():
    with pytest.raises(ConfigError, match="distinct"):
        build_config(overrides={"comment_block_start": "{%"})


def test_empty_delimiter_rejected():
    with pytest.raises(ConfigError, match="empty delimiter"):
        build_config(overrides={"code_block_end": ""})


def test_base_dir(tmp_path):
    assert build_config(tmp_path).dir == tmp_path


def test_yaml_config_file(tmp_path):
    path = tmp_path / "kiln.yaml"
    path.write_text("autoescape: false\ntrim_blocks: true\n")

    cfg = build_config(config_path=path)
    assert cfg.autoescape is False
    assert cfg.trim_blocks is True


def test_overrides_win_over_file(tmp_path):
    path = tmp_path / "kiln.yml"
    path.write_text("autoescape: false\n")
    cfg = build_config(config_path=path, overrides={"autoescape": True})
    assert cfg.autoescape is True


def test_toml_config_file(tmp_path):
    path = tmp_path / "kiln.toml"
    path.write_text(
        'autoescape = false\nexpression_block_start = "<%="\nexpression_block_end = "%>"\n'
    )
    tmpl = compile_template("<%= x %>", config_path=path)
    assert tmpl.render(x="<") == "<"


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config_file(tmp_path / "missing.yaml")


def test_unsupported_config_file_type(tmp_path):
    path = tmp_path / "kiln.ini"
    path.write_text("[x]\n")
    with pytest.raises(ConfigError, match="Unsupported"):
        load_config_file(path)


def test_config_file_must_be_mapping(tmp_path):
    path = tmp_path / "kiln.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config_file(path)
