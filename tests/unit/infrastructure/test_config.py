"""
Unit tests for infrastructure/config.py
"""
import pytest

from core.schemas import Appearance, ColumnTitles
from infrastructure.config import (
    DiagramConfig,
    build_config,
    get_config,
    load_config,
    load_toml_config,
    set_config,
)


def test_default_config_file():
    """
    Validate the shipped config/driver_diagram.toml.

    Verifies:
    - Six palette colours in order
    - Appearance and titles match the built-in defaults
    """
    config = load_config()

    assert [e.label for e in config.palette] == ["Red", "Amber", "Yellow", "Green", "Blue", "Purple"]
    assert config.palette[0].value == "#F4CCCC"
    assert config.appearance == Appearance()
    assert config.titles == ColumnTitles()
    assert config.export_filename == "driver-diagram.csv"


def test_missing_file_warns_and_uses_defaults(tmp_path):
    with pytest.warns(UserWarning, match="Failed to load config"):
        config = load_config(tmp_path / "absent.toml")

    assert config == DiagramConfig()


def test_broken_toml_warns(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[diagram\nexport_filename = ")

    with pytest.warns(UserWarning):
        assert load_toml_config(path) == {}


def test_partial_file_keeps_other_defaults(tmp_path):
    path = tmp_path / "partial.toml"
    path.write_text('[titles]\nchange = "Ideas to test"\n\n[appearance]\nfont_size = 16\n')

    config = load_config(path)

    assert config.titles.change == "Ideas to test"
    assert config.titles.aim == "Aim"
    assert config.appearance.font_size == 16
    assert config.appearance.box_height == 90
    assert config.palette == []


def test_bad_section_is_dropped_with_warning():
    """
    Validate that one badly typed section doesn't discard the rest.

    Verifies:
    - The bad section falls back to defaults
    - Good sections are still applied
    """
    raw = {
        "diagram": {"default_aim_text": "Our aim"},
        "appearance": {"font_size": "large"},
        "palette": [{"label": "Teal", "value": "#008080"}],
    }

    with pytest.warns(UserWarning):
        config = build_config(raw)

    assert config.default_aim_text == "Our aim"
    assert config.appearance == Appearance()
    assert [e.value for e in config.palette] == ["#008080"]


def test_get_config_is_cached_and_replaceable():
    first = get_config()
    assert get_config() is first

    custom = DiagramConfig(default_aim_text="Custom")
    set_config(custom)
    assert get_config() is custom
