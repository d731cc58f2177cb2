"""
Unit tests for core/palette.py - ColorPalette
"""
import pytest

from core.palette import ColorPalette, InvalidColorError, is_hex_color
from core.schemas import PaletteEntry


@pytest.mark.parametrize("value,expected", [
    ("#fff", True),
    ("#FFFA", True),
    ("#F4CCCC", True),
    ("#f4cccc80", True),
    ("F4CCCC", False),
    ("#F4CCC", False),
    ("red", False),
    ("", False),
])
def test_is_hex_color(value, expected):
    assert is_hex_color(value) is expected


def test_constructor_dedupes_case_insensitively():
    palette = ColorPalette([
        PaletteEntry(label="Red", value="#F4CCCC"),
        PaletteEntry(label="Also red", value="#f4cccc"),
        PaletteEntry(label="Green", value="#D9EAD3"),
    ])

    assert len(palette) == 2
    assert palette.label_for("#F4CCCC") == "Red"


def test_upsert_appends_with_default_label():
    """
    Validate that a new colour without a label becomes "Colour N".

    Verifies:
    - N is the 1-based position of the new entry
    - Order is insertion order
    """
    palette = ColorPalette()
    palette.upsert("#111111", "Black")
    entry = palette.upsert("#222222")

    assert entry.label == "Colour 2"
    assert [e.value for e in palette] == ["#111111", "#222222"]


def test_upsert_existing_updates_label_only():
    palette = ColorPalette()
    palette.upsert("#ABCDEF", "Sky")

    palette.upsert("#abcdef", "Pale sky")
    palette.upsert("#ABCDEF", "")

    assert len(palette) == 1
    assert palette.find("#ABCDEF").label == "Pale sky"
    assert palette.find("#ABCDEF").value == "#ABCDEF"


def test_upsert_invalid_value():
    palette = ColorPalette()
    with pytest.raises(InvalidColorError) as exc_info:
        palette.upsert("blue")
    assert exc_info.value.value == "blue"
    assert len(palette) == 0


def test_remove():
    palette = ColorPalette([PaletteEntry(label="Red", value="#F4CCCC")])

    removed = palette.remove("#f4cccc")

    assert removed.label == "Red"
    assert len(palette) == 0
    assert palette.remove("#f4cccc") is None


def test_entries_returns_copies():
    palette = ColorPalette([PaletteEntry(label="Red", value="#F4CCCC")])

    entries = palette.entries()
    entries[0].label = "Changed"

    assert palette.label_for("#F4CCCC") == "Red"


def test_from_used_colors():
    """
    Validate rebuilding a palette from node colours.

    Verifies:
    - Blank colours are ignored
    - Repeats (any case) appear once, first spelling wins
    - Labels are "Colour 1", "Colour 2", ...
    """
    palette = ColorPalette.from_used_colors(["", "#aaa", "#BBB", "#AAA", None, "#bbb"])

    assert [(e.label, e.value) for e in palette] == [("Colour 1", "#aaa"), ("Colour 2", "#BBB")]
