"""
Unit tests for core/ontology.py - levels and labels
"""
import pytest

from core.ontology import Level, LEVEL_ORDER, level_label, validate_level


def test_levels_are_ordered():
    assert Level.AIM < Level.PRIMARY < Level.SECONDARY < Level.CHANGE
    assert Level.CHANGE >= Level.SECONDARY
    assert [lv.rank for lv in LEVEL_ORDER] == [0, 1, 2, 3]


def test_next_level():
    assert Level.AIM.next_level() == Level.PRIMARY
    assert Level.CHANGE.next_level() is None


@pytest.mark.parametrize("raw,expected", [
    ("aim", Level.AIM),
    (" Primary ", Level.PRIMARY),
    ("SECONDARY", Level.SECONDARY),
    ("change", Level.CHANGE),
    ("Change idea", Level.CHANGE),
])
def test_parse_accepts_values_and_labels(raw, expected):
    assert Level.parse(raw) == expected


@pytest.mark.parametrize("raw", ["", "tertiary", None, "changes"])
def test_parse_rejects_unknown(raw):
    with pytest.raises(ValueError):
        Level.parse(raw)


def test_level_label():
    """
    Validate display labels.

    Verifies:
    - Known values map to their labels
    - Unknown values come back unchanged
    """
    assert level_label("aim") == "Aim"
    assert level_label("change") == "Change idea"
    assert level_label("mystery") == "mystery"


def test_validate_level():
    assert validate_level("secondary")
    assert not validate_level("Secondary")
