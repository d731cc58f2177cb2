"""
DRIVER DIAGRAM ONTOLOGY - The Dictionary of the Diagram

If schemas.py is the Grammar (how we structure records),
ontology.py is the Dictionary (the words we can use).

This module defines:
- Level: the ordered column vocabulary (aim < primary < secondary < change)
- Connectivity: the connection states a node moves through
- Display labels used wherever a level is shown to a person

Key Principle: The ORDER of levels is meaningful. A driver diagram reads
left to right from the aim towards concrete change ideas, and the
invariant checks use that order to flag backwards links.
"""
from typing import Dict, List, Optional
from enum import Enum


# =============================================================================
# ENUMS (The Vocabulary)
# =============================================================================

class Level(str, Enum):
    """Column a node belongs to. Declaration order is the diagram order."""
    AIM = "aim"                      # The improvement goal (normally a root)
    PRIMARY = "primary"              # Primary drivers
    SECONDARY = "secondary"          # Secondary drivers
    CHANGE = "change"                # Change ideas (concrete actions)

    @property
    def rank(self) -> int:
        """Position of the level in the diagram (aim = 0)."""
        return LEVEL_ORDER.index(self)

    @property
    def label(self) -> str:
        """Human-readable label for the level."""
        return LEVEL_LABELS[self]

    def next_level(self) -> Optional["Level"]:
        """The level a child of this level normally belongs to."""
        idx = self.rank + 1
        return LEVEL_ORDER[idx] if idx < len(LEVEL_ORDER) else None

    def __lt__(self, other):
        if not isinstance(other, Level):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Level):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Level):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Level):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, raw: str) -> "Level":
        """
        Parse a level from its value or its display label.

        Matching is case-insensitive and ignores surrounding whitespace, so
        "Primary", " change " and "Change idea" are all accepted.

        Raises:
            ValueError: If the string names no level
        """
        key = (raw or "").strip().lower()
        for level in LEVEL_ORDER:
            if key == level.value or key == LEVEL_LABELS[level].lower():
                return level
        raise ValueError(f"Unknown level: {raw!r}")


class Connectivity(str, Enum):
    """
    Connection state of a single node.

    DISCONNECTED -> PRIMARY_ONLY -> MULTI, driven only by add_edge/remove_edge
    (or a bulk import followed by a rebuild).
    """
    DISCONNECTED = "disconnected"    # No incoming edges, empty parent_id
    PRIMARY_ONLY = "primary_only"    # Exactly one incoming edge, the primary
    MULTI = "multi"                  # Two or more incoming edges


# =============================================================================
# LEVEL METADATA
# =============================================================================

LEVEL_ORDER: List[Level] = [Level.AIM, Level.PRIMARY, Level.SECONDARY, Level.CHANGE]

LEVEL_LABELS: Dict[Level, str] = {
    Level.AIM: "Aim",
    Level.PRIMARY: "Primary",
    Level.SECONDARY: "Secondary",
    Level.CHANGE: "Change idea",
}


def level_label(level: str) -> str:
    """
    Display label for a level value.

    Unknown values are returned unchanged so that a view never crashes on
    data it does not understand.
    """
    try:
        return Level(level).label
    except ValueError:
        return level


def validate_level(level_str: str) -> bool:
    """Check if a string is a valid Level value."""
    return level_str in {lv.value for lv in Level}
