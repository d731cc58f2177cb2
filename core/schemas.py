"""
DRIVER DIAGRAM SCHEMAS - The Grammar of the Diagram

If ontology.py is the Dictionary (defining the words we can use),
schemas.py is the Grammar (defining how we structure records).

This module defines the data structures that flow through the diagram:
- NodeData: The payload attached to every graph node
- EdgeData: The payload attached to every parent -> child connection
- PaletteEntry: One named colour of the diagram palette
- Appearance / ColumnTitles: Diagram-level display settings
- Serialization helpers for the palette column of the CSV format

Design Principles:
1. msgspec.Struct records, KW_ONLY to prevent positional mix-ups
2. IMMUTABLE IDS: Node ids are set once and never change
3. Defaults live here so every component agrees on them
"""
import msgspec
from typing import Optional, List, Any
from datetime import datetime, timezone

from core.ontology import Level


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def now_utc() -> str:
    """Fast UTC timestamp as ISO8601 string."""
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# NODE DATA (The Core Graph Payload)
# =============================================================================

class NodeData(msgspec.Struct, kw_only=True, frozen=False):
    """
    The payload attached to every node in the rustworkx graph.

    Architecture Notes:
    - `id`: Business id (string), NOT the rustworkx integer index
    - `parent_id`: The primary parent. Only DiagramGraph changes it, so it
      always agrees with the connection set (or dangles, when the parent
      is missing).
    - `color`: A palette value (hex string) or "" for no colour
    """
    # === Identity ===
    id: str
    level: str                                 # Level.value (e.g., "aim")

    # === Content ===
    text: str
    parent_id: str = ""
    color: str = ""

    # === Provenance ===
    created_at: str = msgspec.field(default_factory=now_utc)
    updated_at: str = msgspec.field(default_factory=now_utc)
    version: int = 1                           # Incremented on each update

    @property
    def level_enum(self) -> Level:
        return Level(self.level)

    def touch(self) -> None:
        """Update the updated_at timestamp and increment version."""
        self.updated_at = now_utc()
        self.version += 1

    def set_text(self, text: str) -> None:
        self.text = text
        self.touch()

    def set_color(self, color: str) -> None:
        self.color = color
        self.touch()

    def set_parent(self, parent_id: str) -> None:
        self.parent_id = parent_id
        self.touch()

    @classmethod
    def create(
        cls,
        id: str,
        level: str,
        text: str,
        parent_id: str = "",
        color: str = "",
        **kwargs
    ) -> "NodeData":
        """Factory method normalising optional references to empty strings."""
        return cls(
            id=id,
            level=level.value if isinstance(level, Level) else level,
            text=text,
            parent_id=parent_id or "",
            color=color or "",
            **kwargs
        )


# =============================================================================
# EDGE DATA (The Parent -> Child Connection)
# =============================================================================

class EdgeData(msgspec.Struct, kw_only=True, frozen=False):
    """
    The payload attached to every edge in the rustworkx graph.

    Edges are intentionally thin: direction (parent -> child) and when they
    were drawn. Whether an edge is the child's primary one is derived from
    the child's parent_id, never stored twice.
    """
    source_id: str                             # Parent node id
    target_id: str                             # Child node id
    created_at: str = msgspec.field(default_factory=now_utc)

    @property
    def pair(self) -> tuple:
        return (self.source_id, self.target_id)

    @classmethod
    def create(cls, source_id: str, target_id: str, **kwargs) -> "EdgeData":
        """Factory method to create an EdgeData."""
        return cls(source_id=source_id, target_id=target_id, **kwargs)


# =============================================================================
# PALETTE AND APPEARANCE (Diagram-Level Settings)
# =============================================================================

class PaletteEntry(msgspec.Struct, kw_only=True):
    """A named colour. `value` is the key, compared case-insensitively."""
    label: str
    value: str

    def matches(self, value: str) -> bool:
        return self.value.lower() == (value or "").strip().lower()


class Appearance(msgspec.Struct, kw_only=True):
    """Box and font settings shared by every node of a diagram."""
    box_height: float = 90
    vertical_gap: float = 20
    font_size: float = 14
    font_family: str = "Segoe UI, sans-serif"
    font_bold: bool = False


class ColumnTitles(msgspec.Struct, kw_only=True):
    """Per-level column headings."""
    aim: str = "Aim"
    primary: str = "Primary drivers"
    secondary: str = "Secondary drivers"
    change: str = "Change ideas"

    def for_level(self, level: str) -> str:
        key = level.value if isinstance(level, Level) else level
        return getattr(self, Level(key).value)


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

_palette_encoder = msgspec.json.Encoder()


def serialize_palette(entries: List[PaletteEntry]) -> str:
    """Serialize palette entries to a JSON array string."""
    return _palette_encoder.encode(entries).decode("utf-8")


def decode_json(raw: str) -> Any:
    """
    Decode arbitrary JSON text.

    Raises:
        msgspec.DecodeError: If the text is not valid JSON
    """
    return msgspec.json.decode(raw.encode("utf-8"))


def replace(record, **changes):
    """Return a copy of a struct with some fields changed."""
    return msgspec.structs.replace(record, **changes)


def copy_struct(record):
    """Shallow copy of a struct (no changes)."""
    return msgspec.structs.replace(record)


def default_label(position: int) -> str:
    """Auto label for the palette entry at 1-based `position`."""
    return f"Colour {position}"


def optional_str(value: Optional[Any]) -> str:
    """Normalise None and non-strings from a CSV cell to a stripped string."""
    if value is None:
        return ""
    return str(value).strip()
