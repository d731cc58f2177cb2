"""
DRIVER DIAGRAM CORE - Central exports for the diagram model.

This module provides access to:
- Levels and labels (Level, LEVEL_ORDER, level_label)
- Records (NodeData, EdgeData, PaletteEntry, Appearance, ColumnTitles)
- The colour palette (ColorPalette)

The graph and the session are imported from their own modules
(core.graph_db, core.session), which pull in the infrastructure layer.
"""

from core.ontology import (
    Level,
    Connectivity,
    LEVEL_ORDER,
    LEVEL_LABELS,
    level_label,
)
from core.schemas import (
    NodeData,
    EdgeData,
    PaletteEntry,
    Appearance,
    ColumnTitles,
)
from core.palette import (
    ColorPalette,
    PaletteError,
    InvalidColorError,
)

__all__ = [
    # Ontology
    "Level",
    "Connectivity",
    "LEVEL_ORDER",
    "LEVEL_LABELS",
    "level_label",
    # Schemas
    "NodeData",
    "EdgeData",
    "PaletteEntry",
    "Appearance",
    "ColumnTitles",
    # Palette
    "ColorPalette",
    "PaletteError",
    "InvalidColorError",
]
