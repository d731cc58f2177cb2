"""
DRIVER DIAGRAM VISUALIZATION - Render Data for the Diagram View

This package provides the data the browser view draws from:
- core: Snapshot records, label helpers, mutation event types
"""

from viz.core import (
    VizNode,
    VizEdge,
    VizColumn,
    DiagramSnapshot,
    MutationEvent,
    MutationType,
    create_snapshot,
)

__all__ = [
    "VizNode",
    "VizEdge",
    "VizColumn",
    "DiagramSnapshot",
    "MutationEvent",
    "MutationType",
    "create_snapshot",
]
