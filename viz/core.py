"""
DRIVER DIAGRAM VISUALIZATION CORE - The Renderer's Data Model

The browser view renders columns of boxes joined by curved connectors.
It holds no state of its own: after every change it asks for a fresh
DiagramSnapshot and redraws from it.

Architecture:
- VizNode/VizEdge/VizColumn: Render-ready records with labels precomputed
- DiagramSnapshot: Full diagram state for a redraw
- MutationEvent: Individual change record for the mutation log
- Label helpers shared by the node table and the parent picker
"""
import msgspec
from typing import Optional, Dict, List, Any, Tuple
from enum import Enum
from datetime import datetime, timezone

from core.ontology import LEVEL_ORDER, level_label
from core.schemas import Appearance, PaletteEntry


NO_PARENT_LABEL = "—"
NO_PARENT_OPTION = "— None / top level —"
OPTION_TEXT_LIMIT = 50


# =============================================================================
# MUTATION TYPES (For event logging)
# =============================================================================

class MutationType(str, Enum):
    """Types of diagram mutations for event tracking."""
    NODE_CREATED = "NODE_CREATED"
    NODE_UPDATED = "NODE_UPDATED"
    NODE_DELETED = "NODE_DELETED"
    EDGE_CREATED = "EDGE_CREATED"
    EDGE_DELETED = "EDGE_DELETED"
    BULK_REPLACE = "BULK_REPLACE"


class MutationEvent(msgspec.Struct, kw_only=True):
    """Individual mutation event for the mutation log."""
    timestamp: str
    sequence: int
    mutation_type: str                  # MutationType value
    node_id: Optional[str] = None
    level: Optional[str] = None
    field: Optional[str] = None         # Which attribute an update touched

    # Source/target for edges
    source_id: Optional[str] = None
    target_id: Optional[str] = None

    # For bulk replacement
    node_count: int = 0
    edge_count: int = 0


# =============================================================================
# LABEL HELPERS
# =============================================================================

def describe_parent(graph, node) -> str:
    """
    Parent cell of the node table.

    "[id] Level" when the parent exists, "(Missing: id)" when it dangles,
    "—" for a top-level node.
    """
    if not node.parent_id:
        return NO_PARENT_LABEL
    if not graph.has_node(node.parent_id):
        return f"(Missing: {node.parent_id})"
    parent = graph.get_node(node.parent_id)
    return f"[{parent.id}] {level_label(parent.level)}"


def parent_option_label(node) -> str:
    """Label of a node in the parent picker: "[id] Level – text"."""
    text = node.text
    if len(text) > OPTION_TEXT_LIMIT:
        text = text[:OPTION_TEXT_LIMIT - 3] + "…"
    return f"[{node.id}] {level_label(node.level)} – {text}"


def parent_options(graph) -> List[Tuple[str, str]]:
    """(value, label) choices for the parent picker, "no parent" first."""
    options = [("", NO_PARENT_OPTION)]
    options.extend((node.id, parent_option_label(node)) for node in graph.iter_nodes())
    return options


# =============================================================================
# VISUALIZATION DATA STRUCTURES
# =============================================================================

class VizNode(msgspec.Struct, kw_only=True):
    """
    Render-ready node.

    Contains only the fields needed for drawing a box and its table row.
    """
    id: str
    level: str
    level_label: str
    text: str
    color: str = ""
    color_label: str = ""
    parent_id: str = ""
    parent_label: str = NO_PARENT_LABEL
    incoming_count: int = 0
    row: int = 0                        # Position within its column

    @classmethod
    def from_node_data(cls, graph, node, palette, row: int = 0) -> "VizNode":
        return cls(
            id=node.id,
            level=node.level,
            level_label=level_label(node.level),
            text=node.text,
            color=node.color,
            color_label=palette.label_for(node.color) if node.color else "",
            parent_id=node.parent_id,
            parent_label=describe_parent(graph, node),
            incoming_count=len(graph.incoming_edges(node.id)),
            row=row,
        )


class VizEdge(msgspec.Struct, kw_only=True):
    """A connector curve. Primary connectors are drawn solid, extra ones dashed."""
    source: str
    target: str
    primary: bool = True


class VizColumn(msgspec.Struct, kw_only=True):
    level: str
    title: str
    node_ids: List[str] = msgspec.field(default_factory=list)


class DiagramSnapshot(msgspec.Struct, kw_only=True):
    """
    Complete diagram state for a redraw.
    """
    timestamp: str
    node_count: int
    edge_count: int
    columns: List[VizColumn]
    nodes: List[VizNode]
    edges: List[VizEdge]
    appearance: Appearance
    palette: List[PaletteEntry]
    parent_options: List[Tuple[str, str]] = msgspec.field(default_factory=list)

    def node(self, node_id: str) -> Optional[VizNode]:
        for viz_node in self.nodes:
            if viz_node.id == node_id:
                return viz_node
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return msgspec.to_builtins(self)

    def to_json(self) -> bytes:
        return msgspec.json.encode(self)


def create_snapshot(session) -> DiagramSnapshot:
    """
    Create a DiagramSnapshot from a DiagramSession.

    This is the main entry point for the view layer.
    """
    graph = session.graph
    palette = session.palette

    columns = {
        level.value: VizColumn(level=level.value, title=session.titles.for_level(level))
        for level in LEVEL_ORDER
    }

    viz_nodes = []
    for node in graph.iter_nodes():
        column = columns[node.level]
        viz_nodes.append(VizNode.from_node_data(graph, node, palette, row=len(column.node_ids)))
        column.node_ids.append(node.id)

    viz_edges = [
        VizEdge(
            source=edge.source_id,
            target=edge.target_id,
            primary=graph.get_node(edge.target_id).parent_id == edge.source_id,
        )
        for edge in graph.get_all_edges()
    ]

    return DiagramSnapshot(
        timestamp=datetime.now(timezone.utc).isoformat(),
        node_count=len(viz_nodes),
        edge_count=len(viz_edges),
        columns=list(columns.values()),
        nodes=viz_nodes,
        edges=viz_edges,
        appearance=msgspec.structs.replace(session.appearance),
        palette=palette.entries(),
        parent_options=parent_options(graph),
    )
