"""
DRIVER DIAGRAM GRAPH - Node Store and Connection Graph

This is the most critical file in the system. It owns every node and every
parent -> child connection of a diagram, on top of a rustworkx PyDiGraph.

Architecture (The Bridge Pattern):
  Python Layer (Business Logic)
  - Uses string ids: "1", "2", "aim-a"
  - Calls: graph.create_node(...), graph.add_edge("1", "2")

  Bridge Layer (This File)
  - _node_map: Dict[str, int]              (id -> index, insertion ordered)
  - _inv_map: Dict[int, str]               (index -> id)
  - _edge_map: Dict[Tuple[str, str], int]  ((parent, child) -> edge index)

  Rust Layer (rustworkx.PyDiGraph)
  - Uses integer indices, which are reused after removals. Anything that
    needs a stable order (CSV rows, incoming parents) reads the ordered
    maps above instead of the graph.

The primary parent (NodeData.parent_id) and the connection set describe
overlapping facts. Only this class writes parent_id, and every write keeps
the two in step:
- a node whose parent_id resolves always has the matching edge
- add_edge makes the parent primary when the child has none that resolves
- removing a node's primary edge promotes its next incoming parent
"""
import logging
import re
from collections import deque
from contextlib import contextmanager
from typing import Dict, List, Optional, Set, Tuple, Iterable, Iterator

import rustworkx as rx

from core.schemas import NodeData, EdgeData
from core.ontology import Level, Connectivity
from infrastructure.logger import get_logger as get_mutation_logger

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class GraphError(Exception):
    """Base exception for graph operations."""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a node id is not in the graph."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class DuplicateNodeError(GraphError):
    """Raised when attempting to add a node with an existing id."""
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node already exists: {node_id}")


class EmptyTextError(GraphError):
    """Raised when a node would be left with blank text."""
    def __init__(self, node_id: Optional[str] = None):
        self.node_id = node_id
        target = f" for node {node_id}" if node_id else ""
        super().__init__(f"Node text cannot be empty{target}")


class UnknownLevelError(GraphError):
    """Raised when a level string names no diagram column."""
    def __init__(self, level: str):
        self.level = level
        super().__init__(f"Unknown level: {level!r}")


class DuplicateEdgeError(GraphError):
    """Raised when a connection between the same parent and child already exists."""
    def __init__(self, source_id: str, target_id: str):
        self.source_id = source_id
        self.target_id = target_id
        super().__init__(f"Connection already exists: {source_id} -> {target_id}")


class UnknownEndpointError(GraphError):
    """Raised when a connection names a node that is not in the graph."""
    def __init__(self, source_id: str, target_id: str, missing: str):
        self.source_id = source_id
        self.target_id = target_id
        self.missing = missing
        super().__init__(f"Cannot connect {source_id} -> {target_id}: node not found: {missing}")


class GraphInvariantError(GraphError):
    """Raised when a change would break a structural rule (self-loops)."""
    pass


# =============================================================================
# DIAGRAM GRAPH (The Graph Engine)
# =============================================================================

class DiagramGraph:
    """
    In-memory diagram store backed by rustworkx.

    All public methods accept/return string ids; the translation to/from
    integer indices is handled internally.

    Usage:
        graph = DiagramGraph()
        aim = graph.create_node("aim", "Reduce wait time")          # id "1"
        drv = graph.create_node("primary", "Triage speed", parent_id=aim.id)
        graph.incoming_edges(drv.id)                                  # ["1"]
        removed = graph.delete_node_cascade(aim.id)                   # {"1", "2"}

    Thread Safety:
        NOT thread-safe. The session only serialises imports.
    """

    def __init__(self):
        self._graph: rx.PyDiGraph = rx.PyDiGraph(multigraph=False)

        self._node_map: Dict[str, int] = {}
        self._inv_map: Dict[int, str] = {}
        self._edge_map: Dict[Tuple[str, str], int] = {}

        self._next_id: int = 1
        self._muted: bool = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.num_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.num_edges()

    @property
    def is_empty(self) -> bool:
        return self.node_count == 0

    @property
    def next_id(self) -> int:
        """The counter value the next auto-assigned id will use."""
        return self._next_id

    @contextmanager
    def muted(self):
        """
        Keep changes made inside the block out of the mutation log.

        Bulk import builds a graph this way and logs one BULK_REPLACE instead.
        """
        previous = self._muted
        self._muted = True
        try:
            yield self
        finally:
            self._muted = previous

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def create_node(
        self,
        level: str,
        text: str,
        parent_id: str = "",
        color: str = "",
        node_id: Optional[str] = None,
    ) -> NodeData:
        """
        Create a node and, when its parent exists, the primary connection.

        Args:
            level: Level value or label ("aim", "Primary", ...)
            text: Display text, stored trimmed
            parent_id: Primary parent id. A missing parent is kept as a
                       dangling reference.
            color: Palette value or ""
            node_id: Explicit id. When absent or empty the next counter
                     value is used.

        Returns:
            The stored NodeData

        Raises:
            EmptyTextError: If text is blank
            UnknownLevelError: If level names no column
            DuplicateNodeError: If node_id is already in use
            GraphInvariantError: If node_id names itself as parent
        """
        text = (text or "").strip()
        if not text:
            raise EmptyTextError()
        level_value = self._parse_level(level)

        parent_id = (parent_id or "").strip()
        node_id = (node_id or "").strip()
        if node_id in self._node_map:
            raise DuplicateNodeError(node_id)
        node_id = node_id or self._peek_id()
        if parent_id == node_id:
            raise GraphInvariantError(f"Node {node_id} cannot be its own parent")

        node = NodeData.create(
            id=node_id,
            level=level_value,
            text=text,
            parent_id=parent_id,
            color=(color or "").strip(),
        )
        self.add_node(node)

        if parent_id:
            if parent_id in self._node_map:
                self._link(parent_id, node_id)
            else:
                logger.warning(f"Node {node_id} references missing parent {parent_id}")

        # Nodes left dangling on this id now resolve
        for waiting in self.iter_nodes():
            if waiting.parent_id == node_id and waiting.id != node_id:
                self._link(node_id, waiting.id)

        return node

    def add_node(self, data: NodeData) -> int:
        """
        Insert a prepared node without drawing any connection.

        Used by bulk import, which rebuilds connections once every node is in.

        Returns:
            The rustworkx index of the node

        Raises:
            DuplicateNodeError: If the id already exists
        """
        node_id = data.id
        if node_id in self._node_map:
            raise DuplicateNodeError(node_id)

        idx = self._graph.add_node(data)
        self._node_map[node_id] = idx
        self._inv_map[idx] = node_id

        numeric = _numeric_id(node_id)
        if numeric is not None and numeric >= self._next_id:
            self._next_id = numeric + 1

        self._emit("log_node_created", node_id, data.level)
        return idx

    def get_node(self, node_id: str) -> NodeData:
        """
        Retrieve a node by its id.

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        return self._graph[self._node_map[node_id]]

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_map

    def iter_nodes(self) -> Iterator[NodeData]:
        """Iterate over nodes in insertion order."""
        return (self._graph[idx] for idx in self._node_map.values())

    def get_all_nodes(self) -> List[NodeData]:
        """All nodes in insertion order."""
        return list(self.iter_nodes())

    def get_nodes_by_level(self, level: str) -> List[NodeData]:
        level_value = self._parse_level(level)
        return [n for n in self.iter_nodes() if n.level == level_value]

    def node_ids(self) -> List[str]:
        return list(self._node_map)

    def recompute_next_id(self) -> int:
        """
        Reset the id counter from the ids currently held.

        The counter becomes max(0, numeric ids) + 1. Non-numeric ids are
        ignored, so an empty store resets the counter to 1.

        Returns:
            The new counter value
        """
        numeric = [n for n in (_numeric_id(nid) for nid in self._node_map) if n is not None]
        self._next_id = max([0] + numeric) + 1
        return self._next_id

    def update_node_text(self, node_id: str, text: str) -> NodeData:
        """
        Replace a node's text.

        Raises:
            EmptyTextError: If the trimmed text is empty
            NodeNotFoundError: If node doesn't exist
        """
        text = (text or "").strip()
        if not text:
            raise EmptyTextError(node_id)
        node = self.get_node(node_id)
        node.set_text(text)
        self._emit("log_node_updated", node_id, node.level, "text")
        return node

    def set_node_color(self, node_id: str, color: str) -> NodeData:
        """
        Set (or clear, with "") a node's palette colour.

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        node = self.get_node(node_id)
        node.set_color((color or "").strip())
        self._emit("log_node_updated", node_id, node.level, "color")
        return node

    def cascade_closure(self, node_id: str) -> Set[str]:
        """
        The node plus everything that depends on it through parent_id.

        Builds a children-by-parent index once and walks it breadth-first.
        A malformed parent cycle is visited once per node and terminates.

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)

        children: Dict[str, List[str]] = {}
        for node in self.iter_nodes():
            if node.parent_id:
                children.setdefault(node.parent_id, []).append(node.id)

        closure: Set[str] = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for child_id in children.get(current, ()):
                if child_id not in closure:
                    closure.add(child_id)
                    queue.append(child_id)
        return closure

    def delete_node_cascade(self, node_id: str) -> Set[str]:
        """
        Remove a node with every node depending on it via parent_id.

        Connections touching removed nodes are stripped first, then the
        nodes, then the id counter is recomputed.

        Returns:
            The removed ids

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        removed = self.cascade_closure(node_id)
        self.cascade_remove_for_nodes(removed)

        for rid in removed:
            idx = self._node_map.pop(rid)
            del self._inv_map[idx]
            data = self._graph[idx]
            self._graph.remove_node(idx)
            self._emit("log_node_deleted", rid, data.level)

        self.recompute_next_id()
        logger.debug(f"Deleted {len(removed)} node(s) rooted at {node_id}")
        return removed

    def clear(self) -> None:
        """Drop every node and connection and reset the id counter."""
        self._graph = rx.PyDiGraph(multigraph=False)
        self._node_map.clear()
        self._inv_map.clear()
        self._edge_map.clear()
        self._next_id = 1

    # =========================================================================
    # CONNECTION OPERATIONS
    # =========================================================================

    def add_edge(self, source_id: str, target_id: str, promote: bool = True) -> EdgeData:
        """
        Connect a parent to a child.

        Args:
            source_id: Parent id
            target_id: Child id
            promote: If True and the child has no primary parent (or only
                     a dangling one), this parent becomes the primary one.

        Returns:
            The new EdgeData

        Raises:
            UnknownEndpointError: If either node doesn't exist
            DuplicateEdgeError: If the connection already exists
            GraphInvariantError: If source and target are the same node
        """
        for endpoint in (source_id, target_id):
            if endpoint not in self._node_map:
                raise UnknownEndpointError(source_id, target_id, endpoint)
        if (source_id, target_id) in self._edge_map:
            raise DuplicateEdgeError(source_id, target_id)
        if source_id == target_id:
            raise GraphInvariantError(f"Cannot connect node {source_id} to itself")

        edge = self._link(source_id, target_id)

        child = self.get_node(target_id)
        if promote and child.parent_id not in self._node_map:
            if child.parent_id:
                logger.info(f"Node {target_id} drops missing parent {child.parent_id} for {source_id}")
            child.set_parent(source_id)
        return edge

    def remove_edge(self, source_id: str, target_id: str) -> Optional[EdgeData]:
        """
        Remove a connection. No-op (returns None) when it doesn't exist.

        When the removed connection was the child's primary one, the child's
        parent_id moves to its earliest remaining incoming parent, or is
        cleared when none remain.
        """
        key = (source_id, target_id)
        if key not in self._edge_map:
            return None

        edge_idx = self._edge_map.pop(key)
        edge = self._graph.get_edge_data_by_index(edge_idx)
        self._graph.remove_edge_from_index(edge_idx)
        self._emit("log_edge_deleted", source_id, target_id)

        child = self._graph[self._node_map[target_id]]
        if child.parent_id == source_id:
            remaining = self.incoming_edges(target_id)
            child.set_parent(remaining[0] if remaining else "")
        return edge

    def has_edge(self, source_id: str, target_id: str) -> bool:
        return (source_id, target_id) in self._edge_map

    def get_all_edges(self) -> List[EdgeData]:
        """All connections in the order they were drawn."""
        return [self._graph.get_edge_data_by_index(i) for i in self._edge_map.values()]

    def edge_pairs(self) -> Set[Tuple[str, str]]:
        return set(self._edge_map)

    def incoming_edges(self, node_id: str) -> List[str]:
        """Parent ids of every connection into node_id, in drawing order."""
        return [src for (src, tgt) in self._edge_map if tgt == node_id]

    def outgoing_edges(self, node_id: str) -> List[str]:
        """Child ids of every connection out of node_id, in drawing order."""
        return [tgt for (src, tgt) in self._edge_map if src == node_id]

    def extra_parents(self, node_id: str) -> List[str]:
        """Incoming parents other than the primary one."""
        primary = self.get_node(node_id).parent_id
        return [src for src in self.incoming_edges(node_id) if src != primary]

    def connectivity(self, node_id: str) -> Connectivity:
        """Where the node sits in the DISCONNECTED/PRIMARY_ONLY/MULTI cycle."""
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        incoming = self._graph.in_degree(self._node_map[node_id])
        if incoming == 0:
            return Connectivity.DISCONNECTED
        if incoming == 1:
            return Connectivity.PRIMARY_ONLY
        return Connectivity.MULTI

    def rebuild_from_parents(self) -> List[Tuple[str, str]]:
        """
        Replace every connection with one per resolvable parent_id.

        Returns:
            (parent, child) pairs that could not become connections, either
            because the parent is missing or the node names itself. A node
            naming itself is left with no primary parent.
        """
        for edge_idx in list(self._edge_map.values()):
            self._graph.remove_edge_from_index(edge_idx)
        self._edge_map.clear()

        skipped: List[Tuple[str, str]] = []
        for node in self.iter_nodes():
            if not node.parent_id:
                continue
            if node.parent_id == node.id:
                skipped.append((node.id, node.id))
                node.set_parent("")
                continue
            if node.parent_id not in self._node_map:
                skipped.append((node.parent_id, node.id))
                continue
            self._link(node.parent_id, node.id)

        if skipped:
            logger.warning(f"{len(skipped)} primary parent reference(s) could not be connected")
        return skipped

    def cascade_remove_for_nodes(self, removed_ids: Iterable[str]) -> int:
        """
        Strip every connection touching any of removed_ids.

        Returns:
            Number of connections removed
        """
        removed_ids = set(removed_ids)
        doomed = [key for key in self._edge_map if key[0] in removed_ids or key[1] in removed_ids]
        for key in doomed:
            self._graph.remove_edge_from_index(self._edge_map.pop(key))
            self._emit("log_edge_deleted", *key)
        return len(doomed)

    # =========================================================================
    # GRAPH QUERIES (Rust-Accelerated)
    # =========================================================================

    def get_descendants(self, node_id: str) -> List[NodeData]:
        """Every node reachable through connections (primary or extra)."""
        idx = self._get_index(node_id)
        return [self._graph[i] for i in rx.descendants(self._graph, idx)]

    def get_root_nodes(self) -> List[NodeData]:
        """Nodes with no incoming connections, in insertion order."""
        return [
            self._graph[idx] for idx in self._node_map.values()
            if self._graph.in_degree(idx) == 0
        ]

    def has_cycle(self) -> bool:
        return not rx.is_directed_acyclic_graph(self._graph)

    # =========================================================================
    # INTERNAL UTILITIES
    # =========================================================================

    def _link(self, source_id: str, target_id: str) -> EdgeData:
        """Draw a connection with no validation and no parent bookkeeping."""
        edge = EdgeData.create(source_id=source_id, target_id=target_id)
        edge_idx = self._graph.add_edge(
            self._node_map[source_id], self._node_map[target_id], edge
        )
        self._edge_map[(source_id, target_id)] = edge_idx
        self._emit("log_edge_created", source_id, target_id)
        return edge

    def _emit(self, event: str, *args) -> None:
        if not self._muted:
            getattr(get_mutation_logger(), event)(*args)

    def _peek_id(self) -> str:
        """The next free auto id. add_node moves the counter past it."""
        while str(self._next_id) in self._node_map:
            self._next_id += 1
        return str(self._next_id)

    @staticmethod
    def _parse_level(level) -> str:
        if isinstance(level, Level):
            return level.value
        try:
            return Level.parse(level).value
        except ValueError:
            raise UnknownLevelError(level)

    def _get_index(self, node_id: str) -> int:
        if node_id not in self._node_map:
            raise NodeNotFoundError(node_id)
        return self._node_map[node_id]

    @property
    def rx_graph(self) -> rx.PyDiGraph:
        """The underlying rustworkx graph (read-only use)."""
        return self._graph

    @property
    def index_map(self) -> Dict[int, str]:
        """Copy of the rustworkx index -> id map."""
        return dict(self._inv_map)

    def __len__(self) -> int:
        return self.node_count

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._node_map

    def __repr__(self) -> str:
        return f"DiagramGraph(nodes={self.node_count}, edges={self.edge_count})"


_NUMERIC_ID = re.compile(r"[+-]?[0-9]+")


def _numeric_id(node_id: str) -> Optional[int]:
    """
    Integer value of an id's leading digits, or None when it has none.

    "12" and "12a" both count as 12; "a12" is non-numeric.
    """
    if not isinstance(node_id, str):
        return None
    match = _NUMERIC_ID.match(node_id.strip())
    return int(match.group()) if match else None
