"""
DRIVER DIAGRAM INVARIANTS - Structural Checks

The graph enforces its rules at write time; this module re-checks them over
a whole diagram, which is what an import or a suspicious view wants to know.

Invariants Implemented:
1. Index Bridge: the id map and the rustworkx graph agree
2. Unique Connections: at most one edge per (parent, child)
3. Primary Edges: a resolvable parent_id always has its edge, and a node
   with incoming edges always has a primary parent among them
4. Dangling Parents: parent_id pointing at a missing node (tolerated)
5. Level Ordering: parents sit in an earlier column than their children
6. Acyclicity: connections never loop back

Design Philosophy:
- 1-3 are ERRORS: the graph code is supposed to make them impossible
- 4-6 are WARNINGS: the data is odd but the editor still works
"""
import rustworkx as rx
from typing import List, Tuple, Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from core.ontology import LEVEL_ORDER


# =============================================================================
# INVARIANT RESULTS
# =============================================================================

class InvariantSeverity(Enum):
    """Severity levels for invariant violations."""
    ERROR = "error"      # State is inconsistent
    WARNING = "warning"  # Should be looked at
    INFO = "info"        # For metrics/diagnostics


@dataclass
class InvariantViolation:
    """A specific invariant violation."""
    invariant: str
    severity: InvariantSeverity
    message: str
    nodes_involved: List[str] = field(default_factory=list)
    edges_involved: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class InvariantReport:
    """Complete invariant validation report."""
    valid: bool
    violations: List[InvariantViolation]
    metrics: Dict[str, Any]

    @property
    def errors(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.ERROR]

    @property
    def warnings(self) -> List[InvariantViolation]:
        return [v for v in self.violations if v.severity == InvariantSeverity.WARNING]


# =============================================================================
# DIAGRAM INVARIANTS
# =============================================================================

class DiagramInvariants:
    """
    Invariant validators over a DiagramGraph.

    Each returns (is_valid, violation or None).
    """

    @staticmethod
    def validate_index_bridge(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        index_map = graph.index_map
        ids = graph.node_ids()
        rx_count = graph.rx_graph.num_nodes()

        if len(ids) != rx_count or len(index_map) != rx_count or set(index_map.values()) != set(ids):
            return False, InvariantViolation(
                invariant="index_bridge",
                severity=InvariantSeverity.ERROR,
                message=f"id map holds {len(ids)} node(s), graph holds {rx_count}",
            )
        return True, None

    @staticmethod
    def validate_unique_edges(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        rx_graph = graph.rx_graph
        index_map = graph.index_map
        seen = set()
        duplicates = []
        for src_idx, tgt_idx in rx_graph.edge_list():
            pair = (index_map.get(src_idx, str(src_idx)), index_map.get(tgt_idx, str(tgt_idx)))
            if pair in seen:
                duplicates.append(pair)
            seen.add(pair)

        if duplicates:
            return False, InvariantViolation(
                invariant="unique_edges",
                severity=InvariantSeverity.ERROR,
                message=f"{len(duplicates)} duplicate connection(s)",
                edges_involved=duplicates[:10],
            )
        return True, None

    @staticmethod
    def validate_primary_edges(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        missing_edges = []
        orphaned = []
        for node in graph.iter_nodes():
            incoming = graph.incoming_edges(node.id)
            if node.parent_id and graph.has_node(node.parent_id):
                if node.parent_id not in incoming:
                    missing_edges.append((node.parent_id, node.id))
            elif incoming:
                orphaned.append(node.id)

        if missing_edges or orphaned:
            parts = []
            if missing_edges:
                parts.append(f"{len(missing_edges)} primary parent(s) without a connection")
            if orphaned:
                parts.append(f"{len(orphaned)} connected node(s) without a primary parent")
            return False, InvariantViolation(
                invariant="primary_edges",
                severity=InvariantSeverity.ERROR,
                message="; ".join(parts),
                nodes_involved=orphaned[:10],
                edges_involved=missing_edges[:10],
            )
        return True, None

    @staticmethod
    def find_dangling_parents(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        dangling = [
            (node.parent_id, node.id) for node in graph.iter_nodes()
            if node.parent_id and not graph.has_node(node.parent_id)
        ]
        if dangling:
            return False, InvariantViolation(
                invariant="dangling_parents",
                severity=InvariantSeverity.WARNING,
                message=f"{len(dangling)} node(s) reference a missing parent",
                nodes_involved=[child for _, child in dangling][:10],
                edges_involved=dangling[:10],
            )
        return True, None

    @staticmethod
    def validate_level_ordering(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        backwards = []
        for edge in graph.get_all_edges():
            parent = graph.get_node(edge.source_id)
            child = graph.get_node(edge.target_id)
            if parent.level_enum >= child.level_enum:
                backwards.append((parent.id, child.id))

        if backwards:
            return False, InvariantViolation(
                invariant="level_ordering",
                severity=InvariantSeverity.WARNING,
                message=f"{len(backwards)} connection(s) do not point to a later column",
                edges_involved=backwards[:10],
            )
        return True, None

    @staticmethod
    def validate_acyclicity(graph) -> Tuple[bool, Optional[InvariantViolation]]:
        if not graph.has_cycle():
            return True, None

        index_map = graph.index_map
        cycle = rx.digraph_find_cycle(graph.rx_graph)
        edges = [(index_map[s], index_map[t]) for s, t in cycle]
        return False, InvariantViolation(
            invariant="acyclicity",
            severity=InvariantSeverity.WARNING,
            message=f"Connections form a cycle through {len(edges)} node(s)",
            nodes_involved=[s for s, _ in edges][:10],
            edges_involved=edges[:10],
        )


def compute_metrics(graph) -> Dict[str, Any]:
    """Counts shown alongside a validation report."""
    per_level = {level.value: 0 for level in LEVEL_ORDER}
    for node in graph.iter_nodes():
        per_level[node.level] += 1

    return {
        "node_count": graph.node_count,
        "edge_count": graph.edge_count,
        "nodes_per_level": per_level,
        "multi_parent_nodes": sum(
            1 for node in graph.iter_nodes() if len(graph.incoming_edges(node.id)) > 1
        ),
        "root_count": len(graph.get_root_nodes()),
    }


def validate_diagram(graph) -> InvariantReport:
    """Run every invariant over a DiagramGraph."""
    checks = [
        DiagramInvariants.validate_index_bridge,
        DiagramInvariants.validate_unique_edges,
        DiagramInvariants.validate_primary_edges,
        DiagramInvariants.find_dangling_parents,
        DiagramInvariants.validate_level_ordering,
        DiagramInvariants.validate_acyclicity,
    ]

    violations = []
    for check in checks:
        ok, violation = check(graph)
        if not ok and violation is not None:
            violations.append(violation)

    return InvariantReport(
        valid=not any(v.severity == InvariantSeverity.ERROR for v in violations),
        violations=violations,
        metrics=compute_metrics(graph),
    )
