"""
DRIVER DIAGRAM SESSION - The Controller a View Talks To

A DiagramSession owns one diagram: the graph, the colour palette, the
appearance settings and the column titles. A view never touches those
directly. It calls a session operation, then asks for a fresh snapshot.

Several sessions can live side by side (tests, multiple open diagrams);
nothing here is module-global except the configuration defaults.

Import is the one operation that replaces everything at once. The CSV is
decoded into a separate DecodedDiagram first and swapped in only when the
decode finished, so a failed import leaves the session untouched.
"""
import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from core.graph_db import DiagramGraph
from core.graph_invariants import InvariantReport, validate_diagram
from core.ontology import Level
from core.palette import ColorPalette
from core.schemas import Appearance, ColumnTitles, EdgeData, NodeData, PaletteEntry, copy_struct, replace
from infrastructure.csv_codec import (
    ImportReport,
    decode_csv_text,
    encode_csv_text,
    from_rows,
    read_csv,
    to_rows,
    write_csv,
)
from infrastructure.config import DiagramConfig, get_config
from infrastructure.logger import get_logger as get_mutation_logger
from viz.core import DiagramSnapshot, create_snapshot

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base exception for session operations."""
    pass


class ImportInProgressError(SessionError):
    """Raised when an import starts while another one is still running."""
    def __init__(self):
        super().__init__("Another import is already in progress")


@dataclass
class DeletePreview:
    """What a cascading delete would remove, for the confirmation prompt."""
    root_id: str
    dependent_ids: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.dependent_ids)

    def message(self) -> str:
        if not self.dependent_ids:
            return f"Delete node {self.root_id}?"
        return (
            f"Delete node {self.root_id} and {self.count} dependent node(s) "
            f"({', '.join(self.dependent_ids)})?"
        )


_POSITIVE = ("box_height", "font_size")
_NON_NEGATIVE = ("vertical_gap",)


class DiagramSession:
    """
    Single-diagram controller.

    Usage:
        session = DiagramSession()
        aim = session.create_node("aim", "Reduce wait time")
        session.create_node("primary", "Triage speed", parent_id=aim.id)
        preview = session.preview_delete(aim.id)     # 1 dependent
        session.delete_node(aim.id)
        csv_text = session.export_csv_text()
    """

    def __init__(self, config: Optional[DiagramConfig] = None):
        self.config = config or get_config()
        self.graph = DiagramGraph()
        self.palette = ColorPalette(self.config.palette)
        self.appearance: Appearance = copy_struct(self.config.appearance)
        self.titles: ColumnTitles = copy_struct(self.config.titles)
        self.last_import: Optional[ImportReport] = None
        self._import_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DiagramSession(nodes={self.graph.node_count}, edges={self.graph.edge_count}, colours={len(self.palette)})"

    # =========================================================================
    # NODES
    # =========================================================================

    def create_node(
        self,
        level: str,
        text: str,
        parent_id: str = "",
        color: str = "",
        node_id: Optional[str] = None,
    ) -> NodeData:
        return self.graph.create_node(level, text, parent_id=parent_id, color=color, node_id=node_id)

    def update_node_text(self, node_id: str, text: str) -> NodeData:
        return self.graph.update_node_text(node_id, text)

    def set_node_color(self, node_id: str, color: str) -> NodeData:
        return self.graph.set_node_color(node_id, color)

    def preview_delete(self, node_id: str) -> DeletePreview:
        """
        Work out what delete_node would remove, without removing anything.

        Raises:
            NodeNotFoundError: If node doesn't exist
        """
        closure = self.graph.cascade_closure(node_id)
        dependents = [nid for nid in self.graph.node_ids() if nid in closure and nid != node_id]
        return DeletePreview(root_id=node_id, dependent_ids=dependents)

    def delete_node(self, node_id: str) -> Set[str]:
        """Delete a node with its dependents. Returns the removed ids."""
        removed = self.graph.delete_node_cascade(node_id)
        logger.info(f"Deleted node {node_id} ({len(removed) - 1} dependent(s))")
        return removed

    def clear_all(self) -> NodeData:
        """
        Start over with a single aim node.

        The palette, appearance and titles are kept.
        """
        self.graph.clear()
        aim = self.graph.create_node(Level.AIM, self.config.default_aim_text)
        get_mutation_logger().log_bulk_replace(self.graph.node_count, self.graph.edge_count)
        return aim

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def add_edge(self, source_id: str, target_id: str) -> EdgeData:
        return self.graph.add_edge(source_id, target_id)

    def remove_edge(self, source_id: str, target_id: str) -> Optional[EdgeData]:
        return self.graph.remove_edge(source_id, target_id)

    # =========================================================================
    # PALETTE, APPEARANCE, TITLES
    # =========================================================================

    def upsert_color(self, value: str, label: str = "") -> PaletteEntry:
        return self.palette.upsert(value, label)

    def remove_color(self, value: str) -> int:
        """
        Remove a palette colour and clear it from every node using it.

        Returns:
            Number of nodes whose colour was cleared
        """
        entry = self.palette.remove(value)
        if entry is None:
            return 0
        users = [node.id for node in self.graph.iter_nodes() if node.color and entry.matches(node.color)]
        for node_id in users:
            self.graph.set_node_color(node_id, "")
        return len(users)

    def update_appearance(self, **fields: Any) -> Appearance:
        """
        Change appearance settings. All fields are checked before any is applied.

        Raises:
            ValueError: On an unknown field or an out-of-range value
        """
        known = set(Appearance.__struct_fields__)
        unknown = sorted(set(fields) - known)
        if unknown:
            raise ValueError(f"Unknown appearance setting(s): {', '.join(unknown)}")

        checked: Dict[str, Any] = {}
        for name, value in fields.items():
            if name in _POSITIVE or name in _NON_NEGATIVE:
                if isinstance(value, bool):
                    raise ValueError(f"{name} must be a number")
                try:
                    number = float(value)
                except (TypeError, ValueError):
                    raise ValueError(f"{name} must be a number, got {value!r}")
                if not math.isfinite(number):
                    raise ValueError(f"{name} must be finite")
                if name in _POSITIVE and number <= 0:
                    raise ValueError(f"{name} must be greater than 0")
                if name in _NON_NEGATIVE and number < 0:
                    raise ValueError(f"{name} must not be negative")
                checked[name] = number
            elif name == "font_family":
                family = (value or "").strip() if isinstance(value, str) else ""
                if not family:
                    raise ValueError("font_family cannot be empty")
                checked[name] = family
            elif name == "font_bold":
                if not isinstance(value, bool):
                    raise ValueError(f"font_bold must be true or false, got {value!r}")
                checked[name] = value

        self.appearance = replace(self.appearance, **checked)
        return self.appearance

    def set_column_title(self, level: str, title: str) -> str:
        """
        Rename a column. A blank title restores the configured default.

        Raises:
            ValueError: If level names no column
        """
        key = Level.parse(level).value if not isinstance(level, Level) else level.value
        title = (title or "").strip() or getattr(self.config.titles, key)
        setattr(self.titles, key, title)
        return title

    # =========================================================================
    # CSV EXPORT / IMPORT
    # =========================================================================

    def to_rows(self) -> List[Dict[str, str]]:
        return to_rows(self.graph, self.palette, self.appearance, self.titles)

    def export_csv(self, path: Optional[str | Path] = None) -> Path:
        """Write the diagram to `path` (default: the configured export filename)."""
        target = Path(path) if path else Path(self.config.export_filename)
        return write_csv(target, self.graph, self.palette, self.appearance, self.titles)

    def export_csv_text(self) -> str:
        return encode_csv_text(self.graph, self.palette, self.appearance, self.titles)

    def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportReport:
        """
        Replace the diagram with decoded rows.

        Returns:
            The ImportReport of the decode

        Raises:
            ImportInProgressError: If another import is running
        """
        return self._run_import(lambda: from_rows(rows, appearance=self.appearance, titles=self.titles))

    def import_csv(self, path: str | Path) -> ImportReport:
        """
        Replace the diagram with the contents of a CSV file.

        Raises:
            ImportInProgressError: If another import is running
            FileNotFoundError, SchemaValidationError, CsvFormatError: The
                session is left unchanged
        """
        return self._run_import(lambda: read_csv(path, appearance=self.appearance, titles=self.titles))

    def import_csv_text(self, text: str) -> ImportReport:
        return self._run_import(lambda: decode_csv_text(text, appearance=self.appearance, titles=self.titles))

    def _run_import(self, decode) -> ImportReport:
        if not self._import_lock.acquire(blocking=False):
            raise ImportInProgressError()
        try:
            decoded = decode()
            self.graph, self.palette, self.appearance, self.titles = (
                decoded.graph, decoded.palette, decoded.appearance, decoded.titles
            )
            self.last_import = decoded.report
        finally:
            self._import_lock.release()

        get_mutation_logger().log_bulk_replace(self.graph.node_count, self.graph.edge_count)
        return decoded.report

    # =========================================================================
    # VIEW AND CHECKS
    # =========================================================================

    def snapshot(self) -> DiagramSnapshot:
        return create_snapshot(self)

    def validate(self) -> InvariantReport:
        return validate_diagram(self.graph)

    @property
    def import_in_progress(self) -> bool:
        return self._import_lock.locked()
