"""
DRIVER DIAGRAM CSV CODEC - Flat Rows In, Whole Diagrams Out

The CSV format carries one row per node. Diagram-level settings (appearance,
column titles, palette) are repeated on every row, so any single row is
enough to restore them and older files that lack those columns still load.

Architecture:
- to_rows / from_rows: the codec proper, over plain dict rows
- to_dataframe / encode_csv_text / write_csv: polars writers
- decode_csv_text / read_csv: polars readers (every column read as text)
- ImportReport: what the decoder tolerated, for the caller to show

Decode Strategy (tolerant, never raises on a bad field):
1. Nodes first; rows missing id/level/text are skipped
2. Primary connections rebuilt from parent_id
3. Extra parents layered on top, only between imported nodes
4. Palette from the first usable palette_json, else rebuilt from node colours
5. Appearance and titles from the first row that carries them
"""
import io
import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import msgspec
import polars as pl

from core.graph_db import DiagramGraph
from core.ontology import Level
from core.palette import ColorPalette
from core.schemas import (
    Appearance,
    ColumnTitles,
    NodeData,
    PaletteEntry,
    copy_struct,
    decode_json,
    default_label,
    optional_str,
    serialize_palette,
)

logger = logging.getLogger(__name__)


# =============================================================================
# SCHEMA DEFINITIONS
# =============================================================================

NODE_COLUMNS = ["id", "level", "parent_id", "text", "color", "extra_parents"]
APPEARANCE_COLUMNS = ["box_height", "vertical_gap", "font_size", "font_family", "font_bold"]
TITLE_COLUMNS = ["title_aim", "title_primary", "title_secondary", "title_change"]
PALETTE_COLUMN = "palette_json"

CSV_COLUMNS = NODE_COLUMNS + APPEARANCE_COLUMNS + TITLE_COLUMNS + [PALETTE_COLUMN]
REQUIRED_COLUMNS = ("id", "level", "text")

EXPORT_FILENAME = "driver-diagram.csv"

EXTRA_PARENT_SEPARATOR = ";"
_EXTRA_PARENT_SPLIT = re.compile(r"[;,]")

_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off"}


# =============================================================================
# ERRORS
# =============================================================================

class DataLoadError(Exception):
    """Base exception for CSV loading errors."""
    pass


class SchemaValidationError(DataLoadError):
    """Raised when the CSV header lacks required columns."""
    def __init__(self, missing_columns: List[str]):
        self.missing_columns = missing_columns
        super().__init__(f"Schema validation failed. Missing columns: {missing_columns}")


class CsvFormatError(DataLoadError):
    """Raised when the input cannot be parsed as CSV at all."""
    pass


# =============================================================================
# IMPORT REPORT
# =============================================================================

class IssueKind(str, Enum):
    """Everything the decoder tolerates instead of failing."""
    MALFORMED_ROW = "malformed_row"                 # Missing id/level/text, or unknown level
    DUPLICATE_ID = "duplicate_id"                   # Second row with an id already imported
    UNKNOWN_ENDPOINT = "unknown_endpoint"           # Parent reference to a node not imported
    DUPLICATE_EDGE = "duplicate_edge"               # Extra parent repeating an existing edge
    SELF_LOOP = "self_loop"                         # Node naming itself as a parent
    MALFORMED_PALETTE = "malformed_palette"         # palette_json not a JSON array
    MALFORMED_APPEARANCE = "malformed_appearance"   # Unusable number or flag


EDGE_ISSUES = (IssueKind.UNKNOWN_ENDPOINT, IssueKind.DUPLICATE_EDGE, IssueKind.SELF_LOOP)
ROW_ISSUES = (IssueKind.MALFORMED_ROW, IssueKind.DUPLICATE_ID)


@dataclass
class ImportIssue:
    kind: IssueKind
    message: str
    row: Optional[int] = None                       # 1-based data row number
    ids: Tuple[str, ...] = ()


@dataclass
class ImportReport:
    """Structured account of a decode."""
    rows_total: int = 0
    rows_imported: int = 0
    edges_imported: int = 0
    palette_from_colors: bool = False
    issues: List[ImportIssue] = field(default_factory=list)

    def add(self, kind: IssueKind, message: str, row: Optional[int] = None, ids: Tuple[str, ...] = ()) -> None:
        self.issues.append(ImportIssue(kind=kind, message=message, row=row, ids=ids))
        logger.warning(f"CSV import: {message}")

    def count(self, kind: IssueKind) -> int:
        return sum(1 for issue in self.issues if issue.kind == kind)

    @property
    def skipped_rows(self) -> int:
        return sum(1 for issue in self.issues if issue.kind in ROW_ISSUES)

    @property
    def dropped_edges(self) -> int:
        return sum(1 for issue in self.issues if issue.kind in EDGE_ISSUES)

    @property
    def clean(self) -> bool:
        return not self.issues

    def summary(self) -> str:
        text = f"Imported {self.rows_imported} of {self.rows_total} row(s)"
        details = []
        if self.skipped_rows:
            details.append(f"{self.skipped_rows} row(s) skipped")
        if self.dropped_edges:
            details.append(f"{self.dropped_edges} connection(s) dropped")
        if self.palette_from_colors:
            details.append("palette rebuilt from node colours")
        if self.count(IssueKind.MALFORMED_APPEARANCE):
            details.append(f"{self.count(IssueKind.MALFORMED_APPEARANCE)} setting(s) ignored")
        if details:
            text += " (" + ", ".join(details) + ")"
        return text


@dataclass
class DecodedDiagram:
    """Everything a decode produces. Nothing is applied until the caller swaps it in."""
    graph: DiagramGraph
    palette: ColorPalette
    appearance: Appearance
    titles: ColumnTitles
    report: ImportReport


# =============================================================================
# ENCODE
# =============================================================================

def _format_number(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _settings_cells(
    palette: Iterable[PaletteEntry],
    appearance: Appearance,
    titles: ColumnTitles,
) -> Dict[str, str]:
    """The columns repeated identically on every row."""
    return {
        "box_height": _format_number(appearance.box_height),
        "vertical_gap": _format_number(appearance.vertical_gap),
        "font_size": _format_number(appearance.font_size),
        "font_family": appearance.font_family,
        "font_bold": "true" if appearance.font_bold else "false",
        "title_aim": titles.aim,
        "title_primary": titles.primary,
        "title_secondary": titles.secondary,
        "title_change": titles.change,
        PALETTE_COLUMN: serialize_palette(list(palette)),
    }


def to_rows(
    graph: DiagramGraph,
    palette: Iterable[PaletteEntry],
    appearance: Appearance,
    titles: ColumnTitles,
) -> List[Dict[str, str]]:
    """
    Encode a diagram as one row per node, in insertion order.

    Args:
        graph: Nodes and connections
        palette: Palette entries (a ColorPalette or a list)
        appearance: Box and font settings
        titles: Column titles

    Returns:
        List of dicts keyed by CSV_COLUMNS
    """
    shared = _settings_cells(palette, appearance, titles)
    rows = []
    for node in graph.iter_nodes():
        row = {
            "id": node.id,
            "level": node.level,
            "parent_id": node.parent_id,
            "text": node.text,
            "color": node.color,
            "extra_parents": EXTRA_PARENT_SEPARATOR.join(graph.extra_parents(node.id)),
        }
        row.update(shared)
        rows.append(row)
    return rows


def to_dataframe(
    graph: DiagramGraph,
    palette: Iterable[PaletteEntry],
    appearance: Appearance,
    titles: ColumnTitles,
) -> pl.DataFrame:
    """Encode a diagram as a string-typed DataFrame with CSV_COLUMNS."""
    rows = to_rows(graph, palette, appearance, titles)
    columns = {col: [row[col] for row in rows] for col in CSV_COLUMNS}
    return pl.DataFrame(columns, schema={col: pl.Utf8 for col in CSV_COLUMNS})


def encode_csv_text(graph, palette, appearance, titles) -> str:
    """Encode a diagram as CSV text (header included)."""
    return to_dataframe(graph, palette, appearance, titles).write_csv()


def write_csv(path: str | Path, graph, palette, appearance, titles) -> Path:
    """
    Write a diagram to a CSV file.

    A directory path receives EXPORT_FILENAME inside it.

    Returns:
        The path written
    """
    path = Path(path)
    if path.is_dir():
        path = path / EXPORT_FILENAME
    to_dataframe(graph, palette, appearance, titles).write_csv(path)
    logger.info(f"Exported {graph.node_count} node(s) to {path}")
    return path


# =============================================================================
# DECODE
# =============================================================================

def split_extra_parents(raw: Any) -> List[str]:
    """Split an extra_parents cell on ';' or ',' dropping blanks."""
    return [token.strip() for token in _EXTRA_PARENT_SPLIT.split(optional_str(raw)) if token.strip()]


def _decode_nodes(graph: DiagramGraph, rows: List[Mapping[str, Any]], report: ImportReport) -> List[Tuple[int, str, List[str]]]:
    extras: List[Tuple[int, str, List[str]]] = []

    for row_no, row in enumerate(rows, start=1):
        node_id = optional_str(row.get("id"))
        raw_level = optional_str(row.get("level"))
        text = optional_str(row.get("text"))

        missing = [name for name, value in (("id", node_id), ("level", raw_level), ("text", text)) if not value]
        if missing:
            report.add(IssueKind.MALFORMED_ROW, f"row {row_no} skipped: missing {', '.join(missing)}", row=row_no)
            continue

        try:
            level = Level.parse(raw_level)
        except ValueError:
            report.add(IssueKind.MALFORMED_ROW, f"row {row_no} skipped: unknown level {raw_level!r}", row=row_no, ids=(node_id,))
            continue

        if graph.has_node(node_id):
            report.add(IssueKind.DUPLICATE_ID, f"row {row_no} skipped: duplicate id {node_id}", row=row_no, ids=(node_id,))
            continue

        graph.add_node(NodeData.create(
            id=node_id,
            level=level,
            text=text,
            parent_id=optional_str(row.get("parent_id")),
            color=optional_str(row.get("color")),
        ))
        extras.append((row_no, node_id, split_extra_parents(row.get("extra_parents"))))

    return extras


def _decode_edges(graph: DiagramGraph, extras: List[Tuple[int, str, List[str]]], report: ImportReport) -> None:
    for parent_id, child_id in graph.rebuild_from_parents():
        if parent_id == child_id:
            report.add(IssueKind.SELF_LOOP, f"node {child_id} names itself as parent", ids=(parent_id, child_id))
        else:
            report.add(IssueKind.UNKNOWN_ENDPOINT, f"node {child_id} references missing parent {parent_id}", ids=(parent_id, child_id))

    for row_no, child_id, parent_ids in extras:
        for parent_id in parent_ids:
            if not graph.has_node(parent_id):
                report.add(
                    IssueKind.UNKNOWN_ENDPOINT,
                    f"row {row_no}: extra parent {parent_id} of {child_id} not found",
                    row=row_no, ids=(parent_id, child_id),
                )
            elif graph.has_edge(parent_id, child_id):
                report.add(
                    IssueKind.DUPLICATE_EDGE,
                    f"row {row_no}: connection {parent_id} -> {child_id} already present",
                    row=row_no, ids=(parent_id, child_id),
                )
            elif parent_id == child_id:
                report.add(
                    IssueKind.SELF_LOOP,
                    f"row {row_no}: node {child_id} lists itself as extra parent",
                    row=row_no, ids=(parent_id, child_id),
                )
            else:
                graph.add_edge(parent_id, child_id)


def parse_palette_json(raw: str) -> List[PaletteEntry]:
    """
    Parse a palette_json cell.

    Entries without a string value are dropped; blank labels become
    "Colour N"; repeated values (case-insensitive) keep the first entry.

    Raises:
        ValueError: If the text is not JSON or not a JSON array
    """
    try:
        data = decode_json(raw)
    except msgspec.DecodeError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")

    seen = set()
    entries: List[PaletteEntry] = []
    for item in data:
        if not isinstance(item, dict) or not isinstance(item.get("value"), str) or not item["value"].strip():
            logger.debug(f"Dropping palette item without a value: {item!r}")
            continue
        value = item["value"].strip()
        if value.lower() in seen:
            continue
        seen.add(value.lower())
        label = optional_str(item.get("label")) or default_label(len(entries) + 1)
        entries.append(PaletteEntry(label=label, value=value))
    return entries


def _decode_palette(rows: List[Mapping[str, Any]], graph: DiagramGraph, report: ImportReport) -> ColorPalette:
    reported = False
    for row_no, row in enumerate(rows, start=1):
        raw = optional_str(row.get(PALETTE_COLUMN))
        if not raw:
            continue
        try:
            return ColorPalette(parse_palette_json(raw))
        except ValueError as e:
            if not reported:
                report.add(IssueKind.MALFORMED_PALETTE, f"row {row_no}: palette_json ignored ({e})", row=row_no)
                reported = True

    report.palette_from_colors = True
    logger.info("No usable palette_json; rebuilding palette from node colours")
    return ColorPalette.from_used_colors(node.color for node in graph.iter_nodes())


def _first_row_with(rows: List[Mapping[str, Any]], columns: List[str]) -> Optional[Tuple[int, Mapping[str, Any]]]:
    for row_no, row in enumerate(rows, start=1):
        if any(optional_str(row.get(col)) for col in columns):
            return row_no, row
    return None


_NUMERIC_RULES = {
    "box_height": (lambda v: v > 0, "must be greater than 0"),
    "vertical_gap": (lambda v: v >= 0, "must not be negative"),
    "font_size": (lambda v: v > 0, "must be greater than 0"),
}


def parse_bool(raw: str) -> Optional[bool]:
    word = raw.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def _decode_appearance(rows: List[Mapping[str, Any]], base: Appearance, report: ImportReport) -> Appearance:
    appearance = copy_struct(base)
    found = _first_row_with(rows, APPEARANCE_COLUMNS)
    if found is None:
        return appearance
    row_no, row = found

    for name, (accept, rule) in _NUMERIC_RULES.items():
        raw = optional_str(row.get(name))
        if not raw:
            continue
        try:
            value = float(raw)
        except ValueError:
            report.add(IssueKind.MALFORMED_APPEARANCE, f"row {row_no}: {name}={raw!r} is not a number", row=row_no)
            continue
        if not math.isfinite(value) or not accept(value):
            report.add(IssueKind.MALFORMED_APPEARANCE, f"row {row_no}: {name}={raw!r} {rule}", row=row_no)
            continue
        setattr(appearance, name, value)

    family = optional_str(row.get("font_family"))
    if family:
        appearance.font_family = family

    raw_bold = optional_str(row.get("font_bold"))
    if raw_bold:
        bold = parse_bool(raw_bold)
        if bold is None:
            report.add(IssueKind.MALFORMED_APPEARANCE, f"row {row_no}: font_bold={raw_bold!r} is not a flag", row=row_no)
        else:
            appearance.font_bold = bold

    return appearance


def _decode_titles(rows: List[Mapping[str, Any]], base: ColumnTitles) -> ColumnTitles:
    titles = copy_struct(base)
    found = _first_row_with(rows, TITLE_COLUMNS)
    if found is None:
        return titles
    _, row = found
    for column in TITLE_COLUMNS:
        value = optional_str(row.get(column))
        if value:
            setattr(titles, column.removeprefix("title_"), value)
    return titles


def from_rows(
    rows: Iterable[Mapping[str, Any]],
    appearance: Optional[Appearance] = None,
    titles: Optional[ColumnTitles] = None,
) -> DecodedDiagram:
    """
    Decode CSV rows into a fresh diagram.

    Args:
        rows: Dicts keyed by column name. Missing keys and None values are
              treated as empty cells.
        appearance: Values kept for appearance fields the rows don't set
                    (defaults when None)
        titles: Values kept for titles the rows don't set (defaults when None)

    Returns:
        DecodedDiagram with a structured ImportReport
    """
    rows = list(rows)
    report = ImportReport(rows_total=len(rows))

    # The caller logs the swap as one BULK_REPLACE
    graph = DiagramGraph()
    with graph.muted():
        extras = _decode_nodes(graph, rows, report)
        graph.recompute_next_id()
        report.rows_imported = graph.node_count

        _decode_edges(graph, extras, report)
        report.edges_imported = graph.edge_count

    decoded = DecodedDiagram(
        graph=graph,
        palette=_decode_palette(rows, graph, report),
        appearance=_decode_appearance(rows, appearance or Appearance(), report),
        titles=_decode_titles(rows, titles or ColumnTitles()),
        report=report,
    )
    logger.info(decoded.report.summary())
    return decoded


def _read_frame(source) -> pl.DataFrame:
    try:
        df = pl.read_csv(source, infer_schema_length=0, truncate_ragged_lines=True)
    except (pl.exceptions.NoDataError, pl.exceptions.ComputeError) as e:
        raise CsvFormatError(f"Could not parse CSV: {e}") from e

    columns = [col.strip() for col in df.columns]
    df.columns = columns
    missing = [col for col in REQUIRED_COLUMNS if col not in columns]
    if missing:
        raise SchemaValidationError(missing_columns=missing)
    return df


def from_dataframe(df: pl.DataFrame, appearance=None, titles=None) -> DecodedDiagram:
    return from_rows(df.to_dicts(), appearance=appearance, titles=titles)


def decode_csv_text(text: str, appearance=None, titles=None) -> DecodedDiagram:
    """
    Decode CSV text, e.g. the contents handed over by a browser file reader.

    Raises:
        SchemaValidationError: If id, level or text columns are missing
        CsvFormatError: If the text is not CSV
    """
    df = _read_frame(io.BytesIO(text.encode("utf-8")))
    return from_dataframe(df, appearance=appearance, titles=titles)


def read_csv(path: str | Path, appearance=None, titles=None) -> DecodedDiagram:
    """
    Decode a CSV file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        SchemaValidationError: If id, level or text columns are missing
        CsvFormatError: If the file is not CSV
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    return from_dataframe(_read_frame(path), appearance=appearance, titles=titles)
