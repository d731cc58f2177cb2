"""
Unit tests for core/session.py - DiagramSession

Tests the controller a view talks to:
- Delete preview and cascading delete
- Clear-all
- Palette maintenance and node colours
- Appearance validation and column titles
- Import swapping and the import lock
"""
import pytest

from core.session import DiagramSession, DeletePreview, ImportInProgressError
from core.graph_db import NodeNotFoundError
from core.palette import InvalidColorError
from core.schemas import Appearance, ColumnTitles, PaletteEntry
from infrastructure.config import DiagramConfig
from infrastructure.csv_codec import SchemaValidationError
from infrastructure.logger import LoggerConfig, configure_logger


# =============================================================================
# CONSTRUCTION
# =============================================================================

def test_new_session_uses_configured_defaults(session):
    """
    Validate that a session starts empty with the configured settings.

    Verifies:
    - No nodes
    - Palette holds the six configured colours
    - Appearance and titles match the defaults
    """
    assert session.graph.is_empty
    assert [e.label for e in session.palette] == ["Red", "Amber", "Yellow", "Green", "Blue", "Purple"]
    assert session.appearance == Appearance()
    assert session.titles == ColumnTitles()


def test_sessions_do_not_share_state():
    config = DiagramConfig(palette=[PaletteEntry(label="Only", value="#000000")])
    first = DiagramSession(config)
    second = DiagramSession(config)

    first.create_node("aim", "First")
    first.upsert_color("#FFFFFF", "White")
    first.update_appearance(font_size=20)

    assert second.graph.is_empty
    assert len(second.palette) == 1
    assert second.appearance.font_size == 14
    assert config.appearance.font_size == 14


# =============================================================================
# DELETE
# =============================================================================

def test_preview_delete_lists_dependents(sample_diagram):
    """
    Validate that the preview names every dependent in diagram order.

    Verifies:
    - Dependents of "2" are 4, 5 and 6
    - Nothing is removed by a preview
    """
    preview = sample_diagram.preview_delete("2")

    assert isinstance(preview, DeletePreview)
    assert preview.root_id == "2"
    assert preview.dependent_ids == ["4", "5", "6"]
    assert preview.count == 3
    assert "3 dependent" in preview.message()
    assert sample_diagram.graph.node_count == 6


def test_preview_delete_leaf(sample_diagram):
    preview = sample_diagram.preview_delete("3")
    assert preview.count == 0
    assert preview.message() == "Delete node 3?"


def test_preview_delete_unknown_fails(sample_diagram):
    with pytest.raises(NodeNotFoundError):
        sample_diagram.preview_delete("99")


def test_delete_node(sample_diagram):
    removed = sample_diagram.delete_node("2")

    assert removed == {"2", "4", "5", "6"}
    assert sample_diagram.graph.node_ids() == ["1", "3"]
    assert sample_diagram.graph.edge_pairs() == {("1", "3")}


def test_clear_all_leaves_single_aim(sample_diagram):
    """
    Validate that clear-all starts over with one default aim node.

    Verifies:
    - One node, id "1", level aim, configured text
    - Palette is kept
    """
    aim = sample_diagram.clear_all()

    assert sample_diagram.graph.node_count == 1
    assert aim.id == "1"
    assert aim.level == "aim"
    assert aim.text == "Describe the aim of this improvement project"
    assert len(sample_diagram.palette) == 6


# =============================================================================
# PALETTE
# =============================================================================

def test_upsert_color_adds_and_renames(session):
    session.upsert_color("#123456", "Navy")
    session.upsert_color("#123456".lower(), "Dark navy")

    assert len(session.palette) == 7
    assert session.palette.label_for("#123456") == "Dark navy"


def test_upsert_color_rejects_non_hex(session):
    with pytest.raises(InvalidColorError):
        session.upsert_color("red", "Red")
    assert len(session.palette) == 6


def test_remove_color_clears_nodes(sample_diagram):
    """
    Validate that removing a colour clears it from nodes using it.

    Verifies:
    - Matching is case-insensitive
    - Returns the number of nodes cleared
    """
    sample_diagram.set_node_color("3", "#f4cccc")

    cleared = sample_diagram.remove_color("#F4CCCC")

    assert cleared == 2
    assert sample_diagram.graph.get_node("2").color == ""
    assert sample_diagram.graph.get_node("3").color == ""
    assert "#F4CCCC" not in sample_diagram.palette


def test_remove_unknown_color(session):
    assert session.remove_color("#ABCDEF") == 0


# =============================================================================
# APPEARANCE AND TITLES
# =============================================================================

def test_update_appearance(session):
    appearance = session.update_appearance(box_height=120, font_bold=True, font_family="  Arial ")

    assert appearance.box_height == 120
    assert appearance.font_bold is True
    assert appearance.font_family == "Arial"
    assert session.appearance.vertical_gap == 20


@pytest.mark.parametrize("fields", [
    {"box_height": 0},
    {"box_height": -5},
    {"vertical_gap": -1},
    {"font_size": float("nan")},
    {"font_size": "big"},
    {"font_family": "   "},
    {"font_bold": "yes"},
    {"colour": "red"},
])
def test_update_appearance_rejects_invalid(session, fields):
    """
    Validate that any invalid field rejects the whole update.

    Verifies:
    - ValueError is raised
    - Appearance is unchanged
    """
    with pytest.raises(ValueError):
        session.update_appearance(**{"font_bold": True, **fields})

    assert session.appearance == Appearance()


def test_update_appearance_zero_gap_allowed(session):
    assert session.update_appearance(vertical_gap=0).vertical_gap == 0


def test_set_column_title(session):
    assert session.set_column_title("primary", "Key drivers") == "Key drivers"
    assert session.titles.primary == "Key drivers"

    assert session.set_column_title("Primary", "  ") == "Primary drivers"
    assert session.titles.primary == "Primary drivers"

    with pytest.raises(ValueError):
        session.set_column_title("tertiary", "Nope")


# =============================================================================
# IMPORT
# =============================================================================

def test_import_rows_replaces_state(sample_diagram):
    """
    Validate that import replaces graph, palette, appearance and titles.

    Verifies:
    - New nodes replace old ones
    - Palette comes from the rows
    - Report is returned and kept as last_import
    """
    rows = [
        {"id": "10", "level": "aim", "text": "Imported aim",
         "palette_json": '[{"label": "Teal", "value": "#008080"}]',
         "title_aim": "Goal", "font_size": "18"},
        {"id": "11", "level": "primary", "text": "Imported driver", "parent_id": "10"},
    ]

    report = sample_diagram.import_rows(rows)

    assert report.rows_imported == 2
    assert sample_diagram.last_import is report
    assert sample_diagram.graph.node_ids() == ["10", "11"]
    assert sample_diagram.graph.edge_pairs() == {("10", "11")}
    assert [e.value for e in sample_diagram.palette] == ["#008080"]
    assert sample_diagram.titles.aim == "Goal"
    assert sample_diagram.appearance.font_size == 18
    assert sample_diagram.create_node("change", "Next").id == "12"


def test_import_logs_one_bulk_replace(sample_diagram):
    """
    Validate the mutation log entry of an import.

    Verifies:
    - A single BULK_REPLACE with the new counts, no per-node events
    - Edits after the import are logged again
    """
    rows = sample_diagram.to_rows()
    log = configure_logger(LoggerConfig())

    sample_diagram.import_rows(rows)
    events = log.get_recent_events()

    assert [e.mutation_type for e in events] == ["BULK_REPLACE"]
    assert (events[0].node_count, events[0].edge_count) == (6, 6)

    sample_diagram.update_node_text("1", "Renamed aim")
    assert log.get_recent_events()[-1].mutation_type == "NODE_UPDATED"


def test_import_failure_leaves_state_untouched(sample_diagram):
    with pytest.raises(SchemaValidationError):
        sample_diagram.import_csv_text("name,colour\nx,y\n")

    assert sample_diagram.graph.node_count == 6
    assert len(sample_diagram.palette) == 6
    assert not sample_diagram.import_in_progress


def test_second_import_while_running_fails(session):
    """
    Validate that an import started during another import is refused.

    Verifies:
    - ImportInProgressError is raised by the nested import
    - The outer import still completes
    """
    nested_errors = []

    def rows():
        try:
            session.import_rows([])
        except ImportInProgressError as e:
            nested_errors.append(e)
        yield {"id": "1", "level": "aim", "text": "Outer"}

    report = session.import_rows(rows())

    assert len(nested_errors) == 1
    assert report.rows_imported == 1
    assert not session.import_in_progress


def test_export_csv_default_filename(session, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    session.clear_all()

    path = session.export_csv()

    assert path.name == "driver-diagram.csv"
    assert (tmp_path / "driver-diagram.csv").exists()


def test_validate_and_snapshot(sample_diagram):
    report = sample_diagram.validate()
    snapshot = sample_diagram.snapshot()

    assert report.valid
    assert snapshot.node_count == 6
    assert snapshot.edge_count == 6
