"""
DRIVER DIAGRAM MAIN - Entry Point and CLI

Commands:
    new       - Write a fresh diagram (a single aim node) to CSV
    check     - Import a CSV and report what was tolerated and what is broken
    show      - Print a CSV diagram column by column
    normalize - Import a CSV and write it back in the current format
    config    - Print the effective configuration

Usage:
    # Start a new diagram file
    python main.py new -o driver-diagram.csv

    # Check a file exported by an older version of the editor
    python main.py check old-export.csv

    # Rewrite it with every column present
    python main.py normalize old-export.csv -o driver-diagram.csv

    # See what the diagram contains
    python main.py show driver-diagram.csv

    # Debug logging for any command
    python main.py -v check driver-diagram.csv
"""
import sys
import logging
from pathlib import Path
from typing import Optional, List

import msgspec

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))


def _load_session(path: str):
    """Import a CSV into a new session, exiting with status 1 if unreadable."""
    from core.session import DiagramSession
    from infrastructure.csv_codec import DataLoadError

    session = DiagramSession()
    try:
        report = session.import_csv(path)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except DataLoadError as e:
        print(f"Error: {path} is not a diagram CSV: {e}")
        sys.exit(1)
    return session, report


def cmd_new(args):
    """Write a fresh diagram."""
    from core.session import DiagramSession

    session = DiagramSession()
    session.clear_all()
    path = session.export_csv(args.output)
    print(f"Created {path} with 1 node")


def cmd_check(args):
    """Import a file and print the import and invariant reports."""
    session, report = _load_session(args.csv_file)

    print(report.summary())
    for issue in report.issues:
        where = f"row {issue.row}" if issue.row is not None else "-"
        print(f"  [{issue.kind.value}] {where}: {issue.message}")

    invariants = session.validate()
    metrics = invariants.metrics
    print(f"\n{metrics['node_count']} node(s), {metrics['edge_count']} connection(s), "
          f"{metrics['multi_parent_nodes']} with more than one parent")
    for level, count in metrics["nodes_per_level"].items():
        print(f"  {level:<10} {count:>4}")

    if invariants.violations:
        print(f"\n{len(invariants.errors)} error(s), {len(invariants.warnings)} warning(s)")
        for violation in invariants.violations:
            print(f"  {violation.severity.value.upper():<8} {violation.invariant}: {violation.message}")

    if not invariants.valid:
        sys.exit(1)
    print("\nOK")


def cmd_show(args):
    """Print each column with its nodes."""
    session, _ = _load_session(args.csv_file)
    snapshot = session.snapshot()

    for column in snapshot.columns:
        print(f"{'='*60}")
        print(f"{column.title.upper()} ({len(column.node_ids)})")
        print(f"{'='*60}")
        for node_id in column.node_ids:
            node = snapshot.node(node_id)
            colour = f"  ({node.color_label or node.color})" if node.color else ""
            print(f"[{node.id}] {node.text}{colour}")
            print(f"    parent: {node.parent_label}")
            extras = [e.source for e in snapshot.edges if e.target == node.id and not e.primary]
            if extras:
                print(f"    also from: {', '.join(extras)}")
        print()

    print(f"{snapshot.node_count} node(s), {snapshot.edge_count} connection(s)")


def cmd_normalize(args):
    """Decode then re-encode a file."""
    session, report = _load_session(args.csv_file)
    path = session.export_csv(args.output)
    print(report.summary())
    print(f"Wrote {path}")


def cmd_config(args):
    """Print the effective configuration as JSON."""
    from infrastructure.config import load_config

    config = load_config(args.path) if args.path else load_config()
    print(msgspec.json.format(msgspec.json.encode(config), indent=2).decode("utf-8"))


def main(argv: Optional[List[str]] = None):
    """Main entry point with subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Driver Diagram - diagram model and CSV tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # new command
    new_parser = subparsers.add_parser("new", help="Write a fresh diagram")
    new_parser.add_argument("--output", "-o", default=None, help="Output CSV (default: configured export filename)")
    new_parser.set_defaults(func=cmd_new)

    # check command
    check_parser = subparsers.add_parser("check", help="Import a CSV and report problems")
    check_parser.add_argument("csv_file", help="Path to diagram CSV")
    check_parser.set_defaults(func=cmd_check)

    # show command
    show_parser = subparsers.add_parser("show", help="Print a diagram column by column")
    show_parser.add_argument("csv_file", help="Path to diagram CSV")
    show_parser.set_defaults(func=cmd_show)

    # normalize command
    normalize_parser = subparsers.add_parser("normalize", help="Re-encode a CSV in the current format")
    normalize_parser.add_argument("csv_file", help="Path to diagram CSV")
    normalize_parser.add_argument("--output", "-o", required=True, help="Output CSV")
    normalize_parser.set_defaults(func=cmd_normalize)

    # config command
    config_parser = subparsers.add_parser("config", help="Print the effective configuration")
    config_parser.add_argument("--path", default=None, help="TOML file to read instead of the default")
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    args.func(args)


if __name__ == "__main__":
    main()
