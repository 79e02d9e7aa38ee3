"""
VARSCOPE MAIN - Entry Point and CLI

Commands:
    previous - Variables a node may reference (previousNodes + argMap)
    refs     - Every field in the graph that references a node
    check    - Pre-save checks (exit status 1 when errors are found)

Usage:
    # Scope of node 12
    python main.py previous workflow.json 12

    # Same, as a table of argMap tokens
    python main.py previous workflow.json 12 --table

    # Who references node 3? (delete/rename impact)
    python main.py refs workflow.json 3

    # Validate before saving
    python main.py check workflow.json

    # Use another config file and show traversal details
    python main.py --config my.toml --log-level DEBUG previous workflow.json 12

Snapshot Format:
    JSON {"nodes": [...], "edges": [...], "systemVariables": [...]} as saved
    by the editor; only "nodes" is required.
"""
import sys
import json
import logging
from pathlib import Path
from typing import Optional, List

import msgspec

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

logger = logging.getLogger("varscope")


def _load_or_exit(path: str):
    from infrastructure.data_loader import GraphLoadError, load_graph

    try:
        return load_graph(Path(path))
    except GraphLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _print_json(obj) -> None:
    print(json.dumps(msgspec.to_builtins(obj), indent=2, ensure_ascii=False))


def cmd_previous(args):
    """Handle previous command - print the scope of one node."""
    from core.resolver import calculate_node_previous_args

    graph = _load_or_exit(args.snapshot)
    result = calculate_node_previous_args(
        args.node_id,
        graph,
        config=args.config,
        with_diagnostics=args.diagnostics,
    )

    if args.table:
        from infrastructure.data_loader import arg_map_frame
        print(arg_map_frame(result.arg_map))
    else:
        _print_json(result)


def cmd_refs(args):
    """Handle refs command - print graph-wide references to one node."""
    from core.references import find_references_in_graph

    graph = _load_or_exit(args.snapshot)
    references = find_references_in_graph(args.node_id, graph, config=args.config)

    if args.table:
        from infrastructure.data_loader import references_frame
        print(references_frame(references))
    else:
        _print_json(references)


def cmd_check(args):
    """Handle check command - run pre-save checks."""
    from core.graph_invariants import validate_workflow

    graph = _load_or_exit(args.snapshot)
    report = validate_workflow(graph, config=args.config)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))

    if not report.valid:
        sys.exit(1)


def main(argv: Optional[List[str]] = None):
    """Main entry point with subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Varscope - Variable-reference resolver for workflow graphs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to a varscope TOML config (default: config/varscope.toml)"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # previous command
    previous_parser = subparsers.add_parser("previous", help="Variables a node may reference")
    previous_parser.add_argument("snapshot", help="Path to a workflow JSON snapshot")
    previous_parser.add_argument("node_id", help="Target node id")
    previous_parser.add_argument("--table", action="store_true", help="Print the argMap as a table")
    previous_parser.add_argument("--diagnostics", action="store_true", help="Include phase timings")
    previous_parser.set_defaults(func=cmd_previous)

    # refs command
    refs_parser = subparsers.add_parser("refs", help="Fields that reference a node")
    refs_parser.add_argument("snapshot", help="Path to a workflow JSON snapshot")
    refs_parser.add_argument("node_id", help="Referenced node id")
    refs_parser.add_argument("--table", action="store_true", help="Print as a table")
    refs_parser.set_defaults(func=cmd_refs)

    # check command
    check_parser = subparsers.add_parser("check", help="Run pre-save checks")
    check_parser.add_argument("snapshot", help="Path to a workflow JSON snapshot")
    check_parser.set_defaults(func=cmd_check)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    from infrastructure.config import ConfigError, get_config, load_config

    try:
        args.config = load_config(Path(args.config)) if args.config else get_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
