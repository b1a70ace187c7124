#!/usr/bin/env python3
"""
Living Canvas - Block Graph Engine

Main entry point for Living Canvas. Lists and reloads the block library,
inserts and configures block nodes on a canvas document, runs them against
the configured completion provider and shows the run history.
"""

import logging
import sys
import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from livingcanvas.blocks import BlockRegistry, SandboxedRuntime
from livingcanvas.canvas import CanvasStore
from livingcanvas.config import config
from livingcanvas.database import DatabaseManager
from livingcanvas.errors import LivingCanvasError
from livingcanvas.execution import ExecutionOrchestrator, provider_from_settings
from livingcanvas.models import CanvasGraph
from livingcanvas.settings import SettingsStore


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def parse_config_pairs(pairs: List[str]) -> Dict[str, Any]:
    """
    Turn ``key=value`` arguments into a configuration mapping.

    Values are read as YAML scalars, so ``true``, ``3`` and ``0.5`` become a
    boolean, an integer and a float; anything else stays text.

    Args:
        pairs: Arguments of the form ``key=value``

    Returns:
        Dictionary of setting names to values

    Raises:
        ValueError: If an argument has no ``=``
    """
    result = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"Expected key=value, got '{pair}'")
        key, raw = pair.split("=", 1)
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        result[key.strip()] = raw if value is None or isinstance(value, (dict, list)) else value
    return result


def load_registry() -> BlockRegistry:
    registry = BlockRegistry().initialize()
    for diagnostic in registry.diagnostics:
        print(f"⚠️  {diagnostic}")
    return registry


def load_canvas(store: CanvasStore, canvas_path: str, create: bool = False) -> CanvasGraph:
    """
    Read a canvas document for a command.

    Args:
        store: The canvas store
        canvas_path: Path of the canvas document
        create: Start an empty canvas when the document does not exist

    Returns:
        The loaded graph

    Raises:
        LivingCanvasError: If the document is missing or malformed
    """
    graph = store.read(canvas_path)
    if graph is None:
        if create and not Path(canvas_path).exists():
            logging.info(f"Starting new canvas document: {canvas_path}")
            return CanvasGraph()
        raise LivingCanvasError(f"Could not read canvas document: {canvas_path}")
    return graph


def build_orchestrator(registry: BlockRegistry, store: CanvasStore, runtime: SandboxedRuntime,
                       settings: SettingsStore, run_log: Optional[DatabaseManager] = None,
                       with_provider: bool = True) -> ExecutionOrchestrator:
    provider = provider_from_settings(settings) if with_provider else None
    return ExecutionOrchestrator(registry, store, runtime, provider=provider, settings=settings,
                                 run_log=run_log)


def command_blocks(args) -> int:
    """List the block library, or reload it and report what was found."""
    registry = load_registry()
    if args.blocks_command == "reload":
        registry.reload()
        print(f"Reloaded block library: {len(registry)} blocks, {len(registry.diagnostics)} problems")
        return 0

    blocks = sorted(registry.list(args.category), key=lambda block: block.id)
    if not blocks:
        print("No blocks found.")
        return 0
    for block in blocks:
        print(f"{block.id:<28} {block.name} (v{block.version}, {block.author})")
        print(f"{'':<28} {block.description}")
    return 0


def command_insert(args) -> int:
    store = CanvasStore()
    graph = load_canvas(store, args.canvas, create=True)
    with SandboxedRuntime() as runtime:
        orchestrator = build_orchestrator(load_registry(), store, runtime, SettingsStore(),
                                          with_provider=False)
        node_id = orchestrator.insert_block(graph, args.canvas, args.block_id)
    print(f"✅ Inserted {args.block_id} as node {node_id}")
    return 0


def command_configure(args) -> int:
    store = CanvasStore()
    graph = load_canvas(store, args.canvas)
    block_config = parse_config_pairs(args.settings)
    node = store.get_node(graph, args.node)
    if node is not None and node.execution is not None and not args.replace:
        block_config = {**node.execution.config, **block_config}

    with SandboxedRuntime() as runtime:
        orchestrator = build_orchestrator(load_registry(), store, runtime, SettingsStore(),
                                          with_provider=False)
        orchestrator.configure_block(graph, args.canvas, args.node, block_config)
    print(f"✅ Configuration saved for node {args.node}")
    return 0


def command_run(args) -> int:
    store = CanvasStore()
    graph = load_canvas(store, args.canvas)
    settings = SettingsStore()

    with DatabaseManager(config.database_filename) as db:
        db.initialize_database()
        with SandboxedRuntime() as runtime:
            orchestrator = build_orchestrator(load_registry(), store, runtime, settings, run_log=db)
            outcome = orchestrator.run_block(graph, args.canvas, args.node)

    if outcome.success:
        print(f"✅ Block executed successfully, output node {outcome.output_node_id}")
        print()
        print(outcome.text)
        return 0

    print(f"❌ Block execution failed ({outcome.error_kind}): {outcome.error}")
    return 1


def command_reset(args) -> int:
    store = CanvasStore()
    graph = load_canvas(store, args.canvas)
    with SandboxedRuntime() as runtime:
        orchestrator = build_orchestrator(load_registry(), store, runtime, SettingsStore(),
                                          with_provider=False)
        orchestrator.reset_block(graph, args.canvas, args.node)
    print(f"✅ Node {args.node} reset to idle")
    return 0


def command_clarify(args) -> int:
    store = CanvasStore()
    graph = load_canvas(store, args.canvas, create=True)
    settings = SettingsStore()

    with DatabaseManager(config.database_filename) as db:
        db.initialize_database()
        with SandboxedRuntime() as runtime:
            orchestrator = build_orchestrator(BlockRegistry(), store, runtime, settings, run_log=db)
            result = orchestrator.clarify(graph, args.canvas, args.text, args.question,
                                          source_node_id=args.source)

    print(f"💡 Clarification added as node {result.node_id}")
    print()
    print(result.text)
    return 0


def command_runs(args) -> int:
    with DatabaseManager(config.database_filename) as db:
        db.initialize_database()
        runs = db.get_block_runs(node_id=args.node, block_id=args.block, limit=args.limit)

    if not runs:
        print("No runs recorded.")
        return 0
    for run in runs:
        marker = "✅" if run["success"] else "❌"
        detail = run["output_node_id"] if run["success"] else f"{run['error_kind']}: {run['error_message']}"
        print(f"{marker} #{run['run_id']} {run['started_at']} {run['block_id']} "
              f"node={run['node_id']} ({run['execution_time_ms']} ms) {detail}")
    return 0


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Living Canvas - Block Graph Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py blocks list                              # Show the block library
  python main.py insert study.canvas core/summarizer      # Add a summarizer block
  python main.py configure study.canvas node_3 length=brief
  python main.py run study.canvas node_3                  # Run a block node
  python main.py clarify study.canvas --text "..." --question "Why?" --source node_1
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Living Canvas 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    blocks_parser = subparsers.add_parser("blocks", help="Inspect the block library")
    blocks_parser.add_argument("blocks_command", choices=["list", "reload"], help="Action to perform")
    blocks_parser.add_argument("--category", choices=["core", "community"], help="Only list this category")
    blocks_parser.set_defaults(handler=command_blocks)

    insert_parser = subparsers.add_parser("insert", help="Insert a block node into a canvas")
    insert_parser.add_argument("canvas", help="Path to the canvas document")
    insert_parser.add_argument("block_id", help="Block id, e.g. core/summarizer")
    insert_parser.set_defaults(handler=command_insert)

    configure_parser = subparsers.add_parser("configure", help="Change a block node's settings")
    configure_parser.add_argument("canvas", help="Path to the canvas document")
    configure_parser.add_argument("node", help="Block node id")
    configure_parser.add_argument("settings", nargs="+", help="Settings as key=value")
    configure_parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace the whole configuration instead of merging into it"
    )
    configure_parser.set_defaults(handler=command_configure)

    run_parser = subparsers.add_parser("run", help="Run a block node")
    run_parser.add_argument("canvas", help="Path to the canvas document")
    run_parser.add_argument("node", help="Block node id")
    run_parser.set_defaults(handler=command_run)

    reset_parser = subparsers.add_parser("reset", help="Reset a block node to idle")
    reset_parser.add_argument("canvas", help="Path to the canvas document")
    reset_parser.add_argument("node", help="Block node id")
    reset_parser.set_defaults(handler=command_reset)

    clarify_parser = subparsers.add_parser("clarify", help="Ask the AI about a piece of text")
    clarify_parser.add_argument("canvas", help="Path to the canvas document")
    clarify_parser.add_argument("--text", required=True, help="The selected text")
    clarify_parser.add_argument("--question", required=True, help="Your question about it")
    clarify_parser.add_argument("--source", help="Node the text came from")
    clarify_parser.set_defaults(handler=command_clarify)

    runs_parser = subparsers.add_parser("runs", help="Show the run history")
    runs_parser.add_argument("--node", help="Only runs of this node")
    runs_parser.add_argument("--block", help="Only runs of this block id")
    runs_parser.add_argument("--limit", type=int, default=20, help="Number of runs to show (default: 20)")
    runs_parser.set_defaults(handler=command_runs)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging()

    logging.info("Living Canvas - Block Graph Engine")

    try:
        sys.exit(args.handler(args))

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")

    except (LivingCanvasError, ValueError) as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"\n❌ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
