"""CLI commands that read project snapshots and list key bindings."""

import argparse
from pathlib import Path
from typing import Any

import orjson
from pydantic import ValidationError

from loomline.config import Config, load_config
from loomline.core.engine import TimelineEngine, check_snapshot
from loomline.operations import KeyBindings, OperationRegistry, format_shortcut
from loomline.operations.builtin import register_default_operations
from loomline.schemas.types import ProjectSnapshot
from loomline.utils.errors import SnapshotError
from loomline.utils.telemetry import get_logger, setup_logging

logger = get_logger(__name__)


def read_snapshot(path: Path) -> dict[str, Any]:
    """Read a snapshot JSON file written by ``write_snapshot``."""
    return orjson.loads(path.read_bytes())


def write_snapshot(snapshot: ProjectSnapshot, path: Path) -> None:
    payload = snapshot.model_dump(mode="json", by_alias=True)
    path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))


def _setup(verbose: bool) -> Config:
    config = load_config()
    setup_logging("DEBUG" if verbose else "WARNING", config.logging.format)
    return config


def _load_engine(path: Path, config: Config) -> TimelineEngine:
    engine = TimelineEngine(config)
    engine.load(read_snapshot(path))
    return engine


def _summary(engine: TimelineEngine) -> dict[str, Any]:
    timeline = []
    for index, timeslot_id in enumerate(engine.timeslots.order):
        usage = engine.timeslots.usage(timeslot_id)
        timeline.append(
            {
                "index": index,
                "timeslot": timeslot_id,
                "cards": [obj.name for obj in engine.objects.rendered_at(timeslot_id)],
                "mutations": usage.mutations,
                "milestones": [m.name for m in engine.milestones.anchored_to(timeslot_id)],
            }
        )
    return {
        "timeslots": len(engine.timeslots),
        "objects": len(engine.objects),
        "placements": len(engine.placements),
        "milestones": len(engine.milestones),
        "threads": [thread.name for thread in engine.threads()],
        "timeline": timeline,
        "digest": engine.snapshot_digest(),
    }


def _object_state(engine: TimelineEngine, object_id: str, index: int) -> dict[str, Any]:
    state = engine.state_at(object_id, index)
    return {
        "object": object_id,
        "index": state.index,
        "attributes": state.computed_attributes,
        "content": state.computed_content,
        "sections": state.computed_sections,
        "mutations": [p.mutation.label for p in state.mutations if p.mutation],
        "future_mutations": len(state.future_mutations),
    }


def _print_summary(summary: dict[str, Any]) -> None:
    print(
        f"{summary['timeslots']} timeslots, {summary['objects']} objects, "
        f"{summary['placements']} placements, {summary['milestones']} milestones"
    )
    if summary["threads"]:
        print(f"Threads: {', '.join(summary['threads'])}")
    for row in summary["timeline"]:
        for name in row["milestones"]:
            print(f"  -- {name} --")
        cards = ", ".join(row["cards"]) or "(no card)"
        print(f"  [{row['index']}] {cards}  mutations={row['mutations']}")
    print(f"Digest: {summary['digest']}")


def _print_state(state: dict[str, Any]) -> None:
    print(f"Object {state['object']} at index {state['index']}")
    for key, value in sorted(state["attributes"].items()):
        print(f"  {key} = {value!r}")
    if state["content"] is not None:
        print(f"  content = {state['content']!r}")
    for section_id, value in sorted(state["sections"].items()):
        print(f"  section {section_id} = {value!r}")
    print(f"  applied: {', '.join(state['mutations']) or '(none)'}")
    print(f"  pending: {state['future_mutations']}")


def run_inspect_command(args: list[str]) -> int:
    """Summarize a snapshot, or show one object's state at an index.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        prog="loomline inspect",
        description="Summarize a project snapshot or show an object's state",
    )
    parser.add_argument("snapshot", type=Path, help="Path to the snapshot JSON file")
    parser.add_argument(
        "--index",
        type=int,
        help="Timeslot index for --object (default: last timeslot)",
    )
    parser.add_argument("--object", dest="object_id", help="Object id to resolve")
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    config = _setup(parsed_args.verbose)

    if not parsed_args.snapshot.exists():
        print(f"Error: Snapshot file not found: {parsed_args.snapshot}")
        return 1

    try:
        engine = _load_engine(parsed_args.snapshot, config)
    except orjson.JSONDecodeError as e:
        print(f"Error: Snapshot is not valid JSON: {e}")
        return 1
    except SnapshotError as e:
        print(f"Error: {e}")
        return 1

    if parsed_args.object_id:
        if parsed_args.object_id not in engine.objects:
            print(f"Error: Unknown object: {parsed_args.object_id}")
            return 1
        index = parsed_args.index
        if index is None:
            index = len(engine.timeslots) - 1
        result = _object_state(engine, parsed_args.object_id, index)
        printer = _print_state
    else:
        result = _summary(engine)
        printer = _print_summary

    if parsed_args.format == "json":
        print(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())
    else:
        printer(result)
    return 0


def run_validate_command(args: list[str]) -> int:
    """Check a snapshot for structural and reference problems.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 when the snapshot is clean, 1 otherwise)
    """
    parser = argparse.ArgumentParser(
        prog="loomline validate",
        description="Check a project snapshot for integrity problems",
    )
    parser.add_argument("snapshot", type=Path, help="Path to the snapshot JSON file")
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Only report structural problems, tolerating dangling references",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    _setup(parsed_args.verbose)

    if not parsed_args.snapshot.exists():
        print(f"Error: Snapshot file not found: {parsed_args.snapshot}")
        return 1

    try:
        snapshot = ProjectSnapshot.model_validate(read_snapshot(parsed_args.snapshot))
    except orjson.JSONDecodeError as e:
        print(f"✗ Snapshot is not valid JSON: {e}")
        return 1
    except ValidationError as e:
        print(f"✗ Snapshot does not match the schema: {e}")
        return 1

    problems = check_snapshot(snapshot, strict=not parsed_args.lenient)
    if problems:
        print(f"✗ {len(problems)} problem(s) found:")
        for problem in problems:
            print(f"  - {problem}")
        return 1

    print("✓ Snapshot is valid")
    return 0


def run_shortcuts_command(args: list[str]) -> int:
    """List every operation with its effective shortcut."""
    parser = argparse.ArgumentParser(
        prog="loomline shortcuts",
        description="List keyboard shortcuts",
    )
    parser.add_argument("--mac", action="store_true", help="Use macOS symbols")
    parser.add_argument("--file", type=Path, help="Shortcut overrides file")

    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    config = _setup(False)
    registry = OperationRegistry(TimelineEngine(config))
    register_default_operations(registry)
    bindings = KeyBindings(registry)

    overrides = parsed_args.file or config.keyboard.overrides_path
    if overrides and config.features.custom_shortcuts:
        bindings.load_file(overrides)

    mac = parsed_args.mac or config.keyboard.mac_labels
    for category, operations in registry.all_by_category().items():
        print(f"{category}:")
        for operation in operations:
            label = format_shortcut(bindings.get_effective_shortcut(operation.id), mac=mac)
            marker = " *" if bindings.has_custom_shortcut(operation.id) else ""
            print(f"  {operation.id:<28} {label}{marker}")
    return 0
