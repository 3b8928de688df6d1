"""CLI commands for inspecting and scaffolding loomline configuration."""

import argparse
from pathlib import Path
from typing import Any

import orjson
import yaml

from loomline.config import Config, ConfigError, load_config, validate_config

DEFAULT_CONFIG_FILE = Path("loomline.yaml")


def _config_dict(config: Config) -> dict[str, Any]:
    config_dict = config.model_dump(mode="json")
    config_dict["features"] = config.features.to_dict()
    return config_dict


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loomline config",
        description="Show, check or scaffold the effective configuration",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    show = subcommands.add_parser("show", help="Print the effective configuration")
    show.add_argument("file", type=Path, nargs="?", help="YAML file layered under LOOMLINE_* vars")
    show.add_argument("--format", "-f", choices=["yaml", "json"], default="yaml")

    check = subcommands.add_parser("validate", help="Check the effective configuration")
    check.add_argument("file", type=Path, nargs="?", help="YAML file layered under LOOMLINE_* vars")

    init = subcommands.add_parser("init", help="Write a file with the default configuration")
    init.add_argument("--output", "-o", type=Path, default=DEFAULT_CONFIG_FILE)
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def _show(file: Path | None, output_format: str) -> int:
    try:
        config_dict = _config_dict(load_config(file))
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    if output_format == "json":
        print(orjson.dumps(config_dict, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS).decode())
    else:
        print(yaml.safe_dump(config_dict, default_flow_style=False, sort_keys=True))
    return 0


def _validate(file: Path | None) -> int:
    if file is not None and not file.exists():
        print(f"Error: Configuration file not found: {file}")
        return 1

    source = file if file is not None else "environment"
    try:
        config = load_config(file)
        validate_config(config)
    except ConfigError as e:
        print(f"✗ {source}: validation failed: {e}")
        return 1

    print(
        f"✓ {source} is valid "
        f"(history={config.history.max_entries}, cache={config.query.cache_enabled}, "
        f"strict_snapshots={config.features.strict_snapshots})"
    )
    return 0


def _init(output: Path, force: bool) -> int:
    if output.exists() and not force:
        print(f"Error: {output} already exists (use --force to overwrite)")
        return 1

    try:
        output.write_text(
            yaml.safe_dump(_config_dict(Config()), default_flow_style=False, sort_keys=True)
        )
    except OSError as e:
        print(f"Error writing {output}: {e}")
        return 1

    print(f"✓ Wrote default configuration to {output}")
    return 0


def run_config_command(args: list[str]) -> int:
    """Run a ``loomline config`` subcommand.

    Args:
        args: Command line arguments after ``config``

    Returns:
        Exit code (0 for success, 1 for a bad configuration, 2 for bad usage)
    """
    try:
        parsed_args = _build_parser().parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    if parsed_args.command == "show":
        return _show(parsed_args.file, parsed_args.format)
    if parsed_args.command == "validate":
        return _validate(parsed_args.file)
    return _init(parsed_args.output, parsed_args.force)
