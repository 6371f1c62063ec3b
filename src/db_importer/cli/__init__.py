"""CLI module for importing and updating database schemas.

Provides commands for profile listing, dry-run planning, fresh import and
in-place schema update from a descriptor directory.

Usage:
    db-importer profiles
    DB_PROFILE=local db-importer plan
    db-importer import --profile local --schema-dir install/install_schema
    db-importer update --profile local --die-on-error
    db-importer update --profile local --log-file cache/logs/Importer.log

Commands:
    profiles  - List available profiles
    plan      - Show the operations an update would run, without running them
    import    - Create schema, insert seed data, add foreign keys
    update    - Diff and patch schema, then add missing foreign keys
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from db_importer.config.loader import load_db_config
from db_importer.config.models import ImporterSettings
from db_importer.errors import DescriptorLoadError, ImportAbortedError
from db_importer.factory import ProfileNotFoundError, get_adapter
from db_importer.importer import Importer, ImportMode
from db_importer.schema.diff import MigrationPlan
from db_importer.schema.dialect import SqlDialect

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _importer_settings(args: argparse.Namespace, settings: ImporterSettings) -> ImporterSettings:
    """Apply command-line overrides on top of the ``[importer]`` section."""
    overrides: dict = {}
    if getattr(args, "schema_dir", None):
        overrides["schema_dir"] = args.schema_dir
    if getattr(args, "die_on_error", False):
        overrides["die_on_error"] = True
    if getattr(args, "redundant_tables", False):
        overrides["redundant_tables"] = True
    if getattr(args, "log_file", None):
        overrides["log_file"] = args.log_file
    return settings.model_copy(update=overrides)


def _print_plan(plan: MigrationPlan, dialect: SqlDialect) -> None:
    table = Table(title="Planned Operations", show_header=True, header_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Step")
    table.add_column("Code", justify="right")
    table.add_column("SQL")

    for position, step in enumerate(plan.steps, start=1):
        statements: list[str] = []
        for operation in step.operations:
            try:
                statements += operation.to_sql(dialect)
            except NotImplementedError as e:
                statements.append(f"[yellow]{e}[/yellow]")
        table.add_row(str(position), step.label, str(int(step.code)), "\n".join(statements))

    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_plan(args: argparse.Namespace) -> int:
    """Async implementation for plan command.

    Args:
        args: Parsed arguments with profile, schema_dir, config and env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")
    config_path = _config_path(args)

    try:
        config = load_db_config(config_path)
        adapter = await get_adapter(args.profile, env_prefix=env_prefix, config_path=config_path)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    settings = _importer_settings(args, config.importer)
    try:
        importer = Importer.from_settings(adapter, settings)
        try:
            importer.load_descriptors()
        except (FileNotFoundError, DescriptorLoadError) as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1

        console.print(f"Planning update from [bold cyan]{settings.schema_dir}[/bold cyan]...", style="dim")
        plan = await importer.plan_update()
    finally:
        await adapter.close()

    if not plan.has_changes:
        console.print()
        console.print("[bold green]v[/bold green] Schema is up to date - nothing to do")
        return 0

    console.print()
    _print_plan(plan, importer.dialect)
    console.print(f"\n{plan.operation_count} operations in {len(plan.steps)} steps")
    return 0


async def _async_run(args: argparse.Namespace, mode: ImportMode) -> int:
    """Async implementation for import and update commands.

    The import log is printed to stdout, or appended to ``--log-file``
    when given.

    Args:
        args: Parsed arguments.
        mode: Fresh import or update.

    Returns:
        0 if every step succeeded, 1 on errors or an aborted run.
    """
    env_prefix = getattr(args, "env_prefix", "")
    config_path = _config_path(args)

    try:
        config = load_db_config(config_path)
        adapter = await get_adapter(args.profile, env_prefix=env_prefix, config_path=config_path)
    except (FileNotFoundError, ValueError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    settings = _importer_settings(args, config.importer)
    importer = Importer.from_settings(adapter, settings)
    aborted: ImportAbortedError | None = None
    try:
        try:
            importer.load_descriptors()
        except (FileNotFoundError, DescriptorLoadError) as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1

        console.print(
            f"Running {mode.value} from [bold cyan]{settings.schema_dir}[/bold cyan] "
            f"({len(importer.registry)} descriptor modules)...",
            style="dim",
        )
        await importer.run(mode, with_data=not getattr(args, "skip_data", False))
    except ImportAbortedError as e:
        aborted = e
    finally:
        await adapter.close()

    written = importer.flush_log(show=not getattr(args, "log_file", None))
    if written:
        console.print(f"[dim]Log written to[/dim] {written}")

    console.print()
    if aborted is not None:
        console.print(f"[bold red]x[/bold red] Aborted: {aborted}")
        return 1
    failures = importer.log.failures
    if failures:
        console.print(f"[bold red]x[/bold red] Finished with {len(failures)} errors")
        return 1
    console.print(f"[bold green]v[/bold green] {mode.value.capitalize()} complete")
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = os.environ.get(f"{getattr(args, 'env_prefix', '')}DB_PROFILE")

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = active profile")

    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Show planned update operations.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_plan(args))


def cmd_import(args: argparse.Namespace) -> int:
    """Fresh import: schema, seed data, foreign keys.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_run(args, ImportMode.IMPORT))


def cmd_update(args: argparse.Namespace) -> int:
    """Update: diff and patch schema, then foreign keys.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_run(args, ImportMode.UPDATE))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="db-importer",
        description="Declarative database schema and data importer",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )

    # Options shared by commands that touch a database
    run_options = argparse.ArgumentParser(add_help=False)
    run_options.add_argument(
        "--profile",
        "-p",
        default=None,
        help="Profile from db.toml (default: DB_PROFILE environment variable)",
    )
    run_options.add_argument(
        "--schema-dir",
        default=None,
        help="Descriptor directory (overrides [importer] schema_dir)",
    )
    run_options.add_argument(
        "--die-on-error",
        action="store_true",
        help="Abort on the first failed step",
    )
    run_options.add_argument(
        "--redundant-tables",
        action="store_true",
        help="Report <table>_seq data blocks next to auto-increment tables",
    )
    run_options.add_argument(
        "--log-file",
        default=None,
        help="Append the import log to this file instead of printing it",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # plan command
    p_plan = subparsers.add_parser(
        "plan",
        parents=[run_options],
        help="Show the operations an update would run",
    )
    p_plan.set_defaults(func=cmd_plan)

    # import command
    p_import = subparsers.add_parser(
        "import",
        parents=[run_options],
        help="Create schema, insert seed data and add foreign keys",
    )
    p_import.add_argument(
        "--skip-data",
        action="store_true",
        help="Do not insert seed data",
    )
    p_import.set_defaults(func=cmd_import)

    # update command
    p_update = subparsers.add_parser(
        "update",
        parents=[run_options],
        help="Diff and patch schema, then add missing foreign keys",
    )
    p_update.set_defaults(func=cmd_update)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
