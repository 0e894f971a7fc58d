"""CLI module for declarative schema reconciliation.

Provides commands to list database profiles, preview the changes a
reconciliation pass would make, and apply them.

Usage:
    auto-schema profiles
    DB_PROFILE=local auto-schema plan
    auto-schema apply --profile local --schema-file schema.toml
    auto-schema apply --profile local --confirm
    auto-schema --env-prefix APP_ --verbose apply --keep-orphans --confirm

Commands:
    profiles  - List available profiles
    plan      - Show the changes needed to match the schema file
    apply     - Reconcile the database with the schema file
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from auto_schema.config.loader import load_db_config, load_schema_file
from auto_schema.config.models import ReconcileSettings
from auto_schema.errors import AutoSchemaError
from auto_schema.factory import (
    ProfileNotFoundError,
    get_active_profile_name,
    resolve_database_url,
)
from auto_schema.adapters.sql import SqlSchemaAdapter
from auto_schema.schema.models import ReconcilePlan
from auto_schema.schema.reconciler import Reconciler

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _reconcile_settings(args: argparse.Namespace) -> ReconcileSettings:
    """Reconcile settings from db.toml, or defaults when there is none."""
    try:
        return load_db_config(_config_path(args)).reconcile
    except FileNotFoundError:
        return ReconcileSettings()


def _prepare(args: argparse.Namespace) -> tuple[Reconciler, list, str] | None:
    """Resolve profile, schema file and adapter for plan/apply.

    Returns:
        Tuple of (reconciler, record_types, target label), or None after
        printing the error.
    """
    env_prefix = getattr(args, "env_prefix", "")
    settings = _reconcile_settings(args)

    schema_file = Path(args.schema_file or settings.schema_file)
    try:
        record_types = load_schema_file(schema_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None

    try:
        profile_name, url = resolve_database_url(
            args.profile, env_prefix=env_prefix, config_path=_config_path(args)
        )
    except (ProfileNotFoundError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None

    drop_orphans = settings.drop_orphans and not getattr(args, "keep_orphans", False)
    reconciler = Reconciler(
        SqlSchemaAdapter(url),
        drop_orphans=drop_orphans,
        keep_tables=settings.keep_tables,
    )
    return reconciler, record_types, profile_name or f"{env_prefix}DATABASE_URL"


def _print_plan(plan: ReconcilePlan) -> None:
    """Render a dry-run plan as a rich table."""
    table = Table(title="Schema Changes", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column("Change")
    table.add_column("Detail")

    for table_plan in plan.tables:
        name = table_plan.table
        if table_plan.error:
            table.add_row(name, "[bold red]ERROR[/bold red]", table_plan.error)
            continue
        if table_plan.create:
            table.add_row(name, "[bold green]CREATE TABLE[/bold green]", "")
        for join_table in table_plan.join_tables_to_create:
            table.add_row(join_table, "[bold green]CREATE JOIN TABLE[/bold green]", f"for {name}")

        changes = table_plan.changes
        if not table_plan.create:
            for column in changes.columns_to_add:
                table.add_row(name, "ADD COLUMN", f"{column.name} {column.type}")
        for column_name in changes.columns_to_drop:
            table.add_row(name, "[yellow]DROP COLUMN[/yellow]", column_name)
        for alter in changes.columns_to_alter:
            table.add_row(name, "ALTER COLUMN", f"{alter.name} {alter.type} {alter.attributes}")
        for index_name in changes.indexes_to_drop:
            table.add_row(name, "[yellow]DROP INDEX[/yellow]", index_name)
        for index in changes.indexes_to_add:
            unique = " (unique)" if index.unique else ""
            table.add_row(name, "ADD INDEX", f"{index.name}{unique}")
        for fk in table_plan.foreign_keys_to_drop:
            table.add_row(name, "[yellow]DROP FOREIGN KEY[/yellow]", f"{fk.column} -> {fk.to_table}")
        for fk in table_plan.foreign_keys_to_add:
            table.add_row(name, "ADD FOREIGN KEY", f"{fk.column} -> {fk.to_table}")

    for name in plan.tables_to_drop:
        table.add_row(name, "[bold red]DROP TABLE[/bold red]", "no longer declared")

    console.print(table)

    if plan.configuration_errors:
        console.print("\n[bold yellow]Configuration warnings:[/bold yellow]")
        for error in plan.configuration_errors:
            console.print(f"  - {error}")


# ============================================================================
# Commands
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
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(getattr(args, "env_prefix", ""))
    except ProfileNotFoundError:
        current = None

    table = Table(
        title="Database Profiles", show_header=True, header_style="bold"
    )
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = active profile")

    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Show what a reconciliation pass would change.

    Returns:
        0 when the plan was computed, 1 on failure.
    """
    prepared = _prepare(args)
    if prepared is None:
        return 1
    reconciler, record_types, target = prepared

    console.print(f"Planning schema changes for: [bold cyan]{target}[/bold cyan]")
    try:
        plan = reconciler.plan(record_types)
    except AutoSchemaError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1
    finally:
        reconciler.close()

    if plan.skipped:
        console.print("\n[yellow]Database unavailable -- nothing planned.[/yellow]")
        return 1

    console.print()
    if not plan.has_changes:
        console.print("[bold green]v[/bold green] Schema is up to date")
        return 0

    _print_plan(plan)
    return 1 if any(t.error for t in plan.tables) else 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Reconcile the database with the schema file.

    Without ``--confirm`` only the plan is shown.

    Returns:
        0 on success, 1 on failure.
    """
    if not args.confirm:
        status = cmd_plan(args)
        if status == 0:
            console.print()
            console.print(
                "[dim]To apply changes, add[/dim] [cyan]--confirm[/cyan] "
                "[dim]flag.[/dim]"
            )
        return status

    prepared = _prepare(args)
    if prepared is None:
        return 1
    reconciler, record_types, target = prepared

    console.print(f"Reconciling schema for: [bold cyan]{target}[/bold cyan]")
    try:
        result = reconciler.reconcile_all(record_types)
    except AutoSchemaError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        return 1
    finally:
        reconciler.close()

    console.print()
    if result.skipped:
        console.print(f"[yellow]{result.format_report()}[/yellow]")
        return 1

    if result.success:
        console.print(f"[bold green]v[/bold green] {result.format_report()}")
        return 0

    console.print(f"[bold red]x[/bold red] {result.format_report()}")
    return 1


# ============================================================================
# Entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="auto-schema",
        description="Declarative schema reconciliation",
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
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every detected change",
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
        help="Show the changes needed to match the schema file",
    )
    p_plan.set_defaults(func=cmd_plan)

    # apply command
    p_apply = subparsers.add_parser(
        "apply",
        help="Reconcile the database with the schema file",
    )
    p_apply.add_argument(
        "--confirm",
        action="store_true",
        help="Execute the changes (default is a preview)",
    )
    p_apply.add_argument(
        "--keep-orphans",
        action="store_true",
        help="Do not drop tables that are no longer declared",
    )
    p_apply.set_defaults(func=cmd_apply)

    for sub in (p_plan, p_apply):
        sub.add_argument(
            "--profile",
            "-p",
            default=None,
            help="Profile to use (default: <PREFIX>DB_PROFILE)",
        )
        sub.add_argument(
            "--schema-file",
            default=None,
            help="Schema file (default: [reconcile].schema_file or schema.toml)",
        )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
