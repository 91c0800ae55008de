"""CLI for SurrealDB migrations.

Usage:
    surrealigrate migrate
    surrealigrate migrate --to 5
    surrealigrate migrate --dry-run
    surrealigrate rollback
    surrealigrate rollback --to 3
    surrealigrate info
    surrealigrate create add_user_table
    surrealigrate -c config.yaml -d ./custom-migrations migrate
"""

import argparse
import asyncio
import logging
import re
import sys
from collections.abc import Callable, Mapping
from pathlib import Path
from textwrap import dedent
from typing import Optional

from . import __version__
from .config import DEFAULT_ENV_FILE, ConfigError, SurrealConfig, load_config
from .connection import ConnectionError, open_connection
from .migrations import (
    Direction,
    DirectionMismatch,
    DiscoveryError,
    ExecutionError,
    LedgerError,
    LedgerWriteError,
    MigrationPlan,
    MigrationRunner,
    MigrationUnit,
    MissingScriptError,
    StatusReporter,
    TransactionalExecutor,
    VersionLedger,
    latest_version,
    plan_apply,
    plan_revert,
    scan_migrations,
)

logger = logging.getLogger(__name__)

Planner = Callable[[Mapping[int, MigrationUnit], int, Optional[int]], MigrationPlan]

MIGRATION_NAME_RE = re.compile(r"\w+")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def version_arg(value: str) -> int:
    """Parse a non-negative version number for --to."""
    try:
        version = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid version: {value!r}")
    if version < 0:
        raise argparse.ArgumentTypeError(f"version must not be negative: {value}")
    return version


def migrations_dir(args: argparse.Namespace, config: SurrealConfig) -> Path:
    """Resolve the migration directory (--dir wins over config)."""
    return Path(args.dir or config.migrations_dir)


async def run_plan(
    args: argparse.Namespace,
    config: SurrealConfig,
    direction: Direction,
    planner: Planner,
) -> int:
    """Scan, plan and execute a migrate or rollback command."""
    units = scan_migrations(migrations_dir(args, config), config.extension)

    async with open_connection(config) as conn:
        ledger = VersionLedger(conn, config.ledger_table)
        if not args.dry_run:
            await ledger.ensure_table()

        current_version = await ledger.current_version()

        try:
            plan = planner(units, current_version, args.to)
        except DirectionMismatch as e:
            logger.warning(str(e))
            print(f"Warning: {e}")
            return 0

        if plan.is_empty:
            if direction is Direction.APPLY:
                print("No pending migrations. Database is up to date.")
            else:
                print("No migrations to rollback")
            return 0

        label = "migrate" if direction is Direction.APPLY else "rollback"
        print(f"Current version: {current_version}")
        print(f"Migrations to {label}: {len(plan)}")
        for unit in plan:
            print(f"  - {unit.full_name}")
        print()

        if args.dry_run:
            print(f"[DRY-RUN] Simulating {label}...")
            print()

        runner = MigrationRunner(TransactionalExecutor(conn), ledger)
        records = await runner.execute(plan, dry_run=args.dry_run)

    if args.dry_run:
        prefix = f"[DRY-RUN] Would {direction.verb}"
    else:
        prefix = direction.past_tense.capitalize()
    print(f"{prefix} {len(records)} migration(s):")
    marker = "+" if direction is Direction.APPLY else "-"
    for record in records:
        time_str = f" ({record.execution_time_ms}ms)" if record.execution_time_ms else ""
        title = f" {record.title}" if record.title else ""
        print(f"  {marker} {record.version}{title}{time_str}")

    return 0


async def cmd_migrate(args: argparse.Namespace, config: SurrealConfig) -> int:
    """Apply pending migrations."""
    return await run_plan(args, config, Direction.APPLY, plan_apply)


async def cmd_rollback(args: argparse.Namespace, config: SurrealConfig) -> int:
    """Rollback applied migrations."""
    return await run_plan(args, config, Direction.REVERT, plan_revert)


async def cmd_info(args: argparse.Namespace, config: SurrealConfig) -> int:
    """Show migration status."""
    directory = migrations_dir(args, config)

    async with open_connection(config) as conn:
        reporter = StatusReporter(VersionLedger(conn, config.ledger_table))
        report = await reporter.report(directory, config.extension)

    latest = report.latest_version if report.latest_version is not None else "none"

    print()
    print("Migration Status:")
    print(f"Current Version: {report.current_version} ({report.current_version_title})")
    print(f"Latest Version: {latest}")
    print()

    if report.applied:
        print("Applied Migrations:")
        for entry in report.applied:
            applied_at = (
                f" (applied: {entry.applied_at.strftime('%Y-%m-%d %H:%M')})"
                if entry.applied_at
                else ""
            )
            print(f"  [x] Version {entry.version}: {entry.title or 'Untitled'}{applied_at}")
        print()

    if report.pending_migrations:
        print("Pending Migrations:")
        for migration in report.pending_migrations:
            print(f"  - Version {migration.version}: {migration.title}")
        print("-------------------")
    else:
        print("No pending migrations. Database is up to date.")

    return 0


def cmd_create(args: argparse.Namespace, config: SurrealConfig) -> int:
    """Create a new do/undo migration file pair."""
    name = args.name.strip().lower().replace("-", "_").replace(" ", "_")
    if not name:
        print("Error: Migration name must not be empty")
        return 1
    # The name becomes the title part of the filename
    if not MIGRATION_NAME_RE.fullmatch(name):
        print(f"Error: Invalid migration name {args.name!r}: use letters, digits and underscores")
        return 1

    directory = migrations_dir(args, config)
    directory.mkdir(parents=True, exist_ok=True)

    units = scan_migrations(directory, config.extension)
    next_version = str((latest_version(units) or 0) + 1).zfill(4)

    heading = name.replace("_", " ").title()
    created = []
    for direction in Direction:
        filepath = directory / f"{next_version}.{direction.file_token}.{name}{config.extension}"
        if filepath.exists():
            print(f"Error: Migration file already exists: {filepath}")
            return 1
        action = "Apply" if direction is Direction.APPLY else "Revert"
        filepath.write_text(
            dedent(f"""
                -- Migration {next_version}: {heading}
                -- {action} the schema change here, e.g.
                -- DEFINE TABLE IF NOT EXISTS example SCHEMAFULL;
            """).lstrip(),
            encoding="utf-8",
        )
        created.append(filepath)

    for filepath in created:
        print(f"Created migration: {filepath}")
    print(f"  Version: {next_version}")
    print(f"  Name: {name}")

    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="surrealigrate",
        description="SurrealDB migration CLI tool for managing database schema changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=dedent("""
            Examples:
              surrealigrate migrate
              surrealigrate migrate --to 5
              surrealigrate rollback
              surrealigrate rollback --to 3
              surrealigrate info

            Configuration:
              Priority order: Environment Variables > .env File > YAML Config > Defaults

            Environment Variables:
              DB_URL         SurrealDB connection URL
              DB_USER        Database user
              DB_PASS        Database password
              DB_NAMESPACE   Database namespace
              DB_NAME        Database name

            Migration files are named <version>.<do|undo>.<title>.surql
        """),
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-c", "--config",
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--env-file",
        default=DEFAULT_ENV_FILE,
        help="Path to a .env file with DB_* variables (default: .env)",
    )
    parser.add_argument(
        "-d", "--dir",
        help="Directory containing migration files (default: ./migrations)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Apply pending migrations to the database",
    )
    migrate_parser.add_argument(
        "--to",
        type=version_arg,
        help="Migrate to a specific version",
    )
    migrate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without applying",
    )

    rollback_parser = subparsers.add_parser(
        "rollback",
        help="Rollback applied migrations",
    )
    rollback_parser.add_argument(
        "--to",
        type=version_arg,
        help="Rollback to a specific version (default: previous version)",
    )
    rollback_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without applying",
    )

    subparsers.add_parser(
        "info",
        help="Display information about the current migration status",
    )

    create_parser_cmd = subparsers.add_parser(
        "create",
        help="Create a new do/undo migration file pair",
    )
    create_parser_cmd.add_argument(
        "name",
        help="Migration name (e.g., add_user_table)",
    )

    return parser


async def async_main(args: argparse.Namespace) -> int:
    """Async main entry point."""
    try:
        config = load_config(args.config, env_file=args.env_file)
    except ConfigError as e:
        print(f"Error: Failed to load configuration: {e}")
        return 1

    if args.command != "create":
        errors = config.validate()
        if errors:
            print("Error: Invalid configuration")
            for error in errors:
                print(f"  - {error}")
            return 1

    try:
        if args.command == "migrate":
            return await cmd_migrate(args, config)
        elif args.command == "rollback":
            return await cmd_rollback(args, config)
        elif args.command == "info":
            return await cmd_info(args, config)
        elif args.command == "create":
            return cmd_create(args, config)
        else:
            print(f"Unknown command: {args.command}")
            return 1
    except ConnectionError as e:
        print(f"Error: Failed to connect to database: {e}")
        return 1
    except DiscoveryError as e:
        print(f"Error: Failed to read migration files: {e}")
        return 1
    except MissingScriptError as e:
        print(f"Error: {e}")
        return 1
    except ExecutionError as e:
        print(f"\nFailed: migration {e.version}")
        print(f"  Error: {e.cause}")
        print("  Earlier migrations in this run remain applied.")
        return 1
    except LedgerWriteError as e:
        print(f"\nLedger out of sync at version {e.version}: {e}")
        print(f"  Reconcile the '{config.ledger_table}' table before running again.")
        return 1
    except LedgerError as e:
        print(f"Error: {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    exit_code = asyncio.run(async_main(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
