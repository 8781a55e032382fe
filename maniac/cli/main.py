"""
Maniac CLI Main Module
======================

Main CLI entry point with all commands.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Callable, Dict, List, Optional

from maniac import __version__
from maniac.cli.loader import DEFAULT_APP, load_application

MIGRATE_ACTIONS = {
    "migrate": "run",
    "migrate:rollback": "rollback",
    "migrate:reset": "reset",
    "migrate:refresh": "refresh",
    "migrate:status": "status",
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="maniac",
        description="Maniac Framework CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  maniac serve                              Run development server
  maniac migrate                            Run pending migrations
  maniac make:migration create_users_table  Create a migration
  maniac routes                             List registered routes
        """,
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"Maniac {__version__}",
    )
    parser.add_argument(
        "--app",
        default=DEFAULT_APP,
        help="Application as module:attribute (default: app:app)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run development server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve_parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")

    # Migrate commands
    migrate_parser = subparsers.add_parser("migrate", help="Run pending migrations")
    migrate_parser.add_argument("--step", action="store_true", help="Put each migration in its own batch")

    rollback_parser = subparsers.add_parser("migrate:rollback", help="Roll back the last migration batch")
    rollback_parser.add_argument("--steps", type=int, default=1, help="Number of batches to roll back")

    subparsers.add_parser("migrate:reset", help="Roll back all migrations")
    subparsers.add_parser("migrate:refresh", help="Reset and re-run all migrations")
    subparsers.add_parser("migrate:status", help="Show the status of each migration")

    make_migration = subparsers.add_parser("make:migration", help="Create a new migration file")
    make_migration.add_argument("name", help="Migration name, e.g. create_users_table")
    table_group = make_migration.add_mutually_exclusive_group()
    table_group.add_argument("--create", metavar="TABLE", help="Table to create")
    table_group.add_argument("--table", metavar="TABLE", help="Table to modify")

    # Seeding
    seed_parser = subparsers.add_parser("db:seed", help="Seed the database")
    seed_parser.add_argument("--class", dest="seeder", default="DatabaseSeeder", help="Seeder class name")
    seed_parser.add_argument("--force", action="store_true", help="Allow seeding in production")

    # Routes and views
    subparsers.add_parser("routes", help="List all routes")
    subparsers.add_parser("view:clear", help="Remove compiled views")

    return parser


def cli(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    handlers: Dict[str, Callable[[argparse.Namespace], int]] = {
        "serve": handle_serve,
        "make:migration": handle_make_migration,
        "db:seed": handle_seed,
        "routes": handle_routes,
        "view:clear": handle_view_clear,
    }
    handlers.update({name: handle_migrate for name in MIGRATE_ACTIONS})

    handler = handlers.get(parsed.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(parsed)
    except KeyboardInterrupt:
        print("\nAborted.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def handle_serve(args: argparse.Namespace) -> int:
    """Handle serve command."""
    from maniac.cli.commands.serve import run_server
    load_application(args.app)
    return run_server(args.app, args.host, args.port, args.reload, args.workers)


def handle_migrate(args: argparse.Namespace) -> int:
    """Handle the migrate family of commands."""
    from maniac.cli.commands.migrate import run_migration
    app = load_application(args.app)
    return asyncio.run(run_migration(
        app,
        MIGRATE_ACTIONS[args.command],
        steps=getattr(args, "steps", 1),
        step=getattr(args, "step", False),
    ))


def handle_make_migration(args: argparse.Namespace) -> int:
    """Handle make:migration command."""
    from maniac.cli.commands.migrate import create_migration
    app = load_application(args.app)
    return create_migration(app, args.name, table=args.create or args.table, create=bool(args.create))


def handle_seed(args: argparse.Namespace) -> int:
    """Handle db:seed command."""
    from maniac.cli.commands.seed import run_seeder
    app = load_application(args.app)
    return asyncio.run(run_seeder(app, args.seeder, args.force))


def handle_routes(args: argparse.Namespace) -> int:
    """Handle routes command."""
    from maniac.cli.commands.routes import list_routes
    return list_routes(load_application(args.app))


def handle_view_clear(args: argparse.Namespace) -> int:
    """Handle view:clear command."""
    from maniac.cli.commands.view import clear_views
    return clear_views(load_application(args.app))


def main() -> None:
    """Main entry point."""
    sys.exit(cli())


if __name__ == "__main__":
    main()
