"""
Maniac CLI Migrate Commands
===========================

``migrate``, ``migrate:rollback``, ``migrate:reset``, ``migrate:refresh``,
``migrate:status`` and ``make:migration``.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from maniac.orm.migrations import MigrationCreator, Migrator

if TYPE_CHECKING:
    from maniac.core.application import Application


def _migrator(app: "Application") -> Migrator:
    return Migrator(app.db, app.path(app.config.get("database.migrations", "database/migrations")))


async def run_migration(app: "Application", action: str = "run", steps: int = 1, step: bool = False) -> int:
    """
    Run a migration action against the application's database.

    Args:
        app: Loaded application
        action: ``run``, ``rollback``, ``reset``, ``refresh`` or ``status``
        steps: Number of batches for rollback
        step: Give each migration its own batch

    Returns:
        Exit code
    """
    if app.db is None:
        print("Error: No database configured", file=sys.stderr)
        return 1

    await app.db.connect()
    try:
        migrator = _migrator(app)

        if action == "run":
            ran = await migrator.run(step=step)
            _print_list("Migrated", ran, "Nothing to migrate.")
        elif action == "rollback":
            _print_list("Rolled back", await migrator.rollback(steps), "Nothing to rollback.")
        elif action == "reset":
            _print_list("Rolled back", await migrator.reset(), "Nothing to rollback.")
        elif action == "refresh":
            _print_list("Migrated", await migrator.refresh(), "Nothing to migrate.")
        elif action == "status":
            _print_status(await migrator.status())
        else:
            print(f"Unknown action: {action}", file=sys.stderr)
            return 1
    finally:
        await app.db.close()

    return 0


def _print_list(verb: str, migrations: List[str], empty: str) -> None:
    if not migrations:
        print(empty)
        return
    for migration in migrations:
        print(f"✓ {verb}: {migration}")


def _print_status(status: List[Dict[str, Any]]) -> None:
    """Print migration status."""
    print()
    print("Migration Status")
    print("=" * 50)

    if not status:
        print("No migrations found")

    for row in status:
        mark = "✓" if row["ran"] else "○"
        batch = f"  [batch {row['batch']}]" if row["ran"] else ""
        print(f"  {mark} {row['migration']}{batch}")

    print()


def create_migration(
    app: "Application",
    name: str,
    table: Optional[str] = None,
    create: bool = False,
) -> int:
    """Write a new migration file from the create or update stub."""
    creator = MigrationCreator(app.path(app.config.get("database.migrations", "database/migrations")))
    path = creator.create(name, table=table, create=create)
    print(f"✓ Created migration: {path.name}")
    return 0
