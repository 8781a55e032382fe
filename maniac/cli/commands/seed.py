"""
Maniac CLI Seed Command
=======================

Runs a seeder class found in the ``database.seeders`` directory.
"""

from __future__ import annotations

import importlib.util
import inspect
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Type

from maniac.orm.seeder import Seeder

if TYPE_CHECKING:
    from maniac.core.application import Application


def find_seeder(path: Path, class_name: str) -> Optional[Type[Seeder]]:
    """Import every module in ``path`` and return the seeder named ``class_name``."""
    if not path.is_dir():
        return None

    for file in sorted(path.glob("*.py")):
        if file.name.startswith("_"):
            continue
        spec = importlib.util.spec_from_file_location(f"maniac_seeders.{file.stem}", file)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        candidate = getattr(module, class_name, None)
        if inspect.isclass(candidate) and issubclass(candidate, Seeder):
            return candidate
    return None


async def run_seeder(app: "Application", class_name: str = "DatabaseSeeder", force: bool = False) -> int:
    """
    Run a seeder.

    Seeding is refused in production unless ``force`` is set.

    Returns:
        Exit code
    """
    if app.config.get("app.env") == "production" and not force:
        print("Error: Seeding is disabled in production. Use --force to override.", file=sys.stderr)
        return 1
    if app.db is None:
        print("Error: No database configured", file=sys.stderr)
        return 1

    seeder = find_seeder(app.path(app.config.get("database.seeders", "database/seeders")), class_name)
    if seeder is None:
        print(f"Error: Seeder class {class_name} not found in database/seeders/", file=sys.stderr)
        return 1

    print(f"Running seeder: {class_name}...")
    await app.db.connect()
    try:
        await seeder(app.db).run()
    except Exception as exc:
        app.logger.error(f"Seeding failed: {exc}", exception=exc)
        print(f"Seeding failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await app.db.close()

    print("✓ Seeding completed successfully.")
    return 0
