"""
Maniac Migrations
=================

File based schema migrations tracked in a ``migrations`` table.

Features:
- Migration files named ``YYYY_MM_DD_HHMMSS_name.py``
- Batches: one ``run()`` call records one batch
- Rollback of the last batch(es) in reverse order
- Each migration runs inside its own transaction

Example:
    # database/migrations/2025_05_02_151835_create_users_table.py
    class CreateUsersTable(Migration):
        async def up(self, schema: Schema) -> None:
            await schema.create("users", lambda table: (
                table.id(),
                table.string("email").unique(),
                table.timestamps(),
            ))

        async def down(self, schema: Schema) -> None:
            await schema.drop_if_exists("users")

    migrator = Migrator(db, "database/migrations")
    await migrator.run()
    await migrator.rollback()
"""

from __future__ import annotations

import importlib.util
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, Union

from maniac.orm.exceptions import MigrationError
from maniac.orm.schema import Schema
from maniac.utils.helpers import pascal_case

logger = logging.getLogger(__name__)

MIGRATIONS_TABLE = "migrations"
_PREFIX = re.compile(r"^\d{4}_\d{2}_\d{2}_\d{6}_")


class Migration(ABC):
    """
    Base migration.

    Subclass and implement ``up()`` and ``down()``.
    """

    @abstractmethod
    async def up(self, schema: Schema) -> None:
        """Run the migration."""
        ...

    @abstractmethod
    async def down(self, schema: Schema) -> None:
        """Reverse the migration."""
        ...


def migration_class_name(migration: str) -> str:
    """``2025_05_02_151835_create_users_table`` -> ``CreateUsersTable``."""
    return pascal_case(_PREFIX.sub("", migration))


class Migrator:
    """
    Runs migration files from a directory.

    Works with a ``Database`` or a single ``Connection``.
    """

    def __init__(self, connection: Any, path: Union[str, Path] = "database/migrations") -> None:
        self.connection = connection
        self.path = Path(path)

    async def ensure_repository(self) -> None:
        """Create the ``migrations`` table if it does not exist."""
        schema = Schema(self.connection)
        if await schema.has_table(MIGRATIONS_TABLE):
            return
        try:
            await schema.create(MIGRATIONS_TABLE, lambda table: (
                table.id(),
                table.string("migration"),
                table.integer("batch"),
            ))
        except Exception as exc:
            logger.error(f"Failed to create migrations table: {exc}")
            raise MigrationError(f"Could not create migrations table: {exc}") from exc

    def files(self) -> List[Path]:
        if not self.path.is_dir():
            return []
        return sorted(p for p in self.path.glob("*.py") if not p.name.startswith("_"))

    async def ran(self) -> List[str]:
        rows = await self.connection.fetch_all(
            f"SELECT migration FROM {MIGRATIONS_TABLE} ORDER BY batch, id"
        )
        return [row["migration"] for row in rows]

    async def last_batch(self) -> int:
        row = await self.connection.fetch_one(f"SELECT MAX(batch) AS batch FROM {MIGRATIONS_TABLE}")
        return int(row["batch"] or 0) if row else 0

    async def pending(self) -> List[Path]:
        ran = set(await self.ran())
        return [file for file in self.files() if file.stem not in ran]

    def resolve(self, migration: str) -> Migration:
        """Load the migration file and instantiate its class."""
        file = self.path / f"{migration}.py"
        if not file.is_file():
            raise MigrationError(f"Migration file {file} not found")

        spec = importlib.util.spec_from_file_location(f"maniac_migrations.{migration}", file)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        class_name = migration_class_name(migration)
        migration_class: Optional[Type[Migration]] = getattr(module, class_name, None)
        if migration_class is None:
            raise MigrationError(f"Migration class {class_name} not found in {file}")
        return migration_class()

    async def run(self, step: bool = False) -> List[str]:
        """
        Run all pending migrations as one batch.

        With ``step=True`` every migration gets its own batch so it can be
        rolled back individually. Returns the names that ran.
        """
        await self.ensure_repository()
        pending = await self.pending()
        if not pending:
            logger.info("Nothing to migrate.")
            return []

        batch = await self.last_batch() + 1
        executed = []
        for file in pending:
            name = file.stem
            migration = self.resolve(name)
            try:
                async with self.connection.transaction() as conn:
                    await migration.up(Schema(conn))
                    await conn.execute(
                        f"INSERT INTO {MIGRATIONS_TABLE} (migration, batch) VALUES (:migration, :batch)",
                        {"migration": name, "batch": batch},
                    )
            except Exception as exc:
                logger.error(f"Failed to run migration {type(migration).__name__}: {exc}")
                raise MigrationError(f"Migration {type(migration).__name__} failed: {exc}") from exc

            logger.info(f"Migrated: {name}")
            executed.append(name)
            if step:
                batch += 1
        return executed

    async def rollback(self, steps: int = 1) -> List[str]:
        """Roll back the last ``steps`` batches. Returns the names rolled back."""
        await self.ensure_repository()
        rolled_back: List[str] = []
        batch = await self.last_batch()

        for _ in range(steps):
            if batch < 1:
                break
            rows = await self.connection.fetch_all(
                f"SELECT migration FROM {MIGRATIONS_TABLE} WHERE batch = :batch ORDER BY id DESC",
                {"batch": batch},
            )
            for row in rows:
                rolled_back.append(await self._down(row["migration"]))
            batch -= 1

        if not rolled_back:
            logger.info("Nothing to rollback.")
        return rolled_back

    async def _down(self, name: str) -> str:
        migration = self.resolve(name)
        try:
            async with self.connection.transaction() as conn:
                await migration.down(Schema(conn))
                await conn.execute(
                    f"DELETE FROM {MIGRATIONS_TABLE} WHERE migration = :migration",
                    {"migration": name},
                )
        except Exception as exc:
            logger.error(f"Failed to rollback migration {type(migration).__name__}: {exc}")
            raise MigrationError(f"Rollback {type(migration).__name__} failed: {exc}") from exc
        logger.info(f"Rolled back: {name}")
        return name

    async def reset(self) -> List[str]:
        """Roll back every batch."""
        await self.ensure_repository()
        return await self.rollback(await self.last_batch())

    async def refresh(self) -> List[str]:
        """Reset then run everything again. Returns the names that ran."""
        await self.reset()
        return await self.run()

    async def status(self) -> List[Dict[str, Any]]:
        await self.ensure_repository()
        rows = await self.connection.fetch_all(f"SELECT migration, batch FROM {MIGRATIONS_TABLE}")
        batches = {row["migration"]: row["batch"] for row in rows}
        return [
            {"migration": file.stem, "ran": file.stem in batches, "batch": batches.get(file.stem)}
            for file in self.files()
        ]


CREATE_STUB = '''"""
Migration: {name}
"""

from maniac.orm import Migration, Schema


class {class_name}(Migration):
    async def up(self, schema: Schema) -> None:
        await schema.create("{table}", lambda table: (
            table.id(),
            table.timestamps(),
        ))

    async def down(self, schema: Schema) -> None:
        await schema.drop_if_exists("{table}")
'''

UPDATE_STUB = '''"""
Migration: {name}
"""

from maniac.orm import Migration, Schema


class {class_name}(Migration):
    async def up(self, schema: Schema) -> None:
        await schema.table("{table}", lambda table: (
            # Define schema changes here
        ))

    async def down(self, schema: Schema) -> None:
        # Reverse changes here
        pass
'''


class MigrationCreator:
    """Writes new migration files from a stub."""

    def __init__(self, path: Union[str, Path] = "database/migrations") -> None:
        self.path = Path(path)

    @staticmethod
    def guess_table(name: str) -> str:
        name = name.lower()
        match = re.match(r"^create_(\w+)_table$", name)
        if match:
            return match.group(1)
        match = re.match(r"^\w+_(?:to|from|in)_(\w+)_table$", name)
        if match:
            return match.group(1)
        return name.replace("create_", "").replace("_table", "")

    def create(self, name: str, table: Optional[str] = None, create: bool = False) -> Path:
        """
        Write ``{Y_m_d_His}_{name}.py`` and return its path.

        ``create`` picks the create-table stub. Without an explicit table
        the name is guessed from ``create_{table}_table`` or
        ``add_..._to_{table}_table``. Names starting with ``create_`` use
        the create stub.
        """
        create = create or name.lower().startswith("create_")
        table = table or self.guess_table(name)
        stub = CREATE_STUB if create else UPDATE_STUB

        self.path.mkdir(parents=True, exist_ok=True)
        file = self.path / f"{datetime.now().strftime('%Y_%m_%d_%H%M%S')}_{name}.py"
        if file.exists():
            raise MigrationError(f"Migration {file} already exists")

        file.write_text(
            stub.format(name=name, class_name=pascal_case(name), table=table),
            encoding="utf-8",
        )
        logger.info(f"Created migration {file}")
        return file
