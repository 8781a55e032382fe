"""
Maniac Seeders
==============

Example:
    class UsersTableSeeder(Seeder):
        async def run(self) -> None:
            await self.insert("users", {"name": "Admin", "email": "admin@example.com"})

    class DatabaseSeeder(Seeder):
        async def run(self) -> None:
            await self.call(UsersTableSeeder)

    await DatabaseSeeder(db).run()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence, Type

from maniac.orm.exceptions import QueryError

logger = logging.getLogger(__name__)


class Seeder(ABC):
    """Base class for database seeders."""

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    @abstractmethod
    async def run(self) -> None:
        ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Any:
        """Insert one row and return its id."""
        try:
            return await self.connection.table(table).insert_get_id(row)
        except QueryError as exc:
            logger.error(f"Failed to insert record into {table}: {exc}")
            raise

    async def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert several rows with one statement. Returns the row count."""
        if not rows:
            return 0
        try:
            return await self.connection.table(table).insert_many(rows)
        except QueryError as exc:
            logger.error(f"Failed to insert multiple records into {table}: {exc}")
            raise

    async def call(self, *seeders: Type["Seeder"]) -> None:
        """Run other seeders on the same connection."""
        for seeder in seeders:
            logger.info(f"Seeding: {seeder.__name__}")
            await seeder(self.connection).run()
