"""Shared fixtures."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from maniac.orm import Database, DatabaseConfig, DatabaseDriver, Model
from maniac.orm.connection import Connection, QueryResult
from maniac.utils import logger as maniac_logger


class FakeConnection(Connection):
    """
    Records every statement instead of talking to a database.

    ``results`` is a queue of row lists handed out to fetch calls in order.
    """

    def __init__(self, driver: DatabaseDriver = DatabaseDriver.MYSQL, version: str = "8.0.36") -> None:
        super().__init__(DatabaseConfig(driver=driver))
        self.driver = driver
        self.version = version
        self.statements: List[Tuple[str, Any]] = []
        self.results: List[List[Dict[str, Any]]] = []
        self.next_id = 1

    async def connect(self) -> None:
        self._conn = object()

    async def close(self) -> None:
        self._conn = None

    def _driver_errors(self) -> Tuple[type, ...]:
        return ()

    def _compile(self, query: str, params: Any) -> Tuple[str, Any]:
        return query, params

    async def _run_execute(self, query: str, params: Any) -> QueryResult:
        self.statements.append((query, params))
        lastrowid = self.next_id
        self.next_id += 1
        return QueryResult(rowcount=1, lastrowid=lastrowid)

    async def _run_fetch_all(self, query: str, params: Any) -> List[Dict[str, Any]]:
        self.statements.append((query, params))
        return self.results.pop(0) if self.results else []

    async def server_version(self) -> Optional[str]:
        return self.version

    @property
    def sql(self) -> List[str]:
        return [statement for statement, _ in self.statements]


@pytest.fixture(autouse=True)
def _reset_loggers():
    """Drop cached loggers so none keeps a stream captured by an earlier test."""
    maniac_logger._loggers.clear()
    yield
    maniac_logger._loggers.clear()


@pytest.fixture
def fake_db() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
async def db():
    database = Database("sqlite:///:memory:")
    await database.connect()
    Model.use(database)
    yield database
    Model._database = None
    await database.close()
