"""
Maniac Query Builder
====================

Fluent builder producing parameterized SQL.

Features:
- Named placeholders (``:where_0``) with one binding per value
- Operator and join-type allow-lists checked before any SQL runs
- IN / NOT IN expansion, empty lists short-circuit to ``0=1`` / ``1=1``
- Guarded UPDATE / DELETE (a WHERE clause is mandatory)
- Side-effect free ``count`` and ``paginate``
- Optional model binding so ``get``/``first`` hydrate model instances

Example:
    users = await db.table("users") \\
        .select("id", "name") \\
        .where("active", True) \\
        .where("role", "IN", ["admin", "editor"]) \\
        .order_by("name") \\
        .limit(10) \\
        .get()
"""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Type,
    Union,
)

from maniac.orm.exceptions import (
    InvalidJoinTypeError,
    InvalidOperatorError,
    MissingWhereClauseError,
    OrmError,
)

if TYPE_CHECKING:
    from maniac.orm.connection import Connection, Database
    from maniac.orm.model import Model


OPERATORS = ("=", "<", ">", "<=", ">=", "<>", "!=", "LIKE", "NOT LIKE", "IN", "NOT IN")

_UNSET: Any = object()


class JoinType(Enum):
    """Supported join types."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class OrderDirection(Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Union[str, "OrderDirection"]) -> "OrderDirection":
        if isinstance(value, OrderDirection):
            return value
        return cls.DESC if str(value).upper() == "DESC" else cls.ASC


@dataclass
class WhereClause:
    """
    One condition of a WHERE or HAVING list.

    ``placeholders`` is empty for conditions that bind nothing
    (``IS NULL``, empty ``IN`` lists).
    """

    column: str
    operator: str
    placeholders: List[str] = field(default_factory=list)
    boolean: str = "AND"

    def to_sql(self) -> str:
        if self.operator in ("IN", "NOT IN"):
            if not self.placeholders:
                return "0=1" if self.operator == "IN" else "1=1"
            return f"{self.column} {self.operator} ({', '.join(self.placeholders)})"
        if self.operator in ("IS NULL", "IS NOT NULL"):
            return f"{self.column} {self.operator}"
        return f"{self.column} {self.operator} {self.placeholders[0]}"


@dataclass
class JoinClause:
    table: str
    first: str
    operator: str
    second: str
    type: JoinType = JoinType.INNER

    def to_sql(self) -> str:
        return f"{self.type.value} JOIN {self.table} ON {self.first} {self.operator} {self.second}"


@dataclass
class OrderClause:
    column: str
    direction: OrderDirection = OrderDirection.ASC
    raw: bool = False

    def to_sql(self) -> str:
        return self.column if self.raw else f"{self.column} {self.direction.value}"


@dataclass
class Paginator:
    """
    One page of results.

    Attributes:
        data: Rows (or model instances) of the current page
        total: Number of rows across all pages
        per_page: Page size
        current_page: 1-based page number
        last_page: ``ceil(total / per_page)``, 0 when there are no rows
    """

    data: List[Any]
    total: int
    per_page: int
    current_page: int
    last_page: int

    @property
    def has_more_pages(self) -> bool:
        return self.current_page < self.last_page

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [item.to_dict() if hasattr(item, "to_dict") else item for item in self.data],
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
        }


def _placeholder_key(column: str) -> str:
    return re.sub(r"\W", "_", column)


class QueryBuilder:
    """
    Fluent SQL builder bound to a connection.

    Chainable methods only mutate builder state. ``get``, ``first``,
    ``count``, ``exists``, ``insert``, ``update``, ``delete`` and friends
    execute SQL.
    """

    def __init__(
        self,
        connection: Union["Connection", "Database", None],
        table: Optional[str] = None,
        model: Optional[Type["Model"]] = None,
    ) -> None:
        self.connection = connection
        self.model = model
        self._table = table
        self._selects: List[str] = ["*"]
        self._distinct = False
        self._wheres: List[WhereClause] = []
        self._joins: List[JoinClause] = []
        self._groups: List[str] = []
        self._havings: List[WhereClause] = []
        self._orders: List[OrderClause] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._bindings: Dict[str, Any] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def table(self, name: str) -> "QueryBuilder":
        self._table = name
        return self

    def select(self, *columns: Union[str, Sequence[str]]) -> "QueryBuilder":
        """
        Replace the select list.

        Example:
            query.select("id", "name")
            query.select(["id", "name"])
        """
        flat: List[str] = []
        for column in columns:
            if isinstance(column, (list, tuple)):
                flat.extend(column)
            else:
                flat.append(column)
        self._selects = flat or ["*"]
        return self

    def add_select(self, *columns: str) -> "QueryBuilder":
        if self._selects == ["*"]:
            self._selects = []
        self._selects.extend(columns)
        return self

    def distinct(self) -> "QueryBuilder":
        self._distinct = True
        return self

    def _bind(self, prefix: str, value: Any) -> str:
        placeholder = f":{prefix}_{len(self._bindings)}"
        self._bindings[placeholder] = value
        return placeholder

    def _add_condition(
        self,
        target: List[WhereClause],
        prefix: str,
        column: str,
        operator: Any,
        value: Any,
        boolean: str,
    ) -> None:
        if value is _UNSET:
            operator, value = "=", operator

        op = str(operator).upper()
        if op not in OPERATORS:
            raise InvalidOperatorError(str(operator))

        if op in ("IN", "NOT IN"):
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise OrmError(f"Value for {op} must be a list, got {type(value).__name__}.")
            base = f":{prefix}_{len(self._bindings)}"
            placeholders = []
            for index, item in enumerate(value):
                placeholder = f"{base}_{index}"
                self._bindings[placeholder] = item
                placeholders.append(placeholder)
            target.append(WhereClause(column, op, placeholders, boolean.upper()))
            return

        target.append(WhereClause(column, op, [self._bind(prefix, value)], boolean.upper()))

    def where(
        self,
        column: Union[str, Mapping[str, Any]],
        operator: Any = _UNSET,
        value: Any = _UNSET,
        boolean: str = "AND",
    ) -> "QueryBuilder":
        """
        Add a WHERE condition.

        Args:
            column: Column name, or a mapping of column -> value (all ``=``)
            operator: One of ``=, <, >, <=, >=, <>, !=, LIKE, NOT LIKE, IN, NOT IN``.
                With two arguments this is the value and ``=`` is implied.
            value: Value to bind
            boolean: ``AND`` or ``OR`` connector

        Raises:
            InvalidOperatorError: Operator outside the allow-list

        Example:
            query.where("name", "Ada")
            query.where("age", ">=", 18)
            query.where({"role": "admin", "active": True})
        """
        if isinstance(column, Mapping):
            for key, item in column.items():
                self._add_condition(self._wheres, "where", key, "=", item, boolean)
            return self
        if operator is _UNSET:
            raise TypeError("where() needs a value")
        self._add_condition(self._wheres, "where", column, operator, value, boolean)
        return self

    def or_where(self, column: Union[str, Mapping[str, Any]], operator: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        return self.where(column, operator, value, "OR")

    def where_in(self, column: str, values: Sequence[Any], boolean: str = "AND") -> "QueryBuilder":
        return self.where(column, "IN", list(values), boolean)

    def where_not_in(self, column: str, values: Sequence[Any], boolean: str = "AND") -> "QueryBuilder":
        return self.where(column, "NOT IN", list(values), boolean)

    def where_null(self, column: str, boolean: str = "AND") -> "QueryBuilder":
        self._wheres.append(WhereClause(column, "IS NULL", [], boolean.upper()))
        return self

    def where_not_null(self, column: str, boolean: str = "AND") -> "QueryBuilder":
        self._wheres.append(WhereClause(column, "IS NOT NULL", [], boolean.upper()))
        return self

    def where_like(self, column: str, value: str, boolean: str = "AND") -> "QueryBuilder":
        """``column LIKE %value%``"""
        return self.where(column, "LIKE", f"%{value}%", boolean)

    def join(
        self,
        table: str,
        first: str,
        operator: str,
        second: str,
        type: Union[str, JoinType] = "INNER",
    ) -> "QueryBuilder":
        """
        Add a JOIN.

        Raises:
            InvalidJoinTypeError: ``type`` is not INNER, LEFT, RIGHT or FULL
        """
        if isinstance(type, JoinType):
            join_type = type
        else:
            try:
                join_type = JoinType(str(type).upper())
            except ValueError:
                raise InvalidJoinTypeError(str(type)) from None
        self._joins.append(JoinClause(table, first, operator, second, join_type))
        return self

    def left_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        return self.join(table, first, operator, second, JoinType.LEFT)

    def right_join(self, table: str, first: str, operator: str, second: str) -> "QueryBuilder":
        return self.join(table, first, operator, second, JoinType.RIGHT)

    def group_by(self, *columns: str) -> "QueryBuilder":
        self._groups.extend(columns)
        return self

    def having(self, column: str, operator: Any = _UNSET, value: Any = _UNSET, boolean: str = "AND") -> "QueryBuilder":
        if operator is _UNSET:
            raise TypeError("having() needs a value")
        self._add_condition(self._havings, "having", column, operator, value, boolean)
        return self

    def order_by(self, column: str, direction: Union[str, OrderDirection] = "ASC") -> "QueryBuilder":
        """Anything other than ``DESC`` (any case) sorts ascending."""
        self._orders.append(OrderClause(column, OrderDirection.parse(direction)))
        return self

    def latest(self, column: str = "created_at") -> "QueryBuilder":
        return self.order_by(column, OrderDirection.DESC)

    def oldest(self, column: str = "created_at") -> "QueryBuilder":
        return self.order_by(column, OrderDirection.ASC)

    def in_random_order(self) -> "QueryBuilder":
        from maniac.orm.connection import DatabaseDriver

        function = "RAND()" if self._driver() is DatabaseDriver.MYSQL else "RANDOM()"
        self._orders.append(OrderClause(function, raw=True))
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self._limit = int(count)
        return self

    def offset(self, count: int) -> "QueryBuilder":
        self._offset = int(count)
        return self

    def take(self, count: int) -> "QueryBuilder":
        return self.limit(count)

    def skip(self, count: int) -> "QueryBuilder":
        return self.offset(count)

    def clone(self) -> "QueryBuilder":
        twin = copy.copy(self)
        twin._selects = list(self._selects)
        twin._wheres = copy.deepcopy(self._wheres)
        twin._joins = list(self._joins)
        twin._groups = list(self._groups)
        twin._havings = copy.deepcopy(self._havings)
        twin._orders = list(self._orders)
        twin._bindings = dict(self._bindings)
        return twin

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def _require_table(self) -> str:
        if not self._table:
            raise OrmError("No table specified.")
        return self._table

    def _driver(self) -> Any:
        return getattr(self.connection, "driver", None)

    @staticmethod
    def _compile_conditions(keyword: str, clauses: List[WhereClause]) -> str:
        if not clauses:
            return ""
        parts = []
        for index, clause in enumerate(clauses):
            sql = clause.to_sql()
            parts.append(sql if index == 0 else f"{clause.boolean} {sql}")
        return f" {keyword} " + " ".join(parts)

    def _where_sql(self) -> str:
        return self._compile_conditions("WHERE", self._wheres)

    def to_sql(self) -> str:
        """
        Assemble the SELECT statement.

        Clause order is fixed: SELECT, FROM, JOIN, WHERE, GROUP BY, HAVING,
        ORDER BY, LIMIT, OFFSET. OFFSET is only emitted together with LIMIT.
        """
        table = self._require_table()
        distinct = "DISTINCT " if self._distinct else ""
        sql = f"SELECT {distinct}{', '.join(self._selects)} FROM {table}"

        for join in self._joins:
            sql += f" {join.to_sql()}"
        sql += self._where_sql()
        if self._groups:
            sql += f" GROUP BY {', '.join(self._groups)}"
        sql += self._compile_conditions("HAVING", self._havings)
        if self._orders:
            sql += " ORDER BY " + ", ".join(order.to_sql() for order in self._orders)
        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
            if self._offset is not None:
                sql += f" OFFSET {self._offset}"
        return sql

    def get_bindings(self) -> Dict[str, Any]:
        """Placeholder -> value map for the statement returned by ``to_sql``."""
        return dict(self._bindings)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _require_connection(self) -> Any:
        if self.connection is None:
            raise OrmError("No database connection")
        return self.connection

    def _hydrate(self, rows: List[Dict[str, Any]]) -> List[Any]:
        if self.model is None:
            return rows
        return self.model.hydrate(rows)

    async def get(self) -> List[Any]:
        rows = await self._require_connection().fetch_all(self.to_sql(), self._bindings)
        return self._hydrate(rows)

    async def first(self) -> Optional[Any]:
        results = await self.clone().limit(1).get()
        return results[0] if results else None

    async def find(self, id: Any, column: str = "id") -> Optional[Any]:
        return await self.clone().where(column, "=", id).first()

    async def value(self, column: str) -> Any:
        row = await self.clone().select(column).limit(1)._raw_first()
        return row.get(column.split(".")[-1]) if row else None

    async def _raw_first(self) -> Optional[Dict[str, Any]]:
        return await self._require_connection().fetch_one(self.to_sql(), self._bindings)

    async def get_column(self) -> List[Any]:
        """Values of the first selected column for every row."""
        rows = await self._require_connection().fetch_all(self.to_sql(), self._bindings)
        return [next(iter(row.values())) for row in rows if row]

    async def pluck(self, column: str) -> List[Any]:
        return await self.clone().select(column).get_column()

    async def count(self) -> int:
        """
        ``COUNT(*)`` of the current query.

        Select list, ordering, limit and offset are swapped out only for the
        duration of the call.
        """
        saved = (self._selects, self._orders, self._limit, self._offset)
        self._selects = ["COUNT(*) as aggregate"]
        self._orders, self._limit, self._offset = [], None, None
        try:
            row = await self._raw_first()
        finally:
            self._selects, self._orders, self._limit, self._offset = saved
        return int(row["aggregate"]) if row else 0

    async def exists(self) -> bool:
        return await self.count() > 0

    async def doesnt_exist(self) -> bool:
        return not await self.exists()

    async def paginate(self, per_page: int = 15, page: int = 1, columns: Sequence[str] = ("*",)) -> Paginator:
        """
        Run a count query and a page query.

        Args:
            per_page: Page size
            page: 1-based page number (values below 1 become 1)
            columns: Columns of the page query
        """
        per_page = max(1, int(per_page))
        page = max(1, int(page))
        total = await self.clone().count()
        data = await self.clone().select(list(columns)).limit(per_page).offset((page - 1) * per_page).get()
        return Paginator(
            data=data,
            total=total,
            per_page=per_page,
            current_page=page,
            last_page=math.ceil(total / per_page),
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def insert(self, values: Mapping[str, Any]) -> bool:
        """Insert one row."""
        if not values:
            raise OrmError("Cannot insert an empty row.")
        table = self._require_table()
        bindings = {f":insert_{_placeholder_key(k)}": v for k, v in values.items()}
        sql = f"INSERT INTO {table} ({', '.join(values)}) VALUES ({', '.join(bindings)})"
        await self._require_connection().execute(sql, bindings)
        return True

    async def insert_many(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert several rows in one statement. Columns come from the first row."""
        if not rows:
            return 0
        table = self._require_table()
        columns = list(rows[0])
        bindings: Dict[str, Any] = {}
        groups = []
        for index, row in enumerate(rows):
            placeholders = []
            for column in columns:
                placeholder = f":insert_{index}_{_placeholder_key(column)}"
                bindings[placeholder] = row.get(column)
                placeholders.append(placeholder)
            groups.append(f"({', '.join(placeholders)})")
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(groups)}"
        result = await self._require_connection().execute(sql, bindings)
        return result.rowcount

    async def insert_get_id(self, values: Mapping[str, Any], key: str = "id") -> Any:
        """Insert one row and return its generated primary key."""
        from maniac.orm.connection import DatabaseDriver

        if not values:
            raise OrmError("Cannot insert an empty row.")
        table = self._require_table()
        bindings = {f":insert_{_placeholder_key(k)}": v for k, v in values.items()}
        sql = f"INSERT INTO {table} ({', '.join(values)}) VALUES ({', '.join(bindings)})"
        connection = self._require_connection()

        if self._driver() is DatabaseDriver.POSTGRESQL:
            row = await connection.fetch_one(f"{sql} RETURNING {key}", bindings)
            return row[key] if row else None
        result = await connection.execute(sql, bindings)
        return result.lastrowid

    async def update(self, values: Mapping[str, Any]) -> int:
        """
        Update the matching rows and return the affected row count.

        Raises:
            MissingWhereClauseError: No WHERE condition was added
        """
        if not self._wheres:
            raise MissingWhereClauseError("UPDATE")
        if not values:
            return 0
        table = self._require_table()
        bindings = dict(self._bindings)
        sets = []
        for column, value in values.items():
            placeholder = f":update_{_placeholder_key(column)}"
            bindings[placeholder] = value
            sets.append(f"{column} = {placeholder}")
        sql = f"UPDATE {table} SET {', '.join(sets)}{self._where_sql()}"
        result = await self._require_connection().execute(sql, bindings)
        return result.rowcount

    async def delete(self) -> int:
        """
        Delete the matching rows.

        Raises:
            MissingWhereClauseError: No WHERE condition was added
        """
        if not self._wheres:
            raise MissingWhereClauseError("DELETE")
        table = self._require_table()
        result = await self._require_connection().execute(f"DELETE FROM {table}{self._where_sql()}", self._bindings)
        return result.rowcount

    async def increment(self, column: str, amount: Union[int, float] = 1, extra: Optional[Mapping[str, Any]] = None) -> int:
        return await self._step(column, "+", amount, extra)

    async def decrement(self, column: str, amount: Union[int, float] = 1, extra: Optional[Mapping[str, Any]] = None) -> int:
        return await self._step(column, "-", amount, extra)

    async def _step(self, column: str, sign: str, amount: Union[int, float], extra: Optional[Mapping[str, Any]]) -> int:
        table = self._require_table()
        bindings = dict(self._bindings)
        bindings[":amount"] = amount
        sets = [f"{column} = {column} {sign} :amount"]
        for key, value in (extra or {}).items():
            placeholder = f":update_{_placeholder_key(key)}"
            bindings[placeholder] = value
            sets.append(f"{key} = {placeholder}")
        sql = f"UPDATE {table} SET {', '.join(sets)}{self._where_sql()}"
        result = await self._require_connection().execute(sql, bindings)
        return result.rowcount

    def __repr__(self) -> str:
        try:
            return f"<QueryBuilder {self.to_sql()}>"
        except OrmError:
            return "<QueryBuilder (no table)>"
