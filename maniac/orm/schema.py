"""
Maniac Schema Builder
=====================

Declarative table definitions compiled to DDL.

Every column method of ``Blueprint`` returns a ``ColumnDefinition`` handle.
Modifiers (``nullable``, ``unsigned``, ``default``, ``unique``, ``index``)
act on that handle, and column methods can be chained from it, so both
styles below describe the same table.

Example:
    await schema.create("posts", lambda table: (
        table.id(),
        table.string("title").unique(),
        table.text("body").nullable(),
        table.boolean("published").default(False),
        table.big_integer("user_id").unsigned(),
        table.foreign("user_id").references("id", "users").on_delete("CASCADE"),
        table.timestamps(),
    ))

    await schema.create("tags", lambda t: t.id().string("name").unique())

MySQL output (the reference dialect):
    CREATE TABLE `tags` (`id` BIGINT UNSIGNED NOT NULL AUTO_INCREMENT,
    `name` VARCHAR(255) NOT NULL, PRIMARY KEY (`id`),
    UNIQUE `tags_name_unique` (`name`)) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
"""

from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

from maniac.orm.connection import DatabaseDriver
from maniac.orm.exceptions import QueryError, SchemaError

logger = logging.getLogger(__name__)

# Blueprint methods reachable from a column handle while chaining
_CHAINABLE = frozenset({
    "id", "string", "text", "medium_text", "long_text", "boolean", "decimal",
    "float", "double", "json", "jsonb", "enum", "date", "datetime", "integer",
    "big_integer", "timestamp", "timestamps", "foreign_id", "foreign",
})


class _CurrentTimestamp:
    def __repr__(self) -> str:
        return "CURRENT_TIMESTAMP"


CURRENT_TIMESTAMP = _CurrentTimestamp()


@dataclass
class IndexDefinition:
    type: str
    columns: List[str]
    name: str


@dataclass
class ColumnDefinition:
    """
    Handle on one column of a ``Blueprint``.

    Unknown column methods are forwarded to the owning blueprint so
    ``table.id().string("name")`` adds two columns.
    """

    blueprint: "Blueprint" = field(repr=False)
    name: str
    type: str
    is_unsigned: bool = False
    is_nullable: bool = False
    has_default: bool = False
    default_value: Any = None
    auto_increment: bool = False
    is_primary: bool = False
    allowed: List[str] = field(default_factory=list)

    def nullable(self, value: bool = True) -> "ColumnDefinition":
        self.is_nullable = value
        return self

    def unsigned(self) -> "ColumnDefinition":
        self.is_unsigned = True
        return self

    def default(self, value: Any) -> "ColumnDefinition":
        """Literal default. Booleans on ``TINYINT(1)`` columns become 1/0."""
        if isinstance(value, bool) and "TINYINT" in self.type:
            value = int(value)
        self.has_default = True
        self.default_value = value
        return self

    def use_current(self) -> "ColumnDefinition":
        self.has_default = True
        self.default_value = CURRENT_TIMESTAMP
        return self

    def primary(self) -> "ColumnDefinition":
        self.is_primary = True
        return self

    def unique(self, name: Optional[str] = None) -> "ColumnDefinition":
        self.blueprint.unique([self.name], name)
        return self

    def index(self, name: Optional[str] = None) -> "ColumnDefinition":
        self.blueprint.index([self.name], name)
        return self

    def full_text(self, name: Optional[str] = None) -> "ColumnDefinition":
        self.blueprint.full_text([self.name], name)
        return self

    def spatial(self, name: Optional[str] = None) -> "ColumnDefinition":
        self.blueprint.spatial([self.name], name)
        return self

    def __getattr__(self, name: str) -> Any:
        if name in _CHAINABLE:
            return getattr(self.blueprint, name)
        raise AttributeError(f"'ColumnDefinition' object has no attribute {name!r}")


class ForeignKeyDefinition:
    """
    Foreign key constraint.

    Example:
        table.foreign("user_id").references("id", "users").on_delete("CASCADE")
    """

    def __init__(self, column: str) -> None:
        self.column = column
        self.referenced_column: Optional[str] = None
        self.referenced_table: Optional[str] = None
        self.delete_action: Optional[str] = None
        self.update_action: Optional[str] = None

    def references(self, column: str, table: Optional[str] = None) -> "ForeignKeyDefinition":
        self.referenced_column = column
        if table is not None:
            self.referenced_table = table
        return self

    def on(self, table: str) -> "ForeignKeyDefinition":
        self.referenced_table = table
        return self

    def on_delete(self, action: str) -> "ForeignKeyDefinition":
        self.delete_action = action.upper()
        return self

    def on_update(self, action: str) -> "ForeignKeyDefinition":
        self.update_action = action.upper()
        return self

    @property
    def name(self) -> str:
        return f"fk_{self.referenced_table}_{self.column}"


class Blueprint:
    """
    Column, index and foreign key definitions for one table.

    A blueprint is executed once, by ``create`` or ``build``.
    """

    def __init__(self, table: str, engine: str = "InnoDB", charset: str = "utf8mb4") -> None:
        self.table = table
        self.engine_name = engine
        self.charset = charset
        self.columns: List[ColumnDefinition] = []
        self.indexes: List[IndexDefinition] = []
        self.foreign_keys: List[ForeignKeyDefinition] = []
        self.executed = False

    def engine(self, engine: str) -> "Blueprint":
        self.engine_name = engine
        return self

    def add_column(self, name: str, type: str, **options: Any) -> ColumnDefinition:
        column = ColumnDefinition(self, name, type, **options)
        self.columns.append(column)
        return column

    # Column types

    def id(self, name: str = "id") -> ColumnDefinition:
        """``BIGINT UNSIGNED AUTO_INCREMENT`` primary key."""
        return self.add_column(name, "BIGINT", is_unsigned=True, auto_increment=True, is_primary=True)

    def string(self, name: str, length: int = 255) -> ColumnDefinition:
        return self.add_column(name, f"VARCHAR({length})")

    def text(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "TEXT")

    def medium_text(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "MEDIUMTEXT")

    def long_text(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "LONGTEXT")

    def boolean(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "TINYINT(1)")

    def decimal(self, name: str, total: int = 8, places: int = 2) -> ColumnDefinition:
        return self.add_column(name, f"DECIMAL({total},{places})")

    def float(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "FLOAT")

    def double(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "DOUBLE")

    def json(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "JSON")

    def jsonb(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "JSONB")

    def enum(self, name: str, allowed: Sequence[str]) -> ColumnDefinition:
        values = ",".join(f"'{value}'" for value in allowed)
        return self.add_column(name, f"ENUM({values})", allowed=list(allowed))

    def date(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "DATE")

    def datetime(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "DATETIME")

    def integer(self, name: str, unsigned: bool = False) -> ColumnDefinition:
        return self.add_column(name, "INT", is_unsigned=unsigned)

    def big_integer(self, name: str, unsigned: bool = False) -> ColumnDefinition:
        return self.add_column(name, "BIGINT", is_unsigned=unsigned)

    def foreign_id(self, name: str) -> ColumnDefinition:
        """Unsigned BIGINT matching an ``id()`` column."""
        return self.big_integer(name, unsigned=True)

    def timestamp(self, name: str) -> ColumnDefinition:
        return self.add_column(name, "TIMESTAMP", is_nullable=True)

    def timestamps(self) -> ColumnDefinition:
        """Nullable ``created_at`` and ``updated_at``. Returns the latter."""
        self.timestamp("created_at").nullable()
        return self.timestamp("updated_at").nullable()

    # Indexes and keys

    def _add_index(self, type: str, suffix: str, columns: Union[str, Sequence[str]], name: Optional[str]) -> "Blueprint":
        columns = [columns] if isinstance(columns, str) else list(columns)
        if not columns:
            raise SchemaError(f"An index on '{self.table}' needs at least one column.")
        name = name or f"{self.table}_{'_'.join(columns)}_{suffix}"
        self.indexes.append(IndexDefinition(type, columns, name))
        return self

    def unique(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> "Blueprint":
        return self._add_index("UNIQUE", "unique", columns, name)

    def index(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> "Blueprint":
        return self._add_index("INDEX", "index", columns, name)

    def full_text(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> "Blueprint":
        return self._add_index("FULLTEXT", "fulltext", columns, name)

    def spatial(self, columns: Union[str, Sequence[str]], name: Optional[str] = None) -> "Blueprint":
        return self._add_index("SPATIAL", "spatial", columns, name)

    def foreign(self, column: str) -> ForeignKeyDefinition:
        foreign = ForeignKeyDefinition(column)
        self.foreign_keys.append(foreign)
        return foreign

    # Compilation

    def to_create_sql(self, grammar: Optional["Grammar"] = None, server_version: Optional[str] = None) -> List[str]:
        return (grammar or MySqlGrammar()).compile_create(self, server_version)

    def to_alter_sql(self, grammar: Optional["Grammar"] = None, server_version: Optional[str] = None) -> List[str]:
        return (grammar or MySqlGrammar()).compile_alter(self, server_version)


def _version_tuple(version: Optional[str]) -> tuple:
    numbers = re.findall(r"\d+", version or "")[:3]
    return tuple(int(n) for n in numbers) if numbers else (0,)


class Grammar:
    """
    MySQL DDL grammar. Other dialects override the pieces that differ.
    """

    quote_char = "`"
    supports_inline_indexes = True

    def wrap(self, name: str) -> str:
        return f"{self.quote_char}{name}{self.quote_char}"

    def column_type(self, column: ColumnDefinition) -> str:
        return column.type

    def format_default(self, value: Any) -> str:
        if value is CURRENT_TIMESTAMP:
            return "CURRENT_TIMESTAMP"
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, str):
            return "'" + value.replace("'", "''") + "'"
        return str(value)

    def column_sql(self, column: ColumnDefinition) -> str:
        sql = f"{self.wrap(column.name)} {self.column_type(column)}"
        if column.is_unsigned:
            sql += " UNSIGNED"
        sql += " NULL" if column.is_nullable else " NOT NULL"
        if column.has_default:
            sql += f" DEFAULT {self.format_default(column.default_value)}"
        if column.auto_increment:
            sql += " AUTO_INCREMENT"
        return sql

    def primary_columns(self, blueprint: Blueprint) -> List[str]:
        return [column.name for column in blueprint.columns if column.is_primary]

    def index_sql(self, index: IndexDefinition) -> str:
        columns = ", ".join(self.wrap(column) for column in index.columns)
        prefix = "INDEX" if index.type == "INDEX" else index.type
        return f"{prefix} {self.wrap(index.name)} ({columns})"

    def foreign_sql(self, foreign: ForeignKeyDefinition) -> str:
        if not foreign.referenced_table or not foreign.referenced_column:
            raise SchemaError(f"Foreign key on '{foreign.column}' is missing references(column, table).")
        sql = (
            f"CONSTRAINT {self.wrap(foreign.name)} FOREIGN KEY ({self.wrap(foreign.column)}) "
            f"REFERENCES {self.wrap(foreign.referenced_table)} ({self.wrap(foreign.referenced_column)})"
        )
        if foreign.delete_action:
            sql += f" ON DELETE {foreign.delete_action}"
        if foreign.update_action:
            sql += f" ON UPDATE {foreign.update_action}"
        return sql

    def keep_index(self, blueprint: Blueprint, index: IndexDefinition, server_version: Optional[str]) -> bool:
        if index.type == "FULLTEXT" and blueprint.engine_name == "InnoDB":
            if _version_tuple(server_version) < (5, 6, 0):
                logger.warning(
                    f"Skipping FULLTEXT index '{index.name}' on '{blueprint.table}' "
                    f"as InnoDB does not support it in MySQL < 5.6"
                )
                return False
        return True

    def compile_create(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        definitions = [self.column_sql(column) for column in blueprint.columns]
        primary = self.primary_columns(blueprint)
        if primary:
            definitions.append(f"PRIMARY KEY ({', '.join(self.wrap(c) for c in primary)})")
        for index in blueprint.indexes:
            if self.keep_index(blueprint, index, server_version):
                definitions.append(self.index_sql(index))
        for foreign in blueprint.foreign_keys:
            definitions.append(self.foreign_sql(foreign))

        return [
            f"CREATE TABLE {self.wrap(blueprint.table)} ({', '.join(definitions)}) "
            f"ENGINE={blueprint.engine_name} DEFAULT CHARSET={blueprint.charset}"
        ]

    def compile_alter(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        statements = [f"ADD {self.column_sql(column)}" for column in blueprint.columns]
        for index in blueprint.indexes:
            if self.keep_index(blueprint, index, server_version):
                statements.append(f"ADD {self.index_sql(index)}")
        for foreign in blueprint.foreign_keys:
            statements.append(f"ADD {self.foreign_sql(foreign)}")
        if not statements:
            return []
        return [f"ALTER TABLE {self.wrap(blueprint.table)} {', '.join(statements)}"]

    def compile_has_table(self) -> str:
        return (
            "SELECT COUNT(*) AS aggregate FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = :table"
        )

    def compile_has_column(self) -> str:
        return (
            "SELECT COUNT(*) AS aggregate FROM information_schema.columns "
            "WHERE table_schema = DATABASE() AND table_name = :table AND column_name = :column"
        )

    def compile_rename(self, source: str, target: str) -> str:
        return f"RENAME TABLE {self.wrap(source)} TO {self.wrap(target)}"


MySqlGrammar = Grammar


class _StandaloneIndexGrammar(Grammar):
    """Dialects where secondary indexes are separate CREATE INDEX statements."""

    quote_char = '"'

    def column_type(self, column: ColumnDefinition) -> str:
        if column.allowed:
            values = ", ".join(self.format_default(value) for value in column.allowed)
            return f"VARCHAR(255) CHECK ({self.wrap(column.name)} IN ({values}))"
        return column.type

    def keep_index(self, blueprint: Blueprint, index: IndexDefinition, server_version: Optional[str]) -> bool:
        if index.type in ("FULLTEXT", "SPATIAL"):
            logger.warning(f"Skipping {index.type} index '{index.name}' on '{blueprint.table}': not supported by this driver")
            return False
        return True

    def create_index_sql(self, blueprint: Blueprint, index: IndexDefinition) -> str:
        unique = "UNIQUE " if index.type == "UNIQUE" else ""
        columns = ", ".join(self.wrap(column) for column in index.columns)
        return f"CREATE {unique}INDEX {self.wrap(index.name)} ON {self.wrap(blueprint.table)} ({columns})"

    def _indexes(self, blueprint: Blueprint, server_version: Optional[str]) -> List[str]:
        return [
            self.create_index_sql(blueprint, index)
            for index in blueprint.indexes
            if self.keep_index(blueprint, index, server_version)
        ]


class SQLiteGrammar(_StandaloneIndexGrammar):
    def column_sql(self, column: ColumnDefinition) -> str:
        if column.auto_increment:
            return f"{self.wrap(column.name)} INTEGER PRIMARY KEY AUTOINCREMENT"
        sql = f"{self.wrap(column.name)} {self.column_type(column)}"
        sql += " NULL" if column.is_nullable else " NOT NULL"
        if column.has_default:
            sql += f" DEFAULT {self.format_default(column.default_value)}"
        return sql

    def primary_columns(self, blueprint: Blueprint) -> List[str]:
        if any(column.auto_increment for column in blueprint.columns):
            return []
        return super().primary_columns(blueprint)

    def compile_create(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        definitions = [self.column_sql(column) for column in blueprint.columns]
        primary = self.primary_columns(blueprint)
        if primary:
            definitions.append(f"PRIMARY KEY ({', '.join(self.wrap(c) for c in primary)})")
        definitions.extend(self.foreign_sql(foreign) for foreign in blueprint.foreign_keys)
        create = f"CREATE TABLE {self.wrap(blueprint.table)} ({', '.join(definitions)})"
        return [create] + self._indexes(blueprint, server_version)

    def compile_alter(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        if blueprint.foreign_keys:
            raise SchemaError("SQLite cannot add foreign keys to an existing table.")
        statements = [
            f"ALTER TABLE {self.wrap(blueprint.table)} ADD COLUMN {self.column_sql(column)}"
            for column in blueprint.columns
        ]
        return statements + self._indexes(blueprint, server_version)

    def compile_has_table(self) -> str:
        return "SELECT COUNT(*) AS aggregate FROM sqlite_master WHERE type = 'table' AND name = :table"

    def compile_has_column(self) -> str:
        return "SELECT COUNT(*) AS aggregate FROM pragma_table_info(:table) WHERE name = :column"

    def compile_rename(self, source: str, target: str) -> str:
        return f"ALTER TABLE {self.wrap(source)} RENAME TO {self.wrap(target)}"


class PostgresGrammar(_StandaloneIndexGrammar):
    TYPES = {
        "TINYINT(1)": "BOOLEAN",
        "DATETIME": "TIMESTAMP",
        "DOUBLE": "DOUBLE PRECISION",
        "MEDIUMTEXT": "TEXT",
        "LONGTEXT": "TEXT",
        "INT": "INTEGER",
    }

    def column_type(self, column: ColumnDefinition) -> str:
        if column.auto_increment:
            return "BIGSERIAL" if column.type == "BIGINT" else "SERIAL"
        if column.allowed:
            return super().column_type(column)
        return self.TYPES.get(column.type, column.type)

    def format_default(self, value: Any) -> str:
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        return super().format_default(value)

    def column_sql(self, column: ColumnDefinition) -> str:
        sql = f"{self.wrap(column.name)} {self.column_type(column)}"
        sql += " NULL" if column.is_nullable else " NOT NULL"
        if column.has_default:
            value = column.default_value
            if column.type == "TINYINT(1)" and isinstance(value, int) and not isinstance(value, bool):
                value = bool(value)
            sql += f" DEFAULT {self.format_default(value)}"
        return sql

    def compile_create(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        definitions = [self.column_sql(column) for column in blueprint.columns]
        primary = self.primary_columns(blueprint)
        if primary:
            definitions.append(f"PRIMARY KEY ({', '.join(self.wrap(c) for c in primary)})")
        definitions.extend(self.foreign_sql(foreign) for foreign in blueprint.foreign_keys)
        create = f"CREATE TABLE {self.wrap(blueprint.table)} ({', '.join(definitions)})"
        return [create] + self._indexes(blueprint, server_version)

    def compile_alter(self, blueprint: Blueprint, server_version: Optional[str] = None) -> List[str]:
        parts = [f"ADD COLUMN {self.column_sql(column)}" for column in blueprint.columns]
        parts.extend(f"ADD {self.foreign_sql(foreign)}" for foreign in blueprint.foreign_keys)
        statements = [f"ALTER TABLE {self.wrap(blueprint.table)} {', '.join(parts)}"] if parts else []
        return statements + self._indexes(blueprint, server_version)

    def compile_has_table(self) -> str:
        return (
            "SELECT COUNT(*) AS aggregate FROM information_schema.tables "
            "WHERE table_schema = current_schema() AND table_name = :table"
        )

    def compile_has_column(self) -> str:
        return (
            "SELECT COUNT(*) AS aggregate FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = :table AND column_name = :column"
        )

    def compile_rename(self, source: str, target: str) -> str:
        return f"ALTER TABLE {self.wrap(source)} RENAME TO {self.wrap(target)}"


GRAMMARS = {
    DatabaseDriver.MYSQL: MySqlGrammar,
    DatabaseDriver.SQLITE: SQLiteGrammar,
    DatabaseDriver.POSTGRESQL: PostgresGrammar,
}


class Schema:
    """
    Runs blueprints against a connection.

    Example:
        schema = Schema(db)
        await schema.create("users", lambda table: (
            table.id(),
            table.string("email").unique(),
        ))
        if await schema.has_table("users"):
            await schema.drop_if_exists("users")
    """

    def __init__(self, connection: Any, grammar: Optional[Grammar] = None) -> None:
        self.connection = connection
        driver = getattr(connection, "driver", DatabaseDriver.MYSQL)
        self.grammar = grammar or GRAMMARS.get(driver, MySqlGrammar)()

    async def _build(self, blueprint: Blueprint, callback: Callable[[Blueprint], Any]) -> Blueprint:
        result = callback(blueprint)
        if inspect.isawaitable(result):
            await result
        return blueprint

    async def _server_version(self, blueprint: Blueprint) -> Optional[str]:
        if any(index.type == "FULLTEXT" for index in blueprint.indexes):
            return await self.connection.server_version()
        return None

    async def _run(self, blueprint: Blueprint, statements: List[str], action: str) -> None:
        if blueprint.executed:
            raise SchemaError(f"Blueprint for '{blueprint.table}' has already been executed.")
        blueprint.executed = True
        for sql in statements:
            try:
                await self.connection.execute(sql)
            except QueryError as exc:
                logger.error(f"Failed to {action} table '{blueprint.table}': {exc} | SQL: {sql}")
                raise SchemaError(f"Failed to {action} table '{blueprint.table}': {exc}") from exc

    async def create(self, table: str, callback: Callable[[Blueprint], Any]) -> Blueprint:
        """Define and create a new table."""
        blueprint = await self._build(Blueprint(table), callback)
        statements = self.grammar.compile_create(blueprint, await self._server_version(blueprint))
        await self._run(blueprint, statements, "create")
        return blueprint

    async def table(self, table: str, callback: Callable[[Blueprint], Any]) -> Blueprint:
        """Add columns, indexes or foreign keys to an existing table."""
        blueprint = await self._build(Blueprint(table), callback)
        statements = self.grammar.compile_alter(blueprint, await self._server_version(blueprint))
        await self._run(blueprint, statements, "alter")
        return blueprint

    async def drop(self, table: str) -> None:
        await self.connection.execute(f"DROP TABLE {self.grammar.wrap(table)}")

    async def drop_if_exists(self, table: str) -> None:
        await self.connection.execute(f"DROP TABLE IF EXISTS {self.grammar.wrap(table)}")

    async def rename(self, source: str, target: str) -> None:
        await self.connection.execute(self.grammar.compile_rename(source, target))

    async def has_table(self, table: str) -> bool:
        row = await self.connection.fetch_one(self.grammar.compile_has_table(), {"table": table})
        return bool(row and int(row["aggregate"]))

    async def has_column(self, table: str, column: str) -> bool:
        row = await self.connection.fetch_one(
            self.grammar.compile_has_column(), {"table": table, "column": column}
        )
        return bool(row and int(row["aggregate"]))
