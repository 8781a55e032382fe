"""
Maniac ORM
==========

Async Active Record ORM with:
- Fluent query builder with named bindings
- Model base class with dirty tracking and eager relations
- Schema builder (MySQL, SQLite and PostgreSQL DDL)
- File based migrations and seeders
"""

from maniac.orm.connection import (
    Connection,
    ConnectionPool,
    Database,
    DatabaseConfig,
    DatabaseDriver,
)
from maniac.orm.exceptions import (
    InvalidJoinTypeError,
    InvalidOperatorError,
    MigrationError,
    MissingWhereClauseError,
    ModelNotFoundError,
    NotFillableError,
    OrmError,
    QueryError,
    SchemaError,
)
from maniac.orm.migrations import Migration, MigrationCreator, Migrator
from maniac.orm.model import Attribute, Model
from maniac.orm.query import JoinType, Paginator, QueryBuilder
from maniac.orm.schema import Blueprint, ColumnDefinition, ForeignKeyDefinition, Schema
from maniac.orm.seeder import Seeder

__all__ = [
    # Connection
    "Connection",
    "ConnectionPool",
    "Database",
    "DatabaseConfig",
    "DatabaseDriver",
    # Query
    "QueryBuilder",
    "JoinType",
    "Paginator",
    # Model
    "Model",
    "Attribute",
    # Schema
    "Schema",
    "Blueprint",
    "ColumnDefinition",
    "ForeignKeyDefinition",
    "Migration",
    "Migrator",
    "MigrationCreator",
    "Seeder",
    # Exceptions
    "OrmError",
    "InvalidOperatorError",
    "InvalidJoinTypeError",
    "MissingWhereClauseError",
    "NotFillableError",
    "ModelNotFoundError",
    "QueryError",
    "SchemaError",
    "MigrationError",
]
