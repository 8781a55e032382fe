"""
ORM Exceptions
==============

Contract violations (bad operator, missing WHERE, non-fillable assignment)
are raised before any SQL runs. Driver failures surface as ``QueryError``
carrying the statement and its bindings.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

from maniac.core.exceptions import ManiacError, NotFoundException

class OrmError(ManiacError):
    """Base ORM error."""
    pass

class InvalidOperatorError(OrmError, ValueError):
    def __init__(self, operator: str) -> None:
        super().__init__(f"Invalid SQL operator: {operator}")
        self.operator = operator

class InvalidJoinTypeError(OrmError, ValueError):
    def __init__(self, join_type: str) -> None:
        super().__init__(f"Invalid join type: {join_type}")
        self.join_type = join_type

class MissingWhereClauseError(OrmError):
    """UPDATE or DELETE attempted without a WHERE clause."""

    def __init__(self, statement: str) -> None:
        super().__init__(
            f"{statement} without a WHERE clause is not allowed. "
            f"Add a where() condition to scope the {statement.lower()}."
        )
        self.statement = statement

class NotFillableError(OrmError, AttributeError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Attribute '{key}' is not fillable.")
        self.key = key

class ModelNotFoundError(NotFoundException, OrmError):
    """``find_or_fail`` found no row. Rendered as a 404 by the router."""

    def __init__(self, model: str, key: Any) -> None:
        super().__init__(f"{model} with ID {key} not found.")
        self.model = model
        self.key = key

class QueryError(OrmError):
    """
    A statement failed in the database driver.

    Attributes:
        sql: The statement as sent to the driver
        bindings: Values bound to the statement
    """

    def __init__(
        self,
        message: str,
        sql: str = "",
        bindings: Optional[Union[Mapping[str, Any], Sequence[Any]]] = None,
    ) -> None:
        super().__init__(f"Database query failed: {message}")
        self.sql = sql
        self.bindings = bindings

class SchemaError(OrmError):
    pass

class MigrationError(OrmError):
    pass
