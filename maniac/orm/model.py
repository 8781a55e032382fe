"""
Maniac ORM Model
================

Active Record style base class.

Features:
- Attribute storage with dirty tracking against the loaded snapshot
- Mass assignment restricted by ``fillable``
- Explicit accessor/mutator table built from ``Attribute`` declarations
- Eager relations (``has_many``, ``belongs_to``, ``belongs_to_many``)
- Table name inferred as ``snake_case(ClassName) + "s"``

Example:
    class User(Model):
        fillable = ["name", "email", "password"]

        name = Attribute(get=str.title)
        password = Attribute(set=hash_password)

        async def posts(self):
            return await self.has_many(Post)

    Model.use(db)

    user = await User.create({"name": "ada lovelace", "email": "ada@example.com"})
    user.name                       # "Ada Lovelace"
    user.email = "ada@analytical.engine"
    await user.save()               # UPDATE users SET email = ... WHERE id = ...
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from maniac.orm.exceptions import ModelNotFoundError, NotFillableError, OrmError
from maniac.orm.query import _UNSET, Paginator, QueryBuilder
from maniac.utils.helpers import snake_case

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="Model")


class Attribute:
    """
    Accessor/mutator declaration for one model field.

    ``get`` transforms the stored value on read, ``set`` transforms an
    incoming value before it is stored. Either may be omitted.

    Example:
        class Product(Model):
            sku = Attribute(set=str.upper)
            price = Attribute(get=lambda cents: (cents or 0) / 100)
    """

    def __init__(
        self,
        get: Optional[Callable[[Any], Any]] = None,
        set: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.get = get
        self.set = set
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Optional["Model"], objtype: Optional[type] = None) -> Any:
        if obj is None:
            return self
        return obj.get_attribute(self.name)

    def __set__(self, obj: "Model", value: Any) -> None:
        obj.__setattr__(self.name, value)

    def __repr__(self) -> str:
        return f"Attribute({self.name!r}, get={self.get is not None}, set={self.set is not None})"


class ModelMeta(type):
    """Collects ``Attribute`` declarations and infers the table name."""

    def __new__(mcs, name: str, bases: Tuple[type, ...], namespace: Dict[str, Any]) -> "ModelMeta":
        accessors: Dict[str, Attribute] = {}
        for base in reversed(bases):
            accessors.update(getattr(base, "_accessors", {}))
        for key, value in namespace.items():
            if isinstance(value, Attribute):
                accessors[key] = value
        namespace["_accessors"] = accessors

        if "__table_name__" not in namespace and bases:
            namespace["__table_name__"] = snake_case(name) + "s"

        return super().__new__(mcs, name, bases, namespace)


class Model(metaclass=ModelMeta):
    """
    Base model.

    Class attributes:
        __table_name__: Table name (inferred when omitted)
        fillable: Keys accepted by mass assignment. Empty means unrestricted.
        primary_key: Primary key column
    """

    __table_name__: ClassVar[str] = ""
    fillable: ClassVar[List[str]] = []
    primary_key: ClassVar[str] = "id"

    _accessors: ClassVar[Dict[str, Attribute]]
    _database: ClassVar[Any] = None

    _attributes: Dict[str, Any]
    _original: Dict[str, Any]
    _exists: bool

    def __init__(self, attributes: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        object.__setattr__(self, "_attributes", {})
        object.__setattr__(self, "_original", {})
        object.__setattr__(self, "_exists", False)
        self.fill({**(attributes or {}), **kwargs})

    # ------------------------------------------------------------------
    # Attribute access
    # ------------------------------------------------------------------

    def get_attribute(self, key: str) -> Any:
        value = self._attributes.get(key)
        accessor = self._accessors.get(key)
        if accessor is not None and accessor.get is not None:
            return accessor.get(value)
        return value

    def set_attribute(self, key: str, value: Any) -> None:
        """Store a value, applying the mutator if one is declared. No fillable check."""
        mutator = self._accessors.get(key)
        if mutator is not None and mutator.set is not None:
            value = mutator.set(value)
        self._attributes[key] = value

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        attributes = self.__dict__.get("_attributes")
        if attributes is not None and (key in attributes or key in self.fillable):
            return self.get_attribute(key)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {key!r}")

    def __setattr__(self, key: str, value: Any) -> None:
        if key.startswith("_"):
            object.__setattr__(self, key, value)
            return
        if self.fillable and key not in self.fillable:
            raise NotFillableError(key)
        self.set_attribute(key, value)

    def __getitem__(self, key: str) -> Any:
        return self.get_attribute(key)

    def __contains__(self, key: str) -> bool:
        return key in self._attributes

    def fill(self: T, attributes: Mapping[str, Any]) -> T:
        """Mass-assign, silently skipping keys outside ``fillable``."""
        for key, value in attributes.items():
            if not self.fillable or key in self.fillable:
                self.set_attribute(key, value)
        return self

    def get_key(self) -> Any:
        return self._attributes.get(self.primary_key)

    @property
    def exists(self) -> bool:
        return self._exists

    def get_dirty(self) -> Dict[str, Any]:
        """Attributes that differ from the last loaded or saved snapshot."""
        dirty = {}
        for key, value in self._attributes.items():
            if self.fillable and key not in self.fillable:
                continue
            if key not in self._original or self._original[key] != value:
                dirty[key] = value
        return dirty

    def is_dirty(self, key: Optional[str] = None) -> bool:
        dirty = self.get_dirty()
        return key in dirty if key is not None else bool(dirty)

    def sync_original(self) -> None:
        object.__setattr__(self, "_original", dict(self._attributes))

    def to_dict(self) -> Dict[str, Any]:
        return {key: self.get_attribute(key) for key in self._attributes}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.primary_key}={self.get_key()!r}>"

    def __eq__(self, other: Any) -> bool:
        if self is other:
            return True
        if not isinstance(other, type(self)) or self.get_key() is None:
            return False
        return self.get_key() == other.get_key()

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.get_key()))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def use(cls: Type[T], database: Any) -> Type[T]:
        """Bind a ``Database`` (or ``Connection``) to this model and its subclasses."""
        cls._database = database
        return cls

    @classmethod
    def connection(cls) -> Any:
        if cls._database is None:
            raise OrmError(f"No database bound to {cls.__name__}. Call Model.use(database) first.")
        return cls._database

    @classmethod
    def query(cls) -> QueryBuilder:
        return QueryBuilder(cls.connection(), cls.__table_name__, model=cls)

    @classmethod
    def hydrate(cls: Type[T], rows: Sequence[Mapping[str, Any]]) -> List[T]:
        """Wrap raw rows as existing, clean model instances."""
        models = []
        for row in rows:
            instance = cls.__new__(cls)
            object.__setattr__(instance, "_attributes", dict(row))
            object.__setattr__(instance, "_original", dict(row))
            object.__setattr__(instance, "_exists", True)
            models.append(instance)
        return models

    async def save(self) -> bool:
        """
        Insert or update the row.

        Nothing dirty means nothing to do: no SQL is issued. A new model
        inserts its fillable attributes and receives the generated key. An
        existing model updates exactly its dirty columns.
        """
        dirty = self.get_dirty()
        if not dirty:
            return True

        query = type(self).query()
        if self._exists:
            await query.where(self.primary_key, "=", self.get_key()).update(dirty)
        else:
            values = {
                key: value
                for key, value in self._attributes.items()
                if not self.fillable or key in self.fillable
            }
            key = await query.insert_get_id(values, self.primary_key)
            if key is not None:
                self._attributes[self.primary_key] = key
            self._exists = True

        self.sync_original()
        return True

    async def update(self, attributes: Mapping[str, Any]) -> bool:
        return await self.fill(attributes).save()

    async def delete(self) -> bool:
        if not self._exists:
            return False
        await type(self).query().where(self.primary_key, "=", self.get_key()).delete()
        self._exists = False
        return True

    async def refresh(self: T) -> T:
        """Reload attributes from the database."""
        fresh = await type(self).query().where(self.primary_key, "=", self.get_key()).first()
        if fresh is None:
            raise ModelNotFoundError(type(self).__name__, self.get_key())
        object.__setattr__(self, "_attributes", dict(fresh._attributes))
        self.sync_original()
        return self

    # ------------------------------------------------------------------
    # Class level queries
    # ------------------------------------------------------------------

    @classmethod
    def select(cls, *columns: str) -> QueryBuilder:
        return cls.query().select(*columns)

    @classmethod
    def where(cls, column: Any, operator: Any = _UNSET, value: Any = _UNSET) -> QueryBuilder:
        return cls.query().where(column, operator, value)

    @classmethod
    def where_like(cls, column: str, value: str) -> QueryBuilder:
        return cls.query().where_like(column, value)

    @classmethod
    async def all(cls: Type[T], columns: Sequence[str] = ("*",)) -> List[T]:
        return await cls.query().select(list(columns)).get()

    @classmethod
    async def find(cls: Type[T], id: Any, columns: Sequence[str] = ("*",)) -> Optional[T]:
        return await cls.query().select(list(columns)).where(cls.primary_key, "=", id).first()

    @classmethod
    async def find_or_fail(cls: Type[T], id: Any, columns: Sequence[str] = ("*",)) -> T:
        """
        Raises:
            ModelNotFoundError: No row with that key
        """
        instance = await cls.find(id, columns)
        if instance is None:
            raise ModelNotFoundError(cls.__name__, id)
        return instance

    @classmethod
    async def paginate(
        cls,
        per_page: int = 15,
        columns: Sequence[str] = ("*",),
        page_name: str = "page",
        page: Optional[int] = None,
    ) -> Paginator:
        """
        Paginate the whole table.

        When ``page`` is omitted it is read from the ``page_name`` query
        parameter of the request being handled, defaulting to 1.
        """
        if page is None:
            from maniac.core.request import current_request

            request = current_request.get(None)
            raw = request.query.get(page_name) if request is not None else None
            page = int(raw) if raw and raw.isdigit() else 1
        return await cls.query().paginate(per_page, page, columns)

    @classmethod
    async def create(cls: Type[T], attributes: Mapping[str, Any]) -> T:
        instance = cls(attributes)
        await instance.save()
        return instance

    @classmethod
    async def insert_many(cls, rows: Sequence[Mapping[str, Any]]) -> int:
        return await cls.query().insert_many(rows)

    @classmethod
    async def update_by_id(cls, id: Any, values: Mapping[str, Any]) -> bool:
        """Load, fill and save one row. False when no row has that key."""
        instance = await cls.find(id)
        if instance is None:
            return False
        return await instance.fill(values).save()

    @classmethod
    async def update_or_create(cls: Type[T], attributes: Mapping[str, Any], values: Mapping[str, Any]) -> T:
        instance = await cls.where(attributes).first()
        if instance is not None:
            await instance.fill(values).save()
            return instance
        return await cls.create({**attributes, **values})

    @classmethod
    async def first_or_create(cls: Type[T], attributes: Mapping[str, Any], values: Optional[Mapping[str, Any]] = None) -> T:
        instance = await cls.where(attributes).first()
        if instance is not None:
            return instance
        return await cls.create({**attributes, **(values or {})})

    @classmethod
    async def first_or_new(cls: Type[T], attributes: Mapping[str, Any], values: Optional[Mapping[str, Any]] = None) -> T:
        instance = await cls.where(attributes).first()
        if instance is not None:
            return instance
        return cls({**attributes, **(values or {})})

    @classmethod
    async def pluck(cls, column: str, conditions: Optional[Mapping[str, Any]] = None) -> List[Any]:
        query = cls.query()
        if conditions:
            query.where(conditions)
        return await query.pluck(column)

    @classmethod
    async def random(cls: Type[T]) -> Optional[T]:
        return await cls.query().in_random_order().first()

    @classmethod
    async def distinct(cls, column: str) -> List[Any]:
        return await cls.query().select(column).distinct().get_column()

    @classmethod
    async def increment(cls, column: str, amount: int = 1) -> int:
        """Add ``amount`` to ``column`` on every row."""
        return await cls.query().increment(column, amount)

    @classmethod
    async def decrement(cls, column: str, amount: int = 1) -> int:
        return await cls.query().decrement(column, amount)

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def _default_foreign_key(self) -> str:
        return f"{snake_case(type(self).__name__)}_id"

    async def has_many(
        self,
        related: Type[T],
        foreign_key: Optional[str] = None,
        local_key: Optional[str] = None,
    ) -> List[T]:
        """Rows of ``related`` whose ``foreign_key`` points at this model."""
        foreign_key = foreign_key or self._default_foreign_key()
        value = self.get_attribute(local_key or self.primary_key)
        return await related.where(foreign_key, "=", value).get()

    async def belongs_to(
        self,
        related: Type[T],
        foreign_key: Optional[str] = None,
        owner_key: Optional[str] = None,
    ) -> Optional[T]:
        """The ``related`` row this model's ``foreign_key`` points at."""
        foreign_key = foreign_key or f"{snake_case(related.__name__)}_id"
        value = self.get_attribute(foreign_key)
        if value is None:
            return None
        return await related.where(owner_key or related.primary_key, "=", value).first()

    async def belongs_to_many(
        self,
        related: Type[T],
        pivot_table: Optional[str] = None,
        foreign_pivot_key: Optional[str] = None,
        related_pivot_key: Optional[str] = None,
    ) -> List[T]:
        """
        Rows of ``related`` linked through a pivot table.

        The pivot defaults to both singular snake names in alphabetical
        order, e.g. ``role_user`` for ``User`` and ``Role``.
        """
        own = snake_case(type(self).__name__)
        other = snake_case(related.__name__)
        pivot_table = pivot_table or "_".join(sorted((own, other)))
        foreign_pivot_key = foreign_pivot_key or f"{own}_id"
        related_pivot_key = related_pivot_key or f"{other}_id"
        table = related.__table_name__

        return await (
            related.query()
            .select(f"{table}.*")
            .join(pivot_table, f"{table}.{related.primary_key}", "=", f"{pivot_table}.{related_pivot_key}")
            .where(f"{pivot_table}.{foreign_pivot_key}", "=", self.get_key())
            .get()
        )
