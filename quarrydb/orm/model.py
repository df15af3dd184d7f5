"""Active Record base model.

Subclass :class:`Model` and describe the table with class attributes::

    class User(Model):
        fillable = ["name", "email"]
        hidden = ["password"]

    user = User.create(db, {"name": "Ann", "email": "ann@example.com"})
    user["name"] = "Bob"
    user.save()

The connection manager is always passed in explicitly (``db``); a model
remembers the manager it was created with and uses it for ``save`` and
``delete``.

Instance state is split into three composed parts: an
:class:`~quarrydb.orm.attributes.AttributeStore` (values and change tracking),
a :class:`~quarrydb.orm.guard.GuardPolicy` (mass assignment) and a
:class:`~quarrydb.orm.attributes.VisibilityPolicy` (serialisation).
"""
from __future__ import annotations

import datetime
import json
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from quarrydb.collection import Collection
from quarrydb.errors import MissingPrimaryKeyError, ModelError
from quarrydb.orm.attributes import AttributeStore, VisibilityPolicy
from quarrydb.orm.builder import ModelBuilder
from quarrydb.orm.guard import GuardPolicy

if TYPE_CHECKING:
    from quarrydb.connection.base import Connection
    from quarrydb.connection.manager import ConnectionManager

M = TypeVar("M", bound="Model")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pluralize(word: str) -> str:
    """English plural good enough for table names."""
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


class Model:
    """Base class for table-backed entities.

    Class attributes:
        table: Table name; defaults to the snake-cased plural of the class name.
        primary_key: Key column, or ``None`` for key-less tables.
        incrementing: The key is generated by the database on insert.
        timestamps: Maintain ``CREATED_AT`` / ``UPDATED_AT`` on save.
        fillable: Keys :meth:`fill` may assign while ``guarded``.
        guarded: Restrict :meth:`fill` to ``fillable``.
        hidden: Keys left out of :meth:`to_dict`.
        visible: When non-empty, the only keys :meth:`to_dict` includes.
        connection: Connection name; ``None`` uses the manager's default.
    """

    table: ClassVar[str | None] = None
    primary_key: ClassVar[str | None] = "id"
    incrementing: ClassVar[bool] = True
    timestamps: ClassVar[bool] = True
    fillable: ClassVar[list[str]] = []
    guarded: ClassVar[bool] = True
    hidden: ClassVar[list[str]] = []
    visible: ClassVar[list[str]] = []
    connection: ClassVar[str | None] = None

    CREATED_AT: ClassVar[str] = "created_at"
    UPDATED_AT: ClassVar[str] = "updated_at"

    def __init__(
        self,
        attributes: Mapping[str, Any] | None = None,
        *,
        db: ConnectionManager | None = None,
    ) -> None:
        self.db = db
        self.exists = False
        self.connection_name = type(self).connection
        self.store = AttributeStore()
        self.guard = GuardPolicy(list(type(self).fillable), type(self).guarded)
        self.visibility = VisibilityPolicy(list(type(self).hidden), list(type(self).visible))
        self.fill(attributes or {})

    # ------------------------------------------------------------------
    # Class-level entry points
    # ------------------------------------------------------------------

    @classmethod
    def query(cls: type[M], db: ConnectionManager) -> ModelBuilder[M]:
        return cls(db=db).new_query()

    @classmethod
    def all(cls: type[M], db: ConnectionManager, columns: Sequence[str] | None = None) -> Collection[M]:
        return cls.query(db).get(columns)

    @classmethod
    def find(cls: type[M], db: ConnectionManager, id: Any, columns: Sequence[str] | None = None) -> M | None:
        return cls.query(db).find(id, columns)

    @classmethod
    def create(cls: type[M], db: ConnectionManager, attributes: Mapping[str, Any] | None = None) -> M:
        return cls.query(db).create(attributes)

    @classmethod
    def get_table(cls) -> str:
        return cls.table or snake_case(pluralize(cls.__name__))

    @classmethod
    def get_key_name(cls) -> str | None:
        return cls.primary_key

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def new_query(self: M) -> ModelBuilder[M]:
        return ModelBuilder(self.get_connection().query(), self)

    def new_instance(self: M, attributes: Mapping[str, Any] | None = None, exists: bool = False) -> M:
        model = type(self)(db=self.db)
        model.exists = exists
        model.connection_name = self.connection_name
        model.fill(attributes or {})
        return model

    def new_from_builder(self: M, row: Mapping[str, Any]) -> M:
        """Create a persisted instance from a database row."""
        model = self.new_instance(exists=True)
        model.store.set_raw(row, sync=True)
        return model

    def get_connection(self) -> Connection:
        if self.db is None:
            raise ModelError(f"Model [{type(self).__name__}] has no connection manager.")
        return self.db.connection(self.connection_name)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def fill(self: M, attributes: Mapping[str, Any]) -> M:
        """Mass assign the keys the guard lets through; the rest are dropped."""
        for key, value in self.guard.fillable_from(attributes).items():
            self.set_attribute(key, value)
        return self

    def force_fill(self: M, attributes: Mapping[str, Any]) -> M:
        for key, value in attributes.items():
            self.set_attribute(key, value)
        return self

    def get_attribute(self, key: str) -> Any:
        return self.store.get(key)

    def set_attribute(self, key: str, value: Any) -> None:
        self.store.set(key, value)

    def get_attributes(self) -> dict[str, Any]:
        return self.store.attributes

    def __getitem__(self, key: str) -> Any:
        if key not in self.store.attributes:
            raise KeyError(key)
        return self.store.attributes[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set_attribute(key, value)

    def __contains__(self, key: object) -> bool:
        return key in self.store.attributes

    def get_key(self) -> Any:
        key_name = self.get_key_name()
        return self.get_attribute(key_name) if key_name else None

    def get_original(self, key: str | None = None, default: Any = None) -> Any:
        if key is None:
            return dict(self.store.original)
        return self.store.original.get(key, default)

    def is_dirty(self, *keys: str) -> bool:
        return self.store.is_dirty(keys)

    def is_clean(self, *keys: str) -> bool:
        return not self.is_dirty(*keys)

    def get_dirty(self) -> dict[str, Any]:
        return self.store.get_dirty()

    def get_changes(self) -> dict[str, Any]:
        return dict(self.store.changes)

    def was_changed(self, *keys: str) -> bool:
        return self.store.has_changes(self.store.changes, keys)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> bool:
        """Insert or update the row.

        A persisted model is only written when it is dirty.  After a
        successful save the current attributes become the new original.
        """
        query = self.new_query()
        if self.exists:
            saved = self._perform_update(query) if self.is_dirty() else True
        else:
            saved = self._perform_insert(query)

        if saved:
            self.store.sync_original()
        return saved

    def update(self, attributes: Mapping[str, Any] | None = None) -> bool:
        """Fill and save; returns ``False`` for a model that was never persisted."""
        if not self.exists:
            return False
        return self.fill(attributes or {}).save()

    def delete(self) -> bool:
        """Delete the row by its original key.

        Raises:
            MissingPrimaryKeyError: If the model class declares no primary key.
        """
        if self.get_key_name() is None:
            raise MissingPrimaryKeyError(type(self).__name__)
        if not self.exists:
            return False
        self._set_keys_for_save_query(self.new_query()).delete()
        self.exists = False
        return True

    def _perform_update(self, query: ModelBuilder[Any]) -> bool:
        if self.timestamps:
            self.force_fill({self.UPDATED_AT: self.fresh_timestamp()})

        dirty = self.get_dirty()
        if dirty:
            self._set_keys_for_save_query(query).update(dirty)
            self.store.sync_changes()
        return True

    def _perform_insert(self, query: ModelBuilder[Any]) -> bool:
        if self.timestamps:
            now = self.fresh_timestamp()
            self.force_fill({self.CREATED_AT: now, self.UPDATED_AT: now})

        attributes = dict(self.get_attributes())
        key_name = self.get_key_name()
        if self.incrementing and key_name is not None:
            self.set_attribute(key_name, query.get_query().insert_get_id(attributes))
        else:
            if not attributes:
                return True
            query.get_query().insert(attributes)

        self.exists = True
        return True

    def _set_keys_for_save_query(self, query: ModelBuilder[Any]) -> ModelBuilder[Any]:
        key_name = self.get_key_name()
        return query.where(key_name, "=", self.store.original.get(key_name, self.get_key()))

    @staticmethod
    def fresh_timestamp() -> datetime.datetime:
        return datetime.datetime.now().replace(microsecond=0)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return self.visibility.apply(self.get_attributes())

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_dict(), default=str, **kwargs)

    def make_hidden(self: M, *keys: str) -> M:
        self.visibility.make_hidden(keys)
        return self

    def make_visible(self: M, *keys: str) -> M:
        self.visibility.make_visible(keys)
        return self

    def set_hidden(self: M, hidden: Iterable[str]) -> M:
        self.visibility.hidden = list(hidden)
        return self

    def set_visible(self: M, visible: Iterable[str]) -> M:
        self.visibility.visible = list(visible)
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.store.attributes!r})"
