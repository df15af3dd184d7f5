"""Model-aware query builder.

:class:`ModelBuilder` wraps a :class:`~quarrydb.query.builder.QueryBuilder`
bound to one model's table.  Constraint methods forward to the wrapped
builder and return the model builder; read methods hydrate rows into model
instances::

    admins = User.query(db).where("role", "admin").latest().get()
    user = User.query(db).find_or_fail(7)
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from quarrydb.collection import Collection
from quarrydb.errors import MissingPrimaryKeyError, ModelNotFoundError
from quarrydb.query.builder import QueryBuilder
from quarrydb.query.clauses import Column

if TYPE_CHECKING:
    from quarrydb.orm.model import Model

M = TypeVar("M", bound="Model")


class ModelBuilder(Generic[M]):
    """Query builder that returns ``M`` instances.

    Args:
        query: Base builder; its ``from`` is set to the model's table.
        model: Prototype instance used to create and hydrate models.
    """

    def __init__(self, query: QueryBuilder, model: M) -> None:
        self.query = query
        self.model = model
        self.query.from_(model.get_table())

    # ------------------------------------------------------------------
    # Constraints (forwarded)
    # ------------------------------------------------------------------

    def where(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where(*args, **kwargs)
        return self

    def or_where(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.or_where(*args, **kwargs)
        return self

    def where_in(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_in(*args, **kwargs)
        return self

    def where_not_in(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_not_in(*args, **kwargs)
        return self

    def where_null(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_null(*args, **kwargs)
        return self

    def where_not_null(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_not_null(*args, **kwargs)
        return self

    def where_column(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_column(*args, **kwargs)
        return self

    def where_raw(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.where_raw(*args, **kwargs)
        return self

    def order_by(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.order_by(*args, **kwargs)
        return self

    def order_by_desc(self, column: Column) -> ModelBuilder[M]:
        self.query.order_by_desc(column)
        return self

    def latest(self, column: Column | None = None) -> ModelBuilder[M]:
        self.query.latest(column or self.model.CREATED_AT)
        return self

    def oldest(self, column: Column | None = None) -> ModelBuilder[M]:
        self.query.oldest(column or self.model.CREATED_AT)
        return self

    def limit(self, value: int | None) -> ModelBuilder[M]:
        self.query.limit(value)
        return self

    def take(self, value: int | None) -> ModelBuilder[M]:
        return self.limit(value)

    def offset(self, value: int) -> ModelBuilder[M]:
        self.query.offset(value)
        return self

    def skip(self, value: int) -> ModelBuilder[M]:
        return self.offset(value)

    def group_by(self, *groups: Column | Sequence[Column]) -> ModelBuilder[M]:
        self.query.group_by(*groups)
        return self

    def having(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.having(*args, **kwargs)
        return self

    def select(self, *columns: Column | Sequence[Column]) -> ModelBuilder[M]:
        self.query.select(*columns)
        return self

    def join(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.join(*args, **kwargs)
        return self

    def left_join(self, *args: Any, **kwargs: Any) -> ModelBuilder[M]:
        self.query.left_join(*args, **kwargs)
        return self

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, columns: Sequence[Column] | None = None) -> Collection[M]:
        return self.hydrate(self.query.get(columns))

    def first(self, columns: Sequence[Column] | None = None) -> M | None:
        row = self.query.first(columns)
        if row is None:
            return None
        return self.hydrate([row]).first()

    def find(self, id: Any, columns: Sequence[Column] | None = None) -> M | None:
        """Return the model whose primary key is ``id``, or ``None``."""
        row = self.query.find(id, columns, key=self._require_key_name())
        if row is None:
            return None
        return self.hydrate([row]).first()

    def find_many(self, ids: Iterable[Any], columns: Sequence[Column] | None = None) -> Collection[M]:
        ids = list(ids)
        if not ids:
            return Collection()
        query = self.query.clone().where_in(self._require_key_name(), ids)
        return self.hydrate(query.get(columns))

    def _require_key_name(self) -> str:
        key = self.model.get_key_name()
        if key is None:
            raise MissingPrimaryKeyError(type(self.model).__name__)
        return key

    def first_or_fail(self, columns: Sequence[Column] | None = None) -> M:
        model = self.first(columns)
        if model is None:
            raise ModelNotFoundError(type(self.model).__name__)
        return model

    def find_or_fail(self, id: Any, columns: Sequence[Column] | None = None) -> M:
        model = self.find(id, columns)
        if model is None:
            raise ModelNotFoundError(type(self.model).__name__, [id])
        return model

    def count(self, columns: Column | Sequence[Column] = "*") -> int:
        return self.query.count(columns)

    def exists(self) -> bool:
        return self.query.exists()

    def pluck(self, column: Column) -> list[Any]:
        return self.query.pluck(column)

    def value(self, column: Column) -> Any:
        return self.query.value(column)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, attributes: Mapping[str, Any] | None = None) -> M:
        """Mass assign ``attributes`` to a new model and save it."""
        instance = self.new_model_instance(attributes)
        instance.save()
        return instance

    def update(self, values: Mapping[str, Any]) -> int:
        return self.query.update(values)

    def delete(self) -> int:
        return self.query.delete()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def hydrate(self, rows: Iterable[Mapping[str, Any]]) -> Collection[M]:
        """Build persisted models straight from rows, bypassing the guard."""
        instance = self.new_model_instance()
        return Collection(instance.new_from_builder(row) for row in rows)

    def new_model_instance(self, attributes: Mapping[str, Any] | None = None) -> M:
        instance = self.model.new_instance(attributes)
        instance.connection_name = self.query.get_connection().get_name()
        return instance

    def to_sql(self) -> str:
        return self.query.to_sql()

    def get_query(self) -> QueryBuilder:
        return self.query

    def get_model(self) -> M:
        return self.model
