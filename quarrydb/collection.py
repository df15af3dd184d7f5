"""Ordered result collection shared by the query builder and the ORM.

A :class:`Collection` wraps a plain ``list`` of rows (``dict``) or hydrated
models and adds the handful of helpers callers reach for after a query::

    names = connection.table("users").get().pluck("name").all()
    admins = User.query(db).get().filter(lambda u: u["role"] == "admin")

Insertion order from the source rows is preserved; there is no uniqueness
constraint.
"""
from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Iterator, MutableSequence
from typing import Any, Generic, TypeVar, overload

T = TypeVar("T")
U = TypeVar("U")


class Collection(MutableSequence[T], Generic[T]):
    """Mutable ordered sequence with map / filter / pluck helpers.

    Args:
        items: Initial items; copied into a new list.
    """

    def __init__(self, items: Iterable[T] | None = None) -> None:
        self._items: list[T] = list(items) if items is not None else []

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> Collection[T]: ...

    def __getitem__(self, index: int | slice) -> T | Collection[T]:
        if isinstance(index, slice):
            return Collection(self._items[index])
        return self._items[index]

    def __setitem__(self, index: Any, value: Any) -> None:
        self._items[index] = value

    def __delitem__(self, index: int | slice) -> None:
        del self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Collection):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Collection({self._items!r})"

    def insert(self, index: int, value: T) -> None:
        self._items.insert(index, value)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def all(self) -> list[T]:
        """Return the underlying list (not a copy)."""
        return self._items

    def is_empty(self) -> bool:
        return not self._items

    def count(self, value: Any = None) -> int:  # type: ignore[override]
        """Number of items, or occurrences of ``value`` when given."""
        if value is None:
            return len(self._items)
        return self._items.count(value)

    def first(
        self, predicate: Callable[[T], bool] | None = None, default: Any = None
    ) -> T | Any:
        for item in self._items:
            if predicate is None or predicate(item):
                return item
        return default

    def last(
        self, predicate: Callable[[T], bool] | None = None, default: Any = None
    ) -> T | Any:
        for item in reversed(self._items):
            if predicate is None or predicate(item):
                return item
        return default

    def map(self, callback: Callable[[T], U]) -> Collection[U]:
        return Collection(callback(item) for item in self._items)

    def filter(self, callback: Callable[[T], bool] | None = None) -> Collection[T]:
        """Keep items for which ``callback`` is truthy (the items themselves by default)."""
        if callback is None:
            return Collection(item for item in self._items if item)
        return Collection(item for item in self._items if callback(item))

    def each(self, callback: Callable[[T], Any]) -> Collection[T]:
        """Call ``callback`` for every item; stops early when it returns ``False``."""
        for item in self._items:
            if callback(item) is False:
                break
        return self

    def pluck(self, key: str) -> Collection[Any]:
        """Collect ``key`` from every row or model (``None`` when absent)."""
        return Collection(_get(item, key) for item in self._items)

    def key_by(self, key: str) -> dict[Any, T]:
        return {_get(item, key): item for item in self._items}

    def values(self) -> Collection[T]:
        return Collection(self._items)

    def to_list(self) -> list[Any]:
        """Serialise every item, unwrapping models and nested collections."""
        return [_to_plain(item) for item in self._items]

    to_array = to_list

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.to_list(), default=str, **kwargs)

    def set_hidden(self, hidden: list[str]) -> Collection[T]:
        """Replace the hidden attribute list of every model in the collection."""
        return self.each(lambda model: model.set_hidden(hidden))  # type: ignore[attr-defined]

    def set_visible(self, visible: list[str]) -> Collection[T]:
        """Replace the visible attribute list of every model in the collection."""
        return self.each(lambda model: model.set_visible(visible))  # type: ignore[attr-defined]


def _get(item: Any, key: str) -> Any:
    if isinstance(item, dict):
        return item.get(key)
    getter = getattr(item, "get_attribute", None)
    if getter is not None:
        return getter(key)
    return getattr(item, key, None)


def _to_plain(item: Any) -> Any:
    if isinstance(item, Collection):
        return item.to_list()
    to_dict = getattr(item, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(item, dict):
        return {key: _to_plain(value) for key, value in item.items()}
    if isinstance(item, list):
        return [_to_plain(value) for value in item]
    return item
