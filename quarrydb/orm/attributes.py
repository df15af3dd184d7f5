"""Attribute storage with change tracking.

An :class:`AttributeStore` keeps three maps for one model instance:

* ``attributes`` – the current values;
* ``original`` – the values as last read from or written to the database;
* ``changes`` – the dirty set captured by the most recent UPDATE.

A key is *dirty* when it is missing from ``original`` or its current value is
not equal (``==``) to the original one.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class AttributeStore:
    attributes: dict[str, Any] = field(default_factory=dict)
    original: dict[str, Any] = field(default_factory=dict)
    changes: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_raw(self, attributes: Mapping[str, Any], sync: bool = False) -> None:
        """Replace every attribute, optionally marking them all as clean."""
        self.attributes = dict(attributes)
        if sync:
            self.sync_original()

    def sync_original(self) -> None:
        self.original = dict(self.attributes)

    def sync_changes(self) -> None:
        self.changes = self.get_dirty()

    def original_is_equivalent(self, key: str) -> bool:
        if key not in self.original:
            return False
        return self.attributes.get(key) == self.original.get(key)

    def get_dirty(self) -> dict[str, Any]:
        return {
            key: value
            for key, value in self.attributes.items()
            if not self.original_is_equivalent(key)
        }

    def is_dirty(self, keys: Iterable[str] = ()) -> bool:
        return self.has_changes(self.get_dirty(), keys)

    @staticmethod
    def has_changes(changes: Mapping[str, Any], keys: Iterable[str] = ()) -> bool:
        """Whether ``changes`` is non-empty, or contains any of ``keys`` when given."""
        keys = list(keys)
        if not keys:
            return bool(changes)
        return any(key in changes for key in keys)


@dataclass
class VisibilityPolicy:
    """Which attributes serialisation exposes.

    A non-empty ``visible`` list acts as an allow-list; ``hidden`` is then
    removed from what is left.
    """

    hidden: list[str] = field(default_factory=list)
    visible: list[str] = field(default_factory=list)

    def apply(self, values: Mapping[str, Any]) -> dict[str, Any]:
        result = dict(values)
        if self.visible:
            result = {key: value for key, value in result.items() if key in self.visible}
        if self.hidden:
            result = {key: value for key, value in result.items() if key not in self.hidden}
        return result

    def make_hidden(self, keys: Iterable[str]) -> None:
        for key in keys:
            if key not in self.hidden:
                self.hidden.append(key)

    def make_visible(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        self.hidden = [key for key in self.hidden if key not in keys]
        if self.visible:
            self.visible.extend(key for key in keys if key not in self.visible)
