"""Mass-assignment guard."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class GuardPolicy:
    """Decides which keys :meth:`Model.fill` may assign.

    Attributes:
        fillable: Keys allowed through while guarded.
        guarded: When ``True`` only ``fillable`` keys pass; when ``False``
            every key passes.  Guarded with an empty ``fillable`` list drops
            everything without raising.
    """

    fillable: list[str] = field(default_factory=list)
    guarded: bool = True

    def is_fillable(self, key: str) -> bool:
        return not self.guarded or key in self.fillable

    def fillable_from(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Return the subset of ``attributes`` that may be mass assigned."""
        return {key: value for key, value in attributes.items() if self.is_fillable(key)}

    def merge_fillable(self, keys: Iterable[str]) -> None:
        for key in keys:
            if key not in self.fillable:
                self.fillable.append(key)

    def guard(self) -> None:
        self.guarded = True

    def unguard(self) -> None:
        self.guarded = False
