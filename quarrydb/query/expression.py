"""Raw SQL fragments that bypass identifier quoting and parameter binding."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Expression:
    """A literal SQL fragment.

    Wherever the grammar would quote an identifier or emit a ``?``
    placeholder, an ``Expression`` is inserted verbatim instead, and it never
    contributes a value to the binding list.

    Attributes:
        value: The SQL text.
    """

    value: str

    def get_value(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value
