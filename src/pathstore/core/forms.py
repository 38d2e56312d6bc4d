"""Transport-neutral access to request payload fields."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class FormPayload(Protocol):
    """Narrow view of a request body: named string fields only."""

    def get(self, field: str) -> str | None:
        """Return the field's string value, None when absent or not a string."""
        ...


class MappingFormPayload:
    """FormPayload over any mapping (parsed JSON, starlette FormData, dict).

    Non-string values (uploaded files, numbers, nested objects) read as
    absent, so callers only ever see usable text.
    """

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = data

    def get(self, field: str) -> str | None:
        value = self._data.get(field)
        return value if isinstance(value, str) else None

    def __repr__(self) -> str:
        return f"MappingFormPayload(fields={sorted(self._data)})"
