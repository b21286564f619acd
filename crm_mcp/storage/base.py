"""Record store interface consumed by tool handlers, permissions and audit."""

from typing import Any, Protocol, runtime_checkable

from .query import Query


@runtime_checkable
class RecordStore(Protocol):
    """Per-table read/create/update/delete with simple filters.

    Rows are plain JSON-friendly dicts. Every backend fills in ``id``,
    ``created_at`` and the table's human-readable key on insert.
    """

    async def select(self, query: Query) -> list[dict[str, Any]]:
        """Return rows matching ``query``."""
        ...

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it with server-generated fields."""
        ...

    async def update(
        self, table: str, match: dict[str, Any], values: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Update rows equal to ``match`` on every column; return the updated rows."""
        ...

    async def delete(self, table: str, match: dict[str, Any]) -> int:
        """Delete rows equal to ``match``; return how many were removed."""
        ...

    async def close(self) -> None:
        ...
