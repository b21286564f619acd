"""Backend-neutral query description for the record store.

Handlers describe what they want to read with a ``Query`` and each store
backend translates it: ``MemoryRecordStore`` evaluates it in Python,
``DatabaseRecordStore`` renders it to parameterized SQL.

Example:
    query = (
        Query("tasks")
        .eq("status", "To Do")
        .in_("priority", ["High", "Urgent"])
        .order("created_at", descending=True)
        .limit(20)
    )
    rows = await store.select(query)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

FilterOp = Literal["eq", "neq", "gt", "gte", "lt", "lte", "in", "ilike", "search"]


@dataclass(frozen=True)
class Filter:
    """One predicate on a column.

    ``search`` is the only operator that spans several columns: it matches
    when any of ``columns`` contains ``value`` case-insensitively.
    """

    column: str
    op: FilterOp
    value: Any
    columns: tuple[str, ...] = ()


@dataclass
class Query:
    """A SELECT against one table: filters, ordering and pagination."""

    table: str
    filters: list[Filter] = field(default_factory=list)
    order_by: str | None = "created_at"
    descending: bool = True
    limit_value: int | None = None
    offset_value: int | None = None

    def _add(self, column: str, op: FilterOp, value: Any) -> Query:
        self.filters.append(Filter(column=column, op=op, value=value))
        return self

    def eq(self, column: str, value: Any) -> Query:
        """Exact, case-sensitive equality."""
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> Query:
        return self._add(column, "neq", value)

    def gt(self, column: str, value: Any) -> Query:
        return self._add(column, "gt", value)

    def gte(self, column: str, value: Any) -> Query:
        return self._add(column, "gte", value)

    def lt(self, column: str, value: Any) -> Query:
        return self._add(column, "lt", value)

    def lte(self, column: str, value: Any) -> Query:
        return self._add(column, "lte", value)

    def in_(self, column: str, values: Iterable[Any]) -> Query:
        return self._add(column, "in", list(values))

    def ilike(self, column: str, pattern: str) -> Query:
        """Case-insensitive LIKE; ``%`` matches any run of characters."""
        return self._add(column, "ilike", pattern)

    def search(self, columns: Iterable[str], text: str) -> Query:
        """Match rows where any of ``columns`` contains ``text`` (case-insensitive)."""
        cols = tuple(columns)
        self.filters.append(Filter(column=cols[0], op="search", value=text, columns=cols))
        return self

    def match(self, **columns: Any) -> Query:
        """Add an equality filter per keyword argument."""
        for column, value in columns.items():
            self.eq(column, value)
        return self

    def order(self, column: str | None, descending: bool = False) -> Query:
        self.order_by = column
        self.descending = descending
        return self

    def limit(self, value: int | None) -> Query:
        self.limit_value = value
        return self

    def offset(self, value: int | None) -> Query:
        self.offset_value = value
        return self

    def describe(self) -> dict[str, Any]:
        """Compact, JSON-friendly description used in audit details."""
        return {
            f.column if f.op != "search" else "search": (
                f.value if f.op == "eq" else {f.op: f.value}
            )
            for f in self.filters
        }
