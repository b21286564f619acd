"""In-process record store with optional JSON persistence.

Used for local development (file backend) and tests. Stores rows as JSON
for easy inspection and portability, the same way the PostgreSQL backend
would hold them.
"""

import copy
import json
import logging
import re
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from crm_mcp.utils.errors import StoreError

from .query import Filter, Query
from .tables import CRM_TABLES, TableSpec

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


def _like_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a SQL LIKE pattern (``%`` and ``_``) to a compiled regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _compare(left: Any, op: str, right: Any) -> bool:
    if left is None or right is None:
        return False
    try:
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        if op == "lt":
            return left < right
        return left <= right
    except TypeError:
        # Mixed types (e.g. str vs int) never match, like a failed SQL cast
        return False


def _matches(row: dict[str, Any], f: Filter) -> bool:
    value = row.get(f.column)
    if f.op == "eq":
        return value == f.value
    if f.op == "neq":
        return value != f.value
    if f.op in ("gt", "gte", "lt", "lte"):
        return _compare(value, f.op, f.value)
    if f.op == "in":
        return value in f.value
    if f.op == "ilike":
        return isinstance(value, str) and _like_to_regex(f.value).fullmatch(value) is not None
    if f.op == "search":
        needle = str(f.value).lower()
        return any(
            isinstance(row.get(col), str) and needle in row[col].lower() for col in f.columns
        )
    raise StoreError(f"Unsupported filter operator: {f.op}")


class MemoryRecordStore:
    """
    Dict-of-lists record store.

    Rows are kept in insertion order. When ``storage_path`` is given, every
    mutation is written to ``records.json`` in that directory and the file
    is loaded back on startup.
    """

    def __init__(
        self,
        storage_path: Path | str | None = None,
        tables: dict[str, TableSpec] | None = None,
    ):
        """
        Initialize record store.

        Args:
            storage_path: Directory to persist records in (None keeps them in memory only)
            tables: Table specs for server-generated identifiers
        """
        self._tables = tables if tables is not None else CRM_TABLES
        self._rows: dict[str, list[dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}
        self.records_file: Path | None = None

        if storage_path is not None:
            path = Path(storage_path)
            path.mkdir(parents=True, exist_ok=True)
            self.records_file = path / "records.json"
            self._load()

        logger.info(f"Initialized record store with {len(self._rows)} tables")

    def _load(self) -> None:
        """Load records from file."""
        if self.records_file is None or not self.records_file.exists():
            return

        try:
            with open(self.records_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to load records from {self.records_file}: {e}") from e

        self._rows = {table: list(rows) for table, rows in data.get("tables", {}).items()}
        self._sequences = dict(data.get("sequences", {}))
        logger.debug(f"Loaded records for {len(self._rows)} tables from {self.records_file}")

    def _save(self, tables: dict[str, list[dict[str, Any]]], sequences: dict[str, int]) -> None:
        """Save records to file."""
        if self.records_file is None:
            return

        data = {"tables": tables, "sequences": sequences}
        try:
            with open(self.records_file, "w") as f:
                json.dump(data, f, indent=2, default=str)
        except OSError as e:
            raise StoreError(f"Failed to save records: {e}") from e

    def _commit(
        self,
        table: str,
        rows: list[dict[str, Any]],
        sequences: dict[str, int] | None = None,
    ) -> None:
        """Persist the new contents of ``table``, then make them visible to reads."""
        tables = {**self._rows, table: rows}
        sequences = sequences if sequences is not None else self._sequences
        self._save(tables, sequences)
        self._rows = tables
        self._sequences = sequences

    def _spec(self, table: str) -> TableSpec:
        return self._tables.get(table) or TableSpec(table)

    def _next_key(self, spec: TableSpec, sequences: dict[str, int]) -> str:
        number = sequences.get(spec.name, spec.start)
        sequences[spec.name] = number + 1
        return spec.format_key(number)

    @staticmethod
    def _is_match(row: dict[str, Any], match: dict[str, Any]) -> bool:
        return all(row.get(col) == value for col, value in match.items())

    async def select(self, query: Query) -> list[dict[str, Any]]:
        rows = [
            (index, row)
            for index, row in enumerate(self._rows.get(query.table, []))
            if all(_matches(row, f) for f in query.filters)
        ]

        if query.order_by:
            column = query.order_by
            # Insertion order breaks ties; rows missing the column sort last
            present = [item for item in rows if item[1].get(column) is not None]
            missing = [item for item in rows if item[1].get(column) is None]
            present.sort(key=lambda item: (item[1][column], item[0]), reverse=query.descending)
            rows = present + missing

        result = [copy.deepcopy(row) for _, row in rows]
        start = query.offset_value or 0
        end = start + query.limit_value if query.limit_value is not None else None
        return result[start:end]

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        spec = self._spec(table)
        sequences = dict(self._sequences)
        now = _utcnow()
        row: dict[str, Any] = {"id": str(uuid.uuid4())}
        if spec.key:
            row[spec.key] = self._next_key(spec, sequences)
        row["created_at"] = now
        if spec.has_updated_at:
            row["updated_at"] = now
        row.update(copy.deepcopy(values))

        self._commit(table, [*self._rows.get(table, []), row], sequences)
        logger.debug(f"Inserted into {table}: {row['id']}")
        return copy.deepcopy(row)

    async def update(
        self, table: str, match: dict[str, Any], values: dict[str, Any]
    ) -> list[dict[str, Any]]:
        spec = self._spec(table)
        now = _utcnow()
        rows: list[dict[str, Any]] = []
        updated: list[dict[str, Any]] = []
        for row in self._rows.get(table, []):
            if self._is_match(row, match):
                row = {**row, **copy.deepcopy(values)}
                if spec.has_updated_at:
                    row["updated_at"] = now
                updated.append(row)
            rows.append(row)

        if updated:
            self._commit(table, rows)
        logger.debug(f"Updated {len(updated)} rows in {table}")
        return [copy.deepcopy(row) for row in updated]

    async def delete(self, table: str, match: dict[str, Any]) -> int:
        existing = self._rows.get(table, [])
        rows = [row for row in existing if not self._is_match(row, match)]
        removed = len(existing) - len(rows)
        if not removed:
            return 0
        self._commit(table, rows)
        logger.debug(f"Deleted {removed} rows from {table}")
        return removed

    async def close(self) -> None:
        """Nothing to release; present for interface parity with the database store."""
        return None
