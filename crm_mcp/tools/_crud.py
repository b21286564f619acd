"""Shared read/create/update/delete helpers for the domain tool modules.

Every domain exposes the same four shapes of operation against one
table. The helpers here run the store call and build both the caller
payload and the compact audit summary, so the domain modules only
describe their arguments and column mappings.
"""

import logging
from typing import Any

from pydantic import Field

from crm_mcp.registry import ToolArguments, ToolContext, ToolResult
from crm_mcp.storage import CRM_TABLES, Query, RecordStore
from crm_mcp.utils.errors import RecordNotFoundError, ValidationError

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^\d{2}:\d{2}$"


class ListArguments(ToolArguments):
    """Pagination accepted by every list tool."""

    limit: int | None = Field(
        default=None, ge=1, description="Maximum number of records to return (default: 100)"
    )
    offset: int | None = Field(default=None, ge=0, description="Number of records to skip")

    def match_filters(self, *exclude: str) -> dict[str, Any]:
        """Supplied equality filters, without pagination and without nulls."""
        supplied = self.changes("limit", "offset", *exclude)
        return {column: value for column, value in supplied.items() if value is not None}


def key_column(table: str) -> str:
    """Human-readable identifier column for ``table`` (``task_id`` for ``tasks``)."""
    spec = CRM_TABLES.get(table)
    if spec is None or spec.key is None:
        raise KeyError(f"Table has no generated key: {table}")
    return spec.key


async def list_records(
    ctx: ToolContext,
    query: Query,
    limit: int | None = None,
    offset: int | None = None,
) -> ToolResult:
    """Run ``query`` with the clamped page size.

    Payload: ``{"success": true, "data": [...], "count": n}``.
    """
    query.limit(ctx.list_limit(limit)).offset(offset)
    rows = await ctx.store.select(query)
    return ToolResult(
        payload={"success": True, "data": rows, "count": len(rows)},
        summary={"result_count": len(rows)},
    )


async def create_record(
    ctx: ToolContext,
    table: str,
    values: dict[str, Any],
    entity: str,
    message: str,
    summary_fields: tuple[str, ...] = (),
) -> ToolResult:
    """Insert one row; the payload carries the stored row under ``entity``."""
    row = await ctx.store.insert(table, values)
    key = key_column(table)
    summary = {key: row.get(key)}
    for name in summary_fields:
        if values.get(name) is not None:
            summary[name] = values[name]
    logger.info(f"Created {table} record {row.get(key)}")
    return ToolResult(
        payload={"success": True, "message": message, entity: row},
        summary=summary,
    )


async def update_record(
    ctx: ToolContext,
    table: str,
    key_value: str,
    changes: dict[str, Any],
    entity: str,
    message: str,
    key: str | None = None,
) -> ToolResult:
    """Update the row whose key column equals ``key_value``.

    Raises:
        ValidationError: If there is nothing to change
        RecordNotFoundError: If no row has that key
    """
    key = key or key_column(table)
    if not changes:
        raise ValidationError(f"No fields to update for {key}={key_value}")

    rows = await ctx.store.update(table, {key: key_value}, changes)
    if not rows:
        raise RecordNotFoundError(table, key, key_value)
    return ToolResult(
        payload={"success": True, "message": message, entity: rows[0]},
        summary={key: key_value, "updates": sorted(changes)},
    )


async def delete_record(
    ctx: ToolContext,
    table: str,
    key_value: str,
    message: str,
    key: str | None = None,
) -> ToolResult:
    """Delete the row whose key column equals ``key_value``.

    Raises:
        RecordNotFoundError: If no row has that key
    """
    key = key or key_column(table)
    deleted = await ctx.store.delete(table, {key: key_value})
    if not deleted:
        raise RecordNotFoundError(table, key, key_value)
    return ToolResult(
        payload={"success": True, "message": message, key: key_value},
        summary={key: key_value},
    )


async def read_all(store: RecordStore, query: Query) -> list[dict[str, Any]]:
    """Unpaginated read used by summaries and resources."""
    return await store.select(query)


def amount_of(row: dict[str, Any], column: str = "amount") -> float:
    """Numeric column as float; missing or malformed values count as zero."""
    try:
        return float(row.get(column) or 0)
    except (TypeError, ValueError):
        return 0.0
