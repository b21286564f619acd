"""Best-effort audit logging of dispatch attempts.

The business effect of a tool call has already happened by the time it
is audited, so a failing audit write must never fail the call. Failures
are reported to the operational log instead.
"""

import logging
from typing import Protocol

from crm_mcp.storage import AUDIT_TABLE, RecordStore

from .records import DispatchRecord

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Append-only destination for dispatch records."""

    async def append(self, record: DispatchRecord) -> None: ...


class StoreAuditSink:
    """Appends records to the ``ai_agent_logs`` table."""

    def __init__(self, store: RecordStore, table: str = AUDIT_TABLE):
        self._store = store
        self._table = table

    async def append(self, record: DispatchRecord) -> None:
        await self._store.insert(self._table, record.to_row())


class AuditLogger:
    """Records dispatch outcomes without ever raising to the caller."""

    def __init__(self, sink: AuditSink):
        self._sink = sink

    async def record(self, record: DispatchRecord) -> bool:
        """Append ``record`` to the sink.

        Returns:
            True if the record was written. False means the write failed and
            was reported to the operational log; callers discard this value.
        """
        try:
            await self._sink.append(record)
        except Exception:
            logger.exception(
                f"Failed to write audit record for {record.tool} "
                f"(agent={record.agent_id}, outcome={record.outcome.value})"
            )
            return False
        logger.debug(f"Audit: {record.module}/{record.tool} -> {record.outcome.value}")
        return True
