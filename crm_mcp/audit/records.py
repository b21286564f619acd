"""Audit record model for dispatch attempts."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

UNKNOWN_AGENT_NAME = "Unknown"


class Outcome(str, Enum):
    """Terminal outcome of one dispatch attempt."""

    SUCCESS = "Success"
    DENIED = "Denied"
    ERROR = "Error"


class DispatchRecord(BaseModel):
    """One append-only audit entry, created once per dispatch attempt."""

    agent_id: str = Field(..., description="Agent the call was made for")
    agent_name: str = Field(default=UNKNOWN_AGENT_NAME, description="Agent display name")
    domain: str = Field(..., description="Resource domain key, e.g. 'tasks'")
    module: str = Field(..., description="Resource domain display name, e.g. 'Tasks'")
    tool: str = Field(..., description="Tool name")
    outcome: Outcome
    error: str | None = Field(default=None, description="Failure detail")
    user_context: str | None = Field(
        default=None, description="End-user context such as the caller's phone number"
    )
    session_id: str | None = Field(default=None, description="Transport session, tracing only")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Compact summary: filters, affected id, counts"
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_row(self) -> dict[str, Any]:
        """Convert to an ``ai_agent_logs`` row."""
        details = dict(self.details)
        details["domain"] = self.domain
        if self.session_id:
            details["session_id"] = self.session_id
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "module": self.module,
            "action": self.tool,
            "result": self.outcome.value,
            "error_message": self.error,
            "user_context": self.user_context,
            "details": details,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> DispatchRecord:
        """Create from an ``ai_agent_logs`` row."""
        details = dict(row.get("details") or {})
        domain = details.pop("domain", "") or ""
        session_id = details.pop("session_id", None)
        created_at = row.get("created_at")
        return cls(
            agent_id=str(row["agent_id"]),
            agent_name=row.get("agent_name") or UNKNOWN_AGENT_NAME,
            domain=domain,
            module=row.get("module", ""),
            tool=row.get("action", ""),
            outcome=Outcome(row["result"]),
            error=row.get("error_message"),
            user_context=row.get("user_context"),
            session_id=session_id,
            details=details,
            created_at=_parse_timestamp(created_at),
        )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(str(value))
    return datetime.now(UTC)
