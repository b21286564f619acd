"""Types shared by tool handlers and the dispatcher."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crm_mcp.core.config import Settings
from crm_mcp.permissions import Agent
from crm_mcp.storage import RecordStore

# Fields every tool accepts; they identify the call, they are never data
CALL_CONTEXT_FIELDS = frozenset({"agent_id", "phone_number"})


@dataclass(frozen=True)
class ResourceDomain:
    """A logical group of tools and the records behind them.

    Attributes:
        key: Permission map key (``tasks``)
        module: Display name written to audit records (``Tasks``)
    """

    key: str
    module: str

    def __str__(self) -> str:
        return self.module


class ToolArguments(BaseModel):
    """Base model for tool arguments.

    Subclasses declare their own fields; the JSON schema advertised by
    ``tools/list`` is generated from the model.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    agent_id: str | None = Field(default=None, description="AI Agent ID for permission checking")
    phone_number: str | None = Field(default=None, description="User phone number for logging")

    @field_validator("agent_id", "phone_number", mode="before")
    @classmethod
    def context_as_text(cls, value: Any) -> Any:
        """Accept numeric ids and phone numbers the way the dispatcher does."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def changes(self, *exclude: str) -> dict[str, Any]:
        """Fields the caller actually supplied, minus call context and ``exclude``."""
        return self.model_dump(
            exclude_unset=True,
            exclude=set(CALL_CONTEXT_FIELDS) | set(exclude),
        )

    def filters(self) -> dict[str, Any]:
        """Supplied arguments without call context, for audit details."""
        return self.changes()


@dataclass(frozen=True)
class ToolContext:
    """Everything a handler may use besides its arguments."""

    agent: Agent
    store: RecordStore
    settings: Settings
    session_id: str | None = None
    user_context: str | None = None

    def list_limit(self, requested: int | None) -> int:
        """Clamp a requested page size to the configured bounds."""
        if not requested or requested < 1:
            return self.settings.default_list_limit
        return min(requested, self.settings.max_list_limit)


@dataclass
class ToolResult:
    """Handler output.

    Attributes:
        payload: Returned to the caller
        summary: Compact audit detail (affected id, result count); never the full payload
    """

    payload: dict[str, Any]
    summary: dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]
ResourceReader = Callable[[RecordStore, Settings], Awaitable[Any]]
