"""Agent identity for permission checks and audit records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ACTIVE = "Active"
INACTIVE = "Inactive"


@dataclass(frozen=True)
class Agent:
    """An AI agent on whose behalf tools are called.

    Agents are created by an administrator and never mutated by the
    dispatcher.

    Attributes:
        id: Unique agent id (``ai_agents.id``)
        name: Display name, copied into audit records
        status: ``Active`` or ``Inactive``
    """

    id: str
    name: str
    status: str = ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status.lower() == ACTIVE.lower()

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Agent:
        """Create from an ``ai_agents`` row."""
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            status=row.get("status") or ACTIVE,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "status": self.status}

    def __str__(self) -> str:
        return f"{self.name}({self.id})"
