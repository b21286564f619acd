"""Typed dispatch outcomes returned to the protocol layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FailureKind(Enum):
    """Why a dispatch did not succeed, with its JSON-RPC error code."""

    UNKNOWN_TOOL = -32601
    INVALID_AGENT = -32602
    PERMISSION_DENIED = -32001
    HANDLER_ERROR = -32603

    @property
    def code(self) -> int:
        return self.value


@dataclass(frozen=True)
class DispatchSuccess:
    tool: str
    payload: dict[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class DispatchFailure:
    """A failed dispatch.

    ``message`` is already sanitized: it is safe to return to the caller.
    """

    kind: FailureKind
    message: str
    tool: str

    @property
    def ok(self) -> bool:
        return False

    @property
    def code(self) -> int:
        return self.kind.code

    def to_error(self) -> dict[str, Any]:
        """Render as a JSON-RPC ``error`` object."""
        return {"code": self.code, "message": self.message}


DispatchOutcome = DispatchSuccess | DispatchFailure
