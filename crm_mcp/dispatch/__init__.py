"""Permission-gated tool dispatch."""

from .dispatcher import ToolDispatcher, format_validation_error
from .results import DispatchFailure, DispatchOutcome, DispatchSuccess, FailureKind

__all__ = [
    "DispatchFailure",
    "DispatchOutcome",
    "DispatchSuccess",
    "FailureKind",
    "ToolDispatcher",
    "format_validation_error",
]
