"""Utility functions and classes."""

from .errors import (
    ConfigurationError,
    MCPClientError,
    NotConnectedError,
    CRMError,
    RecordNotFoundError,
    StoreError,
    ToolCallFailed,
    ToolExecutionError,
    ValidationError,
)
from .logging_config import sanitize_log_input, setup_logging

__all__ = [
    "CRMError",
    "ConfigurationError",
    "MCPClientError",
    "NotConnectedError",
    "RecordNotFoundError",
    "StoreError",
    "ToolCallFailed",
    "ToolExecutionError",
    "ValidationError",
    "sanitize_log_input",
    "setup_logging",
]
