"""Tool, resource and prompt registration."""

from .models import (
    CALL_CONTEXT_FIELDS,
    ResourceDomain,
    ToolArguments,
    ToolContext,
    ToolHandler,
    ToolResult,
)
from .registry import (
    OperationRegistry,
    PromptDefinition,
    ResourceDefinition,
    ToolDefinition,
    input_schema_for,
)

__all__ = [
    "CALL_CONTEXT_FIELDS",
    "OperationRegistry",
    "PromptDefinition",
    "ResourceDefinition",
    "ResourceDomain",
    "ToolArguments",
    "ToolContext",
    "ToolDefinition",
    "ToolHandler",
    "ToolResult",
    "input_schema_for",
]
