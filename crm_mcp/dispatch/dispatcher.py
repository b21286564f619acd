"""Single entry point for every tool invocation.

``ToolDispatcher.dispatch`` resolves the tool, validates the agent, checks
the permission map, runs the handler and records exactly one audit entry
for the attempt. It never raises: every failure comes back as a
``DispatchFailure`` carrying a caller-safe message.
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic

from crm_mcp.audit import AuditLogger, DispatchRecord, Outcome
from crm_mcp.core.config import Settings
from crm_mcp.permissions import (
    Agent,
    AgentDirectory,
    PermissionMap,
    PermissionStore,
    is_enabled,
)
from crm_mcp.registry import OperationRegistry, ToolContext, ToolDefinition
from crm_mcp.storage import RecordStore
from crm_mcp.utils.errors import ToolExecutionError, ValidationError
from crm_mcp.utils.logging_config import sanitize_log_input

from .results import DispatchFailure, DispatchOutcome, DispatchSuccess, FailureKind

logger = logging.getLogger(__name__)


def format_validation_error(error: pydantic.ValidationError) -> str:
    """Turn a pydantic error into one readable line."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(problems)


class ToolDispatcher:
    """Permission-gated, audited tool execution."""

    def __init__(
        self,
        registry: OperationRegistry,
        agents: AgentDirectory,
        permissions: PermissionStore,
        audit: AuditLogger,
        store: RecordStore,
        settings: Settings,
    ):
        self.registry = registry
        self.agents = agents
        self.permissions = permissions
        self.audit = audit
        self.store = store
        self.settings = settings

    async def dispatch(
        self,
        tool_name: str,
        arguments: dict[str, Any] | None,
        agent_id: str | None = None,
        session_id: str | None = None,
    ) -> DispatchOutcome:
        """
        Execute one tool call for one agent.

        Args:
            tool_name: Registered tool name
            arguments: Raw tool arguments (``agent_id`` may be among them)
            agent_id: Agent making the call; defaults to ``arguments["agent_id"]``
            session_id: Transport session, only copied into the audit record

        Returns:
            DispatchSuccess with the handler payload, or DispatchFailure
        """
        arguments = dict(arguments or {})
        if agent_id is None:
            agent_id = arguments.get("agent_id")
        agent_id = str(agent_id).strip() if agent_id is not None else ""
        user_context = arguments.get("phone_number")
        if user_context is not None:
            user_context = str(user_context)

        safe_tool = sanitize_log_input(str(tool_name))
        safe_agent = sanitize_log_input(agent_id)

        definition = self.registry.resolve(tool_name)
        if definition is None:
            logger.warning(f"Unknown tool requested: {safe_tool} (agent={safe_agent})")
            return DispatchFailure(FailureKind.UNKNOWN_TOOL, f"Unknown tool: {tool_name}", tool_name)

        logger.info(f"Dispatching {safe_tool} for agent {safe_agent}")

        def audit_record(
            outcome: Outcome,
            agent: Agent | None,
            error: str | None = None,
            details: dict[str, Any] | None = None,
        ) -> DispatchRecord:
            record_fields: dict[str, Any] = {
                "agent_id": agent.id if agent else agent_id,
                "domain": definition.domain.key,
                "module": definition.domain.module,
                "tool": definition.name,
                "outcome": outcome,
                "error": error,
                "user_context": user_context,
                "session_id": session_id,
                "details": details or {},
            }
            if agent is not None and agent.name:
                record_fields["agent_name"] = agent.name
            return DispatchRecord(**record_fields)

        # Agent
        agent, agent_error = await self._resolve_agent(agent_id)
        if agent is None:
            logger.warning(f"Rejected {safe_tool}: {agent_error} (agent={safe_agent})")
            await self.audit.record(audit_record(Outcome.ERROR, None, error=agent_error))
            return DispatchFailure(FailureKind.INVALID_AGENT, agent_error, definition.name)

        # Permission gate
        permission_map = await self._load_permissions(agent.id)
        if not is_enabled(permission_map, definition.domain.key, definition.name):
            message = f"Agent does not have permission to use {definition.name}"
            logger.warning(f"Denied {safe_tool} for {sanitize_log_input(str(agent))}")
            await self.audit.record(
                audit_record(
                    Outcome.DENIED,
                    agent,
                    error=message,
                    details={"reason": f"No permission to {definition.name}"},
                )
            )
            return DispatchFailure(FailureKind.PERMISSION_DENIED, message, definition.name)

        # Handler
        context = ToolContext(
            agent=agent,
            store=self.store,
            settings=self.settings,
            session_id=session_id,
            user_context=user_context,
        )
        return await self._invoke(definition, arguments, context, audit_record)

    async def _resolve_agent(self, agent_id: str) -> tuple[Agent | None, str]:
        if not agent_id:
            return None, "agent_id is required"
        try:
            agent = await self.agents.get_agent(agent_id)
        except Exception:
            logger.exception(f"Agent lookup failed for {sanitize_log_input(agent_id)}")
            return None, "AI Agent not found"
        if agent is None:
            return None, "AI Agent not found"
        if not agent.is_active:
            return None, "AI Agent is not active"
        return agent, ""

    async def _load_permissions(self, agent_id: str) -> PermissionMap:
        """Current permission map; lookup failures deny like a missing map."""
        try:
            permission_map = await self.permissions.get_permissions(agent_id)
        except Exception:
            logger.exception(f"Permission lookup failed for {sanitize_log_input(agent_id)}")
            return PermissionMap.empty()
        return permission_map if permission_map is not None else PermissionMap.empty()

    async def _invoke(
        self,
        definition: ToolDefinition,
        arguments: dict[str, Any],
        context: ToolContext,
        audit_record: Any,
    ) -> DispatchOutcome:
        name = definition.name
        try:
            parsed = definition.parse_arguments(arguments)
        except pydantic.ValidationError as e:
            message = format_validation_error(e)
            logger.warning(f"{name}: {sanitize_log_input(message)}")
            await self.audit.record(audit_record(Outcome.ERROR, context.agent, error=message))
            return DispatchFailure(FailureKind.HANDLER_ERROR, message, name)

        filters = parsed.filters()
        try:
            result = await definition.handler(parsed, context)
        except (ToolExecutionError, ValidationError) as e:
            message = str(e)
            logger.error(f"Tool {name} failed: {sanitize_log_input(message)}")
            detail = {"filters": filters}
            if isinstance(e, ToolExecutionError) and e.detail:
                detail.update(e.detail)
            await self.audit.record(
                audit_record(Outcome.ERROR, context.agent, error=message, details=detail)
            )
            return DispatchFailure(FailureKind.HANDLER_ERROR, message, name)
        except Exception as e:
            logger.exception(f"Error executing tool {name}: {e}")
            await self.audit.record(
                audit_record(
                    Outcome.ERROR,
                    context.agent,
                    error=str(e) or type(e).__name__,
                    details={"filters": filters, "error_type": type(e).__name__},
                )
            )
            return DispatchFailure(FailureKind.HANDLER_ERROR, f"Failed to execute {name}", name)

        details = dict(result.summary)
        if filters:
            details.setdefault("filters", filters)
        await self.audit.record(audit_record(Outcome.SUCCESS, context.agent, details=details))
        logger.info(f"Tool {name} succeeded for {sanitize_log_input(str(context.agent))}")
        return DispatchSuccess(tool=name, payload=result.payload)
