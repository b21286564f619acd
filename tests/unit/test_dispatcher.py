"""Tests for ToolDispatcher: agent validation, the permission gate and auditing."""

from unittest.mock import AsyncMock

import pytest

from crm_mcp.audit import AuditLogger, Outcome
from crm_mcp.dispatch import DispatchFailure, DispatchSuccess, FailureKind, ToolDispatcher
from crm_mcp.permissions import PermissionMap
from crm_mcp.registry import OperationRegistry, ResourceDomain, ToolArguments, ToolResult
from crm_mcp.storage import PERMISSIONS_TABLE, Query
from crm_mcp.utils.errors import StoreError, ToolExecutionError

NOTES = ResourceDomain("notes", "Notes")


class NoteArgs(ToolArguments):
    text: str | None = None


def _dispatcher_with(handler, store, settings, permissions=None, agents=None, audit=None):
    """Dispatcher over a one-tool registry with mocked collaborators."""
    registry = OperationRegistry()
    registry.register("add_note", NOTES, "Add a note", NoteArgs, handler)
    registry.seal()
    return ToolDispatcher(
        registry=registry,
        agents=agents,
        permissions=permissions,
        audit=audit,
        store=store,
        settings=settings,
    )


class TestPermissionGate:
    """Tests that disabled tools never run."""

    @pytest.mark.asyncio
    async def test_create_task_denied_for_read_only_agent(self, dispatcher, agent_a1, audit_rows):
        """A1 may read tasks but not create them."""
        outcome = await dispatcher.dispatch(
            "create_task", {"agent_id": agent_a1.id, "title": "Call back"}
        )

        assert isinstance(outcome, DispatchFailure)
        assert outcome.kind is FailureKind.PERMISSION_DENIED
        assert outcome.code == -32001
        assert outcome.message == "Agent does not have permission to use create_task"

        rows = await audit_rows()
        assert len(rows) == 1
        assert rows[0]["result"] == "Denied"
        assert rows[0]["module"] == "Tasks"
        assert rows[0]["action"] == "create_task"
        assert rows[0]["agent_name"] == "A1"
        assert rows[0]["details"]["reason"] == "No permission to create_task"

    @pytest.mark.asyncio
    async def test_denied_call_writes_nothing(self, dispatcher, agent_a1, store):
        """The handler is never invoked, so no task row appears."""
        await dispatcher.dispatch("create_task", {"agent_id": agent_a1.id, "title": "Nope"})

        assert await store.select(Query("tasks")) == []

    @pytest.mark.asyncio
    async def test_handler_not_called_when_denied(self, store, settings, agent_a1):
        """A disabled tool's handler is not awaited."""
        handler = AsyncMock(return_value=ToolResult(payload={"success": True}))
        permissions = AsyncMock()
        permissions.get_permissions.return_value = None
        agents = AsyncMock()
        agents.get_agent.return_value = agent_a1
        audit = AsyncMock(spec=AuditLogger)
        dispatcher = _dispatcher_with(handler, store, settings, permissions, agents, audit)

        outcome = await dispatcher.dispatch("add_note", {"agent_id": agent_a1.id})

        assert outcome.kind is FailureKind.PERMISSION_DENIED
        handler.assert_not_awaited()
        audit.record.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("permissions", [None, {}, "not json", ["get_tasks"], {"tasks": "yes"}])
    async def test_missing_or_malformed_map_denies_everything(
        self, dispatcher, make_agent, registry, permissions
    ):
        """Deny by default: no usable map grants nothing."""
        agent = await make_agent("Empty", permissions)

        for tool in registry.list_tools():
            outcome = await dispatcher.dispatch(tool.name, {"agent_id": agent.id})
            assert outcome.kind is FailureKind.PERMISSION_DENIED, tool.name

    @pytest.mark.asyncio
    async def test_disabled_domain_denies_listed_tool(self, dispatcher, make_agent):
        """A tool listed under a disabled domain still does not run."""
        agent = await make_agent("Off", {"tasks": {"enabled": False, "tools": ["get_tasks"]}})

        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id})

        assert outcome.kind is FailureKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_grant_in_other_domain_does_not_leak(self, dispatcher, make_agent):
        """A get_tasks entry under leads does not enable get_tasks."""
        agent = await make_agent("Wrong", {"leads": {"enabled": True, "tools": ["get_tasks"]}})

        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id})

        assert outcome.kind is FailureKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_legacy_server_key_is_honoured(self, dispatcher, make_agent):
        """Maps stored under 'tasks-server' still grant task tools."""
        agent = await make_agent("Legacy", {"tasks-server": {"enabled": True, "tools": ["get_tasks"]}})

        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id})

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_json_string_map_is_parsed(self, dispatcher, make_agent):
        """A permission document stored as a JSON string works like a dict."""
        agent = await make_agent("Stringy", '{"tasks": {"enabled": true, "tools": ["get_tasks"]}}')

        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id})

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_revocation_applies_on_next_call(self, dispatcher, agent_a1, store):
        """Permissions are re-read on every dispatch."""
        assert (await dispatcher.dispatch("get_tasks", {"agent_id": agent_a1.id})).ok

        await store.update(
            PERMISSIONS_TABLE,
            {"agent_id": agent_a1.id},
            {"permissions": {"tasks": {"enabled": True, "tools": []}}},
        )
        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent_a1.id})

        assert outcome.kind is FailureKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_permission_lookup_failure_denies(self, store, settings, agent_a1):
        """A failing permission store is treated like a missing map."""
        handler = AsyncMock()
        permissions = AsyncMock()
        permissions.get_permissions.side_effect = StoreError("connection refused")
        agents = AsyncMock()
        agents.get_agent.return_value = agent_a1
        audit = AsyncMock(spec=AuditLogger)
        dispatcher = _dispatcher_with(handler, store, settings, permissions, agents, audit)

        outcome = await dispatcher.dispatch("add_note", {"agent_id": agent_a1.id})

        assert outcome.kind is FailureKind.PERMISSION_DENIED
        handler.assert_not_awaited()


class TestAgentValidation:
    """Tests for missing, unknown and inactive agents."""

    @pytest.mark.asyncio
    async def test_missing_agent_id(self, dispatcher, audit_rows):
        """No agent_id is an invalid-agent failure, audited as Error."""
        outcome = await dispatcher.dispatch("get_tasks", {})

        assert outcome.kind is FailureKind.INVALID_AGENT
        assert outcome.code == -32602
        assert outcome.message == "agent_id is required"
        rows = await audit_rows()
        assert [row["result"] for row in rows] == ["Error"]
        assert rows[0]["error_message"] == "agent_id is required"

    @pytest.mark.asyncio
    async def test_blank_agent_id(self, dispatcher):
        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": "   "})

        assert outcome.kind is FailureKind.INVALID_AGENT

    @pytest.mark.asyncio
    async def test_unknown_agent(self, dispatcher, audit_rows):
        """An id with no agent row is rejected and audited."""
        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": "no-such-agent"})

        assert outcome.kind is FailureKind.INVALID_AGENT
        assert outcome.message == "AI Agent not found"
        rows = await audit_rows()
        assert len(rows) == 1
        assert rows[0]["agent_id"] == "no-such-agent"
        assert rows[0]["agent_name"] == "Unknown"

    @pytest.mark.asyncio
    async def test_inactive_agent(self, dispatcher, make_agent):
        """Deactivated agents cannot call tools even with a grant."""
        agent = await make_agent(
            "Retired", {"tasks": {"enabled": True, "tools": ["get_tasks"]}}, status="Inactive"
        )

        outcome = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id})

        assert outcome.kind is FailureKind.INVALID_AGENT
        assert outcome.message == "AI Agent is not active"

    @pytest.mark.asyncio
    async def test_explicit_agent_id_overrides_arguments(self, dispatcher, agent_a1):
        """The agent_id parameter takes precedence over arguments['agent_id']."""
        outcome = await dispatcher.dispatch(
            "get_tasks", {"agent_id": "someone-else"}, agent_id=agent_a1.id
        )

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_agent_lookup_failure_is_invalid_agent(self, store, settings):
        """A failing agent directory does not escape the dispatcher."""
        agents = AsyncMock()
        agents.get_agent.side_effect = RuntimeError("db down")
        audit = AsyncMock(spec=AuditLogger)
        dispatcher = _dispatcher_with(AsyncMock(), store, settings, AsyncMock(), agents, audit)

        outcome = await dispatcher.dispatch("add_note", {"agent_id": "x"})

        assert outcome.kind is FailureKind.INVALID_AGENT
        assert "db down" not in outcome.message


class TestUnknownTool:
    """Tests for tool names that are not registered."""

    @pytest.mark.asyncio
    async def test_unknown_tool_short_circuits(self, store, settings):
        """No agent lookup, permission lookup, handler or audit happens."""
        agents = AsyncMock()
        permissions = AsyncMock()
        audit = AsyncMock(spec=AuditLogger)
        handler = AsyncMock()
        dispatcher = _dispatcher_with(handler, store, settings, permissions, agents, audit)

        outcome = await dispatcher.dispatch("drop_tables", {"agent_id": "x"})

        assert outcome.kind is FailureKind.UNKNOWN_TOOL
        assert outcome.code == -32601
        assert outcome.message == "Unknown tool: drop_tables"
        agents.get_agent.assert_not_awaited()
        permissions.get_permissions.assert_not_awaited()
        handler.assert_not_awaited()
        audit.record.assert_not_awaited()


class TestHandlerExecution:
    """Tests for successful calls and handler failures."""

    @pytest.mark.asyncio
    async def test_get_tasks_filters_exact_status_newest_first(
        self, dispatcher, agent_a1, store, audit_rows
    ):
        """Only exact 'To Do' matches come back, newest first, and the count is audited."""
        await store.insert("tasks", {"title": "old", "status": "To Do", "created_at": "2025-01-01T00:00:00"})
        await store.insert("tasks", {"title": "other", "status": "In Progress", "created_at": "2025-01-02T00:00:00"})
        await store.insert("tasks", {"title": "new", "status": "To Do", "created_at": "2025-01-03T00:00:00"})
        await store.insert("tasks", {"title": "lower", "status": "to do", "created_at": "2025-01-04T00:00:00"})

        outcome = await dispatcher.dispatch(
            "get_tasks", {"agent_id": agent_a1.id, "status": "To Do"}
        )

        assert isinstance(outcome, DispatchSuccess)
        assert [row["title"] for row in outcome.payload["data"]] == ["new", "old"]
        assert outcome.payload["count"] == 2

        rows = await audit_rows()
        assert len(rows) == 1
        assert rows[0]["result"] == "Success"
        assert rows[0]["details"]["result_count"] == 2
        assert rows[0]["details"]["filters"] == {"status": "To Do"}
        assert rows[0]["details"]["domain"] == "tasks"

    @pytest.mark.asyncio
    async def test_numeric_phone_number_is_call_context(self, dispatcher, agent_a1, audit_rows):
        """A numeric phone number is recorded as text and never fails the call."""
        outcome = await dispatcher.dispatch(
            "get_tasks", {"agent_id": agent_a1.id, "phone_number": 919876543210}
        )

        assert isinstance(outcome, DispatchSuccess)
        rows = await audit_rows()
        assert rows[0]["result"] == "Success"
        assert rows[0]["user_context"] == "919876543210"

    @pytest.mark.asyncio
    async def test_success_audit_holds_summary_not_payload(
        self, dispatcher, make_agent, audit_rows
    ):
        """The audit record carries the created id, never the full row."""
        agent = await make_agent("Writer", {"tasks": {"enabled": True, "tools": ["create_task"]}})

        outcome = await dispatcher.dispatch(
            "create_task",
            {"agent_id": agent.id, "title": "Send quote", "description": "x" * 500},
        )

        assert outcome.ok
        task = outcome.payload["task"]
        details = (await audit_rows())[0]["details"]
        assert details["task_id"] == task["task_id"]
        assert "description" not in str(details)

    @pytest.mark.asyncio
    async def test_invalid_arguments_are_handler_errors(self, dispatcher, make_agent, audit_rows):
        """Argument validation runs after the gate and fails as HANDLER_ERROR."""
        agent = await make_agent("Writer", {"tasks": {"enabled": True, "tools": ["create_task"]}})

        outcome = await dispatcher.dispatch(
            "create_task", {"agent_id": agent.id, "priority": "Whenever"}
        )

        assert outcome.kind is FailureKind.HANDLER_ERROR
        assert outcome.message.startswith("Invalid arguments: ")
        assert "title" in outcome.message
        rows = await audit_rows()
        assert [row["result"] for row in rows] == ["Error"]

    @pytest.mark.asyncio
    async def test_typed_failure_message_is_passed_through(self, store, settings, agent_a1):
        """ToolExecutionError text reaches the caller; its detail reaches the audit."""
        handler = AsyncMock(side_effect=ToolExecutionError("Note is locked", {"note_id": "N-1"}))
        audit = AsyncMock(spec=AuditLogger)
        permissions = AsyncMock()
        permissions.get_permissions.return_value = _grant("notes", "add_note")
        agents = AsyncMock()
        agents.get_agent.return_value = agent_a1
        dispatcher = _dispatcher_with(handler, store, settings, permissions, agents, audit)

        outcome = await dispatcher.dispatch("add_note", {"agent_id": agent_a1.id})

        assert outcome.kind is FailureKind.HANDLER_ERROR
        assert outcome.message == "Note is locked"
        record = audit.record.await_args.args[0]
        assert record.outcome is Outcome.ERROR
        assert record.details["note_id"] == "N-1"


    @pytest.mark.asyncio
    async def test_unexpected_failure_is_sanitized(self, store, settings, agent_a1):
        """Store internals stay in the audit record, not in the caller's message."""
        handler = AsyncMock(side_effect=RuntimeError("password=hunter2 host=db.internal"))
        audit = AsyncMock(spec=AuditLogger)
        permissions = AsyncMock()
        permissions.get_permissions.return_value = _grant("notes", "add_note")
        agents = AsyncMock()
        agents.get_agent.return_value = agent_a1
        dispatcher = _dispatcher_with(handler, store, settings, permissions, agents, audit)

        outcome = await dispatcher.dispatch("add_note", {"agent_id": agent_a1.id, "text": "hi"})

        assert outcome.kind is FailureKind.HANDLER_ERROR
        assert outcome.message == "Failed to execute add_note"
        record = audit.record.await_args.args[0]
        assert "hunter2" in record.error
        assert record.details["error_type"] == "RuntimeError"
        assert record.details["filters"] == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_missing_record_is_handler_error(self, dispatcher, make_agent):
        agent = await make_agent("Writer", {"tasks": {"enabled": True, "tools": ["delete_task"]}})

        outcome = await dispatcher.dispatch("delete_task", {"agent_id": agent.id, "task_id": "TASK-1"})

        assert outcome.kind is FailureKind.HANDLER_ERROR
        assert "TASK-1" in outcome.message


class TestAuditing:
    """Tests for the one-record-per-attempt rule."""

    @pytest.mark.asyncio
    async def test_one_record_per_attempt(self, dispatcher, agent_a1, audit_rows):
        """Success, denial and invalid agent each add exactly one record."""
        await dispatcher.dispatch("get_tasks", {"agent_id": agent_a1.id})
        await dispatcher.dispatch("create_task", {"agent_id": agent_a1.id, "title": "x"})
        await dispatcher.dispatch("get_tasks", {"agent_id": "ghost"})
        await dispatcher.dispatch("no_such_tool", {"agent_id": agent_a1.id})

        rows = await audit_rows()
        assert [row["result"] for row in rows] == ["Success", "Denied", "Error"]

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_the_call(self, store, settings, agent_a1):
        """A broken sink is reported to the log, the caller still gets the result."""
        sink = AsyncMock()
        sink.append.side_effect = StoreError("audit table missing")
        handler = AsyncMock(return_value=ToolResult(payload={"success": True}, summary={"n": 1}))
        permissions = AsyncMock()
        permissions.get_permissions.return_value = _grant("notes", "add_note")
        agents = AsyncMock()
        agents.get_agent.return_value = agent_a1
        dispatcher = _dispatcher_with(
            handler, store, settings, permissions, agents, AuditLogger(sink)
        )

        outcome = await dispatcher.dispatch("add_note", {"agent_id": agent_a1.id})

        assert outcome.ok
        assert outcome.payload == {"success": True}
        sink.append.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_context_and_session_are_recorded(self, dispatcher, agent_a1, audit_rows):
        await dispatcher.dispatch(
            "get_tasks",
            {"agent_id": agent_a1.id, "phone_number": "+919800000000"},
            session_id="abc123",
        )

        row = (await audit_rows())[0]
        assert row["user_context"] == "+919800000000"
        assert row["details"]["session_id"] == "abc123"


class TestRoundTrips:
    """Create-then-read scenarios through the dispatcher."""

    @pytest.mark.asyncio
    async def test_create_then_get_task(self, dispatcher, make_agent):
        agent = await make_agent(
            "Writer", {"tasks": {"enabled": True, "tools": ["create_task", "get_tasks"]}}
        )

        created = await dispatcher.dispatch(
            "create_task",
            {
                "agent_id": agent.id,
                "title": "Renew contract",
                "priority": "High",
                "due_date": "2025-03-01",
                "due_time": "09:30",
            },
        )
        task_id = created.payload["task"]["task_id"]
        fetched = await dispatcher.dispatch("get_tasks", {"agent_id": agent.id, "task_id": task_id})

        assert fetched.payload["count"] == 1
        task = fetched.payload["data"][0]
        assert task["title"] == "Renew contract"
        assert task["priority"] == "High"
        assert task["status"] == "To Do"
        assert task["due_date"] == "2025-03-01T09:30:00"

    @pytest.mark.asyncio
    async def test_duplicate_leads_are_not_deduplicated(self, dispatcher, make_agent):
        """Creating the same lead twice stores two records with different ids."""
        agent = await make_agent("Sales", {"leads": {"enabled": True, "tools": ["create_lead"]}})
        args = {"agent_id": agent.id, "name": "Priya", "phone": "+919811111111"}

        first = await dispatcher.dispatch("create_lead", args)
        second = await dispatcher.dispatch("create_lead", args)

        assert first.ok and second.ok
        assert first.payload["lead"]["lead_id"] != second.payload["lead"]["lead_id"]


def _grant(domain: str, *tools: str) -> PermissionMap:
    return PermissionMap.from_raw({domain: {"enabled": True, "tools": list(tools)}})
