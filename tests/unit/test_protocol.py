"""Tests for the JSON-RPC protocol adapter."""

import json
import logging

import pytest

from crm_mcp.server.protocol import ProtocolAdapter, parse_message
from crm_mcp.server.sessions import SessionManager
from crm_mcp.utils.errors import ProtocolError


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(ttl=60)


@pytest.fixture
def adapter(registry, dispatcher, store, settings, sessions) -> ProtocolAdapter:
    return ProtocolAdapter(registry, dispatcher, store, settings, sessions)


def _call(name: str, arguments: dict, request_id: int = 1) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments},
    }


class TestParseMessage:
    """Tests for request body decoding."""

    def test_valid_json(self):
        assert parse_message(b'{"id": 1}') == {"id": 1}

    def test_invalid_json(self):
        with pytest.raises(ProtocolError) as exc_info:
            parse_message(b"{not json")

        assert exc_info.value.code == -32700
        assert exc_info.value.message == "Parse error"


class TestLifecycleMethods:
    """Tests for initialize, ping and notifications."""

    @pytest.mark.asyncio
    async def test_initialize(self, adapter, sessions):
        response = await adapter.handle(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {"clientInfo": {"name": "bot", "agentId": "AGT-1"}},
            },
            session_id="s1",
        )

        result = response["result"]
        assert response["id"] == 1
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"] == {"name": "crm-mcp-server", "version": "1.0.0"}
        assert set(result["capabilities"]) == {"tools", "resources", "prompts"}
        session = sessions.get("s1")
        assert session.initialized
        assert session.agent_id == "AGT-1"

    @pytest.mark.asyncio
    async def test_initialize_escapes_session_id_in_logs(self, adapter, caplog):
        with caplog.at_level(logging.INFO, logger="crm_mcp.server.protocol"):
            await adapter.handle(
                {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
                session_id="s1\r\nFORGED",
            )

        assert "Session initialized: s1\\r\\nFORGED" in caplog.text
        assert "\nFORGED" not in caplog.text

    @pytest.mark.asyncio
    async def test_ping(self, adapter):
        response = await adapter.handle({"jsonrpc": "2.0", "id": "p", "method": "ping"})
        assert response == {"jsonrpc": "2.0", "id": "p", "result": {}}

    @pytest.mark.asyncio
    async def test_notification_has_no_response(self, adapter):
        response = await adapter.handle({"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert response is None

    @pytest.mark.asyncio
    async def test_unknown_method(self, adapter):
        response = await adapter.handle({"jsonrpc": "2.0", "id": 3, "method": "tools/destroy"})
        assert response["error"] == {"code": -32601, "message": "Method not found: tools/destroy"}
        assert response["id"] == 3

    @pytest.mark.asyncio
    async def test_missing_method(self, adapter):
        response = await adapter.handle({"jsonrpc": "2.0", "id": 4})
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_non_object_message(self, adapter):
        response = await adapter.handle("hello")
        assert response["error"]["code"] == -32600
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_non_object_params(self, adapter):
        response = await adapter.handle(
            {"jsonrpc": "2.0", "id": 5, "method": "tools/list", "params": [1, 2]}
        )
        assert response["error"]["code"] == -32602


class TestBatches:
    """Tests for JSON-RPC batch arrays."""

    @pytest.mark.asyncio
    async def test_batch_responses_keep_ids(self, adapter):
        responses = await adapter.handle(
            [
                {"jsonrpc": "2.0", "id": 1, "method": "ping"},
                {"jsonrpc": "2.0", "method": "notifications/initialized"},
                {"jsonrpc": "2.0", "id": 2, "method": "ping"},
            ]
        )
        assert [r["id"] for r in responses] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_batch(self, adapter):
        response = await adapter.handle([])
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_notification_only_batch(self, adapter):
        assert await adapter.handle([{"jsonrpc": "2.0", "method": "notifications/x"}]) is None


class TestTools:
    """Tests for tools/list and tools/call."""

    @pytest.mark.asyncio
    async def test_list_tools_is_unfiltered_and_stable(self, adapter, registry):
        request = {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}

        first = await adapter.handle(request)
        second = await adapter.handle(request)

        assert first == second
        tools = first["result"]["tools"]
        assert len(tools) == len(registry)
        assert set(tools[0]) == {"name", "description", "inputSchema"}

    @pytest.mark.asyncio
    async def test_call_success_wraps_payload_as_text(self, adapter, agent_a1, store):
        await store.insert("tasks", {"title": "Call Ravi", "status": "To Do"})

        response = await adapter.handle(_call("get_tasks", {"agent_id": agent_a1.id}, 9))

        assert response["id"] == 9
        content = response["result"]["content"]
        assert content[0]["type"] == "text"
        payload = json.loads(content[0]["text"])
        assert payload["success"] is True
        assert payload["count"] == 1
        assert payload["data"][0]["title"] == "Call Ravi"

    @pytest.mark.asyncio
    async def test_call_denied_is_error_envelope(self, adapter, agent_a1):
        response = await adapter.handle(
            _call("create_task", {"agent_id": agent_a1.id, "title": "x"}, 10)
        )

        assert "result" not in response
        assert response["id"] == 10
        assert response["error"] == {
            "code": -32001,
            "message": "Agent does not have permission to use create_task",
        }

    @pytest.mark.asyncio
    async def test_call_unknown_tool(self, adapter, agent_a1):
        response = await adapter.handle(_call("launch_rockets", {"agent_id": agent_a1.id}))
        assert response["error"]["code"] == -32601

    @pytest.mark.asyncio
    async def test_call_without_name(self, adapter):
        response = await adapter.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {}}
        )
        assert response["error"] == {"code": -32602, "message": "Tool name is required"}

    @pytest.mark.asyncio
    async def test_call_session_id_reaches_audit(self, adapter, agent_a1, audit_rows):
        await adapter.handle(_call("get_tasks", {"agent_id": agent_a1.id}), session_id="sess-42")

        rows = await audit_rows()
        assert rows[0]["details"]["session_id"] == "sess-42"

    @pytest.mark.asyncio
    async def test_session_agent_does_not_authorize(self, adapter, agent_a1):
        """An agent announced in initialize is not used for tools/call."""
        await adapter.handle(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {"clientInfo": {"agentId": agent_a1.id}},
            },
            session_id="s1",
        )

        response = await adapter.handle(_call("get_tasks", {}), session_id="s1")

        assert response["error"]["code"] == -32602
        assert response["error"]["message"] == "agent_id is required"


class TestResourcesAndPrompts:
    """Tests for resources/* and prompts/*."""

    @pytest.mark.asyncio
    async def test_read_pending_tasks(self, adapter, store):
        await store.insert("tasks", {"title": "open", "status": "To Do"})
        await store.insert("tasks", {"title": "done", "status": "Completed"})

        response = await adapter.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "resources/read", "params": {"uri": "tasks://pending"}}
        )

        contents = response["result"]["contents"][0]
        assert contents["uri"] == "tasks://pending"
        assert contents["mimeType"] == "application/json"
        assert [t["title"] for t in json.loads(contents["text"])] == ["open"]

    @pytest.mark.asyncio
    async def test_unknown_resource(self, adapter):
        response = await adapter.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "resources/read", "params": {"uri": "tasks://nope"}}
        )
        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_resource_reads_are_not_audited(self, adapter, audit_rows):
        await adapter.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "resources/read", "params": {"uri": "tasks://all"}}
        )
        assert await audit_rows() == []

    @pytest.mark.asyncio
    async def test_list_resources(self, adapter, registry):
        response = await adapter.handle({"jsonrpc": "2.0", "id": 1, "method": "resources/list"})
        assert len(response["result"]["resources"]) == len(registry.list_resources())

    @pytest.mark.asyncio
    async def test_get_prompt(self, adapter):
        response = await adapter.handle(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "prompts/get",
                "params": {"name": "expense_summary", "arguments": {"period": "March 2025"}},
            }
        )

        message = response["result"]["messages"][0]
        assert message["role"] == "user"
        assert "March 2025" in message["content"]["text"]

    @pytest.mark.asyncio
    async def test_list_prompts_hides_defaults(self, adapter):
        response = await adapter.handle({"jsonrpc": "2.0", "id": 1, "method": "prompts/list"})
        for prompt in response["result"]["prompts"]:
            for argument in prompt["arguments"]:
                assert "default" not in argument

    @pytest.mark.asyncio
    async def test_unknown_prompt(self, adapter):
        response = await adapter.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "prompts/get", "params": {"name": "nope"}}
        )
        assert response["error"]["code"] == -32602
