"""Small async client for the CRM MCP HTTP transport.

Usage:
    async with MCPHttpClient("http://localhost:8000", agent_id="AGT-00001") as client:
        tools = await client.list_tools()
        result = await client.call_tool("get_tasks", {"status": "To Do"})
"""

import json
import logging
from itertools import count
from typing import Any, Self

import httpx

from crm_mcp.server.sessions import SESSION_HEADER
from crm_mcp.utils.errors import MCPClientError, NotConnectedError

logger = logging.getLogger(__name__)

CLIENT_NAME = "crm-mcp-client"


class MCPHttpClient:
    """JSON-RPC over HTTP with session tracking.

    ``agent_id`` is sent in ``initialize`` and added to every ``tools/call``
    that does not already carry one.
    """

    def __init__(
        self,
        base_url: str,
        agent_id: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.agent_id = agent_id
        self.timeout = timeout
        self.session_id: str | None = None
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = count(1)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def connect(self) -> dict[str, Any]:
        """Open the HTTP client and run ``initialize``."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            )
        result = await self.request(
            "initialize",
            {
                "protocolVersion": "2024-11-05",
                "capabilities": {},
                "clientInfo": {"name": CLIENT_NAME, "version": "1.0.0", "agentId": self.agent_id},
            },
        )
        await self.notify("notifications/initialized")
        logger.info(f"Connected to {self.base_url} (session {self.session_id})")
        return result

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {SESSION_HEADER: self.session_id} if self.session_id else {}

    async def _post(self, message: dict[str, Any]) -> httpx.Response:
        if self._client is None:
            raise NotConnectedError()
        response = await self._client.post("/mcp", json=message, headers=self._headers())
        self.session_id = response.headers.get(SESSION_HEADER, self.session_id)
        return response

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Send a JSON-RPC request and return its ``result``.

        Raises:
            MCPClientError: If the server answers with an ``error`` object
            httpx.HTTPStatusError: If the server answers with a non-JSON failure
        """
        message = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            message["params"] = params

        response = await self._post(message)
        try:
            body = response.json()
        except ValueError:
            response.raise_for_status()
            raise

        if "error" in body:
            error = body["error"]
            raise MCPClientError(error.get("code", 0), error.get("message", "Unknown error"))
        return body.get("result")

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._post(message)

    async def list_tools(self) -> list[dict[str, Any]]:
        return (await self.request("tools/list"))["tools"]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a tool and decode the JSON payload from its text content."""
        arguments = dict(arguments or {})
        if self.agent_id and "agent_id" not in arguments:
            arguments["agent_id"] = self.agent_id
        result = await self.request("tools/call", {"name": name, "arguments": arguments})
        return _decode_content(result)

    async def list_resources(self) -> list[dict[str, Any]]:
        return (await self.request("resources/list"))["resources"]

    async def read_resource(self, uri: str) -> Any:
        result = await self.request("resources/read", {"uri": uri})
        contents = result.get("contents") or []
        return json.loads(contents[0]["text"]) if contents else None

    async def list_prompts(self) -> list[dict[str, Any]]:
        return (await self.request("prompts/list"))["prompts"]

    async def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> str:
        result = await self.request("prompts/get", {"name": name, "arguments": arguments or {}})
        return result["messages"][0]["content"]["text"]


def _decode_content(result: dict[str, Any]) -> Any:
    texts = [item["text"] for item in result.get("content", []) if item.get("type") == "text"]
    if not texts:
        return None
    try:
        return json.loads(texts[0])
    except ValueError:
        return texts[0]
