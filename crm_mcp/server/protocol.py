"""JSON-RPC protocol adapter for the MCP methods.

Translates request envelopes into registry and dispatcher calls and wraps
the results back into response envelopes. Transport-agnostic: the HTTP
app feeds it parsed JSON bodies.

Errors are returned as ``{"code", "message"}`` objects. Only messages the
dispatcher has already sanitized, or fixed protocol messages, ever reach
the caller.
"""

import json
import logging
from typing import Any

from crm_mcp.core.config import Settings
from crm_mcp.dispatch import DispatchFailure, ToolDispatcher
from crm_mcp.registry import OperationRegistry
from crm_mcp.storage import RecordStore
from crm_mcp.utils.errors import ProtocolError
from crm_mcp.utils.logging_config import sanitize_log_input

from .sessions import SessionManager

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


def parse_message(raw: bytes | str) -> Any:
    """Decode a request body.

    Raises:
        ProtocolError: With code -32700 if the body is not valid JSON
    """
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise ProtocolError(PARSE_ERROR, "Parse error") from e


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": {"code": code, "message": message}}


def result_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def text_content(payload: Any) -> dict[str, Any]:
    """MCP text content block holding ``payload`` as indented JSON."""
    return {"content": [{"type": "text", "text": json.dumps(payload, indent=2, default=str)}]}


class ProtocolAdapter:
    """Routes MCP JSON-RPC methods to their handlers."""

    def __init__(
        self,
        registry: OperationRegistry,
        dispatcher: ToolDispatcher,
        store: RecordStore,
        settings: Settings,
        sessions: SessionManager | None = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.store = store
        self.settings = settings
        self.sessions = sessions or SessionManager(ttl=settings.session_ttl)

        self._methods = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    async def handle(self, message: Any, session_id: str | None = None) -> Any:
        """
        Handle one message or a batch.

        Args:
            message: Parsed JSON body (object or array)
            session_id: Transport session, used for logging and audit correlation

        Returns:
            Response envelope, list of envelopes for a batch, or None when
            nothing needs to be sent back (notifications only)
        """
        if isinstance(message, list):
            if not message:
                return error_response(None, INVALID_REQUEST, "Invalid Request: empty batch")
            responses = [await self._handle_one(item, session_id) for item in message]
            responses = [response for response in responses if response is not None]
            return responses or None
        return await self._handle_one(message, session_id)

    async def _handle_one(self, message: Any, session_id: str | None) -> dict[str, Any] | None:
        if not isinstance(message, dict):
            return error_response(None, INVALID_REQUEST, "Invalid Request")

        request_id = message.get("id")
        is_notification = "id" not in message
        method = message.get("method")
        if not isinstance(method, str) or not method:
            if is_notification:
                return None
            return error_response(request_id, INVALID_REQUEST, "Invalid Request: method is required")

        if method.startswith("notifications/"):
            logger.debug(f"Notification received: {sanitize_log_input(method)}")
            return None

        params = message.get("params") or {}
        handler = self._methods.get(method)
        try:
            if handler is None:
                raise ProtocolError(METHOD_NOT_FOUND, f"Method not found: {method}")
            if not isinstance(params, dict):
                raise ProtocolError(INVALID_PARAMS, "params must be an object")
            result = await handler(params, session_id)
        except ProtocolError as e:
            logger.warning(f"{sanitize_log_input(method)} failed: {sanitize_log_input(e.message)}")
            response = error_response(request_id, e.code, e.message)
        except Exception as e:
            logger.exception(f"Unexpected error handling {sanitize_log_input(method)}: {e}")
            response = error_response(request_id, INTERNAL_ERROR, "Internal error")
        else:
            if isinstance(result, DispatchFailure):
                response = error_response(request_id, result.code, result.message)
            else:
                response = result_response(request_id, result)

        return None if is_notification else response

    # Methods

    async def _initialize(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        client_info = params.get("clientInfo") or {}
        agent_id = client_info.get("agentId") if isinstance(client_info, dict) else None
        agent_id = agent_id or params.get("agentId")

        if session_id:
            session = self.sessions.get_or_create(session_id)
            session.agent_id = str(agent_id) if agent_id else None
            session.initialized = True
        logger.info(
            f"Session initialized: {sanitize_log_input(session_id) if session_id else 'none'} "
            f"(agent={sanitize_log_input(str(agent_id)) if agent_id else 'none'})"
        )

        return {
            "protocolVersion": self.settings.mcp_protocol_version,
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
            "serverInfo": {
                "name": self.settings.mcp_server_name,
                "version": self.settings.mcp_server_version,
            },
        }

    async def _ping(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {"tools": [tool.to_mcp() for tool in self.registry.list_tools()]}

    async def _call_tool(self, params: dict[str, Any], session_id: str | None) -> Any:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise ProtocolError(INVALID_PARAMS, "Tool name is required")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ProtocolError(INVALID_PARAMS, "arguments must be an object")

        outcome = await self.dispatcher.dispatch(name, arguments, session_id=session_id)
        if isinstance(outcome, DispatchFailure):
            return outcome
        return text_content(outcome.payload)

    async def _list_resources(
        self, params: dict[str, Any], session_id: str | None
    ) -> dict[str, Any]:
        return {"resources": [resource.to_mcp() for resource in self.registry.list_resources()]}

    async def _read_resource(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str) or not uri:
            raise ProtocolError(INVALID_PARAMS, "URI is required")
        resource = self.registry.resolve_resource(uri)
        if resource is None:
            raise ProtocolError(INVALID_PARAMS, f"Unknown resource: {uri}")

        try:
            data = await resource.reader(self.store, self.settings)
        except Exception as e:
            logger.exception(f"Failed to read resource {uri}: {e}")
            raise ProtocolError(INTERNAL_ERROR, f"Failed to read resource {uri}") from e

        return {
            "contents": [
                {
                    "uri": uri,
                    "mimeType": resource.mime_type,
                    "text": json.dumps(data, indent=2, default=str),
                }
            ]
        }

    async def _list_prompts(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {"prompts": [prompt.to_mcp() for prompt in self.registry.list_prompts()]}

    async def _get_prompt(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        name = params.get("name")
        prompt = self.registry.resolve_prompt(name) if isinstance(name, str) else None
        if prompt is None:
            raise ProtocolError(INVALID_PARAMS, f"Unknown prompt: {name}")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ProtocolError(INVALID_PARAMS, "arguments must be an object")

        return {
            "description": prompt.description,
            "messages": [
                {"role": "user", "content": {"type": "text", "text": prompt.render(arguments)}}
            ],
        }
