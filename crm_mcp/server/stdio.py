"""Stdio transport built on the MCP SDK's low-level ``Server``.

Used when the server is launched as a subprocess by an MCP client. Every
``call_tool`` goes through the same dispatcher as the HTTP transport, so
permissions and auditing behave identically.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import (
    GetPromptResult,
    Prompt,
    PromptArgument,
    PromptMessage,
    Resource,
    TextContent,
    Tool,
)
from pydantic import AnyUrl

from crm_mcp.dispatch import DispatchFailure
from crm_mcp.utils.errors import ToolCallFailed

from .runtime import ServerComponents, build_components

logger = logging.getLogger(__name__)


def _as_text(payload: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


class CRMStdioServer:
    """
    MCP server exposing the CRM registry over stdio.

    Tools, resources and prompts are read from the registry, so nothing is
    registered here directly.
    """

    def __init__(self, components: ServerComponents | None = None):
        self.components = components or build_components()
        self.app = Server(self.components.settings.mcp_server_name)
        self.setup_handlers()

    def setup_handlers(self) -> None:
        """Set up MCP handlers for tools, resources and prompts."""
        registry = self.components.registry
        dispatcher = self.components.dispatcher
        store = self.components.store
        settings = self.components.settings

        @self.app.list_tools()
        async def list_tools() -> list[Tool]:
            logger.info("Listing available tools")
            return [
                Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)
                for tool in registry.list_tools()
            ]

        @self.app.call_tool()
        async def call_tool(name: str, arguments: Any) -> Sequence[TextContent]:
            outcome = await dispatcher.dispatch(name, arguments or {})
            if isinstance(outcome, DispatchFailure):
                raise ToolCallFailed(outcome.code, outcome.message, name)
            return _as_text(outcome.payload)

        @self.app.list_resources()
        async def list_resources() -> list[Resource]:
            return [
                Resource(
                    uri=AnyUrl(resource.uri),
                    name=resource.name,
                    description=resource.description,
                    mimeType=resource.mime_type,
                )
                for resource in registry.list_resources()
            ]

        @self.app.read_resource()
        async def read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
            resource = registry.resolve_resource(str(uri))
            if resource is None:
                raise ValueError(f"Unknown resource: {uri}")
            data = await resource.reader(store, settings)
            return [
                ReadResourceContents(
                    content=json.dumps(data, indent=2, default=str), mime_type=resource.mime_type
                )
            ]

        @self.app.list_prompts()
        async def list_prompts() -> list[Prompt]:
            return [
                Prompt(
                    name=prompt.name,
                    description=prompt.description,
                    arguments=[
                        PromptArgument(
                            name=arg["name"],
                            description=arg.get("description"),
                            required=arg.get("required", False),
                        )
                        for arg in prompt.arguments
                    ],
                )
                for prompt in registry.list_prompts()
            ]

        @self.app.get_prompt()
        async def get_prompt(name: str, arguments: dict[str, str] | None) -> GetPromptResult:
            prompt = registry.resolve_prompt(name)
            if prompt is None:
                raise ValueError(f"Unknown prompt: {name}")
            return GetPromptResult(
                description=prompt.description,
                messages=[
                    PromptMessage(
                        role="user",
                        content=TextContent(type="text", text=prompt.render(arguments or {})),
                    )
                ],
            )

    async def run(self) -> None:
        """Run the MCP server."""
        logger.info(f"Starting MCP Server: {self.app.name}")

        try:
            async with stdio_server() as (read_stream, write_stream):
                logger.info("MCP server running on stdio")
                await self.app.run(
                    read_stream,
                    write_stream,
                    self.app.create_initialization_options(),
                )
        finally:
            await self.components.close()
