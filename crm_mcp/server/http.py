"""Streamable-HTTP transport for the CRM MCP server.

One endpoint carries every JSON-RPC message:

    POST /mcp      JSON-RPC request, notification or batch
    GET  /health   Liveness check

The ``Mcp-Session-Id`` header is echoed back when the client sends one and
minted otherwise.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from crm_mcp.utils.errors import ProtocolError
from crm_mcp.utils.logging_config import sanitize_log_input

from .protocol import error_response, parse_message
from .runtime import ServerComponents, build_components
from .sessions import SESSION_HEADER

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    service: str
    version: str
    tools_available: int
    active_sessions: int


def create_app(components: ServerComponents | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        components: Pre-built server components (built from settings if omitted)

    Returns:
        Configured FastAPI app
    """
    components = components or build_components()
    settings = components.settings
    sessions = components.sessions

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start session eviction on startup, release the store on shutdown."""
        sessions.start_cleanup_loop()
        logger.info(f"{settings.mcp_server_name} started")
        yield
        await sessions.stop_cleanup_loop()
        await components.close()
        logger.info(f"{settings.mcp_server_name} shutting down")

    app = FastAPI(
        title="CRM MCP Server",
        description="Permission-gated CRM tools over the Model Context Protocol.",
        version=settings.mcp_server_version,
        lifespan=lifespan,
    )
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            service=settings.mcp_server_name,
            version=settings.mcp_server_version,
            tools_available=len(components.registry),
            active_sessions=sessions.active_count(),
        )

    @app.post("/mcp")
    async def handle_mcp(request: Request) -> Response:
        body = await request.body()
        try:
            message = parse_message(body)
        except ProtocolError as e:
            logger.warning(f"Rejected malformed request body ({len(body)} bytes)")
            return JSONResponse(status_code=400, content=error_response(None, e.code, e.message))

        session = sessions.get_or_create(request.headers.get(SESSION_HEADER))
        response = await components.adapter.handle(message, session.id)
        headers = {SESSION_HEADER: session.id}

        if response is None:
            return Response(status_code=202, headers=headers)
        return JSONResponse(content=response, headers=headers)

    @app.delete("/mcp")
    async def end_session(request: Request) -> Response:
        session_id = request.headers.get(SESSION_HEADER)
        if session_id and sessions.delete(session_id):
            logger.info(f"Session ended by client: {sanitize_log_input(session_id)}")
            return Response(status_code=204)
        return Response(status_code=404)

    return app
