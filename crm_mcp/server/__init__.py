"""MCP transports and the protocol adapter they share."""

from .http import HealthResponse, create_app
from .protocol import ProtocolAdapter, parse_message
from .runtime import ServerComponents, build_components
from .sessions import SESSION_HEADER, Session, SessionManager
from .stdio import CRMStdioServer

__all__ = [
    "CRMStdioServer",
    "HealthResponse",
    "ProtocolAdapter",
    "SESSION_HEADER",
    "ServerComponents",
    "Session",
    "SessionManager",
    "build_components",
    "create_app",
    "parse_message",
]
