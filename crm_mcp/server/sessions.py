"""In-memory MCP session tracking.

A session remembers which agent a client announced in ``initialize`` so
that log lines and audit records can be correlated. Sessions never
authorize anything: ``tools/call`` always takes the agent from its own
arguments. Idle sessions are evicted after a configurable TTL.
"""

import asyncio
import logging
import time
import uuid

from crm_mcp.utils.logging_config import sanitize_log_input

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 3600  # 1 hour
SESSION_HEADER = "Mcp-Session-Id"


class Session:
    """A single MCP client session."""

    __slots__ = ("id", "agent_id", "initialized", "created_at", "last_active")

    def __init__(self, session_id: str, agent_id: str | None = None) -> None:
        self.id = session_id
        self.agent_id = agent_id
        self.initialized = False
        self.created_at = time.monotonic()
        self.last_active = self.created_at

    def touch(self) -> None:
        """Update last-active timestamp."""
        self.last_active = time.monotonic()


class SessionManager:
    """Manages MCP sessions with automatic TTL eviction."""

    def __init__(self, ttl: int = DEFAULT_SESSION_TTL) -> None:
        self._sessions: dict[str, Session] = {}
        self._ttl = ttl
        self._cleanup_task: asyncio.Task | None = None

    def start_cleanup_loop(self) -> None:
        """Start background task that evicts expired sessions."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup_loop(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        """Periodically remove sessions that exceed TTL."""
        while True:
            await asyncio.sleep(60)
            self.evict_expired()

    def evict_expired(self) -> int:
        now = time.monotonic()
        expired = [
            sid for sid, session in self._sessions.items() if now - session.last_active > self._ttl
        ]
        for sid in expired:
            logger.info("Evicting expired session %s", sanitize_log_input(sid))
            del self._sessions[sid]
        return len(expired)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:16]

    def create(self, session_id: str | None = None, agent_id: str | None = None) -> Session:
        """Create a session, reusing ``session_id`` when the client supplied one."""
        session = Session(session_id or self.new_id(), agent_id)
        self._sessions[session.id] = session
        logger.info("Created session %s", sanitize_log_input(session.id))
        return session

    def get(self, session_id: str) -> Session | None:
        """Retrieve a session by ID, or None if not found / expired."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if time.monotonic() - session.last_active > self._ttl:
            del self._sessions[session_id]
            return None
        return session

    def get_or_create(self, session_id: str | None) -> Session:
        session = self.get(session_id) if session_id else None
        if session is None:
            session = self.create(session_id)
        session.touch()
        return session

    def delete(self, session_id: str) -> bool:
        """Delete a session.  Returns True if it existed."""
        return self._sessions.pop(session_id, None) is not None

    def active_count(self) -> int:
        return len(self._sessions)
