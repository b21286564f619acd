"""Agent and permission lookups backed by the record store.

Nothing here caches: each dispatch re-reads the agent row and its
permission map, so a revoked grant applies to the very next call.
"""

import logging
from typing import Protocol

from crm_mcp.storage import AGENTS_TABLE, PERMISSIONS_TABLE, Query, RecordStore

from .identity import Agent
from .permissions import PermissionMap

logger = logging.getLogger(__name__)


class AgentDirectory(Protocol):
    """Resolves agent ids to agents."""

    async def get_agent(self, agent_id: str) -> Agent | None: ...


class PermissionStore(Protocol):
    """Reads the current permission map for an agent."""

    async def get_permissions(self, agent_id: str) -> PermissionMap | None: ...


class StoreAgentDirectory:
    """``AgentDirectory`` over the ``ai_agents`` table."""

    def __init__(self, store: RecordStore):
        self._store = store

    async def get_agent(self, agent_id: str) -> Agent | None:
        rows = await self._store.select(
            Query(AGENTS_TABLE).eq("id", agent_id).order(None).limit(1)
        )
        if not rows:
            return None
        return Agent.from_row(rows[0])


class StorePermissionStore:
    """``PermissionStore`` over the ``ai_agent_permissions`` table.

    Each agent has at most one row whose ``permissions`` column holds the
    whole map (JSON object or JSON string).
    """

    def __init__(self, store: RecordStore):
        self._store = store

    async def get_permissions(self, agent_id: str) -> PermissionMap | None:
        rows = await self._store.select(
            Query(PERMISSIONS_TABLE).eq("agent_id", agent_id).order(None).limit(1)
        )
        if not rows:
            logger.debug(f"No permission row for agent {agent_id}")
            return None
        return PermissionMap.from_raw(rows[0].get("permissions"))
