"""Administrative helpers for agents and their permission maps.

The dispatcher only reads agents and permissions. These helpers are the
write side, used by ``scripts/manage_agents.py`` and by tests.
"""

import logging
from collections.abc import Iterable

from crm_mcp.audit import DispatchRecord
from crm_mcp.permissions import ACTIVE, INACTIVE, Agent, PermissionMap, StorePermissionStore
from crm_mcp.registry import OperationRegistry
from crm_mcp.storage import AGENTS_TABLE, AUDIT_TABLE, PERMISSIONS_TABLE, Query, RecordStore
from crm_mcp.utils.errors import ValidationError

logger = logging.getLogger(__name__)

AGENT_STATUSES = (ACTIVE, INACTIVE)


async def create_agent(
    store: RecordStore,
    name: str,
    status: str = ACTIVE,
    permissions: PermissionMap | None = None,
) -> Agent:
    """
    Create an agent and, optionally, its permission map.

    Args:
        store: Record store
        name: Display name
        status: ``Active`` or ``Inactive``
        permissions: Initial grants (none if omitted)

    Returns:
        The created agent
    """
    if not name.strip():
        raise ValidationError("Agent name is required")
    _check_status(status)

    row = await store.insert(AGENTS_TABLE, {"name": name.strip(), "status": status})
    agent = Agent.from_row(row)
    if permissions is not None:
        await _save_permissions(store, agent.id, permissions)
    logger.info(f"Created agent {agent}")
    return agent


async def get_agent(store: RecordStore, agent_id: str) -> Agent:
    rows = await store.select(Query(AGENTS_TABLE).eq("id", agent_id).order(None).limit(1))
    if not rows:
        raise ValidationError(f"Agent not found: {agent_id}")
    return Agent.from_row(rows[0])


async def list_agents(store: RecordStore) -> list[Agent]:
    rows = await store.select(Query(AGENTS_TABLE).order("name"))
    return [Agent.from_row(row) for row in rows]


async def set_agent_status(store: RecordStore, agent_id: str, status: str) -> Agent:
    """Activate or deactivate an agent. Takes effect on its next call."""
    _check_status(status)
    rows = await store.update(AGENTS_TABLE, {"id": agent_id}, {"status": status})
    if not rows:
        raise ValidationError(f"Agent not found: {agent_id}")
    logger.info(f"Agent {agent_id} set to {status}")
    return Agent.from_row(rows[0])


async def get_agent_permissions(store: RecordStore, agent_id: str) -> PermissionMap:
    """The agent's stored map, or an empty map if it has none."""
    permissions = await StorePermissionStore(store).get_permissions(agent_id)
    return permissions or PermissionMap.empty()


async def grant_tools(
    store: RecordStore,
    registry: OperationRegistry,
    agent_id: str,
    domain: str,
    tools: Iterable[str],
) -> PermissionMap:
    """
    Add tools to an agent's grant for one domain and enable the domain.

    Raises:
        ValidationError: If the agent does not exist, a tool is unknown, or a
            tool belongs to a different domain
    """
    tools = set(tools)
    _check_tools(registry, domain, tools)
    await get_agent(store, agent_id)

    current = await get_agent_permissions(store, agent_id)
    updated = current.with_tools(domain, current.enabled_tools(domain) | tools)
    await _save_permissions(store, agent_id, updated)
    logger.info(f"Granted {sorted(tools)} in {domain} to agent {agent_id}")
    return updated


async def revoke_tools(
    store: RecordStore,
    agent_id: str,
    domain: str,
    tools: Iterable[str] | None = None,
) -> PermissionMap:
    """
    Remove tools from an agent's grant for one domain.

    With ``tools`` omitted the whole domain is disabled.
    """
    current = await get_agent_permissions(store, agent_id)
    if tools is None:
        updated = current.with_tools(domain, (), enabled=False)
    else:
        tools = set(tools)
        remaining = current.enabled_tools(domain) - tools
        updated = current.with_tools(domain, remaining, enabled=bool(remaining))
    await _save_permissions(store, agent_id, updated)
    logger.info(f"Revoked {sorted(tools) if tools is not None else 'all tools'} in {domain} from agent {agent_id}")
    return updated


async def get_audit_trail(
    store: RecordStore, agent_id: str | None = None, limit: int = 50
) -> list[DispatchRecord]:
    """Most recent audit records first, optionally for one agent."""
    query = Query(AUDIT_TABLE).limit(limit)
    if agent_id:
        query.eq("agent_id", agent_id)
    return [DispatchRecord.from_row(row) for row in await store.select(query)]


def _check_status(status: str) -> None:
    if status not in AGENT_STATUSES:
        raise ValidationError(f"Invalid status {status!r}; expected one of {', '.join(AGENT_STATUSES)}")


def _check_tools(registry: OperationRegistry, domain: str, tools: set[str]) -> None:
    if domain not in {d.key for d in registry.domains()}:
        raise ValidationError(f"Unknown domain: {domain}")
    for name in sorted(tools):
        tool = registry.resolve(name)
        if tool is None:
            raise ValidationError(f"Unknown tool: {name}")
        if tool.domain.key != domain:
            raise ValidationError(f"Tool {name} belongs to domain {tool.domain.key}, not {domain}")


async def _save_permissions(store: RecordStore, agent_id: str, permissions: PermissionMap) -> None:
    document = permissions.to_dict()
    updated = await store.update(PERMISSIONS_TABLE, {"agent_id": agent_id}, {"permissions": document})
    if not updated:
        await store.insert(PERMISSIONS_TABLE, {"agent_id": agent_id, "permissions": document})
