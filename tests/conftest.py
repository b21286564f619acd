"""Shared fixtures: an in-memory store seeded with one agent, and a dispatcher over it."""

import pytest

from crm_mcp.audit import AuditLogger, StoreAuditSink
from crm_mcp.core.config import Settings
from crm_mcp.dispatch import ToolDispatcher
from crm_mcp.permissions import Agent, StoreAgentDirectory, StorePermissionStore
from crm_mcp.storage import AGENTS_TABLE, AUDIT_TABLE, PERMISSIONS_TABLE, MemoryRecordStore, Query
from crm_mcp.tools import build_registry

A1_PERMISSIONS = {"tasks": {"enabled": True, "tools": ["get_tasks"]}}


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        store_backend="file",
        storage_path=tmp_path / "data",
        log_dir=tmp_path / "logs",
        default_list_limit=100,
        max_list_limit=500,
    )


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def make_agent(store):
    """Factory inserting an agent row and, when given, its permission row."""

    async def _make(
        name: str, permissions: dict | str | None = None, status: str = "Active"
    ) -> Agent:
        row = await store.insert(AGENTS_TABLE, {"name": name, "status": status})
        if permissions is not None:
            await store.insert(
                PERMISSIONS_TABLE, {"agent_id": row["id"], "permissions": permissions}
            )
        return Agent.from_row(row)

    return _make


@pytest.fixture
def audit_rows(store):
    """Coroutine returning every audit row in insertion order."""

    async def _rows() -> list[dict]:
        return await store.select(Query(AUDIT_TABLE).order(None))

    return _rows


@pytest.fixture
async def agent_a1(make_agent) -> Agent:
    """Agent 'A1' allowed to use get_tasks only."""
    return await make_agent("A1", A1_PERMISSIONS)


@pytest.fixture
def dispatcher(registry, store, settings) -> ToolDispatcher:
    return ToolDispatcher(
        registry=registry,
        agents=StoreAgentDirectory(store),
        permissions=StorePermissionStore(store),
        audit=AuditLogger(StoreAuditSink(store)),
        store=store,
        settings=settings,
    )
