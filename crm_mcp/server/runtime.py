"""Wires settings, record store, registry and dispatcher together."""

import logging
from dataclasses import dataclass

from crm_mcp.audit import AuditLogger, StoreAuditSink
from crm_mcp.core.config import Settings, get_settings
from crm_mcp.dispatch import ToolDispatcher
from crm_mcp.permissions import StoreAgentDirectory, StorePermissionStore
from crm_mcp.registry import OperationRegistry
from crm_mcp.storage import RecordStore, create_record_store
from crm_mcp.tools import build_registry

from .protocol import ProtocolAdapter
from .sessions import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class ServerComponents:
    settings: Settings
    store: RecordStore
    registry: OperationRegistry
    dispatcher: ToolDispatcher
    adapter: ProtocolAdapter
    sessions: SessionManager

    async def close(self) -> None:
        await self.store.close()


def build_components(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    registry: OperationRegistry | None = None,
) -> ServerComponents:
    """
    Build everything a transport needs.

    Args:
        settings: Settings (defaults to the process-wide settings)
        store: Record store (defaults to the backend selected in settings)
        registry: Tool registry (defaults to the full CRM catalog)
    """
    settings = settings if settings is not None else get_settings()
    store = store if store is not None else create_record_store(settings)
    registry = registry if registry is not None else build_registry()

    dispatcher = ToolDispatcher(
        registry=registry,
        agents=StoreAgentDirectory(store),
        permissions=StorePermissionStore(store),
        audit=AuditLogger(StoreAuditSink(store)),
        store=store,
        settings=settings,
    )
    sessions = SessionManager(ttl=settings.session_ttl)
    adapter = ProtocolAdapter(registry, dispatcher, store, settings, sessions)
    logger.info(f"Server components ready ({settings.store_backend} store, {len(registry)} tools)")
    return ServerComponents(settings, store, registry, dispatcher, adapter, sessions)
