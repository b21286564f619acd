"""Agent identity and per-domain tool permissions.

- Agent: who is making a request (id, display name, activation status)
- PermissionMap: per-domain enabled flag and tool allowlist
- is_enabled: the single permission predicate used by the dispatcher
- StoreAgentDirectory / StorePermissionStore: cache-free lookups

Security model:
- Deny by default: a missing or malformed map grants nothing
- Permissions are re-read on every dispatch (revocation is immediate)
"""

from .identity import ACTIVE, INACTIVE, Agent
from .permissions import DomainGrant, PermissionMap, is_enabled
from .store import AgentDirectory, PermissionStore, StoreAgentDirectory, StorePermissionStore

__all__ = [
    "ACTIVE",
    "INACTIVE",
    "Agent",
    "AgentDirectory",
    "DomainGrant",
    "PermissionMap",
    "PermissionStore",
    "StoreAgentDirectory",
    "StorePermissionStore",
    "is_enabled",
]
