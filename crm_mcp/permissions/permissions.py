"""Per-agent tool grants keyed by resource domain.

A stored permission map looks like::

    {
        "tasks": {"enabled": true, "tools": ["get_tasks", "create_task"]},
        "expenses-server": {"enabled": true, "tools": ["get_expenses"]}
    }

Security model:
- A tool runs only if its domain grant is enabled AND lists the tool
- Anything missing or malformed is treated as no grant (deny by default)
- Legacy ``<domain>-server`` keys are honoured when the plain key is absent
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

LEGACY_KEY_SUFFIX = "-server"


@dataclass(frozen=True)
class DomainGrant:
    """Enabled flag and tool allowlist for one resource domain."""

    enabled: bool = False
    tools: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_raw(cls, raw: Any) -> DomainGrant:
        """Parse one domain entry; malformed entries become an empty grant."""
        if not isinstance(raw, dict):
            return cls()
        tools = raw.get("tools")
        if not isinstance(tools, list):
            tools = []
        return cls(
            enabled=raw.get("enabled") is True,
            tools=frozenset(t for t in tools if isinstance(t, str)),
        )

    def allows(self, tool_name: str) -> bool:
        return self.enabled and tool_name in self.tools

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "tools": sorted(self.tools)}


class PermissionMap:
    """Immutable mapping from resource domain to ``DomainGrant``.

    Example:
        perms = PermissionMap.from_raw({"tasks": {"enabled": True, "tools": ["get_tasks"]}})
        perms.is_enabled("tasks", "get_tasks")    # True
        perms.is_enabled("tasks", "create_task")  # False
        PermissionMap.empty().is_enabled("tasks", "get_tasks")  # False
    """

    def __init__(self, grants: dict[str, DomainGrant] | None = None):
        self._grants: dict[str, DomainGrant] = dict(grants) if grants else {}

    @classmethod
    def empty(cls) -> PermissionMap:
        """Create a permission map with no grants."""
        return cls()

    @classmethod
    def from_raw(cls, raw: Any) -> PermissionMap:
        """Parse a stored permission document.

        Accepts a dict or a JSON-encoded string. Anything else, including
        invalid JSON, yields an empty map.
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring permission map that is not valid JSON")
                return cls.empty()
        if not isinstance(raw, dict):
            return cls.empty()
        return cls({str(key): DomainGrant.from_raw(value) for key, value in raw.items()})

    def grant_for(self, domain: str) -> DomainGrant:
        """Return the grant for ``domain``, falling back to its legacy server key."""
        grant = self._grants.get(domain)
        if grant is None:
            grant = self._grants.get(f"{domain}{LEGACY_KEY_SUFFIX}")
        return grant or DomainGrant()

    def is_enabled(self, domain: str, tool_name: str) -> bool:
        return self.grant_for(domain).allows(tool_name)

    def enabled_tools(self, domain: str) -> frozenset[str]:
        grant = self.grant_for(domain)
        return grant.tools if grant.enabled else frozenset()

    def with_tools(self, domain: str, tools: Iterable[str], enabled: bool = True) -> PermissionMap:
        """Return a copy where ``domain`` grants exactly ``tools``."""
        grants = dict(self._grants)
        grants.pop(f"{domain}{LEGACY_KEY_SUFFIX}", None)
        grants[domain] = DomainGrant(enabled=enabled, tools=frozenset(tools))
        return PermissionMap(grants)

    def is_empty(self) -> bool:
        return not any(grant.enabled and grant.tools for grant in self._grants.values())

    def to_dict(self) -> dict[str, Any]:
        return {domain: grant.to_dict() for domain, grant in sorted(self._grants.items())}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionMap):
            return NotImplemented
        return self._grants == other._grants

    def __str__(self) -> str:
        parts = [
            f"{domain}:{','.join(sorted(grant.tools))}"
            for domain, grant in sorted(self._grants.items())
            if grant.enabled
        ]
        return f"PermissionMap({'; '.join(parts) or 'none'})"


def is_enabled(permissions: PermissionMap | None, domain: str, tool_name: str) -> bool:
    """True only if ``permissions[domain]`` is enabled and lists ``tool_name``."""
    if permissions is None:
        return False
    return permissions.is_enabled(domain, tool_name)
