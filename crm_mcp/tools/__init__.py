"""CRM tool catalog.

Each domain module exposes ``register(registry)``; ``build_registry``
assembles the full catalog and seals it.
"""

from crm_mcp.registry import OperationRegistry

from . import appointments, billing, expenses, leads, tasks
from .appointments import APPOINTMENTS
from .billing import BILLING
from .expenses import EXPENSES
from .leads import LEADS
from .tasks import TASKS

DOMAINS = (TASKS, LEADS, APPOINTMENTS, EXPENSES, BILLING)

DOMAIN_MODULES = (tasks, leads, appointments, expenses, billing)


def build_registry() -> OperationRegistry:
    """Register every domain's tools, resources and prompts, then seal."""
    registry = OperationRegistry()
    for module in DOMAIN_MODULES:
        module.register(registry)
    registry.seal()
    return registry


__all__ = [
    "APPOINTMENTS",
    "BILLING",
    "DOMAINS",
    "EXPENSES",
    "LEADS",
    "TASKS",
    "build_registry",
]
