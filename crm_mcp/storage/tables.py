"""Table descriptions shared by the record store backends.

The PostgreSQL schema generates human-readable identifiers (``TASK-10001``)
and timestamps itself. ``TableSpec`` lets the in-process store produce
the same server-generated fields so handlers behave identically on
either backend.
"""

from dataclasses import dataclass

# Tables owned by the agent/permission/audit layer
AGENTS_TABLE = "ai_agents"
PERMISSIONS_TABLE = "ai_agent_permissions"
AUDIT_TABLE = "ai_agent_logs"


@dataclass(frozen=True)
class TableSpec:
    """Server-generated fields for one table.

    Attributes:
        name: Table name
        key: Column holding a sequential human-readable id (e.g. ``task_id``)
        prefix: Prefix of the human-readable id
        start: First sequence number
        width: Zero-padding width for the sequence number
        has_updated_at: Whether updates should refresh ``updated_at``
    """

    name: str
    key: str | None = None
    prefix: str = ""
    start: int = 1
    width: int = 0
    has_updated_at: bool = True

    def format_key(self, number: int) -> str:
        return f"{self.prefix}{number:0{self.width}d}"


CRM_TABLES: dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec("tasks", key="task_id", prefix="TASK-", start=10001),
        TableSpec("recurring_tasks", key="recurrence_task_id", prefix="RETASK-", width=4),
        TableSpec("leads", key="lead_id", prefix="LEAD-", width=5),
        TableSpec("appointments", key="appointment_id", prefix="APT-", width=9),
        TableSpec("expenses", key="expense_id", prefix="EXP-", width=5),
        TableSpec("estimates", key="estimate_id", prefix="EST-", width=5),
        TableSpec("invoices", key="invoice_id", prefix="INV-", width=5),
        TableSpec("subscriptions", key="subscription_id", prefix="SUB-", width=5),
        TableSpec("receipts", key="receipt_id", prefix="REC", width=4),
        TableSpec("admin_users"),
        TableSpec("pipelines"),
        TableSpec("pipeline_stages"),
        TableSpec(AGENTS_TABLE),
        TableSpec(PERMISSIONS_TABLE),
        TableSpec(AUDIT_TABLE, has_updated_at=False),
    )
}
