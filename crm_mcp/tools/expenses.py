"""Expense tools and the expense summary."""

from typing import Any, Literal

from pydantic import Field

from crm_mcp.core.config import Settings
from crm_mcp.registry import (
    OperationRegistry,
    PromptDefinition,
    ResourceDefinition,
    ResourceDomain,
    ToolArguments,
    ToolContext,
    ToolResult,
)
from crm_mcp.storage import Query, RecordStore

from ._crud import (
    DATE_PATTERN,
    ListArguments,
    amount_of,
    create_record,
    delete_record,
    list_records,
    read_all,
    update_record,
)

EXPENSES = ResourceDomain("expenses", "Expenses")

ExpenseStatus = Literal["Pending", "Approved", "Rejected", "Reimbursed"]
EXPENSE_STATUSES = ("Pending", "Approved", "Rejected", "Reimbursed")
DEFAULT_CURRENCY = "INR"
LATEST_COUNT = 5


class GetExpensesArgs(ListArguments):
    expense_id: str | None = Field(
        default=None, description="Get a specific expense by expense_id (e.g., EXP-00027)"
    )
    category: str | None = Field(
        default=None, description="Filter by category (partial, case-insensitive match)"
    )
    status: ExpenseStatus | None = Field(default=None, description="Filter by approval status")
    min_amount: float | None = Field(default=None, description="Minimum expense amount")
    max_amount: float | None = Field(default=None, description="Maximum expense amount")
    from_date: str | None = Field(default=None, pattern=DATE_PATTERN, description="Start date (YYYY-MM-DD format)")
    to_date: str | None = Field(default=None, pattern=DATE_PATTERN, description="End date (YYYY-MM-DD format)")
    payment_method: str | None = Field(default=None, description="Filter by payment method")


class ExpenseSummaryArgs(ToolArguments):
    from_date: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="Start date for summary (YYYY-MM-DD format, optional)"
    )
    to_date: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="End date for summary (YYYY-MM-DD format, optional)"
    )
    category: str | None = Field(default=None, description="Filter summary by specific category (optional)")


class CreateExpenseArgs(ToolArguments):
    category: str = Field(
        ...,
        min_length=1,
        description="Expense category - infer from description if not explicitly provided. "
        "Common categories: Travel, Food, Office Supplies, Marketing, Maintenance, Software",
    )
    amount: float = Field(..., gt=0, description="Expense amount")
    currency: str = Field(default=DEFAULT_CURRENCY, description="Currency code (default: INR)")
    description: str | None = Field(default=None, description="Expense description")
    expense_date: str = Field(..., pattern=DATE_PATTERN, description="Date of expense (YYYY-MM-DD)")
    payment_method: str | None = Field(default=None, description="Payment method used")
    receipt_url: str | None = Field(default=None, description="URL to receipt/invoice")
    status: ExpenseStatus = Field(default="Pending", description="Approval status (default: Pending)")


class UpdateExpenseArgs(ToolArguments):
    expense_id: str = Field(..., description="Expense ID to update")
    category: str | None = None
    amount: float | None = Field(default=None, gt=0)
    currency: str | None = None
    description: str | None = None
    expense_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    payment_method: str | None = None
    receipt_url: str | None = None
    status: ExpenseStatus | None = None
    rejection_reason: str | None = Field(default=None, description="Reason when status is Rejected")


class ExpenseKeyArgs(ToolArguments):
    expense_id: str = Field(..., description="Expense ID to delete")


def _date_range(query: Query, from_date: str | None, to_date: str | None) -> Query:
    if from_date:
        query.gte("expense_date", from_date)
    if to_date:
        query.lte("expense_date", to_date)
    return query


def summarize_expenses(expenses: list[dict[str, Any]]) -> dict[str, Any]:
    """Totals by category and by status, plus the latest few expenses.

    ``expenses`` is expected newest first.
    """
    summary: dict[str, Any] = {
        "total_count": len(expenses),
        "total_amount": sum(amount_of(e) for e in expenses),
        "currency": DEFAULT_CURRENCY,
        "by_category": {},
        "by_status": {status: {"count": 0, "total_amount": 0.0} for status in EXPENSE_STATUSES},
        "latest_expenses": [
            {
                "expense_id": e.get("expense_id"),
                "category": e.get("category"),
                "amount": e.get("amount"),
                "description": e.get("description"),
                "expense_date": e.get("expense_date"),
            }
            for e in expenses[:LATEST_COUNT]
        ],
    }
    for expense in expenses:
        amount = amount_of(expense)
        category = summary["by_category"].setdefault(
            expense.get("category") or "Unknown", {"count": 0, "total_amount": 0.0}
        )
        category["count"] += 1
        category["total_amount"] += amount

        status = summary["by_status"].get(expense.get("status") or "Pending")
        if status is not None:
            status["count"] += 1
            status["total_amount"] += amount
    return summary


async def get_expenses(args: GetExpensesArgs, ctx: ToolContext) -> ToolResult:
    query = Query("expenses").match(
        **args.match_filters("category", "min_amount", "max_amount", "from_date", "to_date")
    )
    if args.category:
        query.ilike("category", f"%{args.category}%")
    if args.min_amount is not None:
        query.gte("amount", args.min_amount)
    if args.max_amount is not None:
        query.lte("amount", args.max_amount)
    _date_range(query, args.from_date, args.to_date)
    return await list_records(ctx, query, args.limit, args.offset)


async def get_expense_summary(args: ExpenseSummaryArgs, ctx: ToolContext) -> ToolResult:
    query = _date_range(Query("expenses"), args.from_date, args.to_date)
    if args.category:
        query.ilike("category", f"%{args.category}%")
    summary = summarize_expenses(await read_all(ctx.store, query))
    return ToolResult(
        payload={"success": True, "summary": summary},
        summary={"total_expenses": summary["total_count"]},
    )


async def create_expense(args: CreateExpenseArgs, ctx: ToolContext) -> ToolResult:
    values = args.model_dump(exclude={"agent_id", "phone_number"})
    return await create_record(
        ctx,
        "expenses",
        values,
        "expense",
        "Expense created successfully",
        summary_fields=("category", "amount"),
    )


async def update_expense(args: UpdateExpenseArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx,
        "expenses",
        args.expense_id,
        args.changes("expense_id"),
        "expense",
        "Expense updated successfully",
    )


async def delete_expense(args: ExpenseKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "expenses", args.expense_id, "Expense deleted successfully")


async def read_all_expenses(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("expenses").order("expense_date", descending=True))


async def read_pending_expenses(store: RecordStore, settings: Settings) -> Any:
    return await read_all(
        store, Query("expenses").eq("status", "Pending").order("expense_date", descending=True)
    )


async def read_expense_statistics(store: RecordStore, settings: Settings) -> Any:
    expenses = await read_all(store, Query("expenses"))
    stats: dict[str, Any] = {
        "total": len(expenses),
        "total_amount": sum(amount_of(e) for e in expenses),
        "by_status": {status: 0 for status in EXPENSE_STATUSES},
        "by_category": {},
        "by_payment_method": {},
    }
    for expense in expenses:
        status = expense.get("status")
        if status in stats["by_status"]:
            stats["by_status"][status] += 1
        category = expense.get("category") or "Unknown"
        method = expense.get("payment_method") or "Unknown"
        stats["by_category"][category] = stats["by_category"].get(category, 0) + 1
        stats["by_payment_method"][method] = stats["by_payment_method"].get(method, 0) + 1
    return stats


EXPENSE_SUMMARY_PROMPT = """Summarize spending for {period}.

Call get_expense_summary for the period, then report the total amount,
the three largest categories, and how much is still Pending approval.
Mention any single expense above {threshold} INR by expense_id."""


def register(registry: OperationRegistry) -> None:
    """Register expense tools, resources and prompts."""
    registry.register(
        "get_expenses",
        EXPENSES,
        "Retrieve individual expense records with filtering. For category breakdowns "
        "or totals, use get_expense_summary instead.",
        GetExpensesArgs,
        get_expenses,
    )
    registry.register(
        "get_expense_summary",
        EXPENSES,
        "Get aggregated expense statistics: total count and amount, breakdown by "
        "category and by status, and the latest expenses.",
        ExpenseSummaryArgs,
        get_expense_summary,
    )
    registry.register(
        "create_expense",
        EXPENSES,
        "Create a new expense record. Infer the category from the description "
        "(cab/flight -> Travel, lunch/dinner -> Food, laptop/software -> Office Supplies).",
        CreateExpenseArgs,
        create_expense,
    )
    registry.register(
        "update_expense", EXPENSES, "Update an existing expense", UpdateExpenseArgs, update_expense
    )
    registry.register(
        "delete_expense", EXPENSES, "Delete an expense by expense_id", ExpenseKeyArgs, delete_expense
    )

    for uri, name, description, reader in (
        ("expenses://all", "All Expenses", "Complete list of all expenses", read_all_expenses),
        ("expenses://pending", "Pending Expenses", "Expenses awaiting approval", read_pending_expenses),
        ("expenses://statistics", "Expense Statistics", "Aggregated statistics about expenses", read_expense_statistics),
    ):
        registry.register_resource(ResourceDefinition(uri, name, description, EXPENSES, reader))

    registry.register_prompt(
        PromptDefinition(
            name="expense_summary",
            description="Provides a comprehensive summary of expenses",
            template=EXPENSE_SUMMARY_PROMPT,
            arguments=(
                {"name": "period", "description": "Period to cover", "required": False, "default": "this month"},
                {"name": "threshold", "description": "Amount worth calling out", "required": False, "default": "10000"},
            ),
        )
    )
