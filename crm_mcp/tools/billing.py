"""Billing tools: estimates, invoices, subscriptions and receipts."""

from typing import Any, Literal

from pydantic import Field

from crm_mcp.core.config import Settings
from crm_mcp.registry import (
    OperationRegistry,
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

BILLING = ResourceDomain("billing", "Billing")

EstimateStatus = Literal["Draft", "Sent", "Accepted", "Rejected", "Expired", "Invoiced"]
InvoiceStatus = Literal["Draft", "Sent", "Paid", "Partially Paid", "Overdue", "Cancelled"]
SubscriptionStatus = Literal["Active", "Paused", "Cancelled", "Expired"]
PlanType = Literal["Monthly", "Quarterly", "Yearly", "Custom"]
ReceiptStatus = Literal["Completed", "Failed", "Refunded", "Pending"]

# Months covered by one billing period, for monthly recurring revenue
PLAN_MONTHS = {"Monthly": 1, "Quarterly": 3, "Yearly": 12}


class BillingListArgs(ListArguments):
    customer_email: str | None = Field(default=None, description="Filter by customer email")


class DocumentFields(ToolArguments):
    """Fields shared by estimates and invoices."""

    customer_phone: str | None = None
    items: list[dict[str, Any]] | None = Field(
        default=None, description="Line items: [{description, quantity, rate, amount}]"
    )
    subtotal: float | None = Field(default=None, description="Subtotal amount")
    discount: float | None = Field(default=None, description="Discount amount")
    tax_rate: float | None = Field(default=None, description="Tax rate percentage")
    tax_amount: float | None = Field(default=None, description="Tax amount")
    total_amount: float | None = Field(default=None, description="Total amount")
    notes: str | None = Field(default=None, description="Additional notes")


# Estimates


class GetEstimatesArgs(BillingListArgs):
    estimate_id: str | None = Field(default=None, description="Get specific estimate by estimate_id")
    status: EstimateStatus | None = Field(default=None, description="Filter by status")


class CreateEstimateArgs(DocumentFields):
    customer_name: str = Field(..., min_length=1, description="Customer name")
    customer_email: str = Field(..., min_length=1, description="Customer email")
    title: str = Field(..., min_length=1, description="Estimate title")
    status: EstimateStatus = Field(default="Draft", description="Status (default: Draft)")
    valid_until: str | None = Field(default=None, pattern=DATE_PATTERN, description="Expiry date (YYYY-MM-DD)")


class UpdateEstimateArgs(DocumentFields):
    estimate_id: str = Field(..., description="Estimate ID to update")
    customer_name: str | None = None
    customer_email: str | None = None
    title: str | None = None
    status: EstimateStatus | None = None
    valid_until: str | None = Field(default=None, pattern=DATE_PATTERN)


class EstimateKeyArgs(ToolArguments):
    estimate_id: str = Field(..., description="Estimate ID to delete")


# Invoices


class GetInvoicesArgs(BillingListArgs):
    invoice_id: str | None = Field(default=None, description="Get specific invoice by invoice_id")
    status: InvoiceStatus | None = Field(default=None, description="Filter by status")


class InvoiceSummaryArgs(ToolArguments):
    status: InvoiceStatus | None = Field(default=None, description="Filter by status")


class CreateInvoiceArgs(DocumentFields):
    customer_name: str = Field(..., min_length=1, description="Customer name")
    customer_email: str = Field(..., min_length=1, description="Customer email")
    title: str = Field(..., min_length=1, description="Invoice title")
    terms: str | None = None
    status: InvoiceStatus = Field(default="Draft", description="Status (default: Draft)")
    issue_date: str = Field(..., pattern=DATE_PATTERN, description="Issue date (YYYY-MM-DD)")
    due_date: str = Field(..., pattern=DATE_PATTERN, description="Due date (YYYY-MM-DD)")


class UpdateInvoiceArgs(DocumentFields):
    invoice_id: str = Field(..., description="Invoice ID to update")
    customer_name: str | None = None
    customer_email: str | None = None
    title: str | None = None
    paid_amount: float | None = None
    balance_due: float | None = None
    status: InvoiceStatus | None = None
    due_date: str | None = Field(default=None, pattern=DATE_PATTERN)


class InvoiceKeyArgs(ToolArguments):
    invoice_id: str = Field(..., description="Invoice ID to delete")


# Subscriptions


class GetSubscriptionsArgs(BillingListArgs):
    subscription_id: str | None = Field(default=None, description="Get specific subscription")
    status: SubscriptionStatus | None = Field(default=None, description="Filter by status")
    plan_type: PlanType | None = Field(default=None, description="Filter by plan type")


class SubscriptionSummaryArgs(ToolArguments):
    status: SubscriptionStatus | None = Field(default=None, description="Filter by status")


class CreateSubscriptionArgs(ToolArguments):
    customer_name: str = Field(..., min_length=1, description="Customer name")
    customer_email: str = Field(..., min_length=1, description="Customer email")
    customer_phone: str | None = None
    plan_name: str = Field(..., min_length=1, description="Plan name")
    plan_type: PlanType = Field(..., description="Plan type")
    amount: float = Field(..., ge=0, description="Amount per billing period")
    currency: str = Field(default="INR", description="Currency (default: INR)")
    start_date: str = Field(..., pattern=DATE_PATTERN, description="Start date YYYY-MM-DD")
    billing_cycle_day: int | None = Field(default=None, ge=1, le=31, description="Day of month for billing")
    notes: str | None = None


class UpdateSubscriptionArgs(ToolArguments):
    subscription_id: str = Field(..., description="Subscription ID to update")
    plan_name: str | None = None
    plan_type: PlanType | None = None
    amount: float | None = Field(default=None, ge=0)
    status: SubscriptionStatus | None = None
    next_billing_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    auto_renew: bool | None = None
    notes: str | None = None


class SubscriptionKeyArgs(ToolArguments):
    subscription_id: str = Field(..., description="Subscription ID to delete")


# Receipts


class GetReceiptsArgs(BillingListArgs):
    receipt_id: str | None = Field(default=None, description="Get specific receipt")
    invoice_id: str | None = Field(default=None, description="Filter by invoice UUID")


class CreateReceiptArgs(ToolArguments):
    customer_name: str = Field(..., min_length=1, description="Customer name")
    customer_email: str = Field(..., min_length=1, description="Customer email")
    payment_method: str = Field(..., min_length=1, description="Payment method")
    amount_paid: float = Field(..., ge=0, description="Amount paid")
    payment_date: str = Field(..., pattern=DATE_PATTERN, description="Payment date YYYY-MM-DD")
    description: str | None = None
    payment_reference: str | None = Field(default=None, description="Gateway or bank reference")
    currency: str | None = Field(default=None, description="Currency (default: INR)")
    notes: str | None = None


class UpdateReceiptArgs(ToolArguments):
    receipt_id: str = Field(..., description="Receipt ID to update")
    status: ReceiptStatus | None = None
    refund_amount: float | None = Field(default=None, ge=0)
    refund_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    refund_reason: str | None = None
    notes: str | None = None


class ReceiptKeyArgs(ToolArguments):
    receipt_id: str = Field(..., description="Receipt ID to delete")


def _document_values(args: ToolArguments) -> dict[str, Any]:
    """Creation values: required fields plus the optional ones actually given."""
    return args.model_dump(exclude={"agent_id", "phone_number"}, exclude_none=True)


def summarize_invoices(invoices: list[dict[str, Any]]) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "total_count": len(invoices),
        "total_revenue": sum(amount_of(i, "total_amount") for i in invoices),
        "total_paid": sum(amount_of(i, "paid_amount") for i in invoices),
        "total_outstanding": sum(amount_of(i, "balance_due") for i in invoices),
        "by_status": {},
    }
    for invoice in invoices:
        bucket = summary["by_status"].setdefault(
            invoice.get("status") or "Unknown", {"count": 0, "amount": 0.0}
        )
        bucket["count"] += 1
        bucket["amount"] += amount_of(invoice, "total_amount")
    return summary


def monthly_recurring_revenue(subscriptions: list[dict[str, Any]]) -> float:
    """MRR over active subscriptions; Custom plans do not contribute."""
    mrr = 0.0
    for sub in subscriptions:
        months = PLAN_MONTHS.get(sub.get("plan_type") or "")
        if sub.get("status") == "Active" and months:
            mrr += amount_of(sub) / months
    return round(mrr, 2)


def summarize_subscriptions(subscriptions: list[dict[str, Any]]) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "total_count": len(subscriptions),
        "active_count": sum(1 for s in subscriptions if s.get("status") == "Active"),
        "mrr": monthly_recurring_revenue(subscriptions),
        "total_value": sum(amount_of(s) for s in subscriptions),
        "by_status": {},
        "by_plan_type": {},
    }
    for sub in subscriptions:
        status = sub.get("status") or "Unknown"
        plan_type = sub.get("plan_type") or "Unknown"
        summary["by_status"][status] = summary["by_status"].get(status, 0) + 1
        summary["by_plan_type"][plan_type] = summary["by_plan_type"].get(plan_type, 0) + 1
    return summary


# Handlers


async def get_estimates(args: GetEstimatesArgs, ctx: ToolContext) -> ToolResult:
    query = Query("estimates").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def create_estimate(args: CreateEstimateArgs, ctx: ToolContext) -> ToolResult:
    return await create_record(
        ctx, "estimates", _document_values(args), "estimate", "Estimate created",
        summary_fields=("customer_name", "total_amount"),
    )


async def update_estimate(args: UpdateEstimateArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx, "estimates", args.estimate_id, args.changes("estimate_id"), "estimate", "Estimate updated"
    )


async def delete_estimate(args: EstimateKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "estimates", args.estimate_id, "Estimate deleted")


async def get_invoices(args: GetInvoicesArgs, ctx: ToolContext) -> ToolResult:
    query = Query("invoices").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def get_invoice_summary(args: InvoiceSummaryArgs, ctx: ToolContext) -> ToolResult:
    query = Query("invoices")
    if args.status:
        query.eq("status", args.status)
    summary = summarize_invoices(await read_all(ctx.store, query))
    return ToolResult(
        payload={"success": True, "summary": summary},
        summary={"total_invoices": summary["total_count"]},
    )


async def create_invoice(args: CreateInvoiceArgs, ctx: ToolContext) -> ToolResult:
    values = _document_values(args)
    if "total_amount" in values:
        values.setdefault("paid_amount", 0)
        values.setdefault("balance_due", values["total_amount"])
    return await create_record(
        ctx, "invoices", values, "invoice", "Invoice created",
        summary_fields=("customer_name", "total_amount"),
    )


async def update_invoice(args: UpdateInvoiceArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx, "invoices", args.invoice_id, args.changes("invoice_id"), "invoice", "Invoice updated"
    )


async def delete_invoice(args: InvoiceKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "invoices", args.invoice_id, "Invoice deleted")


async def get_subscriptions(args: GetSubscriptionsArgs, ctx: ToolContext) -> ToolResult:
    query = Query("subscriptions").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def get_subscription_summary(args: SubscriptionSummaryArgs, ctx: ToolContext) -> ToolResult:
    query = Query("subscriptions")
    if args.status:
        query.eq("status", args.status)
    summary = summarize_subscriptions(await read_all(ctx.store, query))
    return ToolResult(
        payload={"success": True, "summary": summary},
        summary={"total_subscriptions": summary["total_count"], "mrr": summary["mrr"]},
    )


async def create_subscription(args: CreateSubscriptionArgs, ctx: ToolContext) -> ToolResult:
    values = _document_values(args)
    values["status"] = "Active"
    return await create_record(
        ctx, "subscriptions", values, "subscription", "Subscription created",
        summary_fields=("plan_name", "amount"),
    )


async def update_subscription(args: UpdateSubscriptionArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx, "subscriptions", args.subscription_id, args.changes("subscription_id"),
        "subscription", "Subscription updated",
    )


async def delete_subscription(args: SubscriptionKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "subscriptions", args.subscription_id, "Subscription deleted")


async def get_receipts(args: GetReceiptsArgs, ctx: ToolContext) -> ToolResult:
    query = Query("receipts").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def create_receipt(args: CreateReceiptArgs, ctx: ToolContext) -> ToolResult:
    values = _document_values(args)
    values.setdefault("currency", "INR")
    values["status"] = "Completed"
    return await create_record(
        ctx, "receipts", values, "receipt", "Receipt created",
        summary_fields=("customer_name", "amount_paid"),
    )


async def update_receipt(args: UpdateReceiptArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx, "receipts", args.receipt_id, args.changes("receipt_id"), "receipt", "Receipt updated"
    )


async def delete_receipt(args: ReceiptKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "receipts", args.receipt_id, "Receipt deleted")


# Resources


async def read_estimates(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("estimates"))


async def read_invoices(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("invoices"))


async def read_subscriptions(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("subscriptions"))


async def read_receipts(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("receipts"))


TOOLS = (
    ("get_estimates", "Retrieve estimates with filtering. Returns items, totals, status and customer info.", GetEstimatesArgs, get_estimates),
    ("create_estimate", "Create a new estimate. Estimate ID will be auto-generated.", CreateEstimateArgs, create_estimate),
    ("update_estimate", "Update an existing estimate, including items, status and amounts.", UpdateEstimateArgs, update_estimate),
    ("delete_estimate", "Delete an estimate by estimate_id", EstimateKeyArgs, delete_estimate),
    ("get_invoices", "Retrieve invoices with filtering. Returns items, payment status and customer info.", GetInvoicesArgs, get_invoices),
    ("get_invoice_summary", "Get aggregated invoice statistics: revenue, paid and outstanding amounts, counts by status.", InvoiceSummaryArgs, get_invoice_summary),
    ("create_invoice", "Create a new invoice. Invoice ID will be auto-generated.", CreateInvoiceArgs, create_invoice),
    ("update_invoice", "Update an existing invoice including status, payments and amounts.", UpdateInvoiceArgs, update_invoice),
    ("delete_invoice", "Delete an invoice by invoice_id", InvoiceKeyArgs, delete_invoice),
    ("get_subscriptions", "Retrieve subscriptions with filtering. Returns plan, billing cycle and status.", GetSubscriptionsArgs, get_subscriptions),
    ("get_subscription_summary", "Get aggregated subscription statistics including MRR and active subscriptions.", SubscriptionSummaryArgs, get_subscription_summary),
    ("create_subscription", "Create a new subscription. Subscription ID will be auto-generated.", CreateSubscriptionArgs, create_subscription),
    ("update_subscription", "Update an existing subscription including status, amount and billing dates.", UpdateSubscriptionArgs, update_subscription),
    ("delete_subscription", "Delete a subscription by subscription_id", SubscriptionKeyArgs, delete_subscription),
    ("get_receipts", "Retrieve payment receipts with filtering. Returns payment method, amount and status.", GetReceiptsArgs, get_receipts),
    ("create_receipt", "Create a new payment receipt. Receipt ID will be auto-generated.", CreateReceiptArgs, create_receipt),
    ("update_receipt", "Update a receipt including status and refund information.", UpdateReceiptArgs, update_receipt),
    ("delete_receipt", "Delete a receipt by receipt_id", ReceiptKeyArgs, delete_receipt),
)


def register(registry: OperationRegistry) -> None:
    """Register billing tools and resources."""
    for name, description, arguments, handler in TOOLS:
        registry.register(name, BILLING, description, arguments, handler)

    for uri, name, description, reader in (
        ("billing://estimates", "All Estimates", "Complete list of all estimates", read_estimates),
        ("billing://invoices", "All Invoices", "Complete list of all invoices", read_invoices),
        ("billing://subscriptions", "All Subscriptions", "Complete list of all subscriptions", read_subscriptions),
        ("billing://receipts", "All Receipts", "Complete list of all receipts", read_receipts),
    ):
        registry.register_resource(ResourceDefinition(uri, name, description, BILLING, reader))
