"""Lead tools.

New leads land in the default pipeline (or the first one) at its first
stage. Phone numbers and emails are not deduplicated: creating the same
lead twice stores two records.
"""

import logging
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

from ._crud import ListArguments, create_record, delete_record, list_records, read_all, update_record

logger = logging.getLogger(__name__)

LEADS = ResourceDomain("leads", "Leads")

Interest = Literal["Hot", "Warm", "Cold"]

DEFAULT_STAGE = "new_lead"
DEFAULT_INTEREST = "Warm"
DEFAULT_SOURCE = "Manual Entry"


class GetLeadsArgs(ListArguments):
    lead_id: str | None = Field(default=None, description="Get a specific lead by its lead_id (e.g., LEAD-00012)")
    stage: str | None = Field(default=None, description="Filter by pipeline stage id")
    pipeline_id: str | None = Field(default=None, description="Filter by pipeline")
    interest: Interest | None = Field(default=None, description="Filter by interest level")
    source: str | None = Field(default=None, description="Filter by lead source")
    search: str | None = Field(default=None, description="Search in name, phone, email or company")


class CreateLeadArgs(ToolArguments):
    name: str = Field(..., min_length=1, description="Name of the lead")
    phone: str = Field(..., min_length=1, description="Phone number of the lead")
    email: str | None = Field(default=None, description="Email address of the lead")
    company: str | None = Field(default=None, description="Company name")
    interest: Interest = Field(default=DEFAULT_INTEREST, description="Interest level of the lead")
    source: str = Field(
        default=DEFAULT_SOURCE, description="Source of the lead (e.g., Website, Referral, Phone)"
    )
    notes: str | None = Field(default=None, description="Additional notes")
    pipeline_id: str | None = Field(
        default=None, description="Pipeline to place the lead in (default pipeline if omitted)"
    )
    stage: str | None = Field(
        default=None, description="Stage id (first stage of the pipeline if omitted)"
    )


class UpdateLeadArgs(ToolArguments):
    lead_id: str = Field(..., description="Lead ID to update")
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    company: str | None = None
    interest: Interest | None = None
    source: str | None = None
    notes: str | None = None
    pipeline_id: str | None = None
    stage: str | None = None


class LeadKeyArgs(ToolArguments):
    lead_id: str = Field(..., description="Lead ID to delete")


async def default_pipeline_id(store: RecordStore) -> str | None:
    """The pipeline flagged ``is_default``, else the first pipeline, else None."""
    pipelines = await store.select(Query("pipelines").order("created_at"))
    for pipeline in pipelines:
        if pipeline.get("is_default"):
            return str(pipeline["id"])
    return str(pipelines[0]["id"]) if pipelines else None


async def first_stage_id(store: RecordStore, pipeline_id: str | None) -> str:
    if pipeline_id is None:
        return DEFAULT_STAGE
    stages = await store.select(
        Query("pipeline_stages").eq("pipeline_id", pipeline_id).order("display_order").limit(1)
    )
    if not stages:
        return DEFAULT_STAGE
    return stages[0].get("stage_id") or DEFAULT_STAGE


async def get_leads(args: GetLeadsArgs, ctx: ToolContext) -> ToolResult:
    query = Query("leads").match(**args.match_filters("search"))
    if args.search:
        query.search(("name", "phone", "email", "company"), args.search)
    return await list_records(ctx, query, args.limit, args.offset)


async def create_lead(args: CreateLeadArgs, ctx: ToolContext) -> ToolResult:
    pipeline_id = args.pipeline_id or await default_pipeline_id(ctx.store)
    stage = args.stage or await first_stage_id(ctx.store, pipeline_id)
    values = args.model_dump(exclude={"agent_id", "phone_number"})
    values["pipeline_id"] = pipeline_id
    values["stage"] = stage
    return await create_record(
        ctx, "leads", values, "lead", "Lead created successfully", summary_fields=("name", "stage")
    )


async def update_lead(args: UpdateLeadArgs, ctx: ToolContext) -> ToolResult:
    return await update_record(
        ctx, "leads", args.lead_id, args.changes("lead_id"), "lead", "Lead updated successfully"
    )


async def delete_lead(args: LeadKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "leads", args.lead_id, "Lead deleted successfully")


async def read_hot_leads(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("leads").eq("interest", "Hot"))


async def read_lead_statistics(store: RecordStore, settings: Settings) -> Any:
    leads = await read_all(store, Query("leads"))
    stats: dict[str, Any] = {"total": len(leads), "by_stage": {}, "by_interest": {}, "by_source": {}}
    for lead in leads:
        for field, bucket in (("stage", "by_stage"), ("interest", "by_interest"), ("source", "by_source")):
            value = lead.get(field) or "Unknown"
            stats[bucket][value] = stats[bucket].get(value, 0) + 1
    return stats


LEAD_FOLLOWUP_PROMPT = """Prepare follow-ups for the open leads.

Read leads://hot and leads://statistics. For each hot lead, draft a short
{channel} message that references the lead's company and source. List
leads still at the first stage separately so they can be qualified."""


def register(registry: OperationRegistry) -> None:
    """Register lead tools, resources and prompts."""
    registry.register(
        "get_leads",
        LEADS,
        "Retrieve leads with filtering and search. Use lead_id to get a specific lead.",
        GetLeadsArgs,
        get_leads,
    )
    registry.register(
        "create_lead",
        LEADS,
        "Create a new lead in the CRM. The lead starts at the first stage of the default pipeline.",
        CreateLeadArgs,
        create_lead,
    )
    registry.register("update_lead", LEADS, "Update an existing lead", UpdateLeadArgs, update_lead)
    registry.register("delete_lead", LEADS, "Delete a lead by lead_id", LeadKeyArgs, delete_lead)

    registry.register_resource(
        ResourceDefinition("leads://hot", "Hot Leads", 'Leads with interest "Hot"', LEADS, read_hot_leads)
    )
    registry.register_resource(
        ResourceDefinition(
            "leads://statistics",
            "Lead Statistics",
            "Lead counts by stage, interest and source",
            LEADS,
            read_lead_statistics,
        )
    )
    registry.register_prompt(
        PromptDefinition(
            name="lead_followup",
            description="Drafts follow-up messages for hot leads",
            template=LEAD_FOLLOWUP_PROMPT,
            arguments=(
                {
                    "name": "channel",
                    "description": "Channel the follow-up will be sent on",
                    "required": False,
                    "default": "WhatsApp",
                },
            ),
        )
    )
