"""Appointment tools."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import Field, model_validator

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
    TIME_PATTERN,
    ListArguments,
    create_record,
    delete_record,
    list_records,
    read_all,
    update_record,
)

APPOINTMENTS = ResourceDomain("appointments", "Appointments")

AppointmentStatus = Literal["Scheduled", "Confirmed", "Completed", "No-Show"]
MeetingType = Literal["In-Person", "Phone Call", "Video Call"]

SEARCH_COLUMNS = ("title", "contact_name", "purpose", "notes")


class GetAppointmentsArgs(ListArguments):
    appointment_id: str | None = Field(
        default=None, description="Get a specific appointment by its appointment_id"
    )
    id: str | None = Field(default=None, description="Get a specific appointment by its UUID")
    status: AppointmentStatus | None = Field(default=None, description="Filter by status")
    meeting_type: MeetingType | None = Field(default=None, description="Filter by meeting type")
    contact_id: str | None = Field(default=None, description="Filter by contact ID")
    assigned_to: str | None = Field(default=None, description="Filter by assigned user ID")
    calendar_id: str | None = Field(default=None, description="Filter by calendar ID")
    date_from: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="Filter appointments from this date (YYYY-MM-DD)"
    )
    date_to: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="Filter appointments to this date (YYYY-MM-DD)"
    )
    search: str | None = Field(
        default=None, description="Search in title, contact name, purpose, or notes"
    )


class CreateAppointmentArgs(ToolArguments):
    title: str = Field(..., min_length=1, description="Appointment title")
    contact_name: str = Field(..., min_length=1, description="Contact name")
    contact_phone: str = Field(..., min_length=1, description="Contact phone number")
    contact_email: str | None = Field(default=None, description="Contact email")
    contact_id: str | None = Field(default=None, description="Contact ID from contacts_master")
    appointment_date: str = Field(..., pattern=DATE_PATTERN, description="Appointment date (YYYY-MM-DD)")
    appointment_time: str = Field(..., pattern=TIME_PATTERN, description="Appointment time (HH:MM)")
    duration_minutes: int = Field(default=30, ge=1, description="Duration in minutes (default: 30)")
    location: str | None = Field(default=None, description="Meeting location or video call link")
    meeting_type: MeetingType = Field(..., description="Type of meeting")
    status: AppointmentStatus = Field(default="Scheduled", description="Appointment status")
    purpose: str = Field(..., min_length=1, description="Purpose of the appointment")
    notes: str | None = Field(default=None, description="Additional notes")
    assigned_to: str | None = Field(default=None, description="Assigned user ID")
    calendar_id: str | None = Field(default=None, description="Calendar ID")
    created_by: str | None = Field(default=None, description="Creator user ID")


class AppointmentKeyArgs(ToolArguments):
    appointment_id: str | None = Field(default=None, description="Appointment ID (e.g., APT-000000001)")
    id: str | None = Field(default=None, description="Appointment UUID")

    @model_validator(mode="after")
    def require_identifier(self) -> "AppointmentKeyArgs":
        if not self.appointment_id and not self.id:
            raise ValueError("appointment_id or id is required")
        return self

    def key(self) -> tuple[str, str]:
        if self.appointment_id:
            return "appointment_id", self.appointment_id
        return "id", str(self.id)


class UpdateAppointmentArgs(AppointmentKeyArgs):
    title: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    contact_id: str | None = None
    appointment_date: str | None = Field(default=None, pattern=DATE_PATTERN)
    appointment_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    duration_minutes: int | None = Field(default=None, ge=1)
    location: str | None = None
    meeting_type: MeetingType | None = None
    status: AppointmentStatus | None = None
    purpose: str | None = None
    notes: str | None = None
    reminder_sent: bool | None = Field(default=None, description="Whether reminder has been sent")
    assigned_to: str | None = None
    calendar_id: str | None = None


async def get_appointments(args: GetAppointmentsArgs, ctx: ToolContext) -> ToolResult:
    query = Query("appointments").match(**args.match_filters("date_from", "date_to", "search"))
    if args.date_from:
        query.gte("appointment_date", args.date_from)
    if args.date_to:
        query.lte("appointment_date", args.date_to)
    if args.search:
        query.search(SEARCH_COLUMNS, args.search)
    return await list_records(ctx, query, args.limit, args.offset)


async def create_appointment(args: CreateAppointmentArgs, ctx: ToolContext) -> ToolResult:
    values = args.model_dump(exclude={"agent_id", "phone_number"})
    values["reminder_sent"] = False
    return await create_record(
        ctx,
        "appointments",
        values,
        "appointment",
        "Appointment created successfully",
        summary_fields=("title", "appointment_date", "appointment_time"),
    )


async def update_appointment(args: UpdateAppointmentArgs, ctx: ToolContext) -> ToolResult:
    key, value = args.key()
    return await update_record(
        ctx,
        "appointments",
        value,
        args.changes("appointment_id", "id"),
        "appointment",
        "Appointment updated successfully",
        key=key,
    )


async def delete_appointment(args: AppointmentKeyArgs, ctx: ToolContext) -> ToolResult:
    key, value = args.key()
    return await delete_record(ctx, "appointments", value, "Appointment deleted successfully", key=key)


async def read_upcoming_appointments(store: RecordStore, settings: Settings) -> Any:
    today = datetime.now(UTC).date().isoformat()
    return await read_all(
        store,
        Query("appointments")
        .gte("appointment_date", today)
        .in_("status", ["Scheduled", "Confirmed"])
        .order("appointment_date"),
    )


def register(registry: OperationRegistry) -> None:
    """Register appointment tools and resources."""
    registry.register(
        "get_appointments",
        APPOINTMENTS,
        "Retrieve appointments with advanced filtering and search capabilities. "
        "Use appointment_id to get a specific appointment.",
        GetAppointmentsArgs,
        get_appointments,
    )
    registry.register(
        "create_appointment",
        APPOINTMENTS,
        "Create a new appointment",
        CreateAppointmentArgs,
        create_appointment,
    )
    registry.register(
        "update_appointment",
        APPOINTMENTS,
        "Update an existing appointment",
        UpdateAppointmentArgs,
        update_appointment,
    )
    registry.register(
        "delete_appointment",
        APPOINTMENTS,
        "Delete an appointment",
        AppointmentKeyArgs,
        delete_appointment,
    )
    registry.register_resource(
        ResourceDefinition(
            "appointments://upcoming",
            "Upcoming Appointments",
            "Scheduled or confirmed appointments from today onwards",
            APPOINTMENTS,
            read_upcoming_appointments,
        )
    )
