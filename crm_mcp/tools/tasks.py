"""Task and recurring-task tools."""

from datetime import UTC, datetime
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
from crm_mcp.utils.errors import ValidationError

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

TASKS = ResourceDomain("tasks", "Tasks")

TaskStatus = Literal["To Do", "In Progress", "Completed", "Cancelled"]
TaskPriority = Literal["Low", "Medium", "High", "Urgent"]
RecurrenceType = Literal["daily", "weekly", "monthly"]

OPEN_STATUSES = ["To Do", "In Progress"]
STATUSES = ["To Do", "In Progress", "Completed", "Cancelled"]
PRIORITIES = ["Low", "Medium", "High", "Urgent"]


def combine_due(due_date: str | None, due_time: str | None) -> str | None:
    """``2025-01-31`` + ``09:30`` -> ``2025-01-31T09:30:00``; midnight when no time."""
    if not due_date:
        return None
    return f"{due_date}T{due_time or '00:00'}:00"


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


# Arguments


class GetTasksArgs(ListArguments):
    task_id: str | None = Field(
        default=None, description="Get a specific task by its task_id (e.g., TASK-10031)"
    )
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: str | None = Field(default=None, description="Filter by assigned team member UUID")
    contact_id: str | None = Field(default=None, description="Filter by related contact UUID")


class CreateTaskArgs(ToolArguments):
    title: str = Field(..., min_length=1, description="Task title")
    description: str | None = Field(default=None, description="Task description")
    priority: TaskPriority = Field(default="Medium", description="Task priority (default: Medium)")
    status: TaskStatus = Field(default="To Do", description="Task status (default: To Do)")
    assigned_to: str | None = Field(default=None, description="UUID of assigned team member")
    assigned_to_name: str | None = Field(
        default=None, description="Name of assigned team member (used when assigned_to is absent)"
    )
    contact_id: str | None = Field(default=None, description="UUID of related contact")
    due_date: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="Due date (YYYY-MM-DD format)"
    )
    due_time: str | None = Field(
        default=None, pattern=TIME_PATTERN, description="Due time in UTC (HH:MM format, 24-hour)"
    )
    supporting_docs: list[str] | None = Field(default=None, description="Array of document URLs")


class UpdateTaskArgs(ToolArguments):
    task_id: str = Field(..., description="Task ID to update")
    title: str | None = None
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assigned_to: str | None = None
    due_date: str | None = Field(
        default=None, pattern=DATE_PATTERN, description="Due date (YYYY-MM-DD format)"
    )
    due_time: str | None = Field(
        default=None, pattern=TIME_PATTERN, description="Due time in UTC (HH:MM format)"
    )


class TaskKeyArgs(ToolArguments):
    task_id: str = Field(..., description="Task ID to delete")


class GetRecurringTasksArgs(ListArguments):
    recurrence_task_id: str | None = Field(
        default=None, description="Get a specific recurring task by its ID (e.g., RETASK-0001)"
    )
    is_active: bool | None = Field(default=None, description="Filter by active status")
    recurrence_type: RecurrenceType | None = Field(
        default=None, description="Filter by recurrence type"
    )


class CreateRecurringTaskArgs(ToolArguments):
    title: str = Field(..., min_length=1, description="Task title")
    description: str | None = Field(default=None, description="Task description")
    priority: TaskPriority = Field(default="Medium", description="Task priority (default: Medium)")
    assigned_to: str | None = Field(default=None, description="UUID of assigned team member")
    contact_id: str | None = Field(default=None, description="UUID of related contact")
    recurrence_type: RecurrenceType = Field(..., description="Recurrence pattern type")
    start_time: str = Field(..., pattern=TIME_PATTERN, description="Start time (HH:MM format, 24-hour)")
    start_days: list[int] | None = Field(
        default=None, description="Days of week for start (0=Sunday, 6=Saturday). Required for weekly tasks."
    )
    start_day_of_month: int | None = Field(
        default=None, ge=1, le=31, description="Day of month for start (1-31). Required for monthly tasks."
    )
    due_time: str = Field(..., pattern=TIME_PATTERN, description="Due time in UTC (HH:MM format, 24-hour)")
    due_days: list[int] | None = Field(
        default=None, description="Days of week for due (0=Sunday, 6=Saturday). Required for weekly tasks."
    )
    due_day_of_month: int | None = Field(
        default=None, ge=1, le=31, description="Day of month for due (1-31). Required for monthly tasks."
    )
    supporting_docs: list[str] | None = Field(default=None, description="Array of document URLs")


class UpdateRecurringTaskArgs(ToolArguments):
    recurrence_task_id: str = Field(..., description="Recurring task ID to update")
    title: str | None = None
    description: str | None = None
    priority: TaskPriority | None = None
    assigned_to: str | None = None
    is_active: bool | None = None
    start_time: str | None = Field(default=None, pattern=TIME_PATTERN, description="Start time in UTC (HH:MM)")
    due_time: str | None = Field(default=None, pattern=TIME_PATTERN, description="Due time in UTC (HH:MM)")
    start_days: list[int] | None = None
    due_days: list[int] | None = None


class RecurringTaskKeyArgs(ToolArguments):
    recurrence_task_id: str = Field(..., description="Recurring task ID to delete")


def _check_schedule(
    recurrence_type: str,
    start_days: list[int] | None,
    due_days: list[int] | None,
    start_day_of_month: int | None,
    due_day_of_month: int | None,
) -> None:
    for days in (start_days, due_days):
        if days and any(day < 0 or day > 6 for day in days):
            raise ValidationError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    if recurrence_type == "weekly" and not (start_days and due_days):
        raise ValidationError("Weekly recurring tasks require start_days and due_days")
    if recurrence_type == "monthly" and not (start_day_of_month and due_day_of_month):
        raise ValidationError(
            "Monthly recurring tasks require start_day_of_month and due_day_of_month"
        )


# Handlers


async def get_tasks(args: GetTasksArgs, ctx: ToolContext) -> ToolResult:
    query = Query("tasks").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def _resolve_assignee(store: RecordStore, name: str) -> str | None:
    rows = await store.select(
        Query("admin_users").ilike("full_name", f"%{name}%").order("full_name").limit(1)
    )
    return str(rows[0]["id"]) if rows else None


async def create_task(args: CreateTaskArgs, ctx: ToolContext) -> ToolResult:
    assigned_to = args.assigned_to
    if not assigned_to and args.assigned_to_name:
        assigned_to = await _resolve_assignee(ctx.store, args.assigned_to_name)

    values = {
        "title": args.title,
        "description": args.description,
        "priority": args.priority,
        "status": args.status,
        "assigned_to": assigned_to,
        "contact_id": args.contact_id,
        "due_date": combine_due(args.due_date, args.due_time),
        "supporting_documents": args.supporting_docs,
    }
    return await create_record(
        ctx, "tasks", values, "task", "Task created successfully", summary_fields=("title",)
    )


async def update_task(args: UpdateTaskArgs, ctx: ToolContext) -> ToolResult:
    changes = args.changes("task_id", "due_time", "due_date")
    if args.due_date:
        changes["due_date"] = combine_due(args.due_date, args.due_time)
    elif args.due_time:
        raise ValidationError("due_time requires due_date")
    return await update_record(
        ctx, "tasks", args.task_id, changes, "task", "Task updated successfully"
    )


async def delete_task(args: TaskKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(ctx, "tasks", args.task_id, "Task deleted successfully")


async def get_recurring_tasks(args: GetRecurringTasksArgs, ctx: ToolContext) -> ToolResult:
    query = Query("recurring_tasks").match(**args.match_filters())
    return await list_records(ctx, query, args.limit, args.offset)


async def create_recurring_task(args: CreateRecurringTaskArgs, ctx: ToolContext) -> ToolResult:
    _check_schedule(
        args.recurrence_type,
        args.start_days,
        args.due_days,
        args.start_day_of_month,
        args.due_day_of_month,
    )
    values = args.model_dump(exclude={"agent_id", "phone_number"})
    values["is_active"] = True
    return await create_record(
        ctx,
        "recurring_tasks",
        values,
        "recurring_task",
        "Recurring task created successfully",
        summary_fields=("title",),
    )


async def update_recurring_task(args: UpdateRecurringTaskArgs, ctx: ToolContext) -> ToolResult:
    changes = args.changes("recurrence_task_id")
    for days in (args.start_days, args.due_days):
        if days and any(day < 0 or day > 6 for day in days):
            raise ValidationError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
    return await update_record(
        ctx,
        "recurring_tasks",
        args.recurrence_task_id,
        changes,
        "recurring_task",
        "Recurring task updated successfully",
    )


async def delete_recurring_task(args: RecurringTaskKeyArgs, ctx: ToolContext) -> ToolResult:
    return await delete_record(
        ctx, "recurring_tasks", args.recurrence_task_id, "Recurring task deleted successfully"
    )


# Resources


async def read_all_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("tasks"))


async def read_pending_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("tasks").in_("status", OPEN_STATUSES))


async def read_overdue_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(
        store, Query("tasks").lt("due_date", _today()).in_("status", OPEN_STATUSES)
    )


async def read_high_priority_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("tasks").in_("priority", ["High", "Urgent"]))


async def read_task_statistics(store: RecordStore, settings: Settings) -> Any:
    return task_statistics(await read_all(store, Query("tasks")), _today())


def task_statistics(tasks: list[dict[str, Any]], today: str) -> dict[str, Any]:
    """Counts by status and priority plus open, overdue and high-priority totals."""
    open_tasks = [t for t in tasks if t.get("status") in OPEN_STATUSES]
    return {
        "total": len(tasks),
        "by_status": {s: sum(1 for t in tasks if t.get("status") == s) for s in STATUSES},
        "by_priority": {p: sum(1 for t in tasks if t.get("priority") == p) for p in PRIORITIES},
        "pending": len(open_tasks),
        "completed": sum(1 for t in tasks if t.get("status") == "Completed"),
        "overdue": sum(1 for t in open_tasks if t.get("due_date") and str(t["due_date"]) < today),
        "high_priority": sum(1 for t in tasks if t.get("priority") in ("High", "Urgent")),
    }


async def read_recurring_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("recurring_tasks"))


async def read_active_recurring_tasks(store: RecordStore, settings: Settings) -> Any:
    return await read_all(store, Query("recurring_tasks").eq("is_active", True))


TASK_SUMMARY_PROMPT = """Review the current task list and give a concise summary.

1. Read tasks://statistics for the totals by status and priority.
2. Read tasks://overdue and list every overdue task with its task_id, title and due date.
3. Read tasks://high-priority and call out anything not yet started.
4. Finish with {focus} as the recommended next actions."""


def register(registry: OperationRegistry) -> None:
    """Register task tools, resources and prompts."""
    registry.register(
        "get_tasks",
        TASKS,
        "Retrieve tasks with advanced filtering. Use task_id to get a specific task.",
        GetTasksArgs,
        get_tasks,
    )
    registry.register("create_task", TASKS, "Create a new task", CreateTaskArgs, create_task)
    registry.register("update_task", TASKS, "Update an existing task", UpdateTaskArgs, update_task)
    registry.register("delete_task", TASKS, "Delete a task by task_id", TaskKeyArgs, delete_task)
    registry.register(
        "get_recurring_tasks",
        TASKS,
        "Retrieve recurring tasks with filtering. Use recurrence_task_id to get a specific recurring task.",
        GetRecurringTasksArgs,
        get_recurring_tasks,
    )
    registry.register(
        "create_recurring_task",
        TASKS,
        "Create a new recurring task template",
        CreateRecurringTaskArgs,
        create_recurring_task,
    )
    registry.register(
        "update_recurring_task",
        TASKS,
        "Update an existing recurring task template",
        UpdateRecurringTaskArgs,
        update_recurring_task,
    )
    registry.register(
        "delete_recurring_task",
        TASKS,
        "Delete a recurring task template by recurrence_task_id",
        RecurringTaskKeyArgs,
        delete_recurring_task,
    )

    for uri, name, description, reader in (
        ("tasks://all", "All Tasks", "Complete list of all tasks in the system", read_all_tasks),
        ("tasks://pending", "Pending Tasks", 'Tasks with status "To Do" or "In Progress"', read_pending_tasks),
        ("tasks://overdue", "Overdue Tasks", "Tasks that are past their due date", read_overdue_tasks),
        ("tasks://high-priority", "High Priority Tasks", 'Tasks with priority "High" or "Urgent"', read_high_priority_tasks),
        ("tasks://statistics", "Task Statistics", "Aggregated statistics about tasks", read_task_statistics),
        ("tasks://recurring", "Recurring Tasks", "All recurring task templates", read_recurring_tasks),
        ("tasks://recurring-active", "Active Recurring Tasks", "Active recurring task templates", read_active_recurring_tasks),
    ):
        registry.register_resource(ResourceDefinition(uri, name, description, TASKS, reader))

    registry.register_prompt(
        PromptDefinition(
            name="task_summary",
            description="Provides a comprehensive summary of tasks",
            template=TASK_SUMMARY_PROMPT,
            arguments=(
                {
                    "name": "focus",
                    "description": "What the recommendations should prioritize",
                    "required": False,
                    "default": "the three most urgent items",
                },
            ),
        )
    )
