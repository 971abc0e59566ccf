from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ops_agent.orchestrator.state import PendingDraft
from ops_agent.schemas.tools import BulkTasksPreviewArgs, ConfirmArgs, CreateTaskSingleArgs
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, confirmed_draft, entity_ref, fail

logger = logging.getLogger(__name__)

PREVIEW_ITEM_LIMIT = 25
# Only assembly work may be bundled into one multi-item task.
GROUPABLE_TASK_TYPES = ("assembly",)

Row = Dict[str, Any]


def initial_status(task_type: str) -> str:
    return "pending_approval" if task_type == "repair" else "open"


def default_title(task_type: str, item_codes: Sequence[str]) -> str:
    label = task_type.replace("_", " ").title()
    if len(item_codes) == 1:
        return f"{label} - {item_codes[0]}"
    return f"{label} - {len(item_codes)} items"


def _task_payload(
    context: ToolContext,
    task_type: str,
    items: Sequence[Row],
    *,
    priority: str,
    assignee_id: Optional[str],
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Row:
    assignee_name = None
    if assignee_id:
        assignee_name = context.repository.user_names(context.tenant_id, [assignee_id]).get(assignee_id)
    first = items[0]
    return {
        "task_type": task_type,
        "title": title or default_title(task_type, [item.get("item_code") or item["id"] for item in items]),
        "description": description,
        "status": initial_status(task_type),
        "priority": priority,
        "item_ids": [item["id"] for item in items],
        "account_id": first.get("account_id"),
        "warehouse_id": first.get("warehouse_id"),
        "assigned_to": assignee_id,
        "assignee_name": assignee_name,
        "created_by": context.scope.user_id,
    }


def _created(task: Row) -> Row:
    return {
        "id": task["id"],
        "ref": entity_ref(task["task_number"], task["id"]),
        "task_number": task["task_number"],
        "status": task["status"],
        "item_count": len(task.get("item_ids") or []),
    }


def create_task_single(args: CreateTaskSingleArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    item = context.repository.get("items", tenant_id, args.item_id)
    if not item or item.get("deleted_at"):
        return fail("Item not found")

    warnings = context.safety.task_warnings(tenant_id, args.task_type, [item["id"]]).get(item["id"], [])
    if warnings and not args.acknowledge_warnings:
        return ToolOutcome(
            {
                "ok": False,
                "warning": warnings[0],
                "warnings": warnings,
                "requires_override": True,
                "item": entity_ref(item.get("item_code"), item["id"]),
                "message": "Ask the user whether to proceed anyway, then retry with acknowledge_warnings.",
            }
        )

    task = context.repository.insert_task(
        tenant_id,
        _task_payload(
            context,
            args.task_type,
            [item],
            priority=args.priority,
            assignee_id=args.assignee_id,
            title=args.title,
            description=args.description,
        ),
    )
    result: Row = {
        "ok": True,
        "task": _created(task),
        "item": entity_ref(item.get("item_code"), item["id"]),
    }
    if warnings:
        result["warnings_acknowledged"] = warnings
    if task["status"] == "pending_approval":
        result["message"] = "Repair task created and awaiting approval."
    return ToolOutcome(result)


def task_eligibility(
    context: ToolContext, task_type: str, item_ids: Sequence[str]
) -> Tuple[List[Row], List[Row]]:
    """Split ``item_ids`` into (eligible item rows, skipped entries with reasons)."""
    tenant_id = context.tenant_id
    repository = context.repository
    items = repository.rows_by_id("items", tenant_id, item_ids)
    covered = {
        item_id
        for task in repository.open_tasks_for_items(tenant_id, item_ids, task_type)
        for item_id in task.get("item_ids") or []
    }
    inspected = repository.completed_inspection_item_ids(tenant_id, item_ids) if task_type == "repair" else set()

    eligible: List[Row] = []
    skipped: List[Row] = []
    for item_id in item_ids:
        item = items.get(item_id)
        if not item or item.get("deleted_at"):
            skipped.append({"item": item_id, "reason": "Item not found"})
            continue
        ref = entity_ref(item.get("item_code"), item["id"])
        if item.get("status") == "disposed":
            skipped.append({"item": ref, "reason": "Item is disposed"})
        elif item_id in covered:
            skipped.append({"item": ref, "reason": f"Already has an open {task_type} task"})
        elif task_type == "repair" and item_id not in inspected:
            skipped.append({"item": ref, "reason": "No completed inspection on record"})
        else:
            eligible.append(item)
    return eligible, skipped


def create_tasks_bulk_preview(args: BulkTasksPreviewArgs, context: ToolContext) -> ToolOutcome:
    item_ids = list(args.item_ids)
    if args.shipment_id:
        shipment = context.repository.get("shipments", context.tenant_id, args.shipment_id)
        if not shipment:
            return fail("Shipment not found")
        for row in context.repository.find(
            "items", context.tenant_id, {"shipment_id": shipment["id"], "deleted_at": None}
        ):
            if row["id"] not in item_ids:
                item_ids.append(row["id"])
    if not item_ids:
        return fail("No items to create tasks for. Search for the items first.")

    eligible, skipped = task_eligibility(context, args.task_type, item_ids)
    if not eligible:
        return fail("None of the requested items are eligible", skipped=skipped)

    grouped = args.grouped and args.task_type in GROUPABLE_TASK_TYPES
    task_count = 1 if grouped else len(eligible)
    eligible_ids = [item["id"] for item in eligible]
    warnings = context.safety.task_warnings(context.tenant_id, args.task_type, eligible_ids)
    summary = f"Create {task_count} {args.task_type} task(s) covering {len(eligible)} item(s)"
    draft = PendingDraft(
        type="bulk_tasks",
        summary=summary,
        data={
            "task_type": args.task_type,
            "item_ids": eligible_ids,
            "priority": args.priority,
            "assignee_id": args.assignee_id,
            "grouped": grouped,
        },
    )
    result: Row = {
        "ok": True,
        "preview": True,
        "requires_confirmation": True,
        "task_type": args.task_type,
        "task_count": task_count,
        "grouped": grouped,
        "initial_status": initial_status(args.task_type),
        "items": [entity_ref(item.get("item_code"), item["id"]) for item in eligible[:PREVIEW_ITEM_LIMIT]],
        "eligible_count": len(eligible),
        "skipped": skipped,
        "message": f"{summary}. Confirm to proceed.",
    }
    if args.grouped and not grouped:
        result["note"] = f"{args.task_type} tasks are always created one per item"
    if warnings:
        result["warnings"] = sorted({message for messages in warnings.values() for message in messages})
    return ToolOutcome(result, {"pending_draft": draft})


def create_tasks_bulk_execute(args: ConfirmArgs, context: ToolContext) -> ToolOutcome:
    draft, problem = confirmed_draft(context, "bulk_tasks", args.confirmed, "tool_create_tasks_bulk_preview")
    if problem:
        return problem

    data = draft.data
    task_type = data["task_type"]
    eligible, skipped = task_eligibility(context, task_type, data.get("item_ids") or [])
    options = {"priority": data.get("priority") or "medium", "assignee_id": data.get("assignee_id")}

    created: List[Row] = []
    if eligible and data.get("grouped") and task_type in GROUPABLE_TASK_TYPES:
        created.append(
            context.repository.insert_task(context.tenant_id, _task_payload(context, task_type, eligible, **options))
        )
    else:
        for item in eligible:
            created.append(
                context.repository.insert_task(context.tenant_id, _task_payload(context, task_type, [item], **options))
            )

    logger.info(
        "Bulk tasks executed",
        extra={
            "tenant_id": context.tenant_id,
            "task_type": task_type,
            "created_count": len(created),
            "skipped": len(skipped),
        },
    )
    result: Row = {
        "ok": bool(created),
        "created_count": len(created),
        "tasks": [_created(task) for task in created],
        "skipped": skipped,
    }
    if not created:
        result["error"] = "No tasks created; every item became ineligible since the preview"
    return ToolOutcome(result, {"pending_draft": None})


TOOLS = [
    ToolSpec(
        name="tool_create_task_single",
        description=(
            "Create one task for one item. Repair requires a completed inspection; soft warnings come back "
            "with requires_override and must be acknowledged by the user before retrying."
        ),
        parameters={
            "type": "object",
            "properties": {
                "task_type": {"type": "string", "enum": ["inspection", "assembly", "repair", "repair_quote"]},
                "item_id": {"type": "string", "description": "Item ID or item code"},
                "title": {"type": "string", "description": "Task title (optional)"},
                "description": {"type": "string", "description": "Task description (optional)"},
                "priority": {"type": "string", "enum": ["low", "medium", "high", "urgent"]},
                "assignee_id": {"type": "string", "description": "User ID to assign (optional)"},
                "acknowledge_warnings": {
                    "type": "boolean",
                    "description": "Set true only after the user agreed to proceed despite warnings",
                },
            },
            "required": ["task_type", "item_id"],
        },
        args_model=CreateTaskSingleArgs,
        handler=create_task_single,
    ),
    ToolSpec(
        name="tool_create_tasks_bulk_preview",
        description=(
            "Preview creating tasks for multiple items. ALWAYS call this before bulk creation. "
            "Inspection is always one task per item."
        ),
        parameters={
            "type": "object",
            "properties": {
                "task_type": {"type": "string", "enum": ["inspection", "assembly", "repair"]},
                "item_ids": {"type": "array", "items": {"type": "string"}, "description": "Item IDs or codes"},
                "shipment_id": {"type": "string", "description": "Include every item on this shipment"},
                "priority": {"type": "string", "enum": ["low", "medium", "high", "urgent"]},
                "assignee_id": {"type": "string"},
                "grouped": {"type": "boolean", "description": "One task for all items (assembly only)"},
            },
            "required": ["task_type"],
        },
        args_model=BulkTasksPreviewArgs,
        handler=create_tasks_bulk_preview,
    ),
    ToolSpec(
        name="tool_create_tasks_bulk_execute",
        description="Execute the previewed bulk task creation. Only call after the user confirmed the preview.",
        parameters={
            "type": "object",
            "properties": {"confirmed": {"type": "boolean", "description": "Must be true"}},
            "required": ["confirmed"],
        },
        args_model=ConfirmArgs,
        handler=create_tasks_bulk_execute,
        executes_draft=True,
    ),
]
