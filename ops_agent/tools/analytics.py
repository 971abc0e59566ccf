from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from ops_agent.schemas.tools import AccountRefArgs, RecentActivityArgs, WarehouseSnapshotArgs
from ops_agent.services.warehouse import (
    ACTIVE_OUTBOUND_STATUSES,
    ACTIVE_TASK_STATUSES,
    FREEZING_STOCKTAKE_STATUSES,
    NEWEST_FIRST,
    WORKING_TASK_STATUSES,
    utcnow,
)
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, entity_ref, fail

OPEN_SHIPMENT_STATUSES = ("expected", "receiving", *ACTIVE_OUTBOUND_STATUSES)


def get_account_summary(args: AccountRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    account = repository.get("accounts", tenant_id, args.account_id)
    if not account:
        return ToolOutcome({"found": False, "error": "Account not found"})

    items_by_status = repository.count_by("items", tenant_id, "status", {"account_id": account["id"]})
    open_tasks = repository.count_by(
        "tasks",
        tenant_id,
        "task_type",
        {"account_id": account["id"], "status": {"$in": list(ACTIVE_TASK_STATUSES)}},
    )
    open_shipments = repository.find(
        "shipments",
        tenant_id,
        {"account_id": account["id"], "status": {"$in": list(OPEN_SHIPMENT_STATUSES)}, "deleted_at": None},
        limit=10,
        sort=NEWEST_FIRST,
    )
    return ToolOutcome(
        {
            "found": True,
            "account": {
                "id": account["id"],
                "ref": entity_ref(account.get("account_code") or account.get("account_name"), account["id"]),
                "account_name": account.get("account_name"),
                "account_code": account.get("account_code"),
                "status": account.get("status"),
            },
            "items_by_status": items_by_status,
            "total_items": sum(items_by_status.values()),
            "open_tasks_by_type": open_tasks,
            "open_shipments": [
                {
                    "ref": entity_ref(shipment.get("shipment_number"), shipment["id"]),
                    "type": shipment.get("shipment_type"),
                    "status": shipment.get("status"),
                }
                for shipment in open_shipments
            ],
            "unbilled_amount": repository.unbilled_total(tenant_id, account["id"]),
        }
    )


def get_warehouse_snapshot(args: WarehouseSnapshotArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    scope: Dict[str, Any] = {}
    warehouse_name = None
    if args.warehouse_id:
        warehouse = repository.get("warehouses", tenant_id, args.warehouse_id)
        if not warehouse:
            return fail("Warehouse not found")
        scope["warehouse_id"] = warehouse["id"]
        warehouse_name = warehouse.get("name")

    items_by_status = repository.count_by("items", tenant_id, "status", scope)
    tasks_by_type = repository.count_by(
        "tasks", tenant_id, "task_type", {"status": {"$in": list(WORKING_TASK_STATUSES)}}
    )
    pending_approval = sum(
        repository.count_by("tasks", tenant_id, "task_type", {"status": "pending_approval"}).values()
    )
    shipments = repository.count_by(
        "shipments", tenant_id, "shipment_type", {"status": {"$in": list(OPEN_SHIPMENT_STATUSES)}, **scope}
    )
    stocktakes = repository.find(
        "stocktakes", tenant_id, {"status": {"$in": list(FREEZING_STOCKTAKE_STATUSES)}, **scope}
    )
    return ToolOutcome(
        {
            "warehouse": warehouse_name or "All warehouses",
            "items_by_status": items_by_status,
            "total_items": sum(items_by_status.values()),
            "open_tasks_by_type": tasks_by_type,
            "tasks_pending_approval": pending_approval,
            "open_shipments_by_type": shipments,
            "active_stocktakes": [
                {"ref": entity_ref(row.get("stocktake_number"), row["id"]), "status": row.get("status")}
                for row in stocktakes
            ],
        }
    )


def get_recent_activity(args: RecentActivityArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    since = utcnow() - timedelta(hours=args.hours)
    window = {"created_at": {"$gte": since}}

    movements = repository.find("item_movements", tenant_id, window, limit=args.limit, sort=NEWEST_FIRST)
    tasks = repository.find("tasks", tenant_id, window, limit=args.limit, sort=NEWEST_FIRST)
    shipments = repository.find("shipments", tenant_id, window, limit=args.limit, sort=NEWEST_FIRST)

    items = repository.rows_by_id("items", tenant_id, (m.get("item_id") for m in movements))
    locations = repository.rows_by_id("locations", tenant_id, (m.get("to_location_id") for m in movements))
    actors = repository.user_names(
        tenant_id,
        [m.get("moved_by") for m in movements] + [t.get("created_by") for t in tasks],
    )

    events: List[Dict[str, Any]] = []
    for movement in movements:
        item = items.get(movement.get("item_id")) or {}
        events.append(
            {
                "kind": "movement",
                "at": movement.get("created_at"),
                "summary": "{} moved to {}".format(
                    item.get("item_code", "Unknown item"),
                    (locations.get(movement.get("to_location_id")) or {}).get("code", "Unknown"),
                ),
                "by": actors.get(movement.get("moved_by"), "System"),
            }
        )
    for task in tasks:
        events.append(
            {
                "kind": "task",
                "at": task.get("created_at"),
                "summary": f"{task.get('task_type')} task {entity_ref(task.get('task_number'), task['id'])} created",
                "by": actors.get(task.get("created_by"), "System"),
            }
        )
    for shipment in shipments:
        events.append(
            {
                "kind": "shipment",
                "at": shipment.get("created_at"),
                "summary": "{} shipment {} ({})".format(
                    shipment.get("shipment_type") or "unknown",
                    entity_ref(shipment.get("shipment_number"), shipment["id"]),
                    shipment.get("status"),
                ),
            }
        )
    events.sort(key=lambda event: event["at"] or since, reverse=True)
    return ToolOutcome({"hours": args.hours, "count": len(events[: args.limit]), "events": events[: args.limit]})


TOOLS = [
    ToolSpec(
        name="tool_get_account_summary",
        description="Summarize a client account: items by status, open tasks, open shipments and unbilled charges",
        parameters={
            "type": "object",
            "properties": {"account_id": {"type": "string", "description": "Account ID, code or name"}},
            "required": ["account_id"],
        },
        args_model=AccountRefArgs,
        handler=get_account_summary,
    ),
    ToolSpec(
        name="tool_get_warehouse_snapshot",
        description="Current counts across the warehouse: items by status, open tasks, open shipments, active stocktakes",
        parameters={
            "type": "object",
            "properties": {"warehouse_id": {"type": "string", "description": "Limit to one warehouse (optional)"}},
        },
        args_model=WarehouseSnapshotArgs,
        handler=get_warehouse_snapshot,
    ),
    ToolSpec(
        name="tool_get_recent_activity",
        description="Latest movements, tasks and shipments in the last N hours, newest first",
        parameters={
            "type": "object",
            "properties": {
                "hours": {"type": "number", "description": "Look-back window in hours (default 24)"},
                "limit": {"type": "number", "description": "Max events to return (default 20)"},
            },
        },
        args_model=RecentActivityArgs,
        handler=get_recent_activity,
    ),
]
