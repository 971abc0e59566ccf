from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from ops_agent.schemas.tools import ItemRefArgs, MovementHistoryArgs, ShipmentRefArgs
from ops_agent.services.warehouse import NEWEST_FIRST
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, entity_ref, fail


def _task_brief(task: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": task["id"],
        "ref": entity_ref(task.get("task_number"), task["id"]),
        "task_number": task.get("task_number"),
        "task_type": task.get("task_type"),
        "status": task.get("status"),
        "title": task.get("title"),
    }


def get_item_details(args: ItemRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    item = repository.get("items", tenant_id, args.item_id)
    if not item:
        return ToolOutcome({"found": False, "error": "Item not found"})

    account = repository.get("accounts", tenant_id, item["account_id"]) if item.get("account_id") else None
    sidemark = repository.get("sidemarks", tenant_id, item["sidemark_id"]) if item.get("sidemark_id") else None
    location = repository.get("locations", tenant_id, item["location_id"]) if item.get("location_id") else None
    warehouse = repository.get("warehouses", tenant_id, item["warehouse_id"]) if item.get("warehouse_id") else None
    shipment = repository.get("shipments", tenant_id, item["shipment_id"]) if item.get("shipment_id") else None

    open_tasks = repository.open_tasks_for_items(tenant_id, [item["id"]])
    frozen_by = repository.stocktake_locks(tenant_id, [item["id"]]).get(item["id"])
    notes = repository.find("item_notes", tenant_id, {"item_id": item["id"]}, limit=5, sort=NEWEST_FIRST)

    return ToolOutcome(
        {
            "found": True,
            "item": {
                "id": item["id"],
                "ref": entity_ref(item.get("item_code"), item["id"]),
                "item_code": item.get("item_code"),
                "description": item.get("description"),
                "status": item.get("status"),
                "condition": item.get("condition"),
                "quantity": item.get("quantity"),
                "received_at": item.get("received_at"),
                "weight_lbs": item.get("weight_lbs"),
                "dimensions": item.get("dimensions"),
                "account": (account or {}).get("account_name"),
                "job": (sidemark or {}).get("sidemark_name"),
                "location": f"{location.get('code')} ({location.get('name')})" if location else None,
                "warehouse": (warehouse or {}).get("name"),
                "shipment": (shipment or {}).get("shipment_number"),
                "notes": item.get("notes"),
                "photo_count": len(item.get("photos") or []),
            },
            "recent_notes": [{"note": note.get("note"), "created_at": note.get("created_at")} for note in notes],
            "active_tasks": [_task_brief(task) for task in open_tasks[:5]],
            "frozen_by_stocktake": frozen_by,
        }
    )


def get_item_movement_history(args: MovementHistoryArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    item = repository.get("items", tenant_id, args.item_id)
    if not item:
        return fail("Item not found")

    movements = repository.find(
        "item_movements", tenant_id, {"item_id": item["id"]}, limit=args.limit, sort=NEWEST_FIRST
    )
    locations = repository.rows_by_id(
        "locations",
        tenant_id,
        [m.get("from_location_id") for m in movements] + [m.get("to_location_id") for m in movements],
    )
    movers = repository.user_names(tenant_id, (m.get("moved_by") for m in movements))
    return ToolOutcome(
        {
            "item_code": item.get("item_code"),
            "ref": entity_ref(item.get("item_code"), item["id"]),
            "movements": [
                {
                    "type": movement.get("movement_type"),
                    "from": (locations.get(movement.get("from_location_id")) or {}).get("code", "Unknown"),
                    "to": (locations.get(movement.get("to_location_id")) or {}).get("code", "Unknown"),
                    "moved_by": movers.get(movement.get("moved_by"), "System"),
                    "notes": movement.get("notes"),
                    "timestamp": movement.get("created_at"),
                }
                for movement in movements
            ],
        }
    )


def get_item_outbound_history(args: ItemRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    item = repository.get("items", tenant_id, args.item_id)
    if not item:
        return fail("Item not found")

    lines = repository.find("shipment_items", tenant_id, {"item_id": item["id"]}, sort=NEWEST_FIRST)
    shipments = repository.rows_by_id("shipments", tenant_id, (line.get("shipment_id") for line in lines))
    releases = []
    for line in lines:
        shipment = shipments.get(line.get("shipment_id"))
        if not shipment or shipment.get("shipment_type") != "outbound":
            continue
        releases.append(
            {
                "shipment_number": shipment.get("shipment_number"),
                "ref": entity_ref(shipment.get("shipment_number"), shipment["id"]),
                "status": line.get("status"),
                "shipment_status": shipment.get("status"),
                "released_to": shipment.get("released_to"),
                "released_at": shipment.get("released_at") or line.get("released_at"),
            }
        )
    return ToolOutcome({"item_code": item.get("item_code"), "releases": releases[:10]})


def get_shipment_details(args: ShipmentRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    shipment = repository.get("shipments", tenant_id, args.shipment_id)
    if not shipment:
        return ToolOutcome({"found": False, "error": "Shipment not found"})

    lines = repository.find("shipment_items", tenant_id, {"shipment_id": shipment["id"]})
    breakdown = Counter(str(line.get("status") or "unknown") for line in lines)
    account = repository.get("accounts", tenant_id, shipment["account_id"]) if shipment.get("account_id") else None
    sidemark = (
        repository.get("sidemarks", tenant_id, shipment["sidemark_id"]) if shipment.get("sidemark_id") else None
    )
    created_by = repository.user_names(tenant_id, [shipment.get("created_by")]).get(shipment.get("created_by"))

    return ToolOutcome(
        {
            "found": True,
            "shipment": {
                "id": shipment["id"],
                "ref": entity_ref(shipment.get("shipment_number"), shipment["id"]),
                "number": shipment.get("shipment_number"),
                "type": shipment.get("shipment_type"),
                "status": shipment.get("status"),
                "tracking": shipment.get("tracking_number"),
                "carrier": shipment.get("carrier"),
                "scheduled_date": shipment.get("scheduled_date"),
                "received_at": shipment.get("received_at"),
                "released_at": shipment.get("released_at"),
                "released_to": shipment.get("released_to"),
                "account": (account or {}).get("account_name"),
                "job": (sidemark or {}).get("sidemark_name"),
                "total_items": shipment.get("total_items", len(lines)),
                "item_status_breakdown": dict(breakdown),
                "notes": shipment.get("notes"),
                "created_by": created_by,
            },
        }
    )


def get_shipment_items(args: ShipmentRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    shipment = repository.get("shipments", tenant_id, args.shipment_id)
    if not shipment:
        return fail("Shipment not found", items=[])

    items = repository.find("items", tenant_id, {"shipment_id": shipment["id"], "deleted_at": None})
    locations = repository.rows_by_id("locations", tenant_id, (item.get("location_id") for item in items))
    return ToolOutcome(
        {
            "shipment_number": shipment.get("shipment_number"),
            "item_count": len(items),
            "items": [
                {
                    "id": item["id"],
                    "ref": entity_ref(item.get("item_code"), item["id"]),
                    "item_code": item.get("item_code"),
                    "description": item.get("description"),
                    "status": item.get("status"),
                    "condition": item.get("condition"),
                    "location": (locations.get(item.get("location_id")) or {}).get("code"),
                }
                for item in items
            ],
        }
    )


def validate_shipment_outbound(args: ShipmentRefArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    repository = context.repository
    shipment = repository.get("shipments", tenant_id, args.shipment_id)
    if not shipment:
        return fail("Shipment not found")
    if shipment.get("shipment_type") != "outbound":
        return fail("Not an outbound shipment", shipment_type=shipment.get("shipment_type"))

    lines = repository.find("shipment_items", tenant_id, {"shipment_id": shipment["id"]})
    item_ids = [line["item_id"] for line in lines if line.get("item_id")]
    items = repository.rows_by_id("items", tenant_id, item_ids)

    blockers: List[str] = []
    not_ready: List[Dict[str, Any]] = []
    for item_id in item_ids:
        item = items.get(item_id)
        if not item:
            continue
        if item.get("status") == "released":
            blockers.append(f"{item.get('item_code')} already released")
        elif item.get("status") != "allocated":
            not_ready.append({"item_code": item.get("item_code"), "status": item.get("status")})

    for task in repository.open_tasks_for_items(tenant_id, item_ids):
        blockers.append(f"Active {task.get('task_type')} task {task.get('task_number')} blocking items")

    locks = repository.stocktake_locks(tenant_id, item_ids)
    if locks:
        numbers = ", ".join(sorted(set(locks.values())))
        blockers.append(f"Items frozen by stocktake(s): {numbers}")

    return ToolOutcome(
        {
            "shipment_number": shipment.get("shipment_number"),
            "current_status": shipment.get("status"),
            "ready_to_release": not blockers and not not_ready,
            "total_items": len(lines),
            "blockers": blockers,
            "items_not_ready": not_ready,
        }
    )


def _ref_schema(field: str, description: str, extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    properties = {field: {"type": "string", "description": description}}
    properties.update(extra or {})
    return {"type": "object", "properties": properties, "required": [field]}


TOOLS = [
    ToolSpec(
        name="tool_get_item_details",
        description="Get full details of an item including status, location, account, open tasks and stocktake freeze",
        parameters=_ref_schema("item_id", "Item ID or item code"),
        args_model=ItemRefArgs,
        handler=get_item_details,
    ),
    ToolSpec(
        name="tool_get_item_movement_history",
        description="Get movement history for an item (who moved it, when, from where to where)",
        parameters=_ref_schema(
            "item_id",
            "Item ID or item code",
            {"limit": {"type": "number", "description": "Max records to return (default 20)"}},
        ),
        args_model=MovementHistoryArgs,
        handler=get_item_movement_history,
    ),
    ToolSpec(
        name="tool_get_item_outbound_history",
        description="Get outbound/release history for an item",
        parameters=_ref_schema("item_id", "Item ID or item code"),
        args_model=ItemRefArgs,
        handler=get_item_outbound_history,
    ),
    ToolSpec(
        name="tool_get_shipment_details",
        description="Get full details of a shipment including item status breakdown",
        parameters=_ref_schema("shipment_id", "Shipment ID or shipment number"),
        args_model=ShipmentRefArgs,
        handler=get_shipment_details,
    ),
    ToolSpec(
        name="tool_get_shipment_items",
        description="Get all items on a shipment",
        parameters=_ref_schema("shipment_id", "Shipment ID or shipment number"),
        args_model=ShipmentRefArgs,
        handler=get_shipment_items,
    ),
    ToolSpec(
        name="tool_validate_shipment_outbound",
        description="Check if an outbound shipment is ready to release - identifies blockers",
        parameters=_ref_schema("shipment_id", "Shipment ID or shipment number"),
        args_model=ShipmentRefArgs,
        handler=validate_shipment_outbound,
    ),
]
