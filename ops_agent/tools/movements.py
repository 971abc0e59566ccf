from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from ops_agent.orchestrator.state import PendingDraft
from ops_agent.schemas.tools import AddItemNoteArgs, MoveItemArgs, MoveItemsExecuteArgs, MoveItemsPreviewArgs
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, confirmed_draft, entity_ref, fail

logger = logging.getLogger(__name__)

PREVIEW_ITEM_LIMIT = 25

Row = Dict[str, Any]


def _location_label(location: Row) -> str:
    return entity_ref(location.get("code") or location.get("name"), location["id"])


def move_item(args: MoveItemArgs, context: ToolContext) -> ToolOutcome:
    tenant_id = context.tenant_id
    item = context.repository.get("items", tenant_id, args.item_id)
    if not item or item.get("deleted_at"):
        return fail("Item not found")
    location = context.repository.get("locations", tenant_id, args.to_location_id)
    if not location:
        return fail("Location not found")

    blocker = context.safety.move_blockers(tenant_id, [item]).get(item["id"])
    if blocker:
        return ToolOutcome(
            {
                "ok": False,
                "blocked": True,
                "error": blocker,
                "item": entity_ref(item.get("item_code"), item["id"]),
            }
        )
    if item.get("location_id") == location["id"]:
        return ToolOutcome({"ok": True, "message": f"{item.get('item_code')} is already at {location.get('code')}"})

    context.repository.move_item(
        tenant_id,
        item["id"],
        to_location_id=location["id"],
        from_location_id=item.get("location_id"),
        moved_by=context.scope.user_id,
        movement_type="move",
        notes=args.notes,
    )
    return ToolOutcome(
        {
            "ok": True,
            "item": entity_ref(item.get("item_code"), item["id"]),
            "to": _location_label(location),
            "message": f"Moved {item.get('item_code')} to {location.get('code')}",
        }
    )


def movable_items(context: ToolContext, item_ids: Sequence[str], destination_id: str) -> Tuple[List[Row], List[Row]]:
    """Split ``item_ids`` into (movable item rows, skipped entries with reasons)."""
    items = context.repository.rows_by_id("items", context.tenant_id, item_ids)
    present = [items[item_id] for item_id in item_ids if item_id in items and not items[item_id].get("deleted_at")]
    blockers = context.safety.move_blockers(context.tenant_id, present)

    movable: List[Row] = []
    skipped: List[Row] = []
    for item_id in item_ids:
        item = items.get(item_id)
        if not item or item.get("deleted_at"):
            skipped.append({"item": item_id, "reason": "Item not found"})
        elif item_id in blockers:
            skipped.append({"item": entity_ref(item.get("item_code"), item_id), "reason": blockers[item_id], "blocked": True})
        elif item.get("location_id") == destination_id:
            skipped.append({"item": entity_ref(item.get("item_code"), item_id), "reason": "Already at destination"})
        else:
            movable.append(item)
    return movable, skipped


def move_items_preview(args: MoveItemsPreviewArgs, context: ToolContext) -> ToolOutcome:
    if not args.item_ids:
        return fail("No items to move. Search for the items first.")
    location = context.repository.get("locations", context.tenant_id, args.to_location_id)
    if not location:
        return fail("Location not found")

    movable, skipped = movable_items(context, args.item_ids, location["id"])
    if not movable:
        return fail("None of the requested items can be moved", skipped=skipped)

    summary = f"Move {len(movable)} item(s) to {location.get('code')}"
    draft = PendingDraft(
        type="bulk_move",
        summary=summary,
        data={"item_ids": [item["id"] for item in movable], "to_location_id": location["id"]},
    )
    return ToolOutcome(
        {
            "ok": True,
            "preview": True,
            "requires_confirmation": True,
            "destination": _location_label(location),
            "items": [entity_ref(item.get("item_code"), item["id"]) for item in movable[:PREVIEW_ITEM_LIMIT]],
            "moveable_count": len(movable),
            "skipped": skipped,
            "message": f"{summary}. Confirm to proceed.",
        },
        {"pending_draft": draft},
    )


def move_items_execute(args: MoveItemsExecuteArgs, context: ToolContext) -> ToolOutcome:
    draft, problem = confirmed_draft(context, "bulk_move", args.confirmed, "tool_move_items_preview")
    if problem:
        return problem

    location = context.repository.get("locations", context.tenant_id, draft.data.get("to_location_id", ""))
    if not location:
        return ToolOutcome(fail("Destination location no longer exists").result, {"pending_draft": None})

    movable, skipped = movable_items(context, draft.data.get("item_ids") or [], location["id"])
    moved: List[str] = []
    for item in movable:
        if context.repository.move_item(
            context.tenant_id,
            item["id"],
            to_location_id=location["id"],
            from_location_id=item.get("location_id"),
            moved_by=context.scope.user_id,
            movement_type="bulk_move",
            notes=args.notes,
        ):
            moved.append(entity_ref(item.get("item_code"), item["id"]))

    logger.info(
        "Bulk move executed",
        extra={"tenant_id": context.tenant_id, "moved": len(moved), "skipped": len(skipped)},
    )
    result: Row = {
        "ok": bool(moved),
        "moved_count": len(moved),
        "moved": moved,
        "destination": _location_label(location),
        "skipped": skipped,
    }
    if not moved:
        result["error"] = "No items moved; every item became blocked or unavailable since the preview"
    return ToolOutcome(result, {"pending_draft": None})


def add_item_note(args: AddItemNoteArgs, context: ToolContext) -> ToolOutcome:
    item = context.repository.get("items", context.tenant_id, args.item_id)
    if not item or item.get("deleted_at"):
        return fail("Item not found")
    note = context.repository.add_item_note(
        context.tenant_id, item["id"], args.note.strip(), created_by=context.scope.user_id
    )
    return ToolOutcome(
        {
            "ok": True,
            "item": entity_ref(item.get("item_code"), item["id"]),
            "note_id": note["id"],
            "author": context.scope.user_display_name,
        }
    )


TOOLS = [
    ToolSpec(
        name="tool_move_item",
        description="Move a single item to a new location. Blocked if the item is frozen by a stocktake or allocated.",
        parameters={
            "type": "object",
            "properties": {
                "item_id": {"type": "string", "description": "Item ID or item code"},
                "to_location_id": {"type": "string", "description": "Destination location ID or code"},
                "notes": {"type": "string", "description": "Optional movement note"},
            },
            "required": ["item_id", "to_location_id"],
        },
        args_model=MoveItemArgs,
        handler=move_item,
    ),
    ToolSpec(
        name="tool_move_items_preview",
        description="Preview moving multiple items to a location. ALWAYS call before moving more than one item.",
        parameters={
            "type": "object",
            "properties": {
                "item_ids": {"type": "array", "items": {"type": "string"}, "description": "Item IDs or codes"},
                "to_location_id": {"type": "string", "description": "Destination location ID or code"},
            },
            "required": ["item_ids", "to_location_id"],
        },
        args_model=MoveItemsPreviewArgs,
        handler=move_items_preview,
    ),
    ToolSpec(
        name="tool_move_items_execute",
        description="Execute the previewed bulk move. Only call after the user confirmed the preview.",
        parameters={
            "type": "object",
            "properties": {
                "confirmed": {"type": "boolean", "description": "Must be true"},
                "notes": {"type": "string", "description": "Optional movement note"},
            },
            "required": ["confirmed"],
        },
        args_model=MoveItemsExecuteArgs,
        handler=move_items_execute,
        executes_draft=True,
    ),
    ToolSpec(
        name="tool_add_item_note",
        description="Attach a free-text note to an item",
        parameters={
            "type": "object",
            "properties": {
                "item_id": {"type": "string", "description": "Item ID or item code"},
                "note": {"type": "string", "description": "Note text"},
            },
            "required": ["item_id", "note"],
        },
        args_model=AddItemNoteArgs,
        handler=add_item_note,
    ),
]
