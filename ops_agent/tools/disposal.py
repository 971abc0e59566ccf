from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from ops_agent.orchestrator.state import PendingDraft
from ops_agent.schemas.tools import ConfirmArgs, DisposalDraftArgs
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, confirmed_draft, entity_ref, fail

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def disposable_items(context: ToolContext, item_ids: Sequence[str]) -> Tuple[List[Row], List[Row]]:
    items = context.repository.rows_by_id("items", context.tenant_id, item_ids)
    present = [items[item_id] for item_id in item_ids if item_id in items and not items[item_id].get("deleted_at")]
    blockers = context.safety.disposal_blockers(present)
    locks = context.repository.stocktake_locks(context.tenant_id, [item["id"] for item in present])

    disposable: List[Row] = []
    excluded: List[Row] = []
    for item_id in item_ids:
        item = items.get(item_id)
        if not item or item.get("deleted_at"):
            excluded.append({"item": item_id, "reason": "Item not found"})
            continue
        ref = entity_ref(item.get("item_code"), item_id)
        if item_id in blockers:
            excluded.append({"item": ref, "reason": blockers[item_id]})
        elif item_id in locks:
            excluded.append({"item": ref, "reason": f"Item frozen by stocktake {locks[item_id]}"})
        else:
            disposable.append(item)
    return disposable, excluded


def create_disposal_draft(args: DisposalDraftArgs, context: ToolContext) -> ToolOutcome:
    if not args.item_ids:
        return fail("No items to dispose. Search for the items first.")

    disposable, excluded = disposable_items(context, args.item_ids)
    if not disposable:
        return fail("None of the requested items can be disposed", excluded=excluded)

    summary = f"Dispose of {len(disposable)} item(s)"
    if args.reason:
        summary += f" ({args.reason})"
    draft = PendingDraft(
        type="disposal",
        summary=summary,
        data={"item_ids": [item["id"] for item in disposable], "reason": args.reason},
    )
    return ToolOutcome(
        {
            "ok": True,
            "preview": True,
            "requires_confirmation": True,
            "items": [entity_ref(item.get("item_code"), item["id"]) for item in disposable],
            "disposable_count": len(disposable),
            "excluded": excluded,
            "message": f"{summary}. This cannot be undone. Confirm to proceed.",
        },
        {"pending_draft": draft},
    )


def execute_disposal(args: ConfirmArgs, context: ToolContext) -> ToolOutcome:
    draft, problem = confirmed_draft(context, "disposal", args.confirmed, "tool_create_disposal_draft")
    if problem:
        return problem

    disposable, excluded = disposable_items(context, draft.data.get("item_ids") or [])
    count = context.repository.dispose_items(
        context.tenant_id,
        [item["id"] for item in disposable],
        disposed_by=context.scope.user_id,
        reason=draft.data.get("reason"),
    )
    logger.info(
        "Disposal executed",
        extra={"tenant_id": context.tenant_id, "disposed": count, "excluded": len(excluded)},
    )
    result: Row = {
        "ok": count > 0,
        "disposed_count": count,
        "disposed": [entity_ref(item.get("item_code"), item["id"]) for item in disposable],
        "excluded": excluded,
    }
    if not count:
        result["error"] = "Nothing disposed; every item became ineligible since the draft"
    return ToolOutcome(result, {"pending_draft": None})


TOOLS = [
    ToolSpec(
        name="tool_create_disposal_draft",
        description=(
            "Draft disposal of items. Allocated or released items are excluded. "
            "ALWAYS show the draft to the user before executing."
        ),
        parameters={
            "type": "object",
            "properties": {
                "item_ids": {"type": "array", "items": {"type": "string"}, "description": "Item IDs or codes"},
                "reason": {"type": "string", "description": "Why the items are being disposed"},
            },
            "required": ["item_ids"],
        },
        args_model=DisposalDraftArgs,
        handler=create_disposal_draft,
    ),
    ToolSpec(
        name="tool_execute_disposal",
        description="Execute the drafted disposal. Only call after the user explicitly confirmed.",
        parameters={
            "type": "object",
            "properties": {"confirmed": {"type": "boolean", "description": "Must be true"}},
            "required": ["confirmed"],
        },
        args_model=ConfirmArgs,
        handler=execute_disposal,
        executes_draft=True,
    ),
]
