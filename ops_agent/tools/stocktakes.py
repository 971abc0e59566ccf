from __future__ import annotations

import logging

from ops_agent.orchestrator.state import PendingDraft
from ops_agent.schemas.tools import CloseStocktakeArgs, StocktakeRefArgs
from ops_agent.services.safety import ClosureCheck
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, confirmed_draft, entity_ref, fail

logger = logging.getLogger(__name__)

VARIANCE_PREVIEW_LIMIT = 20


def _variances(context: ToolContext, check: ClosureCheck):
    items = context.repository.rows_by_id(
        "items", context.tenant_id, (line.get("item_id") for line in check.unresolved)
    )
    return [
        {
            "item": (items.get(line.get("item_id")) or {}).get("item_code", "Unknown"),
            "expected": line.get("expected_quantity"),
            "actual": line.get("actual_quantity"),
            "variance_status": line.get("variance_status"),
        }
        for line in check.unresolved[:VARIANCE_PREVIEW_LIMIT]
    ]


def validate_stocktake_completion(args: StocktakeRefArgs, context: ToolContext) -> ToolOutcome:
    stocktake = context.repository.get("stocktakes", context.tenant_id, args.stocktake_id)
    if not stocktake:
        return fail("Stocktake not found")
    ref = entity_ref(stocktake.get("stocktake_number"), stocktake["id"])
    if stocktake.get("status") == "completed":
        return fail("Stocktake is already closed", stocktake=ref)

    check = context.safety.stocktake_closure(context.tenant_id, stocktake)
    if not check.can_close:
        return ToolOutcome(
            {
                "can_close": False,
                "stocktake": ref,
                "total_lines": check.total_lines,
                "unresolved_count": len(check.unresolved),
                "unresolved_variances": _variances(context, check),
                "message": check.message,
            }
        )

    draft = PendingDraft(
        type="stocktake_close",
        summary=f"Close stocktake {stocktake.get('stocktake_number')}",
        data={"stocktake_id": stocktake["id"]},
    )
    return ToolOutcome(
        {
            "can_close": True,
            "requires_confirmation": True,
            "stocktake": ref,
            "total_lines": check.total_lines,
            "message": check.message,
        },
        {"pending_draft": draft},
    )


def close_stocktake(args: CloseStocktakeArgs, context: ToolContext) -> ToolOutcome:
    draft, problem = confirmed_draft(
        context, "stocktake_close", args.confirmed, "tool_validate_stocktake_completion"
    )
    if problem:
        return problem
    if draft.data.get("stocktake_id") != args.stocktake_id:
        return fail(
            "The pending close is for a different stocktake. Validate this stocktake first.",
            pending=draft.summary,
        )

    stocktake = context.repository.get("stocktakes", context.tenant_id, args.stocktake_id)
    if not stocktake:
        return ToolOutcome(fail("Stocktake not found").result, {"pending_draft": None})
    ref = entity_ref(stocktake.get("stocktake_number"), stocktake["id"])

    check = context.safety.stocktake_closure(context.tenant_id, stocktake)
    if not check.can_close:
        return ToolOutcome(
            {
                "ok": False,
                "error": check.message,
                "stocktake": ref,
                "unresolved_variances": _variances(context, check),
            },
            {"pending_draft": None},
        )

    context.repository.close_stocktake(context.tenant_id, stocktake["id"], completed_by=context.scope.user_id)
    logger.info(
        "Stocktake closed",
        extra={"tenant_id": context.tenant_id, "stocktake": stocktake.get("stocktake_number")},
    )
    return ToolOutcome(
        {"ok": True, "stocktake": ref, "status": "completed", "message": "Stocktake closed."},
        {"pending_draft": None},
    )


TOOLS = [
    ToolSpec(
        name="tool_validate_stocktake_completion",
        description="Check whether a stocktake can be closed; lists unresolved variances otherwise",
        parameters={
            "type": "object",
            "properties": {"stocktake_id": {"type": "string", "description": "Stocktake ID or number"}},
            "required": ["stocktake_id"],
        },
        args_model=StocktakeRefArgs,
        handler=validate_stocktake_completion,
    ),
    ToolSpec(
        name="tool_close_stocktake",
        description="Close a validated stocktake. Only call after validation passed and the user confirmed.",
        parameters={
            "type": "object",
            "properties": {
                "stocktake_id": {"type": "string", "description": "Stocktake ID or number"},
                "confirmed": {"type": "boolean", "description": "Must be true"},
            },
            "required": ["stocktake_id", "confirmed"],
        },
        args_model=CloseStocktakeArgs,
        handler=close_stocktake,
        executes_draft=True,
    ),
]
