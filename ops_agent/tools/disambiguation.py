from __future__ import annotations

from ops_agent.schemas.tools import ResolveDisambiguationArgs
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, fail


def resolve_disambiguation(args: ResolveDisambiguationArgs, context: ToolContext) -> ToolOutcome:
    pending = context.session.pending_disambiguation
    if pending is None:
        return fail("No pending selection to resolve")

    if args.entity_type:
        entity_type = args.entity_type.strip().lower().rstrip("s")
        chosen = [candidate for candidate in pending.candidates if candidate.entity_type == entity_type]
        if pending.type == "entity_type" and not chosen:
            offered = sorted({candidate.entity_type for candidate in pending.candidates if candidate.entity_type})
            return fail(f"'{args.entity_type}' is not one of the offered types", offered_types=offered)
        return ToolOutcome(
            {
                "resolved": True,
                "entity_type": entity_type,
                "selected_ids": [candidate.id for candidate in chosen],
                "selected_count": len(chosen),
                "original_query": pending.original_query,
            },
            {"pending_disambiguation": None},
        )

    if args.select_all:
        chosen = list(pending.candidates)
    elif args.selections:
        chosen = []
        for index in args.selections:
            candidate = pending.find(index)
            if candidate is not None and candidate not in chosen:
                chosen.append(candidate)
    else:
        return fail("No selections provided")

    result = {
        "resolved": True,
        "type": pending.type,
        "selected_ids": [candidate.id for candidate in chosen],
        "selected": [{"index": candidate.index, "id": candidate.id, "label": candidate.label} for candidate in chosen],
        "selected_count": len(chosen),
        "original_query": pending.original_query,
    }
    ignored = [index for index in args.selections if pending.find(index) is None]
    if ignored and not args.select_all:
        result["ignored_selections"] = ignored
    return ToolOutcome(result, {"pending_disambiguation": None})


TOOLS = [
    ToolSpec(
        name="tool_resolve_disambiguation",
        description="Resolve a pending disambiguation by selecting from previously listed options",
        parameters={
            "type": "object",
            "properties": {
                "selections": {
                    "type": "array",
                    "items": {"type": "number"},
                    "description": "Selected option numbers (1-indexed)",
                },
                "select_all": {"type": "boolean", "description": "Set to true if user said 'all'"},
                "entity_type": {
                    "type": "string",
                    "description": "If disambiguating entity type: 'item', 'shipment', 'task', 'stocktake'",
                },
            },
        },
        args_model=ResolveDisambiguationArgs,
        handler=resolve_disambiguation,
    ),
]
