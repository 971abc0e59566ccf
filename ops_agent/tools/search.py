from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence

from ops_agent.orchestrator.state import Candidate, DisambiguationState
from ops_agent.schemas.tools import (
    LookupReferenceArgs,
    SearchAccountsArgs,
    SearchClaimsArgs,
    SearchItemsArgs,
    SearchLocationsArgs,
    SearchShipmentsArgs,
    SearchStocktakesArgs,
    SearchTasksArgs,
)
from ops_agent.services.matching import (
    index_candidates,
    is_partial_id_query,
    prioritize_matches,
    search_pattern,
)
from ops_agent.services.warehouse import NEWEST_FIRST
from ops_agent.tools.registry import ToolContext, ToolOutcome, ToolSpec, entity_ref, fail

Row = Dict[str, Any]


def present_matches(
    kind: str,
    query: str,
    rows: Sequence[Row],
    label: Callable[[Row], str],
    *,
    total: Optional[int] = None,
    noun: Optional[str] = None,
) -> ToolOutcome:
    """Return a single row directly, or open a disambiguation over ``rows``.

    ``rows`` is the already capped preview; ``total`` is how many matched
    before the cap.
    """
    noun = noun or kind
    candidates = index_candidates(list(rows), len(rows))
    if not candidates:
        return ToolOutcome({"found": False, "count": 0, kind: [], "message": f'No {noun} matched "{query}".'})
    if len(candidates) == 1:
        return ToolOutcome({"found": True, "count": 1, kind: candidates})

    state = DisambiguationState(
        type=kind,
        candidates=[Candidate(id=row["id"], index=row["index"], label=label(row)) for row in candidates],
        original_query=query,
    )
    result = {
        "found": True,
        "multiple_matches": True,
        "count": len(candidates),
        kind: candidates,
        "message": f'Found {len(candidates)} {noun} matching "{query}". Specify which one.',
    }
    if total and total > len(candidates):
        result["total_matches"] = total
    return ToolOutcome(result, {"pending_disambiguation": state})


def _find_ranked(
    context: ToolContext,
    collection: str,
    query: str,
    *,
    code_field: str,
    text_fields: Sequence[str],
    id_fields: Optional[Sequence[str]] = None,
    filters: Optional[Dict[str, Any]] = None,
    fetch_limit: int = 30,
    sort=None,
) -> List[Row]:
    partial = is_partial_id_query(query)
    rows = context.repository.search(
        collection,
        context.tenant_id,
        pattern=search_pattern(query),
        fields=list(id_fields or [code_field]) if partial else list(text_fields),
        filters=filters,
        limit=fetch_limit,
        sort=sort,
    )
    if partial:
        return prioritize_matches(rows, query, code_field)
    return rows


def _prefer_code(rows: List[Row], query: str, code_field: str) -> List[Row]:
    ranked = prioritize_matches(rows, query, code_field)
    return ranked or rows


# ---------------------------------------------------------------- items


ITEM_PREVIEW_LIMIT = 15


def describe_items(context: ToolContext, rows: Sequence[Row]) -> List[Row]:
    tenant_id = context.tenant_id
    repository = context.repository
    accounts = repository.rows_by_id("accounts", tenant_id, (row.get("account_id") for row in rows))
    sidemarks = repository.rows_by_id("sidemarks", tenant_id, (row.get("sidemark_id") for row in rows))
    locations = repository.rows_by_id("locations", tenant_id, (row.get("location_id") for row in rows))
    warehouses = repository.rows_by_id("warehouses", tenant_id, (row.get("warehouse_id") for row in rows))
    described = []
    for row in rows:
        location = locations.get(row.get("location_id")) or {}
        described.append(
            {
                "id": row["id"],
                "ref": entity_ref(row.get("item_code"), row["id"]),
                "item_code": row.get("item_code"),
                "description": row.get("description"),
                "status": row.get("status"),
                "condition": row.get("condition"),
                "account": (accounts.get(row.get("account_id")) or {}).get("account_name"),
                "job": (sidemarks.get(row.get("sidemark_id")) or {}).get("sidemark_name"),
                "location": location.get("code") or location.get("name"),
                "warehouse": (warehouses.get(row.get("warehouse_id")) or {}).get("name"),
            }
        )
    return described


def search_items(args: SearchItemsArgs, context: ToolContext) -> ToolOutcome:
    rows = _find_ranked(
        context,
        "items",
        args.query,
        code_field="item_code",
        text_fields=["description", "item_code"],
        filters={"status": args.status, "account_id": args.account_id, "location_id": args.location_id},
        fetch_limit=50,
    )
    described = describe_items(context, rows[:ITEM_PREVIEW_LIMIT])
    return present_matches(
        "items",
        args.query,
        described,
        lambda row: f"{row['item_code']} - {row.get('description') or 'No description'}",
        total=len(rows),
    )


# ---------------------------------------------------------------- shipments


SHIPMENT_PREVIEW_LIMIT = 10


def search_shipments(args: SearchShipmentsArgs, context: ToolContext) -> ToolOutcome:
    rows = _find_ranked(
        context,
        "shipments",
        args.query,
        code_field="shipment_number",
        text_fields=["shipment_number", "tracking_number"],
        id_fields=["shipment_number", "tracking_number"],
        filters={"status": args.status, "shipment_type": args.shipment_type},
    )
    preview = rows[:SHIPMENT_PREVIEW_LIMIT]
    accounts = context.repository.rows_by_id(
        "accounts", context.tenant_id, (row.get("account_id") for row in preview)
    )
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("shipment_number"), row["id"]),
            "shipment_number": row.get("shipment_number"),
            "type": row.get("shipment_type"),
            "status": row.get("status"),
            "tracking": row.get("tracking_number"),
            "account": (accounts.get(row.get("account_id")) or {}).get("account_name"),
            "item_count": row.get("total_items"),
            "date": row.get("received_at") or row.get("released_at") or row.get("scheduled_date"),
        }
        for row in preview
    ]
    return present_matches(
        "shipments",
        args.query,
        described,
        lambda row: f"{row['shipment_number']} ({row.get('type') or 'unknown'})",
        total=len(rows),
    )


# ---------------------------------------------------------------- tasks


TASK_PREVIEW_LIMIT = 10


def search_tasks(args: SearchTasksArgs, context: ToolContext) -> ToolOutcome:
    rows = _find_ranked(
        context,
        "tasks",
        args.query,
        code_field="task_number",
        text_fields=["title", "task_number", "assignee_name"],
        filters={"task_type": args.task_type, "status": args.status},
        sort=NEWEST_FIRST,
    )
    preview = rows[:TASK_PREVIEW_LIMIT]
    accounts = context.repository.rows_by_id(
        "accounts", context.tenant_id, (row.get("account_id") for row in preview)
    )
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("task_number"), row["id"]),
            "task_number": row.get("task_number"),
            "title": row.get("title"),
            "type": row.get("task_type"),
            "status": row.get("status"),
            "priority": row.get("priority"),
            "assignee": row.get("assignee_name"),
            "due_date": row.get("due_date"),
            "account": (accounts.get(row.get("account_id")) or {}).get("account_name"),
        }
        for row in preview
    ]
    return present_matches(
        "tasks",
        args.query,
        described,
        lambda row: f"{row['task_number']} - {row.get('title') or ''}".rstrip(" -"),
        total=len(rows),
    )


# ---------------------------------------------------------------- locations


LOCATION_PREVIEW_LIMIT = 15


def search_locations(args: SearchLocationsArgs, context: ToolContext) -> ToolOutcome:
    rows = context.repository.search(
        "locations",
        context.tenant_id,
        pattern=re.escape(args.query.strip()),
        fields=["code", "name"],
        filters={"warehouse_id": args.warehouse_id},
        limit=20,
    )
    rows = _prefer_code(rows, args.query, "code")
    preview = rows[:LOCATION_PREVIEW_LIMIT]
    warehouses = context.repository.rows_by_id(
        "warehouses", context.tenant_id, (row.get("warehouse_id") for row in preview)
    )
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("code"), row["id"]),
            "code": row.get("code"),
            "name": row.get("name"),
            "type": row.get("location_type"),
            "warehouse": (warehouses.get(row.get("warehouse_id")) or {}).get("name"),
        }
        for row in preview
    ]
    return present_matches(
        "locations",
        args.query,
        described,
        lambda row: f"{row['code']} ({row.get('name') or row.get('warehouse') or 'location'})",
        total=len(rows),
    )


# ---------------------------------------------------------------- stocktakes


STOCKTAKE_PREVIEW_LIMIT = 10


def search_stocktakes(args: SearchStocktakesArgs, context: ToolContext) -> ToolOutcome:
    query = (args.query or "").strip()
    if query:
        rows = _find_ranked(
            context,
            "stocktakes",
            query,
            code_field="stocktake_number",
            text_fields=["stocktake_number", "title"],
            filters={"status": args.status},
            fetch_limit=20,
            sort=NEWEST_FIRST,
        )
    else:
        rows = context.repository.search(
            "stocktakes",
            context.tenant_id,
            pattern=None,
            fields=[],
            filters={"status": args.status},
            limit=20,
            sort=NEWEST_FIRST,
        )
    preview = rows[:STOCKTAKE_PREVIEW_LIMIT]
    locations = context.repository.rows_by_id(
        "locations", context.tenant_id, (row.get("location_id") for row in preview)
    )
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("stocktake_number"), row["id"]),
            "number": row.get("stocktake_number"),
            "title": row.get("title"),
            "status": row.get("status"),
            "location": (locations.get(row.get("location_id")) or {}).get("code"),
            "started_at": row.get("started_at"),
            "completed_at": row.get("completed_at"),
        }
        for row in preview
    ]
    return present_matches(
        "stocktakes",
        query or args.status or "all",
        described,
        lambda row: f"{row['number']} - {row.get('title') or row.get('status')}",
        total=len(rows),
    )


# ---------------------------------------------------------------- accounts


ACCOUNT_PREVIEW_LIMIT = 10


def search_accounts(args: SearchAccountsArgs, context: ToolContext) -> ToolOutcome:
    rows = context.repository.search(
        "accounts",
        context.tenant_id,
        pattern=re.escape(args.query.strip()),
        fields=["account_name", "account_code"],
        limit=30,
    )
    rows = _prefer_code(rows, args.query, "account_code")
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("account_code") or row.get("account_name"), row["id"]),
            "account_name": row.get("account_name"),
            "account_code": row.get("account_code"),
            "status": row.get("status"),
        }
        for row in rows[:ACCOUNT_PREVIEW_LIMIT]
    ]
    return present_matches(
        "accounts",
        args.query,
        described,
        lambda row: f"{row.get('account_name')} ({row.get('account_code') or 'no code'})",
        total=len(rows),
    )


# ---------------------------------------------------------------- claims


CLAIM_PREVIEW_LIMIT = 10


def search_claims(args: SearchClaimsArgs, context: ToolContext) -> ToolOutcome:
    rows = _find_ranked(
        context,
        "claims",
        args.query,
        code_field="claim_number",
        text_fields=["claim_number", "description"],
        filters={"status": args.status},
        sort=NEWEST_FIRST,
    )
    preview = rows[:CLAIM_PREVIEW_LIMIT]
    accounts = context.repository.rows_by_id(
        "accounts", context.tenant_id, (row.get("account_id") for row in preview)
    )
    described = [
        {
            "id": row["id"],
            "ref": entity_ref(row.get("claim_number"), row["id"]),
            "claim_number": row.get("claim_number"),
            "status": row.get("status"),
            "claim_type": row.get("claim_type"),
            "description": row.get("description"),
            "account": (accounts.get(row.get("account_id")) or {}).get("account_name"),
            "item_count": len(row.get("item_ids") or []),
        }
        for row in preview
    ]
    return present_matches(
        "claims",
        args.query,
        described,
        lambda row: f"{row['claim_number']} ({row.get('status') or 'unknown'})",
        total=len(rows),
    )


# ---------------------------------------------------------------- cross-entity lookup


REFERENCE_KINDS = (
    ("items", "item", "item_code"),
    ("shipments", "shipment", "shipment_number"),
    ("tasks", "task", "task_number"),
    ("stocktakes", "stocktake", "stocktake_number"),
)
REFERENCE_PREVIEW_LIMIT = 10


def lookup_reference(args: LookupReferenceArgs, context: ToolContext) -> ToolOutcome:
    query = args.query.strip()
    if not is_partial_id_query(query):
        return fail("Lookup needs a number or prefixed code such as 45678 or SHP-45678")

    hits: List[Row] = []
    for collection, entity_type, code_field in REFERENCE_KINDS:
        rows = _find_ranked(context, collection, query, code_field=code_field, text_fields=[code_field])
        for row in rows:
            hits.append(
                {
                    "id": row["id"],
                    "entity_type": entity_type,
                    "code": row.get(code_field),
                    "ref": entity_ref(row.get(code_field), row["id"]),
                    "status": row.get("status"),
                }
            )

    entity_types = list(dict.fromkeys(hit["entity_type"] for hit in hits))
    if len(entity_types) <= 1:
        kind = f"{entity_types[0]}s" if entity_types else "matches"
        if kind == "matches":
            return ToolOutcome({"found": False, "count": 0, "matches": [], "message": f'Nothing matched "{query}".'})
        return present_matches(
            kind,
            query,
            hits[:REFERENCE_PREVIEW_LIMIT],
            lambda row: f"{row['code']} ({row['entity_type']})",
            total=len(hits),
        )

    candidates = index_candidates(hits, REFERENCE_PREVIEW_LIMIT)
    state = DisambiguationState(
        type="entity_type",
        candidates=[
            Candidate(
                id=row["id"],
                index=row["index"],
                label=f"{row['code']} ({row['entity_type']})",
                entity_type=row["entity_type"],
            )
            for row in candidates
        ],
        original_query=query,
    )
    return ToolOutcome(
        {
            "found": True,
            "multiple_matches": True,
            "ambiguous_entity_type": True,
            "entity_types": entity_types,
            "count": len(candidates),
            "matches": candidates,
            "message": f'"{query}" matches more than one kind of record ({", ".join(entity_types)}). Ask which one.',
        },
        {"pending_disambiguation": state},
    )


def _query_schema(description: str, extra: Optional[Dict[str, Any]] = None, required: bool = True) -> Dict[str, Any]:
    properties: Dict[str, Any] = {"query": {"type": "string", "description": description}}
    properties.update(extra or {})
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = ["query"]
    return schema


TOOLS = [
    ToolSpec(
        name="tool_search_items",
        description="Search for items by item code, description, location, or account. Supports partial ID matching.",
        parameters=_query_schema(
            "Search term (item number, description)",
            {
                "status": {"type": "string", "description": "Filter by status (active, allocated, released, disposed)"},
                "account_id": {"type": "string", "description": "Filter by account ID or name"},
                "location_id": {"type": "string", "description": "Filter by location ID or code"},
            },
        ),
        args_model=SearchItemsArgs,
        handler=search_items,
    ),
    ToolSpec(
        name="tool_search_shipments",
        description="Search for shipments by number or tracking number. Supports partial ID matching.",
        parameters=_query_schema(
            "Search term (shipment number, tracking number)",
            {
                "status": {"type": "string", "description": "Filter by status"},
                "shipment_type": {"type": "string", "enum": ["inbound", "outbound"], "description": "Filter by type"},
            },
        ),
        args_model=SearchShipmentsArgs,
        handler=search_shipments,
    ),
    ToolSpec(
        name="tool_search_tasks",
        description="Search for tasks by number, title, or assignee. Supports partial ID matching.",
        parameters=_query_schema(
            "Search term (task number, title, assignee)",
            {
                "task_type": {"type": "string", "description": "Filter by type (inspection, assembly, repair, repair_quote)"},
                "status": {"type": "string", "description": "Filter by status (open, in_progress, completed, cancelled)"},
            },
        ),
        args_model=SearchTasksArgs,
        handler=search_tasks,
    ),
    ToolSpec(
        name="tool_search_locations",
        description="Search for warehouse locations by code or name",
        parameters=_query_schema(
            "Location code or name",
            {"warehouse_id": {"type": "string", "description": "Filter by warehouse"}},
        ),
        args_model=SearchLocationsArgs,
        handler=search_locations,
    ),
    ToolSpec(
        name="tool_search_stocktakes",
        description="Search for stocktakes by number, title, or status",
        parameters=_query_schema(
            "Stocktake number or search term",
            {"status": {"type": "string", "description": "Filter by status (draft, in_progress, completed)"}},
            required=False,
        ),
        args_model=SearchStocktakesArgs,
        handler=search_stocktakes,
    ),
    ToolSpec(
        name="tool_search_accounts",
        description="Search for client accounts by name or account code",
        parameters=_query_schema("Account name or code"),
        args_model=SearchAccountsArgs,
        handler=search_accounts,
    ),
    ToolSpec(
        name="tool_search_claims",
        description="Search for damage/loss claims by claim number or description. Supports partial ID matching.",
        parameters=_query_schema(
            "Claim number or keywords",
            {"status": {"type": "string", "description": "Filter by claim status"}},
        ),
        args_model=SearchClaimsArgs,
        handler=search_claims,
    ),
    ToolSpec(
        name="tool_lookup_reference",
        description=(
            "Look up a bare number or prefixed code across items, shipments, tasks and stocktakes. "
            "Use when the user gives a number without saying what it is."
        ),
        parameters=_query_schema("Number or code, e.g. 45678 or SHP-45678"),
        args_model=LookupReferenceArgs,
        handler=lookup_reference,
    ),
]
