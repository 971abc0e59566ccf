from __future__ import annotations

import json

import pytest

from ops_agent.orchestrator.state import PendingDraft, SessionState
from ops_agent.schemas.tools import ConfirmArgs, ItemRefArgs
from ops_agent.services.resolver import EntityResolver
from ops_agent.tools.catalog import all_tools
from ops_agent.tools.registry import ToolRegistry, ToolSpec
from tests.seed import ITEM_SOFA

EXPECTED_TOOLS = {
    "tool_search_items",
    "tool_search_shipments",
    "tool_search_tasks",
    "tool_search_locations",
    "tool_search_stocktakes",
    "tool_search_accounts",
    "tool_search_claims",
    "tool_lookup_reference",
    "tool_get_item_details",
    "tool_get_item_movement_history",
    "tool_get_item_outbound_history",
    "tool_get_shipment_details",
    "tool_get_shipment_items",
    "tool_validate_shipment_outbound",
    "tool_get_account_summary",
    "tool_get_warehouse_snapshot",
    "tool_get_recent_activity",
    "tool_create_task_single",
    "tool_create_tasks_bulk_preview",
    "tool_create_tasks_bulk_execute",
    "tool_move_item",
    "tool_move_items_preview",
    "tool_move_items_execute",
    "tool_add_item_note",
    "tool_create_disposal_draft",
    "tool_execute_disposal",
    "tool_validate_stocktake_completion",
    "tool_close_stocktake",
    "tool_resolve_disambiguation",
}


def test_catalog_is_closed_and_complete(registry):
    assert set(registry.names) == EXPECTED_TOOLS
    for schema in registry.schemas():
        assert schema["type"] == "function"
        assert schema["function"]["parameters"]["type"] == "object"


def test_duplicate_names_are_rejected(repository):
    specs = all_tools()
    with pytest.raises(ValueError):
        ToolRegistry(specs + specs[:1], EntityResolver(repository))


def test_unknown_tool_is_returned_as_data(call_tool):
    outcome = call_tool("tool_launch_rockets", {})

    assert outcome.result == {"ok": False, "error": "Unknown tool: tool_launch_rockets"}
    assert outcome.ok is False


def test_json_string_arguments_are_parsed(registry, make_context):
    outcome = registry.execute("tool_get_item_details", json.dumps({"item_id": "ITM-10001"}), make_context())

    assert outcome.result["item"]["id"] == ITEM_SOFA


def test_malformed_arguments(registry, make_context):
    outcome = registry.execute("tool_get_item_details", "{not json", make_context())

    assert outcome.result["ok"] is False
    assert "expected a JSON object" in outcome.result["error"]


def test_validation_errors_are_listed(call_tool):
    outcome = call_tool("tool_create_task_single", {"task_type": "painting", "item_id": ITEM_SOFA})

    assert outcome.result["ok"] is False
    assert any(detail.startswith("task_type") for detail in outcome.result["details"])


def test_handler_exceptions_become_error_results(repository, make_context):
    def explode(args, context):
        raise RuntimeError("boom")

    registry = ToolRegistry(
        [
            ToolSpec(
                name="tool_explode",
                description="always fails",
                parameters={"type": "object", "properties": {}},
                args_model=ItemRefArgs,
                handler=explode,
            )
        ],
        EntityResolver(repository),
    )

    outcome = registry.execute("tool_explode", {"item_id": ITEM_SOFA}, make_context())

    assert outcome.result["ok"] is False
    assert "failed unexpectedly" in outcome.result["error"]


def test_failed_execute_drops_the_draft(repository, make_context):
    def half_done(args, context):
        raise RuntimeError("connection lost after first write")

    registry = ToolRegistry(
        [
            ToolSpec(
                name="tool_half_done",
                description="fails after writing",
                parameters={"type": "object", "properties": {}},
                args_model=ConfirmArgs,
                handler=half_done,
                executes_draft=True,
            )
        ],
        EntityResolver(repository),
    )
    session = SessionState(pending_draft=PendingDraft(type="bulk_move", summary="Move 2 item(s) to A-01"))

    outcome = registry.execute("tool_half_done", {"confirmed": True}, make_context(session))

    assert outcome.result["ok"] is False
    assert "partway" in outcome.result["error"]
    assert outcome.session_delta == {"pending_draft": None}
