from __future__ import annotations

import logging

from ops_agent.orchestrator.state import SessionState
from tests.seed import ITEM_ARMCHAIR, ITEM_LAMP, ITEM_SOFA, ITEM_TABLE, TENANT


def _tasks(database):
    return database["tasks"].documents


def test_repair_without_inspection_needs_override(call_tool, database):
    outcome = call_tool("tool_create_task_single", {"task_type": "repair", "item_id": "ITM-10002"})

    assert outcome.result["ok"] is False
    assert outcome.result["requires_override"] is True
    assert "No completed inspection found" in outcome.result["warning"]
    assert len(_tasks(database)) == 2


def test_acknowledged_repair_is_created_pending_approval(call_tool, database):
    outcome = call_tool(
        "tool_create_task_single",
        {"task_type": "repair", "item_id": "ITM-10002", "acknowledge_warnings": True},
    )

    assert outcome.result["ok"] is True
    assert outcome.result["task"]["task_number"] == "TSK-00003"
    assert outcome.result["task"]["status"] == "pending_approval"
    assert outcome.result["warnings_acknowledged"]
    created = _tasks(database)[-1]
    assert created["item_ids"] == [ITEM_TABLE]
    assert created["tenant_id"] == TENANT


def test_repair_after_inspection_needs_no_override(call_tool):
    outcome = call_tool("tool_create_task_single", {"task_type": "repair", "item_id": ITEM_SOFA})

    assert outcome.result["ok"] is True
    assert outcome.result["task"]["status"] == "pending_approval"
    assert "warnings_acknowledged" not in outcome.result


def test_assembly_on_active_outbound_warns(call_tool):
    outcome = call_tool("tool_create_task_single", {"task_type": "assembly", "item_id": ITEM_ARMCHAIR})

    assert outcome.result["ok"] is False
    assert outcome.result["warning"] == (
        "Item is in active outbound (SHP-2024-145678). Creating assembly task will block release."
    )


def test_inspection_starts_open_with_default_title(call_tool, database):
    outcome = call_tool("tool_create_task_single", {"task_type": "inspection", "item_id": "10002"})

    assert outcome.result["task"]["status"] == "open"
    assert _tasks(database)[-1]["title"] == "Inspection - ITM-10002"


def test_unknown_item(call_tool):
    outcome = call_tool("tool_create_task_single", {"task_type": "inspection", "item_id": "ITM-99999"})

    assert outcome.result == {"ok": False, "error": "Item not found"}


def test_bulk_inspection_preview_fans_out_one_task_per_item(call_tool, database):
    outcome = call_tool(
        "tool_create_tasks_bulk_preview",
        {"task_type": "inspection", "item_ids": ["ITM-10001", "ITM-10002", "ITM-10004"], "grouped": True},
    )

    assert outcome.result["task_count"] == 3
    assert outcome.result["grouped"] is False
    assert "note" in outcome.result
    draft = outcome.session_delta["pending_draft"]
    assert draft.type == "bulk_tasks"
    assert draft.data["item_ids"] == [ITEM_SOFA, ITEM_TABLE, ITEM_LAMP]
    assert len(_tasks(database)) == 2


def test_bulk_preview_skips_duplicates_and_uninspected_repairs(call_tool):
    assembly = call_tool(
        "tool_create_tasks_bulk_preview",
        {"task_type": "assembly", "item_ids": [ITEM_SOFA, ITEM_TABLE], "grouped": True},
    )
    assert assembly.result["grouped"] is True
    assert assembly.result["task_count"] == 1
    assert assembly.result["skipped"][0]["reason"] == "Already has an open assembly task"

    repair = call_tool("tool_create_tasks_bulk_preview", {"task_type": "repair", "item_ids": [ITEM_SOFA, ITEM_TABLE]})
    assert repair.result["task_count"] == 1
    assert repair.session_delta["pending_draft"].data["item_ids"] == [ITEM_SOFA]
    assert repair.result["skipped"][0]["reason"] == "No completed inspection on record"


def test_bulk_preview_for_a_whole_shipment(call_tool):
    outcome = call_tool("tool_create_tasks_bulk_preview", {"task_type": "inspection", "shipment_id": "45678"})

    assert outcome.session_delta["pending_draft"].data["item_ids"] == [ITEM_SOFA, ITEM_TABLE]


def test_execute_requires_a_draft(call_tool):
    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": True})

    assert outcome.result["ok"] is False
    assert "tool_create_tasks_bulk_preview" in outcome.result["error"]


def test_execute_requires_confirmation_and_keeps_the_draft(call_tool):
    preview = call_tool("tool_create_tasks_bulk_preview", {"task_type": "inspection", "item_ids": [ITEM_SOFA]})
    session = SessionState().apply(preview.session_delta)

    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": False}, session=session)

    assert outcome.result["requires_confirmation"] is True
    assert outcome.session_delta is None


def test_confirmed_execute_creates_tasks_and_clears_draft(call_tool, database):
    preview = call_tool(
        "tool_create_tasks_bulk_preview",
        {"task_type": "inspection", "item_ids": [ITEM_SOFA, ITEM_TABLE, ITEM_LAMP], "priority": "high"},
    )
    session = SessionState().apply(preview.session_delta)

    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": True}, session=session)

    assert outcome.result["ok"] is True
    assert [task["task_number"] for task in outcome.result["tasks"]] == ["TSK-00003", "TSK-00004", "TSK-00005"]
    assert outcome.session_delta == {"pending_draft": None}
    created = _tasks(database)[2:]
    assert all(len(task["item_ids"]) == 1 for task in created)
    assert all(task["priority"] == "high" for task in created)


def test_execute_revalidates_items(call_tool, repository):
    preview = call_tool("tool_create_tasks_bulk_preview", {"task_type": "inspection", "item_ids": [ITEM_SOFA, ITEM_LAMP]})
    session = SessionState().apply(preview.session_delta)
    repository.insert_task(TENANT, {"task_type": "inspection", "status": "open", "item_ids": [ITEM_LAMP]})

    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": True}, session=session)

    assert outcome.result["created_count"] == 1
    assert outcome.result["skipped"][0]["reason"] == "Already has an open inspection task"


def test_grouped_assembly_execute_creates_one_task(call_tool, database):
    preview = call_tool(
        "tool_create_tasks_bulk_preview",
        {"task_type": "assembly", "item_ids": [ITEM_SOFA, ITEM_LAMP], "grouped": True},
    )
    session = SessionState().apply(preview.session_delta)

    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": True}, session=session)

    assert outcome.result["created_count"] == 1
    assert _tasks(database)[-1]["item_ids"] == [ITEM_SOFA, ITEM_LAMP]
    assert _tasks(database)[-1]["title"] == "Assembly - 2 items"


def test_execute_logs_at_info_level(call_tool, database, caplog):
    caplog.set_level(logging.INFO, logger="ops_agent")
    preview = call_tool(
        "tool_create_tasks_bulk_preview", {"task_type": "inspection", "item_ids": [ITEM_SOFA, ITEM_TABLE]}
    )
    session = SessionState().apply(preview.session_delta)

    outcome = call_tool("tool_create_tasks_bulk_execute", {"confirmed": True}, session=session)

    assert outcome.result["ok"] is True
    assert outcome.result["created_count"] == 2
    assert outcome.session_delta == {"pending_draft": None}
    record = next(record for record in caplog.records if record.getMessage() == "Bulk tasks executed")
    assert record.created_count == 2
    assert len(_tasks(database)) == 4


def test_bulk_repair_preview_skips_items_awaiting_repair_approval(call_tool):
    call_tool("tool_create_task_single", {"task_type": "repair", "item_id": ITEM_SOFA})

    outcome = call_tool("tool_create_tasks_bulk_preview", {"task_type": "repair", "item_ids": [ITEM_SOFA]})

    assert outcome.result["ok"] is False
    assert outcome.result["skipped"][0]["reason"] == "Already has an open repair task"
    assert outcome.session_delta is None
