from __future__ import annotations

from ops_agent.orchestrator.state import SessionState
from tests.seed import ITEM_LAMP, STOCKTAKE_CLEAN, STOCKTAKE_VARIANCE


def _stocktake(database, stocktake_id):
    return database["stocktakes"].find_one({"id": stocktake_id})


def test_unresolved_variances_block_closure(call_tool):
    outcome = call_tool("tool_validate_stocktake_completion", {"stocktake_id": "STK-00032"})

    assert outcome.result["can_close"] is False
    assert outcome.result["message"] == "Cannot close: 1 variance(s) need resolution"
    assert outcome.result["unresolved_variances"] == [
        {"item": "ITM-20005", "expected": 2, "actual": 1, "variance_status": "pending"}
    ]
    assert outcome.session_delta is None


def test_clean_stocktake_opens_a_close_draft(call_tool):
    outcome = call_tool("tool_validate_stocktake_completion", {"stocktake_id": "STK-00031"})

    assert outcome.result["can_close"] is True
    assert outcome.result["message"] == "Stocktake ready to close. Confirm?"
    draft = outcome.session_delta["pending_draft"]
    assert draft.type == "stocktake_close"
    assert draft.data == {"stocktake_id": STOCKTAKE_CLEAN}


def test_close_requires_validation_first(call_tool, database):
    outcome = call_tool("tool_close_stocktake", {"stocktake_id": STOCKTAKE_CLEAN, "confirmed": True})

    assert outcome.result["ok"] is False
    assert _stocktake(database, STOCKTAKE_CLEAN)["status"] == "in_progress"


def test_close_after_confirmation_releases_the_freeze(call_tool, database):
    validation = call_tool("tool_validate_stocktake_completion", {"stocktake_id": STOCKTAKE_CLEAN})
    session = SessionState().apply(validation.session_delta)

    outcome = call_tool("tool_close_stocktake", {"stocktake_id": "STK-00031", "confirmed": True}, session=session)

    assert outcome.result["ok"] is True
    assert outcome.session_delta == {"pending_draft": None}
    assert _stocktake(database, STOCKTAKE_CLEAN)["status"] == "completed"
    moved = call_tool("tool_move_item", {"item_id": ITEM_LAMP, "to_location_id": "A-01"})
    assert moved.result["ok"] is True


def test_close_for_a_different_stocktake_is_refused(call_tool):
    validation = call_tool("tool_validate_stocktake_completion", {"stocktake_id": STOCKTAKE_CLEAN})
    session = SessionState().apply(validation.session_delta)

    outcome = call_tool("tool_close_stocktake", {"stocktake_id": STOCKTAKE_VARIANCE, "confirmed": True}, session=session)

    assert outcome.result["ok"] is False
    assert outcome.session_delta is None


def test_close_revalidates_before_writing(call_tool, database):
    validation = call_tool("tool_validate_stocktake_completion", {"stocktake_id": STOCKTAKE_CLEAN})
    session = SessionState().apply(validation.session_delta)
    database["stocktake_items"].update_one(
        {"stocktake_id": STOCKTAKE_CLEAN, "item_id": ITEM_LAMP}, {"$set": {"actual_quantity": 0}}
    )

    outcome = call_tool("tool_close_stocktake", {"stocktake_id": STOCKTAKE_CLEAN, "confirmed": True}, session=session)

    assert outcome.result["ok"] is False
    assert outcome.result["error"] == "Cannot close: 1 variance(s) need resolution"
    assert _stocktake(database, STOCKTAKE_CLEAN)["status"] == "in_progress"
