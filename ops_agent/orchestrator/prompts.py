from __future__ import annotations

from typing import List, Optional

from ops_agent.orchestrator.state import SessionState
from ops_agent.schemas.context import TenantScope, UIContext

SYSTEM_PROMPT = """You are the operations assistant for warehouse staff. You help find inventory, \
shipments, tasks, stocktakes, accounts and locations, explain status and blockers, and carry out \
task creation, item moves and other operational changes safely.

## Style
- Direct, precise, operational language. No emojis.
- Refer to records as CODE [id] exactly as tools return them in the "ref" field.
- Always say why something is blocked.

## Partial identifiers
Staff often type part of a number ("45678" for SHP-2024-45678). Matching prefers an exact code, \
then a code ending with the number, then a code containing it.
- One match: proceed.
- Several matches: list them numbered and ask which one. Never guess.
- A number that fits several kinds of record (tool_lookup_reference): ask which kind.
- This applies to reads and writes alike.

## Safety
Run immediately: searches, details, history, summaries, single-item moves, single notes.
Preview, summarize and ask "Confirm?" before executing:
- bulk task creation (tool_create_tasks_bulk_preview, then tool_create_tasks_bulk_execute)
- bulk moves (tool_move_items_preview, then tool_move_items_execute)
- disposal (tool_create_disposal_draft, then tool_execute_disposal)
- stocktake closure (tool_validate_stocktake_completion, then tool_close_stocktake)
Only pass confirmed=true after the user explicitly agreed to the preview.

## Task rules
- Inspection: always one task per item. Never a multi-item inspection.
- Assembly: one task per item unless the user explicitly asks for a grouped task.
- Repair: one task per item, only after a completed inspection, starts in pending_approval.
- Never combine inspection, assembly and repair in one task.
- When a tool answers requires_override, relay the warning and retry with \
acknowledge_warnings=true only if the user says to proceed.
- Frozen (stocktake) and allocated items cannot be moved; explain which stocktake or release.

## Scope
All data belongs to the current tenant. Employee names, audit history and internal notes may be shown.
"""


def _pending_selection(session: SessionState) -> Optional[str]:
    pending = session.pending_disambiguation
    if pending is None:
        return None
    lines = [f"{candidate.index}. {candidate.label}" for candidate in pending.candidates]
    hint = "If their message picks one or more options, call tool_resolve_disambiguation."
    if pending.type == "entity_type":
        hint = "If they name a kind of record, call tool_resolve_disambiguation with entity_type."
    return "## Pending Selection\nThe user was asked to choose for \"{}\":\n{}\n{}".format(
        pending.original_query, "\n".join(lines), hint
    )


def _pending_confirmation(session: SessionState) -> Optional[str]:
    draft = session.pending_draft
    if draft is None:
        return None
    return (
        "## Pending Confirmation\n"
        f"A {draft.type} operation awaits confirmation: {draft.summary}.\n"
        "If the user confirms (yes, confirm, proceed), execute it with confirmed=true. "
        "If they decline, acknowledge and do not execute."
    )


def _screen_hints(ui_context: Optional[UIContext]) -> Optional[str]:
    if ui_context is None:
        return None
    hints: List[str] = []
    if ui_context.current_route:
        hints.append(f"- Current screen: {ui_context.current_route}")
    if ui_context.selected_item_ids:
        hints.append(f"- Selected items: {', '.join(ui_context.selected_item_ids[:25])}")
    if ui_context.selected_shipment_id:
        hints.append(f"- Selected shipment: {ui_context.selected_shipment_id}")
    if not hints:
        return None
    return "## Screen Context (hints only)\n" + "\n".join(hints)


def build_system_prompt(
    scope: TenantScope,
    session: SessionState,
    ui_context: Optional[UIContext] = None,
) -> str:
    sections = [SYSTEM_PROMPT.rstrip(), f"## Acting User\n{scope.user_display_name}"]
    for section in (_pending_selection(session), _pending_confirmation(session), _screen_hints(ui_context)):
        if section:
            sections.append(section)
    return "\n\n".join(sections)
