from __future__ import annotations

import json
import logging
from dataclasses import fields, is_dataclass
from typing import Any, Dict, List, Optional, Sequence

from langgraph.graph import END, StateGraph

from ops_agent.adapters.reasoning_client import ReasoningClient
from ops_agent.orchestrator.prompts import build_system_prompt
from ops_agent.orchestrator.state import TurnState, merge_deltas
from ops_agent.schemas.context import TenantScope, UIContext
from ops_agent.services.safety import SafetyValidator
from ops_agent.services.sessions import AgentSession, SessionStore
from ops_agent.services.warehouse import WarehouseRepository
from ops_agent.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm not sure how to help with that."


class AgentOrchestrator:
    """LangGraph state machine driving one conversational turn.

    ``agent`` asks the reasoning engine for the next step; ``tools`` executes the
    requested calls one after another so later calls see session changes made by
    earlier ones; ``finalize`` forces a plain answer once the round cap is hit.
    """

    def __init__(
        self,
        engine: ReasoningClient,
        registry: ToolRegistry,
        repository: WarehouseRepository,
        safety: SafetyValidator,
        session_store: SessionStore,
        max_rounds: int = 5,
        history_window: int = 10,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._repository = repository
        self._safety = safety
        self._sessions = session_store
        self._max_rounds = max_rounds
        self._history_window = history_window
        self._graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph[TurnState]:
        graph: StateGraph[TurnState] = StateGraph(TurnState)

        graph.add_node("agent", self._agent_node)
        graph.add_node("tools", self._tools_node)
        graph.add_node("finalize", self._finalize_node)

        graph.set_entry_point("agent")

        graph.add_conditional_edges(
            "agent",
            self._after_agent,
            {
                True: "tools",
                False: END,
            },
        )
        graph.add_conditional_edges(
            "tools",
            self._after_tools,
            {
                True: "agent",
                False: "finalize",
            },
        )
        graph.add_edge("finalize", END)

        return graph

    def _agent_node(self, state: TurnState) -> TurnState:
        updated = state.copy()
        message = self._engine.complete(updated.messages, tools=self._registry.schemas())
        tool_calls = list(message.get("tool_calls") or [])
        if tool_calls:
            updated.messages.append(
                {"role": "assistant", "content": message.get("content") or "", "tool_calls": tool_calls}
            )
            updated.pending_tool_calls = tool_calls
        else:
            updated.pending_tool_calls = []
            updated.final_content = message.get("content") or ""
        return updated

    def _tools_node(self, state: TurnState) -> TurnState:
        updated = state.copy()
        for call in updated.pending_tool_calls:
            function = call.get("function") or {}
            name = function.get("name", "")
            context = ToolContext(
                scope=updated.scope,
                session=updated.session,
                repository=self._repository,
                safety=self._safety,
            )
            outcome = self._registry.execute(name, function.get("arguments"), context)
            if outcome.session_delta:
                updated.session = updated.session.apply(outcome.session_delta)
                updated.session_delta = merge_deltas(updated.session_delta, outcome.session_delta)
            updated.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "content": json.dumps(outcome.result, default=str),
                }
            )
            updated.tool_log.append({"name": name, "ok": outcome.ok})
        updated.pending_tool_calls = []
        updated.rounds += 1
        return updated

    def _finalize_node(self, state: TurnState) -> TurnState:
        updated = state.copy()
        logger.info("Tool round cap reached", extra={"rounds": updated.rounds})
        message = self._engine.complete(updated.messages)
        updated.final_content = message.get("content") or ""
        return updated

    def _after_agent(self, state: TurnState) -> bool:
        return bool(state.pending_tool_calls)

    def _after_tools(self, state: TurnState) -> bool:
        return state.rounds < self._max_rounds

    def build_messages(
        self,
        scope: TenantScope,
        session: AgentSession,
        message: str,
        history: Sequence[Dict[str, str]] = (),
        ui_context: Optional[UIContext] = None,
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(scope, session.state, ui_context)}
        ]
        window = list(history)[-self._history_window:] if self._history_window else []
        messages.extend({"role": item["role"], "content": item["content"]} for item in window)
        messages.append({"role": "user", "content": message})
        return messages

    def run(
        self,
        scope: TenantScope,
        session: AgentSession,
        message: str,
        history: Sequence[Dict[str, str]] = (),
        ui_context: Optional[UIContext] = None,
    ) -> TurnState:
        state = TurnState(
            scope=scope,
            messages=self.build_messages(scope, session, message, history, ui_context),
            session=session.state,
        )
        # agent and tools run once per round, plus the closing agent or finalize step
        limits = {"recursion_limit": 2 * self._max_rounds + 3}
        result = self._coerce(
            self._graph.invoke({f.name: getattr(state, f.name) for f in fields(state)}, config=limits)
        )
        if result.session_delta:
            self._sessions.update(session.id, result.session_delta)
        if not result.final_content:
            result.final_content = FALLBACK_REPLY
        logger.info(
            "Turn completed",
            extra={"tenant_id": scope.tenant_id, "rounds": result.rounds, "tool_calls": len(result.tool_log)},
        )
        return result

    @staticmethod
    def _coerce(result: Any) -> TurnState:
        if isinstance(result, TurnState):
            return result
        if isinstance(result, dict):
            return TurnState(**{f.name: result[f.name] for f in fields(TurnState) if f.name in result})
        if is_dataclass(result):
            return TurnState(**{f.name: getattr(result, f.name) for f in fields(TurnState)})
        raise TypeError(f"Unsupported state result from graph: {type(result)!r}")
