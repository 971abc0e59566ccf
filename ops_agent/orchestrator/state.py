from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ops_agent.schemas.context import TenantScope

DISAMBIGUATION_TYPES = (
    "items",
    "shipments",
    "tasks",
    "stocktakes",
    "entity_type",
    "accounts",
    "locations",
    "claims",
)
DRAFT_TYPES = ("bulk_tasks", "bulk_move", "disposal", "stocktake_close")

SESSION_FIELDS = ("pending_disambiguation", "pending_draft")

# A session delta maps a subset of SESSION_FIELDS to a new value; a key
# present with ``None`` clears the field, an absent key leaves it untouched.
SessionDelta = Dict[str, Any]


@dataclass
class Candidate:
    id: str
    index: int
    label: str
    entity_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {"id": self.id, "index": self.index, "label": self.label}
        if self.entity_type:
            payload["entity_type"] = self.entity_type
        return payload


@dataclass
class DisambiguationState:
    type: str
    candidates: List[Candidate]
    original_query: str
    action_context: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        if self.type not in DISAMBIGUATION_TYPES:
            raise ValueError(f"Unsupported disambiguation type: {self.type}")
        indices = [candidate.index for candidate in self.candidates]
        if len(set(indices)) != len(indices) or any(index < 1 for index in indices):
            raise ValueError("Candidate indices must be unique and 1-based")

    def find(self, index: int) -> Optional[Candidate]:
        for candidate in self.candidates:
            if candidate.index == index:
                return candidate
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "original_query": self.original_query,
        }
        if self.action_context:
            payload["action_context"] = self.action_context
        return payload

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["DisambiguationState"]:
        if not data:
            return None
        return cls(
            type=data["type"],
            candidates=[
                Candidate(
                    id=str(item["id"]),
                    index=int(item["index"]),
                    label=str(item.get("label", "")),
                    entity_type=item.get("entity_type"),
                )
                for item in data.get("candidates", [])
            ],
            original_query=data.get("original_query", ""),
            action_context=data.get("action_context"),
        )


@dataclass
class PendingDraft:
    type: str
    summary: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in DRAFT_TYPES:
            raise ValueError(f"Unsupported draft type: {self.type}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["PendingDraft"]:
        if not data:
            return None
        return cls(type=data["type"], summary=data.get("summary", ""), data=dict(data.get("data") or {}))


@dataclass
class SessionState:
    pending_disambiguation: Optional[DisambiguationState] = None
    pending_draft: Optional[PendingDraft] = None

    def apply(self, delta: SessionDelta) -> "SessionState":
        """Return a new state with ``delta`` applied."""
        updated = SessionState(
            pending_disambiguation=self.pending_disambiguation,
            pending_draft=self.pending_draft,
        )
        for key in SESSION_FIELDS:
            if key in delta:
                setattr(updated, key, delta[key])
        return updated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending_disambiguation": (
                self.pending_disambiguation.to_dict() if self.pending_disambiguation else None
            ),
            "pending_draft": self.pending_draft.to_dict() if self.pending_draft else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        return cls(
            pending_disambiguation=DisambiguationState.from_dict(data.get("pending_disambiguation")),
            pending_draft=PendingDraft.from_dict(data.get("pending_draft")),
        )


def merge_deltas(current: SessionDelta, incoming: Optional[SessionDelta]) -> SessionDelta:
    """Later deltas win field by field."""
    merged = dict(current)
    for key in SESSION_FIELDS:
        if incoming and key in incoming:
            merged[key] = incoming[key]
    return merged


@dataclass
class TurnState:
    """Working state threaded through the orchestration graph for one turn."""

    scope: Optional[TenantScope] = None
    messages: List[Dict[str, Any]] = field(default_factory=list)
    session: SessionState = field(default_factory=SessionState)
    session_delta: SessionDelta = field(default_factory=dict)
    pending_tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    rounds: int = 0
    tool_log: List[Dict[str, Any]] = field(default_factory=list)
    final_content: str = ""

    def copy(self) -> "TurnState":
        return TurnState(
            scope=self.scope,
            messages=list(self.messages),
            session=self.session.apply({}),
            session_delta=dict(self.session_delta),
            pending_tool_calls=list(self.pending_tool_calls),
            rounds=self.rounds,
            tool_log=list(self.tool_log),
            final_content=self.final_content,
        )
