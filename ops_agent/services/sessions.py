from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from pymongo.errors import PyMongoError

from ops_agent.orchestrator.state import SESSION_FIELDS, SessionDelta, SessionState
from ops_agent.schemas.context import TenantScope, UIContext
from ops_agent.services.warehouse import NO_ID, utcnow

logger = logging.getLogger(__name__)

TRANSIENT_SESSION_ID = "temp"


@dataclass
class AgentSession:
    id: str
    state: SessionState
    expires_at: datetime | None = None

    @property
    def transient(self) -> bool:
        return self.id == TRANSIENT_SESSION_ID


class SessionStore:
    """Durable per (tenant, user) agent state with a fixed time-to-live.

    Expired sessions are treated as absent, so pending selections and drafts
    do not survive a long gap between turns.
    """

    def __init__(
        self,
        collection,
        ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._collection = collection
        self._ttl = ttl
        self._clock = clock

    def get_or_create(self, scope: TenantScope, ui_context: UIContext) -> AgentSession:
        now = self._clock()
        hints = self._hints(ui_context)
        try:
            existing = self._collection.find_one(
                {
                    "tenant_id": scope.tenant_id,
                    "user_id": scope.user_id,
                    "expires_at": {"$gt": now},
                },
                NO_ID,
            )
        except PyMongoError:
            logger.warning("Agent session lookup failed", exc_info=True, extra={"tenant_id": scope.tenant_id})
            existing = None
        if existing:
            try:
                self._collection.update_one({"id": existing["id"]}, {"$set": {**hints, "updated_at": now}})
            except PyMongoError:
                logger.warning(
                    "Could not refresh agent session hints",
                    exc_info=True,
                    extra={"session_id": existing["id"]},
                )
            return AgentSession(
                id=existing["id"],
                state=SessionState.from_dict(existing),
                expires_at=existing.get("expires_at"),
            )

        document: Dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "tenant_id": scope.tenant_id,
            "user_id": scope.user_id,
            "pending_disambiguation": None,
            "pending_draft": None,
            "created_at": now,
            "updated_at": now,
            "expires_at": now + self._ttl,
            **hints,
        }
        try:
            self._collection.insert_one(document)
        except PyMongoError:
            logger.warning(
                "Could not persist agent session; continuing with a transient one",
                exc_info=True,
                extra={"tenant_id": scope.tenant_id},
            )
            return AgentSession(id=TRANSIENT_SESSION_ID, state=SessionState())
        return AgentSession(id=document["id"], state=SessionState(), expires_at=document["expires_at"])

    def update(self, session_id: str, delta: SessionDelta) -> None:
        """Persist only the fields present in ``delta``; ``None`` clears a field."""
        if session_id == TRANSIENT_SESSION_ID:
            return
        changes: Dict[str, Any] = {}
        for key in SESSION_FIELDS:
            if key in delta:
                value = delta[key]
                changes[key] = value.to_dict() if value is not None else None
        if not changes:
            return
        changes["updated_at"] = self._clock()
        try:
            self._collection.update_one({"id": session_id}, {"$set": changes})
        except PyMongoError:
            logger.error("Could not persist agent session changes", exc_info=True, extra={"session_id": session_id})

    def clear(self, session_id: str) -> None:
        self.update(session_id, {key: None for key in SESSION_FIELDS})

    @staticmethod
    def _hints(ui_context: UIContext) -> Dict[str, Any]:
        return {
            "last_route": ui_context.current_route,
            "last_selected_items": list(ui_context.selected_item_ids) or None,
            "last_selected_shipment": ui_context.selected_shipment_id,
        }
