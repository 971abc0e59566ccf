from __future__ import annotations

from datetime import timedelta

from pymongo.errors import PyMongoError

from ops_agent.orchestrator.state import PendingDraft, SessionState
from ops_agent.schemas.context import TenantScope, UIContext
from ops_agent.services.sessions import TRANSIENT_SESSION_ID, SessionStore
from tests.memory_db import FailingCollection, MemoryCollection, UnreachableCollection
from tests.seed import ITEM_SOFA, NOW, TENANT, USER_DANA


class Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self):
        return self.now


SCOPE = TenantScope(tenant_id=TENANT, user_id=USER_DANA, user_display_name="Dana Ortiz")


def _draft() -> PendingDraft:
    return PendingDraft(type="bulk_move", summary="Move 1 item(s) to A-01", data={"item_ids": [ITEM_SOFA]})


def test_session_is_reused_within_ttl_and_keeps_state():
    collection = MemoryCollection()
    clock = Clock()
    store = SessionStore(collection, ttl=timedelta(minutes=30), clock=clock)

    first = store.get_or_create(SCOPE, UIContext(current_route="/inventory"))
    store.update(first.id, {"pending_draft": _draft()})
    clock.now = NOW + timedelta(minutes=10)
    second = store.get_or_create(SCOPE, UIContext(selected_item_ids=[ITEM_SOFA]))

    assert second.id == first.id
    assert second.state.pending_draft == _draft()
    stored = collection.documents[0]
    assert stored["last_selected_items"] == [ITEM_SOFA]
    assert stored["last_route"] is None


def test_expired_session_is_replaced():
    collection = MemoryCollection()
    clock = Clock()
    store = SessionStore(collection, ttl=timedelta(minutes=30), clock=clock)

    first = store.get_or_create(SCOPE, UIContext())
    store.update(first.id, {"pending_draft": _draft()})
    clock.now = NOW + timedelta(minutes=31)
    second = store.get_or_create(SCOPE, UIContext())

    assert second.id != first.id
    assert second.state == SessionState()


def test_sessions_are_per_user():
    collection = MemoryCollection()
    store = SessionStore(collection, clock=Clock())

    mine = store.get_or_create(SCOPE, UIContext())
    anonymous = store.get_or_create(TenantScope(tenant_id=TENANT), UIContext())

    assert mine.id != anonymous.id


def test_update_only_touches_fields_in_the_delta():
    collection = MemoryCollection()
    store = SessionStore(collection, clock=Clock())
    session = store.get_or_create(SCOPE, UIContext())

    store.update(session.id, {"pending_draft": _draft()})
    store.update(session.id, {"pending_disambiguation": None})
    assert collection.documents[0]["pending_draft"]["type"] == "bulk_move"

    store.clear(session.id)
    assert collection.documents[0]["pending_draft"] is None


def test_store_failure_falls_back_to_transient_session():
    store = SessionStore(FailingCollection(), clock=Clock())

    session = store.get_or_create(SCOPE, UIContext())
    store.update(session.id, {"pending_draft": _draft()})

    assert session.id == TRANSIENT_SESSION_ID
    assert session.transient is True
    assert session.state == SessionState()


def test_lookup_failure_falls_back_to_transient_session():
    store = SessionStore(UnreachableCollection(), clock=Clock())

    session = store.get_or_create(SCOPE, UIContext())

    assert session.transient is True
    assert session.state == SessionState()


class ReadOnlyCollection(MemoryCollection):
    def update_one(self, query, update):
        raise PyMongoError("not primary")


def test_write_failures_keep_the_existing_session():
    collection = ReadOnlyCollection()
    store = SessionStore(collection, clock=Clock())
    collection.insert_one(
        {
            "id": "session-1",
            "tenant_id": TENANT,
            "user_id": USER_DANA,
            "pending_disambiguation": None,
            "pending_draft": _draft().to_dict(),
            "expires_at": NOW + timedelta(minutes=5),
        }
    )

    session = store.get_or_create(SCOPE, UIContext(current_route="/tasks"))
    store.update(session.id, {"pending_draft": None})

    assert session.id == "session-1"
    assert session.state.pending_draft == _draft()
    assert collection.documents[0]["pending_draft"]["type"] == "bulk_move"
