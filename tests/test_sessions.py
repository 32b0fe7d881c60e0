from __future__ import annotations

import pytest

from plodlog.dao.document_store import DocumentStore
from plodlog.services.sessions import SessionRegistry


@pytest.fixture()
def registry(store: DocumentStore, clock, tickers):
    sessions = SessionRegistry(
        store,
        tenant_id="test_app",
        owner_id="owner-test",
        clock=clock,
        ticker_factory=tickers,
        idle_seconds=600,
    )
    yield sessions
    sessions.close_all()


def test_open_reuses_known_client(registry: SessionRegistry):
    context = registry.open()
    assert registry.open(context.client_id) is context
    assert len(registry) == 1


def test_idle_context_closed_when_next_one_opens(registry: SessionRegistry, clock):
    stale = registry.open()
    clock.advance(601)
    fresh = registry.open()
    assert registry.get(stale.client_id) is None
    assert stale.state.closed
    assert registry.get(fresh.client_id) is fresh
    assert len(registry) == 1


def test_recent_use_keeps_context_alive(registry: SessionRegistry, clock):
    kept = registry.open()
    clock.advance(400)
    registry.get(kept.client_id)
    clock.advance(400)
    registry.open()
    assert registry.get(kept.client_id) is kept


def test_context_with_running_activity_is_kept(registry: SessionRegistry, clock):
    busy = registry.open()
    busy.login.submit_credentials("admin", "12345")
    busy.tracker.select("plod_drilling")
    busy.tracker.start()
    clock.advance(3600)
    assert registry.expire_idle() == 0
    assert registry.get(busy.client_id) is busy


def test_discard_closes_context(registry: SessionRegistry):
    context = registry.open()
    registry.discard(context.client_id)
    assert context.state.closed
    assert len(registry) == 0
