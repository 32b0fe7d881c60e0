from __future__ import annotations

from plodlog.dao.document_store import DocumentStore, RemoteWriteError
from plodlog.domain import ActivityType, OperationalRole, User
from plodlog.services.app_state import AppState
from plodlog.services.remote_store import (
    ACTIVITY_TYPES,
    DEFAULT_USERS,
    USERS,
    BatchContents,
    RemoteStoreAdapter,
)


def test_paths_are_scoped_by_tenant_and_owner(adapter: RemoteStoreAdapter):
    assert adapter.path(USERS) == "artifacts/test_app/users/owner-test/users"


def test_first_empty_users_snapshot_seeds_defaults(store: DocumentStore, adapter: RemoteStoreAdapter):
    snapshots = []
    adapter.subscribe(USERS, snapshots.append)
    assert snapshots[0] == []
    assert {u.id for u in snapshots[-1]} == {u.id for u in DEFAULT_USERS}
    assert store.count(adapter.path(ACTIVITY_TYPES)) == 3


def test_seeding_runs_exactly_once_across_sessions(store: DocumentStore):
    first = RemoteStoreAdapter(store, "test_app", "owner-test")
    second = RemoteStoreAdapter(store, "test_app", "owner-test")
    first.subscribe(USERS, lambda users: None)
    second.subscribe(USERS, lambda users: None)
    assert first.seed_defaults() is False
    assert store.count(first.path(USERS)) == len(DEFAULT_USERS)


def test_no_reseed_after_all_users_deleted(store: DocumentStore, adapter: RemoteStoreAdapter):
    adapter.subscribe(USERS, lambda users: None)
    for user in DEFAULT_USERS:
        adapter.delete(USERS, user.id)
    assert store.count(adapter.path(USERS)) == 0


def test_scopes_do_not_share_data(store: DocumentStore):
    mine = RemoteStoreAdapter(store, "test_app", "owner-a")
    theirs = RemoteStoreAdapter(store, "test_app", "owner-b")
    mine.subscribe(USERS, lambda users: None)
    assert store.count(theirs.path(USERS)) == 0


def test_add_assigns_generated_id(adapter: RemoteStoreAdapter):
    stored = adapter.add(ACTIVITY_TYPES, ActivityType(id="", name="Scaling"))
    assert stored.id
    assert stored.name == "Scaling"


def test_batch_write_sets_every_entity(store: DocumentStore, adapter: RemoteStoreAdapter):
    user = User(id="u9", name="Nine", role=OperationalRole.TRAINEE)
    adapter.batch_write(BatchContents(users=[user], activity_types=[ActivityType(id="a9", name="Nine")]))
    assert store.get(adapter.path(USERS), "u9")["name"] == "Nine"
    assert store.get(adapter.path(ACTIVITY_TYPES), "a9")["name"] == "Nine"


def test_app_state_sees_seeded_defaults(state: AppState):
    assert state.is_loading is False
    assert {a.id for a in state.activity_types} == {"plod_drilling", "plod_bolting", "plod_charging"}
    assert len(state.metric_definitions) == 4
    assert state.logs == []


def test_failed_seed_still_delivers_snapshot_and_retries(store: DocumentStore, adapter: RemoteStoreAdapter, monkeypatch):
    commit = store._commit
    attempts = []

    def fail_first(writes, *, require_empty):
        attempts.append(require_empty)
        if len(attempts) == 1:
            raise RemoteWriteError("disk I/O error")
        return commit(writes, require_empty=require_empty)

    monkeypatch.setattr(store, "_commit", fail_first)
    state = AppState(adapter)
    try:
        assert state.is_loading is False
        assert state.users == []
        adapter.subscribe(USERS, lambda users: None)
        assert {u.id for u in state.users} == {u.id for u in DEFAULT_USERS}
        assert len(attempts) == 2
    finally:
        state.close()
