from __future__ import annotations

from dataclasses import replace

import pytest

from plodlog.dao.document_store import DocumentNotFoundError
from plodlog.domain import ActivityType, MetricDefinition, OperationalRole, User
from plodlog.services.app_state import AppState
from plodlog.services.remote_store import ACTIVITY_TYPES, LOGS, METRIC_DEFINITIONS, USERS


def test_login_returns_user_only_for_matching_pin(state: AppState):
    assert state.login("admin", "99999") is None
    assert state.current_user is None
    user = state.login("admin", "12345")
    assert user is not None and user.id == "admin"
    assert state.current_user == user


def test_failed_login_keeps_current_user(state: AppState):
    state.login("admin", "12345")
    assert state.login("admin", "00000") is None
    assert state.current_user.id == "admin"


def test_logout_clears_current_user(state: AppState):
    state.login("admin", "12345")
    state.logout()
    assert state.current_user is None


def test_mutations_become_visible_through_snapshots(state: AppState):
    notified = []
    state.add_listener(lambda s: notified.append(len(s.activity_types)))
    stored = state.add_activity_type(ActivityType(id="", name="Scaling"))
    assert notified[-1] == 4
    assert state.find_activity_type(stored.id).name == "Scaling"


def test_removed_listener_is_not_called(state: AppState):
    notified = []
    remove = state.add_listener(lambda s: notified.append(1))
    remove()
    state.add_activity_type(ActivityType(id="", name="Scaling"))
    assert notified == []


def test_current_user_refreshes_from_users_snapshot(state: AppState):
    state.login("admin", "12345")
    state.update_user(replace(state.current_user, name="Boss"))
    assert state.current_user.name == "Boss"


def test_current_user_cleared_when_deleted(state: AppState):
    state.login("jumbo01", "00000")
    state.delete_user("jumbo01")
    assert state.current_user is None


def test_update_of_missing_entity_fails(state: AppState):
    with pytest.raises(DocumentNotFoundError):
        state.update_user(User(id="ghost", name="Ghost", role=OperationalRole.OTHER))


def test_definitions_and_permitted_activities(state: AppState):
    drilling = [d.id for d in state.definitions_for("plod_drilling")]
    assert drilling == ["def_holes_drilled", "def_drill_bit_wear"]
    operator = state.find_user("jumbo01")
    assert [a.id for a in state.permitted_activity_types(operator)] == ["plod_drilling", "plod_bolting"]


def test_metric_definition_crud(state: AppState):
    stored = state.add_metric_definition(
        MetricDefinition(id="", name="Scaled Area", unit="m2", linked_activity_type_ids=("plod_bolting",))
    )
    state.update_metric_definition(replace(stored, unit="sqm"))
    assert [d.unit for d in state.metric_definitions if d.id == stored.id] == ["sqm"]
    state.delete_metric_definition(stored.id)
    assert all(d.id != stored.id for d in state.metric_definitions)


def test_sync_all_rewrites_held_entities(state: AppState, store, adapter):
    before = store.count(adapter.path("users"))
    state.sync_all()
    assert store.count(adapter.path("users")) == before
    assert len(state.users) == before


def test_close_cancels_subscriptions(state: AppState):
    state.close()
    assert state.closed
    state.add_activity_type(ActivityType(id="", name="Scaling"))
    assert len(state.activity_types) == 3


class _HeldSubscription:
    active = True

    def cancel(self) -> None:
        self.active = False


class HeldSnapshotAdapter:
    """Keeps each subscription callback so snapshots can be delivered by hand."""

    def __init__(self) -> None:
        self.handlers = {}

    def subscribe(self, collection, callback):
        self.handlers[collection] = callback
        return _HeldSubscription()


def test_loading_ends_after_every_collection_fired_in_any_order():
    adapter = HeldSnapshotAdapter()
    state = AppState(adapter)
    assert state.is_loading

    for collection in (LOGS, METRIC_DEFINITIONS, USERS):
        adapter.handlers[collection]([])
        assert state.is_loading
    adapter.handlers[LOGS]([])
    assert state.is_loading

    adapter.handlers[ACTIVITY_TYPES]([ActivityType(id="plod_scaling", name="Scaling")])
    assert state.is_loading is False
    assert [a.name for a in state.activity_types] == ["Scaling"]
