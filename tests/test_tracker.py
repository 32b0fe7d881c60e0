from __future__ import annotations

from datetime import timedelta

import pytest

from plodlog.dao.document_store import RemoteWriteError
from plodlog.domain import ShiftType
from plodlog.services.app_state import AppState
from plodlog.services.tracker import (
    ActivityTracker,
    TimeAdjustmentError,
    TrackerError,
    TrackerState,
    format_elapsed,
)
from plodlog.services.validation import ValidationError


@pytest.fixture()
def operator(state: AppState):
    state.login("jumbo01", "00000")
    return state.current_user


def test_select_only_permitted_activity(tracker: ActivityTracker, operator):
    with pytest.raises(ValidationError):
        tracker.select("plod_charging")
    assert tracker.select("plod_drilling") is TrackerState.READY
    assert tracker.select(None) is TrackerState.IDLE


def test_start_requires_selection(tracker: ActivityTracker, operator):
    with pytest.raises(TrackerError):
        tracker.start()


def test_tick_recomputes_elapsed_from_clock(tracker: ActivityTracker, operator, clock, tickers):
    tracker.select("plod_drilling")
    tracker.start(ShiftType.NIGHT)
    assert tickers.last.started
    clock.advance(5)
    tickers.last.fire()
    assert tracker.elapsed_seconds == 5
    # A stalled timer catches up on the next tick.
    clock.advance(120)
    tickers.last.fire()
    assert tracker.elapsed_seconds == 125
    assert tracker.as_dict()["elapsed"] == "00:02:05"


def test_full_cycle_creates_log(tracker: ActivityTracker, operator, state: AppState, clock, tickers):
    tracker.select("plod_drilling")
    start = tracker.start(ShiftType.NIGHT)
    tracker.set_metrics({"def_holes_drilled": "42", "def_drill_bit_wear": " "})
    tracker.set_coworkers(["super01"])
    clock.advance(600)
    proposed_start, proposed_end = tracker.stop()
    assert tickers.last.cancelled
    assert tracker.state is TrackerState.FINALIZING
    assert proposed_start == start
    assert proposed_end == start + timedelta(seconds=600)

    entry = tracker.confirm(proposed_start, proposed_end)
    assert tracker.state is TrackerState.IDLE
    assert [log.id for log in state.logs] == [entry.id]
    logged = state.logs[0]
    assert logged.duration_seconds == 600
    assert logged.shift is ShiftType.NIGHT
    assert [(m.name, m.value) for m in logged.metrics] == [("Holes Drilled", "42")]
    assert logged.coworker_ids == ("super01",)
    assert logged.user_name == "John Doe"


def test_adjusted_times_set_duration(tracker: ActivityTracker, operator, state: AppState, clock):
    tracker.select("plod_bolting")
    start = tracker.start()
    clock.advance(60)
    tracker.stop()
    tracker.confirm(start - timedelta(minutes=10), start + timedelta(minutes=20))
    assert state.logs[0].duration_seconds == 30 * 60


def test_end_before_start_is_rejected_without_transition(tracker: ActivityTracker, operator, state: AppState, clock):
    tracker.select("plod_drilling")
    start = tracker.start()
    clock.advance(60)
    tracker.stop()
    with pytest.raises(TimeAdjustmentError):
        tracker.confirm(start, start - timedelta(seconds=1))
    assert tracker.state is TrackerState.FINALIZING
    assert state.logs == []


def test_cancel_from_finalizing_logs_nothing(tracker: ActivityTracker, operator, state: AppState):
    tracker.select("plod_drilling")
    tracker.start()
    tracker.stop()
    tracker.cancel()
    assert tracker.state is TrackerState.IDLE
    assert state.logs == []


def test_metrics_limited_to_linked_definitions(tracker: ActivityTracker, operator):
    tracker.select("plod_drilling")
    tracker.start()
    with pytest.raises(ValidationError):
        tracker.set_metrics({"def_bolts_installed": "3"})


def test_coworkers_exclude_self_and_unknown(tracker: ActivityTracker, operator):
    tracker.select("plod_drilling")
    tracker.start()
    with pytest.raises(ValidationError):
        tracker.set_coworkers(["jumbo01"])
    with pytest.raises(ValidationError):
        tracker.set_coworkers(["nobody"])
    assert tracker.set_coworkers(["super01", "admin", "super01"]) == ["super01", "admin"]


def test_new_run_starts_with_empty_captures(tracker: ActivityTracker, operator, clock):
    tracker.select("plod_drilling")
    start = tracker.start()
    tracker.set_metrics({"def_holes_drilled": "1"})
    tracker.stop()
    tracker.confirm(start, start)
    tracker.select("plod_drilling")
    tracker.start()
    assert tracker.metrics == []
    assert tracker.coworker_ids == []


def test_failed_write_still_resets(tracker: ActivityTracker, operator, state: AppState, monkeypatch):
    tracker.select("plod_drilling")
    start = tracker.start()
    tracker.stop()

    def fail(_entry):
        raise RemoteWriteError("offline")

    monkeypatch.setattr(state, "add_log", fail)
    with pytest.raises(RemoteWriteError):
        tracker.confirm(start, start)
    assert tracker.state is TrackerState.IDLE


def test_format_elapsed():
    assert format_elapsed(0) == "00:00:00"
    assert format_elapsed(3725) == "01:02:05"


def test_stop_without_start_time_is_a_tracker_error(tracker: ActivityTracker, operator):
    tracker.select("plod_drilling")
    tracker.start()
    tracker.start_time = None
    with pytest.raises(TrackerError):
        tracker.stop()
