"""Live activity tracker: select, start, capture data, stop, adjust, log."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from ..domain import ActivityType, LogEntry, LoggedMetric, ShiftType
from .app_state import AppState
from .validation import ValidationError, ensure_known

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Ticker(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TickerFactory = Callable[[float, Callable[[], None]], Ticker]


class RepeatingTimer:
    """Calls *callback* every *interval* seconds on a daemon timer thread."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        self._schedule()

    def _schedule(self) -> None:
        with self._lock:
            if self._stopped.is_set():
                return
            self._timer = threading.Timer(self.interval, self._run)
            self._timer.daemon = True
            self._timer.start()

    def _run(self) -> None:
        if self._stopped.is_set():
            return
        self.callback()
        self._schedule()

    def cancel(self) -> None:
        self._stopped.set()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()


class TrackerState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    TRACKING = "tracking"
    FINALIZING = "finalizing"


class TrackerError(RuntimeError):
    """Action not valid in the tracker's current state."""


class TimeAdjustmentError(ValueError):
    """Adjusted end time lies before the adjusted start time."""


class ActivityTracker:
    def __init__(
        self,
        state: AppState,
        *,
        clock: Clock = utc_now,
        ticker_factory: TickerFactory = RepeatingTimer,
        tick_seconds: float = 1.0,
    ) -> None:
        self._app = state
        self._clock = clock
        self._ticker_factory = ticker_factory
        self._tick_seconds = tick_seconds
        self._ticker: Optional[Ticker] = None
        self.state = TrackerState.IDLE
        self.activity_type_id: Optional[str] = None
        self.shift = ShiftType.DAY
        self.start_time: Optional[datetime] = None
        self.elapsed_seconds = 0
        self.metrics: List[LoggedMetric] = []
        self.coworker_ids: List[str] = []
        self.candidate: Optional[Tuple[datetime, datetime]] = None

    # -- helpers ------------------------------------------------------------------
    def _expect(self, *states: TrackerState) -> None:
        if self.state not in states:
            raise TrackerError(f"Not allowed while {self.state.value}")

    def _operator(self):
        user = self._app.current_user
        if user is None:
            raise TrackerError("No operator is logged in.")
        return user

    @property
    def activity(self) -> Optional[ActivityType]:
        if self.activity_type_id is None:
            return None
        return self._app.find_activity_type(self.activity_type_id)

    def _wall_elapsed(self) -> int:
        if self.start_time is None:
            return 0
        return max(0, int((self._clock() - self.start_time).total_seconds()))

    # -- Idle / Ready -------------------------------------------------------------
    def select(self, activity_type_id: Optional[str]) -> TrackerState:
        self._expect(TrackerState.IDLE, TrackerState.READY)
        if not activity_type_id:
            self.activity_type_id = None
            self.state = TrackerState.IDLE
            return self.state
        user = self._operator()
        permitted = {a.id for a in self._app.permitted_activity_types(user)}
        if activity_type_id not in permitted:
            raise ValidationError("That plod is not assigned to you.")
        self.activity_type_id = activity_type_id
        self.state = TrackerState.READY
        return self.state

    def start(self, shift: Optional[ShiftType] = None) -> datetime:
        self._expect(TrackerState.READY)
        if self.activity_type_id is None:
            raise TrackerError("Select a plod first.")
        if shift is not None:
            self.shift = shift
        self.start_time = self._clock()
        self.elapsed_seconds = 0
        self.metrics = []
        self.coworker_ids = []
        self.state = TrackerState.TRACKING
        self._ticker = self._ticker_factory(self._tick_seconds, self.tick)
        self._ticker.start()
        return self.start_time

    def tick(self) -> None:
        # Display only; recomputed from the clock so a stalled timer catches up.
        if self.state is TrackerState.TRACKING:
            self.elapsed_seconds = self._wall_elapsed()

    # -- Tracking -----------------------------------------------------------------
    def set_shift(self, shift: ShiftType) -> None:
        self._expect(TrackerState.READY, TrackerState.TRACKING)
        self.shift = shift

    def set_metrics(self, values: Mapping[str, object]) -> List[LoggedMetric]:
        """Replace the captured metric values. Blank values are dropped."""
        self._expect(TrackerState.TRACKING)
        definitions = {d.id: d for d in self._app.definitions_for(self.activity_type_id or "")}
        ensure_known(values.keys(), definitions.keys(), "data definitions for this plod")
        captured: List[LoggedMetric] = []
        for definition_id, definition in definitions.items():
            raw = values.get(definition_id)
            text = "" if raw is None else str(raw).strip()
            if text:
                captured.append(LoggedMetric.capture(definition, text))
        self.metrics = captured
        return list(captured)

    def set_coworkers(self, user_ids: List[str]) -> List[str]:
        self._expect(TrackerState.TRACKING)
        me = self._operator()
        if me.id in user_ids:
            raise ValidationError("You cannot add yourself as a co-worker.")
        ensure_known(user_ids, (u.id for u in self._app.users), "co-workers")
        self.coworker_ids = list(dict.fromkeys(user_ids))
        return list(self.coworker_ids)

    def stop(self) -> Tuple[datetime, datetime]:
        """Stop the timer and propose start/end times for confirmation."""
        self._expect(TrackerState.TRACKING)
        self._stop_ticker()
        self.elapsed_seconds = self._wall_elapsed()
        if self.start_time is None:
            raise TrackerError("Tracking has no start time.")
        self.candidate = (self.start_time, self.start_time + timedelta(seconds=self.elapsed_seconds))
        self.state = TrackerState.FINALIZING
        return self.candidate

    # -- Finalizing ---------------------------------------------------------------
    def confirm(self, start: datetime, end: datetime) -> LogEntry:
        """Commit the activity with the operator-adjusted times.

        End before start raises :class:`TimeAdjustmentError` and leaves the tracker in
        ``FINALIZING``. Otherwise the tracker resets, whether or not the write succeeds.
        """
        self._expect(TrackerState.FINALIZING)
        if end < start:
            raise TimeAdjustmentError("End time cannot be before start time.")
        user = self._operator()
        activity = self.activity
        if activity is None:
            self.reset()
            raise TrackerError("The selected plod no longer exists.")
        entry = LogEntry.build(
            activity=activity,
            user=user,
            start_time=start,
            end_time=end,
            shift=self.shift,
            metrics=self.metrics,
            coworker_ids=self.coworker_ids,
        )
        try:
            return self._app.add_log(entry)
        finally:
            self.reset()

    def cancel(self) -> None:
        """Abort from ``FINALIZING``: nothing is logged."""
        self._expect(TrackerState.FINALIZING)
        logger.info("Discarded %s activity without logging", self.activity_type_id)
        self.reset()

    def reset(self) -> None:
        self._stop_ticker()
        self.state = TrackerState.IDLE
        self.activity_type_id = None
        self.start_time = None
        self.elapsed_seconds = 0
        self.metrics = []
        self.coworker_ids = []
        self.candidate = None

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def close(self) -> None:
        self._stop_ticker()

    # -- presentation ---------------------------------------------------------------
    def as_dict(self) -> Dict[str, object]:
        activity = self.activity
        return {
            "state": self.state.value,
            "activity_type_id": self.activity_type_id,
            "activity_name": activity.name if activity else None,
            "shift": self.shift.value,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "elapsed_seconds": self.elapsed_seconds,
            "elapsed": format_elapsed(self.elapsed_seconds),
            "metrics": [
                {"definition_id": m.definition_id, "name": m.name, "value": m.value, "unit": m.unit}
                for m in self.metrics
            ],
            "coworker_ids": list(self.coworker_ids),
            "candidate": (
                {"start": self.candidate[0].isoformat(), "end": self.candidate[1].isoformat()}
                if self.candidate
                else None
            ),
        }


def format_elapsed(total_seconds: int) -> str:
    hours, rest = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
