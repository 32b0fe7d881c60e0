"""Per-client contexts injected into request handlers."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import uuid4

from ..dao.document_store import DocumentStore
from .app_state import AppState
from .log_query import LogQuery
from .login_flow import LoginFlow
from .remote_store import RemoteStoreAdapter
from .tracker import ActivityTracker, Clock, TickerFactory, TrackerState

logger = logging.getLogger(__name__)

# Contexts in these states hold an unsaved activity and are never expired.
BUSY_TRACKER_STATES = (TrackerState.TRACKING, TrackerState.FINALIZING)


@dataclass
class ClientContext:
    client_id: str
    state: AppState
    login: LoginFlow
    tracker: ActivityTracker
    query: LogQuery = field(default_factory=LogQuery)

    def close(self) -> None:
        self.tracker.close()
        self.state.close()


class SessionRegistry:
    """Creates one :class:`ClientContext` per browser session.

    Contexts are torn down on logout, or once unused for *idle_seconds* (checked whenever
    a new context is opened).
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        tenant_id: str,
        owner_id: str,
        clock: Clock,
        ticker_factory: TickerFactory,
        tick_seconds: float = 1.0,
        idle_seconds: Optional[float] = None,
    ) -> None:
        self.store = store
        self.tenant_id = tenant_id
        self.owner_id = owner_id
        self._clock = clock
        self._ticker_factory = ticker_factory
        self._tick_seconds = tick_seconds
        self._idle_seconds = idle_seconds
        self._contexts: Dict[str, ClientContext] = {}
        self._last_seen: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._contexts)

    def get(self, client_id: Optional[str]) -> Optional[ClientContext]:
        if not client_id:
            return None
        with self._lock:
            context = self._contexts.get(client_id)
            if context is not None:
                self._last_seen[client_id] = self._clock()
            return context

    def open(self, client_id: Optional[str] = None) -> ClientContext:
        existing = self.get(client_id)
        if existing is not None:
            return existing
        self.expire_idle()
        client_id = client_id or uuid4().hex
        state = AppState(RemoteStoreAdapter(self.store, self.tenant_id, self.owner_id))
        context = ClientContext(
            client_id=client_id,
            state=state,
            login=LoginFlow(state),
            tracker=ActivityTracker(
                state,
                clock=self._clock,
                ticker_factory=self._ticker_factory,
                tick_seconds=self._tick_seconds,
            ),
        )
        with self._lock:
            self._contexts[client_id] = context
            self._last_seen[client_id] = self._clock()
        logger.debug("Opened client context %s", client_id)
        return context

    def expire_idle(self) -> int:
        """Close contexts unused for longer than the idle limit and return how many."""
        if not self._idle_seconds:
            return 0
        cutoff = self._clock() - timedelta(seconds=self._idle_seconds)
        with self._lock:
            stale = [
                client_id
                for client_id, seen in self._last_seen.items()
                if seen < cutoff and self._contexts[client_id].tracker.state not in BUSY_TRACKER_STATES
            ]
            expired = [self._contexts.pop(client_id) for client_id in stale]
            for client_id in stale:
                del self._last_seen[client_id]
        for context in expired:
            context.close()
        if expired:
            logger.info("Closed %d idle client contexts", len(expired))
        return len(expired)

    def discard(self, client_id: Optional[str]) -> None:
        if not client_id:
            return
        with self._lock:
            context = self._contexts.pop(client_id, None)
            self._last_seen.pop(client_id, None)
        if context is not None:
            context.close()

    def close_all(self) -> None:
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
            self._last_seen.clear()
        for context in contexts:
            context.close()
