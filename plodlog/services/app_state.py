"""Per-session application state fed by the remote store subscriptions."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from ..domain import ActivityType, LogEntry, MetricDefinition, User
from .remote_store import (
    ACTIVITY_TYPES,
    COLLECTIONS,
    LOGS,
    METRIC_DEFINITIONS,
    USERS,
    BatchContents,
    EntitySubscription,
    RemoteStoreAdapter,
)

logger = logging.getLogger(__name__)

Listener = Callable[["AppState"], None]


class AppState:
    """In-memory copies of every collection plus the logged-in operator.

    Collections are replaced only by subscription callbacks. Mutating methods delegate to
    the adapter and return before the change is visible here; wait for a listener call
    to observe it.
    """

    def __init__(self, adapter: RemoteStoreAdapter) -> None:
        self._adapter = adapter
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._fired: set[str] = set()
        self.current_user: Optional[User] = None
        self.users: List[User] = []
        self.activity_types: List[ActivityType] = []
        self.metric_definitions: List[MetricDefinition] = []
        self.logs: List[LogEntry] = []
        self.is_loading = True
        self._subscriptions: Dict[str, EntitySubscription] = {}
        for collection in COLLECTIONS:
            self._subscriptions[collection] = adapter.subscribe(collection, self._make_handler(collection))

    # -- snapshots ----------------------------------------------------------------
    def _make_handler(self, collection: str) -> Callable[[list], None]:
        attribute = {
            USERS: "users",
            ACTIVITY_TYPES: "activity_types",
            METRIC_DEFINITIONS: "metric_definitions",
            LOGS: "logs",
        }[collection]

        def handle(entities: list) -> None:
            with self._lock:
                setattr(self, attribute, list(entities))
                if collection == USERS and self.current_user is not None:
                    self._refresh_current_user()
                self._fired.add(collection)
                if self.is_loading and self._fired.issuperset(COLLECTIONS):
                    self.is_loading = False
            self._notify()

        return handle

    def _refresh_current_user(self) -> None:
        fresh = self.find_user(self.current_user.id) if self.current_user else None
        self.current_user = fresh

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def closed(self) -> bool:
        return not any(sub.active for sub in self._subscriptions.values())

    def close(self) -> None:
        for subscription in self._subscriptions.values():
            subscription.cancel()
        self._listeners.clear()

    # -- lookups ------------------------------------------------------------------
    def find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self.users if u.id == user_id), None)

    def find_activity_type(self, activity_type_id: str) -> Optional[ActivityType]:
        return next((a for a in self.activity_types if a.id == activity_type_id), None)

    def find_log(self, log_id: str) -> Optional[LogEntry]:
        return next((log for log in self.logs if log.id == log_id), None)

    def definitions_for(self, activity_type_id: str) -> List[MetricDefinition]:
        return [d for d in self.metric_definitions if d.applies_to(activity_type_id)]

    def permitted_activity_types(self, user: User) -> List[ActivityType]:
        allowed = set(user.permitted_activity_type_ids)
        return [a for a in self.activity_types if a.id in allowed]

    def user_names(self) -> Dict[str, str]:
        return {user.id: user.name for user in self.users}

    # -- session ------------------------------------------------------------------
    def login(self, user_id: str, pin: str) -> Optional[User]:
        with self._lock:
            user = next((u for u in self.users if u.id == user_id and u.pin == pin), None)
            if user is None:
                return None
            self.current_user = user
        self._notify()
        return user

    def logout(self) -> None:
        with self._lock:
            self.current_user = None
        self._notify()

    # -- mutations ----------------------------------------------------------------
    def add_user(self, user: User) -> User:
        return self._adapter.add(USERS, user)

    def update_user(self, user: User) -> None:
        self._adapter.update(USERS, user)

    def delete_user(self, user_id: str) -> None:
        self._adapter.delete(USERS, user_id)

    def add_activity_type(self, activity: ActivityType) -> ActivityType:
        return self._adapter.add(ACTIVITY_TYPES, activity)

    def update_activity_type(self, activity: ActivityType) -> None:
        self._adapter.update(ACTIVITY_TYPES, activity)

    def delete_activity_type(self, activity_type_id: str) -> None:
        self._adapter.delete(ACTIVITY_TYPES, activity_type_id)

    def add_metric_definition(self, definition: MetricDefinition) -> MetricDefinition:
        return self._adapter.add(METRIC_DEFINITIONS, definition)

    def update_metric_definition(self, definition: MetricDefinition) -> None:
        self._adapter.update(METRIC_DEFINITIONS, definition)

    def delete_metric_definition(self, definition_id: str) -> None:
        self._adapter.delete(METRIC_DEFINITIONS, definition_id)

    def add_log(self, entry: LogEntry) -> LogEntry:
        stored = self._adapter.add(LOGS, entry)
        logger.info("Logged %s for %s (%ss)", stored.activity_name, stored.user_id, stored.duration_seconds)
        return stored

    def sync_all(self) -> None:
        """Re-write every held entity in one batch. Manual reconciliation only."""
        with self._lock:
            contents = BatchContents(
                users=list(self.users),
                activity_types=list(self.activity_types),
                metric_definitions=list(self.metric_definitions),
                logs=list(self.logs),
            )
        self._adapter.batch_write(contents)
