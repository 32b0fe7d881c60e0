"""Entity-level view of the document store for one tenant/owner scope."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Type, TypeVar

from ..dao.document_store import DocumentStore, RemoteWriteError, Subscription
from ..domain import ActivityType, LogEntry, MetricDefinition, OperationalRole, User

logger = logging.getLogger(__name__)

T = TypeVar("T", User, ActivityType, MetricDefinition, LogEntry)

USERS = "users"
ACTIVITY_TYPES = "activityTypes"
METRIC_DEFINITIONS = "metricDefinitions"
LOGS = "logs"
COLLECTIONS = (USERS, ACTIVITY_TYPES, METRIC_DEFINITIONS, LOGS)

_ENTITY_TYPES: Dict[str, Type[Any]] = {
    USERS: User,
    ACTIVITY_TYPES: ActivityType,
    METRIC_DEFINITIONS: MetricDefinition,
    LOGS: LogEntry,
}

DEFAULT_ACTIVITY_TYPES = (
    ActivityType(id="plod_drilling", name="Drilling"),
    ActivityType(id="plod_bolting", name="Bolting"),
    ActivityType(id="plod_charging", name="Charging"),
)

DEFAULT_METRIC_DEFINITIONS = (
    MetricDefinition(id="def_holes_drilled", name="Holes Drilled", unit="count", linked_activity_type_ids=("plod_drilling",)),
    MetricDefinition(id="def_bolts_installed", name="Bolts Installed", unit="count", linked_activity_type_ids=("plod_bolting",)),
    MetricDefinition(id="def_explosives_used", name="Explosives Used", unit="kg", linked_activity_type_ids=("plod_charging",)),
    MetricDefinition(id="def_drill_bit_wear", name="Drill Bit Wear", unit="mm", linked_activity_type_ids=("plod_drilling",)),
)

DEFAULT_USERS = (
    User(
        id="admin",
        name="Admin User",
        role=OperationalRole.ADMIN,
        permitted_activity_type_ids=("plod_drilling", "plod_bolting", "plod_charging"),
        pin="12345",
    ),
    User(
        id="jumbo01",
        name="John Doe",
        role=OperationalRole.OPERATOR,
        permitted_activity_type_ids=("plod_drilling", "plod_bolting"),
        pin="00000",
    ),
    User(
        id="super01",
        name="Jane Smith",
        role=OperationalRole.SUPERVISOR,
        permitted_activity_type_ids=("plod_drilling", "plod_bolting", "plod_charging"),
        pin="00000",
    ),
)


@dataclass
class BatchContents:
    users: Iterable[User] = ()
    activity_types: Iterable[ActivityType] = ()
    metric_definitions: Iterable[MetricDefinition] = ()
    logs: Iterable[LogEntry] = ()


class EntitySubscription(Generic[T]):
    """Wraps a raw store subscription; ``cancel()`` stops delivery."""

    def __init__(self, raw: Subscription) -> None:
        self._raw = raw

    @property
    def active(self) -> bool:
        return self._raw.active

    def cancel(self) -> None:
        self._raw.cancel()


class RemoteStoreAdapter:
    """Maps the four collections of a scope to entities.

    Writes raise :class:`~plodlog.dao.document_store.RemoteWriteError` on failure and
    are never retried here. Successful writes are only visible through the next snapshot.
    """

    def __init__(self, store: DocumentStore, tenant_id: str, owner_id: str) -> None:
        self.store = store
        self.tenant_id = tenant_id
        self.owner_id = owner_id
        self._users_seen = False
        self._seed_attempted = False

    def path(self, collection: str) -> str:
        return DocumentStore.collection_path("artifacts", self.tenant_id, "users", self.owner_id, collection)

    # -- subscriptions ------------------------------------------------------------
    def subscribe(self, collection: str, callback: Callable[[List[Any]], None]) -> EntitySubscription:
        entity_type = _ENTITY_TYPES[collection]

        def on_snapshot(documents: List[Dict[str, Any]]) -> None:
            entities = [entity_type.from_document(doc) for doc in documents]
            if collection == USERS:
                self._on_users_snapshot(entities)
            callback(entities)

        return EntitySubscription(self.store.subscribe(self.path(collection), on_snapshot))

    def _on_users_snapshot(self, users: List[User]) -> None:
        if users:
            self._users_seen = True
            return
        if self._users_seen or self._seed_attempted:
            return
        self._seed_attempted = True
        try:
            self.seed_defaults()
        except RemoteWriteError as exc:
            # The next empty users snapshot tries again.
            self._seed_attempted = False
            logger.warning("Seeding default data for tenant %s failed: %s", self.tenant_id, exc)

    def seed_defaults(self) -> bool:
        """Write the default activity types, definitions and users.

        Runs only while the users collection is empty; the emptiness check and the
        writes share one transaction.
        """
        batch = self.store.batch()
        for activity in DEFAULT_ACTIVITY_TYPES:
            batch.set(self.path(ACTIVITY_TYPES), activity.id, activity.to_document())
        for definition in DEFAULT_METRIC_DEFINITIONS:
            batch.set(self.path(METRIC_DEFINITIONS), definition.id, definition.to_document())
        for user in DEFAULT_USERS:
            batch.set(self.path(USERS), user.id, user.to_document())
        seeded = batch.commit(require_empty=self.path(USERS))
        if seeded:
            logger.info("Seeded default data for tenant %s", self.tenant_id)
        return seeded

    # -- writes -------------------------------------------------------------------
    def add(self, collection: str, entity: T) -> T:
        """Store *entity* under a freshly generated id and return the stored copy."""
        stored = entity.with_id(self.store.new_id())
        self.store.set(self.path(collection), stored.id, stored.to_document())
        return stored

    def update(self, collection: str, entity: T) -> None:
        self.store.update(self.path(collection), entity.id, entity.to_document())

    def delete(self, collection: str, entity_id: str) -> None:
        self.store.delete(self.path(collection), entity_id)

    def batch_write(self, contents: BatchContents) -> None:
        batch = self.store.batch()
        groups = (
            (USERS, contents.users),
            (ACTIVITY_TYPES, contents.activity_types),
            (METRIC_DEFINITIONS, contents.metric_definitions),
            (LOGS, contents.logs),
        )
        for collection, entities in groups:
            for entity in entities:
                batch.set(self.path(collection), entity.id, entity.to_document())
        batch.commit()
