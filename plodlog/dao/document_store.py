"""SQLite-backed document store with push subscriptions.

Stands in for the hosted document database: collections are addressed by slash
separated paths, documents are JSON objects keyed by id, and every committed change
re-emits the full ordered snapshot of the affected collection to its subscribers.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]

_INSTANT_TAG = "__instant__"

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    payload_json TEXT NOT NULL,
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS idx_documents_order ON documents(collection, position);
"""


class StoreError(RuntimeError):
    """Raised when the store cannot be read."""


class RemoteWriteError(StoreError):
    """Raised when a write (single or batch) fails. Callers decide whether to retry."""


class DocumentNotFoundError(RemoteWriteError):
    """Raised by ``update`` when the target document does not exist."""


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_INSTANT_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_INSTANT_TAG}:
            return datetime.fromisoformat(value[_INSTANT_TAG])
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


def dumps(document: Document) -> str:
    return json.dumps(_encode(document), ensure_ascii=False)


def loads(blob: str) -> Document:
    return _decode(json.loads(blob))


class Subscription:
    """Cancellable handle returned by :meth:`DocumentStore.subscribe`."""

    def __init__(self, store: "DocumentStore", collection: str, callback: SnapshotCallback) -> None:
        self._store = store
        self.collection = collection
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._store._remove(self)


@dataclass
class _Write:
    op: str  # set | delete
    collection: str
    doc_id: str
    data: Optional[Document] = None


class WriteBatch:
    """Collects writes and commits them in one transaction."""

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._writes: List[_Write] = []

    def __len__(self) -> int:
        return len(self._writes)

    def set(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        self._writes.append(_Write("set", collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._writes.append(_Write("delete", collection, doc_id))
        return self

    def commit(self, *, require_empty: Optional[str] = None) -> bool:
        """Apply every queued write atomically.

        With *require_empty* the batch is skipped (and ``False`` returned) unless that
        collection holds no documents at commit time.
        """
        return self._store._commit(self._writes, require_empty=require_empty)


class DocumentStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._listeners: Dict[str, List[Subscription]] = {}
        self._listeners_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._queue: Deque[Tuple[str, Optional[Subscription]]] = deque()
        self._queue_lock = threading.Lock()
        self._dispatching = False
        self.ensure_schema()

    # -- connection ---------------------------------------------------------------
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, isolation_level=None)
        try:
            yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    def reset(self) -> None:
        with self._connect() as conn:
            conn.executescript("DROP TABLE IF EXISTS documents;")
            conn.executescript(SCHEMA)

    @staticmethod
    def collection_path(*parts: str) -> str:
        return "/".join(part.strip("/") for part in parts if part)

    @staticmethod
    def new_id() -> str:
        return uuid4().hex

    # -- reads --------------------------------------------------------------------
    def get_all(self, collection: str) -> List[Document]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT payload_json FROM documents WHERE collection = ? ORDER BY position",
                    (collection,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return [loads(row[0]) for row in rows]

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload_json FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return loads(row[0]) if row else None

    def count(self, collection: str) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT COUNT(1) FROM documents WHERE collection = ?", (collection,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return int(row[0]) if row else 0

    # -- writes -------------------------------------------------------------------
    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self.batch().set(collection, doc_id, data).commit()

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        """Replace an existing document. Fails when the document is missing."""
        with self._write_lock:
            try:
                with self._connect() as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    cur = conn.execute(
                        "UPDATE documents SET payload_json = ? WHERE collection = ? AND doc_id = ?",
                        (dumps(data), collection, doc_id),
                    )
                    if cur.rowcount == 0:
                        conn.execute("ROLLBACK")
                        raise DocumentNotFoundError(f"No document {collection}/{doc_id}")
                    conn.execute("COMMIT")
            except sqlite3.Error as exc:
                logger.error("Update of %s/%s failed: %s", collection, doc_id, exc)
                raise RemoteWriteError(str(exc)) from exc
        self._emit(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        self.batch().delete(collection, doc_id).commit()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def _commit(self, writes: List[_Write], *, require_empty: Optional[str]) -> bool:
        touched: List[str] = []
        with self._write_lock:
            try:
                with self._connect() as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        if require_empty is not None:
                            row = conn.execute(
                                "SELECT COUNT(1) FROM documents WHERE collection = ?", (require_empty,)
                            ).fetchone()
                            if row and row[0]:
                                conn.execute("ROLLBACK")
                                return False
                        for write in writes:
                            self._apply(conn, write)
                            if write.collection not in touched:
                                touched.append(write.collection)
                        conn.execute("COMMIT")
                    except sqlite3.Error:
                        conn.execute("ROLLBACK")
                        raise
            except sqlite3.Error as exc:
                logger.error("Batch of %d writes failed: %s", len(writes), exc)
                raise RemoteWriteError(str(exc)) from exc
        for collection in touched:
            self._emit(collection)
        return True

    @staticmethod
    def _apply(conn: sqlite3.Connection, write: _Write) -> None:
        if write.op == "delete":
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (write.collection, write.doc_id),
            )
            return
        conn.execute(
            "INSERT INTO documents(collection, doc_id, position, payload_json) VALUES (?, ?, "
            "(SELECT COALESCE(MAX(position), 0) + 1 FROM documents WHERE collection = ?), ?) "
            "ON CONFLICT(collection, doc_id) DO UPDATE SET payload_json = excluded.payload_json",
            (write.collection, write.doc_id, write.collection, dumps(write.data or {})),
        )

    # -- subscriptions ------------------------------------------------------------
    def subscribe(self, collection: str, callback: SnapshotCallback) -> Subscription:
        """Register *callback* for snapshots of *collection*.

        The current snapshot is delivered first, then one snapshot per committed change.
        """
        subscription = Subscription(self, collection, callback)
        with self._listeners_lock:
            self._listeners.setdefault(collection, []).append(subscription)
        self._enqueue(collection, subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._listeners_lock:
            listeners = self._listeners.get(subscription.collection, [])
            if subscription in listeners:
                listeners.remove(subscription)

    def _emit(self, collection: str) -> None:
        self._enqueue(collection, None)

    def _enqueue(self, collection: str, target: Optional[Subscription]) -> None:
        with self._queue_lock:
            self._queue.append((collection, target))
            if self._dispatching:
                return
            self._dispatching = True
        try:
            self._drain()
        except BaseException:
            with self._queue_lock:
                self._dispatching = False
            raise

    def _drain(self) -> None:
        # Callbacks may write; those writes only enqueue, so no callback re-enters another.
        while True:
            with self._queue_lock:
                if not self._queue:
                    self._dispatching = False
                    return
                collection, target = self._queue.popleft()
            snapshot = self.get_all(collection)
            if target is not None:
                recipients = [target]
            else:
                with self._listeners_lock:
                    recipients = list(self._listeners.get(collection, ()))
            for subscription in recipients:
                if not subscription.active:
                    continue
                try:
                    subscription.callback([dict(doc) for doc in snapshot])
                except Exception:
                    logger.exception("Snapshot listener for %s failed", collection)
