"""Live mirror of a group's settlement records."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Optional

from whopaid.constants import (
    FIRESTORE_BATCH_LIMIT,
    GROUPS_COLLECTION,
    SETTLEMENTS_COLLECTION,
)
from whopaid.core.storage import storage_errors
from whopaid.errors import StorageError, ValidationError

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.collection import CollectionReference

logger = logging.getLogger(__name__)

_CLOSED = object()


class SettlementSubscription:
    """A cancellable stream of settled-key snapshots for one group.

    Each emission is the complete set of settled obligation keys, never a
    diff. Emissions go to ``on_change`` when one is given, otherwise they are
    queued for ``next_snapshot`` and iteration. Once cancelled the
    subscription stays closed; subscribe again to resume.
    """

    def __init__(
        self,
        group_id: str,
        on_change: Optional[Callable[[frozenset[str]], None]] = None,
    ) -> None:
        """Initialize an unattached subscription."""
        self.group_id = group_id
        self.latest: Optional[frozenset[str]] = None
        self.error: Optional[Exception] = None
        self._on_change = on_change
        self._queue: queue.Queue[Any] = queue.Queue()
        self._lock = threading.Lock()
        self._watch: Any = None
        self._closed = False

    @property
    def active(self) -> bool:
        """True until the subscription is cancelled or its listener fails."""
        return not self._closed

    def attach(self, watch: Any) -> None:
        """Bind the underlying Firestore watch."""
        with self._lock:
            self._watch = watch
            closed = self._closed
        if closed:
            watch.unsubscribe()

    def handle_snapshot(self, docs: Any, changes: Any = None, read_time: Any = None) -> None:
        """Receive a collection snapshot from the Firestore watch thread."""
        try:
            keys = frozenset(doc.id for doc in docs)
        except Exception as e:
            self.handle_error(e)
            return

        with self._lock:
            if self._closed:
                return
            self.latest = keys

        if self._on_change is None:
            self._queue.put(keys)
        else:
            try:
                self._on_change(keys)
            except Exception:
                logger.exception(
                    f"Settlement listener for group {self.group_id} raised"
                )

    def check_alive(self) -> bool:
        """Close the subscription if its Firestore watch stopped streaming.

        The watch does not report failures to the snapshot callback, so
        consumers poll this between emissions.
        """
        with self._lock:
            watch = self._watch
        if watch is not None and not getattr(watch, "is_active", True):
            self.handle_error(
                StorageError(f"Settlement listener for group {self.group_id} stopped")
            )
        return self.active

    def handle_error(self, error: Exception) -> None:
        """Close the subscription after the listener failed."""
        logger.error(f"Settlement listener for group {self.group_id} failed: {error}")
        self.error = error
        self.cancel()

    def cancel(self) -> None:
        """Stop emissions and release the Firestore listener. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            watch = self._watch
            self._watch = None
        self._queue.put(_CLOSED)
        if watch is not None:
            watch.unsubscribe()

    def next_snapshot(self, timeout: Optional[float] = None) -> Optional[frozenset[str]]:
        """Block until the next emission.

        Returns None once the subscription is closed.

        Raises:
            TimeoutError: If nothing arrives within ``timeout`` seconds.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(
                f"No settlement snapshot for group {self.group_id}"
            ) from e
        if item is _CLOSED:
            # Leave the marker for any other consumer.
            self._queue.put(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[frozenset[str]]:
        while True:
            keys = self.next_snapshot()
            if keys is None:
                return
            yield keys

    def __enter__(self) -> SettlementSubscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class SettlementTracker:
    """Reads and writes settlement records under ``groups/{id}/settlements``.

    A record's presence means the obligation with that key is settled.
    Writes go straight to Firestore; concurrent writers resolve as last
    write wins, and the next snapshot reports whatever the store holds.
    """

    def __init__(self, db: Client) -> None:
        """Initialize the tracker."""
        self.db = db

    def _settlements(self, group_id: str) -> CollectionReference:
        return (
            self.db.collection(GROUPS_COLLECTION)
            .document(group_id)
            .collection(SETTLEMENTS_COLLECTION)
        )

    @staticmethod
    def _check_key(key: str) -> None:
        if not key or "/" in key:
            raise ValidationError(f"Invalid settlement key: {key!r}")

    def subscribe(
        self,
        group_id: str,
        on_change: Optional[Callable[[frozenset[str]], None]] = None,
    ) -> SettlementSubscription:
        """Open a live subscription to the group's settled keys."""
        subscription = SettlementSubscription(group_id, on_change)
        with storage_errors("subscribing to settlements"):
            watch = self._settlements(group_id).on_snapshot(
                subscription.handle_snapshot
            )
        subscription.attach(watch)
        return subscription

    def get_settled_keys(self, group_id: str) -> frozenset[str]:
        """Read the current settled keys once."""
        with storage_errors("loading settlements"):
            return frozenset(doc.id for doc in self._settlements(group_id).stream())

    def mark_settled(self, group_id: str, key: str) -> None:
        """Create the settlement record for ``key``."""
        self._check_key(key)
        with storage_errors("updating settlement"):
            self._settlements(group_id).document(key).set({"settled": True})

    def mark_unsettled(self, group_id: str, key: str) -> None:
        """Delete the settlement record for ``key``."""
        self._check_key(key)
        with storage_errors("updating settlement"):
            self._settlements(group_id).document(key).delete()

    def clear_all(self, group_id: str) -> int:
        """Delete every settlement record of the group."""
        removed = 0
        with storage_errors("clearing settlements"):
            batch = self.db.batch()
            pending = 0
            for doc in self._settlements(group_id).stream():
                batch.delete(doc.reference)
                pending += 1
                removed += 1
                if pending >= FIRESTORE_BATCH_LIMIT:
                    batch.commit()
                    batch = self.db.batch()
                    pending = 0
            if pending:
                batch.commit()
        return removed
