"""A balance screen that follows settlement changes as they happen."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any, Optional

from whopaid.errors import StorageError
from whopaid.expense.services import ExpenseService
from whopaid.group.services import GroupService

from .aggregator import BalanceSummary, compute_balances
from .settlement import SettlementSubscription, SettlementTracker

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

    from whopaid.expense.models import Expense

logger = logging.getLogger(__name__)

_CLOSED = object()


class BalanceView:
    """Keeps one viewer's ``BalanceSummary`` current for one group.

    Every settlement snapshot and every expense reload rebuilds the whole
    summary from the latest expense list and the latest settled keys.
    ``close()`` must be called (or the view used as a context manager) to
    release the settlement listener.
    """

    def __init__(
        self,
        db: Client,
        group_id: str,
        viewer_uid: str,
        tracker: Optional[SettlementTracker] = None,
    ) -> None:
        """Initialize a view. Nothing is loaded until ``open()``."""
        self.db = db
        self.group_id = group_id
        self.viewer_uid = viewer_uid
        self.tracker = tracker or SettlementTracker(db)
        self.summary: Optional[BalanceSummary] = None
        self.group_name = ""
        self.group_currency = ""
        self.names: dict[str, str] = {}
        self._expenses: list[Expense] = []
        self._settled_keys: frozenset[str] = frozenset()
        self._subscription: Optional[SettlementSubscription] = None
        self._listeners: list[Callable[[BalanceSummary], None]] = []
        self._updates: queue.Queue[Any] = queue.Queue()
        self._lock = threading.RLock()
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the view has been closed."""
        return self._closed

    def open(self) -> BalanceView:
        """Load the group and its expenses, then start following settlements."""
        group = GroupService.require_member(self.db, self.group_id, self.viewer_uid)
        self.group_name = group.get("name", "Group")
        self.group_currency = GroupService.group_currency(group)
        self._load_expenses()
        self._subscription = self.tracker.subscribe(
            self.group_id, on_change=self._on_settlements
        )
        return self

    def _load_expenses(self) -> None:
        expenses = ExpenseService.get_expenses(self.db, self.group_id)
        user_ids = {e.payer_uid for e in expenses}
        for expense in expenses:
            user_ids.update(expense.participants)
        names = GroupService.resolve_names(self.db, user_ids)
        with self._lock:
            self._expenses = expenses
            self.names = names

    def _on_settlements(self, keys: frozenset[str]) -> None:
        with self._lock:
            if self._closed:
                return
            self._settled_keys = keys
        self.recompute()

    def reload_expenses(self) -> Optional[BalanceSummary]:
        """Fetch the expense list again and rebuild the summary."""
        if self._closed:
            return None
        self._load_expenses()
        return self.recompute()

    def recompute(self) -> Optional[BalanceSummary]:
        """Rebuild the summary from the latest expenses and settled keys."""
        with self._lock:
            if self._closed:
                return None
            summary = compute_balances(
                self._expenses,
                self._settled_keys,
                self.viewer_uid,
                self.names,
                self.group_currency,
            )
            self.summary = summary
            listeners = list(self._listeners)
        self._updates.put(summary)
        for listener in listeners:
            try:
                listener(summary)
            except Exception:
                logger.exception(f"Balance listener for group {self.group_id} raised")
        return summary

    def on_update(self, listener: Callable[[BalanceSummary], None]) -> None:
        """Register a callback for every rebuilt summary."""
        with self._lock:
            self._listeners.append(listener)

    def updates(self, keepalive: Optional[float] = None) -> Iterator[Optional[BalanceSummary]]:
        """Yield each rebuilt summary until the view is closed.

        With ``keepalive`` set, yields None whenever that many seconds pass
        without an update. Each keepalive tick also checks the settlement
        listener and resubscribes if it was lost; the stream ends if that
        fails.
        """
        while True:
            try:
                item = self._updates.get(timeout=keepalive)
            except queue.Empty:
                if not self.ensure_subscribed():
                    return
                yield None
                continue
            if item is _CLOSED:
                return
            yield item

    def ensure_subscribed(self) -> bool:
        """Replace a lost settlement subscription.

        Returns False, and closes the view, if resubscribing fails.
        """
        with self._lock:
            if self._closed:
                return False
            subscription = self._subscription
        if subscription is not None and subscription.check_alive():
            return True

        logger.warning(f"Resubscribing to settlements of group {self.group_id}")
        try:
            replacement = self.tracker.subscribe(
                self.group_id, on_change=self._on_settlements
            )
        except StorageError as e:
            logger.error(f"Lost settlements of group {self.group_id}: {e.message}")
            self.close()
            return False

        with self._lock:
            if self._closed:
                replacement.cancel()
                return False
            self._subscription = replacement
        return True

    def close(self) -> None:
        """Cancel the settlement subscription and stop recomputing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscription = self._subscription
            self._subscription = None
        if subscription is not None:
            subscription.cancel()
        self._updates.put(_CLOSED)

    def __enter__(self) -> BalanceView:
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
