"""Balance rows and totals for one viewer, and the settlement toggle."""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from whopaid.constants import DEFAULT_GROUP_CURRENCY, DIRECTION_CREDIT, DIRECTION_DEBT
from whopaid.errors import StorageError

from .ledger import project_obligations

if TYPE_CHECKING:
    from whopaid.expense.models import Expense

    from .settlement import SettlementTracker

logger = logging.getLogger(__name__)

NameResolver = Union[Callable[[str], Optional[str]], Mapping[str, str]]


@dataclass
class BalanceRow:
    """One debt or credit line on the viewer's balance screen."""

    key: str
    expense_id: str
    expense_title: str
    counterparty_uid: str
    counterparty_name: str
    direction: str
    share_raw: float
    share_converted: float
    currency_code: str
    settled: bool = False

    def to_json(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "key": self.key,
            "expenseId": self.expense_id,
            "expenseTitle": self.expense_title,
            "counterpartyUid": self.counterparty_uid,
            "counterpartyName": self.counterparty_name,
            "direction": self.direction,
            "shareRaw": round(self.share_raw, 2),
            "shareConverted": round(self.share_converted, 2),
            "currencyCode": self.currency_code,
            "settled": self.settled,
        }


@dataclass
class BalanceSummary:
    """All balance rows of a viewer plus outstanding totals."""

    rows: list[BalanceRow] = field(default_factory=list)
    total_to_pay: float = 0.0
    total_to_receive: float = 0.0
    group_currency: str = DEFAULT_GROUP_CURRENCY

    def to_json(self, hide_settled: bool = False) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "rows": [row.to_json() for row in visible_rows(self.rows, hide_settled)],
            "totalToPay": round(self.total_to_pay, 2),
            "totalToReceive": round(self.total_to_receive, 2),
            "groupCurrency": self.group_currency,
        }


class ToggleStatus(enum.Enum):
    """Where a settlement toggle stands."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class ToggleResult:
    """Outcome of a settlement toggle."""

    row: BalanceRow
    status: ToggleStatus = ToggleStatus.PENDING
    error: Optional[str] = None

    def to_json(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "key": self.row.key,
            "settled": self.row.settled,
            "status": self.status.value,
            "error": self.error,
        }


def _resolve_name(name_resolver: NameResolver, uid: str) -> str:
    """Look up a display name, falling back to the raw ID."""
    try:
        if isinstance(name_resolver, Mapping):
            name = name_resolver.get(uid)
        else:
            name = name_resolver(uid)
    except LookupError:
        name = None
    return name or uid


def summarize(rows: Iterable[BalanceRow]) -> tuple[float, float]:
    """Return (total to pay, total to receive) over unsettled rows."""
    to_pay = 0.0
    to_receive = 0.0
    for row in rows:
        if row.settled:
            continue
        if row.direction == DIRECTION_DEBT:
            to_pay += row.share_converted
        elif row.direction == DIRECTION_CREDIT:
            to_receive += row.share_converted
    return to_pay, to_receive


def visible_rows(rows: Iterable[BalanceRow], hide_settled: bool = False) -> list[BalanceRow]:
    """Drop settled rows from a view when asked to. Nothing is written."""
    if not hide_settled:
        return list(rows)
    return [row for row in rows if not row.settled]


def compute_balances(
    expenses: Iterable[Expense],
    settled_keys: Iterable[str],
    viewer_uid: str,
    name_resolver: NameResolver,
    group_currency: str = DEFAULT_GROUP_CURRENCY,
) -> BalanceSummary:
    """Build the viewer's balance rows and totals from scratch."""
    settled = settled_keys if isinstance(settled_keys, (set, frozenset)) else set(settled_keys)
    rows = [
        BalanceRow(
            key=obligation.key,
            expense_id=obligation.expense_id,
            expense_title=obligation.expense_title,
            counterparty_uid=obligation.counterparty_uid,
            counterparty_name=_resolve_name(name_resolver, obligation.counterparty_uid),
            direction=obligation.direction or "",
            share_raw=obligation.share_raw,
            share_converted=obligation.share_converted,
            currency_code=obligation.currency_code,
            settled=obligation.key in settled,
        )
        for obligation in project_obligations(expenses, viewer_uid)
    ]
    to_pay, to_receive = summarize(rows)
    return BalanceSummary(
        rows=rows,
        total_to_pay=to_pay,
        total_to_receive=to_receive,
        group_currency=group_currency,
    )


class BalanceAggregator:
    """Owns the write side of the balance screen."""

    def __init__(self, tracker: SettlementTracker) -> None:
        """Initialize the aggregator."""
        self.tracker = tracker

    def set_settled(self, group_id: str, key: str, settled: bool) -> None:
        """Write the requested settlement state for ``key``."""
        if settled:
            self.tracker.mark_settled(group_id, key)
        else:
            self.tracker.mark_unsettled(group_id, key)

    def toggle(self, group_id: str, row: BalanceRow) -> ToggleResult:
        """Flip a row's settled flag and persist the new state.

        The row is flipped before the write. If the write fails the flip is
        rolled back and the failure is reported in the result. Either way
        the next settlement snapshot is authoritative.
        """
        previous = row.settled
        row.settled = not previous
        result = ToggleResult(row=row)
        try:
            self.set_settled(group_id, row.key, row.settled)
        except StorageError as e:
            row.settled = previous
            result.status = ToggleStatus.FAILED
            result.error = e.message
            logger.warning(f"Settlement toggle for {row.key} failed: {e.message}")
            return result
        result.status = ToggleStatus.CONFIRMED
        return result

    def reset_all(self, group_id: str) -> int:
        """Clear every settlement record in the group."""
        removed = self.tracker.clear_all(group_id)
        logger.info(f"Cleared {removed} settlement records in group {group_id}")
        return removed
