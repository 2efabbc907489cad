"""Projection of expenses into pairwise obligations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Optional

from whopaid.constants import DIRECTION_CREDIT, DIRECTION_DEBT
from whopaid.expense.models import Expense


def obligation_key(expense_id: str, debtor_uid: str, payer_uid: str) -> str:
    """Return the settlement record ID for one debtor on one expense.

    Stored settlement documents use this exact format.
    """
    return f"{expense_id}_{debtor_uid}_{payer_uid}"


@dataclass(frozen=True)
class Obligation:
    """What one participant owes the payer of one expense."""

    key: str
    expense_id: str
    expense_title: str
    debtor_uid: str
    payer_uid: str
    share_raw: float
    share_converted: float
    currency_code: str
    direction: Optional[str] = None

    @property
    def counterparty_uid(self) -> str:
        """The other side of the obligation, seen from the viewer."""
        if self.direction == DIRECTION_DEBT:
            return self.payer_uid
        return self.debtor_uid


def _split(expense: Expense) -> Iterator[tuple[str, float, float]]:
    """Yield (debtor, share_raw, share_converted) for each non-payer slot."""
    count = len(expense.participants)
    if count == 0:
        return
    share_raw = expense.amount_raw / count
    share_converted = expense.amount_in_group_currency / count
    for participant in expense.participants:
        if participant == expense.payer_uid:
            continue
        yield participant, share_raw, share_converted


def _obligation(
    expense: Expense,
    debtor: str,
    share_raw: float,
    share_converted: float,
    direction: Optional[str],
) -> Obligation:
    return Obligation(
        key=obligation_key(expense.id, debtor, expense.payer_uid),
        expense_id=expense.id,
        expense_title=expense.title,
        debtor_uid=debtor,
        payer_uid=expense.payer_uid,
        share_raw=share_raw,
        share_converted=share_converted,
        currency_code=expense.currency_code,
        direction=direction,
    )


def project_all_obligations(expenses: Iterable[Expense]) -> Iterator[Obligation]:
    """Yield every obligation in the ledger, with no viewer direction."""
    for expense in expenses:
        for debtor, share_raw, share_converted in _split(expense):
            yield _obligation(expense, debtor, share_raw, share_converted, None)


def project_obligations(
    expenses: Iterable[Expense], viewer_uid: str
) -> Iterator[Obligation]:
    """Yield the obligations that involve ``viewer_uid``.

    Expenses are visited in the order given, participants in stored order.
    Each participant other than the payer owes an equal share of the total;
    the payer's own share divides the total but creates no obligation.
    Expenses without participants yield nothing. Duplicate participant
    entries yield one obligation each, all with the same key.
    """
    for expense in expenses:
        for debtor, share_raw, share_converted in _split(expense):
            if debtor == viewer_uid:
                direction = DIRECTION_DEBT
            elif expense.payer_uid == viewer_uid:
                direction = DIRECTION_CREDIT
            else:
                continue
            yield _obligation(expense, debtor, share_raw, share_converted, direction)
