"""E-mail reminders for people who owe the current user."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from flask import current_app

from whopaid.constants import DIRECTION_CREDIT, REMINDER_TEMPLATE
from whopaid.utils import EmailError, send_email

from .aggregator import BalanceRow, BalanceSummary


@dataclass
class Reminder:
    """Everything one debtor is reminded about."""

    to_uid: str
    to_name: str
    to_email: str
    rows: list[BalanceRow]
    group_currency: str

    @property
    def items(self) -> list[str]:
        """One display line per outstanding expense."""
        return [
            f"{row.expense_title} — {row.share_raw:.2f} {row.currency_code} "
            f"(≈ {row.share_converted:.2f} {self.group_currency})"
            for row in self.rows
        ]

    @property
    def total_formatted(self) -> str:
        """Per-currency totals, e.g. ``"30.00 EUR, 12.50 RON"``."""
        totals: OrderedDict[str, float] = OrderedDict()
        for row in self.rows:
            totals[row.currency_code] = totals.get(row.currency_code, 0.0) + row.share_raw
        return ", ".join(f"{amount:.2f} {code}" for code, amount in totals.items())


@dataclass
class ReminderReport:
    """Who was reminded and who could not be."""

    successes: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "sent": len(self.successes),
            "failed": len(self.failures),
            "successes": self.successes,
            "failures": self.failures,
        }


def build_reminders(
    summary: BalanceSummary, contacts: dict[str, dict[str, Any]]
) -> tuple[list[Reminder], list[str]]:
    """Group the viewer's unsettled credits by debtor.

    ``contacts`` maps user IDs to user documents. Debtors without an email
    address are returned as failures instead of reminders.
    """
    by_debtor: OrderedDict[str, list[BalanceRow]] = OrderedDict()
    for row in summary.rows:
        if row.direction == DIRECTION_CREDIT and not row.settled:
            by_debtor.setdefault(row.counterparty_uid, []).append(row)

    reminders = []
    failures = []
    for debtor_uid, rows in by_debtor.items():
        contact = contacts.get(debtor_uid) or {}
        email = contact.get("email") or ""
        if not email:
            failures.append(f"No email for user {debtor_uid}")
            continue
        reminders.append(
            Reminder(
                to_uid=debtor_uid,
                to_name=contact.get("name") or email,
                to_email=email,
                rows=rows,
                group_currency=summary.group_currency,
            )
        )
    return reminders, failures


def send_reminders(
    reminders: list[Reminder], from_name: str, group_name: str
) -> ReminderReport:
    """Send each reminder, carrying on past individual failures."""
    report = ReminderReport()
    subject = f"Reminder: outstanding payments in {group_name}"
    for reminder in reminders:
        try:
            send_email(
                to=reminder.to_email,
                subject=subject,
                template=REMINDER_TEMPLATE,
                to_name=reminder.to_name,
                from_name=from_name,
                group_name=group_name,
                items=reminder.items,
                total_formatted=reminder.total_formatted,
            )
        except EmailError as e:
            current_app.logger.error(f"Reminder to {reminder.to_email} failed: {e}")
            report.failures.append(f"{reminder.to_email}: {e}")
            continue
        report.successes.append(reminder.to_email)
    return report
