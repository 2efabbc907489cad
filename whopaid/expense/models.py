"""Data models for the expense blueprint."""

from __future__ import annotations

import datetime
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from whopaid.constants import DEFAULT_GROUP_CURRENCY
from whopaid.core.types import FirestoreDocument
from whopaid.errors import ValidationError

CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


class ExpenseDocument(FirestoreDocument, total=False):
    """An expense document in Firestore."""

    title: str
    amountRaw: float
    currencyCode: str
    amountInGroupCurrency: float
    payerUid: str
    participants: list[str]


@dataclass(frozen=True)
class Expense:
    """A shared expense, immutable once stored.

    Edits rewrite the whole document; shares are never patched in place.
    ``participants`` keeps the stored order and is not de-duplicated.
    """

    id: str
    title: str
    amount_raw: float
    currency_code: str
    amount_in_group_currency: float
    payer_uid: str
    participants: tuple[str, ...] = ()
    created_at: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], doc_id: str | None = None) -> Expense:
        """Build an expense from a Firestore document."""
        return cls(
            id=doc_id or data.get("id", ""),
            title=data.get("title", ""),
            amount_raw=float(data.get("amountRaw") or 0.0),
            currency_code=data.get("currencyCode") or DEFAULT_GROUP_CURRENCY,
            amount_in_group_currency=float(data.get("amountInGroupCurrency") or 0.0),
            payer_uid=data.get("payerUid", ""),
            participants=tuple(data.get("participants") or ()),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> ExpenseDocument:
        """Serialize to the Firestore document shape."""
        return {
            "id": self.id,
            "title": self.title,
            "amountRaw": self.amount_raw,
            "currencyCode": self.currency_code,
            "amountInGroupCurrency": self.amount_in_group_currency,
            "payerUid": self.payer_uid,
            "participants": list(self.participants),
            "createdAt": self.created_at,
        }

    def to_json(self) -> dict[str, Any]:
        """Serialize for API responses."""
        data: dict[str, Any] = dict(self.to_dict())
        if isinstance(self.created_at, datetime.datetime):
            data["createdAt"] = self.created_at.isoformat()
        return data


@dataclass
class ExpenseSubmission:
    """Dataclass for an expense create or edit request."""

    title: str
    amount_raw: float
    payer_uid: str
    participants: list[str] = field(default_factory=list)
    currency_code: str = DEFAULT_GROUP_CURRENCY

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ExpenseSubmission:
        """Build a submission from a request body."""
        raw_amount = data.get("amountRaw", data.get("amount"))
        if isinstance(raw_amount, bool):
            raise ValidationError("Invalid amount.")
        try:
            amount = float(raw_amount)
        except (TypeError, ValueError) as e:
            raise ValidationError("Invalid amount.") from e

        participants = data.get("participants") or []
        if not isinstance(participants, list):
            raise ValidationError("Participants must be a list.")

        return cls(
            title=str(data.get("title") or "").strip(),
            amount_raw=amount,
            payer_uid=str(data.get("payerUid") or ""),
            participants=[str(p) for p in participants],
            currency_code=str(
                data.get("currencyCode") or DEFAULT_GROUP_CURRENCY
            ).upper(),
        )

    def validate(self, member_ids: Optional[list[str]] = None) -> None:
        """Validate the submission for obvious errors."""
        if not self.title:
            raise ValidationError("Fill all fields.")
        if not math.isfinite(self.amount_raw) or self.amount_raw <= 0:
            raise ValidationError("Invalid amount.")
        if not CURRENCY_CODE_PATTERN.match(self.currency_code):
            raise ValidationError(f"Invalid currency code: {self.currency_code}")
        if not self.payer_uid:
            raise ValidationError("Select who paid.")
        if not self.participants:
            raise ValidationError("Select at least one participant.")

        if member_ids is not None:
            members = set(member_ids)
            if self.payer_uid not in members:
                raise ValidationError("The payer is not a member of this group.")
            outsiders = [p for p in self.participants if p not in members]
            if outsiders:
                raise ValidationError(
                    f"Participants not in this group: {', '.join(outsiders)}"
                )
