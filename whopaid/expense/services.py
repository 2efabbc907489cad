"""Service layer for expense data access."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Protocol, cast

from firebase_admin import firestore
from flask import current_app

from whopaid.constants import EXPENSES_COLLECTION, GROUPS_COLLECTION
from whopaid.core.storage import storage_errors
from whopaid.errors import NotFoundError
from whopaid.group.services import GroupService

from .models import Expense, ExpenseSubmission

if TYPE_CHECKING:
    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.collection import CollectionReference


class Converter(Protocol):
    """Anything that can convert an amount between two currencies."""

    def convert(
        self, amount: float, from_currency: str, to_currency: str = ...
    ) -> float:
        """Return ``amount`` expressed in ``to_currency``."""
        ...


class ExpenseService:
    """Service class for expense-related operations."""

    @staticmethod
    def _expenses(db: Client, group_id: str) -> CollectionReference:
        return (
            db.collection(GROUPS_COLLECTION)
            .document(group_id)
            .collection(EXPENSES_COLLECTION)
        )

    @staticmethod
    def get_expenses(db: Client, group_id: str) -> list[Expense]:
        """Fetch all expenses for a group, oldest first."""
        with storage_errors("loading expenses"):
            docs = ExpenseService._expenses(db, group_id).order_by("createdAt").stream()
            return [
                Expense.from_dict(doc.to_dict() or {}, doc.id)
                for doc in docs
            ]

    @staticmethod
    def get_expense(db: Client, group_id: str, expense_id: str) -> Expense:
        """Fetch a single expense."""
        with storage_errors("loading expense"):
            doc = cast(
                "DocumentSnapshot",
                ExpenseService._expenses(db, group_id).document(expense_id).get(),
            )
        if not doc.exists:
            raise NotFoundError("Expense not found.")
        return Expense.from_dict(doc.to_dict() or {}, doc.id)

    @staticmethod
    def _convert(
        submission: ExpenseSubmission, group_currency: str, converter: Converter
    ) -> float:
        """Convert the submitted amount into the group currency."""
        if submission.currency_code == group_currency:
            return submission.amount_raw
        return converter.convert(
            submission.amount_raw, submission.currency_code, group_currency
        )

    @staticmethod
    def add_expense(
        db: Client,
        group_id: str,
        submission: ExpenseSubmission,
        converter: Converter,
    ) -> Expense:
        """Validate, convert and store a new expense."""
        group = GroupService.get_group(db, group_id)
        submission.validate(group.get("members", []))
        group_currency = GroupService.group_currency(group)
        converted = ExpenseService._convert(submission, group_currency, converter)

        with storage_errors("saving expense"):
            doc_ref = ExpenseService._expenses(db, group_id).document()
            expense = Expense(
                id=doc_ref.id,
                title=submission.title,
                amount_raw=submission.amount_raw,
                currency_code=submission.currency_code,
                amount_in_group_currency=converted,
                payer_uid=submission.payer_uid,
                participants=tuple(submission.participants),
                created_at=datetime.datetime.now(datetime.timezone.utc),
            )
            doc_ref.set(expense.to_dict())
            db.collection(GROUPS_COLLECTION).document(group_id).update(
                {"updatedAt": firestore.SERVER_TIMESTAMP}
            )

        current_app.logger.info(
            f"Expense {expense.id} added to group {group_id} "
            f"({expense.amount_raw} {expense.currency_code})"
        )
        return expense

    @staticmethod
    def update_expense(
        db: Client,
        group_id: str,
        expense_id: str,
        submission: ExpenseSubmission,
        converter: Converter,
    ) -> Expense:
        """Rewrite an existing expense, keeping its id and creation time."""
        existing = ExpenseService.get_expense(db, group_id, expense_id)
        group = GroupService.get_group(db, group_id)
        submission.validate(group.get("members", []))
        group_currency = GroupService.group_currency(group)
        converted = ExpenseService._convert(submission, group_currency, converter)

        expense = Expense(
            id=existing.id,
            title=submission.title,
            amount_raw=submission.amount_raw,
            currency_code=submission.currency_code,
            amount_in_group_currency=converted,
            payer_uid=submission.payer_uid,
            participants=tuple(submission.participants),
            created_at=existing.created_at,
        )
        with storage_errors("saving expense"):
            ExpenseService._expenses(db, group_id).document(expense_id).set(
                expense.to_dict()
            )
        return expense

    @staticmethod
    def delete_expense(db: Client, group_id: str, expense_id: str) -> None:
        """Delete an expense. Its settlement records are left as they are."""
        ExpenseService.get_expense(db, group_id, expense_id)
        with storage_errors("deleting expense"):
            ExpenseService._expenses(db, group_id).document(expense_id).delete()
