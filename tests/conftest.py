"""Common utilities for tests."""

from __future__ import annotations

import datetime
import unittest.mock
from typing import Any, Iterator, Optional

from mockfirestore import CollectionReference, MockFirestore, Query
from mockfirestore.document import DocumentReference


class MockArrayUnion:
    def __init__(self, values: list[Any]) -> None:
        self.values = values

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


class MockArrayRemove:
    def __init__(self, values: list[Any]) -> None:
        self.values = values

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)


class MockBatch:
    def __init__(self, db: Any) -> None:
        self.db = db
        self.updates: list[tuple[Any, Any]] = []
        self.commit = unittest.mock.MagicMock(side_effect=self._real_commit)

    def update(self, ref: Any, data: Any) -> None:
        self.updates.append((ref, data))

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.updates.append((ref, data))

    def delete(self, ref: Any) -> None:
        self.updates.append((ref, "DELETE"))

    def _real_commit(self) -> None:
        for ref, data in self.updates:
            if data == "DELETE":
                ref.delete()
            else:
                ref.update(data)
        self.updates = []


def patch_mockfirestore() -> None:
    """Apply monkeypatches to mockfirestore to support FieldFilter and sentinels."""

    def collection_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:  # noqa: E501
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(CollectionReference, "_where"):
        CollectionReference._where = CollectionReference.where
        CollectionReference.where = collection_where

    def query_where(
        self: Any,
        field_path: Optional[str] = None,
        op_string: Optional[str] = None,
        value: Any = None,
        filter: Any = None,
    ) -> Any:
        if filter:
            return self._where(filter.field_path, filter.op_string, filter.value)
        return self._where(field_path, op_string, value)

    if not hasattr(Query, "_where"):
        Query._where = Query.where
        Query.where = query_where

    def doc_ref_eq(self: Any, other: Any) -> bool:
        if not isinstance(other, DocumentReference):
            return False
        return self._path == other._path

    if not hasattr(DocumentReference, "_orig_eq"):
        DocumentReference._orig_eq = DocumentReference.__eq__
        DocumentReference.__eq__ = doc_ref_eq

    if DocumentReference.__hash__ is None:
        DocumentReference.__hash__ = lambda self: hash(tuple(self._path))

    # Firestore deletes are idempotent; mockfirestore raises on missing docs.
    if not hasattr(DocumentReference, "_orig_delete"):
        DocumentReference._orig_delete = DocumentReference.delete

        def patched_delete(self: Any) -> None:
            try:
                self._orig_delete()
            except KeyError:
                pass

        DocumentReference.delete = patched_delete

    if not hasattr(DocumentReference, "_orig_update"):
        DocumentReference._orig_update = DocumentReference.update

        def patched_update(self: Any, data: dict[str, Any]) -> Any:
            current_data = self.get().to_dict() or {}
            new_data = {}
            for k, v in data.items():
                if isinstance(v, MockArrayUnion):
                    existing = current_data.get(k, [])
                    if not isinstance(existing, list):
                        existing = []
                    # Simple append for mock, firestore does set union
                    merged = list(existing)
                    for item in v.values:
                        if item not in merged:
                            merged.append(item)
                    new_data[k] = merged
                elif isinstance(v, MockArrayRemove):
                    existing = current_data.get(k, [])
                    if not isinstance(existing, list):
                        existing = []
                    new_data[k] = [i for i in existing if i not in v.values]
                else:
                    new_data[k] = v
            return self._orig_update(new_data)

        DocumentReference.update = patched_update


class SnapshotListeners:
    """Stands in for Firestore realtime listeners on mockfirestore collections.

    Like Firestore, a listener gets the current documents as soon as it is
    attached. ``emit()`` delivers a fresh snapshot to every listener that
    has not been unsubscribed.
    """

    def __init__(self) -> None:
        self.listeners: list[tuple[Any, Any, unittest.mock.MagicMock]] = []

    def attach(self, collection: Any, callback: Any) -> unittest.mock.MagicMock:
        watch = unittest.mock.MagicMock(name="watch")
        self.listeners.append((collection, callback, watch))
        callback(list(collection.stream()), [], None)
        return watch

    def emit(self) -> None:
        for collection, callback, watch in self.listeners:
            if not watch.unsubscribe.called:
                callback(list(collection.stream()), [], None)

    @property
    def active_count(self) -> int:
        return sum(1 for _, _, w in self.listeners if not w.unsubscribe.called)

    def patch(self) -> Any:
        """Return a patcher that installs ``on_snapshot`` on mock collections."""
        listeners = self

        def on_snapshot(collection: Any, callback: Any) -> Any:
            return listeners.attach(collection, callback)

        return unittest.mock.patch.object(
            CollectionReference, "on_snapshot", on_snapshot, create=True
        )


def make_db() -> MockFirestore:
    """Return a patched in-memory Firestore with batch support."""
    patch_mockfirestore()
    db = MockFirestore()
    db.batch = unittest.mock.MagicMock(side_effect=lambda: MockBatch(db))
    return db


def seed_group(
    db: Any,
    group_id: str = "group1",
    members: Optional[list[str]] = None,
    admin_uid: str = "U1",
    currency: str = "RON",
    name: str = "Trip",
) -> None:
    """Create a group and its member user documents."""
    members = members or ["U1", "U2", "U3"]
    db.collection("groups").document(group_id).set(
        {
            "name": name,
            "description": "",
            "adminUid": admin_uid,
            "members": list(members),
            "currency": currency,
            "createdAt": datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc),
        }
    )
    for uid in members:
        db.collection("users").document(uid).set(
            {
                "name": f"User {uid[1:]}",
                "email": f"{uid.lower()}@example.com",
                "groups": [group_id],
            }
        )


def seed_expense(
    db: Any,
    group_id: str,
    expense_id: str,
    amount_raw: float,
    payer_uid: str,
    participants: list[str],
    currency_code: str = "RON",
    amount_in_group_currency: Optional[float] = None,
    title: str = "Dinner",
    minute: int = 0,
) -> None:
    """Store an expense document the way the app writes it."""
    db.collection("groups").document(group_id).collection("expenses").document(
        expense_id
    ).set(
        {
            "id": expense_id,
            "title": title,
            "amountRaw": amount_raw,
            "currencyCode": currency_code,
            "amountInGroupCurrency": (
                amount_raw
                if amount_in_group_currency is None
                else amount_in_group_currency
            ),
            "payerUid": payer_uid,
            "participants": list(participants),
            "createdAt": datetime.datetime(
                2024, 1, 2, 12, minute, tzinfo=datetime.timezone.utc
            ),
        }
    )
