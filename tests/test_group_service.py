"""Tests for GroupService."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from google.api_core.exceptions import PermissionDenied

from whopaid import create_app
from whopaid.errors import (
    DuplicateResourceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from whopaid.group.services import GroupService

from .conftest import MockArrayRemove, MockArrayUnion, make_db, seed_group


class GroupServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        with patch("firebase_admin.initialize_app"):
            self.app = create_app({"TESTING": True, "GROUP_CURRENCY": "RON"})
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.addCleanup(self.app_context.pop)

        patchers = [
            patch("whopaid.group.services.firestore.ArrayUnion", MockArrayUnion),
            patch("whopaid.group.services.firestore.ArrayRemove", MockArrayRemove),
        ]
        for p in patchers:
            p.start()
            self.addCleanup(p.stop)

        self.db = make_db()
        seed_group(self.db, members=["U1", "U2"])
        self.db.collection("users").document("U4").set(
            {"name": "Dana", "email": "dana@example.com", "groups": []}
        )

    def _group(self) -> dict:
        return self.db.collection("groups").document("group1").get().to_dict()

    def _user_groups(self, uid: str) -> list[str]:
        return self.db.collection("users").document(uid).get().to_dict()["groups"]

    def test_get_group(self) -> None:
        group = GroupService.get_group(self.db, "group1")
        self.assertEqual(group["id"], "group1")
        self.assertTrue(GroupService.is_admin(group, "U1"))
        self.assertFalse(GroupService.is_admin(group, "U2"))
        self.assertEqual(GroupService.group_currency(group), "RON")

    def test_group_currency_falls_back_to_config(self) -> None:
        self.app.config["GROUP_CURRENCY"] = "EUR"
        self.assertEqual(GroupService.group_currency({"id": "g", "createdAt": None}), "EUR")

    def test_get_missing_group(self) -> None:
        with self.assertRaises(NotFoundError):
            GroupService.get_group(self.db, "nope")

    def test_require_member(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            GroupService.require_member(self.db, "group1", "U4")

    def test_resolve_names(self) -> None:
        names = GroupService.resolve_names(self.db, ["U1", "U4", "ghost"])
        self.assertEqual(names, {"U1": "User 1", "U4": "Dana", "ghost": "ghost"})

    def test_resolve_names_uses_email_without_name(self) -> None:
        self.db.collection("users").document("U5").set({"email": "e@x.com"})
        self.assertEqual(GroupService.resolve_names(self.db, ["U5"]), {"U5": "e@x.com"})

    def test_resolve_names_degrades_on_backend_failure(self) -> None:
        db = MagicMock()
        db.get_all.side_effect = PermissionDenied("denied")
        names = GroupService.resolve_names(db, ["U1", "U2"])
        self.assertEqual(names, {"U1": "U1", "U2": "U2"})

    def test_create_group(self) -> None:
        group = GroupService.create_group(self.db, "U4", " Ski trip ", currency="eur")
        stored = self.db.collection("groups").document(group["id"]).get().to_dict()
        self.assertEqual(stored["name"], "Ski trip")
        self.assertEqual(stored["adminUid"], "U4")
        self.assertEqual(stored["members"], ["U4"])
        self.assertEqual(stored["currency"], "EUR")

    def test_create_group_requires_name(self) -> None:
        with self.assertRaises(ValidationError):
            GroupService.create_group(self.db, "U1", "   ")

    def test_add_member_by_email(self) -> None:
        uid = GroupService.add_member_by_email(self.db, "group1", "U1", "dana@example.com")
        self.assertEqual(uid, "U4")
        self.assertEqual(self._group()["members"], ["U1", "U2", "U4"])
        self.assertEqual(self._user_groups("U4"), ["group1"])

    def test_add_member_admin_only(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            GroupService.add_member_by_email(self.db, "group1", "U2", "dana@example.com")

    def test_add_member_unknown_email(self) -> None:
        with self.assertRaises(NotFoundError):
            GroupService.add_member_by_email(self.db, "group1", "U1", "who@example.com")

    def test_add_existing_member(self) -> None:
        with self.assertRaises(DuplicateResourceError):
            GroupService.add_member_by_email(self.db, "group1", "U1", "u2@example.com")

    def test_leave_group(self) -> None:
        GroupService.leave_group(self.db, "group1", "U2")
        self.assertEqual(self._group()["members"], ["U1"])
        self.assertEqual(self._user_groups("U2"), [])

    def test_admin_cannot_leave(self) -> None:
        with self.assertRaises(ValidationError):
            GroupService.leave_group(self.db, "group1", "U1")

    def test_remove_member(self) -> None:
        GroupService.remove_member(self.db, "group1", "U1", "U2")
        self.assertEqual(self._group()["members"], ["U1"])
        with self.assertRaises(NotFoundError):
            GroupService.remove_member(self.db, "group1", "U1", "U2")

    def test_remove_member_admin_only(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            GroupService.remove_member(self.db, "group1", "U2", "U1")

    def test_delete_group(self) -> None:
        GroupService.delete_group(self.db, "group1", "U1")
        self.assertFalse(self.db.collection("groups").document("group1").get().exists)
        self.assertEqual(self._user_groups("U1"), [])
        self.assertEqual(self._user_groups("U2"), [])

    def test_delete_group_admin_only(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            GroupService.delete_group(self.db, "group1", "U2")


if __name__ == "__main__":
    unittest.main()
