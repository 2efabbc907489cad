"""Service layer for group membership."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, cast

from firebase_admin import firestore
from flask import current_app

from whopaid.constants import (
    DEFAULT_GROUP_CURRENCY,
    GROUPS_COLLECTION,
    USERS_COLLECTION,
)
from whopaid.core.storage import storage_errors
from whopaid.errors import (
    DuplicateResourceError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)

from .models import Group, UserProfile, display_name

if TYPE_CHECKING:
    from collections.abc import Iterable

    from google.cloud.firestore_v1.base_document import DocumentSnapshot
    from google.cloud.firestore_v1.client import Client


class GroupService:
    """Service class for group-related operations."""

    @staticmethod
    def get_group(db: Client, group_id: str) -> Group:
        """Fetch a group by its ID."""
        with storage_errors("loading group"):
            doc = cast(
                "DocumentSnapshot",
                db.collection(GROUPS_COLLECTION).document(group_id).get(),
            )
        if not doc.exists:
            raise NotFoundError("Group not found.")
        data = cast(Group, doc.to_dict() or {})
        data["id"] = doc.id
        return data

    @staticmethod
    def is_admin(group: Group, user_id: str) -> bool:
        """Return True if the user administers the group."""
        return group.get("adminUid") == user_id

    @staticmethod
    def is_member(group: Group, user_id: str) -> bool:
        """Return True if the user belongs to the group."""
        return user_id in group.get("members", [])

    @staticmethod
    def group_currency(group: Group) -> str:
        """Return the group's standard currency."""
        return (
            group.get("currency")
            or current_app.config.get("GROUP_CURRENCY")
            or DEFAULT_GROUP_CURRENCY
        )

    @staticmethod
    def require_member(db: Client, group_id: str, user_id: str) -> Group:
        """Fetch a group, raising if the user is not one of its members."""
        group = GroupService.get_group(db, group_id)
        if not GroupService.is_member(group, user_id):
            raise PermissionDeniedError("You are not a member of this group.")
        return group

    @staticmethod
    def resolve_users(db: Client, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        """Fetch user documents for the given IDs in one round-trip.

        Missing users are left out of the result.
        """
        unique_ids = sorted({uid for uid in user_ids if uid})
        if not unique_ids:
            return {}
        refs = [db.collection(USERS_COLLECTION).document(uid) for uid in unique_ids]
        with storage_errors("loading users"):
            snapshots = db.get_all(refs)
            return {
                snap.id: cast(UserProfile, snap.to_dict() or {})
                for snap in snapshots
                if snap.exists
            }

    @staticmethod
    def resolve_names(db: Client, user_ids: Iterable[str]) -> dict[str, str]:
        """Map user IDs to display names.

        Unknown users map to their raw ID. A failed lookup degrades to raw
        IDs for everyone rather than failing the caller.
        """
        user_ids = list(user_ids)
        try:
            users = GroupService.resolve_users(db, user_ids)
        except StorageError as e:
            current_app.logger.warning(f"Falling back to raw user IDs: {e.message}")
            users = {}
        return {uid: display_name(users.get(uid, {}), uid) for uid in user_ids}

    @staticmethod
    def create_group(
        db: Client,
        admin_uid: str,
        name: str,
        description: str = "",
        currency: str | None = None,
    ) -> Group:
        """Create a group. The creator becomes admin and first member."""
        name = name.strip()
        if not name:
            raise ValidationError("Group name is required.")

        with storage_errors("creating group"):
            doc_ref = db.collection(GROUPS_COLLECTION).document()
            group: Group = {
                "id": doc_ref.id,
                "name": name,
                "description": description,
                "adminUid": admin_uid,
                "members": [admin_uid],
                "currency": (currency or DEFAULT_GROUP_CURRENCY).upper(),
                "createdAt": datetime.datetime.now(datetime.timezone.utc),
            }
            doc_ref.set(dict(group))
            db.collection(USERS_COLLECTION).document(admin_uid).set(
                {"groups": firestore.ArrayUnion([doc_ref.id])}, merge=True
            )
        return group

    @staticmethod
    def add_member_by_email(
        db: Client, group_id: str, acting_uid: str, email: str
    ) -> str:
        """Add the user registered under ``email`` to a group (admin only)."""
        group = GroupService.get_group(db, group_id)
        if not GroupService.is_admin(group, acting_uid):
            raise PermissionDeniedError("Only the group admin can add members.")

        with storage_errors("adding member"):
            matches = list(
                db.collection(USERS_COLLECTION)
                .where(filter=firestore.FieldFilter("email", "==", email.strip()))
                .limit(1)
                .stream()
            )
        if not matches:
            raise NotFoundError("No user found with that email.")

        uid = matches[0].id
        if GroupService.is_member(group, uid):
            raise DuplicateResourceError("User is already a member of this group.")

        with storage_errors("adding member"):
            db.collection(GROUPS_COLLECTION).document(group_id).update(
                {"members": firestore.ArrayUnion([uid])}
            )
            db.collection(USERS_COLLECTION).document(uid).update(
                {"groups": firestore.ArrayUnion([group_id])}
            )
        return uid

    @staticmethod
    def _detach_member(db: Client, group_id: str, member_uid: str) -> None:
        with storage_errors("removing member"):
            db.collection(GROUPS_COLLECTION).document(group_id).update(
                {"members": firestore.ArrayRemove([member_uid])}
            )
            db.collection(USERS_COLLECTION).document(member_uid).update(
                {"groups": firestore.ArrayRemove([group_id])}
            )

    @staticmethod
    def leave_group(db: Client, group_id: str, user_id: str) -> None:
        """Remove the current user from a group."""
        group = GroupService.require_member(db, group_id, user_id)
        if GroupService.is_admin(group, user_id):
            raise ValidationError("The admin cannot leave; delete the group instead.")
        GroupService._detach_member(db, group_id, user_id)

    @staticmethod
    def remove_member(
        db: Client, group_id: str, acting_uid: str, member_uid: str
    ) -> None:
        """Remove a member from a group (admin only)."""
        group = GroupService.get_group(db, group_id)
        if not GroupService.is_admin(group, acting_uid):
            raise PermissionDeniedError("Only the group admin can remove members.")
        if member_uid == acting_uid:
            raise ValidationError("The admin cannot remove themselves.")
        if not GroupService.is_member(group, member_uid):
            raise NotFoundError("User is not a member of this group.")
        GroupService._detach_member(db, group_id, member_uid)

    @staticmethod
    def delete_group(db: Client, group_id: str, acting_uid: str) -> None:
        """Delete a group and unlink it from every member (admin only)."""
        group = GroupService.get_group(db, group_id)
        if not GroupService.is_admin(group, acting_uid):
            raise PermissionDeniedError("Only the group admin can delete the group.")

        with storage_errors("deleting group"):
            batch = db.batch()
            for uid in group.get("members", []):
                batch.update(
                    db.collection(USERS_COLLECTION).document(uid),
                    {"groups": firestore.ArrayRemove([group_id])},
                )
            batch.delete(db.collection(GROUPS_COLLECTION).document(group_id))
            batch.commit()
        current_app.logger.info(f"Group {group_id} deleted by {acting_uid}")
