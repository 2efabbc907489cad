"""Data models for the group blueprint."""

from __future__ import annotations

from typing import Any

from whopaid.core.types import FirestoreDocument


class Group(FirestoreDocument, total=False):
    """A group document in Firestore."""

    name: str
    description: str
    adminUid: str
    members: list[str]
    currency: str


class UserProfile(FirestoreDocument, total=False):
    """A user document in Firestore."""

    name: str
    email: str
    groups: list[str]


def display_name(user: UserProfile | dict[str, Any], fallback: str) -> str:
    """Return the user's name, their email, or ``fallback``."""
    return user.get("name") or user.get("email") or fallback
