"""Helpers for talking to the Firestore backend."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError

from whopaid.errors import StorageError


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise Firestore SDK and credential failures as ``StorageError``."""
    try:
        yield
    except (GoogleAPIError, GoogleAuthError) as e:
        raise StorageError(f"Error {action}: {e}") from e
