"""Adapters - I/O implementations of ports."""

from .file_store import FileTaskStore
from .firestore import AuthenticationError, FirestoreTaskStore

__all__ = [
    "FileTaskStore",
    "FirestoreTaskStore",
    "AuthenticationError",
]
