"""Storage layer - Firestore and in-memory implementations."""

from whatsdesk.storage.base import StorageBackend
from whatsdesk.storage.firestore import FirestoreStorage
from whatsdesk.storage.memory import InMemoryStorage

__all__ = ["StorageBackend", "FirestoreStorage", "InMemoryStorage"]
