"""Document stores: the contract plus in-memory and file-backed backends."""

from __future__ import annotations

from sheetsync.storage.base import (
    DocumentStore,
    InitializationFailure,
    InvalidPath,
    ReadFailure,
    Snapshot,
    StoreError,
    SubscriptionError,
    WriteFailure,
)
from sheetsync.storage.files import FileDocumentStore
from sheetsync.storage.memory import MemoryDocumentStore

__all__ = [
    "DocumentStore",
    "FileDocumentStore",
    "InitializationFailure",
    "InvalidPath",
    "MemoryDocumentStore",
    "ReadFailure",
    "Snapshot",
    "StoreError",
    "SubscriptionError",
    "WriteFailure",
]
