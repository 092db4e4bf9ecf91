"""Document store contract shared by every backend.

A store addresses documents by slash-separated key paths
(``characters/alice/pages/core``) and offers three operations:

* ``get(path)``: asynchronous point-in-time read
* ``set(path, payload, merge=True)``: asynchronous write
* ``subscribe(path, on_snapshot, on_error)``: live feed that delivers the
  current snapshot first, then every change, in per-document order

Callbacks always run on the event loop that owns the store.  Errors raised
to callers are members of the ``StoreError`` family below.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class StoreError(Exception):
    """Base class for every store-facing failure."""


class InitializationFailure(StoreError):
    """The store (or its client) could not be initialized."""


class ReadFailure(StoreError):
    """A ``get`` could not be completed."""


class WriteFailure(StoreError):
    """A ``set`` could not be completed."""


class SubscriptionError(StoreError):
    """A live subscription failed.  Terminal for that subscription."""


class InvalidPath(StoreError, ValueError):
    """Raised when a document path is malformed."""


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time read of one document."""

    path: str
    exists: bool
    data: dict | None = None

    def to_dict(self) -> dict:
        """Return a deep copy of the document body (empty dict when absent)."""
        return copy.deepcopy(self.data) if self.data is not None else {}

    @property
    def updated_at(self) -> int | float | None:
        """``updatedAt`` of the document if it carries a numeric one."""
        if not self.data:
            return None
        value = self.data.get("updatedAt")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[StoreError], None]


class Subscription(Protocol):
    """Handle returned by ``DocumentStore.subscribe``."""

    @property
    def active(self) -> bool: ...

    def unsubscribe(self) -> None: ...


class DocumentStore(Protocol):
    """Minimal contract the sync channels need from a document store."""

    async def get(self, path: str) -> Snapshot: ...

    async def set(self, path: str, payload: dict, merge: bool = True) -> None: ...

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription: ...


def validate_path(path: str) -> str:
    """Return *path* normalized, or raise ``InvalidPath``.

    Segments must be non-empty and may not be ``.`` or ``..``.
    """
    if not isinstance(path, str) or not path:
        raise InvalidPath(f"Document path must be a non-empty string: {path!r}")
    segments = path.strip("/").split("/")
    for segment in segments:
        if not segment or segment in (".", ".."):
            raise InvalidPath(f"Invalid segment in document path: {path!r}")
        if "\\" in segment or "\x00" in segment:
            raise InvalidPath(f"Invalid character in document path: {path!r}")
    return "/".join(segments)
