"""In-process document store.

Used for local-only sessions and throughout the test suite.  Every value
crossing the store boundary is deep-copied so callers can never mutate
stored state by accident.
"""

from __future__ import annotations

import asyncio
import copy

from sheetsync.storage.base import (
    ErrorCallback,
    Snapshot,
    SnapshotCallback,
    WriteFailure,
    validate_path,
)
from sheetsync.storage.bus import HubSubscription, SubscriberHub
from sheetsync.storage.documents import merge_payload


class MemoryDocumentStore:
    """Dict-backed ``DocumentStore`` with ordered live subscriptions."""

    def __init__(self, documents: dict[str, dict] | None = None) -> None:
        self._docs: dict[str, dict] = {}
        self._hub = SubscriberHub()
        self.writes: list[tuple[str, dict, bool]] = []
        for path, data in (documents or {}).items():
            self._docs[validate_path(path)] = copy.deepcopy(data)

    async def get(self, path: str) -> Snapshot:
        path = validate_path(path)
        await asyncio.sleep(0)
        return self._snapshot(path)

    async def set(self, path: str, payload: dict, merge: bool = True) -> None:
        path = validate_path(path)
        if not isinstance(payload, dict):
            raise WriteFailure(f"Payload for {path} must be a mapping")
        await asyncio.sleep(0)
        self.writes.append((path, copy.deepcopy(payload), merge))
        if merge:
            self._docs[path] = merge_payload(self._docs.get(path), payload)
        else:
            self._docs[path] = copy.deepcopy(payload)
        self._hub.publish(self._snapshot(path))

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> HubSubscription:
        path = validate_path(path)
        sub = self._hub.add(path, on_snapshot, on_error)
        self._hub.deliver_to(sub, self._snapshot(path))
        return sub

    def peek(self, path: str) -> dict | None:
        """Synchronous copy of a stored document (``None`` when absent)."""
        data = self._docs.get(validate_path(path))
        return copy.deepcopy(data) if data is not None else None

    def subscriber_count(self, path: str | None = None) -> int:
        return self._hub.count(validate_path(path) if path is not None else None)

    def fail_subscriptions(self, error, path: str | None = None) -> None:
        """Terminate live subscriptions with *error* (simulates a dropped feed)."""
        self._hub.fail_all(error, validate_path(path) if path is not None else None)

    def _snapshot(self, path: str) -> Snapshot:
        data = self._docs.get(path)
        if data is None:
            return Snapshot(path=path, exists=False)
        return Snapshot(path=path, exists=True, data=copy.deepcopy(data))
