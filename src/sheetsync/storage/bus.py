"""Per-document subscriber fan-out used by the in-process stores.

Deliveries are scheduled with ``loop.call_soon`` so that callbacks never run
inside the writer's stack frame and arrive in write order per document.
Listener failures are logged and never interrupt the write path.
"""

from __future__ import annotations

import asyncio
import itertools
import logging

from sheetsync.storage.base import (
    ErrorCallback,
    Snapshot,
    SnapshotCallback,
    StoreError,
)

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class HubSubscription:
    """Live subscription handle returned by ``SubscriberHub.add``."""

    def __init__(
        self,
        hub: SubscriberHub,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        self.id = next(_ids)
        self.path = path
        self._hub = hub
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._hub.discard(self)

    def _deliver(self, snapshot: Snapshot) -> None:
        if not self._active:
            return
        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception("sheetsync: snapshot listener failed for %s", self.path)

    def _fail(self, error: StoreError) -> None:
        if not self._active:
            return
        self._active = False
        self._hub.discard(self)
        if self._on_error is None:
            logger.error("sheetsync: subscription to %s failed: %s", self.path, error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("sheetsync: error listener failed for %s", self.path)


class SubscriberHub:
    """Track subscribers per document path and schedule deliveries."""

    def __init__(self) -> None:
        self._subs: dict[str, list[HubSubscription]] = {}

    def add(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> HubSubscription:
        sub = HubSubscription(self, path, on_snapshot, on_error)
        self._subs.setdefault(path, []).append(sub)
        return sub

    def discard(self, sub: HubSubscription) -> None:
        subs = self._subs.get(sub.path)
        if not subs:
            return
        try:
            subs.remove(sub)
        except ValueError:
            pass
        if not subs:
            del self._subs[sub.path]

    def count(self, path: str | None = None) -> int:
        """Number of live subscriptions, optionally for one *path*."""
        if path is not None:
            return len(self._subs.get(path, []))
        return sum(len(subs) for subs in self._subs.values())

    def deliver_to(self, sub: HubSubscription, snapshot: Snapshot) -> None:
        """Schedule delivery of *snapshot* to a single subscriber."""
        _loop().call_soon(sub._deliver, snapshot)

    def publish(self, snapshot: Snapshot) -> None:
        """Schedule delivery of *snapshot* to every subscriber of its path."""
        subs = list(self._subs.get(snapshot.path, []))
        if not subs:
            return
        loop = _loop()
        for sub in subs:
            loop.call_soon(sub._deliver, snapshot)

    def fail_all(self, error: StoreError, path: str | None = None) -> None:
        """Terminate subscriptions (all, or those on *path*) with *error*."""
        if path is None:
            subs = [s for group in self._subs.values() for s in group]
        else:
            subs = list(self._subs.get(path, []))
        for sub in subs:
            sub._fail(error)


def _loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise StoreError("Subscriptions require a running event loop") from None
