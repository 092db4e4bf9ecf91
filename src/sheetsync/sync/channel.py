"""Remote sync channel: bind one field document to the page.

Two flows:
1. Local edit → (debounced) ``push()`` → merge-write ``{fields, updatedAt}``
2. Remote snapshot → ``apply_all`` + track ``enforce`` → page

Echo suppression: the channel keeps a watermark, the highest ``updatedAt``
it has pushed or applied.  A delivered snapshot whose ``updatedAt`` is at or
below the watermark is either our own write coming back or older than what
we already show, and is ignored.  Outgoing timestamps are kept strictly
above the watermark.

Every store failure is caught here, logged, and turned into a connection
status; nothing propagates into the event loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable

from sheetsync.core.registry import FieldRegistry
from sheetsync.core.status import ConnectionStatus, StatusBoard
from sheetsync.core.tracks import TrackEngine
from sheetsync.storage.base import (
    DocumentStore,
    Snapshot,
    StoreError,
    Subscription,
    validate_path,
)
from sheetsync.storage.documents import document_fields, field_document, now_ms
from sheetsync.sync.capture import LocalChangeCapture

logger = logging.getLogger(__name__)


class ChannelState(enum.Enum):
    UNBOUND = "unbound"
    LOADING = "loading"
    BOUND_LIVE = "bound-live"


class RemoteSyncChannel:
    """Bidirectional binding between the field registry and one document."""

    def __init__(
        self,
        store: DocumentStore,
        registry: FieldRegistry,
        engine: TrackEngine,
        status: StatusBoard,
        capture: LocalChangeCapture | None = None,
        persist_track_clears: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.registry = registry
        self.engine = engine
        self.status = status
        self.capture = capture
        self.persist_track_clears = persist_track_clears
        self.clock = clock

        self.path: str | None = None
        self.state = ChannelState.UNBOUND
        self.push_count = 0
        self._subscription: Subscription | None = None
        self._initial_load = True
        self._watermark: int | float | None = None
        self._last_data: dict | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def watermark(self) -> int | float | None:
        return self._watermark

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    async def bind(self, path: str) -> ChannelState:
        """Load (or create) the document at *path* and go live."""
        self.close()
        try:
            self.path = validate_path(path)
        except StoreError as exc:
            logger.error("sheetsync: cannot bind %r: %s", path, exc)
            self.status.set(ConnectionStatus.CONNECTION_ERROR)
            return self.state

        self.state = ChannelState.LOADING
        self._initial_load = True
        self._watermark = None
        self._last_data = None

        try:
            snapshot = await self.store.get(self.path)
        except StoreError:
            logger.exception("sheetsync: initial load of %s failed", self.path)
            self.state = ChannelState.UNBOUND
            self.status.set(ConnectionStatus.CONNECTION_ERROR)
            return self.state

        if snapshot.exists:
            self._apply(snapshot)
        else:
            await self._create()

        self.state = ChannelState.BOUND_LIVE
        try:
            self._subscription = self.store.subscribe(
                self.path, self._on_snapshot, self._on_error
            )
        except StoreError as exc:
            self._on_error(exc)
        return self.state

    def close(self) -> None:
        """Drop the live subscription."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self.state = ChannelState.UNBOUND

    async def _create(self) -> None:
        payload = field_document(self._enforced_values(), self._next_timestamp())
        self._watermark = payload["updatedAt"]
        try:
            await self.store.set(self.path, payload, merge=True)
        except StoreError:
            logger.exception("sheetsync: creating %s failed", self.path)
            self._watermark = None
            self.status.set(ConnectionStatus.SYNC_FAILED)
            return
        self._initial_load = False
        self.status.set(ConnectionStatus.CONNECTED_NEW)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def push(self) -> bool:
        """Merge-write the registry's current values.  Never raises."""
        if self.path is None:
            logger.warning("sheetsync: push requested before bind; ignored")
            return False

        previous = self._watermark
        payload = field_document(self._enforced_values(), self._next_timestamp())
        self._watermark = payload["updatedAt"]
        try:
            await self.store.set(self.path, payload, merge=True)
        except StoreError:
            logger.exception("sheetsync: push to %s failed", self.path)
            if self._watermark == payload["updatedAt"]:
                self._watermark = previous
            self.status.set(ConnectionStatus.SYNC_FAILED)
            return False

        self.push_count += 1
        self.status.set(ConnectionStatus.SYNCED)
        return True

    def schedule_push(self) -> asyncio.Task:
        """Start ``push()`` as a task on the running loop."""
        task = asyncio.get_running_loop().create_task(self.push())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled push to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _enforced_values(self) -> dict:
        # Our own writes never come back through _apply, so track limits
        # edited on this page are enforced here, before they are written.
        cleared = self.engine.enforce(self.registry.read_all())
        if cleared:
            logger.debug("sheetsync: track limits cleared %s before push", cleared)
        return self.registry.read_all()

    def _next_timestamp(self) -> int | float:
        ts = self.clock()
        if self._watermark is not None and ts <= self._watermark:
            ts = self._watermark + 1
        return ts

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        if self.state is not ChannelState.BOUND_LIVE:
            return
        if not snapshot.exists:
            logger.warning("sheetsync: %s is missing from the store; recreating", self.path)
            # the page is now the source of truth for this document
            self._initial_load = False
            self.status.set(ConnectionStatus.CONNECTED_NEW)
            self.schedule_push()
            return
        self._apply(snapshot)

    def _on_error(self, error: StoreError) -> None:
        logger.error("sheetsync: live feed for %s failed: %s", self.path, error)
        self._subscription = None
        self.state = ChannelState.UNBOUND
        self.status.set(ConnectionStatus.CONNECTION_ERROR)

    def _apply(self, snapshot: Snapshot) -> bool:
        """Apply a snapshot to the page.  Returns ``False`` if it was ignored."""
        data = snapshot.data or {}
        updated_at = snapshot.updated_at

        if not self._initial_load:
            if data == self._last_data:
                return False
            if updated_at is not None and self._watermark is not None and updated_at <= self._watermark:
                logger.debug(
                    "sheetsync: ignoring stale snapshot of %s (%s <= %s)",
                    self.path, updated_at, self._watermark,
                )
                return False

        fields = document_fields(data)
        pending = self.capture.pending_keys if self.capture is not None else frozenset()
        self.registry.apply_all(fields, skip=pending)

        view = dict(fields)
        for key in pending:
            field = self.registry.get(key)
            if field is not None:
                view[key] = field.value
        cleared = self.engine.enforce(view)

        self._last_data = data
        if updated_at is not None:
            self._watermark = (
                updated_at if self._watermark is None else max(self._watermark, updated_at)
            )

        if self._initial_load:
            self._initial_load = False
            self.status.set(ConnectionStatus.CONNECTED_LOADED)
        else:
            self.status.set(ConnectionStatus.UPDATED_FROM_CLOUD)

        if cleared and self.persist_track_clears and self.capture is not None:
            logger.debug("sheetsync: track limits cleared %s; scheduling push", cleared)
            self.capture.schedule()
        return True
