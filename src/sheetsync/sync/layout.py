"""Layout channel: per-field position/size persisted in a second document.

Read once at boot and written only on an explicit save; there is no live
subscription.  Layout is cosmetic, so a failed load is logged and leaves
default styling in place.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sheetsync.core.layout import apply_layout, collect_layout
from sheetsync.core.page import Page
from sheetsync.core.status import ConnectionStatus, StatusBoard
from sheetsync.storage.base import DocumentStore, StoreError, validate_path
from sheetsync.storage.documents import document_fields, layout_document, now_ms

logger = logging.getLogger(__name__)


class LayoutChannel:
    """Load, apply and save the layout document for one page."""

    def __init__(
        self,
        store: DocumentStore,
        page: Page,
        path: str,
        status: StatusBoard | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.page = page
        self.path = validate_path(path)
        self.status = status
        self.clock = clock
        self.loaded: dict[str, dict] = {}

    async def load(self) -> list[str]:
        """Read the layout document and apply it.  Returns the keys styled."""
        try:
            snapshot = await self.store.get(self.path)
        except StoreError:
            logger.exception("sheetsync: loading layout %s failed", self.path)
            return []
        if not snapshot.exists:
            logger.debug("sheetsync: no layout stored at %s", self.path)
            self.loaded = {}
            return []
        self.loaded = document_fields(snapshot.data)
        return self.apply_layout(self.loaded)

    def apply_layout(self, entries: dict) -> list[str]:
        return apply_layout(self.page, entries)

    def collect_layout_from_dom(self) -> dict[str, dict]:
        return collect_layout(self.page)

    async def save(self) -> bool:
        """Merge-write the current positions and sizes.  Never raises."""
        payload = layout_document(self.collect_layout_from_dom(), self.clock())
        try:
            await self.store.set(self.path, payload, merge=True)
        except StoreError:
            logger.exception("sheetsync: saving layout %s failed", self.path)
            if self.status is not None:
                self.status.set(ConnectionStatus.SYNC_FAILED)
            return False
        if self.status is not None:
            self.status.set(ConnectionStatus.SYNCED)
        return True

    async def reload_layout(self) -> list[str]:
        return await self.load()
