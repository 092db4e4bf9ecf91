"""Connection status surfaced to the page's status display.

The board is the only piece of process-wide state the sync layer shares:
every channel reports into the same ``StatusBoard`` and a display
collaborator listens for changes.
"""

from __future__ import annotations

import enum
import logging
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Most recent status changes kept on the board.
HISTORY_LIMIT = 200


class ConnectionStatus(enum.Enum):
    UNKNOWN = "unknown"
    SYNCING = "syncing"
    SYNCED = "synced"
    SYNC_FAILED = "sync-failed"
    CONNECTED_NEW = "connected-new"
    CONNECTED_LOADED = "connected-loaded"
    UPDATED_FROM_CLOUD = "updated-from-cloud"
    CONNECTION_ERROR = "connection-error"

    @property
    def text(self) -> str:
        return STATUS_TEXT[self]


STATUS_TEXT: dict[ConnectionStatus, str] = {
    ConnectionStatus.UNKNOWN: "Connecting…",
    ConnectionStatus.SYNCING: "Syncing…",
    ConnectionStatus.SYNCED: "Synced ✔",
    ConnectionStatus.SYNC_FAILED: "Sync failed ❌ (check console)",
    ConnectionStatus.CONNECTED_NEW: "Connected (new sheet) 🔄",
    ConnectionStatus.CONNECTED_LOADED: "Connected (loaded from cloud) ✔",
    ConnectionStatus.UPDATED_FROM_CLOUD: "Updated from cloud 🔄",
    ConnectionStatus.CONNECTION_ERROR: "Connection error ❌ (see console)",
}

StatusListener = Callable[["StatusBoard"], None]


class StatusBoard:
    """Holds the current connection status and the page meta line."""

    def __init__(self) -> None:
        self.status = ConnectionStatus.UNKNOWN
        self.meta = ""
        self.history: deque[ConnectionStatus] = deque(maxlen=HISTORY_LIMIT)
        self._listeners: list[StatusListener] = []

    @property
    def text(self) -> str:
        return self.status.text

    def set(self, status: ConnectionStatus) -> None:
        self.status = status
        self.history.append(status)
        self._notify()

    def set_meta(self, meta: str) -> None:
        self.meta = meta
        self._notify()

    def register_listener(self, fn: StatusListener) -> None:
        self._listeners.append(fn)

    def unregister_listener(self, fn: StatusListener) -> None:
        try:
            self._listeners.remove(fn)
        except ValueError:
            pass

    def _notify(self) -> None:
        for fn in list(self._listeners):
            try:
                fn(self)
            except Exception:
                logger.exception("sheetsync: status listener failed")
