"""Local change capture: user edits → one debounced outbound write."""

from __future__ import annotations

import logging
from collections.abc import Callable

from sheetsync.core.config import DEFAULT_DEBOUNCE_MS
from sheetsync.core.page import Control
from sheetsync.core.registry import FieldRegistry
from sheetsync.core.status import ConnectionStatus, StatusBoard
from sheetsync.sync.debounce import Debouncer, Scheduler

logger = logging.getLogger(__name__)


class LocalChangeCapture:
    """Listen on every registered control and coalesce edits.

    Checkbox controls are watched on ``change``, text controls on ``input``.
    Every trigger re-arms one shared trailing-edge debouncer, so a burst of
    edits yields exactly one ``on_change`` call, ``delay`` seconds after the
    last edit.  A write already in flight never blocks new edits from
    re-arming the timer.
    """

    def __init__(
        self,
        registry: FieldRegistry,
        delay: float = DEFAULT_DEBOUNCE_MS / 1000.0,
        scheduler: Scheduler | None = None,
        status: StatusBoard | None = None,
    ) -> None:
        self.registry = registry
        self.status = status
        self._debouncer = Debouncer(self._fire, delay, scheduler)
        self._on_change: Callable[[], None] | None = None
        self._pending: set[str] = set()
        self._attached: list[tuple[Control, str, Callable[[Control], None]]] = []

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def pending_keys(self) -> frozenset[str]:
        """Keys edited since the last debounced callback fired."""
        return frozenset(self._pending)

    @property
    def attached(self) -> bool:
        return bool(self._attached)

    def attach(self, on_change: Callable[[], None]) -> int:
        """Register listeners on every field; returns how many were attached."""
        self.detach()
        self._on_change = on_change
        for field in self.registry.fields:
            listener = self._make_listener(field.key)
            field.control.add_event_listener(field.kind.event, listener)
            self._attached.append((field.control, field.kind.event, listener))
        return len(self._attached)

    def detach(self) -> None:
        for control, event, listener in self._attached:
            control.remove_event_listener(event, listener)
        self._attached = []
        self._on_change = None
        self._debouncer.cancel()
        self._pending.clear()

    def schedule(self) -> None:
        """Arm the debouncer without a user edit (e.g. after a track clear)."""
        if self._on_change is None:
            return
        self._debouncer.trigger()

    def flush(self) -> bool:
        """Fire a pending write immediately."""
        return self._debouncer.flush()

    def _make_listener(self, key: str) -> Callable[[Control], None]:
        def _listener(_control: Control) -> None:
            self._pending.add(key)
            if self.status is not None:
                self.status.set(ConnectionStatus.SYNCING)
            self._debouncer.trigger()

        return _listener

    def _fire(self) -> None:
        self._pending.clear()
        if self._on_change is not None:
            self._on_change()
