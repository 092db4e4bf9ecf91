"""Page ↔ document synchronization: capture, channels and boot."""

from __future__ import annotations

from sheetsync.sync.boot import SheetSession, boot, boot_from_config, boot_local_only
from sheetsync.sync.capture import LocalChangeCapture
from sheetsync.sync.channel import ChannelState, RemoteSyncChannel
from sheetsync.sync.debounce import Debouncer, LoopScheduler, VirtualScheduler
from sheetsync.sync.layout import LayoutChannel

__all__ = [
    "ChannelState",
    "Debouncer",
    "LayoutChannel",
    "LocalChangeCapture",
    "LoopScheduler",
    "RemoteSyncChannel",
    "SheetSession",
    "VirtualScheduler",
    "boot",
    "boot_from_config",
    "boot_local_only",
]
