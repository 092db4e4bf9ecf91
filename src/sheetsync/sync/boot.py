"""Boot sequencing: wire one page to its documents.

Order matters and is fixed here:

1. resolve identity (which character/page documents to bind)
2. scan the registry (the page must have finished rendering)
3. load the layout once
4. attach local listeners
5. bind the field document and go live

Everything a session needs lives on the returned ``SheetSession``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from sheetsync.core.config import (
    DEFAULT_CHAR_ID,
    DEFAULT_PAGE_ID,
    default_config,
    get_debounce_seconds,
    get_tracks,
    validate_config,
)
from sheetsync.core.ids import SheetIdentity, generate_client_id, resolve_identity
from sheetsync.core.page import Page
from sheetsync.core.registry import FieldRegistry
from sheetsync.core.status import ConnectionStatus, StatusBoard
from sheetsync.core.tracks import TrackEngine
from sheetsync.storage.base import DocumentStore, InitializationFailure, InvalidPath
from sheetsync.storage.files import FileDocumentStore
from sheetsync.storage.fs import STORE_DIR, StoreRootError, find_root
from sheetsync.storage.memory import MemoryDocumentStore
from sheetsync.sync.capture import LocalChangeCapture
from sheetsync.sync.channel import RemoteSyncChannel
from sheetsync.sync.debounce import Scheduler
from sheetsync.sync.layout import LayoutChannel

logger = logging.getLogger(__name__)


@dataclass
class SheetSession:
    """Context object holding every component of one bound page."""

    identity: SheetIdentity
    page: Page
    registry: FieldRegistry
    engine: TrackEngine
    status: StatusBoard
    client_id: str
    store: DocumentStore | None = None
    capture: LocalChangeCapture | None = None
    channel: RemoteSyncChannel | None = None
    layout: LayoutChannel | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def local_only(self) -> bool:
        return self.channel is None

    async def save_layout(self) -> bool:
        if self.layout is None:
            return False
        return await self.layout.save()

    async def flush(self) -> None:
        """Push pending edits now and wait for in-flight pushes."""
        if self.capture is not None:
            self.capture.flush()
        if self.channel is not None:
            await self.channel.drain()

    def close(self) -> None:
        if self.capture is not None:
            self.capture.detach()
        if self.channel is not None:
            self.channel.close()


def _identity_for(query: str | dict | None, config: dict) -> SheetIdentity:
    defaults = config.get("defaults", {})
    return resolve_identity(
        query,
        default_char=defaults.get("char", DEFAULT_CHAR_ID),
        default_page=defaults.get("page", DEFAULT_PAGE_ID),
    )


async def boot(
    page: Page,
    store: DocumentStore,
    query: str | dict | None = None,
    config: dict | None = None,
    scheduler: Scheduler | None = None,
    status: StatusBoard | None = None,
) -> SheetSession:
    """Bind *page* to *store* and return the live session."""
    config = config or dict(default_config())
    status = status or StatusBoard()
    tracks = get_tracks(config)

    try:
        identity = _identity_for(query, config)
    except InvalidPath as exc:
        logger.error("sheetsync: cannot bind page to %r: %s", query, exc)
        return boot_local_only(page, query, config, status, error=exc)
    status.set_meta(identity.describe())

    registry = FieldRegistry(page, tracks)
    registry.scan()
    engine = TrackEngine(page, tracks)

    session = SheetSession(
        identity=identity,
        page=page,
        registry=registry,
        engine=engine,
        status=status,
        client_id=generate_client_id(),
        store=store,
    )

    session.layout = LayoutChannel(store, page, identity.layout_path, status)
    await session.layout.load()

    session.capture = LocalChangeCapture(
        registry,
        delay=get_debounce_seconds(config),
        scheduler=scheduler,
        status=status,
    )
    session.channel = RemoteSyncChannel(
        store,
        registry,
        engine,
        status,
        capture=session.capture,
        persist_track_clears=config.get("persist_track_clears", True),
    )
    session.capture.attach(session.channel.schedule_push)

    await session.channel.bind(identity.field_path)
    logger.info("sheetsync: %s bound to %s", session.client_id, identity.field_path)
    return session


def boot_local_only(
    page: Page,
    query: str | dict | None = None,
    config: dict | None = None,
    status: StatusBoard | None = None,
    error: Exception | None = None,
) -> SheetSession:
    """Degraded session: local editing and track limits, no persistence."""
    config = config or dict(default_config())
    status = status or StatusBoard()
    tracks = get_tracks(config)

    try:
        identity = _identity_for(query, config)
    except InvalidPath as exc:
        identity = _identity_for(None, config)
        error = error or exc
    status.set_meta(identity.describe())

    registry = FieldRegistry(page, tracks)
    registry.scan()
    engine = TrackEngine(page, tracks)
    engine.enforce(registry.read_all())

    session = SheetSession(
        identity=identity,
        page=page,
        registry=registry,
        engine=engine,
        status=status,
        client_id=generate_client_id(),
    )
    if error is not None:
        session.errors.append(str(error))
    status.set(ConnectionStatus.CONNECTION_ERROR)
    return session


async def open_store(config: dict, base_dir: Path | None = None) -> DocumentStore:
    """Build the store described by ``config["store"]``.

    Raises:
        InitializationFailure: If the store section is invalid or the store
            cannot be reached.
    """
    problems = [p for p in validate_config(config) if p.startswith("store")]
    if problems:
        raise InitializationFailure("; ".join(problems))

    store_config = config.get("store", {})
    kind = store_config.get("kind", "memory")

    if kind == "memory":
        return MemoryDocumentStore()

    if kind == "file":
        root_value = store_config.get("root")
        if root_value:
            root = Path(root_value)
            if base_dir is not None and not root.is_absolute():
                root = base_dir / root
        else:
            try:
                root = find_root(base_dir)
            except StoreRootError as exc:
                raise InitializationFailure(str(exc)) from exc
            if root is None:
                raise InitializationFailure(f"No {STORE_DIR}/ directory found")
        return FileDocumentStore(root / STORE_DIR)

    from sheetsync.sync.client import RemoteDocumentStore

    return await RemoteDocumentStore.connect(store_config["url"])


async def boot_from_config(
    page: Page,
    config: dict,
    query: str | dict | None = None,
    base_dir: Path | None = None,
    scheduler: Scheduler | None = None,
    status: StatusBoard | None = None,
) -> SheetSession:
    """Open the configured store and boot; fall back to local-only on failure."""
    try:
        store = await open_store(config, base_dir)
    except InitializationFailure as exc:
        logger.error("sheetsync: store unavailable, editing locally only: %s", exc)
        return boot_local_only(page, query, config, status, error=exc)
    return await boot(page, store, query, config, scheduler, status)
