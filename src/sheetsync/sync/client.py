"""WebSocket ``DocumentStore`` client talking to a ``StoreServer``."""

from __future__ import annotations

import asyncio
import itertools
import logging
import sys
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from sheetsync.core.ids import generate_client_id
from sheetsync.storage.base import (
    ErrorCallback,
    InitializationFailure,
    InvalidPath,
    ReadFailure,
    Snapshot,
    SnapshotCallback,
    StoreError,
    SubscriptionError,
    WriteFailure,
    validate_path,
)
from sheetsync.sync import wire

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RemoteSubscription:
    """Client-side handle for a server subscription."""

    def __init__(
        self,
        store: RemoteDocumentStore,
        sub_id: int,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        self.id = sub_id
        self.path = path
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._store._forget(self)

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
        self._store._subs.pop(self.id, None)
        if self._on_error is None:
            logger.error("sheetsync: subscription to %s failed: %s", self.path, error)
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("sheetsync: error listener failed for %s", self.path)


class RemoteDocumentStore:
    """Talk to a sheetsync server at *url* (``ws://host:port``).

    Use ``await RemoteDocumentStore.connect(url)``.  When the connection
    drops, in-flight requests fail with ``ReadFailure``/``WriteFailure`` and
    every live subscription ends with ``SubscriptionError``.  There is no
    automatic reconnect.
    """

    def __init__(
        self,
        url: str,
        client_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.url = url
        self.client_id = client_id or generate_client_id()
        self.timeout = timeout
        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, tuple[asyncio.Future, type[StoreError]]] = {}
        self._subs: dict[int, RemoteSubscription] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    async def connect(
        cls,
        url: str,
        client_id: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> RemoteDocumentStore:
        store = cls(url, client_id, timeout)
        await store.open()
        return store

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    async def open(self) -> None:
        try:
            self._ws = await websockets.connect(self.url, open_timeout=self.timeout)
        except (OSError, asyncio.TimeoutError, InvalidURI, InvalidHandshake) as exc:
            raise InitializationFailure(f"Cannot connect to {self.url}: {exc}") from exc
        self._reader = asyncio.get_running_loop().create_task(self._read_loop())
        try:
            await self._request("hello", InitializationFailure, client=self.client_id)
        except InitializationFailure:
            await self.close()
            raise
        print(f"sheetsync: connected to {self.url} as {self.client_id}", file=sys.stderr)

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._fail_everything("connection closed")

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def get(self, path: str) -> Snapshot:
        path = validate_path(path)
        reply = await self._request("get", ReadFailure, path=path)
        try:
            return wire.snapshot_from_wire(reply.get("snapshot"))
        except wire.ProtocolError as exc:
            raise ReadFailure(f"Malformed reply for {path}: {exc}") from exc

    async def set(self, path: str, payload: dict, merge: bool = True) -> None:
        path = validate_path(path)
        await self._request("set", WriteFailure, path=path, payload=payload, merge=merge)

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> RemoteSubscription:
        path = validate_path(path)
        sub = RemoteSubscription(self, next(self._ids), path, on_snapshot, on_error)
        if not self.connected:
            sub._fail(SubscriptionError(f"Not connected to {self.url}"))
            return sub
        self._subs[sub.id] = sub
        self._spawn(self._send_subscribe(sub))
        return sub

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _request(self, op: str, failure: type[StoreError], **fields: object) -> dict:
        if not self.connected:
            raise failure(f"Not connected to {self.url}")
        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (future, failure)
        try:
            await self._ws.send(wire.encode(wire.request(op, request_id, **fields)))
            return await asyncio.wait_for(future, self.timeout)
        except ConnectionClosed as exc:
            raise failure(f"Connection to {self.url} closed") from exc
        except asyncio.TimeoutError as exc:
            raise failure(f"'{op}' timed out after {self.timeout}s") from exc
        finally:
            self._pending.pop(request_id, None)

    async def _send_subscribe(self, sub: RemoteSubscription) -> None:
        frame = wire.request("subscribe", sub.id, path=sub.path)
        try:
            await self._ws.send(wire.encode(frame))
        except ConnectionClosed as exc:
            sub._fail(SubscriptionError(f"Connection to {self.url} closed: {exc}"))

    def _forget(self, sub: RemoteSubscription) -> None:
        self._subs.pop(sub.id, None)
        if self.connected:
            frame = wire.request("unsubscribe", next(self._ids), sub=sub.id)
            self._spawn(self._send_quietly(frame))

    async def _send_quietly(self, frame: dict) -> None:
        try:
            await self._ws.send(wire.encode(frame))
        except ConnectionClosed:
            pass

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    self._dispatch(wire.decode(raw))
                except wire.ProtocolError as exc:
                    logger.warning("sheetsync: bad frame from %s: %s", self.url, exc)
        except ConnectionClosed:
            pass
        finally:
            self._fail_everything("connection lost")

    def _dispatch(self, message: dict) -> None:
        op = message["op"]
        if op == "snapshot":
            sub = self._subs.get(message.get("sub"))
            if sub is not None:
                sub._deliver(wire.snapshot_from_wire(message.get("snapshot")))
            return

        if op == "error" and "sub" in message:
            sub = self._subs.get(message["sub"])
            if sub is not None:
                sub._fail(SubscriptionError(message.get("message", "subscription failed")))
            return

        entry = self._pending.get(message.get("id"))
        if entry is None:
            return
        future, failure = entry
        if future.done():
            return
        if op == "result":
            future.set_result(message)
        elif op == "error":
            text = message.get("message", "request failed")
            if message.get("code") == "invalid_path":
                future.set_exception(InvalidPath(text))
            else:
                future.set_exception(failure(text))

    def _fail_everything(self, reason: str) -> None:
        self._closed = True
        for future, failure in list(self._pending.values()):
            if not future.done():
                future.set_exception(failure(f"{reason}: {self.url}"))
        self._pending.clear()
        for sub in list(self._subs.values()):
            sub._fail(SubscriptionError(f"{reason}: {self.url}"))
        self._subs.clear()
