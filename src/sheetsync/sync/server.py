"""WebSocket server exposing a document store to many page clients.

Each connection gets an outbound queue drained by one writer task, so
replies and snapshot deliveries reach the client in the order the server
produced them.  Subscriptions opened by a connection are released when it
disconnects.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from sheetsync.storage.base import (
    DocumentStore,
    InvalidPath,
    Snapshot,
    StoreError,
    Subscription,
)
from sheetsync.sync import wire

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9810


class _ClientConnection:
    """Per-connection state: identity, subscriptions and outbound queue."""

    def __init__(self, websocket: Any) -> None:
        self.websocket = websocket
        self.client_id: str | None = None
        self.subs: dict[int, Subscription] = {}
        self._queue: asyncio.Queue[dict | None] = asyncio.Queue()
        self._writer = asyncio.get_running_loop().create_task(self._drain())

    @property
    def label(self) -> str:
        return self.client_id or f"conn-{id(self.websocket):x}"

    def enqueue(self, frame: dict) -> None:
        self._queue.put_nowait(frame)

    def send_snapshot(self, sub: int, snapshot: Snapshot) -> None:
        self.enqueue(wire.snapshot_frame(sub, snapshot))

    def send_subscription_error(self, sub: int, error: StoreError) -> None:
        self.subs.pop(sub, None)
        self.enqueue(wire.error("subscription_failed", str(error), sub=sub))

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            try:
                await self.websocket.send(wire.encode(frame))
            except ConnectionClosed:
                return

    async def close(self) -> None:
        for subscription in self.subs.values():
            subscription.unsubscribe()
        self.subs.clear()
        self._queue.put_nowait(None)
        await self._writer


class StoreServer:
    """Serve *store* over WebSocket."""

    def __init__(
        self,
        store: DocumentStore,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        self.store = store
        self.host = host
        self.port = port
        self._clients: dict[int, _ClientConnection] = {}
        self._server: Any = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def start(self) -> None:
        """Bind the listening socket.  ``port=0`` picks a free port."""
        self._server = await websockets.serve(self._handle_client, self.host, self.port)
        sockets = getattr(self._server, "sockets", None) or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        print(f"sheetsync: serving ws://{self.host}:{self.port}", file=sys.stderr)

    async def run_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Future()  # block forever
        finally:
            await self.stop()

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(self, websocket: Any, path: Any = None) -> None:  # noqa: ARG002
        conn = _ClientConnection(websocket)
        self._clients[id(conn)] = conn
        try:
            async for raw in websocket:
                await self._handle_message(conn, raw)
        except ConnectionClosed:
            pass
        finally:
            del self._clients[id(conn)]
            await conn.close()
            logger.info("sheetsync: %s disconnected", conn.label)

    async def _handle_message(self, conn: _ClientConnection, raw: str | bytes) -> None:
        try:
            message = wire.validate_request(wire.decode(raw))
        except wire.ProtocolError as exc:
            request_id = None
            try:
                candidate = wire.decode(raw).get("id")
                if isinstance(candidate, int) and not isinstance(candidate, bool):
                    request_id = candidate
            except wire.ProtocolError:
                pass
            conn.enqueue(wire.error("bad_request", str(exc), id=request_id))
            return

        op = message["op"]
        request_id = message["id"]

        if op == "hello":
            conn.client_id = str(message.get("client") or "") or None
            logger.info("sheetsync: %s connected", conn.label)
            conn.enqueue(wire.result(request_id, version=wire.PROTOCOL_VERSION))

        elif op == "get":
            try:
                snapshot = await self.store.get(message["path"])
            except InvalidPath as exc:
                conn.enqueue(wire.error("invalid_path", str(exc), id=request_id))
            except StoreError as exc:
                logger.warning("sheetsync: get %s failed: %s", message["path"], exc)
                conn.enqueue(wire.error("read_failed", str(exc), id=request_id))
            else:
                conn.enqueue(wire.result(request_id, snapshot=wire.snapshot_to_wire(snapshot)))

        elif op == "set":
            try:
                await self.store.set(
                    message["path"], message["payload"], merge=message.get("merge", True)
                )
            except InvalidPath as exc:
                conn.enqueue(wire.error("invalid_path", str(exc), id=request_id))
            except StoreError as exc:
                logger.warning("sheetsync: set %s failed: %s", message["path"], exc)
                conn.enqueue(wire.error("write_failed", str(exc), id=request_id))
            else:
                conn.enqueue(wire.result(request_id))

        elif op == "subscribe":
            # result first; the initial snapshot is delivered on a later loop turn
            conn.enqueue(wire.result(request_id))
            try:
                subscription = self.store.subscribe(
                    message["path"],
                    lambda snapshot, sub=request_id: conn.send_snapshot(sub, snapshot),
                    lambda error, sub=request_id: conn.send_subscription_error(sub, error),
                )
            except StoreError as exc:
                conn.send_subscription_error(request_id, exc)
            else:
                if subscription.active:
                    conn.subs[request_id] = subscription

        elif op == "unsubscribe":
            subscription = conn.subs.pop(message["sub"], None)
            if subscription is not None:
                subscription.unsubscribe()
            conn.enqueue(wire.result(request_id))
