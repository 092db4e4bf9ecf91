"""JSON frames exchanged between ``RemoteDocumentStore`` and ``StoreServer``.

Requests (client → server) carry an integer ``id``::

    {"op": "hello", "id": 1, "client": "client_01J..."}
    {"op": "get", "id": 2, "path": "characters/alice/pages/core"}
    {"op": "set", "id": 3, "path": "...", "payload": {...}, "merge": true}
    {"op": "subscribe", "id": 4, "path": "..."}
    {"op": "unsubscribe", "id": 5, "sub": 4}

Replies (server → client)::

    {"op": "result", "id": 2, "snapshot": {"path": ..., "exists": ..., "data": ...}}
    {"op": "snapshot", "sub": 4, "snapshot": {...}}
    {"op": "error", "id": 3, "code": "write_failed", "message": "..."}
    {"op": "error", "sub": 4, "code": "subscription_failed", "message": "..."}

A subscription is identified by the ``id`` of the request that opened it.
"""

from __future__ import annotations

import json

from sheetsync.storage.base import Snapshot

PROTOCOL_VERSION = 1

REQUEST_OPS: frozenset[str] = frozenset({"hello", "get", "set", "subscribe", "unsubscribe"})
REPLY_OPS: frozenset[str] = frozenset({"result", "snapshot", "error"})

_PATH_OPS = frozenset({"get", "set", "subscribe"})


class ProtocolError(ValueError):
    """Raised for frames that cannot be decoded or are malformed."""


def encode(message: dict) -> str:
    return json.dumps(message, sort_keys=True, separators=(",", ":"))


def decode(raw: str | bytes) -> dict:
    """Parse one frame; raises ``ProtocolError`` if it is not a JSON object with an op."""
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Frame must be a JSON object")
    if not isinstance(message.get("op"), str):
        raise ProtocolError("Frame has no 'op'")
    return message


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_request(message: dict) -> dict:
    """Check a decoded request frame; returns it unchanged or raises."""
    op = message["op"]
    if op not in REQUEST_OPS:
        raise ProtocolError(f"Unknown request op: {op!r}")
    if not _is_int(message.get("id")):
        raise ProtocolError(f"'{op}' request needs an integer 'id'")
    if op in _PATH_OPS and not isinstance(message.get("path"), str):
        raise ProtocolError(f"'{op}' request needs a string 'path'")
    if op == "set":
        if not isinstance(message.get("payload"), dict):
            raise ProtocolError("'set' request needs an object 'payload'")
        if not isinstance(message.get("merge", True), bool):
            raise ProtocolError("'merge' must be a boolean")
    if op == "unsubscribe" and not _is_int(message.get("sub")):
        raise ProtocolError("'unsubscribe' request needs an integer 'sub'")
    return message


def request(op: str, id: int, **fields: object) -> dict:
    return {"op": op, "id": id, **fields}


def result(id: int, **fields: object) -> dict:
    return {"op": "result", "id": id, **fields}


def error(code: str, message: str, *, id: int | None = None, sub: int | None = None) -> dict:
    frame: dict = {"op": "error", "code": code, "message": message}
    if id is not None:
        frame["id"] = id
    if sub is not None:
        frame["sub"] = sub
    return frame


def snapshot_frame(sub: int, snapshot: Snapshot) -> dict:
    return {"op": "snapshot", "sub": sub, "snapshot": snapshot_to_wire(snapshot)}


def snapshot_to_wire(snapshot: Snapshot) -> dict:
    return {"path": snapshot.path, "exists": snapshot.exists, "data": snapshot.data}


def snapshot_from_wire(data: object) -> Snapshot:
    if not isinstance(data, dict) or not isinstance(data.get("path"), str):
        raise ProtocolError("Malformed snapshot")
    exists = bool(data.get("exists"))
    body = data.get("data")
    if exists and not isinstance(body, dict):
        raise ProtocolError("Snapshot marked as existing has no object body")
    return Snapshot(path=data["path"], exists=exists, data=body if exists else None)
