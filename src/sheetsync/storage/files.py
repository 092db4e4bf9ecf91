"""File-backed document store.

Each document is a JSON file at ``<store_dir>/docs/<path>.json``.  Writes
take a per-document file lock, merge against what is on disk and land via
``atomic_write()`` so concurrent processes never observe torn documents.
Live subscriptions are in-process: they see every write made through this
store instance (the websocket server relies on that).
"""

from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path

from sheetsync.storage.base import (
    ErrorCallback,
    InitializationFailure,
    ReadFailure,
    Snapshot,
    SnapshotCallback,
    WriteFailure,
    validate_path,
)
from sheetsync.storage.bus import HubSubscription, SubscriberHub
from sheetsync.storage.documents import merge_payload
from sheetsync.storage.fs import atomic_write
from sheetsync.storage.locks import LockTimeout, document_lock, lock_key


class FileDocumentStore:
    """``DocumentStore`` persisting JSON documents under a directory."""

    def __init__(self, store_dir: Path, lock_timeout: float = 10) -> None:
        self.store_dir = Path(store_dir)
        self.docs_dir = self.store_dir / "docs"
        self.locks_dir = self.store_dir / "locks"
        self.lock_timeout = lock_timeout
        try:
            self.docs_dir.mkdir(parents=True, exist_ok=True)
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InitializationFailure(
                f"Cannot prepare store directory {self.store_dir}: {exc}"
            ) from exc
        self._hub = SubscriberHub()

    async def get(self, path: str) -> Snapshot:
        path = validate_path(path)
        return await asyncio.to_thread(self._read_snapshot, path)

    async def set(self, path: str, payload: dict, merge: bool = True) -> None:
        path = validate_path(path)
        if not isinstance(payload, dict):
            raise WriteFailure(f"Payload for {path} must be a mapping")
        snapshot = await asyncio.to_thread(self._write, path, payload, merge)
        self._hub.publish(snapshot)

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> HubSubscription:
        path = validate_path(path)
        sub = self._hub.add(path, on_snapshot, on_error)
        try:
            snapshot = self._read_snapshot(path)
        except ReadFailure as exc:
            sub._fail(exc)
            return sub
        self._hub.deliver_to(sub, snapshot)
        return sub

    def has(self, path: str) -> bool:
        return self._doc_path(validate_path(path)).exists()

    def remove(self, path: str) -> None:
        """Delete a document from disk (subscribers are not notified)."""
        doc_path = self._doc_path(validate_path(path))
        if doc_path.exists():
            doc_path.unlink()

    def list_paths(self, prefix: str = "") -> list[str]:
        """Return every stored document path under *prefix*, sorted."""
        base = self.docs_dir
        if prefix:
            base = self.docs_dir / validate_path(prefix)
        if not base.is_dir():
            return []
        paths = []
        for file in base.rglob("*.json"):
            rel = file.relative_to(self.docs_dir).with_suffix("")
            paths.append(rel.as_posix())
        return sorted(paths)

    def subscriber_count(self, path: str | None = None) -> int:
        return self._hub.count(validate_path(path) if path is not None else None)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read_snapshot(self, path: str) -> Snapshot:
        data = self._read(path)
        if data is None:
            return Snapshot(path=path, exists=False)
        return Snapshot(path=path, exists=True, data=data)

    def _read(self, path: str) -> dict | None:
        doc_path = self._doc_path(path)
        try:
            raw = doc_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise ReadFailure(f"Cannot read {path}: {exc}") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ReadFailure(f"Corrupt document {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ReadFailure(f"Corrupt document {path}: top level is not an object")
        return data

    def _write(self, path: str, payload: dict, merge: bool) -> Snapshot:
        doc_path = self._doc_path(path)
        try:
            doc_path.parent.mkdir(parents=True, exist_ok=True)
            with document_lock(self.locks_dir, lock_key(path), self.lock_timeout):
                if merge:
                    try:
                        existing = self._read(path)
                    except ReadFailure as exc:
                        raise WriteFailure(str(exc)) from exc
                    data = merge_payload(existing, payload)
                else:
                    data = copy.deepcopy(payload)
                atomic_write(doc_path, json.dumps(data, sort_keys=True, indent=2) + "\n")
        except LockTimeout as exc:
            raise WriteFailure(str(exc)) from exc
        except (OSError, TypeError, ValueError) as exc:
            raise WriteFailure(f"Cannot write {path}: {exc}") from exc
        return Snapshot(path=path, exists=True, data=data)

    def _doc_path(self, path: str) -> Path:
        return self.docs_dir / f"{path}.json"
