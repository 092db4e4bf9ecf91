"""End-to-end tests: StoreServer + RemoteDocumentStore over a real socket."""

from __future__ import annotations

import asyncio
import json

import pytest

websockets = pytest.importorskip("websockets")

from sheetsync.core.page import build_page  # noqa: E402
from sheetsync.core.status import ConnectionStatus, StatusBoard  # noqa: E402
from sheetsync.storage.base import (  # noqa: E402
    InitializationFailure,
    InvalidPath,
    ReadFailure,
    SubscriptionError,
)
from sheetsync.storage.memory import MemoryDocumentStore  # noqa: E402
from sheetsync.sync.boot import boot  # noqa: E402
from sheetsync.sync.client import RemoteDocumentStore  # noqa: E402
from sheetsync.sync.debounce import VirtualScheduler  # noqa: E402
from sheetsync.sync.server import StoreServer  # noqa: E402

PATH = "characters/alice/pages/core"


async def _wait_for(predicate, timeout: float = 3.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def _run(body, store: MemoryDocumentStore | None = None):
    """Start a server on a free port, run ``body(server, url)``, then stop it."""

    async def scenario():
        server = StoreServer(store or MemoryDocumentStore(), port=0)
        await server.start()
        try:
            return await body(server, f"ws://127.0.0.1:{server.port}")
        finally:
            await server.stop()

    return asyncio.run(scenario())


class TestRequests:
    def test_get_and_set(self) -> None:
        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            try:
                missing = await client.get(PATH)
                await client.set(PATH, {"fields": {"name": "A"}, "updatedAt": 1})
                await client.set(PATH, {"fields": {"notes": "n"}})
                found = await client.get(PATH)
            finally:
                await client.close()
            return missing, found

        missing, found = _run(body)
        assert missing.exists is False
        assert found.data == {"fields": {"name": "A", "notes": "n"}, "updatedAt": 1}

    def test_replace_write(self) -> None:
        store = MemoryDocumentStore({PATH: {"fields": {"name": "A", "notes": "n"}}})

        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            try:
                await client.set(PATH, {"fields": {"name": "B"}}, merge=False)
            finally:
                await client.close()

        _run(body, store)
        assert store.peek(PATH) == {"fields": {"name": "B"}}

    def test_invalid_path_rejected_locally(self) -> None:
        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            try:
                with pytest.raises(InvalidPath):
                    await client.get("a//b")
            finally:
                await client.close()

        _run(body)

    def test_client_count(self) -> None:
        async def body(server, url):
            first = await RemoteDocumentStore.connect(url)
            second = await RemoteDocumentStore.connect(url)
            counted = server.client_count
            await first.close()
            await _wait_for(lambda: server.client_count == 1)
            await second.close()
            return counted

        assert _run(body) == 2

    def test_bad_frames_get_error_replies(self) -> None:
        async def body(server, url):
            async with websockets.connect(url) as ws:
                await ws.send("not json")
                first = json.loads(await ws.recv())
                await ws.send(json.dumps({"op": "get", "id": 9}))
                second = json.loads(await ws.recv())
                await ws.send(json.dumps({"op": "get", "id": 10, "path": "a/../b"}))
                third = json.loads(await ws.recv())
            return first, second, third

        first, second, third = _run(body)
        assert first["code"] == "bad_request"
        assert "id" not in first
        assert second["code"] == "bad_request"
        assert second["id"] == 9
        assert third["code"] == "invalid_path"
        assert third["id"] == 10


class TestSubscriptions:
    def test_initial_then_changes_from_other_clients(self) -> None:
        async def body(server, url):
            watcher = await RemoteDocumentStore.connect(url)
            writer = await RemoteDocumentStore.connect(url)
            seen = []
            try:
                watcher.subscribe(PATH, lambda s: seen.append(s.data))
                await _wait_for(lambda: len(seen) == 1)
                await writer.set(PATH, {"n": 1})
                await writer.set(PATH, {"n": 2})
                await _wait_for(lambda: len(seen) == 3)
            finally:
                await watcher.close()
                await writer.close()
            return seen

        assert _run(body) == [None, {"n": 1}, {"n": 2}]

    def test_unsubscribe_releases_server_side(self) -> None:
        store = MemoryDocumentStore()

        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            try:
                sub = client.subscribe(PATH, lambda s: None)
                await _wait_for(lambda: store.subscriber_count(PATH) == 1)
                sub.unsubscribe()
                await _wait_for(lambda: store.subscriber_count(PATH) == 0)
                return sub.active
            finally:
                await client.close()

        assert _run(body, store) is False

    def test_disconnect_releases_server_side(self) -> None:
        store = MemoryDocumentStore()

        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            client.subscribe(PATH, lambda s: None)
            await _wait_for(lambda: store.subscriber_count(PATH) == 1)
            await client.close()
            await _wait_for(lambda: store.subscriber_count() == 0)

        _run(body, store)

    def test_server_side_failure_reaches_client(self) -> None:
        store = MemoryDocumentStore()

        async def body(server, url):
            client = await RemoteDocumentStore.connect(url)
            errors = []
            try:
                client.subscribe(PATH, lambda s: None, errors.append)
                await _wait_for(lambda: store.subscriber_count(PATH) == 1)
                store.fail_subscriptions(SubscriptionError("backend feed dropped"))
                await _wait_for(lambda: bool(errors))
            finally:
                await client.close()
            return errors

        errors = _run(body, store)
        assert isinstance(errors[0], SubscriptionError)
        assert "backend feed dropped" in str(errors[0])

    def test_server_shutdown_fails_client(self) -> None:
        async def scenario():
            server = StoreServer(MemoryDocumentStore(), port=0)
            await server.start()
            client = await RemoteDocumentStore.connect(f"ws://127.0.0.1:{server.port}")
            errors = []
            client.subscribe(PATH, lambda s: None, errors.append)
            await server.stop()
            await _wait_for(lambda: bool(errors))
            with pytest.raises(ReadFailure):
                await client.get(PATH)
            await client.close()
            return errors

        errors = asyncio.run(scenario())
        assert isinstance(errors[0], SubscriptionError)


class TestConnect:
    def test_refused(self) -> None:
        async def scenario():
            await RemoteDocumentStore.connect("ws://127.0.0.1:1", timeout=2)

        with pytest.raises(InitializationFailure):
            asyncio.run(scenario())

    def test_bad_url(self) -> None:
        with pytest.raises(InitializationFailure):
            asyncio.run(RemoteDocumentStore.connect("not a url"))


class TestTwoSheets:
    def test_edit_on_one_page_appears_on_the_other(self) -> None:
        config = {"tracks": {"hp": 6}, "debounce_ms": 500}

        async def body(server, url):
            page_a = build_page(["name"], tracks={"hp": 6})
            page_b = build_page(["name"], tracks={"hp": 6})
            status_b = StatusBoard()
            sched_a = VirtualScheduler()
            store_a = await RemoteDocumentStore.connect(url)
            store_b = await RemoteDocumentStore.connect(url)
            try:
                session_a = await boot(page_a, store_a, "char=alice", config, sched_a)
                await boot(page_b, store_b, "char=alice", config, VirtualScheduler(), status_b)
                page_a.control("name").type_text("Aria")
                page_a.control("hp_max").type_text("2")
                sched_a.advance(0.5)
                await session_a.channel.drain()
                await _wait_for(lambda: page_b.control("name").value == "Aria")
                return page_b, status_b
            finally:
                await store_a.close()
                await store_b.close()

        page_b, status_b = _run(body)
        assert status_b.status is ConnectionStatus.UPDATED_FROM_CLOUD
        assert page_b.control("hp_2").disabled
        assert not page_b.control("hp_1").disabled
