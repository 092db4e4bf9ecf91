"""Tests for the layout channel."""

from __future__ import annotations

import asyncio

from sheetsync.core.page import build_page
from sheetsync.core.status import ConnectionStatus
from sheetsync.storage.memory import MemoryDocumentStore
from sheetsync.sync.layout import LayoutChannel

PATH = "layouts/core"


class TestLayoutChannel:
    def test_load_applies_entries(self, status) -> None:
        page = build_page(["name", "notes"])
        store = MemoryDocumentStore(
            {PATH: {"fields": {"name": {"top": 10, "width": 200}, "ghost": {"top": 1}}, "updatedAt": 1}}
        )
        channel = LayoutChannel(store, page, PATH, status)
        applied = asyncio.run(channel.load())
        assert applied == ["name"]
        assert page.find("name").style == {"top": "10px"}
        assert page.control("name").style == {"width": "200px"}
        assert page.find("notes").style == {}
        assert "ghost" in channel.loaded

    def test_load_missing_document(self, status) -> None:
        channel = LayoutChannel(MemoryDocumentStore(), build_page(["name"]), PATH, status)
        assert asyncio.run(channel.load()) == []
        assert channel.loaded == {}
        assert not status.history

    def test_load_failure_leaves_defaults(self, flaky_store, status) -> None:
        flaky_store.fail_get = True
        page = build_page(["name"])
        channel = LayoutChannel(flaky_store, page, PATH, status)
        assert asyncio.run(channel.load()) == []
        assert page.find("name").style == {}
        assert not status.history

    def test_save_writes_collected_layout(self, status) -> None:
        store = MemoryDocumentStore()
        page = build_page(["name", "notes"])
        page.find("name").style["left"] = "15px"
        page.control("name").style["height"] = "30px"
        channel = LayoutChannel(store, page, PATH, status, clock=lambda: 77)
        assert asyncio.run(channel.save()) is True
        assert store.peek(PATH) == {"fields": {"name": {"left": 15, "height": 30}}, "updatedAt": 77}
        assert status.status is ConnectionStatus.SYNCED

    def test_save_merges_with_other_pages_entries(self, status) -> None:
        store = MemoryDocumentStore({PATH: {"fields": {"portrait": {"top": 1}}, "updatedAt": 1}})
        page = build_page(["name"])
        page.find("name").style["top"] = "2px"
        asyncio.run(LayoutChannel(store, page, PATH, status).save())
        assert store.peek(PATH)["fields"] == {"portrait": {"top": 1}, "name": {"top": 2}}

    def test_save_failure(self, flaky_store, status) -> None:
        flaky_store.fail_set = True
        channel = LayoutChannel(flaky_store, build_page(["name"]), PATH, status)
        assert asyncio.run(channel.save()) is False
        assert status.status is ConnectionStatus.SYNC_FAILED

    def test_reload_reapplies(self, status) -> None:
        store = MemoryDocumentStore({PATH: {"fields": {"name": {"top": 1}}, "updatedAt": 1}})
        page = build_page(["name"])
        channel = LayoutChannel(store, page, PATH, status)
        asyncio.run(channel.load())
        asyncio.run(store.set(PATH, {"fields": {"name": {"top": 9}}}))
        asyncio.run(channel.reload_layout())
        assert page.find("name").style["top"] == "9px"

    def test_without_status_board(self) -> None:
        channel = LayoutChannel(MemoryDocumentStore(), build_page(["name"]), PATH)
        assert asyncio.run(channel.save()) is True
