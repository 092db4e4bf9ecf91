"""Tests for client ids and identity resolution."""

from __future__ import annotations

import pytest

from sheetsync.core.ids import SheetIdentity, generate_client_id, resolve_identity, validate_id
from sheetsync.storage.base import InvalidPath


class TestClientIds:
    def test_prefix_and_format(self) -> None:
        client_id = generate_client_id()
        assert client_id.startswith("client_")
        assert len(client_id) == len("client_") + 26
        assert validate_id(client_id, "client")

    def test_unique(self) -> None:
        ids = {generate_client_id() for _ in range(100)}
        assert len(ids) == 100

    def test_wrong_prefix_rejected(self) -> None:
        assert not validate_id(generate_client_id(), "task")

    @pytest.mark.parametrize("bad", ["", "client", "client_", "client_not-a-ulid", None])
    def test_malformed_rejected(self, bad) -> None:
        assert not validate_id(bad, "client")


class TestResolveIdentity:
    def test_defaults_when_no_query(self) -> None:
        identity = resolve_identity(None)
        assert identity == SheetIdentity("unnamed", "core")

    def test_parses_query_string(self) -> None:
        identity = resolve_identity("?char=alice&page=spells")
        assert identity.char_id == "alice"
        assert identity.page_id == "spells"

    def test_accepts_mapping(self) -> None:
        identity = resolve_identity({"char": "bob"})
        assert identity == SheetIdentity("bob", "core")

    def test_blank_values_fall_back(self) -> None:
        identity = resolve_identity("char=&page=%20", default_char="x", default_page="y")
        assert identity == SheetIdentity("x", "y")

    def test_ignores_unrelated_params(self) -> None:
        identity = resolve_identity("theme=dark&char=alice")
        assert identity == SheetIdentity("alice", "core")

    def test_url_decoding(self) -> None:
        assert resolve_identity("char=Ann%20Lee").char_id == "Ann Lee"

    @pytest.mark.parametrize("query", ["char=a/b", "char=..", "page=x/y", "char=alice&page=."])
    def test_unusable_ids_rejected(self, query) -> None:
        with pytest.raises(InvalidPath):
            resolve_identity(query)


class TestSheetIdentity:
    def test_paths(self) -> None:
        identity = SheetIdentity("alice", "core")
        assert identity.field_path == "characters/alice/pages/core"
        assert identity.layout_path == "layouts/core"

    def test_describe(self) -> None:
        assert SheetIdentity("alice", "core").describe() == "Character: alice · Page: core"

    def test_slash_in_id_is_invalid_path(self) -> None:
        with pytest.raises(InvalidPath):
            SheetIdentity("a/b", "core").field_path
