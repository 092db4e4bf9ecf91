"""Tests for the show / set / tracks / layout commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from sheetsync.cli.main import cli
from sheetsync.storage.files import FileDocumentStore


def _seed(root: Path, path: str, data: dict) -> None:
    store = FileDocumentStore(root / ".sheetsync")
    asyncio.run(store.set(path, data, merge=False))


class TestSet:
    def test_writes_fields(self, invoke, initialized_root: Path) -> None:
        result = invoke("set", "alice", "core", "name=Alice", "hp_0=true", "hp_1=False")
        assert result.exit_code == 0, result.output
        assert "Updated 3 field(s) at characters/alice/pages/core" in result.output
        doc = json.loads(
            (initialized_root / ".sheetsync/docs/characters/alice/pages/core.json").read_text()
        )
        assert doc["fields"] == {"name": "Alice", "hp_0": True, "hp_1": False}
        assert isinstance(doc["updatedAt"], int)

    def test_merges(self, invoke, initialized_root: Path) -> None:
        _seed(initialized_root, "characters/alice/pages/core", {"fields": {"notes": "n"}})
        invoke("set", "alice", "core", "name=A")
        doc = json.loads(
            (initialized_root / ".sheetsync/docs/characters/alice/pages/core.json").read_text()
        )
        assert doc["fields"] == {"notes": "n", "name": "A"}

    def test_value_may_contain_equals(self, invoke_json) -> None:
        parsed, code = invoke_json("set", "alice", "core", "notes=a=b")
        assert code == 0
        assert parsed["data"]["fields"] == {"notes": "a=b"}

    def test_bad_assignment(self, invoke) -> None:
        result = invoke("set", "alice", "core", "novalue")
        assert result.exit_code != 0
        assert "KEY=VALUE" in result.output

    def test_bad_identity(self, invoke_json) -> None:
        parsed, code = invoke_json("set", "..", "core", "a=b")
        assert code == 1
        assert parsed["ok"] is False
        assert parsed["error"]["code"] == "INVALID_PATH"


class TestShow:
    def test_human(self, invoke, initialized_root: Path) -> None:
        _seed(
            initialized_root,
            "characters/alice/pages/core",
            {"fields": {"name": "Aria", "hp_0": True, "hp_1": False}, "updatedAt": 42},
        )
        result = invoke("show", "alice")
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert lines[0] == "characters/alice/pages/core (updatedAt 42)"
        assert any(line.split() == ["hp_0", "[x]"] for line in lines)
        assert any(line.split() == ["hp_1", "[", "]"] for line in lines)
        assert any(line.split() == ["name", "Aria"] for line in lines)

    def test_json(self, invoke_json, initialized_root: Path) -> None:
        _seed(initialized_root, "characters/alice/pages/core", {"fields": {"name": "A"}, "updatedAt": 1})
        parsed, code = invoke_json("show", "alice", "core")
        assert code == 0
        assert parsed == {"ok": True, "data": {"fields": {"name": "A"}, "updatedAt": 1}}

    def test_missing(self, invoke_json) -> None:
        parsed, code = invoke_json("show", "nobody")
        assert code == 1
        assert parsed["error"]["code"] == "NOT_FOUND"

    def test_corrupt_document(self, invoke_json, initialized_root: Path) -> None:
        doc = initialized_root / ".sheetsync/docs/characters/alice/pages/core.json"
        doc.parent.mkdir(parents=True)
        doc.write_text("{")
        parsed, code = invoke_json("show", "alice")
        assert code == 1
        assert parsed["error"]["code"] == "STORE_ERROR"

    def test_not_initialized(self, cli_runner, tmp_path: Path) -> None:
        result = cli_runner.invoke(cli, ["show", "alice"], env={"SHEETSYNC_ROOT": str(tmp_path)})
        assert result.exit_code == 1
        assert "no .sheetsync/" in result.output


class TestTracks:
    def test_effective_maxima(self, invoke_json, initialized_root: Path) -> None:
        _seed(
            initialized_root,
            "characters/alice/pages/core",
            {"fields": {"hp_max": "3", "hp_0": True, "hp_1": True, "hp_5": True, "hope_max": "x"}},
        )
        parsed, code = invoke_json("tracks", "alice")
        assert code == 0
        rows = {row["track"]: row for row in parsed["data"]}
        assert rows["hp"] == {"track": "hp", "max": 3, "absolute_max": 12, "marked": 2}
        assert rows["hope"]["max"] == 10
        assert rows["proficiency"]["absolute_max"] == 6

    def test_human(self, invoke) -> None:
        result = invoke("tracks", "alice")
        assert result.exit_code == 0, result.output
        assert any(line.split() == ["hp", "0/12", "(of", "12)"] for line in result.output.splitlines())


class TestLayout:
    def test_human(self, invoke, initialized_root: Path) -> None:
        _seed(
            initialized_root,
            "layouts/core",
            {"fields": {"name": {"top": 10, "left": 4}}, "updatedAt": 1},
        )
        result = invoke("layout")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "layouts/core (1 field(s))",
            "  name: left=4, top=10",
        ]

    def test_missing(self, invoke_json) -> None:
        parsed, code = invoke_json("layout", "spells")
        assert code == 1
        assert parsed["error"]["code"] == "NOT_FOUND"
