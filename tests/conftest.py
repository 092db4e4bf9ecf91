"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from sheetsync.core.page import Page, build_page
from sheetsync.core.status import StatusBoard
from sheetsync.storage.base import ReadFailure, WriteFailure
from sheetsync.storage.memory import MemoryDocumentStore
from sheetsync.sync.debounce import VirtualScheduler

# Small catalog so track tests stay readable.
SMALL_TRACKS = {"hp": 6, "hope": 4}


@pytest.fixture()
def tracks() -> dict[str, int]:
    return dict(SMALL_TRACKS)


@pytest.fixture()
def page(tracks: dict[str, int]) -> Page:
    """A rendered page with two text fields, one checkbox and two tracks."""
    return build_page(
        text_fields=["name", "notes"],
        checkbox_fields=["inspired"],
        tracks=tracks,
    )


@pytest.fixture()
def status() -> StatusBoard:
    return StatusBoard()


@pytest.fixture()
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


class FlakyStore(MemoryDocumentStore):
    """Memory store whose reads and writes can be switched to fail."""

    def __init__(self, documents: dict | None = None) -> None:
        super().__init__(documents)
        self.fail_get = False
        self.fail_set = False

    async def get(self, path: str):
        if self.fail_get:
            raise ReadFailure(f"get {path} refused")
        return await super().get(path)

    async def set(self, path: str, payload: dict, merge: bool = True) -> None:
        if self.fail_set:
            raise WriteFailure(f"set {path} refused")
        await super().set(path, payload, merge)


@pytest.fixture()
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture()
def flaky_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture()
def sheet_root(tmp_path: Path) -> Path:
    """Return a temporary directory suitable for initializing .sheetsync/ in."""
    return tmp_path


@pytest.fixture()
def initialized_root(sheet_root: Path) -> Path:
    """Return a temporary directory with .sheetsync/ already initialized."""
    from sheetsync.core.config import CONFIG_FILENAME, default_config, serialize_config
    from sheetsync.storage.fs import atomic_write, ensure_store_dirs

    store_dir = ensure_store_dirs(sheet_root)
    config = dict(default_config())
    config["store"] = {"kind": "file"}
    atomic_write(store_dir / CONFIG_FILENAME, serialize_config(config))
    return sheet_root


@pytest.fixture()
def cli_runner() -> CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture()
def cli_env(initialized_root: Path) -> dict[str, str]:
    """Return env dict with SHEETSYNC_ROOT pointing to initialized_root."""
    return {"SHEETSYNC_ROOT": str(initialized_root)}


@pytest.fixture()
def invoke(cli_runner: CliRunner, cli_env: dict[str, str]):
    """Return a helper that invokes CLI commands with the right environment.

    Usage::

        result = invoke("set", "alice", "core", "name=Alice")
    """
    from sheetsync.cli.main import cli

    def _invoke(*args: str, **kwargs):
        return cli_runner.invoke(cli, list(args), env=cli_env, **kwargs)

    return _invoke


@pytest.fixture()
def invoke_json(invoke):
    """Like invoke, but appends --json and parses the response.

    Returns (parsed_dict, exit_code) tuple.
    """

    def _invoke_json(*args: str) -> tuple[dict, int]:
        result = invoke(*args, "--json")
        parsed = json.loads(result.output)
        return parsed, result.exit_code

    return _invoke_json
