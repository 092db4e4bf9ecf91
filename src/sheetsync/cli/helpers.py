"""Shared CLI helpers and output utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import click

from sheetsync.core.config import CONFIG_FILENAME, default_config, load_config
from sheetsync.storage.base import DocumentStore
from sheetsync.storage.files import FileDocumentStore
from sheetsync.storage.fs import STORE_DIR, StoreRootError, find_root


# ---------------------------------------------------------------------------
# Root & config
# ---------------------------------------------------------------------------


def require_root(is_json: bool = False) -> Path:
    """Find the project root (directory holding .sheetsync/) or exit with error."""
    try:
        root = find_root()
    except StoreRootError as e:
        output_error(str(e), "NOT_INITIALIZED", is_json)
    if root is None:
        output_error(
            "Not a sheetsync project (no .sheetsync/ found). Run 'sheetsync init' first.",
            "NOT_INITIALIZED",
            is_json,
        )
    return root


def load_project_config(root: Path) -> dict:
    """Load .sheetsync/config.json, or the defaults if it is missing."""
    config_path = root / STORE_DIR / CONFIG_FILENAME
    if not config_path.exists():
        return dict(default_config())
    return load_config(config_path.read_text())


async def open_cli_store(root: Path, config: dict, url: str | None = None) -> DocumentStore:
    """The store CLI commands talk to.

    An explicit ``--url`` or a ``remote`` store config selects the websocket
    client; anything else reads the project's file store directly.
    """
    store_config = config.get("store", {})
    if url is None and store_config.get("kind") == "remote":
        url = store_config.get("url")
    if url:
        from sheetsync.sync.client import RemoteDocumentStore

        return await RemoteDocumentStore.connect(url)
    return FileDocumentStore(root / STORE_DIR)


async def close_store(store: DocumentStore) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        await close()


def parse_assignment(raw: str) -> tuple[str, str | bool]:
    """Parse ``KEY=VALUE``; ``true``/``false`` become booleans."""
    key, sep, value = raw.partition("=")
    key = key.strip()
    if not sep or not key:
        raise click.BadParameter(f"Expected KEY=VALUE, got '{raw}'")
    lowered = value.strip().lower()
    if lowered == "true":
        return key, True
    if lowered == "false":
        return key, False
    return key, value


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def json_envelope(ok: bool, *, data: object = None, error: object = None) -> str:
    """Build a structured JSON output envelope."""
    result: dict = {"ok": ok}
    if data is not None:
        result["data"] = data
    if error is not None:
        result["error"] = error
    return json.dumps(result, sort_keys=True, indent=2) + "\n"


def json_error_obj(code: str, message: str) -> dict:
    """Build an error object for the JSON envelope."""
    return {"code": code, "message": message}


def output_error(message: str, code: str, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Print error and exit. JSON errors go to stdout; human errors to stderr."""
    if is_json:
        click.echo(json_envelope(False, error=json_error_obj(code, message)))
    else:
        click.echo(f"Error: {message}", err=True)
    raise SystemExit(exit_code)


def output_result(*, data: object, human_message: str, is_json: bool) -> None:
    """Print success result in the appropriate format."""
    if is_json:
        click.echo(json_envelope(True, data=data))
    else:
        click.echo(human_message)
