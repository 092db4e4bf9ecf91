"""CLI entry point and commands."""

from __future__ import annotations

from pathlib import Path

import click

from sheetsync.core.config import (
    CONFIG_FILENAME,
    STORE_KINDS,
    default_config,
    serialize_config,
    validate_config,
)
from sheetsync.storage.fs import STORE_DIR, atomic_write, ensure_store_dirs


@click.group()
def cli() -> None:
    """sheetsync: keep character sheets in sync with a document store."""


@cli.command()
@click.option(
    "--path",
    "target_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Directory to initialize sheetsync in (defaults to current directory).",
)
@click.option(
    "--store-kind",
    type=click.Choice(STORE_KINDS),
    default="file",
    show_default=True,
    help="Store the sheet page binds to.",
)
@click.option("--url", default=None, help="Server URL for a remote store (ws://host:port).")
@click.option("--debounce-ms", type=int, default=None, help="Quiet window before a write.")
def init(target_path: str, store_kind: str, url: str | None, debounce_ms: int | None) -> None:
    """Initialize a sheetsync project (config + file store)."""
    root = Path(target_path)
    store_dir = root / STORE_DIR

    if store_dir.is_dir():
        click.echo(f"sheetsync already initialized in {STORE_DIR}/")
        return

    if store_dir.exists():
        raise click.ClickException(
            f"Cannot initialize: '{STORE_DIR}' exists but is not a directory. "
            "Remove it and try again."
        )

    config = dict(default_config())
    config["store"] = {"kind": store_kind}
    if url:
        config["store"]["url"] = url
    if debounce_ms is not None:
        config["debounce_ms"] = debounce_ms

    problems = validate_config(config)
    if problems:
        raise click.ClickException("; ".join(problems))

    ensure_store_dirs(root)
    atomic_write(store_dir / CONFIG_FILENAME, serialize_config(config))
    click.echo(f"Initialized sheetsync in {STORE_DIR}/")


# ---------------------------------------------------------------------------
# Register command modules (must be after cli group is defined)
# ---------------------------------------------------------------------------
from sheetsync.cli import store_cmds as _store_cmds  # noqa: E402, F401
from sheetsync.cli import serve_cmd as _serve_cmd  # noqa: E402, F401

if __name__ == "__main__":
    cli()
