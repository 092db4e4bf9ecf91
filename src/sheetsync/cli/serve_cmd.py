"""``sheetsync serve``: expose the project's file store over WebSocket."""

from __future__ import annotations

import asyncio
import logging

import click

from sheetsync.cli.main import cli
from sheetsync.sync.server import DEFAULT_HOST, DEFAULT_PORT


@cli.command()
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="Bind address.")
@click.option("--port", type=int, default=DEFAULT_PORT, show_default=True, help="Listen port.")
@click.option("--verbose", "-v", is_flag=True, help="Log every request.")
def serve(host: str, port: int, verbose: bool) -> None:
    """Serve the project's documents so sheets on other machines can bind to them."""
    from sheetsync.cli.helpers import require_root
    from sheetsync.storage.files import FileDocumentStore
    from sheetsync.storage.fs import STORE_DIR
    from sheetsync.sync.server import StoreServer

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    root = require_root(False)
    server = StoreServer(FileDocumentStore(root / STORE_DIR), host=host, port=port)

    try:
        asyncio.run(server.run_forever())
    except KeyboardInterrupt:
        click.echo("\nsheetsync serve: stopped.")
    except OSError as e:
        raise click.ClickException(f"Cannot listen on {host}:{port}: {e}") from e
