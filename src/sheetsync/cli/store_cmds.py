"""Store inspection commands: show, set, tracks, layout."""

from __future__ import annotations

import asyncio

import click

from sheetsync.cli.helpers import (
    close_store,
    load_project_config,
    open_cli_store,
    output_error,
    output_result,
    parse_assignment,
    require_root,
)
from sheetsync.cli.main import cli
from sheetsync.core.config import DEFAULT_PAGE_ID, get_tracks
from sheetsync.core.tracks import resolve_max
from sheetsync.storage.base import InvalidPath, Snapshot, StoreError
from sheetsync.storage.documents import (
    document_fields,
    field_document,
    field_document_path,
    layout_document_path,
)


def _read(path_fn, args: tuple, url: str | None, is_json: bool) -> tuple[str, Snapshot]:
    root = require_root(is_json)
    config = load_project_config(root)

    async def _do() -> tuple[str, Snapshot]:
        path = path_fn(*args)
        store = await open_cli_store(root, config, url)
        try:
            return path, await store.get(path)
        finally:
            await close_store(store)

    try:
        return asyncio.run(_do())
    except InvalidPath as e:
        output_error(str(e), "INVALID_PATH", is_json)
    except StoreError as e:
        output_error(str(e), "STORE_ERROR", is_json)


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "[x]" if value else "[ ]"
    return str(value)


@cli.command()
@click.argument("char_id")
@click.argument("page_id", default=DEFAULT_PAGE_ID)
@click.option("--url", default=None, help="Read from a sheetsync server instead.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def show(char_id: str, page_id: str, url: str | None, output_json: bool) -> None:
    """Show the field document of a character page."""
    path, snapshot = _read(field_document_path, (char_id, page_id), url, output_json)

    if not snapshot.exists:
        output_error(f"No document at {path}", "NOT_FOUND", output_json)

    fields = document_fields(snapshot.data)
    if output_json:
        output_result(data=snapshot.to_dict(), human_message="", is_json=True)
        return

    lines = [f"{path} (updatedAt {snapshot.updated_at})"]
    if not fields:
        lines.append("  (no fields)")
    width = max((len(k) for k in fields), default=0)
    for key in sorted(fields):
        lines.append(f"  {key:<{width}}  {_format_value(fields[key])}")
    click.echo("\n".join(lines))


@cli.command("set")
@click.argument("char_id")
@click.argument("page_id")
@click.argument("assignments", nargs=-1, required=True)
@click.option("--url", default=None, help="Write through a sheetsync server instead.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def set_fields(
    char_id: str,
    page_id: str,
    assignments: tuple[str, ...],
    url: str | None,
    output_json: bool,
) -> None:
    """Merge KEY=VALUE pairs into a character page's fields.

    ``true``/``false`` are written as checkbox values; everything else as text.
    """
    fields = dict(parse_assignment(raw) for raw in assignments)
    root = require_root(output_json)
    config = load_project_config(root)
    payload = field_document(fields)

    async def _do() -> str:
        path = field_document_path(char_id, page_id)
        store = await open_cli_store(root, config, url)
        try:
            await store.set(path, payload, merge=True)
        finally:
            await close_store(store)
        return path

    try:
        path = asyncio.run(_do())
    except InvalidPath as e:
        output_error(str(e), "INVALID_PATH", output_json)
    except StoreError as e:
        output_error(str(e), "STORE_ERROR", output_json)

    output_result(
        data={"path": path, "fields": fields, "updatedAt": payload["updatedAt"]},
        human_message=f"Updated {len(fields)} field(s) at {path}",
        is_json=output_json,
    )


@cli.command()
@click.argument("char_id")
@click.argument("page_id", default=DEFAULT_PAGE_ID)
@click.option("--url", default=None, help="Read from a sheetsync server instead.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def tracks(char_id: str, page_id: str, url: str | None, output_json: bool) -> None:
    """Show effective track maxima and marked boxes for a character page."""
    root = require_root(output_json)
    catalog = get_tracks(load_project_config(root))
    _, snapshot = _read(field_document_path, (char_id, page_id), url, output_json)
    fields = document_fields(snapshot.data)

    rows = []
    for base, absolute_max in catalog.items():
        current = resolve_max(fields, base, absolute_max)
        marked = sum(1 for i in range(current) if fields.get(f"{base}_{i}") is True)
        rows.append({"track": base, "max": current, "absolute_max": absolute_max, "marked": marked})

    if output_json:
        output_result(data=rows, human_message="", is_json=True)
        return

    width = max((len(r["track"]) for r in rows), default=0)
    for row in rows:
        click.echo(
            f"{row['track']:<{width}}  {row['marked']}/{row['max']}"
            f"  (of {row['absolute_max']})"
        )


@cli.command()
@click.argument("page_id", default=DEFAULT_PAGE_ID)
@click.option("--url", default=None, help="Read from a sheetsync server instead.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def layout(page_id: str, url: str | None, output_json: bool) -> None:
    """Show the saved layout of a page."""
    path, snapshot = _read(layout_document_path, (page_id,), url, output_json)

    if not snapshot.exists:
        output_error(f"No layout saved at {path}", "NOT_FOUND", output_json)

    entries = document_fields(snapshot.data)
    if output_json:
        output_result(data=snapshot.to_dict(), human_message="", is_json=True)
        return

    click.echo(f"{path} ({len(entries)} field(s))")
    for key in sorted(entries):
        entry = entries[key]
        if not isinstance(entry, dict):
            continue
        attrs = ", ".join(f"{name}={entry[name]}" for name in sorted(entry))
        click.echo(f"  {key}: {attrs}")
