"""Document paths, payload builders and merge semantics.

Field documents live at ``characters/{char}/pages/{page}`` and hold a flat
``fields`` mapping of control values.  Layout documents live at
``layouts/{page}`` and hold per-field positional/sizing entries.  Both carry
an ``updatedAt`` millisecond timestamp.
"""

from __future__ import annotations

import copy
import time

from sheetsync.storage.base import InvalidPath, validate_path

FIELD_COLLECTION = "characters"
PAGE_COLLECTION = "pages"
LAYOUT_COLLECTION = "layouts"

# Keys a layout entry may carry, all in pixels.
POSITION_KEYS: tuple[str, ...] = ("top", "left", "bottom", "right")
SIZE_KEYS: tuple[str, ...] = ("width", "height", "lineHeight")
LAYOUT_KEYS: tuple[str, ...] = POSITION_KEYS + SIZE_KEYS


def _segment(value: str, what: str) -> str:
    if not isinstance(value, str) or not value or "/" in value or value in (".", ".."):
        raise InvalidPath(f"Invalid {what}: {value!r}")
    return value


def field_document_path(char_id: str, page_id: str) -> str:
    """Return the store path of the field document for (*char_id*, *page_id*)."""
    return validate_path(
        f"{FIELD_COLLECTION}/{_segment(char_id, 'character id')}"
        f"/{PAGE_COLLECTION}/{_segment(page_id, 'page id')}"
    )


def layout_document_path(page_id: str) -> str:
    """Return the store path of the layout document for *page_id*."""
    return validate_path(f"{LAYOUT_COLLECTION}/{_segment(page_id, 'page id')}")


def now_ms() -> int:
    """Current wall-clock time in integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def field_document(fields: dict, updated_at: int | None = None) -> dict:
    """Build a FieldDocument payload from a ``{key: str|bool}`` mapping."""
    return {
        "fields": dict(fields),
        "updatedAt": now_ms() if updated_at is None else updated_at,
    }


def layout_document(entries: dict, updated_at: int | None = None) -> dict:
    """Build a LayoutDocument payload from ``{key: {attr: px}}`` entries."""
    return {
        "fields": {key: dict(entry) for key, entry in entries.items()},
        "updatedAt": now_ms() if updated_at is None else updated_at,
    }


def merge_payload(existing: dict | None, payload: dict) -> dict:
    """Return *existing* with *payload* merged in.

    Nested mappings merge key by key; every other value overwrites.  Keys
    absent from *payload* are preserved.  Neither argument is mutated.
    """
    result = copy.deepcopy(existing) if existing else {}
    for key, value in payload.items():
        current = result.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            result[key] = merge_payload(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def document_fields(data: dict | None) -> dict:
    """Extract the ``fields`` mapping of a document body, tolerating junk."""
    if not data:
        return {}
    fields = data.get("fields")
    return fields if isinstance(fields, dict) else {}
