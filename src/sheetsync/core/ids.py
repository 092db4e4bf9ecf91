"""Client ids and sheet identity resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qs

from ulid import ULID

from sheetsync.core.config import DEFAULT_CHAR_ID, DEFAULT_PAGE_ID
from sheetsync.storage.documents import field_document_path, layout_document_path

# Crockford Base32 alphabet: 0-9 A-Z excluding I, L, O, U
_CROCKFORD_B32_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$", re.IGNORECASE)


def generate_client_id() -> str:
    """Generate a new client ID with the client_ prefix."""
    return f"client_{ULID()}"


def validate_id(id_str: str, expected_prefix: str) -> bool:
    """Validate a ``<prefix>_<ulid>`` identifier."""
    if not isinstance(id_str, str) or not isinstance(expected_prefix, str):
        return False

    parts = id_str.split("_", maxsplit=1)
    if len(parts) != 2:
        return False

    prefix, ulid_part = parts
    if prefix != expected_prefix:
        return False

    return bool(_CROCKFORD_B32_RE.match(ulid_part))


@dataclass(frozen=True)
class SheetIdentity:
    """Which character/page a session is bound to."""

    char_id: str
    page_id: str

    @property
    def field_path(self) -> str:
        return field_document_path(self.char_id, self.page_id)

    @property
    def layout_path(self) -> str:
        return layout_document_path(self.page_id)

    def describe(self) -> str:
        return f"Character: {self.char_id} · Page: {self.page_id}"


def resolve_identity(
    query: str | dict | None,
    default_char: str = DEFAULT_CHAR_ID,
    default_page: str = DEFAULT_PAGE_ID,
) -> SheetIdentity:
    """Resolve the sheet identity from page-load query parameters.

    *query* is either a raw query string (``"char=alice&page=core"``, a
    leading ``?`` is accepted) or an already-parsed mapping.  Missing or
    blank ``char``/``page`` values fall back to the defaults.

    Raises:
        InvalidPath: If either id cannot name a document (``"a/b"``, ``".."``).
    """
    if query is None:
        params: dict = {}
    elif isinstance(query, str):
        params = {k: v[0] for k, v in parse_qs(query.lstrip("?")).items() if v}
    else:
        params = dict(query)

    char_id = (params.get("char") or "").strip() or default_char
    page_id = (params.get("page") or "").strip() or default_page
    field_document_path(char_id, page_id)
    return SheetIdentity(char_id=char_id, page_id=page_id)
