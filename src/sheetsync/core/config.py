"""Default config generation and validation."""

from __future__ import annotations

import json
import re
from typing import TypedDict


class IdentityDefaults(TypedDict, total=False):
    char: str
    page: str


class StoreConfig(TypedDict, total=False):
    kind: str
    root: str
    url: str


class SheetConfig(TypedDict, total=False):
    schema_version: int
    tracks: dict[str, int]
    debounce_ms: int
    persist_track_clears: bool
    defaults: IdentityDefaults
    store: StoreConfig


CONFIG_FILENAME = "config.json"

# Absolute maxima as printed on the sheet.
DEFAULT_TRACKS: dict[str, int] = {
    "armor": 12,
    "hp": 12,
    "stress": 12,
    "hope": 10,
    "gold_hand": 9,
    "gold_bag": 9,
    "proficiency": 6,
}

DEFAULT_DEBOUNCE_MS = 500
DEFAULT_CHAR_ID = "unnamed"
DEFAULT_PAGE_ID = "core"

STORE_KINDS: tuple[str, ...] = ("memory", "file", "remote")

_TRACK_KEY_RE = re.compile(r"^[a-z][a-z0-9_]*$")


def default_config() -> SheetConfig:
    """Return the default sheetsync configuration.

    Serialized with ``serialize_config()`` this is the canonical default
    ``.sheetsync/config.json``.
    """
    return {
        "schema_version": 1,
        "tracks": dict(DEFAULT_TRACKS),
        "debounce_ms": DEFAULT_DEBOUNCE_MS,
        "persist_track_clears": True,
        "defaults": {"char": DEFAULT_CHAR_ID, "page": DEFAULT_PAGE_ID},
        "store": {"kind": "memory"},
    }


def serialize_config(config: SheetConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> dict:
    """Parse a JSON config string, filling in defaults for missing sections.

    Pure function: the caller reads the file.
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Config must be a JSON object")
    config = dict(default_config())
    config.update(data)
    defaults = dict(default_config()["defaults"])
    defaults.update(data.get("defaults") or {})
    config["defaults"] = defaults
    return config


def validate_track_key(key: str) -> bool:
    """Return ``True`` if *key* is usable as a track base key."""
    return bool(_TRACK_KEY_RE.match(key)) and not key.endswith("_max")


def validate_config(config: dict) -> list[str]:
    """Return a list of human-readable problems (empty when valid)."""
    problems: list[str] = []

    tracks = config.get("tracks", {})
    if not isinstance(tracks, dict):
        problems.append("tracks must be an object of base key -> absolute max")
    else:
        for key, absolute_max in tracks.items():
            if not validate_track_key(key):
                problems.append(f"Invalid track key: '{key}'")
            if isinstance(absolute_max, bool) or not isinstance(absolute_max, int) or absolute_max <= 0:
                problems.append(f"Track '{key}' must have a positive integer maximum")

    debounce = config.get("debounce_ms", DEFAULT_DEBOUNCE_MS)
    if isinstance(debounce, bool) or not isinstance(debounce, int) or debounce <= 0:
        problems.append("debounce_ms must be a positive integer")

    if not isinstance(config.get("persist_track_clears", True), bool):
        problems.append("persist_track_clears must be true or false")

    defaults = config.get("defaults", {})
    for name in ("char", "page"):
        value = defaults.get(name) if isinstance(defaults, dict) else None
        if value is not None and (not isinstance(value, str) or not value or "/" in value):
            problems.append(f"defaults.{name} must be a non-empty string without '/'")

    store = config.get("store", {})
    kind = store.get("kind", "memory") if isinstance(store, dict) else None
    if kind not in STORE_KINDS:
        problems.append(f"store.kind must be one of {', '.join(STORE_KINDS)}")
    elif kind == "remote" and not store.get("url"):
        problems.append("store.url is required for a remote store")

    return problems


def get_tracks(config: dict) -> dict[str, int]:
    """Return the track catalog, falling back to the default catalog."""
    tracks = config.get("tracks")
    return dict(tracks) if tracks else dict(DEFAULT_TRACKS)


def get_debounce_seconds(config: dict) -> float:
    return config.get("debounce_ms", DEFAULT_DEBOUNCE_MS) / 1000.0
