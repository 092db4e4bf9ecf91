"""Layout entries: per-field position and control sizing in pixels.

Position (``top``/``left``/``bottom``/``right``) lives on the field wrapper's
inline style; sizing (``width``/``height``/``lineHeight``) lives on the
control's inline style, where ``lineHeight`` is spelled ``line-height``.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping

from sheetsync.core.page import Page
from sheetsync.storage.documents import POSITION_KEYS, SIZE_KEYS

logger = logging.getLogger(__name__)

_PX_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:px)?\s*$")

# Layout attribute -> CSS property on the control.
_SIZE_CSS = {"width": "width", "height": "height", "lineHeight": "line-height"}


def parse_px(raw: object) -> int | float | None:
    """``"12px"`` → 12, ``"7.5px"`` → 7.5; empty or non-pixel values → None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw if math.isfinite(raw) else None
    match = _PX_RE.match(str(raw))
    if not match:
        return None
    number = float(match.group(1))
    return int(number) if number.is_integer() else number


def format_px(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}px" if isinstance(value, int) else f"{value:g}px"


def _number(value: object) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def apply_layout(page: Page, entries: Mapping[str, object]) -> list[str]:
    """Apply layout *entries* to the page; returns the keys styled.

    Only keys (and attributes) present in *entries* are touched.
    """
    applied = []
    for key, entry in entries.items():
        if not isinstance(entry, Mapping):
            logger.debug("sheetsync: ignoring malformed layout entry for %r", key)
            continue
        wrapper = page.find(key)
        if wrapper is None:
            continue

        for attr in POSITION_KEYS:
            value = _number(entry.get(attr))
            if value is not None:
                wrapper.style[attr] = format_px(value)

        if wrapper.control is not None:
            for attr in SIZE_KEYS:
                value = _number(entry.get(attr))
                if value is not None:
                    wrapper.control.style[_SIZE_CSS[attr]] = format_px(value)

        applied.append(key)
    return applied


def collect_layout(page: Page, keys: Iterable[str] | None = None) -> dict[str, dict]:
    """Serialize the non-empty positional/sizing styling of each field."""
    wanted = set(keys) if keys is not None else None
    layout: dict[str, dict] = {}
    for wrapper in page.wrappers():
        if not wrapper.key or (wanted is not None and wrapper.key not in wanted):
            continue

        entry: dict[str, int | float] = {}
        for attr in POSITION_KEYS:
            value = parse_px(wrapper.style.get(attr))
            if value is not None:
                entry[attr] = value
        if wrapper.control is not None:
            for attr in SIZE_KEYS:
                value = parse_px(wrapper.control.style.get(_SIZE_CSS[attr]))
                if value is not None:
                    entry[attr] = value

        if entry:
            layout[wrapper.key] = entry
    return layout
