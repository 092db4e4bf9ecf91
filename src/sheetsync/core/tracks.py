"""Track constraint engine.

A track is a fixed-length run of sub-fields (``hp_0`` .. ``hp_11``) whose
effective length is player-controlled through ``{base}_max``.  Sub-field
``i`` is active iff ``i < current_max``; everything beyond is cleared,
disabled and marked with the ``track-disabled`` class.

The current maximum must be re-derived on every remote update since another
client may have changed ``{base}_max``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping

from sheetsync.core.page import TRACK_DISABLED_CLASS, Page
from sheetsync.core.registry import ControlKind

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_track_max(raw: object) -> int | None:
    """Parse a ``{base}_max`` value with leading-integer semantics.

    ``"3"``, ``" 4 "`` and ``"5 boxes"`` parse to 3/4/5, floats truncate.
    Returns ``None`` for anything non-numeric (including booleans).
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    if isinstance(raw, str):
        match = _LEADING_INT_RE.match(raw)
        return int(match.group(1)) if match else None
    return None


def resolve_max(fields: Mapping[str, object], base: str, absolute_max: int) -> int:
    """Effective maximum of track *base*, clamped to ``[0, absolute_max]``.

    Missing, non-numeric or negative values open the track fully.
    """
    current = parse_track_max(fields.get(f"{base}_max"))
    if current is None or current < 0:
        return absolute_max
    return min(current, absolute_max)


class TrackEngine:
    """Enforce the track catalog ``{base: absolute_max}`` on a page."""

    def __init__(self, page: Page, catalog: Mapping[str, int]) -> None:
        self.page = page
        self.catalog = dict(catalog)

    def effective_maxima(self, fields: Mapping[str, object]) -> dict[str, int]:
        return {
            base: resolve_max(fields, base, absolute_max)
            for base, absolute_max in self.catalog.items()
        }

    def enforce(self, fields: Mapping[str, object] | None) -> list[str]:
        """Enable active sub-fields and clear+disable the rest.

        Idempotent.  Returns the keys whose value this call actually cleared,
        so a repeat call with the same input returns an empty list.
        """
        if fields is None:
            return []

        cleared: list[str] = []
        for base, absolute_max in self.catalog.items():
            current_max = resolve_max(fields, base, absolute_max)
            for i in range(absolute_max):
                key = f"{base}_{i}"
                wrapper = self.page.find(key)
                if wrapper is None or wrapper.control is None:
                    continue
                control = wrapper.control

                if i < current_max:
                    control.disabled = False
                    wrapper.classes.discard(TRACK_DISABLED_CLASS)
                    continue

                kind = ControlKind.for_control(control)
                if not kind.is_clear(control):
                    kind.clear(control)
                    cleared.append(key)
                control.disabled = True
                wrapper.classes.add(TRACK_DISABLED_CLASS)

        return cleared
