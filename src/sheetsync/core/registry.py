"""Field registry: the page's bound controls keyed by field identifier."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from sheetsync.core.page import Control, Page

logger = logging.getLogger(__name__)


class PageNotRendered(RuntimeError):
    """Raised when scanning a page whose dynamic markup is not complete."""


class ControlKind(enum.Enum):
    """How a control stores its logical value."""

    TEXT = "text"
    CHECKBOX = "checkbox"

    @classmethod
    def for_control(cls, control: Control) -> ControlKind:
        return cls.CHECKBOX if control.type == "checkbox" else cls.TEXT

    @property
    def event(self) -> str:
        """The event fired when the user edits this kind of control."""
        return "change" if self is ControlKind.CHECKBOX else "input"

    def read(self, control: Control) -> str | bool:
        if self is ControlKind.CHECKBOX:
            return bool(control.checked)
        return control.value if control.value is not None else ""

    def write(self, control: Control, value: object) -> None:
        if self is ControlKind.CHECKBOX:
            control.checked = bool(value)
        else:
            control.value = "" if value is None else str(value)

    def clear(self, control: Control) -> None:
        self.write(control, False if self is ControlKind.CHECKBOX else "")

    def is_clear(self, control: Control) -> bool:
        return self.read(control) in (False, "")


@dataclass
class FieldDescriptor:
    """One registered field: key, control and its kind (resolved once)."""

    key: str
    control: Control
    kind: ControlKind
    track: tuple[str, int] | None = None

    @property
    def value(self) -> str | bool:
        return self.kind.read(self.control)

    @value.setter
    def value(self, value: object) -> None:
        self.kind.write(self.control, value)


class FieldRegistry:
    """Ordered registry of the page's fields.

    ``scan()`` must run after all dynamic markup (track sub-fields) has
    been generated; fields added afterwards are invisible until the next
    scan.
    """

    def __init__(self, page: Page, tracks: Mapping[str, int] | None = None) -> None:
        self.page = page
        self.tracks = dict(tracks or {})
        self._fields: list[FieldDescriptor] = []
        self._by_key: dict[str, FieldDescriptor] = {}

    def scan(self) -> list[FieldDescriptor]:
        """Enumerate the page's wrappers and rebuild the registry."""
        if not self.page.rendered:
            raise PageNotRendered("Page must finish rendering before its fields are scanned")

        fields: list[FieldDescriptor] = []
        by_key: dict[str, FieldDescriptor] = {}
        for wrapper in self.page.wrappers():
            if not wrapper.key or wrapper.control is None:
                logger.debug("sheetsync: skipping unbound wrapper %r", wrapper)
                continue
            if wrapper.key in by_key:
                logger.warning("sheetsync: duplicate field key %r ignored", wrapper.key)
                continue
            descriptor = FieldDescriptor(
                key=wrapper.key,
                control=wrapper.control,
                kind=ControlKind.for_control(wrapper.control),
                track=self._track_of(wrapper.key),
            )
            fields.append(descriptor)
            by_key[wrapper.key] = descriptor

        self._fields = fields
        self._by_key = by_key
        return list(fields)

    @property
    def fields(self) -> list[FieldDescriptor]:
        return list(self._fields)

    def keys(self) -> list[str]:
        return [f.key for f in self._fields]

    def get(self, key: str) -> FieldDescriptor | None:
        return self._by_key.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._fields)

    def read_all(self) -> dict[str, str | bool]:
        """Return ``{key: value}`` reflecting live control state."""
        return {f.key: f.value for f in self._fields}

    def apply_all(self, mapping: Mapping[str, object], skip: Iterable[str] = ()) -> list[str]:
        """Set every known field whose key is in *mapping*.

        Fields absent from *mapping* (or listed in *skip*) are untouched.
        Returns the keys that were written.
        """
        skipped = set(skip)
        applied = []
        for field in self._fields:
            if field.key not in mapping or field.key in skipped:
                continue
            field.value = mapping[field.key]
            applied.append(field.key)
        return applied

    def _track_of(self, key: str) -> tuple[str, int] | None:
        base, sep, index = key.rpartition("_")
        if not sep or not index.isdigit():
            return None
        absolute_max = self.tracks.get(base)
        if absolute_max is None or int(index) >= absolute_max:
            return None
        return base, int(index)
