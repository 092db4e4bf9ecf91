"""In-process model of a character sheet page.

A page is an ordered list of field wrappers.  Each wrapper carries a
``key`` (the ``data-key`` of the markup), a class set and inline style, and
holds at most one control.  Controls look like form inputs: a ``type``
string, a text ``value`` or a ``checked`` flag, a ``disabled`` flag, inline
style and per-event listeners.  Hosts drive user interaction through
``Control.type_text()`` / ``Control.set_checked()``, which dispatch the same
events a browser would (``input`` for text, ``change`` for checkboxes).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

Listener = Callable[["Control"], None]

TRACK_DISABLED_CLASS = "track-disabled"


class Control:
    """A single form control (``input`` or ``textarea``)."""

    def __init__(
        self,
        type: str = "text",
        value: str | None = "",
        checked: bool = False,
        tag: str = "input",
    ) -> None:
        self.type = type
        self.tag = tag
        self.value = value
        self.checked = checked
        self.disabled = False
        self.style: dict[str, str] = {}
        self._listeners: dict[str, list[Listener]] = {}

    def add_event_listener(self, event: str, fn: Listener) -> None:
        self._listeners.setdefault(event, []).append(fn)

    def remove_event_listener(self, event: str, fn: Listener) -> None:
        try:
            self._listeners.get(event, []).remove(fn)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def dispatch(self, event: str) -> None:
        """Fire *event* to every listener, in registration order."""
        for fn in list(self._listeners.get(event, [])):
            try:
                fn(self)
            except Exception:
                logger.exception("sheetsync: %s listener failed", event)

    # User interaction: mutate then dispatch, like a browser does.

    def type_text(self, text: str) -> None:
        if self.disabled:
            return
        self.value = text
        self.dispatch("input")

    def set_checked(self, checked: bool = True) -> None:
        if self.disabled:
            return
        self.checked = checked
        self.dispatch("change")

    def __repr__(self) -> str:
        state = self.checked if self.type == "checkbox" else self.value
        return f"Control(type={self.type!r}, state={state!r}, disabled={self.disabled})"


class FieldWrapper:
    """The labeled container around one control (``.field[data-key]``)."""

    def __init__(self, key: str | None, control: Control | None = None) -> None:
        self.key = key
        self.control = control
        self.classes: set[str] = {"field"}
        self.style: dict[str, str] = {}

    def __repr__(self) -> str:
        return f"FieldWrapper(key={self.key!r}, control={self.control!r})"


class Page:
    """Ordered collection of field wrappers plus a render-complete flag."""

    def __init__(self) -> None:
        self._wrappers: list[FieldWrapper] = []
        self._rendered = False

    @property
    def rendered(self) -> bool:
        return self._rendered

    def finish_render(self) -> Page:
        """Mark static and generated markup as complete."""
        self._rendered = True
        return self

    def add_wrapper(self, wrapper: FieldWrapper) -> FieldWrapper:
        self._wrappers.append(wrapper)
        return wrapper

    def add_field(
        self,
        key: str,
        type: str = "text",
        value: str | None = "",
        checked: bool = False,
        tag: str = "input",
    ) -> FieldWrapper:
        return self.add_wrapper(FieldWrapper(key, Control(type, value, checked, tag)))

    def add_track(self, base: str, length: int, type: str = "checkbox") -> list[FieldWrapper]:
        """Generate ``{base}_0 .. {base}_{length-1}`` sub-field wrappers."""
        return [self.add_field(f"{base}_{i}", type=type) for i in range(length)]

    def wrappers(self) -> list[FieldWrapper]:
        return list(self._wrappers)

    def find(self, key: str) -> FieldWrapper | None:
        for wrapper in self._wrappers:
            if wrapper.key == key:
                return wrapper
        return None

    def control(self, key: str) -> Control:
        """Return the control for *key*; raises ``KeyError`` if absent."""
        wrapper = self.find(key)
        if wrapper is None or wrapper.control is None:
            raise KeyError(key)
        return wrapper.control


def build_page(
    text_fields: Iterable[str] = (),
    checkbox_fields: Iterable[str] = (),
    tracks: dict[str, int] | None = None,
    finish: bool = True,
) -> Page:
    """Convenience template: text fields, checkboxes, then track sub-fields."""
    page = Page()
    for key in text_fields:
        page.add_field(key, type="text")
    for key in checkbox_fields:
        page.add_field(key, type="checkbox")
    for base, length in (tracks or {}).items():
        page.add_field(f"{base}_max", type="text")
        page.add_track(base, length)
    if finish:
        page.finish_render()
    return page
