"""Tests for the in-process page model."""

from __future__ import annotations

import pytest

from sheetsync.core.page import Control, FieldWrapper, Page, build_page


class TestControl:
    def test_type_text_dispatches_input(self) -> None:
        control = Control()
        seen = []
        control.add_event_listener("input", lambda c: seen.append(c.value))
        control.type_text("hello")
        assert control.value == "hello"
        assert seen == ["hello"]

    def test_set_checked_dispatches_change(self) -> None:
        control = Control(type="checkbox")
        seen = []
        control.add_event_listener("change", lambda c: seen.append(c.checked))
        control.set_checked(True)
        control.set_checked(False)
        assert seen == [True, False]

    def test_disabled_control_ignores_user_input(self) -> None:
        control = Control(type="checkbox")
        control.disabled = True
        seen = []
        control.add_event_listener("change", seen.append)
        control.set_checked(True)
        assert control.checked is False
        assert seen == []

    def test_remove_listener(self) -> None:
        control = Control()
        seen = []
        control.add_event_listener("input", seen.append)
        control.remove_event_listener("input", seen.append)
        control.remove_event_listener("input", seen.append)
        control.type_text("x")
        assert seen == []
        assert control.listener_count("input") == 0

    def test_listener_errors_are_contained(self) -> None:
        control = Control()
        seen = []

        def boom(_control):
            raise RuntimeError("boom")

        control.add_event_listener("input", boom)
        control.add_event_listener("input", seen.append)
        control.type_text("x")
        assert seen == [control]


class TestPage:
    def test_not_rendered_until_finished(self) -> None:
        page = Page()
        assert not page.rendered
        assert page.finish_render() is page
        assert page.rendered

    def test_find_and_control(self) -> None:
        page = Page()
        wrapper = page.add_field("name", value="Alice")
        assert page.find("name") is wrapper
        assert page.control("name").value == "Alice"
        assert page.find("missing") is None
        with pytest.raises(KeyError):
            page.control("missing")

    def test_control_of_empty_wrapper_raises(self) -> None:
        page = Page()
        page.add_wrapper(FieldWrapper("label"))
        with pytest.raises(KeyError):
            page.control("label")

    def test_add_track(self) -> None:
        page = Page()
        wrappers = page.add_track("hp", 3)
        assert [w.key for w in wrappers] == ["hp_0", "hp_1", "hp_2"]
        assert all(w.control.type == "checkbox" for w in wrappers)

    def test_wrapper_has_field_class(self) -> None:
        assert Page().add_field("name").classes == {"field"}


class TestBuildPage:
    def test_layout_order(self) -> None:
        page = build_page(["name"], ["inspired"], {"hp": 2})
        assert [w.key for w in page.wrappers()] == ["name", "inspired", "hp_max", "hp_0", "hp_1"]
        assert page.rendered

    def test_unfinished(self) -> None:
        assert not build_page(["name"], finish=False).rendered
