"""
Keypath Codec Tests
===================

Escaping, joining and keypath lookups on encoded trees.
"""

import pytest

from typeweave.core.classify import UNDEFINED
from typeweave.core.keypath import (
    escape_keypath_component,
    get_by_keypath,
    join_keypath,
    set_at_keypath,
    unescape_keypath_component,
)


# =============================================================================
# Escaping
# =============================================================================

class TestEscaping:
    """Tests for segment escaping."""

    @pytest.mark.parametrize(
        "component, escaped",
        [
            ("plain", "plain"),
            ("", "''"),
            ("''", "''''"),
            ("a.b", "a~1b"),
            ("a~b", "a~0b"),
            ("~1", "~01"),
            ("x.~.y", "x~1~0~1y"),
        ],
    )
    def test_escape(self, component, escaped):
        assert escape_keypath_component(component) == escaped

    @pytest.mark.parametrize("component", ["", "''", "a.b", "~0", "~1.~", "ab''cd", "$types"])
    def test_unescape_reverses_escape(self, component):
        assert unescape_keypath_component(escape_keypath_component(component)) == component

    def test_escaped_segment_never_contains_separator(self):
        assert "." not in escape_keypath_component("...")


class TestJoin:
    """Tests for keypath joining."""

    def test_join_from_root(self):
        assert join_keypath("", "a") == "a"

    def test_join_nested(self):
        assert join_keypath("a.0", "b.c") == "a.0.b~1c"

    def test_empty_property_differs_from_root(self):
        assert join_keypath("", "") == "''"
        assert join_keypath("a", "") == "a.''"


# =============================================================================
# Lookup and assignment
# =============================================================================

class TestGetByKeypath:
    """Tests for keypath lookup."""

    def test_empty_keypath_is_root(self):
        root = {"a": 1}
        assert get_by_keypath(root, "") is root

    def test_descends_dicts_and_lists(self):
        root = {"a": [{"b.c": 1}]}
        assert get_by_keypath(root, "a.0.b~1c") == 1

    def test_empty_property_name(self):
        assert get_by_keypath({"": {"x": 2}}, "''.x") == 2

    def test_missing_segment_is_undefined(self):
        assert get_by_keypath({"a": {}}, "a.b") is UNDEFINED
        assert get_by_keypath({"a": [1]}, "a.5") is UNDEFINED
        assert get_by_keypath({"a": [1]}, "a.x") is UNDEFINED
        assert get_by_keypath({"a": [1]}, "a.²") is UNDEFINED

    def test_descends_attributes(self):
        class Box:
            def __init__(self):
                self.inner = {"k": "v"}

        assert get_by_keypath(Box(), "inner.k") == "v"

    def test_dunder_attributes_are_not_reachable(self):
        class Box:
            pass

        assert get_by_keypath(Box(), "__class__") is UNDEFINED


class TestSetAtKeypath:
    """Tests for keypath assignment."""

    def test_sets_nested_value(self):
        root = {"a": [0, {"b": 1}]}
        assert set_at_keypath(root, "a.1.b", 5) is root
        assert root["a"][1]["b"] == 5

    def test_sets_list_index(self):
        root = {"a": [0, 0]}
        set_at_keypath(root, "a.1", "x")
        assert root == {"a": [0, "x"]}

    def test_root_keypath_returns_value(self):
        assert set_at_keypath({"a": 1}, "", "new") == "new"

    def test_missing_intermediate_raises(self):
        with pytest.raises(KeyError):
            set_at_keypath({}, "a.b", 1)

    @pytest.mark.parametrize("keypath", ["__class__", "a.__dict__"])
    def test_refuses_reserved_attributes(self, keypath):
        with pytest.raises(TypeError):
            set_at_keypath({"a": {}}, keypath, 1)
