"""
Tests for the Typeweave Facade
==============================

Tests JSON round-trips, per-call and instance options, execution modes
and the helper queries of the engine facade.
"""

import asyncio
import json
import math
import os
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from typeweave import (
    UNDEFINED,
    ConfigurationError,
    DeferredValue,
    EngineOptions,
    ExecutionMode,
    ModeMismatchError,
    RepresentationError,
    TypeRegistry,
    Typeweave,
    WalkState,
    is_deferred,
)
from typeweave.presets import BUILTIN_TYPES


class Node:
    def __init__(self, name):
        self.name = name
        self.links = []


async def delayed(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def weave() -> Typeweave:
    return Typeweave().register(BUILTIN_TYPES)


@pytest.fixture
def async_weave() -> Typeweave:
    return Typeweave().register({
        "Node": {
            "test": lambda v: isinstance(v, Node),
            "replace_async": lambda v: DeferredValue(delayed({"name": v.name, "links": v.links})),
            "revive_async": lambda v: DeferredValue(delayed(_rebuild_node(v))),
        },
    })


def _rebuild_node(data):
    node = Node(data["name"])
    node.links = data["links"]
    return node


# =============================================================================
# JSON round-trips
# =============================================================================

class TestRoundTrip:
    """Tests for stringify/parse."""

    def test_stringify_output(self, weave):
        text = weave.stringify({"at": datetime(2026, 1, 1)})
        assert text == '{"at": "2026-01-01T00:00:00", "$types": {"at": "datetime"}}'
        assert weave.parse(text) == {"at": datetime(2026, 1, 1)}

    def test_plain_json_is_unchanged(self, weave):
        value = {"a": [1, 2.5, "x", None, False], "b": {}}
        text = weave.stringify(value)
        assert json.loads(text) == value
        assert weave.parse(text) == value

    def test_cyclic_graph(self, weave):
        root = {"name": "root", "children": []}
        child = {"parent": root, "born": date(2026, 2, 1)}
        root["children"].append(child)
        root["children"].append(child)

        revived = weave.parse(weave.stringify(root))
        first, second = revived["children"]
        assert first is second
        assert first["parent"] is revived
        assert first["born"] == date(2026, 2, 1)

    def test_user_objects_round_trip_as_dicts(self, weave):
        node = Node("a")
        node.links.append(node)
        revived = weave.parse(weave.stringify({"node": node}))
        assert revived["node"]["name"] == "a"
        assert revived["node"]["links"][0] is revived["node"]

    def test_dotted_key_beside_nested_key(self, weave):
        first, second = {1}, {2}
        value = {"a.b": first, "a": {"b": second}, "r1": first, "r2": second}
        text = weave.stringify(value)
        assert json.loads(text)["$types"] == {"a~1b": "set", "a.b": "set", "r1": "#", "r2": "#"}
        revived = weave.parse(text)
        assert revived == value
        assert revived["r1"] is revived["a.b"]
        assert revived["r2"] is revived["a"]["b"]

    def test_special_numbers(self, weave):
        assert weave.stringify(float("inf")) == '{"$": "Infinity", "$types": {"$": {"": "SpecialNumber"}}}'
        revived = weave.parse(weave.stringify([float("nan"), float("-inf"), 1.5]))
        assert math.isnan(revived[0])
        assert revived[1:] == [float("-inf"), 1.5]

    def test_non_finite_without_registration(self):
        with pytest.raises(RepresentationError):
            Typeweave().stringify({"x": float("nan")})

    def test_undefined_root_stringifies_to_none(self, weave):
        assert weave.stringify(UNDEFINED) is None

    def test_indent_and_sort_keys(self, weave):
        text = weave.stringify({"b": 1, "a": 2}, indent=2, sort_keys=True)
        assert text == '{\n  "a": 2,\n  "b": 1\n}'

    def test_user_types_key_survives(self, weave):
        value = {"$types": {"looks": "typed"}, "when": date(2026, 1, 2)}
        assert weave.parse(weave.stringify(value)) == value

    def test_encapsulate_revive_without_json(self, weave):
        tree = weave.encapsulate({"s": {1, 2}})
        assert tree == {"s": [1, 2], "$types": {"s": "set"}}
        assert weave.revive(tree) == {"s": {1, 2}}


# =============================================================================
# Registration and queries
# =============================================================================

class TestRegistrationAndQueries:
    """Tests for facade registration and helper queries."""

    def test_register_is_chainable(self):
        weave = Typeweave()
        assert weave.register({"t": [lambda v: False]}) is weave
        assert "t" in weave.types

    def test_class_registration(self):
        weave = Typeweave().register({"Node": Node})
        node = Node("a")
        node.links.extend([1, "two"])
        text = weave.stringify({"node": node})
        assert json.loads(text) == {"node": {"name": "a", "links": [1, "two"]}, "$types": {"node": "Node"}}
        revived = weave.parse(text)["node"]
        assert type(revived) is Node
        assert revived.links == [1, "two"]

    def test_class_registration_with_cycles(self):
        weave = Typeweave().register({"Node": Node})
        node = Node("a")
        node.me = node
        node.links.append(node)
        revived = weave.parse(weave.stringify(node))
        assert type(revived) is Node
        assert revived.me is revived
        assert revived.links[0] is revived

    def test_unregister(self, weave):
        assert weave.unregister("set") is True
        with pytest.raises(RepresentationError):
            weave.stringify({1})

    def test_shared_registry(self):
        registry = TypeRegistry()
        first = Typeweave(registry=registry)
        second = Typeweave(registry=registry)
        first.register(BUILTIN_TYPES)
        assert second.parse(first.stringify({date(2026, 1, 1)})) == {date(2026, 1, 1)}
        assert second.stringify([date(2026, 1, 1)]) == first.stringify([date(2026, 1, 1)])

    def test_special_type_names(self, weave):
        shared = {1}
        value = {"a": date(2026, 1, 1), "b": shared, "c": [shared, {"d": datetime.now(timezone.utc)}]}
        assert weave.special_type_names(value) == ["date", "set", "datetime"]

    @pytest.mark.parametrize(
        "value, expected",
        [(date(2026, 1, 1), "date"), ({"a": date(2026, 1, 1)}, "object"), ([], "array"), (1, "number")],
    )
    def test_root_type_name(self, weave, value, expected):
        assert weave.root_type_name(value) == expected

    def test_repr(self):
        weave = Typeweave().register({"set": [lambda v: isinstance(v, set), list, set]})
        assert repr(weave) == "Typeweave(types=['set'], mode='sync')"


# =============================================================================
# Options
# =============================================================================

class TestOptions:
    """Tests for instance defaults and per-call overrides."""

    def test_defaults(self):
        options = Typeweave().options
        assert options.cyclic is True
        assert options.mode is ExecutionMode.SYNC
        assert options.throw_on_bad_sync_type is True

    def test_keyword_options(self):
        assert Typeweave(mode="auto").options.mode is ExecutionMode.AUTO

    def test_options_with_overrides(self):
        weave = Typeweave(EngineOptions(cyclic=False), mode="async")
        assert weave.options.cyclic is False
        assert weave.options.mode is ExecutionMode.ASYNC

    def test_invalid_option(self):
        with pytest.raises(ConfigurationError):
            Typeweave(mode="sometimes")
        with pytest.raises(ConfigurationError):
            Typeweave(unknown=True)

    def test_invalid_per_call_option(self, weave):
        with pytest.raises(ConfigurationError):
            weave.encapsulate({}, mode="sometimes")

    def test_instance_cyclic_off(self):
        shared = {"v": 1}
        weave = Typeweave(cyclic=False)
        assert weave.encapsulate({"x": shared, "y": shared}) == {"x": {"v": 1}, "y": {"v": 1}}

    def test_per_call_cyclic_override(self, weave):
        shared = {"v": 1}
        assert weave.encapsulate({"x": shared, "y": shared}, cyclic=False) == {"x": {"v": 1}, "y": {"v": 1}}
        assert weave.encapsulate({"x": shared, "y": shared})["y"] == "#x"

    def test_state_is_threaded(self):
        def count(value, state):
            state.seen = getattr(state, "seen", 0) + 1
            return value.name

        weave = Typeweave().register({"Node": [lambda v: isinstance(v, Node), count, lambda v: Node(v)]})
        state = WalkState()
        weave.encapsulate([Node("a"), Node("b")], state)
        assert state.seen == 2

    def test_options_are_frozen(self):
        with pytest.raises(ValidationError):
            EngineOptions().cyclic = False

    def test_merged_ignores_none(self):
        options = EngineOptions(mode="auto")
        assert options.merged(mode=None) is options
        assert options.merged(cyclic=False).mode is ExecutionMode.AUTO


class TestOptionsFromEnvironment:
    """Tests for reading options from the environment."""

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("TYPEWEAVE_CYCLIC", "false")
        monkeypatch.setenv("TYPEWEAVE_MODE", "AUTO")
        options = EngineOptions.from_env()
        assert options.cyclic is False
        assert options.mode is ExecutionMode.AUTO
        assert options.throw_on_bad_sync_type is True

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("TYPEWEAVE_MODE", "async")
        assert EngineOptions.from_env(mode="sync").mode is ExecutionMode.SYNC

    def test_custom_prefix_and_dotenv_file(self, tmp_path):
        dotenv_file = tmp_path / ".env"
        dotenv_file.write_text("WEAVETEST_MODE=auto\nWEAVETEST_THROW_ON_BAD_SYNC_TYPE=0\n")
        try:
            options = EngineOptions.from_env("WEAVETEST_", dotenv_path=str(dotenv_file))
        finally:
            os.environ.pop("WEAVETEST_MODE", None)
            os.environ.pop("WEAVETEST_THROW_ON_BAD_SYNC_TYPE", None)
        assert options.mode is ExecutionMode.AUTO
        assert options.throw_on_bad_sync_type is False

    def test_invalid_environment_value(self, monkeypatch):
        monkeypatch.setenv("TYPEWEAVE_MODE", "eventually")
        with pytest.raises(ValidationError):
            EngineOptions.from_env()


# =============================================================================
# Execution modes
# =============================================================================

class TestExecutionModes:
    """Tests for sync, async and auto behaviour of the facade."""

    @pytest.mark.asyncio
    async def test_async_round_trip(self, async_weave):
        node = Node("n")
        text = async_weave.stringify_async({"node": node})
        assert is_deferred(text)
        text = await text
        assert json.loads(text) == {"node": {"name": "n", "links": []}, "$types": {"node": "Node"}}

        revived = await async_weave.parse_async(text)
        assert isinstance(revived["node"], Node)
        assert revived["node"].name == "n"

    @pytest.mark.asyncio
    async def test_async_shared_node(self, async_weave):
        node = Node("n")
        text = await async_weave.stringify_async([node, node])
        revived = await async_weave.parse_async(text)
        assert isinstance(revived[0], Node)
        assert revived[1] is revived[0]

    def test_sync_calls_reject_async_types(self, async_weave):
        with pytest.raises(ModeMismatchError):
            async_weave.stringify({"node": Node("n")})
        with pytest.raises(ModeMismatchError):
            async_weave.parse('{"node": {"name": "n", "links": []}, "$types": {"node": "Node"}}')

    def test_async_calls_reject_sync_work(self, weave):
        with pytest.raises(ModeMismatchError, match="Async method requested but sync result obtained"):
            weave.encapsulate_async({"s": {1}})
        with pytest.raises(ModeMismatchError, match="Async method requested but sync result obtained"):
            weave.revive_async({"s": [1], "$types": {"s": "set"}})

    @pytest.mark.asyncio
    async def test_async_calls_without_check(self, weave):
        result = weave.stringify_async({"s": {1}}, throw_on_bad_sync_type=False)
        assert await result == '{"s": [1], "$types": {"s": "set"}}'

    @pytest.mark.asyncio
    async def test_auto_mode_instance(self, async_weave):
        async_weave.options = async_weave.options.merged(mode="auto")
        assert async_weave.stringify({"plain": 1}) == '{"plain": 1}'
        assert await async_weave.stringify({"node": Node("x")}) == (
            '{"node": {"name": "x", "links": []}, "$types": {"node": "Node"}}'
        )

    @pytest.mark.asyncio
    async def test_async_query_helpers(self, async_weave):
        assert await async_weave.special_type_names_async([Node("a")]) == ["Node"]
        assert await async_weave.root_type_name_async(Node("a")) == "Node"
