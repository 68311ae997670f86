"""
Platform Tests
==============

Walk events, the event recorder and the shared walk state.
"""

from datetime import datetime

import pytest

from typeweave import Typeweave
from typeweave.core.schema import CycleMode, IterationMode
from typeweave.core.state import WalkState
from typeweave.platform.events import EVENT_SCHEMA_VERSION, EventKind, EventRecorder, WalkEvent
from typeweave.presets import BUILTIN_TYPES


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def observed(recorder) -> Typeweave:
    return Typeweave(encapsulate_observer=recorder).register(BUILTIN_TYPES)


# =============================================================================
# Observer events
# =============================================================================

class TestWalkEvents:
    """Tests for the events emitted during encapsulation."""

    def test_event_sequence(self, observed, recorder):
        observed.encapsulate({"a": 1, "d": datetime(2026, 1, 1)})
        events = recorder.events
        assert [event.kind for event in events] == [
            EventKind.ENTER,
            EventKind.VALUE,
            EventKind.REPLACING,
            EventKind.VALUE,
            EventKind.REPLACED,
            EventKind.LEAVE,
        ]
        assert [event.keypath for event in events] == ["", "a", "d", "d", "d", ""]
        assert [event.type for event in events] == [
            "object", "number", "datetime", "datetime", "datetime", "object",
        ]

    def test_enter_carries_clone(self, observed, recorder):
        observed.encapsulate({"a": [1]})
        enter = recorder.of_kind(EventKind.ENTER)
        assert [event.keypath for event in enter] == ["", "a"]
        assert enter[0].clone == {"a": [1]}

    def test_cycle_event(self, observed, recorder):
        root = {}
        root["self"] = root
        observed.encapsulate(root)
        (cycle,) = recorder.of_kind(EventKind.CYCLE)
        assert cycle.keypath == "self"
        assert cycle.cyclic_keypath == ""

    def test_replacement_is_readonly(self, observed, recorder):
        observed.encapsulate([{1}])
        replaced_walk = [event for event in recorder.events if event.kind is EventKind.ENTER and event.keypath == "0"]
        assert replaced_walk[0].cyclic is CycleMode.READONLY
        assert replaced_walk[0].type == "set"

    def test_query_helpers_accept_an_observer(self, recorder):
        Typeweave().special_type_names([1], encapsulate_observer=recorder)
        assert [event.kind for event in recorder.events] == [EventKind.ENTER, EventKind.VALUE, EventKind.LEAVE]

    def test_envelope(self, observed, recorder):
        observed.encapsulate({"d": datetime(2026, 1, 1)})
        envelope = recorder.of_kind(EventKind.REPLACED)[0].to_dict()
        assert envelope == {
            "schema_version": EVENT_SCHEMA_VERSION,
            "event_type": "replaced",
            "keypath": "d",
            "type": "datetime",
            "cyclic": "track",
            "resolving_deferred": False,
            "payload": {"replaced_kind": "str"},
        }


class TestEventRecorder:
    """Tests for the in-memory recorder."""

    def _event(self, keypath):
        return WalkEvent(kind=EventKind.VALUE, keypath=keypath, value=1, type="number", cyclic=CycleMode.TRACK)

    def test_keeps_most_recent_events(self):
        recorder = EventRecorder(max_events=2)
        for keypath in ("a", "b", "c"):
            recorder(self._event(keypath))
        assert [event.keypath for event in recorder.events] == ["b", "c"]

    def test_clear(self):
        recorder = EventRecorder()
        recorder(self._event("a"))
        recorder.clear()
        assert recorder.events == []
        assert recorder.to_dicts() == []


# =============================================================================
# Walk state
# =============================================================================

class TestWalkState:
    """Tests for node flags and shared attributes."""

    def test_defaults(self):
        state = WalkState()
        assert state.iterate_in is None
        assert state.own_keys is True
        assert state.replaced is False
        assert state.shared() == {}

    def test_shared_attributes(self):
        state = WalkState(tenant="acme")
        state.counter = 1
        assert state.shared() == {"tenant": "acme", "counter": 1}

    def test_child_scope_resets_and_restores_flags(self):
        state = WalkState()
        state.iterate_in = IterationMode.ARRAY
        state.replaced = True
        with state.child_scope(own_keys=False) as child:
            assert child is state
            assert state.iterate_in is None
            assert state.replaced is False
            assert state.own_keys is False
            state.type = "inner"
            state.note = "kept"
        assert state.iterate_in is IterationMode.ARRAY
        assert state.replaced is True
        assert state.type is None
        assert state.note == "kept"

    def test_coerce(self):
        state = WalkState()
        assert WalkState.coerce(state) is state
        assert WalkState.coerce({"x": 1}).x == 1
        assert isinstance(WalkState.coerce(None), WalkState)
        with pytest.raises(TypeError):
            WalkState.coerce(42)
