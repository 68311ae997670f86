"""
Walk event records and an in-memory recorder for encapsulation observers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

from typeweave.core.schema import CycleMode


EVENT_SCHEMA_VERSION = "1.0"


class EventKind(str, Enum):
    """What happened at a node of the walk."""

    VALUE = "value"
    """A leaf value passed through unchanged."""

    ENTER = "enter"
    """A container was cloned and is about to be iterated."""

    LEAVE = "leave"
    """A container finished iterating."""

    TYPE_DETECTED = "type_detected"
    """An entry without a replacer claimed the node."""

    REPLACING = "replacing"
    """An entry's replacer is about to run."""

    REPLACED = "replaced"
    """The node was replaced by an entry's result."""

    CYCLE = "cycle"
    """The node was encoded as a back-reference."""

    AWAITING = "awaiting"
    """The node is a deferred value left for later settlement."""


@dataclass
class WalkEvent:
    """One observer notification."""

    kind: EventKind
    keypath: str
    value: Any
    type: str
    cyclic: CycleMode
    resolving_deferred: bool = False
    clone: Any = None
    replaced: Any = None
    cyclic_keypath: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Envelope form, without the raw value."""
        payload: dict[str, Any] = {}
        if self.cyclic_keypath is not None:
            payload["cyclic_keypath"] = self.cyclic_keypath
        if self.kind is EventKind.REPLACED:
            payload["replaced_kind"] = type(self.replaced).__name__
        return {
            "schema_version": EVENT_SCHEMA_VERSION,
            "event_type": self.kind.value,
            "keypath": self.keypath,
            "type": self.type,
            "cyclic": self.cyclic.value,
            "resolving_deferred": self.resolving_deferred,
            "payload": payload,
        }


class EventRecorder:
    """
    Observer that keeps the most recent walk events.

    Safe to share between concurrent walks.
    """

    def __init__(self, max_events: int = 5000):
        self.max_events = max_events
        self._events: list[WalkEvent] = []
        self._lock = Lock()

    def __call__(self, event: WalkEvent) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self.max_events:
                self._events = self._events[-self.max_events:]

    @property
    def events(self) -> list[WalkEvent]:
        with self._lock:
            return list(self._events)

    def of_kind(self, *kinds: EventKind) -> list[WalkEvent]:
        """Events whose kind is one of ``kinds``."""
        with self._lock:
            return [event for event in self._events if event.kind in kinds]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self.events]

    def clear(self) -> None:
        with self._lock:
            self._events = []
