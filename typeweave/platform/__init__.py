"""
Platform primitives: deferred values and walk events.
"""

from typeweave.platform.deferred import (
    DeferredRejection,
    DeferredState,
    DeferredValue,
    is_deferred,
)
from typeweave.platform.events import (
    EVENT_SCHEMA_VERSION,
    EventKind,
    EventRecorder,
    WalkEvent,
)

__all__ = [
    "DeferredValue",
    "DeferredState",
    "DeferredRejection",
    "is_deferred",
    "EVENT_SCHEMA_VERSION",
    "EventKind",
    "EventRecorder",
    "WalkEvent",
]
