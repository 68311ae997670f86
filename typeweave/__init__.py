"""
Typeweave
=========

Lossless round-tripping of cyclic, typed and asynchronously produced values
through JSON.

Public API:
- Typeweave: Engine facade (register, encapsulate, revive, stringify, parse)
- EngineOptions: Instance defaults, optionally read from the environment
- TypeRegistry / TypeSpec: The user-extensible type registry
- DeferredValue: Promise-like value for asynchronous replacers and revivers
- WalkEvent / EventRecorder: Encapsulation observer support
- UNDEFINED: Marker for explicitly undefined slots
"""

from typeweave.core import (
    UNDEFINED,
    ConfigurationError,
    ExecutionMode,
    IterationMode,
    ModeMismatchError,
    RepresentationError,
    TypeRegistry,
    TypeSpec,
    Typeweave,
    TypeweaveError,
    Undefined,
    UnregisteredTypeError,
    WalkState,
)
from typeweave.platform import DeferredValue, EventKind, EventRecorder, WalkEvent, is_deferred
from typeweave.config import EngineOptions

__version__ = "0.1.0"

__all__ = [
    "Typeweave",
    "EngineOptions",
    "TypeRegistry",
    "TypeSpec",
    "WalkState",
    "ExecutionMode",
    "IterationMode",
    "DeferredValue",
    "is_deferred",
    "WalkEvent",
    "EventKind",
    "EventRecorder",
    "UNDEFINED",
    "Undefined",
    "TypeweaveError",
    "ConfigurationError",
    "UnregisteredTypeError",
    "RepresentationError",
    "ModeMismatchError",
]
