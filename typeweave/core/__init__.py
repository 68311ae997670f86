"""
Typeweave Core: Encapsulation and Revival Engine
================================================

This package turns arbitrary, possibly cyclic value graphs into plain
JSON-compatible trees with a keypath → type side channel, and back.

Public API:
- Typeweave: The main engine facade
- TypeRegistry: Ordered registry of named types
- TypeSpec: Type specification model
- Encapsulator / Reviver: The two walks
- WalkState: State shared with callbacks during a walk
- Keypath helpers: escape, unescape, join, get and set by keypath
- Classification helpers and the UNDEFINED marker
"""

from typeweave.core.errors import (
    TypeweaveError,
    ConfigurationError,
    UnregisteredTypeError,
    RepresentationError,
    ModeMismatchError,
)
from typeweave.core.classify import (
    UNDEFINED,
    Undefined,
    has_constructor_of,
    is_plain_object,
    is_thenable,
    is_undefined,
    is_user_object,
    json_type,
)
from typeweave.core.keypath import (
    escape_keypath_component,
    unescape_keypath_component,
    join_keypath,
    get_by_keypath,
    set_at_keypath,
)
from typeweave.core.schema import (
    BACK_REFERENCE,
    DATA_MARKER,
    TYPES_MARKER,
    CycleMode,
    ExecutionMode,
    IterationMode,
    TypeSpec,
)
from typeweave.core.state import WalkState
from typeweave.core.registry import TypeRegistry, build_type_spec
from typeweave.core.encapsulate import Encapsulator, OutputShape
from typeweave.core.revive import Reviver
from typeweave.core.engine import Typeweave

__all__ = [
    "Typeweave",
    "TypeRegistry",
    "TypeSpec",
    "build_type_spec",
    "Encapsulator",
    "OutputShape",
    "Reviver",
    "WalkState",
    "CycleMode",
    "ExecutionMode",
    "IterationMode",
    "BACK_REFERENCE",
    "DATA_MARKER",
    "TYPES_MARKER",
    "UNDEFINED",
    "Undefined",
    "has_constructor_of",
    "is_plain_object",
    "is_thenable",
    "is_undefined",
    "is_user_object",
    "json_type",
    "escape_keypath_component",
    "unescape_keypath_component",
    "join_keypath",
    "get_by_keypath",
    "set_at_keypath",
    "TypeweaveError",
    "ConfigurationError",
    "UnregisteredTypeError",
    "RepresentationError",
    "ModeMismatchError",
]
