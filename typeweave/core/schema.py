"""
Type Specification Schema
=========================

Data models describing how a named type is detected, flattened into plain
data and rebuilt.

A type specification is the unit of extension: the registry holds an
ordered list of them, the encapsulator asks each one whether it claims a
value, and the reviver looks them up by name.

Reserved markers:
- DATA_MARKER (``$``): wrapped payload of a packaged root
- TYPES_MARKER (``$types``): the type map side channel
- BACK_REFERENCE (``#``): type tag and value prefix of a cyclic reference
"""

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, model_validator


DATA_MARKER = "$"
TYPES_MARKER = "$types"
BACK_REFERENCE = "#"

RESERVED_TYPE_NAMES = frozenset(
    {BACK_REFERENCE, "null", "boolean", "number", "string", "array", "object"}
)
"""Names a registry entry may never use."""


class IterationMode(str, Enum):
    """How a claimed value's members are walked when it is not replaced."""

    ARRAY = "array"
    """Clone into a list, visiting integer-like keys."""

    OBJECT = "object"
    """Clone into a dict, visiting every key or attribute."""


class CycleMode(str, Enum):
    """Reference-table behaviour for one node of a walk."""

    TRACK = "track"
    """Check for earlier visits and record first visits."""

    READONLY = "readonly"
    """Check for earlier visits but never record (replacement values)."""

    OFF = "off"
    """Cycle handling disabled; true cycles are rejected."""


class ExecutionMode(str, Enum):
    """Caller-selected execution mode for a walk."""

    SYNC = "sync"
    """Return a plain result; any deferred work is an error."""

    ASYNC = "async"
    """Return a DeferredValue; purely synchronous work is an error by default."""

    AUTO = "auto"
    """Return whatever shape the walk produced."""


class TypeSpec(BaseModel):
    """
    A named, user-supplied type behaviour.

    Only ``test`` is required. An entry with no replacer walks the claimed
    value's own members (see ``iterate_in``); an entry with no reviver is
    never recorded in the type map.

    Examples
    --------
    Flatten datetimes to ISO strings:
        TypeSpec(
            name="datetime",
            test=lambda value: isinstance(value, datetime),
            replace=lambda value: value.isoformat(),
            revive=datetime.fromisoformat,
        )

    Walk tuples as arrays and rebuild them:
        TypeSpec(
            name="tuple",
            test=lambda value: isinstance(value, tuple),
            iterate_in=IterationMode.ARRAY,
            revive=tuple,
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    """Registry name; also the tag written to the type map."""

    test: Callable[..., Any]
    """Predicate ``test(value, state) -> bool`` deciding whether the entry claims a value."""

    replace: Optional[Callable[..., Any]] = None
    """Synchronous ``replace(value, state)`` returning a simpler value."""

    revive: Optional[Callable[..., Any]] = None
    """Synchronous ``revive(data, state)`` rebuilding the original value."""

    replace_async: Optional[Callable[..., Any]] = None
    """Replacer that may return a DeferredValue; preferred in async mode."""

    revive_async: Optional[Callable[..., Any]] = None
    """Reviver that may return a DeferredValue; preferred in async mode."""

    test_plain_objects: bool = False
    """Consult this entry for plain dicts and lists instead of other values."""

    iterate_in: Optional[IterationMode] = None
    """Default iteration mode applied when the entry claims a value."""

    iterate_unset_numeric: bool = False
    """Visit missing integer slots (as undefined) when iterating as an array."""

    fallback: bool = False
    """Set by the registry: consulted only after every primary entry."""

    @model_validator(mode="after")
    def _validate_name(self) -> "TypeSpec":
        """Ensure the entry carries a usable name."""
        if not self.name:
            raise ValueError("Type name must be a non-empty string")
        return self

    @property
    def has_reviver(self) -> bool:
        """Whether occurrences are recorded in the type map."""
        return self.revive is not None or self.revive_async is not None

    @property
    def has_replacer(self) -> bool:
        return self.replace is not None or self.replace_async is not None

    def __repr__(self) -> str:
        flags = []
        if self.test_plain_objects:
            flags.append("plain")
        if self.fallback:
            flags.append("fallback")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        return f"TypeSpec({self.name!r}{suffix})"
