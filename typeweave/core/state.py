"""
Walk State
==========

The state object handed to every test, replacer and reviver of one call.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from typeweave.core.schema import IterationMode


class WalkState:
    """
    Mutable state shared by callbacks during a single encapsulate/revive call.

    Node flags are reset around every child visit so they only describe
    the node currently being processed. Any other attribute a callback sets
    persists for the whole call, which lets callbacks share bookkeeping.

    Attributes
    ----------
    iterate_in : IterationMode or None
        Force the current node to be walked as an array or an object.
    add_length : bool
        Add a ``length`` member when cloning the current node into a dict.
    iterate_unset_numeric : bool
        Visit missing integer slots of the current node as undefined.
    own_keys : bool
        False while visiting a slot the source value does not actually hold.
    type : str or None
        Name of the entry that claimed the current node.
    replaced : bool
        Whether the current node is a replacement produced by an entry.

    Example
    -------
    >>> def replace_shared(value, state):
    ...     seen = getattr(state, "seen", None)
    ...     if seen is None:
    ...         state.seen = seen = []
    ...     seen.append(value)
    ...     return len(seen) - 1
    """

    NODE_FLAGS = (
        "iterate_in",
        "add_length",
        "iterate_unset_numeric",
        "own_keys",
        "type",
        "replaced",
    )

    def __init__(self, **shared: Any):
        self.iterate_in: Optional[IterationMode] = None
        self.add_length = False
        self.iterate_unset_numeric = False
        self.own_keys = True
        self.type: Optional[str] = None
        self.replaced = False
        for name, value in shared.items():
            setattr(self, name, value)

    @classmethod
    def coerce(cls, state: "WalkState | Mapping[str, Any] | None") -> "WalkState":
        """Accept an existing state, a mapping of shared attributes, or nothing."""
        if state is None:
            return cls()
        if isinstance(state, WalkState):
            return state
        if isinstance(state, Mapping):
            return cls(**state)
        raise TypeError(f"state must be a WalkState or a mapping, got {type(state).__name__}")

    @contextmanager
    def child_scope(self, *, own_keys: bool = True) -> Iterator["WalkState"]:
        """Reset node flags for one child visit and restore them afterwards."""
        saved = {name: getattr(self, name) for name in self.NODE_FLAGS}
        self.iterate_in = None
        self.add_length = False
        self.iterate_unset_numeric = False
        self.own_keys = own_keys
        self.type = None
        self.replaced = False
        try:
            yield self
        finally:
            for name, value in saved.items():
                setattr(self, name, value)

    def shared(self) -> dict[str, Any]:
        """Attributes set by callbacks, without the node flags."""
        return {
            name: value
            for name, value in vars(self).items()
            if name not in self.NODE_FLAGS
        }

    def __repr__(self) -> str:
        return f"WalkState(type={self.type!r}, replaced={self.replaced}, shared={self.shared()!r})"
