"""
Encapsulation Engine
====================

Turns an arbitrary value graph into a plain tree plus a keypath → type map.

For every visited node the engine:
1. Passes strings, booleans, None and finite numbers through
2. Offers undefined and non-finite numbers to the registry
3. Rewrites repeat visits of an object as ``"#<first keypath>"``
4. Leaves deferred values in place for later settlement
5. Offers the value to the registry and re-encapsulates any replacement
6. Otherwise clones lists, mappings and user objects member by member

Deferred branches are settled batch by batch and spliced back into the slot
they came from, so the assembled tree never depends on settlement order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

from typeweave.core.classify import (
    UNDEFINED,
    is_plain_object,
    is_undefined,
    is_user_object,
    json_type,
)
from typeweave.core.errors import ModeMismatchError, RepresentationError
from typeweave.core.keypath import join_keypath
from typeweave.core.registry import TypeRegistry
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
from typeweave.platform.deferred import DeferredValue, is_deferred
from typeweave.platform.events import EventKind, WalkEvent


logger = logging.getLogger(__name__)

_NOT_REPLACED = object()


class OutputShape(str, Enum):
    """What an encapsulation call returns."""

    TREE = "tree"
    """The packaged plain tree."""

    TYPE_NAMES = "type_names"
    """Unique registered type names found anywhere in the graph."""

    ROOT_TYPE = "root_type"
    """The type name of the root, without walking its members."""


@dataclass
class PendingBranch:
    """A deferred value waiting to be spliced into the tree."""

    keypath: str
    deferred: Any
    cyclic: CycleMode
    parent: Any = None
    key: Any = None
    detected_type: Optional[str] = None


class EncapsulationContext:
    """Tables owned by a single encapsulation call."""

    def __init__(self, state: WalkState, mode: ExecutionMode, output: OutputShape):
        self.state = state
        self.mode = mode
        self.output = output
        self.types: dict[str, Any] = {}
        self.references: dict[int, tuple[Any, str]] = {}
        self.ancestors: set[int] = set()
        self.pending: list[PendingBranch] = []
        self.resolving = False


class Encapsulator:
    """
    Encapsulation walk over a TypeRegistry.

    Parameters
    ----------
    registry : TypeRegistry
        Entries consulted for every non-trivial value.
    observer : callable, optional
        Called with a :class:`WalkEvent` at every step of the walk.

    Example
    -------
    >>> registry = TypeRegistry().register({
    ...     "set": [lambda v: isinstance(v, set), sorted, set],
    ... })
    >>> shared = {"tags": {"b", "a"}}
    >>> Encapsulator(registry).run({"x": shared, "y": shared})
    {'x': {'tags': ['a', 'b']}, 'y': '#x', '$types': {'x.tags': 'set', 'y': '#'}}
    """

    def __init__(
        self,
        registry: TypeRegistry,
        observer: Optional[Callable[[WalkEvent], Any]] = None,
    ):
        self.registry = registry
        self.observer = observer

    def run(
        self,
        value: Any,
        state: Any = None,
        *,
        cyclic: bool = True,
        mode: ExecutionMode = ExecutionMode.SYNC,
        throw_on_bad_sync_type: bool = True,
        output: OutputShape = OutputShape.TREE,
    ) -> Any:
        """
        Encapsulate ``value``.

        Returns
        -------
        Any
            The packaged tree (or type names / root type name, depending on
            ``output``), or a DeferredValue of it when deferred work was found
            outside sync mode.

        Raises
        ------
        ModeMismatchError
            Sync mode met deferred work, or async mode met none while
            ``throw_on_bad_sync_type`` is set.
        RepresentationError
            A value has no plain representation.
        """
        ctx = EncapsulationContext(WalkState.coerce(state), ExecutionMode(mode), OutputShape(output))
        cycle = CycleMode.TRACK if cyclic else CycleMode.OFF

        tree = self._walk(ctx, "", value, cycle)
        if is_deferred(tree):
            ctx.pending.append(PendingBranch("", tree, cycle))

        if ctx.pending:
            if ctx.mode is ExecutionMode.SYNC:
                raise ModeMismatchError("Sync method requested but async result obtained")
            logger.debug("[Encapsulator] Awaiting %d deferred branches", len(ctx.pending))
            return DeferredValue(self._settle(ctx, tree))

        if ctx.mode is ExecutionMode.ASYNC:
            if throw_on_bad_sync_type:
                raise ModeMismatchError("Async method requested but sync result obtained")
            return DeferredValue.resolve(self._finish(ctx, tree))
        return self._finish(ctx, tree)

    # =========================================================================
    # Walk
    # =========================================================================

    def _walk(
        self,
        ctx: EncapsulationContext,
        keypath: str,
        value: Any,
        cyclic: CycleMode,
        detected_type: Optional[str] = None,
    ) -> Any:
        state = ctx.state
        kind = json_type(value)
        non_finite = isinstance(value, float) and not math.isfinite(value)

        if kind in ("null", "boolean", "string") or (kind == "number" and not non_finite):
            self._emit(ctx, EventKind.VALUE, keypath, value, cyclic, detected_type)
            return value

        if kind in ("number", "undefined"):
            replaced = _NOT_REPLACED
            if not state.replaced:
                replaced = self._replace(ctx, keypath, value, cyclic, plain_container=False)
            if replaced is not _NOT_REPLACED:
                self._emit(ctx, EventKind.REPLACED, keypath, value, cyclic, detected_type, replaced=replaced)
                return replaced
            if non_finite:
                raise RepresentationError(
                    f"Cannot represent non-finite number {value!r} without a registered type",
                    keypath,
                )
            self._emit(ctx, EventKind.VALUE, keypath, value, cyclic, detected_type)
            return UNDEFINED

        if cyclic is not CycleMode.OFF and not state.iterate_in and not state.iterate_unset_numeric:
            seen = ctx.references.get(id(value))
            if seen is None:
                if cyclic is CycleMode.TRACK:
                    ctx.references[id(value)] = (value, keypath)
            elif seen[1] != keypath:
                ctx.types[keypath] = BACK_REFERENCE
                self._emit(ctx, EventKind.CYCLE, keypath, value, cyclic, detected_type, cyclic_keypath=seen[1])
                return BACK_REFERENCE + seen[1]

        if is_deferred(value):
            self._emit(ctx, EventKind.AWAITING, keypath, value, cyclic, detected_type)
            return value

        plain_container = is_plain_object(value) or type(value) is list
        if state.iterate_in or (
            plain_container and (state.replaced or not self.registry.has_plain_entries)
        ):
            replaced = _NOT_REPLACED
        else:
            replaced = self._replace(ctx, keypath, value, cyclic, plain_container=plain_container)
        if replaced is not _NOT_REPLACED:
            self._emit(ctx, EventKind.REPLACED, keypath, value, cyclic, detected_type, replaced=replaced)
            return replaced

        return self._clone(ctx, keypath, value, cyclic, detected_type)

    def _replace(
        self,
        ctx: EncapsulationContext,
        keypath: str,
        value: Any,
        cyclic: CycleMode,
        *,
        plain_container: bool,
    ) -> Any:
        """Dispatch to the registry and encapsulate the claimed replacement."""
        state = ctx.state
        spec = self.registry.dispatch(value, state, plain_container=plain_container)
        if spec is None:
            return _NOT_REPLACED

        if spec.has_reviver:
            existing = ctx.types.get(keypath)
            if existing is None or existing == BACK_REFERENCE:
                ctx.types[keypath] = spec.name
            else:
                chain = existing if isinstance(existing, list) else [existing]
                ctx.types[keypath] = [spec.name, *chain]

        state.type = spec.name
        state.replaced = True
        if state.iterate_in is None and spec.iterate_in is not None:
            state.iterate_in = spec.iterate_in
        if spec.iterate_unset_numeric:
            state.iterate_unset_numeric = True

        next_cycle = CycleMode.OFF if cyclic is CycleMode.OFF else CycleMode.READONLY
        replacer = self._select_replacer(spec, ctx.mode)
        if replacer is None:
            if state.iterate_in is None:
                state.iterate_in = (
                    IterationMode.ARRAY if isinstance(value, (list, tuple)) else IterationMode.OBJECT
                )
            self._emit(ctx, EventKind.TYPE_DETECTED, keypath, value, cyclic, spec.name)
            return self._walk(ctx, keypath, value, next_cycle, detected_type=spec.name)

        self._emit(ctx, EventKind.REPLACING, keypath, value, cyclic, spec.name)
        try:
            replacement = replacer(value, state)
        except Exception as exc:
            exc.add_note(f"while replacing type {spec.name!r} at keypath {keypath!r}")
            raise
        return self._walk(ctx, keypath, replacement, next_cycle, detected_type=spec.name)

    @staticmethod
    def _select_replacer(spec: TypeSpec, mode: ExecutionMode) -> Optional[Callable[..., Any]]:
        if mode is ExecutionMode.SYNC:
            if spec.replace is None and spec.replace_async is not None:
                raise ModeMismatchError(
                    f"Sync method requested but type {spec.name!r} only has an async replacer"
                )
            return spec.replace
        return spec.replace_async or spec.replace

    def _clone(
        self,
        ctx: EncapsulationContext,
        keypath: str,
        value: Any,
        cyclic: CycleMode,
        detected_type: Optional[str],
    ) -> Any:
        """Clone a container or user object and encapsulate its members."""
        state = ctx.state
        mode = state.iterate_in

        if (isinstance(value, list) and mode != IterationMode.OBJECT) or mode == IterationMode.ARRAY:
            clone: Any = [None] * _array_length(value)
        elif (
            is_plain_object(value)
            or mode == IterationMode.OBJECT
            or isinstance(value, Mapping)
            or is_user_object(value)
        ):
            clone = {}
            if state.add_length:
                clone["length"] = _array_length(value)
        else:
            raise RepresentationError(
                f"Cannot represent {type(value).__name__} without a registered type",
                keypath,
            )

        self._emit(ctx, EventKind.ENTER, keypath, value, cyclic, detected_type, clone=clone)
        if ctx.output is OutputShape.ROOT_TYPE:
            return clone
        if cyclic is CycleMode.OFF and id(value) in ctx.ancestors:
            raise RepresentationError("Cyclic reference found with cycle handling disabled", keypath)

        members = _members(value, clone, state, keypath)
        child_cycle = CycleMode.OFF if cyclic is CycleMode.OFF else CycleMode.TRACK
        ctx.ancestors.add(id(value))
        for key, member, own_keys in members:
            child_keypath = join_keypath(keypath, str(key))
            with state.child_scope(own_keys=own_keys):
                encapsulated = self._walk(ctx, child_keypath, member, child_cycle)
            self._place(ctx, clone, key, child_keypath, encapsulated, child_cycle)
        ctx.ancestors.discard(id(value))

        self._emit(ctx, EventKind.LEAVE, keypath, value, cyclic, detected_type, clone=clone)
        return clone

    @staticmethod
    def _place(
        ctx: EncapsulationContext,
        clone: Any,
        key: Any,
        keypath: str,
        encapsulated: Any,
        cyclic: CycleMode,
    ) -> None:
        if is_deferred(encapsulated):
            ctx.pending.append(PendingBranch(keypath, encapsulated, cyclic, clone, key))
            clone[key] = None
        elif is_undefined(encapsulated):
            if isinstance(clone, list):
                clone[key] = None
        else:
            clone[key] = encapsulated

    # =========================================================================
    # Settlement and packaging
    # =========================================================================

    async def _settle(self, ctx: EncapsulationContext, tree: Any) -> Any:
        """Await pending branches in structural order and splice them in."""
        ctx.resolving = True
        while ctx.pending:
            batch, ctx.pending = ctx.pending, []
            results = await DeferredValue.all([branch.deferred for branch in batch])
            for branch, result in zip(batch, results):
                with ctx.state.child_scope():
                    encapsulated = self._walk(
                        ctx, branch.keypath, result, branch.cyclic, branch.detected_type
                    )
                if is_deferred(encapsulated):
                    ctx.pending.append(replace(branch, deferred=encapsulated))
                elif branch.parent is None:
                    tree = encapsulated
                elif is_undefined(encapsulated):
                    if isinstance(branch.parent, dict):
                        branch.parent.pop(branch.key, None)
                else:
                    branch.parent[branch.key] = encapsulated
            logger.debug("[Encapsulator] Settled %d deferred branches", len(batch))
        return self._finish(ctx, tree)

    def _finish(self, ctx: EncapsulationContext, tree: Any) -> Any:
        """Package the tree and type map according to the requested output."""
        types = ctx.types
        if ctx.output is OutputShape.TYPE_NAMES:
            return _unique_type_names(types)
        if ctx.output is OutputShape.ROOT_TYPE:
            root_type = types.get("")
            if isinstance(root_type, list):
                return root_type[-1]
            if root_type is not None and root_type != BACK_REFERENCE:
                return root_type
            return json_type(tree)

        logger.debug("[Encapsulator] Finished walk with %d typed keypaths", len(types))
        if types:
            if not is_plain_object(tree) or TYPES_MARKER in tree:
                return {DATA_MARKER: tree, TYPES_MARKER: {DATA_MARKER: types}}
            tree[TYPES_MARKER] = types
            return tree
        if is_plain_object(tree) and TYPES_MARKER in tree:
            return {DATA_MARKER: tree, TYPES_MARKER: True}
        return tree

    def _emit(
        self,
        ctx: EncapsulationContext,
        kind: EventKind,
        keypath: str,
        value: Any,
        cyclic: CycleMode,
        detected_type: Optional[str] = None,
        **payload: Any,
    ) -> None:
        if self.observer is None:
            return
        state = ctx.state
        type_name = detected_type or (state.type if state.replaced else None) or json_type(value)
        self.observer(
            WalkEvent(
                kind=kind,
                keypath=keypath,
                value=value,
                type=type_name,
                cyclic=cyclic,
                resolving_deferred=ctx.resolving,
                **payload,
            )
        )


def _is_index(key: Any) -> bool:
    if isinstance(key, bool):
        return False
    if isinstance(key, int):
        return key >= 0
    return isinstance(key, str) and key.isascii() and key.isdigit()


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, str)


def _source_items(value: Any) -> list[tuple[Any, Any]]:
    if isinstance(value, Mapping):
        return list(value.items())
    return list(getattr(value, "__dict__", {}).items())


def _array_length(value: Any) -> int:
    """Length of a value walked as an array."""
    if _is_sequence(value):
        return len(value)
    items = dict(_source_items(value))
    length = items.get("length")
    if isinstance(length, int) and not isinstance(length, bool):
        return length
    indices = [int(key) for key in items if _is_index(key)]
    return max(indices) + 1 if indices else 0


def _members(value: Any, clone: Any, state: WalkState, keypath: str) -> list[tuple[Any, Any, bool]]:
    """List ``(key, member, own_keys)`` triples for a node being cloned."""
    if isinstance(clone, list):
        if _is_sequence(value):
            members = [(index, item, True) for index, item in enumerate(value)]
        else:
            members = [
                (int(key), item, True)
                for key, item in _source_items(value)
                if _is_index(key) and int(key) < len(clone)
            ]
        if state.iterate_unset_numeric:
            present = {index for index, _, _ in members}
            members.extend(
                (index, UNDEFINED, False) for index in range(len(clone)) if index not in present
            )
            members.sort(key=lambda member: member[0])
        return members

    if _is_sequence(value):
        items = list(enumerate(value))
    else:
        items = _source_items(value)
    members = []
    for key, item in items:
        if not isinstance(key, str):
            if state.iterate_in != IterationMode.OBJECT:
                raise RepresentationError(f"Cannot represent non-string key {key!r}", keypath)
            key = str(key)
        members.append((key, item, True))
    return members


def _unique_type_names(types: dict[str, Any]) -> list[str]:
    names: list[str] = []
    for tag in types.values():
        for name in tag if isinstance(tag, list) else [tag]:
            if name != BACK_REFERENCE and name not in names:
                names.append(name)
    return names
