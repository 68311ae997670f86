"""
Revival Engine
==============

Rebuilds a value graph from a plain tree and its type map.

Children are revived before their parents, so an enclosing reviver always
sees fully rebuilt members. Containers are attached to the output before
their members are walked, so a back-reference is filled in as soon as its
target is reachable.

Every back-reference is also recorded by keypath and resolved again once
the whole revival, deferred revivers included, has finished. That pass
looks targets up in the final root, so references to typed ancestors and
to asynchronously revived values end up pointing at the revived objects
rather than at intermediate clones or placeholders.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable

from typeweave.core.classify import UNDEFINED, is_plain_object
from typeweave.core.errors import ConfigurationError, ModeMismatchError, UnregisteredTypeError
from typeweave.core.keypath import get_by_keypath, join_keypath, set_at_keypath
from typeweave.core.registry import TypeRegistry
from typeweave.core.schema import BACK_REFERENCE, DATA_MARKER, TYPES_MARKER, ExecutionMode, TypeSpec
from typeweave.core.state import WalkState
from typeweave.platform.deferred import DeferredValue, is_deferred


logger = logging.getLogger(__name__)

_SKIP = object()
_UNRESOLVED = object()


class RevivalContext:
    """Tables owned by a single revival call."""

    def __init__(self, state: WalkState, mode: ExecutionMode, types: dict[str, Any], ignore_types_key: bool):
        self.state = state
        self.mode = mode
        self.types = types
        self.ignore_types_key = ignore_types_key
        self.root: Any = UNDEFINED
        self.pending_scopes: list[list[DeferredValue]] = [[]]
        self.references: list[tuple[str, str, Any]] = []

    @property
    def pending(self) -> list[DeferredValue]:
        """Deferred work owned by the innermost typed container."""
        return self.pending_scopes[-1]


class Reviver:
    """
    Revival walk over a TypeRegistry.

    Example
    -------
    >>> registry = TypeRegistry().register({
    ...     "set": [lambda v: isinstance(v, set), sorted, set],
    ... })
    >>> Reviver(registry).run({"tags": ["a", "b"], "$types": {"tags": "set"}})
    {'tags': {'a', 'b'}}
    """

    def __init__(self, registry: TypeRegistry):
        self.registry = registry

    def run(
        self,
        tree: Any,
        state: Any = None,
        *,
        mode: ExecutionMode = ExecutionMode.SYNC,
        throw_on_bad_sync_type: bool = True,
    ) -> Any:
        """
        Revive ``tree``.

        Returns
        -------
        Any
            The rebuilt value, or a DeferredValue of it when a reviver
            deferred outside sync mode (always a DeferredValue in async mode).

        Raises
        ------
        UnregisteredTypeError
            The type map names a type with no reviver.
        ModeMismatchError
            Sync mode met deferred work or a type without a sync reviver, or
            async mode met none while ``throw_on_bad_sync_type`` is set.
        """
        mode = ExecutionMode(mode)
        types = tree.get(TYPES_MARKER) if is_plain_object(tree) else None
        if types is True:
            return self._deliver(mode, tree.get(DATA_MARKER))
        if not isinstance(types, dict):
            return self._deliver(mode, tree)

        ignore_types_key = True
        if is_plain_object(types.get(DATA_MARKER)):
            tree = tree.get(DATA_MARKER)
            types = types[DATA_MARKER]
            ignore_types_key = False

        ctx = RevivalContext(WalkState.coerce(state), mode, types, ignore_types_key)
        root = self._revive(ctx, "", tree, None, None)
        if is_deferred(root) or ctx.pending:
            if mode is ExecutionMode.SYNC:
                raise ModeMismatchError("Sync method requested but async result obtained")
            logger.debug("[Reviver] Awaiting %d deferred revivals", len(ctx.pending) + is_deferred(root))
            return DeferredValue(self._settle(ctx, root))

        if mode is ExecutionMode.ASYNC and throw_on_bad_sync_type:
            raise ModeMismatchError("Async method requested but sync result obtained")
        return self._deliver(mode, self._resolve_references(ctx, root))

    @staticmethod
    def _deliver(mode: ExecutionMode, value: Any) -> Any:
        if mode is ExecutionMode.ASYNC:
            return DeferredValue.resolve(value)
        return value

    # =========================================================================
    # Walk
    # =========================================================================

    def _revive(self, ctx: RevivalContext, keypath: str, value: Any, parent: Any, key: Any) -> Any:
        if ctx.ignore_types_key and keypath == TYPES_MARKER:
            return _SKIP

        tag = ctx.types.get(keypath)
        names = _type_names(tag, keypath)

        if isinstance(value, list) or is_plain_object(value):
            clone: Any = [None] * len(value) if isinstance(value, list) else {}
            if parent is None:
                ctx.root = clone
            else:
                parent[key] = clone
            if names:
                ctx.pending_scopes.append([])

            items = enumerate(value) if isinstance(value, list) else value.items()
            for child_key, child in items:
                child_keypath = join_keypath(keypath, str(child_key))
                revived = self._revive(ctx, child_keypath, child, clone, child_key)
                self._place(ctx, clone, child_key, revived)
            value = clone

            if names:
                waiting = ctx.pending_scopes.pop()
                if waiting:
                    return DeferredValue.all(waiting).then(
                        lambda _: self._apply(ctx, keypath, clone, names)
                    )

        if tag == BACK_REFERENCE:
            return self._dereference(ctx, keypath, value)
        if names:
            return self._apply(ctx, keypath, value, names)
        return value

    @staticmethod
    def _place(ctx: RevivalContext, clone: Any, key: Any, revived: Any) -> None:
        if revived is _SKIP:
            return
        if revived is _UNRESOLVED:
            clone[key] = None
        elif is_deferred(revived):
            clone[key] = None
            ctx.pending.append(revived.then(partial(_assign, clone, key)))
        else:
            clone[key] = revived

    def _dereference(self, ctx: RevivalContext, keypath: str, value: Any) -> Any:
        if not isinstance(value, str) or not value.startswith(BACK_REFERENCE):
            raise ConfigurationError(f"Malformed back-reference {value!r}")
        target = value[len(BACK_REFERENCE):]
        found = get_by_keypath(ctx.root, target)
        if found is UNDEFINED:
            ctx.references.append((keypath, target, None))
            return _UNRESOLVED
        ctx.references.append((keypath, target, found))
        return found

    def _resolve_references(self, ctx: RevivalContext, root: Any) -> Any:
        """
        Point every recorded back-reference at its target in the final root.

        Only slots that still hold what the walk placed there are patched.
        Slots a reviver has folded into some other value are left alone.
        Returns the root, which differs from ``root`` only for a top-level
        back-reference.
        """
        if root is _UNRESOLVED:
            root = None
        for keypath, target, placed in ctx.references:
            found = get_by_keypath(root, target)
            if found is UNDEFINED:
                logger.debug("[Reviver] Back-reference %r at %r has no target", target, keypath)
                continue
            if keypath == "":
                root = found
                continue
            current = get_by_keypath(root, keypath)
            if current is found or current is not placed:
                continue
            set_at_keypath(root, keypath, found)
        return root

    def _apply(self, ctx: RevivalContext, keypath: str, value: Any, names: list[str]) -> Any:
        """Run a chain of revivers in order, suspending on deferred results."""
        for index, name in enumerate(names):
            if is_deferred(value):
                remaining = names[index:]
                return value.then(lambda settled: self._apply(ctx, keypath, settled, remaining))
            value = self._revive_one(ctx, keypath, value, name)
        return value

    def _revive_one(self, ctx: RevivalContext, keypath: str, value: Any, name: str) -> Any:
        spec = self.registry.get(name)
        if spec is None or not spec.has_reviver:
            raise UnregisteredTypeError(name, keypath)
        reviver = self._select_reviver(spec, ctx.mode)
        try:
            return reviver(value, ctx.state)
        except Exception as exc:
            exc.add_note(f"while reviving type {name!r} at keypath {keypath!r}")
            raise

    @staticmethod
    def _select_reviver(spec: TypeSpec, mode: ExecutionMode) -> Callable[..., Any]:
        if mode is ExecutionMode.SYNC:
            if spec.revive is None:
                raise ModeMismatchError(
                    f"Sync method requested but no sync reviver exists for type {spec.name!r}"
                )
            return spec.revive
        if mode is ExecutionMode.ASYNC:
            return spec.revive_async or spec.revive
        return spec.revive or spec.revive_async

    async def _settle(self, ctx: RevivalContext, root: Any) -> Any:
        if is_deferred(root):
            root = await root
        while ctx.pending:
            batch = list(ctx.pending)
            ctx.pending.clear()
            await DeferredValue.all(batch)
        return self._resolve_references(ctx, root)


def _assign(container: Any, key: Any, value: Any) -> None:
    container[key] = value


def _type_names(tag: Any, keypath: str) -> list[str]:
    """Reviver names for a type map entry; back-references have none."""
    if tag is None or tag == BACK_REFERENCE:
        return []
    if isinstance(tag, str):
        return [tag]
    if isinstance(tag, list) and all(isinstance(name, str) for name in tag):
        return list(tag)
    raise ConfigurationError(f"Malformed type map entry {tag!r} at keypath {keypath!r}")
