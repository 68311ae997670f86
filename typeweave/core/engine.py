"""
Typeweave Engine
================

The public facade tying the registry, the two walks and the JSON boundary
together.

Every operation comes in a blocking form and an ``_async`` form. The
blocking forms follow the instance's default mode (sync unless configured
otherwise); the ``_async`` forms always return a DeferredValue and, by
default, reject work that never needed to be asynchronous.
"""

import json
from typing import Any, Optional

from pydantic import ValidationError

from typeweave.config import EngineOptions
from typeweave.core.classify import is_undefined
from typeweave.core.encapsulate import Encapsulator, OutputShape
from typeweave.core.errors import ConfigurationError
from typeweave.core.registry import TypeRegistry
from typeweave.core.revive import Reviver
from typeweave.core.schema import ExecutionMode, TypeSpec
from typeweave.platform.deferred import is_deferred


class Typeweave:
    """
    Lossless round-tripping of rich value graphs through JSON.

    Parameters
    ----------
    options : EngineOptions, optional
        Instance defaults. Built from ``overrides`` when omitted.
    registry : TypeRegistry, optional
        Registry to share with other instances.
    **overrides
        Fields of :class:`EngineOptions` (``cyclic``, ``mode``,
        ``throw_on_bad_sync_type``, ``encapsulate_observer``).

    Example
    -------
    >>> from datetime import datetime
    >>> weave = Typeweave().register({
    ...     "datetime": [
    ...         lambda v: isinstance(v, datetime),
    ...         lambda v: v.isoformat(),
    ...         datetime.fromisoformat,
    ...     ],
    ... })
    >>> text = weave.stringify({"at": datetime(2026, 1, 1)})
    >>> text
    '{"at": "2026-01-01T00:00:00", "$types": {"at": "datetime"}}'
    >>> weave.parse(text)
    {'at': datetime.datetime(2026, 1, 1, 0, 0)}
    """

    def __init__(
        self,
        options: Optional[EngineOptions] = None,
        *,
        registry: Optional[TypeRegistry] = None,
        **overrides: Any,
    ):
        if options is None:
            options = _validated(EngineOptions, **overrides)
        elif overrides:
            options = _merge(options, overrides)
        self.options = options
        self.registry = registry if registry is not None else TypeRegistry()

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, type_sets: Any, *, fallback: bool = False) -> "Typeweave":
        """Register type sets (see :meth:`TypeRegistry.register`); chainable."""
        self.registry.register(type_sets, fallback=fallback)
        return self

    def unregister(self, name: str) -> bool:
        return self.registry.unregister(name)

    @property
    def types(self) -> dict[str, TypeSpec]:
        """Registered entries by name."""
        return self.registry.types

    # =========================================================================
    # Encapsulation
    # =========================================================================

    def encapsulate(
        self,
        value: Any,
        state: Any = None,
        *,
        mode: Optional[ExecutionMode] = None,
        cyclic: Optional[bool] = None,
        throw_on_bad_sync_type: Optional[bool] = None,
    ) -> Any:
        """
        Convert ``value`` into a plain tree carrying its type map.

        Parameters
        ----------
        value : Any
            Root of the value graph; never mutated.
        state : WalkState or mapping, optional
            Shared state handed to every test and replacer.
        mode, cyclic, throw_on_bad_sync_type
            Per-call overrides of the instance options.

        Returns
        -------
        Any
            The plain tree, or a DeferredValue of it.
        """
        return self._encapsulate(
            value,
            state,
            OutputShape.TREE,
            mode=mode,
            cyclic=cyclic,
            throw_on_bad_sync_type=throw_on_bad_sync_type,
        )

    def encapsulate_async(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        return self.encapsulate(value, state, mode=ExecutionMode.ASYNC, **overrides)

    def special_type_names(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        """Unique registered type names used anywhere in ``value``."""
        return self._encapsulate(value, state, OutputShape.TYPE_NAMES, **overrides)

    def special_type_names_async(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        return self.special_type_names(value, state, mode=ExecutionMode.ASYNC, **overrides)

    def root_type_name(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        """
        Type name of the root without walking its members.

        The outermost registered type claiming the root, or its JSON kind.
        """
        return self._encapsulate(value, state, OutputShape.ROOT_TYPE, **overrides)

    def root_type_name_async(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        return self.root_type_name(value, state, mode=ExecutionMode.ASYNC, **overrides)

    def _encapsulate(self, value: Any, state: Any, output: OutputShape, **overrides: Any) -> Any:
        options = _merge(self.options, overrides)
        encapsulator = Encapsulator(self.registry, observer=options.encapsulate_observer)
        return encapsulator.run(
            value,
            state,
            cyclic=options.cyclic,
            mode=options.mode,
            throw_on_bad_sync_type=options.throw_on_bad_sync_type,
            output=output,
        )

    # =========================================================================
    # Revival
    # =========================================================================

    def revive(
        self,
        tree: Any,
        state: Any = None,
        *,
        mode: Optional[ExecutionMode] = None,
        throw_on_bad_sync_type: Optional[bool] = None,
    ) -> Any:
        """
        Rebuild a value graph from a tree produced by :meth:`encapsulate`.

        Raises
        ------
        UnregisteredTypeError
            The tree names a type this instance cannot revive.
        ModeMismatchError
            The revivers disagree with the requested mode.
        """
        options = _merge(self.options, {"mode": mode, "throw_on_bad_sync_type": throw_on_bad_sync_type})
        return Reviver(self.registry).run(
            tree,
            state,
            mode=options.mode,
            throw_on_bad_sync_type=options.throw_on_bad_sync_type,
        )

    def revive_async(self, tree: Any, state: Any = None, **overrides: Any) -> Any:
        return self.revive(tree, state, mode=ExecutionMode.ASYNC, **overrides)

    # =========================================================================
    # JSON boundary
    # =========================================================================

    def stringify(
        self,
        value: Any,
        state: Any = None,
        *,
        indent: Optional[int] = None,
        sort_keys: bool = False,
        **overrides: Any,
    ) -> Any:
        """
        Encapsulate ``value`` and serialize the tree with :mod:`json`.

        Returns None for an undefined root, and a DeferredValue of the text
        when the walk deferred.
        """
        tree = self.encapsulate(value, state, **overrides)
        if is_deferred(tree):
            return tree.then(lambda settled: _dumps(settled, indent, sort_keys))
        return _dumps(tree, indent, sort_keys)

    def stringify_async(self, value: Any, state: Any = None, **overrides: Any) -> Any:
        return self.stringify(value, state, mode=ExecutionMode.ASYNC, **overrides)

    def parse(self, text: str, state: Any = None, **overrides: Any) -> Any:
        """Deserialize JSON text and revive it."""
        return self.revive(json.loads(text), state, **overrides)

    def parse_async(self, text: str, state: Any = None, **overrides: Any) -> Any:
        return self.parse(text, state, mode=ExecutionMode.ASYNC, **overrides)

    def __repr__(self) -> str:
        return f"Typeweave(types={self.registry.names!r}, mode={self.options.mode.value!r})"


def _dumps(tree: Any, indent: Optional[int], sort_keys: bool) -> Optional[str]:
    if is_undefined(tree):
        return None
    return json.dumps(tree, indent=indent, sort_keys=sort_keys, allow_nan=False)


def _validated(model: type, **values: Any) -> Any:
    try:
        return model(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid engine options: {exc.errors()}") from exc


def _merge(options: EngineOptions, overrides: dict[str, Any]) -> EngineOptions:
    try:
        return options.merged(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid engine options: {exc.errors()}") from exc
