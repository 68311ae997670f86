"""
Type Registry
=============

Ordered registry of type specifications.

Dispatch order:
1. Primary entries, most recently registered first
2. Fallback entries, most recently registered first

Entries flagged ``test_plain_objects`` are consulted only for plain dicts
and lists; every other entry is consulted only for other values. Re-using
a name replaces the earlier entry and moves it to the end of its sequence.
"""

import inspect
import logging
from typing import Any, Callable, Iterator, Mapping, Optional

from pydantic import ValidationError

from typeweave.core.classify import has_constructor_of
from typeweave.core.errors import ConfigurationError
from typeweave.core.schema import RESERVED_TYPE_NAMES, TypeSpec


logger = logging.getLogger(__name__)

_SPEC_FIELDS = (
    "test",
    "replace",
    "revive",
    "replace_async",
    "revive_async",
    "test_plain_objects",
    "iterate_in",
    "iterate_unset_numeric",
)
_CALLBACK_FIELDS = ("test", "replace", "revive", "replace_async", "revive_async")


class TypeRegistry:
    """
    Holds the user-extensible set of named types.

    A registry is read-only while a walk is in progress; registering from
    inside a callback is not supported.

    Example
    -------
    >>> registry = TypeRegistry()
    >>> _ = registry.register({
    ...     "tuple": [lambda v: isinstance(v, tuple), list, lambda v: tuple(v)],
    ... })
    >>> _ = registry.register({"anything": [lambda v: True]}, fallback=True)
    >>> registry.names
    ['tuple', 'anything']
    """

    def __init__(self):
        self._primary: list[TypeSpec] = []
        self._fallback: list[TypeSpec] = []
        self._by_name: dict[str, TypeSpec] = {}

    def register(self, type_sets: Any, *, fallback: bool = False) -> "TypeRegistry":
        """
        Register one or more type sets.

        Parameters
        ----------
        type_sets : mapping, TypeSpec or list
            A mapping of name to spec, a TypeSpec, or an ordered (possibly
            nested) list of those. A spec is a ``[test, replace, revive]``
            list, a mapping of TypeSpec fields, a TypeSpec, or a class.
        fallback : bool
            Add the entries to the fallback sequence.

        Returns
        -------
        TypeRegistry
            The registry itself, for chaining.

        Raises
        ------
        ConfigurationError
            If a name is reserved or a spec is malformed.
        """
        for name, raw_spec in _iter_entries(type_sets):
            if raw_spec is None:
                continue
            if not isinstance(name, str):
                raise ConfigurationError(f"Type names must be strings, got {name!r}")
            if name in RESERVED_TYPE_NAMES:
                raise ConfigurationError(f"Type name {name!r} is reserved")

            spec = build_type_spec(name, raw_spec, fallback=fallback)
            if spec is None:
                logger.debug("[Registry] Skipping type %r without a test", name)
                continue

            self._remove(name)
            (self._fallback if fallback else self._primary).append(spec)
            self._by_name[name] = spec
            logger.debug("[Registry] Registered type %r (fallback=%s)", name, fallback)
        return self

    def unregister(self, name: str) -> bool:
        """Remove a type by name. Returns False if it was not registered."""
        removed = self._remove(name)
        if removed:
            logger.debug("[Registry] Unregistered type %r", name)
        return removed

    def _remove(self, name: str) -> bool:
        existing = self._by_name.pop(name, None)
        if existing is None:
            return False
        for sequence in (self._primary, self._fallback):
            if existing in sequence:
                sequence.remove(existing)
        return True

    def get(self, name: str) -> Optional[TypeSpec]:
        """Look up an entry by name."""
        return self._by_name.get(name)

    def dispatch(self, value: Any, state: Any, *, plain_container: bool) -> Optional[TypeSpec]:
        """
        Find the entry claiming ``value``.

        Parameters
        ----------
        value : Any
            The candidate value.
        state : WalkState
            Passed to each test; tests may set iteration flags on it.
        plain_container : bool
            Whether ``value`` is a plain dict or list.

        Returns
        -------
        TypeSpec or None
            The first matching entry in dispatch order.
        """
        for sequence in (self._primary, self._fallback):
            for spec in reversed(sequence):
                if spec.test_plain_objects is not plain_container:
                    continue
                if spec.test(value, state):
                    return spec
        return None

    @property
    def has_plain_entries(self) -> bool:
        return any(spec.test_plain_objects for spec in self._by_name.values())

    @property
    def names(self) -> list[str]:
        """Registered names in registration order, primary before fallback."""
        return [spec.name for spec in (*self._primary, *self._fallback)]

    @property
    def types(self) -> dict[str, TypeSpec]:
        """Name to entry mapping, suitable for registering into another registry."""
        return {spec.name: spec for spec in (*self._primary, *self._fallback)}

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def __repr__(self) -> str:
        return f"TypeRegistry(primary={len(self._primary)}, fallback={len(self._fallback)})"


def build_type_spec(name: str, raw_spec: Any, *, fallback: bool = False) -> Optional[TypeSpec]:
    """
    Normalize one registration value into a TypeSpec.

    Returns None when the spec has no test function.
    """
    if isinstance(raw_spec, TypeSpec):
        callbacks = {
            field_name: _adapt_arity(getattr(raw_spec, field_name))
            for field_name in _CALLBACK_FIELDS
            if getattr(raw_spec, field_name) is not None
        }
        return raw_spec.model_copy(update={"name": name, "fallback": fallback, **callbacks})

    if inspect.isclass(raw_spec):
        fields = _class_spec_fields(raw_spec)
    elif isinstance(raw_spec, (list, tuple)):
        if len(raw_spec) > 3:
            raise ConfigurationError(
                f"Type {name!r}: list specs take at most [test, replace, revive]"
            )
        fields = dict(zip(("test", "replace", "revive"), raw_spec))
    elif isinstance(raw_spec, Mapping):
        unknown = set(raw_spec) - set(_SPEC_FIELDS)
        if unknown:
            raise ConfigurationError(f"Type {name!r}: unknown spec fields {sorted(unknown)}")
        fields = dict(raw_spec)
    else:
        raise ConfigurationError(
            f"Type {name!r}: expected a class, list, mapping or TypeSpec, "
            f"got {type(raw_spec).__name__}"
        )

    if fields.get("test") is None:
        return None

    for field_name in _CALLBACK_FIELDS:
        callback = fields.get(field_name)
        if callback is not None:
            if not callable(callback):
                raise ConfigurationError(f"Type {name!r}: {field_name} must be callable")
            fields[field_name] = _adapt_arity(callback)
    fields = {key: value for key, value in fields.items() if value is not None}

    try:
        return TypeSpec(name=name, fallback=fallback, **fields)
    except ValidationError as exc:
        raise ConfigurationError(f"Type {name!r}: invalid spec") from exc


def _iter_entries(type_sets: Any) -> Iterator[tuple[Any, Any]]:
    """Flatten registration input into (name, spec) pairs."""
    if type_sets is None:
        return
    if isinstance(type_sets, TypeSpec):
        yield type_sets.name, type_sets
    elif isinstance(type_sets, Mapping):
        yield from type_sets.items()
    elif isinstance(type_sets, (list, tuple)):
        for item in type_sets:
            yield from _iter_entries(item)
    else:
        raise ConfigurationError(
            f"Expected a mapping of types or a list of them, got {type(type_sets).__name__}"
        )


def _class_spec_fields(cls: type) -> dict[str, Callable[..., Any]]:
    """Shorthand spec for registering a plain class by its attributes."""

    def revive(data: Any) -> Any:
        instance = cls.__new__(cls)
        instance.__dict__.update(data)
        return instance

    return {
        "test": lambda value: has_constructor_of(value, cls),
        "replace": lambda value: dict(vars(value)),
        "revive": revive,
    }


def _adapt_arity(callback: Callable[..., Any]) -> Callable[..., Any]:
    """Let callbacks that take only the value be called as ``fn(value, state)``."""
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        signature = None

    positional = 0 if signature is not None else 1
    parameters = signature.parameters.values() if signature is not None else ()
    for parameter in parameters:
        if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
            return callback
        if parameter.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            positional += 1
    if signature is not None and positional >= 2:
        return callback

    def call_with_value(value: Any, state: Any) -> Any:
        return callback(value)

    call_with_value.__wrapped__ = callback
    return call_with_value
