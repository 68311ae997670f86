"""
Value Classification
====================

Kind detection used by both engines.

The engines need a small JSON-flavoured view of Python values: which of
the seven tree kinds a value falls into, whether a container is "plain"
(and therefore cheap to walk), and whether two classes should be treated
as the same constructor even when they were loaded twice.

Kinds:
- null: ``None``
- undefined: the ``UNDEFINED`` sentinel
- boolean: ``bool``
- number: ``int`` / ``float`` (including NaN and infinities)
- string: ``str``
- array: ``list``
- object: everything else
"""

from __future__ import annotations

import inspect
import types
from enum import Enum
from typing import Any


TYPE_TAG_ATTRIBUTE = "__typeweave_type__"
"""Class attribute carrying a stable type tag for cross-copy identity."""


class Undefined:
    """
    Marker for an explicitly undefined slot.

    Unclaimed undefined values are dropped from dicts and written as
    ``null`` inside lists. A registry entry may claim them to keep the
    distinction across a round-trip.
    """

    __typeweave_type__ = "Undefined"
    _instance: "Undefined | None" = None

    def __new__(cls) -> "Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __reduce__(self):
        return (Undefined, ())


UNDEFINED = Undefined()


_NATIVE_TYPES = (
    list, tuple, set, frozenset, range,
    str, bytes, bytearray, memoryview,
    bool, int, float, complex,
    BaseException, Enum,
)


def is_undefined(value: Any) -> bool:
    """Check for the undefined marker, including copies from another load."""
    return has_constructor_of(value, Undefined)


def json_type(value: Any) -> str:
    """
    Classify a value into one of the seven tree kinds.

    ``bool`` is checked before numbers since it subclasses ``int``.

    Example
    -------
    >>> json_type(True), json_type(3.5), json_type([1]), json_type({})
    ('boolean', 'number', 'array', 'object')
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if is_undefined(value):
        return "undefined"
    return "object"


def is_plain_object(value: Any) -> bool:
    """A dict built from the literal/constructor, not a subclass."""
    return type(value) is dict


def is_user_object(value: Any) -> bool:
    """
    Check whether a value is a generic "bag of attributes".

    Plain dicts, dict subclasses and instances of user-defined classes
    qualify. Native containers, scalars, exceptions, enums, callables,
    classes, modules and engine-tagged classes do not.
    """
    if is_plain_object(value):
        return True
    if value is None or isinstance(value, _NATIVE_TYPES):
        return False
    if inspect.isroutine(value) or inspect.isclass(value) or inspect.ismodule(value):
        return False
    value_type = type(value)
    if getattr(value_type, TYPE_TAG_ATTRIBUTE, None):
        return False
    if isinstance(value, dict):
        return True
    if value_type.__module__ == "builtins":
        return False
    return hasattr(value, "__dict__")


def is_thenable(value: Any, catch_check: bool = False) -> bool:
    """Duck-type check for promise-like objects exposing ``then``."""
    if value is None or not callable(getattr(value, "then", None)):
        return False
    return not catch_check or callable(getattr(value, "catch", None))


def has_constructor_of(value: Any, cls: Any) -> bool:
    """
    Check whether ``value`` was constructed by ``cls``.

    Matches on exact type identity, on an equal ``__typeweave_type__`` tag,
    or on classes with the same qualified name and the same method bodies.
    The latter two let values built by a second loaded copy of a module be
    recognised.

    Parameters
    ----------
    value : Any
        The candidate instance.
    cls : type or None
        The constructor to compare against.

    Returns
    -------
    bool
        True if ``value`` counts as an instance of exactly ``cls``.
    """
    if cls is None or value is None:
        return False
    value_type = type(value)
    if value_type is cls:
        return True
    tag = getattr(value_type, TYPE_TAG_ATTRIBUTE, None)
    if isinstance(tag, str) and tag == getattr(cls, TYPE_TAG_ATTRIBUTE, None):
        return True
    if not inspect.isclass(cls):
        return False
    return _same_class_body(value_type, cls)


def _same_class_body(left: type, right: type) -> bool:
    """Compare two classes by qualified name and method bytecode."""
    if left.__qualname__ != right.__qualname__:
        return False
    return _method_fingerprint(left) == _method_fingerprint(right)


def _method_fingerprint(cls: type) -> tuple:
    fingerprint = []
    for name, member in vars(cls).items():
        if isinstance(member, (staticmethod, classmethod)):
            member = member.__func__
        if isinstance(member, types.FunctionType):
            code = member.__code__
            fingerprint.append((name, code.co_code, code.co_names))
    return tuple(fingerprint)
