"""
Keypath Codec
=============

Keypaths name nodes of an encoded tree as escaped segments joined by ``.``.
The empty keypath is the root.

Escaping (applied in this order, reversed on the way back):
- ``''`` becomes ``''''``
- the empty segment becomes ``''``
- ``~`` becomes ``~0``
- ``.`` becomes ``~1``

so an escaped segment never contains a bare separator, and an empty
property name stays distinguishable from the root.
"""

from __future__ import annotations

from typing import Any

from typeweave.core.classify import UNDEFINED


SEPARATOR = "."
EMPTY_SEGMENT = "''"
_QUOTED_EMPTY = "''''"
_FORBIDDEN_SEGMENTS = frozenset({"__class__", "__dict__"})


def escape_keypath_component(component: str) -> str:
    """Escape one property name for use as a keypath segment."""
    escaped = component.replace(EMPTY_SEGMENT, _QUOTED_EMPTY)
    if escaped == "":
        escaped = EMPTY_SEGMENT
    return escaped.replace("~", "~0").replace(SEPARATOR, "~1")


def unescape_keypath_component(component: str) -> str:
    """Reverse :func:`escape_keypath_component`."""
    unescaped = component.replace("~1", SEPARATOR).replace("~0", "~")
    if unescaped == EMPTY_SEGMENT:
        return ""
    return unescaped.replace(_QUOTED_EMPTY, EMPTY_SEGMENT)


def join_keypath(base: str, component: str) -> str:
    """Append an (unescaped) property name to a keypath."""
    escaped = escape_keypath_component(component)
    return f"{base}{SEPARATOR}{escaped}" if base else escaped


def get_by_keypath(root: Any, keypath: str) -> Any:
    """
    Look up the node named by ``keypath`` under ``root``.

    Dicts are descended by key, lists by integer index and any other
    object by attribute. Returns ``UNDEFINED`` when a segment is absent.

    Example
    -------
    >>> get_by_keypath({"a": [{"b.c": 1}]}, "a.0.b~1c")
    1
    """
    if keypath == "":
        return root
    head, _, rest = keypath.partition(SEPARATOR)
    child = _child(root, unescape_keypath_component(head))
    if child is UNDEFINED or not rest:
        return child
    return get_by_keypath(child, rest)


def set_at_keypath(root: Any, keypath: str, value: Any) -> Any:
    """
    Assign ``value`` at ``keypath`` under ``root`` and return the root.

    Intermediate segments must already exist. Setting the empty keypath
    returns ``value`` itself, since the root cannot be replaced in place.

    Raises
    ------
    TypeError
        If a segment names ``__class__`` or ``__dict__``.
    KeyError
        If an intermediate segment is absent.
    """
    if keypath == "":
        return value
    head, _, rest = keypath.partition(SEPARATOR)
    segment = unescape_keypath_component(head)
    if segment in _FORBIDDEN_SEGMENTS:
        raise TypeError(f"Refusing to set reserved attribute {segment!r}")
    if rest:
        child = _child(root, segment)
        if child is UNDEFINED:
            raise KeyError(f"Keypath segment {segment!r} does not exist")
        set_at_keypath(child, rest, value)
        return root
    if isinstance(root, list):
        root[int(segment)] = value
    elif isinstance(root, dict):
        root[segment] = value
    else:
        setattr(root, segment, value)
    return root


def _child(node: Any, segment: str) -> Any:
    """Fetch a direct child, or ``UNDEFINED`` if it is absent."""
    if isinstance(node, dict):
        return node.get(segment, UNDEFINED)
    if isinstance(node, list):
        if not (segment.isascii() and segment.isdigit()):
            return UNDEFINED
        index = int(segment)
        return node[index] if index < len(node) else UNDEFINED
    if node is None or segment.startswith("__"):
        return UNDEFINED
    return getattr(node, segment, UNDEFINED)
