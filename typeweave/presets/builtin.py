"""
Built-in Type Specs
===================

Ready-made registry entries for common standard-library values.

Type sets:
- SPECIAL_NUMBER_TYPES: NaN and the infinities
- UNDEFINED_TYPES: keep explicit undefined slots across a round-trip
- BUILTIN_TYPES: dates and times, Decimal, UUID, bytes, sets, tuples,
  complex numbers, compiled patterns and exceptions (includes the special
  numbers)

Example
-------
>>> from typeweave import Typeweave
>>> weave = Typeweave().register(BUILTIN_TYPES)
>>> weave.parse(weave.stringify({"when": date(2026, 3, 1), "ids": {1, 2}}))
{'when': datetime.date(2026, 3, 1), 'ids': {1, 2}}
"""

import base64
import builtins
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from typeweave.core.classify import UNDEFINED, is_undefined


def _is_special_number(value: Any) -> bool:
    return isinstance(value, float) and not math.isfinite(value)


def _special_number_name(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


SPECIAL_NUMBER_TYPES = {
    "SpecialNumber": {
        "test": _is_special_number,
        "replace": _special_number_name,
        "revive": lambda data: float(data),
    },
}


UNDEFINED_TYPES = {
    "undefined": {
        "test": lambda value, state: is_undefined(value) and state.own_keys,
        "replace": lambda value: None,
        "revive": lambda value: UNDEFINED,
    },
    # Unset array slots come back as holes, which read as None in a list.
    "sparseUndefined": {
        "test": lambda value, state: is_undefined(value) and not state.own_keys,
        "replace": lambda value: None,
        "revive": lambda value: None,
    },
}


def _replace_timedelta(value: timedelta) -> list[int]:
    return [value.days, value.seconds, value.microseconds]


def _revive_timedelta(data: list[int]) -> timedelta:
    days, seconds, microseconds = data
    return timedelta(days=days, seconds=seconds, microseconds=microseconds)


def _encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode_bytes(data: str) -> bytes:
    return base64.b64decode(data)


def _replace_exception(value: Exception) -> dict[str, Any]:
    return {"name": type(value).__name__, "message": str(value), "args": list(value.args)}


def _revive_exception(data: dict[str, Any]) -> Exception:
    """Rebuild builtin exception classes by name; anything else becomes Exception."""
    cls = getattr(builtins, data.get("name", ""), None)
    if not (isinstance(cls, type) and issubclass(cls, Exception)):
        cls = Exception
    args = data.get("args")
    return cls(*args) if args is not None else cls(data.get("message", ""))


def _replace_pattern(value: re.Pattern) -> dict[str, Any]:
    return {"source": value.pattern, "flags": value.flags}


def _revive_pattern(data: dict[str, Any]) -> re.Pattern:
    return re.compile(data["source"], data["flags"])


BUILTIN_TYPES = {
    **SPECIAL_NUMBER_TYPES,
    "datetime": [
        lambda value: isinstance(value, datetime),
        lambda value: value.isoformat(),
        lambda data: datetime.fromisoformat(data),
    ],
    "date": [
        lambda value: type(value) is date,
        lambda value: value.isoformat(),
        lambda data: date.fromisoformat(data),
    ],
    "time": [
        lambda value: isinstance(value, time),
        lambda value: value.isoformat(),
        lambda data: time.fromisoformat(data),
    ],
    "timedelta": [lambda value: isinstance(value, timedelta), _replace_timedelta, _revive_timedelta],
    "Decimal": [lambda value: isinstance(value, Decimal), lambda value: str(value), lambda data: Decimal(data)],
    "UUID": [lambda value: isinstance(value, UUID), lambda value: str(value), lambda data: UUID(data)],
    "bytes": [lambda value: isinstance(value, bytes), _encode_bytes, _decode_bytes],
    "bytearray": [
        lambda value: isinstance(value, bytearray),
        _encode_bytes,
        lambda data: bytearray(_decode_bytes(data)),
    ],
    "set": [lambda value: isinstance(value, set), lambda value: list(value), lambda data: set(data)],
    "frozenset": [
        lambda value: isinstance(value, frozenset),
        lambda value: list(value),
        lambda data: frozenset(data),
    ],
    "tuple": [lambda value: type(value) is tuple, lambda value: list(value), lambda data: tuple(data)],
    "complex": [
        lambda value: isinstance(value, complex),
        lambda value: [value.real, value.imag],
        lambda data: complex(*data),
    ],
    "Pattern": [lambda value: isinstance(value, re.Pattern), _replace_pattern, _revive_pattern],
    "Exception": [lambda value: isinstance(value, Exception), _replace_exception, _revive_exception],
}
