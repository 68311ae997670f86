"""
Engine Errors
=============

Exception hierarchy raised by the encapsulation and revival engines.

Errors raised by user callbacks (tests, replacers, revivers) are never
wrapped; the engines only attach a note naming the type and keypath that
were being processed.
"""


class TypeweaveError(Exception):
    """Base class for every error raised by the engine itself."""


class ConfigurationError(TypeweaveError, TypeError):
    """Malformed or reserved registration input, or an unknown option value."""


class UnregisteredTypeError(ConfigurationError):
    """A type map names a type that has no reviver in the registry."""

    def __init__(self, type_name: str, keypath: str = ""):
        super().__init__(f"Unregistered type: {type_name}")
        self.type_name = type_name
        self.keypath = keypath


class RepresentationError(TypeweaveError, ValueError):
    """A value cannot be expressed as a plain tree."""

    def __init__(self, message: str, keypath: str = ""):
        super().__init__(f"{message} (at keypath {keypath!r})")
        self.keypath = keypath


class ModeMismatchError(TypeweaveError, TypeError):
    """The requested execution mode disagrees with what the walk produced."""
