"""
Registry entries for pydantic models.
"""

from typing import Any, Optional

from pydantic import BaseModel

from typeweave.core.classify import has_constructor_of


def model_type(model_cls: type[BaseModel], name: Optional[str] = None) -> dict[str, dict[str, Any]]:
    """
    Build a type set round-tripping instances of one pydantic model class.

    The model is flattened with ``model_dump()`` (python mode, so nested
    datetimes and other registered types are still encapsulated) and
    rebuilt with ``model_validate()``. Nested models are rebuilt by the
    outer model's validation.

    Parameters
    ----------
    model_cls : type[BaseModel]
        The model class.
    name : str, optional
        Registry name; defaults to the class name.

    Example
    -------
    >>> class Point(BaseModel):
    ...     x: int
    ...     y: int
    >>> weave = Typeweave().register(model_type(Point))
    >>> weave.parse(weave.stringify([Point(x=1, y=2)]))
    [Point(x=1, y=2)]
    """
    if not (isinstance(model_cls, type) and issubclass(model_cls, BaseModel)):
        raise TypeError("model_type() requires a pydantic BaseModel subclass")

    return {
        name or model_cls.__name__: {
            "test": lambda value: has_constructor_of(value, model_cls),
            "replace": lambda value: value.model_dump(),
            "revive": lambda data: model_cls.model_validate(data),
        }
    }
