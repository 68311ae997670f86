"""
Reference type sets for the registry.

Public API:
- BUILTIN_TYPES: Standard-library value types
- SPECIAL_NUMBER_TYPES: NaN and the infinities
- UNDEFINED_TYPES: Explicit undefined slots
- model_type: Type set for a pydantic model class
"""

from typeweave.presets.builtin import BUILTIN_TYPES, SPECIAL_NUMBER_TYPES, UNDEFINED_TYPES
from typeweave.presets.models import model_type

__all__ = [
    "BUILTIN_TYPES",
    "SPECIAL_NUMBER_TYPES",
    "UNDEFINED_TYPES",
    "model_type",
]
