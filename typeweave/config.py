"""
Engine configuration.

Options can be given in code or read from the environment (``.env`` files
are loaded with python-dotenv):

    TYPEWEAVE_CYCLIC=false
    TYPEWEAVE_MODE=auto
    TYPEWEAVE_THROW_ON_BAD_SYNC_TYPE=true
"""

import os
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

from typeweave.core.schema import ExecutionMode


ENV_PREFIX = "TYPEWEAVE_"
_ENV_FIELDS = ("cyclic", "mode", "throw_on_bad_sync_type")


class EngineOptions(BaseModel):
    """Default behaviour of a :class:`~typeweave.core.engine.Typeweave` instance."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    cyclic: bool = True
    """Rewrite repeated objects as back-references."""

    mode: ExecutionMode = ExecutionMode.SYNC
    """Default execution mode for encapsulate/revive/stringify/parse."""

    throw_on_bad_sync_type: bool = True
    """Reject async-mode calls whose work turned out to be purely synchronous."""

    encapsulate_observer: Optional[Callable[..., Any]] = None
    """Called with a WalkEvent at every step of an encapsulation walk."""

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        *,
        dotenv_path: Optional[str] = None,
        **overrides: Any,
    ) -> "EngineOptions":
        """
        Build options from ``<prefix>CYCLIC``, ``<prefix>MODE`` and
        ``<prefix>THROW_ON_BAD_SYNC_TYPE``. Keyword overrides win.
        """
        load_dotenv(dotenv_path)
        values: dict[str, Any] = {}
        for field_name in _ENV_FIELDS:
            raw = os.environ.get(f"{prefix}{field_name.upper()}")
            if raw is not None and raw.strip():
                values[field_name] = raw.strip().lower()
        values.update(overrides)
        return cls(**values)

    def merged(self, **overrides: Any) -> "EngineOptions":
        """Copy with per-call overrides applied; ``None`` values are ignored."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return self.model_validate({**self.model_dump(), **updates})
