"""Per-player views handed to agents and presentation code."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .serialize import digest, fields_to_dict


@dataclass(frozen=True)
class Observation:
    """Base observation with deterministic serialization helpers."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return fields_to_dict(self)

    def observation_digest(self) -> str:
        """Return a deterministic digest for event logs."""
        return digest(self.to_dict())
