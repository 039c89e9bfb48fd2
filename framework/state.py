"""Base for immutable, document-backed game states."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self

from .serialize import digest, fields_to_dict


@dataclass(frozen=True)
class State:
    """Immutable state that round-trips through a store document."""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-compatible document for this state."""
        return fields_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build a state instance from a stored document."""
        return cls(**data)  # type: ignore[misc]

    def state_digest(self) -> str:
        """Return a deterministic digest for logging and dedupe."""
        return digest(self.to_dict())
