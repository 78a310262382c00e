from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    username: str
    claims: dict[str, object] = field(default_factory=dict, compare=False)

    @property
    def principal_key(self) -> str:
        """Opaque identity used in hub logs."""
        return f"user:{self.username}"
