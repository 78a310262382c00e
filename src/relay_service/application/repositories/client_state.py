from __future__ import annotations

from typing import Any, Protocol


class StateRepository(Protocol):
    """One durable record per client identity.

    ``load`` returns ``None`` when nothing was stored. Both methods raise
    ``PersistenceError`` on storage failures.
    """

    def load(self, identity: str) -> dict[str, Any] | None: ...

    def save(self, identity: str, data: dict[str, Any]) -> None: ...
