from __future__ import annotations

from typing import Protocol

from relay_service.infrastructure.ws.protocol import RelayEvent


class EventPublisher(Protocol):
    async def publish(self, event: RelayEvent) -> None: ...
