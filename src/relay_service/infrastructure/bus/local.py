from __future__ import annotations

from relay_service.infrastructure.ws.hub import ConnectionHub
from relay_service.infrastructure.ws.protocol import IncomingMessageEvent, StatusUpdateEvent


class LocalEventPublisher:
    """Single-instance mode: publish straight into this process's hub."""

    def __init__(self, hub: ConnectionHub) -> None:
        self._hub = hub

    async def publish(self, event: IncomingMessageEvent | StatusUpdateEvent) -> None:
        await self._hub.broadcast(event)
