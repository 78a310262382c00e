"""In-process hub of live WebSocket connections."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from fastapi import WebSocket

from relay_service.application.dto.principal import Principal
from relay_service.application.exceptions import (
    InvalidCredentialError,
    MissingCredentialError,
)
from relay_service.application.ports.auth import TokenVerifier
from relay_service.infrastructure.ws.protocol import IncomingMessageEvent, StatusUpdateEvent

logger = logging.getLogger(__name__)

GOING_AWAY = 1001
INTERNAL_ERROR = 1011


@dataclass(eq=False)
class Connection:
    """One admitted WebSocket. Owned by the hub, never shared."""

    websocket: WebSocket
    principal: Principal
    alive: bool = field(default=True)

    async def close(self, code: int, reason: str = "") -> None:
        self.alive = False
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception:  # noqa: BLE001
            logger.debug("Close failed for %s", self.principal.principal_key, exc_info=True)


class ConnectionHub:
    """Authenticates, tracks and broadcasts to live connections.

    The live set is an immutable ``frozenset`` replaced under a lock on every
    admit/remove, so a broadcast always iterates a consistent snapshot.
    """

    def __init__(self, verifier: TokenVerifier, *, send_timeout: float = 5.0) -> None:
        self._verifier = verifier
        self._send_timeout = send_timeout
        self._connections: frozenset[Connection] = frozenset()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._connections)

    @property
    def connections(self) -> frozenset[Connection]:
        return self._connections

    async def authenticate(self, credential: str | None) -> Principal:
        if not credential or not credential.strip():
            logger.warning("WS connection rejected: no token")
            raise MissingCredentialError()
        try:
            return await self._verifier.verify(credential)
        except Exception as exc:
            logger.warning("WS connection rejected: invalid token (%s)", exc)
            raise InvalidCredentialError() from exc

    async def admit(self, websocket: WebSocket, credential: str | None) -> Connection:
        """Authenticate and register a connection.

        Raises ``MissingCredentialError`` / ``InvalidCredentialError`` before
        the socket is accepted; the caller decides how to reject.
        """
        principal = await self.authenticate(credential)
        await websocket.accept()
        connection = Connection(websocket=websocket, principal=principal)
        async with self._lock:
            self._connections = self._connections | {connection}
            total = len(self._connections)
        logger.info("WS client connected: %s (total=%d)", principal.principal_key, total)
        return connection

    async def remove(self, connection: Connection) -> None:
        """Drop a connection. Only its own close/error path calls this."""
        connection.alive = False
        async with self._lock:
            if connection not in self._connections:
                return
            self._connections = self._connections - {connection}
            total = len(self._connections)
        logger.info(
            "WS client disconnected: %s (total=%d)",
            connection.principal.principal_key,
            total,
        )

    async def broadcast(self, event: IncomingMessageEvent | StatusUpdateEvent) -> int:
        """Send ``event`` once to every connection live right now.

        Returns the number of successful deliveries. Failed consumers are
        closed so their own handler removes them.
        """
        raw = event.to_wire()
        targets = self._connections
        if not targets:
            logger.info("Broadcast %s: no clients connected", event.type)
            return 0
        results = await asyncio.gather(*(self._deliver(conn, raw) for conn in targets))
        delivered = sum(results)
        logger.info("Broadcast %s to %d/%d client(s)", event.type, delivered, len(targets))
        return delivered

    async def _deliver(self, connection: Connection, raw: str) -> bool:
        if not connection.alive:
            return False
        try:
            await asyncio.wait_for(connection.websocket.send_text(raw), timeout=self._send_timeout)
        except Exception:  # noqa: BLE001
            logger.warning(
                "WS send failed for %s, closing",
                connection.principal.principal_key,
                exc_info=True,
            )
            await connection.close(INTERNAL_ERROR, "send failed")
            return False
        return True

    async def drain(self) -> None:
        """Close every live connection. Used at shutdown."""
        async with self._lock:
            targets = self._connections
            self._connections = frozenset()
        for connection in targets:
            await connection.close(GOING_AWAY, "server shutdown")
        if targets:
            logger.info("Hub drained %d connection(s)", len(targets))
