"""Client session: live transport + reconnection + local store."""
from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus

from relay_service.application.exceptions import (
    InvalidCredentialError,
    MalformedEventError,
    TransientConnectionError,
)
from relay_service.application.ports.outbound import OutboundSender
from relay_service.client.config import ClientSettings
from relay_service.client.reconnect import Backoff, Connector, ReconnectController, Transport
from relay_service.client.store import ConversationStore
from relay_service.domain.entities.conversation import Conversation
from relay_service.domain.entities.message import Message
from relay_service.domain.value_objects.enums import ConnectionState, EventType
from relay_service.infrastructure.ws.protocol import parse_event

logger = logging.getLogger(__name__)

_EVENT_TYPES = frozenset(t.value for t in EventType)


class WebSocketTransport:
    """Adapts a websockets client connection to the ``Transport`` protocol."""

    def __init__(self, ws: ClientConnection) -> None:
        self._ws = ws

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for message in self._ws:
                if isinstance(message, bytes):
                    try:
                        message = message.decode()
                    except UnicodeDecodeError:
                        logger.warning("Dropping binary frame that is not UTF-8 (%d bytes)", len(message))
                        continue
                yield message
        except ConnectionClosed:
            return

    async def close(self) -> None:
        await self._ws.close()


def with_token(url: str, token: str) -> str:
    parts = urlsplit(url)
    query = "&".join(q for q in (parts.query, urlencode({"token": token})) if q)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


class ClientSession:
    """One logged-in client.

    Frames from the hub are applied to the store in arrival order; malformed
    or unknown frames are logged and dropped. A terminal auth close ends the
    session and calls ``on_session_expired``.
    """

    def __init__(
        self,
        config: ClientSettings,
        token: str,
        store: ConversationStore,
        sender: OutboundSender,
        *,
        connector: Connector | None = None,
        on_session_expired: Callable[[int | None], None] | None = None,
        on_connectivity: Callable[[bool], None] | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.sender = sender
        self.expired = False
        self._token = token
        self._on_session_expired = on_session_expired
        self._on_connectivity = on_connectivity
        self.controller = ReconnectController(
            connector or self._open_websocket,
            self.handle_frame,
            on_terminal=self._session_expired,
            on_state=self._state_changed,
            backoff=Backoff(config.RECONNECT_BASE_MS, config.RECONNECT_MAX_MS),
        )

    @property
    def connected(self) -> bool:
        return self.controller.connected

    async def run(self) -> None:
        """Connect and keep reconnecting until stopped or the session expires."""
        self.controller.start()
        await self.controller.wait()

    async def stop(self) -> None:
        await self.controller.stop()

    async def send(self, counterpart_id: str, text: str) -> Message:
        return await self.store.send(counterpart_id, text, self.sender)

    def open_conversation(self, counterpart_id: str) -> Conversation:
        return self.store.activate(counterpart_id)

    def close_conversation(self) -> None:
        self.store.deactivate()

    def handle_frame(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Failed to parse frame: %.100s", raw)
            return
        if not isinstance(data, dict) or data.get("type") not in _EVENT_TYPES:
            logger.debug("Ignoring frame of type %r", data.get("type") if isinstance(data, dict) else None)
            return
        try:
            event = parse_event(data)
        except MalformedEventError as exc:
            logger.warning("Dropping malformed %s event: %s", data.get("type"), exc)
            return
        logger.debug("Received %s %s", event.type, event.message_id)
        self.store.apply(event)

    async def _open_websocket(self) -> Transport:
        url = with_token(self.config.websocket_url, self._token)
        try:
            ws = await connect(url, open_timeout=self.config.HTTP_TIMEOUT_SECONDS)
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise InvalidCredentialError(f"handshake rejected with HTTP {status}") from exc
            raise TransientConnectionError(f"handshake failed with HTTP {status}") from exc
        except OSError as exc:
            raise TransientConnectionError(str(exc)) from exc
        return WebSocketTransport(ws)

    def _session_expired(self, code: int | None) -> None:
        self.expired = True
        logger.error("Session expired (close code %s), re-login required", code)
        if self._on_session_expired is not None:
            self._on_session_expired(code)

    def _state_changed(self, state: ConnectionState) -> None:
        if self._on_connectivity is not None:
            self._on_connectivity(state == ConnectionState.CONNECTED)
