"""Connection lifecycle for the client session.

States::

    DISCONNECTED --start--> CONNECTING --open--> CONNECTED
    CONNECTED --close (transient)--> BACKOFF --timer--> CONNECTING
    CONNECTING --connect failed--> BACKOFF
    CONNECTED/CONNECTING --close 4001/4003--> DISCONNECTED (terminal)

Everything runs on one asyncio event loop: transport callbacks and the
reconnect timer never interleave. There is at most one pending timer and
one in-flight attempt; a successful open bumps ``generation`` so a timer
scheduled earlier becomes a no-op if it still fires.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Protocol

from relay_service.application.exceptions import AUTH_CLOSE_CODES, AuthError
from relay_service.domain.value_objects.enums import ConnectionState

logger = logging.getLogger(__name__)

RECONNECT_BASE_MS = 1000
RECONNECT_MAX_MS = 30000


class Backoff:
    """Exponential delay: the i-th consecutive failure waits ``min(base * 2**i, maximum)``."""

    def __init__(self, base_ms: int = RECONNECT_BASE_MS, maximum_ms: int = RECONNECT_MAX_MS) -> None:
        if base_ms <= 0 or maximum_ms < base_ms:
            raise ValueError("backoff requires 0 < base_ms <= maximum_ms")
        self.base_ms = base_ms
        self.maximum_ms = maximum_ms
        self._delay_ms = base_ms

    @property
    def current_ms(self) -> int:
        return self._delay_ms

    def next_delay(self) -> int:
        delay = self._delay_ms
        self._delay_ms = min(self._delay_ms * 2, self.maximum_ms)
        return delay

    def reset(self) -> None:
        self._delay_ms = self.base_ms


class Transport(Protocol):
    """An open connection yielding text frames until it closes."""

    close_code: int | None

    def __aiter__(self) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


Connector = Callable[[], Awaitable[Transport]]
FrameHandler = Callable[[str], None]
TerminalHandler = Callable[[int | None], None]
StateHandler = Callable[[ConnectionState], None]


class ReconnectController:
    def __init__(
        self,
        connect: Connector,
        on_frame: FrameHandler,
        *,
        on_terminal: TerminalHandler | None = None,
        on_state: StateHandler | None = None,
        backoff: Backoff | None = None,
    ) -> None:
        self._connect = connect
        self._on_frame = on_frame
        self._on_terminal = on_terminal
        self._on_state = on_state
        self.backoff = backoff or Backoff()

        self.state = ConnectionState.DISCONNECTED
        self.generation = 0
        self.terminal_code: int | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._attempt: asyncio.Task[None] | None = None
        self._transport: Transport | None = None
        self._stopped = False
        self._done = asyncio.Event()

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def terminal(self) -> bool:
        return self.terminal_code is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        if self._stopped or self.terminal or self.state != ConnectionState.DISCONNECTED:
            return
        self._begin_attempt()

    async def wait(self) -> None:
        """Block until the controller stops or hits a terminal auth failure."""
        await self._done.wait()

    async def stop(self) -> None:
        self._stopped = True
        self._cancel_timer()
        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            try:
                await attempt
            except asyncio.CancelledError:
                pass
        self._set_state(ConnectionState.DISCONNECTED)
        self._done.set()

    # -- transitions -------------------------------------------------------

    def _begin_attempt(self) -> None:
        if self._attempt is not None and not self._attempt.done():
            logger.debug("Connection attempt already in flight")
            return
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting...")
        self._attempt = asyncio.get_running_loop().create_task(
            self._run_attempt(), name="relay-connection",
        )

    async def _run_attempt(self) -> None:
        try:
            transport = await self._connect()
        except AuthError as exc:
            logger.error("Connection rejected: %s", exc.detail)
            self._enter_terminal(exc.close_code)
            return
        except Exception as exc:  # noqa: BLE001
            logger.warning("Connection attempt failed: %s", exc)
            self._schedule_reconnect()
            return

        self._transport = transport
        self._on_open()
        try:
            async for frame in transport:
                self._on_frame(frame)
        except asyncio.CancelledError:
            await transport.close()
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Connection error: %s", exc)
            await self._close_transport(transport)
        finally:
            self._transport = None
        self._on_close(transport.close_code)

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to close broken connection: %s", exc)

    def _on_open(self) -> None:
        self.generation += 1
        self._cancel_timer()
        self.backoff.reset()
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected")

    def _on_close(self, code: int | None) -> None:
        logger.info("Disconnected (code: %s)", code)
        if code in AUTH_CLOSE_CODES:
            logger.error("Auth failure (code %s), session expired", code)
            self._enter_terminal(code)
            return
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._stopped or self.terminal:
            return
        if self._timer is not None:
            logger.debug("Reconnect already scheduled")
            return
        delay_ms = self.backoff.next_delay()
        self._set_state(ConnectionState.BACKOFF)
        logger.info("Reconnecting in %dms...", delay_ms)
        self._timer = asyncio.get_running_loop().call_later(
            delay_ms / 1000, self._fire_reconnect, self.generation,
        )

    def _fire_reconnect(self, generation: int) -> None:
        self._timer = None
        if generation != self.generation or self.state != ConnectionState.BACKOFF:
            logger.debug("Stale reconnect timer ignored")
            return
        self._begin_attempt()

    def _enter_terminal(self, code: int | None) -> None:
        self.terminal_code = code
        self._cancel_timer()
        self._set_state(ConnectionState.DISCONNECTED)
        self._done.set()
        if self._on_terminal is not None:
            self._on_terminal(code)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        if self._on_state is not None:
            self._on_state(state)
