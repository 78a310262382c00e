"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

import pytest

from relay_service.application.dto.principal import Principal
from relay_service.application.exceptions import PersistenceError, SendError
from relay_service.client.store import ConversationStore
from relay_service.infrastructure.db.repositories.client_state import MemoryStateRepository
from relay_service.infrastructure.ws.protocol import IncomingMessageEvent, StatusUpdateEvent

COUNTERPART = "15551234567"


def make_incoming(
    *,
    sender: str = COUNTERPART,
    name: str | None = "Alice",
    message_id: str = "wamid.in.1",
    text: str = "hello",
    timestamp: int = 1_700_000_100,
) -> IncomingMessageEvent:
    return IncomingMessageEvent(
        from_=sender,
        name=name,
        message_id=message_id,
        timestamp=timestamp,
        message_type="text",
        text=text,
    )


def make_status(
    *,
    message_id: str = "wamid.1",
    status: str = "delivered",
    recipient_id: str = COUNTERPART,
    timestamp: int = 1_700_000_200,
) -> StatusUpdateEvent:
    return StatusUpdateEvent(
        message_id=message_id,
        status=status,
        recipient_id=recipient_id,
        timestamp=timestamp,
    )


async def eventually(predicate: Callable[[], Any], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` is truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def webhook_payload(*, messages=(), statuses=(), contacts=None, field="messages") -> dict[str, Any]:
    """A WhatsApp Cloud API callback with a single entry/change."""
    value: dict[str, Any] = {"messaging_product": "whatsapp"}
    if contacts is not None:
        value["contacts"] = contacts
    if messages:
        value["messages"] = list(messages)
    if statuses:
        value["statuses"] = list(statuses)
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "biz-1", "changes": [{"field": field, "value": value}]}],
    }


def wa_text_message(msg_id: str = "wamid.in.1", sender: str = COUNTERPART, body: str = "hello") -> dict[str, Any]:
    return {
        "from": sender,
        "id": msg_id,
        "timestamp": "1700000100",
        "type": "text",
        "text": {"body": body},
    }


def wa_status(msg_id: str = "wamid.1", value: str = "delivered") -> dict[str, Any]:
    return {
        "id": msg_id,
        "status": value,
        "timestamp": "1700000200",
        "recipient_id": COUNTERPART,
    }


@dataclass
class FakeVerifier:
    valid: dict[str, str] = field(default_factory=lambda: {"good-token": "admin"})

    async def verify(self, token: str) -> Principal:
        try:
            return Principal(username=self.valid[token])
        except KeyError:
            raise ValueError("signature verification failed") from None


@dataclass(eq=False)
class FakeWebSocket:
    """Stands in for ``fastapi.WebSocket`` on the hub's side."""

    broken: bool = False
    hang: bool = False
    accepted: bool = False
    sent: list[str] = field(default_factory=list)
    closed_with: tuple[int, str] | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise RuntimeError("connection reset")
        if self.hang:
            await asyncio.Event().wait()
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)


@dataclass
class FakeSender:
    """Outbound sender returning ``message_id`` or raising ``error``."""

    message_id: str | None = "wamid.1"
    error: Exception | None = None
    calls: list[tuple[str, str]] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def send_text(self, to: str, text: str) -> str | None:
        self.calls.append((to, text))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.message_id


class FakeTransport:
    """Scriptable transport: push frames, then close with a code."""

    def __init__(self) -> None:
        self.close_code: int | None = None
        self.closed = False
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()

    def push(self, frame: str) -> None:
        self._frames.put_nowait(frame)

    def close_with(self, code: int | None) -> None:
        self.close_code = code
        self._frames.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            yield frame

    async def close(self) -> None:
        self.closed = True
        self.close_with(1000)


class ScriptedConnector:
    """Each call pops the next outcome: a transport to return or an exception to raise."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self) -> FakeTransport:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            outcome = self.outcomes.pop(0) if self.outcomes else ConnectionRefusedError("no more outcomes")
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


class FailingRepository(MemoryStateRepository):
    """Memory repository whose saves can be switched to fail."""

    def __init__(self, *args: Any, fail_save: bool = False, fail_load: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.fail_save = fail_save
        self.fail_load = fail_load

    def load(self, identity: str) -> dict[str, Any] | None:
        if self.fail_load:
            raise PersistenceError("disk unreadable")
        return super().load(identity)

    def save(self, identity: str, data: dict[str, Any]) -> None:
        if self.fail_save:
            raise PersistenceError("quota exceeded")
        super().save(identity, data)


@pytest.fixture
def repository() -> MemoryStateRepository:
    return MemoryStateRepository()


@pytest.fixture
def store(repository: MemoryStateRepository) -> ConversationStore:
    return ConversationStore.open("test-client", repository, clock=lambda: 1_700_000_000.0)


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def failing_sender() -> FakeSender:
    return FakeSender(message_id=None, error=SendError("provider returned 400"))
