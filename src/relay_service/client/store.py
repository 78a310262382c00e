"""Local conversation store and reconciliation of relay events.

The store is the client's source of truth for the session. Every mutation
is followed by a best-effort save through the ``StateRepository``; a failed
save is logged and the in-memory state stays authoritative.

Sent messages are indexed by their bound provider id so status updates are
correlated without scanning every conversation.
"""
from __future__ import annotations

import logging
import time
from types import MappingProxyType
from typing import Any, Callable, Mapping

from relay_service.application.exceptions import PersistenceError, SendError, ValidationError
from relay_service.application.ports.outbound import OutboundSender
from relay_service.application.repositories.client_state import StateRepository
from relay_service.domain.entities.conversation import Conversation
from relay_service.domain.entities.message import Message
from relay_service.domain.value_objects.enums import MessageDirection
from relay_service.domain.value_objects.message_status import (
    MessageStatus,
    apply_provider_status,
    apply_send_result,
)
from relay_service.infrastructure.db.mappers.conversation import (
    conversations_to_record,
    record_to_conversations,
)
from relay_service.infrastructure.ws.protocol import IncomingMessageEvent, StatusUpdateEvent

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(
        self,
        identity: str,
        repository: StateRepository,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._identity = identity
        self._repository = repository
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._by_message_id: dict[str, Message] = {}
        self._active: str | None = None

    @classmethod
    def open(
        cls,
        identity: str,
        repository: StateRepository,
        **kwargs: Any,
    ) -> ConversationStore:
        store = cls(identity, repository, **kwargs)
        store.load()
        return store

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def active(self) -> str | None:
        return self._active

    @property
    def conversations(self) -> Mapping[str, Conversation]:
        return MappingProxyType(self._conversations)

    def conversation(self, counterpart_id: str) -> Conversation | None:
        return self._conversations.get(counterpart_id)

    def find_message(self, message_id: str) -> Message | None:
        return self._by_message_id.get(message_id)

    def conversations_by_recency(self) -> list[Conversation]:
        """Most recently active first; ties keep insertion order."""
        return sorted(self._conversations.values(), key=lambda c: c.last_activity, reverse=True)

    # -- persistence -------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory state with the stored record, or start empty."""
        conversations: dict[str, Conversation] = {}
        try:
            data = self._repository.load(self._identity)
            if data is not None:
                conversations = record_to_conversations(data)
        except PersistenceError as exc:
            logger.warning("Failed to load conversations for %s, starting empty: %s", self._identity, exc)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load conversations for %s, starting empty", self._identity)
        self._conversations = conversations
        self._rebuild_index()
        logger.info("Loaded %d conversation(s) for %s", len(conversations), self._identity)

    def save(self) -> bool:
        try:
            self._repository.save(self._identity, self.snapshot())
        except PersistenceError as exc:
            logger.error("Failed to save conversations for %s: %s", self._identity, exc)
            return False
        except Exception:  # noqa: BLE001
            logger.exception("Failed to save conversations for %s", self._identity)
            return False
        return True

    def snapshot(self) -> dict[str, Any]:
        return conversations_to_record(self._conversations)

    def _rebuild_index(self) -> None:
        self._by_message_id = {}
        for conv in self._conversations.values():
            for message in conv.messages:
                if message.is_sent and message.message_id:
                    self._by_message_id.setdefault(message.message_id, message)

    # -- conversations -----------------------------------------------------

    def get_or_create(self, counterpart_id: str) -> Conversation:
        conv = self._conversations.get(counterpart_id)
        if conv is None:
            conv = Conversation(counterpart_id=counterpart_id, name=counterpart_id)
            self._conversations[counterpart_id] = conv
        return conv

    def activate(self, counterpart_id: str) -> Conversation:
        self._active = counterpart_id
        conv = self.get_or_create(counterpart_id)
        conv.unread = 0
        self.save()
        return conv

    def deactivate(self) -> None:
        self._active = None

    # -- send path ---------------------------------------------------------

    def begin_send(self, counterpart_id: str, text: str) -> Message:
        """Optimistic insert: append a pending message and persist it."""
        text = text.strip()
        if not text:
            raise ValidationError("Cannot send an empty message")
        conv = self.get_or_create(counterpart_id)
        message = Message(
            direction=MessageDirection.SENT,
            text=text,
            timestamp=int(self._clock()),
            status=MessageStatus.PENDING,
        )
        conv.messages.append(message)
        self.save()
        return message

    def complete_send(self, message: Message, message_id: str | None = None, *, ok: bool) -> None:
        message.status = apply_send_result(message.status, ok)
        if ok and message_id:
            self._bind(message, message_id)
        self.save()

    async def send(self, counterpart_id: str, text: str, sender: OutboundSender) -> Message:
        """Insert optimistically, call the sender, then record the outcome.

        Never retries: a failed message stays ``failed``.
        """
        message = self.begin_send(counterpart_id, text)
        logger.info("Sending message to %s", counterpart_id)
        try:
            message_id = await sender.send_text(counterpart_id, message.text)
        except SendError as exc:
            logger.error("Send to %s failed: %s", counterpart_id, exc)
            self.complete_send(message, ok=False)
            return message
        except Exception:
            logger.exception("Send to %s failed unexpectedly", counterpart_id)
            self.complete_send(message, ok=False)
            return message
        if message_id is None:
            logger.warning("Provider returned no message id for send to %s", counterpart_id)
        self.complete_send(message, message_id, ok=True)
        logger.info("Message sent to %s, id=%s", counterpart_id, message_id)
        return message

    def _bind(self, message: Message, message_id: str) -> None:
        existing = self._by_message_id.get(message_id)
        if existing is not None and existing is not message:
            logger.warning("Message id %s already bound, keeping the first binding", message_id)
            return
        message.message_id = message_id
        self._by_message_id[message_id] = message

    # -- inbound events ----------------------------------------------------

    def apply(self, event: IncomingMessageEvent | StatusUpdateEvent) -> bool:
        if isinstance(event, IncomingMessageEvent):
            self.apply_incoming(event)
            return True
        return self.apply_status(event)

    def apply_incoming(self, event: IncomingMessageEvent) -> Message:
        conv = self.get_or_create(event.from_)
        if event.name and event.name != event.from_ and event.name != conv.name:
            conv.name = event.name
        message = Message(
            direction=MessageDirection.RECEIVED,
            text=event.text,
            timestamp=event.timestamp,
            message_id=event.message_id,
        )
        conv.messages.append(message)
        if event.from_ != self._active:
            conv.unread += 1
        self.save()
        return message

    def apply_status(self, event: StatusUpdateEvent) -> bool:
        """Overwrite the status of the sent message bound to ``event.message_id``.

        Returns False, leaving the store untouched, when no message matches.
        """
        message = self._by_message_id.get(event.message_id)
        if message is None:
            logger.debug("Status %s for unknown message %s dropped", event.status, event.message_id)
            return False
        previous = message.status
        message.status = apply_provider_status(previous, event.status)
        logger.info("Status update: %s %s -> %s", event.message_id, previous, message.status)
        self.save()
        return True
