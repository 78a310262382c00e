"""Convert the in-memory store to and from its persisted JSON shape.

Persisted shape (one record per client identity)::

    {"<counterpart id>": {"name": str, "unread": int,
                          "messages": [{"direction", "text", "timestamp",
                                        "messageId", "status"?}, ...]}}
"""
from __future__ import annotations

from typing import Any

from relay_service.application.exceptions import PersistenceError
from relay_service.domain.entities.conversation import Conversation
from relay_service.domain.entities.message import Message
from relay_service.domain.value_objects.enums import MessageDirection
from relay_service.domain.value_objects.message_status import coerce


def message_to_record(message: Message) -> dict[str, Any]:
    record: dict[str, Any] = {
        "direction": str(message.direction),
        "text": message.text,
        "timestamp": message.timestamp,
        "messageId": message.message_id,
    }
    if message.status is not None:
        record["status"] = str(message.status)
    return record


def record_to_message(record: dict[str, Any]) -> Message:
    return Message(
        direction=MessageDirection(record["direction"]),
        text=str(record.get("text") or ""),
        timestamp=int(record.get("timestamp") or 0),
        message_id=record.get("messageId"),
        status=coerce(record.get("status")),
    )


def conversations_to_record(conversations: dict[str, Conversation]) -> dict[str, Any]:
    return {
        counterpart_id: {
            "name": conv.name,
            "messages": [message_to_record(m) for m in conv.messages],
            "unread": conv.unread,
        }
        for counterpart_id, conv in conversations.items()
    }


def record_to_conversations(data: Any) -> dict[str, Conversation]:
    """Rebuild conversations; any shape problem makes the whole record unreadable."""
    if not isinstance(data, dict):
        raise PersistenceError(f"stored state is {type(data).__name__}, expected object")
    try:
        return {
            str(counterpart_id): Conversation(
                counterpart_id=str(counterpart_id),
                name=str(raw.get("name") or counterpart_id),
                messages=[record_to_message(m) for m in raw.get("messages") or []],
                unread=max(0, int(raw.get("unread") or 0)),
            )
            for counterpart_id, raw in data.items()
        }
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"stored state unreadable: {exc}") from exc
