from __future__ import annotations

import json

from relay_service.application.exceptions import MalformedEventError
from relay_service.infrastructure.ws.protocol import (
    IncomingMessageEvent,
    StatusUpdateEvent,
    parse_event,
)


def serialize_event(event: IncomingMessageEvent | StatusUpdateEvent) -> str:
    envelope = {"event": event.type, "data": event.model_dump(mode="json", by_alias=True)}
    return json.dumps(envelope)


def deserialize_event(raw: str | bytes) -> IncomingMessageEvent | StatusUpdateEvent:
    try:
        envelope = json.loads(raw)
        data = envelope["data"]
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise MalformedEventError(f"invalid bus envelope: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedEventError("bus envelope data is not an object")
    return parse_event(data)
