"""WebSocket event envelopes (hub -> client).

Wire format is flat JSON tagged by ``type`` with camelCase keys::

    {"type": "incoming_message", "from": "...", "name": "...", "messageId": "...",
     "timestamp": 1700000000, "messageType": "text", "text": "..."}
    {"type": "status_update", "messageId": "...", "status": "delivered",
     "recipientId": "...", "timestamp": 1700000000}
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from relay_service.application.exceptions import MalformedEventError


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)


class IncomingMessageEvent(_Envelope):
    type: Literal["incoming_message"] = "incoming_message"
    from_: str = Field(alias="from", min_length=1)
    name: str | None = None
    message_id: str = Field(alias="messageId")
    timestamp: int
    message_type: str = Field(default="text", alias="messageType")
    text: str = ""


class StatusUpdateEvent(_Envelope):
    type: Literal["status_update"] = "status_update"
    message_id: str = Field(alias="messageId")
    status: str
    recipient_id: str | None = Field(default=None, alias="recipientId")
    timestamp: int


RelayEvent = Annotated[
    Union[IncomingMessageEvent, StatusUpdateEvent],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[RelayEvent] = TypeAdapter(RelayEvent)


def parse_event(raw: str | bytes | dict[str, Any]) -> IncomingMessageEvent | StatusUpdateEvent:
    """Validate a wire frame into an envelope model."""
    try:
        if isinstance(raw, dict):
            return _adapter.validate_python(raw)
        return _adapter.validate_json(raw)
    except PydanticValidationError as exc:
        raise MalformedEventError(f"invalid event: {exc.error_count()} error(s)") from exc


class WsInbound(BaseModel):
    """Client -> Server control frame."""

    type: str  # ping
