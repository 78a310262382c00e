from __future__ import annotations

from dataclasses import dataclass, field

from relay_service.domain.entities.message import Message


@dataclass(slots=True)
class Conversation:
    counterpart_id: str
    name: str
    messages: list[Message] = field(default_factory=list)
    unread: int = 0

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def last_activity(self) -> int:
        last = self.last_message
        return last.timestamp if last is not None else 0
