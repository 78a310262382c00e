from __future__ import annotations

from dataclasses import dataclass

from relay_service.domain.value_objects.enums import MessageDirection
from relay_service.domain.value_objects.message_status import MessageStatus


@dataclass(slots=True, eq=True)
class Message:
    """One entry in a conversation.

    Mutated in place only to bind ``message_id`` or update ``status``.
    """

    direction: MessageDirection
    text: str
    timestamp: int
    message_id: str | None = None
    status: MessageStatus | str | None = None

    @property
    def is_sent(self) -> bool:
        return self.direction == MessageDirection.SENT
