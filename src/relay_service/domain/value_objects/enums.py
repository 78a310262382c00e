from __future__ import annotations

from enum import StrEnum


class MessageDirection(StrEnum):
    SENT = "sent"
    RECEIVED = "received"


class EventType(StrEnum):
    INCOMING_MESSAGE = "incoming_message"
    STATUS_UPDATE = "status_update"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    BACKOFF = "backoff"
