"""Delivery status of messages we sent.

Received messages carry no status. ``pending`` is set on the optimistic
insert, the send acknowledgement moves it to ``sent`` or ``failed`` and the
provider then reports ``delivered`` / ``read`` through status updates.

Provider status updates are applied last-write-wins: WhatsApp does not
guarantee ordering between ``delivered`` and ``read`` callbacks, so a
reported status always overwrites the stored one even when the pair is not
in the transition table. Such out-of-table moves are only logged.
"""
from __future__ import annotations

import logging
from enum import StrEnum

logger = logging.getLogger(__name__)


class MessageStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


TRANSITIONS: dict[MessageStatus, frozenset[MessageStatus]] = {
    MessageStatus.PENDING: frozenset({MessageStatus.SENT, MessageStatus.FAILED}),
    MessageStatus.SENT: frozenset({MessageStatus.DELIVERED, MessageStatus.READ}),
    MessageStatus.DELIVERED: frozenset({MessageStatus.READ}),
    MessageStatus.READ: frozenset(),
    MessageStatus.FAILED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def coerce(value: str | None) -> MessageStatus | str | None:
    """Map a raw status string to ``MessageStatus``; unknown values pass through."""
    if value is None:
        return None
    try:
        return MessageStatus(value)
    except ValueError:
        return value


def can_transition(src: MessageStatus | str | None, dst: MessageStatus | str) -> bool:
    src_status = coerce(src)
    dst_status = coerce(dst)
    if not isinstance(src_status, MessageStatus) or not isinstance(dst_status, MessageStatus):
        return False
    return dst_status in TRANSITIONS[src_status]


def apply_send_result(current: MessageStatus | str | None, ok: bool) -> MessageStatus:
    """Resolve a pending message once the outbound send returned."""
    target = MessageStatus.SENT if ok else MessageStatus.FAILED
    if not can_transition(current, target):
        logger.debug("Send result %s applied from unexpected status %s", target, current)
    return target


def apply_provider_status(
    current: MessageStatus | str | None,
    reported: str,
) -> MessageStatus | str:
    """Return the status to store for a provider status update (last write wins)."""
    target = coerce(reported)
    if not isinstance(target, MessageStatus):
        logger.warning("Unknown provider status %r, storing as reported", reported)
        return reported
    if current != target and not can_transition(current, target):
        logger.debug("Out-of-order status %s -> %s applied as received", current, target)
    return target
