"""Normalize WhatsApp Cloud API webhook callbacks into relay events."""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from relay_service.application.exceptions import MalformedEventError
from relay_service.application.ports.bus import EventPublisher
from relay_service.infrastructure.ws.protocol import (
    IncomingMessageEvent,
    StatusUpdateEvent,
    parse_event,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def verify_subscription(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    expected_token: str | None,
) -> str | None:
    """Return the challenge to echo when the verification handshake matches."""
    if mode == "subscribe" and expected_token and token == expected_token:
        return challenge or ""
    return None


def verify_signature(body: bytes, signature: str | None, app_secret: str | None) -> bool:
    """Check ``sha256=<hex>`` HMAC of the raw request body.

    With no app secret configured validation is skipped, as in development.
    """
    if not app_secret:
        logger.warning("APP_SECRET not set, skipping webhook signature validation")
        return True
    if not signature:
        logger.error("Webhook signature header missing")
        return False
    expected = "sha256=" + hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    valid = hmac.compare_digest(signature.encode(), expected.encode())
    if not valid:
        logger.error("Webhook signature mismatch")
    return valid


def normalize(payload: dict[str, Any]) -> list[IncomingMessageEvent | StatusUpdateEvent]:
    """Flatten ``entry[].changes[].value`` into envelopes, in callback order.

    Entries that do not validate are logged and skipped.
    """
    events: list[IncomingMessageEvent | StatusUpdateEvent] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}
            contacts = value.get("contacts") or []
            contact = contacts[0] if contacts else {}
            for msg in value.get("messages") or []:
                _append(events, _incoming(msg, contact))
            for status in value.get("statuses") or []:
                _append(events, _status(status))
    return events


def _incoming(msg: dict[str, Any], contact: dict[str, Any]) -> dict[str, Any]:
    profile = contact.get("profile") or {}
    text = msg.get("text") or {}
    return {
        "type": "incoming_message",
        "from": msg.get("from"),
        "name": profile.get("name") or msg.get("from"),
        "messageId": msg.get("id"),
        "timestamp": msg.get("timestamp"),
        "messageType": msg.get("type") or "text",
        "text": text.get("body", ""),
    }


def _status(status: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "status_update",
        "messageId": status.get("id"),
        "status": status.get("status"),
        "recipientId": status.get("recipient_id"),
        "timestamp": status.get("timestamp"),
    }


def _append(events: list, raw: dict[str, Any]) -> None:
    try:
        events.append(parse_event(raw))
    except MalformedEventError as exc:
        logger.warning("Skipping malformed webhook item (%s): %s", raw.get("type"), exc)


async def handle_webhook(payload: dict[str, Any], publisher: EventPublisher) -> int:
    """Normalize and publish; returns the number of events published."""
    events = normalize(payload)
    published = 0
    for event in events:
        try:
            await publisher.publish(event)
        except Exception:
            logger.exception("Failed to publish %s %s", event.type, event.message_id)
            continue
        published += 1
    logger.info("Webhook relayed %d/%d event(s)", published, len(events))
    return published
