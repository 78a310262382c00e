from __future__ import annotations

import logging
from typing import Any

from relay_service.application.dto.principal import Principal
from relay_service.application.exceptions import ValidationError
from relay_service.infrastructure.provider.graph_api import GraphApiSender

logger = logging.getLogger(__name__)


async def send_message(
    to: str | None,
    message: str | None,
    principal: Principal,
    sender: GraphApiSender,
) -> dict[str, Any]:
    """Proxy one outbound text to the provider.

    Returns the provider response unchanged; the client binds
    ``messages[0].id`` to its optimistic entry.
    """
    if not to or not message:
        raise ValidationError('Missing "to" or "message" field')
    logger.info("%s sending message to %s (%d chars)", principal.principal_key, to, len(message))
    return await sender.send_text_raw(to, message)
