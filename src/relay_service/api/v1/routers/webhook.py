from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse

from relay_service.api.deps import PublisherDep, SettingsDep
from relay_service.services import webhook_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhook"])


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    config: SettingsDep,
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> PlainTextResponse:
    echoed = webhook_service.verify_subscription(mode, token, challenge, config.WEBHOOK_VERIFY_TOKEN)
    if echoed is None:
        logger.error("Webhook verification failed (mode=%s)", mode)
        return PlainTextResponse("Forbidden", status_code=403)
    logger.info("Webhook verification successful")
    return PlainTextResponse(echoed)


@router.post("/webhook", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    config: SettingsDep,
    publisher: PublisherDep,
) -> PlainTextResponse:
    body = await request.body()
    signature = request.headers.get(webhook_service.SIGNATURE_HEADER)
    if not webhook_service.verify_signature(body, signature, config.APP_SECRET):
        return PlainTextResponse("Invalid signature", status_code=403)

    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("Webhook body is not JSON")
        return PlainTextResponse("Bad Request", status_code=400)
    if not isinstance(payload, dict):
        return PlainTextResponse("Bad Request", status_code=400)

    await webhook_service.handle_webhook(payload, publisher)
    return PlainTextResponse("OK")
