from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from relay_service.api.deps import CurrentPrincipal, SenderDep
from relay_service.api.v1.schemas.message import SendMessageRequest
from relay_service.services import message_service

router = APIRouter(prefix="/api", tags=["messages"])


@router.post("/send")
async def send_message(
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    sender: SenderDep,
) -> dict[str, Any]:
    return await message_service.send_message(body.to, body.message, principal, sender)
