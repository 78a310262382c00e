"""HTTP calls the client makes to the relay server."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from relay_service.application.exceptions import InvalidCredentialError, SendError
from relay_service.infrastructure.provider.graph_api import extract_message_id

logger = logging.getLogger(__name__)


def _error_detail(resp: httpx.Response) -> Any:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return body.get("error") or body.get("detail") or body
    return body


class HttpOutboundSender:
    """Implements application.ports.outbound.OutboundSender via ``POST /api/send``."""

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    async def send_text(self, to: str, text: str) -> str | None:
        try:
            resp = await self._client.post(
                "/api/send",
                json={"to": to, "message": text},
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as exc:
            raise SendError(f"send request failed: {exc}") from exc

        if resp.is_error:
            raise SendError(f"send rejected ({resp.status_code}): {_error_detail(resp)}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise SendError("send response is not JSON") from exc
        return extract_message_id(data)


async def login(client: httpx.AsyncClient, username: str, password: str) -> str:
    """Exchange credentials for a bearer token."""
    resp = await client.post("/api/login", json={"username": username, "password": password})
    if resp.status_code == 401:
        raise InvalidCredentialError("Invalid credentials")
    resp.raise_for_status()
    logger.info("Login successful for %s", username)
    return resp.json()["token"]
