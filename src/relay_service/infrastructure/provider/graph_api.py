"""WhatsApp Cloud API client (Graph API ``/messages``)."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from relay_service.application.exceptions import ProviderError

logger = logging.getLogger(__name__)


class GraphApiSender:
    """Sends text messages through the WhatsApp Cloud API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        access_token: str | None,
        phone_number_id: str | None,
        api_version: str = "v21.0",
    ) -> None:
        self._client = client
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._api_version = api_version

    @property
    def configured(self) -> bool:
        return bool(self._access_token and self._phone_number_id)

    async def send_text_raw(self, to: str, text: str) -> dict[str, Any]:
        """POST a text message and return the provider response body.

        Raises:
            ProviderError: provider not configured, transport failure or
                non-2xx answer (carrying the provider's status code).
        """
        if not self.configured:
            raise ProviderError("WhatsApp credentials are not configured", status_code=503)

        url = f"/{self._api_version}/{self._phone_number_id}/messages"
        body = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        try:
            resp = await self._client.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("WhatsApp API request failed: %s", exc)
            raise ProviderError("Failed to send message", status_code=500) from exc

        try:
            data = resp.json()
        except ValueError:
            data = {"error": resp.text}
        logger.debug("WhatsApp API response %s: %s", resp.status_code, data)

        if resp.is_error:
            error = data.get("error", data) if isinstance(data, dict) else data
            logger.error("WhatsApp API error %s: %s", resp.status_code, error)
            raise ProviderError("Provider rejected message", status_code=resp.status_code, error=error)
        return data


def extract_message_id(data: Any) -> str | None:
    """Pull ``messages[0].id`` out of a /messages response."""
    if not isinstance(data, dict):
        return None
    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        message_id = messages[0].get("id")
        return str(message_id) if message_id else None
    return None
