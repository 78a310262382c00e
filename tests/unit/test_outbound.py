from __future__ import annotations

import json

import httpx
import pytest

from relay_service.application.exceptions import InvalidCredentialError, ProviderError, SendError
from relay_service.client.outbound import HttpOutboundSender, login
from relay_service.infrastructure.provider.graph_api import GraphApiSender, extract_message_id

GRAPH_OK = {
    "messaging_product": "whatsapp",
    "contacts": [{"input": "15551234567", "wa_id": "15551234567"}],
    "messages": [{"id": "wamid.out.1"}],
}


def mock_client(handler, base_url: str = "http://testserver") -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


def test_extract_message_id():
    assert extract_message_id(GRAPH_OK) == "wamid.out.1"
    assert extract_message_id({"messages": []}) is None
    assert extract_message_id({"error": {}}) is None
    assert extract_message_id(None) is None


@pytest.mark.asyncio
async def test_graph_sender_posts_text_message():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=GRAPH_OK)

    async with mock_client(handler, "https://graph.facebook.com") as client:
        sender = GraphApiSender(client, access_token="tkn", phone_number_id="123", api_version="v21.0")
        assert extract_message_id(await sender.send_text_raw("15551234567", "hi")) == "wamid.out.1"

    (request,) = seen
    assert request.url.path == "/v21.0/123/messages"
    assert request.headers["Authorization"] == "Bearer tkn"
    assert json.loads(request.content) == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "15551234567",
        "type": "text",
        "text": {"body": "hi"},
    }


@pytest.mark.asyncio
async def test_graph_sender_unconfigured_is_503():
    async with mock_client(lambda r: httpx.Response(200, json=GRAPH_OK)) as client:
        sender = GraphApiSender(client, access_token=None, phone_number_id="123")
        with pytest.raises(ProviderError) as exc_info:
            await sender.send_text_raw("1", "hi")

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_graph_sender_propagates_provider_status():
    error = {"error": {"message": "Invalid parameter", "code": 100}}

    async with mock_client(lambda r: httpx.Response(400, json=error)) as client:
        sender = GraphApiSender(client, access_token="tkn", phone_number_id="123")
        with pytest.raises(ProviderError) as exc_info:
            await sender.send_text_raw("1", "hi")

    assert exc_info.value.status_code == 400
    assert exc_info.value.error == {"message": "Invalid parameter", "code": 100}
    assert isinstance(exc_info.value, SendError)


@pytest.mark.asyncio
async def test_graph_sender_transport_failure_is_500():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with mock_client(handler) as client:
        sender = GraphApiSender(client, access_token="tkn", phone_number_id="123")
        with pytest.raises(ProviderError) as exc_info:
            await sender.send_text_raw("1", "hi")

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_http_sender_returns_bound_id():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=GRAPH_OK)

    async with mock_client(handler) as client:
        assert await HttpOutboundSender(client, "jwt").send_text("1555", "hi") == "wamid.out.1"

    assert seen[0].url.path == "/api/send"
    assert seen[0].headers["Authorization"] == "Bearer jwt"
    assert json.loads(seen[0].content) == {"to": "1555", "message": "hi"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(403, json={"detail": "Invalid token"}),
        httpx.Response(502, json={"detail": "Provider rejected message", "error": {"code": 131026}}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_http_sender_failures_raise_send_error(response):
    async with mock_client(lambda r: response) as client:
        with pytest.raises(SendError):
            await HttpOutboundSender(client, "jwt").send_text("1555", "hi")


@pytest.mark.asyncio
async def test_http_sender_network_failure_raises_send_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with mock_client(handler) as client:
        with pytest.raises(SendError):
            await HttpOutboundSender(client, "jwt").send_text("1555", "hi")


@pytest.mark.asyncio
async def test_login_returns_token():
    async with mock_client(lambda r: httpx.Response(200, json={"token": "abc", "user": "admin"})) as client:
        assert await login(client, "admin", "changeme") == "abc"


@pytest.mark.asyncio
async def test_login_rejected():
    async with mock_client(lambda r: httpx.Response(401, json={"detail": "Invalid credentials"})) as client:
        with pytest.raises(InvalidCredentialError):
            await login(client, "admin", "wrong")
