"""FastAPI dependency injection helpers.

Process-wide objects (hub, publisher, provider sender, verifier) are built
by ``create_app`` and live on ``app.state``; handlers reach them only
through these dependencies.
"""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.requests import HTTPConnection

from relay_service.application.dto.principal import Principal
from relay_service.application.ports.auth import TokenVerifier
from relay_service.application.ports.bus import EventPublisher
from relay_service.config import Settings
from relay_service.infrastructure.auth.hs256_verifier import HS256Verifier
from relay_service.infrastructure.auth.jwks_verifier import JWKSVerifier
from relay_service.infrastructure.provider.graph_api import GraphApiSender
from relay_service.infrastructure.ws.hub import ConnectionHub

_bearer_scheme = HTTPBearer(auto_error=False)


def build_verifier(config: Settings) -> TokenVerifier:
    if config.JWT_VERIFY_MODE == "jwks":
        assert config.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(config.JWKS_URL)
    return HS256Verifier(config.JWT_SECRET, config.JWT_ALGORITHM)


def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


def get_hub(conn: HTTPConnection) -> ConnectionHub:
    return conn.app.state.hub


def get_publisher(conn: HTTPConnection) -> EventPublisher:
    return conn.app.state.publisher


def get_sender(conn: HTTPConnection) -> GraphApiSender:
    return conn.app.state.sender


def get_verifier(conn: HTTPConnection) -> TokenVerifier:
    return conn.app.state.verifier


SettingsDep = Annotated[Settings, Depends(get_settings)]
HubDep = Annotated[ConnectionHub, Depends(get_hub)]
PublisherDep = Annotated[EventPublisher, Depends(get_publisher)]
SenderDep = Annotated[GraphApiSender, Depends(get_sender)]


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
        )
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token",
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
