from __future__ import annotations

import time

import jwt

from relay_service.application.dto.principal import Principal
from relay_service.infrastructure.auth.claims import principal_from_claims


class HS256Verifier:
    """Issue and verify JWTs signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    def issue(self, username: str, *, ttl_seconds: int | None = None) -> str:
        payload: dict[str, object] = {"username": username, "iat": int(time.time())}
        if ttl_seconds is not None:
            payload["exp"] = int(time.time()) + ttl_seconds
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        return principal_from_claims(payload)
