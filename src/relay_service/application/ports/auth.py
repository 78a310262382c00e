from __future__ import annotations

from typing import Protocol

from relay_service.application.dto.principal import Principal


class TokenVerifier(Protocol):
    """Resolves a bearer credential to the principal it was issued for.

    Any exception means the credential is rejected; callers translate it
    to ``InvalidCredentialError`` (close code 4003) or HTTP 403.
    """

    async def verify(self, token: str) -> Principal: ...
