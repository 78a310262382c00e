from __future__ import annotations

from typing import Any

from relay_service.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    username = payload.get("username") or payload.get("sub")
    if not username:
        raise ValueError("token carries no subject")
    return Principal(username=str(username), claims=payload)
