from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, HTTPException, status

from relay_service.api.deps import SettingsDep
from relay_service.api.v1.schemas.auth import LoginRequest, LoginResponse
from relay_service.application.exceptions import ForbiddenError
from relay_service.infrastructure.auth.hs256_verifier import HS256Verifier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, config: SettingsDep) -> LoginResponse:
    if config.JWT_VERIFY_MODE != "hs256":
        raise ForbiddenError("Tokens are issued by the external identity provider")

    logger.info("Login attempt for user: %s", body.username)
    user_ok = hmac.compare_digest(body.username, config.AUTH_USERNAME)
    password_ok = hmac.compare_digest(body.password, config.AUTH_PASSWORD)
    if not (user_ok and password_ok):
        logger.warning("Login failed for user: %s", body.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    issuer = HS256Verifier(config.JWT_SECRET, config.JWT_ALGORITHM)
    return LoginResponse(token=issuer.issue(body.username))
