from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    AUTH_USERNAME: str = "admin"
    AUTH_PASSWORD: str = "changeme"

    JWT_SECRET: str = "dev-secret"
    JWT_VERIFY_MODE: Literal["hs256", "jwks"] = "hs256"
    JWT_ALGORITHM: str = "HS256"
    JWKS_URL: str | None = None

    WHATSAPP_ACCESS_TOKEN: str | None = None
    PHONE_NUMBER_ID: str | None = None
    META_API_VERSION: str = "v21.0"
    GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
    GRAPH_API_TIMEOUT_SECONDS: float = 15.0

    WEBHOOK_VERIFY_TOKEN: str | None = None
    APP_SECRET: str | None = None

    CORS_ORIGINS: list[str] = ["*"]

    EVENT_BUS: Literal["local", "redis"] = "local"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "thunderchat.events"

    WS_SEND_TIMEOUT_SECONDS: float = 5.0

    @property
    def provider_configured(self) -> bool:
        return bool(self.WHATSAPP_ACCESS_TOKEN and self.PHONE_NUMBER_ID)

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
