from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    SERVER_URL: str = "http://localhost:3000"
    WS_URL: str | None = None
    TOKEN: str | None = None
    USERNAME: str | None = None
    PASSWORD: str | None = None

    IDENTITY: str = "thunderchat_conversations"
    STATE_DATABASE_URL: str = "sqlite:///thunderchat.db"

    RECONNECT_BASE_MS: int = 1000
    RECONNECT_MAX_MS: int = 30000
    HTTP_TIMEOUT_SECONDS: float = 30.0
    LOG_LEVEL: str = "INFO"

    @property
    def websocket_url(self) -> str:
        """``WS_URL`` if set, else ``SERVER_URL`` with a ws scheme and ``/ws`` path."""
        if self.WS_URL:
            return self.WS_URL
        parts = urlsplit(self.SERVER_URL)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/") + "/ws", "", ""))

    model_config = ConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        extra="ignore",
    )
