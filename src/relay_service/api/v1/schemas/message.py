from __future__ import annotations

from pydantic import BaseModel


class SendMessageRequest(BaseModel):
    to: str | None = None
    message: str | None = None
