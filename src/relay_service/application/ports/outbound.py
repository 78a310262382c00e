from __future__ import annotations

from typing import Protocol


class OutboundSender(Protocol):
    """Sends a text to a counterpart and returns the provider message id.

    Implementations raise ``SendError`` on any failure.
    """

    async def send_text(self, to: str, text: str) -> str | None: ...
