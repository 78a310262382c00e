"""Headless client: python -m relay_service.client

Keeps a session connected and reconciles relayed events into the local
store. Configured through ``RELAY_*`` environment variables.
"""
from __future__ import annotations

import asyncio
import logging

import httpx

from relay_service.client.config import ClientSettings
from relay_service.client.outbound import HttpOutboundSender, login
from relay_service.client.session import ClientSession
from relay_service.client.store import ConversationStore
from relay_service.infrastructure.db.repositories.client_state import SqlStateRepository
from relay_service.infrastructure.db.session import create_schema, make_engine, make_session_factory
from relay_service.log_config import configure_logging

logger = logging.getLogger(__name__)


async def run_client(config: ClientSettings) -> None:
    engine = make_engine(config.STATE_DATABASE_URL)
    create_schema(engine)
    repository = SqlStateRepository(make_session_factory(engine))

    async with httpx.AsyncClient(
        base_url=config.SERVER_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    ) as http:
        token = config.TOKEN
        if not token:
            if not (config.USERNAME and config.PASSWORD):
                raise SystemExit("Set RELAY_TOKEN or RELAY_USERNAME/RELAY_PASSWORD")
            token = await login(http, config.USERNAME, config.PASSWORD)

        store = ConversationStore.open(config.IDENTITY, repository)
        session = ClientSession(
            config,
            token,
            store,
            HttpOutboundSender(http, token),
            on_connectivity=lambda up: logger.info("Connectivity: %s", "online" if up else "offline"),
        )
        try:
            await session.run()
        finally:
            await session.stop()
            engine.dispose()

    if session.expired:
        raise SystemExit("Session expired, log in again")


def main() -> None:
    config = ClientSettings()
    configure_logging(config.LOG_LEVEL)
    asyncio.run(run_client(config))


if __name__ == "__main__":
    main()
