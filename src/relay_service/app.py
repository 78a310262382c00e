from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_service.api.deps import build_verifier
from relay_service.api.middleware.correlation_id import CorrelationIdMiddleware
from relay_service.api.v1.routers import auth, health, messages, webhook, ws
from relay_service.application.exceptions import (
    ForbiddenError,
    ProviderError,
    ValidationError,
)
from relay_service.config import Settings, settings
from relay_service.infrastructure.bus.local import LocalEventPublisher
from relay_service.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from relay_service.infrastructure.provider.graph_api import GraphApiSender
from relay_service.infrastructure.ws.hub import ConnectionHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    config: Settings = app.state.settings
    hub: ConnectionHub = app.state.hub
    subscriber: RedisPubSubSubscriber | None = None

    if config.EVENT_BUS == "redis":
        app.state.redis = aioredis.from_url(config.REDIS_URL, decode_responses=True)
        logger.info("Redis connection pool created")
        app.state.publisher = RedisPubSubPublisher(app.state.redis, config.REDIS_PUBSUB_CHANNEL)
        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            config.REDIS_PUBSUB_CHANNEL,
            hub.broadcast,
        )
        await subscriber.start()

    if not config.provider_configured:
        logger.warning("WhatsApp credentials missing; /api/send will answer 503")
    logger.info("ThunderChat relay ready (event bus: %s)", config.EVENT_BUS)

    yield

    await hub.drain()
    if subscriber is not None:
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    await app.state.http_client.aclose()


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings
    app = FastAPI(
        title="ThunderChat Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.verifier = build_verifier(config)
    app.state.hub = ConnectionHub(app.state.verifier, send_timeout=config.WS_SEND_TIMEOUT_SECONDS)
    app.state.publisher = LocalEventPublisher(app.state.hub)
    app.state.http_client = httpx.AsyncClient(
        base_url=config.GRAPH_API_BASE_URL,
        timeout=config.GRAPH_API_TIMEOUT_SECONDS,
    )
    app.state.sender = GraphApiSender(
        app.state.http_client,
        access_token=config.WHATSAPP_ACCESS_TOKEN,
        phone_number_id=config.PHONE_NUMBER_ID,
        api_version=config.META_API_VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(messages.router)
    app.include_router(webhook.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    @app.exception_handler(ProviderError)
    async def _provider(_req: Request, exc: ProviderError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error": exc.error},
        )
