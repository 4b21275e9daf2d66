from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_realtime.api.deps import get_verifier
from chat_realtime.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_realtime.api.middleware.timing import RequestTimingMiddleware
from chat_realtime.api.v1.routers import (
    conversations,
    health,
    messages,
    presence,
    ws,
)
from chat_realtime.application.exceptions import (
    AppError,
    AuthenticationFailedError,
    DeliveryFailedError,
    InvalidRequestError,
    UnauthorizedError,
)
from chat_realtime.config import settings
from chat_realtime.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from chat_realtime.infrastructure.db.uow import sqlalchemy_uow
from chat_realtime.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[AppError], int] = {
    AuthenticationFailedError: 401,
    InvalidRequestError: 422,
    UnauthorizedError: 403,
    DeliveryFailedError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    yield

    await app.state.hub.drain_all()
    await app.state.redis.aclose()
    logger.info("Realtime hub drained, Redis connection pool closed")


def create_app(hub: RealtimeHub | None = None) -> FastAPI:
    app = FastAPI(
        title="Chat Realtime Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # The pool connects lazily; nothing is dialled until the first publish.
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    if hub is None:
        hub = RealtimeHub.from_settings(
            settings,
            uow_factory=sqlalchemy_uow,
            verifier=get_verifier(),
            publisher=RedisPubSubPublisher(app.state.redis, settings.REDIS_EVENTS_CHANNEL),
        )
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(presence.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_req: Request, exc: AppError) -> JSONResponse:
        status_code = _STATUS_BY_ERROR.get(type(exc), 400)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.detail, "code": exc.code},
        )
