from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenant_chat.api.middleware.correlation_id import CorrelationIdMiddleware
from tenant_chat.api.middleware.metrics import RequestTimingMiddleware
from tenant_chat.api.v1.routers import health, messages, ws
from tenant_chat.application.exceptions import (
    AuthError,
    AuthzError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from tenant_chat.config import settings
from tenant_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from tenant_chat.infrastructure.db.uow import uow_scope
from tenant_chat.infrastructure.ws.registry import ConnectionRegistry
from tenant_chat.services.broker import RealtimeBroker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = None
    if settings.EVENTS_ENABLED:
        app.state.redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        app.state.broker.publisher = RedisPubSubPublisher(
            app.state.redis,
            settings.REDIS_EVENTS_CHANNEL,
        )
        logger.info("Redis connection pool created")

    yield

    if app.state.redis is not None:
        app.state.broker.publisher = None
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Tenant Chat Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.broker = RealtimeBroker(
        ConnectionRegistry(),
        uow_scope,
        echo_to_sender=settings.WS_ECHO_TO_SENDER,
        presence=settings.WS_PRESENCE_ENABLED,
    )

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
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def _unauthorized(_req: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(AuthzError)
    async def _forbidden(_req: Request, exc: AuthzError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(TransportError)
    async def _transport(_req: Request, exc: TransportError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.detail})
