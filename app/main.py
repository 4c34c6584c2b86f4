from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis.asyncio as redis_async
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, settings as default_settings
from app.dependencies import build_container, get_session_store
from app.logging_config import get_logger, setup_logging
from app.routers import webhook
from app.services.session_store import SessionStore

logger = get_logger("main")


def create_redis_client(settings: Settings):
    if not settings.redis_url:
        return None
    return redis_async.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        socket_connect_timeout=settings.redis_socket_timeout_seconds,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, mask_phone_numbers=settings.log_mask_phone_numbers)
        http_client = httpx.AsyncClient()
        redis_client = create_redis_client(settings)
        app.state.container = build_container(settings, http_client, redis_client)
        logger.info(
            "Lead funnel API started",
            extra={
                "context": {
                    "store": type(app.state.container.store).__name__,
                    "lock_backend": settings.session_lock_backend,
                }
            },
        )
        try:
            yield
        finally:
            await app.state.container.supervisor.shutdown()
            await http_client.aclose()
            if redis_client is not None:
                await redis_client.aclose()
            logger.info("Lead funnel API stopped")

    app = FastAPI(
        title="Lead Funnel API",
        description="WhatsApp lead capture funnel for the MAPA DO LUCRO event",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(webhook.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/store-check")
    async def store_check(store: SessionStore = Depends(get_session_store)):
        reachable = await store.ping()
        return {"status": "ok" if reachable else "unavailable", "store": type(store).__name__}

    return app


app = create_app()
