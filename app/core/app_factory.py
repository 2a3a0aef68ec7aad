"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the rate limiting components, which live on ``app.state`` for the
lifetime of the application rather than as module globals.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import create_llm_client
from app.adapters.rate_limit import LocalFallbackCounter, SqlCounterStore
from app.api.routes import health_router, rate_limit_router, zine_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import RequestGate
from app.db.session import Database
from app.services.rate_limit_policy import tier_limits_from_settings
from app.services.session_migration import MigrationAttemptGuard, SessionMigrationService
from app.services.zine_service import ZineService
from app.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Prepare the counter store on startup and release it on shutdown.

    An unreachable store does not block startup; the gate falls back to the
    in-process counter until it comes back.
    """
    database: Database = app.state.database
    try:
        await database.create_all()
        deleted = await app.state.counter_store.cleanup_expired_records()
        logger.info("application_startup", extra={"app_env": settings.app_env, "expired_windows_deleted": deleted})
    except Exception as exc:  # noqa: BLE001 - startup continues in degraded mode
        logger.warning(
            "counter_store_startup_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )

    yield

    await database.dispose()
    logger.info("application_shutdown", extra={"app_env": settings.app_env})


def create_app(
    *,
    database_url: str | None = None,
    llm_client: AbstractLLMClient | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        database_url: Counter store URL; defaults to ``settings.db.url``.
        llm_client: LLM client to use instead of the configured provider.
        clock: Time source shared by every rate limiting component.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="AnyZine API",
        description=(
            "Generates short neobrutalist zines about any subject with an LLM. "
            "Generation is rate limited per tier: anonymous visitors get 2 zines "
            "per hour, signed-in users 10 per day. Anonymous usage is carried over "
            "on sign-in so the cooldown cannot be reset by signing in."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    limits = tier_limits_from_settings(settings.app)
    database = Database(database_url or settings.db.url, echo=settings.db.echo)
    store = SqlCounterStore(
        database,
        limits=limits,
        retention_seconds=settings.app.rate_limit_retention_seconds,
        clock=clock,
    )
    fallback = LocalFallbackCounter(
        limits=limits,
        sweep_interval_seconds=settings.app.rate_limit_fallback_sweep_seconds,
        clock=clock,
    )

    app.state.database = database
    app.state.counter_store = store
    app.state.request_gate = RequestGate(
        store,
        fallback,
        limits=limits,
        timeout_seconds=settings.app.rate_limit_store_timeout_seconds,
        clock=clock,
    )
    app.state.migration_service = SessionMigrationService(
        store,
        MigrationAttemptGuard(ttl_seconds=settings.app.migration_guard_ttl_seconds, clock=clock),
    )
    app.state.zine_service = ZineService(
        llm=llm_client or create_llm_client(),
        cache=SimpleTTLCache(ttl_seconds=settings.app.zine_cache_ttl_seconds, max_entries=1024, clock=clock),
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(zine_router)
    app.include_router(rate_limit_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
