"""FastAPI application entry point for the AutoSendr backend."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI

from autosendr.api.routes import contacts, email, keys
from autosendr.domain.components.email_enhancer import EmailEnhancer
from autosendr.domain.components.key_manager import KeyManager
from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.interfaces.key_store import KeyStore
from autosendr.infrastructure.adapters.groq_adapter import GroqAdapter
from autosendr.infrastructure.config.settings import AppSettings
from autosendr.infrastructure.database.contact_repository import get_active_ai_rules
from autosendr.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    init_models,
)
from autosendr.infrastructure.observability.logger import DefaultObservabilityManager
from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore
from autosendr.infrastructure.state_store.redis_store import RedisKeyStore

# Initialize structured logger
logger = structlog.get_logger(__name__)


def build_key_store(settings: AppSettings) -> KeyStore:
    """Redis when configured (shared across workers), otherwise in-process."""
    if settings.redis_url:
        return RedisKeyStore(redis_url=settings.redis_url)
    return InMemoryKeyStore()


async def cleanup_resources(app: FastAPI) -> None:
    """Close the key store and dispose the database engine."""
    logger.info("shutdown_started", message="Beginning graceful shutdown")

    key_manager: KeyManager | None = getattr(app.state, "key_manager", None)
    if key_manager is not None:
        try:
            await key_manager.key_store.close()
            logger.info("shutdown_resource_closed", resource="key_store", status="success")
        except Exception as e:
            logger.warning(
                "shutdown_resource_error",
                resource="key_store",
                error=str(e),
                status="warning",
            )

    engine = getattr(app.state, "engine", None)
    if engine is not None:
        try:
            await engine.dispose()
            logger.info("shutdown_resource_closed", resource="database", status="success")
        except Exception as e:
            logger.warning(
                "shutdown_resource_error",
                resource="database",
                error=str(e),
                status="warning",
            )

    logger.info("shutdown_completed", message="Graceful shutdown completed successfully")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build long-lived components on startup and release them on shutdown."""
    settings: AppSettings = app.state.settings

    observability = DefaultObservabilityManager(
        log_level=settings.log_level,
        json_format=settings.log_json,
    )
    logger.info("application_startup", message="AutoSendr backend starting up")

    key_manager = KeyManager(
        key_store=build_key_store(settings),
        observability_manager=observability,
        quota_policy=QuotaPolicy(
            rate_limit_cooldown_seconds=settings.rate_limit_cooldown_seconds,
            error_cooldown_seconds=settings.error_cooldown_seconds,
        ),
        count_failed_attempts=settings.count_failed_attempts,
    )
    app.state.key_manager = key_manager
    key_count = await key_manager.seed_keys(settings.configured_keys())
    if key_count == 0:
        logger.warning("no_api_keys_configured", message="AI enhancement will report quota exceeded")

    engine = build_engine(settings.database_url, echo=settings.database_echo)
    session_factory = build_session_factory(engine)
    app.state.engine = engine
    app.state.session_factory = session_factory
    if settings.database_create_tables:
        await init_models(engine)

    async def load_rules() -> str | None:
        async with session_factory() as session:
            return await get_active_ai_rules(session)

    app.state.email_enhancer = EmailEnhancer(
        key_manager=key_manager,
        provider=GroqAdapter(
            base_url=settings.groq_base_url,
            model=settings.groq_model,
            timeout=settings.groq_timeout_seconds,
            temperature=settings.enhancement_temperature,
            max_tokens=settings.enhancement_max_tokens,
        ),
        observability_manager=observability,
        rules_provider=load_rules,
    )

    yield

    logger.info("shutdown_signal_received", message="Shutdown signal received, starting graceful shutdown")
    try:
        await asyncio.wait_for(
            cleanup_resources(app), timeout=settings.shutdown_timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.warning(
            "shutdown_timeout_exceeded",
            timeout_seconds=settings.shutdown_timeout_seconds,
            message="Shutdown timeout exceeded, forcing exit",
        )


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings. Read from the environment if omitted.
    """
    app = FastAPI(
        title="AutoSendr",
        version="0.1.0",
        description="Recruiting outreach backend with AI email enhancement",
        lifespan=lifespan,
    )
    app.state.settings = settings or AppSettings()

    app.include_router(contacts.router, prefix="/api")
    app.include_router(email.router, prefix="/api")
    app.include_router(keys.router, prefix="/api")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        key_manager: KeyManager | None = getattr(app.state, "key_manager", None)
        available = None
        if key_manager is not None:
            available = (await key_manager.get_key_stats()).available_keys
        return {"status": "ok", "available_keys": available}

    return app


app = create_app()
