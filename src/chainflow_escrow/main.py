"""FastAPI application entry point for the ChainFlow escrow ledger.

Lifecycle:
    1. Startup: Initialize logging, the ledger store, Redis, demo catalog.
    2. Running: Serve the REST API at /api/v1/* on a single Uvicorn process.
    3. Shutdown: Close the store and Redis connections gracefully.

Run with:
    uv run uvicorn chainflow_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from chainflow_escrow.config import get_settings
from chainflow_escrow.infrastructure.store import InMemoryStore
from chainflow_escrow.logging_config import get_logger, setup_logging
from chainflow_escrow.services.marketplace_service import MarketplaceService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from chainflow_escrow.config import Settings
    from chainflow_escrow.infrastructure.store import KeyValueStore


async def build_store(settings: Settings) -> KeyValueStore:
    """Create the configured store backend, creating tables for SQL."""
    if settings.store_backend == "sql":
        from chainflow_escrow.infrastructure.database import SqlAlchemyStore, init_db

        engine = await init_db()
        return SqlAlchemyStore(engine)
    return InMemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        store=settings.store_backend,
    )

    # 2. Initialize the store and services, unless a test injected them
    owns_marketplace = getattr(app.state, "marketplace", None) is None
    if owns_marketplace:
        store = await build_store(settings)
        app.state.marketplace = MarketplaceService(store, settings)
        await app.state.marketplace.startup()

    # 3. Initialize Redis
    from chainflow_escrow.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if owns_marketplace:
        await app.state.marketplace.store.close()
        app.state.marketplace = None
    await close_redis()
    logger.info("app.stopped")


def create_app(marketplace: MarketplaceService | None = None) -> FastAPI:
    """Application factory — creates and configures the FastAPI app.

    Passing ``marketplace`` wires an already-built service (tests, embedding)
    and skips store construction in the lifespan.
    """
    settings = get_settings()

    app = FastAPI(
        title="ChainFlow Escrow Ledger",
        description=(
            "Escrow ledger and shipment state machine for a peer-to-peer "
            "logistics marketplace."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.marketplace = marketplace

    # --- Middleware ---
    from chainflow_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from chainflow_escrow.api.routes.accounts import router as accounts_router
    from chainflow_escrow.api.routes.catalog import router as catalog_router
    from chainflow_escrow.api.routes.health import router as health_router
    from chainflow_escrow.api.routes.shipments import router as shipments_router

    app.include_router(health_router)
    app.include_router(accounts_router)
    app.include_router(catalog_router)
    app.include_router(shipments_router)

    return app


# The app instance used by Uvicorn
app = create_app()
