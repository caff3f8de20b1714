# plastik/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from plastik.core.config import get_settings
from plastik.core.logging_config import configure_logging
from plastik.database import dispose_engine
from plastik.routes import admin, checkout, health, orders, records, webhooks
from plastik.services.cache import build_cache
from plastik.services.discogs import DiscogsClient, InventoryService, build_release_batcher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app.state.cache = build_cache(settings)
    app.state.discogs_client = DiscogsClient.from_settings(settings)
    app.state.release_batcher = build_release_batcher(app.state.discogs_client, app.state.cache, settings)
    app.state.inventory_service = InventoryService(
        app.state.discogs_client,
        app.state.cache,
        app.state.release_batcher,
        settings,
    )
    logger.info(f"Plastik started ({settings.ENVIRONMENT})")
    try:
        yield  # This is where the app runs
    finally:
        await app.state.release_batcher.aclose()
        await app.state.cache.close()
        await dispose_engine()
        logger.info("Plastik shut down")


app = FastAPI(
    title="Plastik Record Store",
    lifespan=lifespan
)

app.include_router(health.router)  # Health check should be accessible without auth
app.include_router(records.router)
app.include_router(checkout.router)
app.include_router(orders.router)  # Admin-only endpoints check credentials per route
app.include_router(admin.router)
app.include_router(webhooks.router)  # Stripe cannot authenticate; the signature is the auth
