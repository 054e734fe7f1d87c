import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from rentpulse.adapters.sqlite.migrator import SQLiteMigrator
from rentpulse.api.deps import get_settings
from rentpulse.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()

    # Load rules and migrate on startup (fail-fast)
    try:
        load_rules(settings.rules_path)
        logger.info("Rules loaded from %s", settings.rules_path)
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        applied = SQLiteMigrator(str(settings.db_path), str(settings.migrations_dir)).run_migrations()
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))
    except Exception:
        logger.critical("Startup failed", exc_info=True)
        raise

    yield


app = FastAPI(
    title="RentPulse API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from rentpulse.api.routes import events_ingest, listing_metrics  # noqa: E402

app.include_router(events_ingest.router, prefix="/api/events", tags=["Events"])
app.include_router(listing_metrics.router, prefix="/api/listings", tags=["Listing Metrics"])


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "api"}
