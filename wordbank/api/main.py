"""
FastAPI application for the wordbank engine.

Provides REST API for:
- Next-item delivery and learner actions
- Quota status and administration
- Wordbank listing and archiving
- Learner subject and strategy settings
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from config import get_settings
from wordbank import __version__
from wordbank.db.database import check_connection, init_db
from wordbank.db.utils import utcnow
from wordbank.generation import RetryingClient
from wordbank.logging_config import configure_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging(settings)
    logger.info("Starting wordbank engine...")
    init_db()
    app.state.http_client = RetryingClient(
        timeout_seconds=settings.http_timeout_seconds,
        retry_attempts=settings.generation_retry_attempts,
        backoff_seconds=settings.generation_backoff_seconds,
    )
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down wordbank engine...")
    await app.state.http_client.close()


app = FastAPI(
    title="Wordbank Engine",
    description="""
    Delivery scheduling and quota enforcement for vocabulary spaced repetition.

    ## Flow

    ```
    POST /api/deliveries/next
        -> quota check
        -> earliest due review  |  on-demand generation (source-first / model-first)
        -> delivery
    POST /api/deliveries/{id}/action
        -> scheduler transition
    ```
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "wordbank-engine",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = check_connection()
    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": utcnow().isoformat(),
        "components": {
            "database": db_status,
            "model": "configured" if settings.has_model_configured() else "not_configured",
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive)."""
    return {
        "database_url": settings.database_url.split("@")[-1]
        if "@" in settings.database_url
        else "configured",
        "default_tier": settings.default_tier,
        "generation": settings.get_generation_config(),
    }


# ========================================
# Import and mount routers
# ========================================

from wordbank.api.routers import deliveries, learners, quota  # noqa: E402
from wordbank.api.routers import wordbank as wordbank_router  # noqa: E402

app.include_router(deliveries.router, prefix="/api/deliveries", tags=["Deliveries"])
app.include_router(quota.router, prefix="/api/quota", tags=["Quota"])
app.include_router(wordbank_router.router, prefix="/api/wordbank", tags=["Wordbank"])
app.include_router(learners.router, prefix="/api/learners", tags=["Learners"])
