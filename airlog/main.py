"""AIRLOG — FastAPI Application Entry Point.

Radio "now playing" ingestion: polls station feeds on independent schedules,
normalizes their payloads and keeps every observation as a raw event.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from airlog.database import init_db, ping_database, db_url
from airlog.poller.jobs import start_scheduler, stop_scheduler
from airlog.api.connection_routes import router as connection_router
from airlog.api.event_routes import router as event_router
from airlog.api.mapping_routes import router as mapping_router
from airlog.api.scheduler_routes import router as scheduler_router
from airlog.api.station_routes import router as station_router
from airlog.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 AIRLOG starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    db_ok = ping_database()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    # Serverless instances never live long enough to poll anything
    if not IS_SERVERLESS and db_ok:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        await stop_scheduler()
    logger.info("AIRLOG shut down")


app = FastAPI(
    title="AIRLOG",
    description="Now-playing connection polling and payload normalization for radio stations.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(station_router)
app.include_router(mapping_router)
app.include_router(connection_router)
app.include_router(event_router)
app.include_router(scheduler_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "airlog",
        "version": "1.0.0",
    }


@app.get("/debug/db", tags=["System"])
async def debug_db():
    """Debug endpoint — check database connectivity."""
    from airlog.database import _mask_url

    error = None
    connected = False
    try:
        connected = ping_database()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "environment": "serverless" if IS_SERVERLESS else "local",
        "error": error,
    }
