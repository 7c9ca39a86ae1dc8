"""
PrintHub - Print Shop Marketplace Backend

Main FastAPI application entry point.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy import text
import logging
import os

from printhub.api.routes import (
    analytics,
    bookings,
    cleanup,
    files,
    navigation,
    pricing,
    print_jobs,
    profiles,
    realtime,
    rpc,
    shops,
    slots,
    uploads,
)
from printhub.core.config import get_settings
from printhub.core.database import engine, Base, AsyncSessionLocal
from printhub.core.exceptions import PrintHubError
from printhub.core.redis_client import get_redis_client
from printhub.services import expiry_service

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # === STARTUP ===
    logger.info("Starting PrintHub Backend...")

    db_url = settings.DATABASE_URL
    if db_url:
        safe_url = db_url.split("@")[-1] if "@" in db_url else "********"
        logger.info(f"Database: ...@{safe_url}")

    logger.info(f"Redis: {settings.REDIS_URL}")
    logger.info(f"Public URL: {settings.BACKEND_PUBLIC_URL}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized.")

    for bucket in (settings.UPLOADS_BUCKET, settings.AVATAR_BUCKET):
        os.makedirs(os.path.join(settings.FILE_STORAGE_PATH, bucket), exist_ok=True)
    logger.info(f"Storage directory: {os.path.abspath(settings.FILE_STORAGE_PATH)}")

    if settings.EXPIRY_SWEEP_ENABLED:
        expiry_service.sweeper.start()

    logger.info("PrintHub Backend started successfully!")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down PrintHub Backend...")
    await expiry_service.sweeper.stop()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Print shop marketplace: discovery, booking, print queue and file retention",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PrintHubError)
async def printhub_error_handler(request: Request, exc: PrintHubError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, **exc.details},
    )


# =============================================================================
# ROUTES
# =============================================================================

api = settings.API_V1_STR

app.include_router(print_jobs.router, prefix=f"{api}/print-jobs", tags=["Print Jobs"])
app.include_router(pricing.router, prefix=f"{api}/pricing", tags=["Pricing"])
app.include_router(slots.router, prefix=f"{api}/slots", tags=["Time Slots"])
app.include_router(bookings.router, prefix=f"{api}/bookings", tags=["Bookings"])
app.include_router(shops.router, prefix=f"{api}/shops", tags=["Shops"])
app.include_router(profiles.router, prefix=f"{api}/profiles", tags=["Profiles"])
app.include_router(uploads.router, prefix=f"{api}/uploads", tags=["Uploads"])
app.include_router(analytics.router, prefix=f"{api}/analytics", tags=["Analytics"])
app.include_router(cleanup.router, prefix=f"{api}/cleanup", tags=["File Cleanup"])
app.include_router(rpc.router, prefix=f"{api}/rpc", tags=["RPC"])
app.include_router(navigation.router, prefix=f"{api}/navigation", tags=["Navigation"])
app.include_router(realtime.router, prefix=f"{api}/realtime", tags=["Realtime"])

# Signed file downloads
app.include_router(files.router, prefix="/files", tags=["Files"])


# =============================================================================
# HEALTH CHECK
# =============================================================================

@app.get("/", tags=["Health"])
def root():
    """Root endpoint - health check."""
    return {
        "service": "PrintHub Backend",
        "status": "running",
        "version": "1.0.0"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check endpoint.
    Checks database and Redis connectivity.
    """
    health = {
        "status": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "expiry_sweeper": "running" if expiry_service.sweeper.running else "stopped",
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health["database"] = "connected"
    except Exception as e:
        health["database"] = f"error: {str(e)}"
        health["status"] = "degraded"

    try:
        await get_redis_client().ping()
        health["redis"] = "connected"
    except Exception as e:
        health["redis"] = f"error: {str(e)}"
        health["status"] = "degraded"

    return health
