"""
Postgres Latency Benchmark - Main Application Entry Point

FastAPI application measuring round-trip write/read latency against Postgres,
with optional NDJSON streaming of per-iteration progress.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from latencybench import __version__
from latencybench.api.routes import latency
from latencybench.config import settings
from latencybench.connectors import postgres_pool

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(settings.LOG_FILE)
        if settings.LOG_FILE
        else logging.NullHandler(),
    ],
)

# asyncpg logs every connection handshake at DEBUG
logging.getLogger("asyncpg").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - handles startup and shutdown events.
    """
    logger.info("🚀 Postgres Latency Benchmark starting up...")
    logger.info(
        f"🔧 Environment: {'Development' if settings.APP_DEBUG else 'Production'}"
    )

    if settings.POSTGRES_CONNECT_ON_STARTUP:
        try:
            logger.info("🐘 Initializing shared Postgres pool...")
            await postgres_pool.get_default_pool()
            logger.info("✅ Postgres pool initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize Postgres pool: {e}")
            logger.warning("⚠️  Starting without a database connection")
    else:
        logger.info(
            "🐘 Shared pool will connect on first use "
            "(set POSTGRES_CONNECT_ON_STARTUP=true to initialize at boot)"
        )

    yield

    logger.info("🛑 Postgres Latency Benchmark shutting down...")
    try:
        await postgres_pool.close_default_pool()
        logger.info("✅ Connection pool closed")
    except Exception as e:
        logger.error(f"Error closing connection pool: {e}")


app = FastAPI(
    title="Postgres Latency Benchmark",
    description="Round-trip write/read latency measurement for Postgres",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Configure CORS for local development
if settings.APP_DEBUG:
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"🔓 CORS enabled for origins: {settings.CORS_ORIGINS}")


app.include_router(latency.router, prefix="/test-latency", tags=["latency"])


# ============================================================================
# Health Check & Info Endpoints
# ============================================================================


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Reports the shared pool without forcing it open.

    Returns:
        dict: Service health status and version information
    """
    health_status: dict[str, Any] = {
        "status": "healthy",
        "service": "postgres-latency-benchmark",
        "version": __version__,
        "environment": "development" if settings.APP_DEBUG else "production",
        "checks": {},
    }

    pool = postgres_pool.peek_default_pool()
    if pool is None:
        health_status["checks"]["postgres"] = {"status": "not_initialized"}
        return health_status

    try:
        stats = await pool.get_pool_stats()
        is_healthy = await pool.is_healthy()
        health_status["checks"]["postgres"] = {
            "status": "healthy" if is_healthy else "unhealthy",
            "pool": stats,
        }
        if not is_healthy:
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["checks"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "degraded"

    return health_status


@app.get("/api/info")
async def api_info():
    """
    API information endpoint.

    Returns:
        dict: Application configuration and capabilities
    """
    return {
        "name": "Postgres Latency Benchmark",
        "version": __version__,
        "default_operations": settings.DEFAULT_OPERATIONS,
        "table": settings.LATENCY_TABLE,
        "endpoints": {
            "latency": "/test-latency",
            "health": "/health",
            "docs": "/api/docs",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "latencybench.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
