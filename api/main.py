"""
FastAPI application initialization
"""

from http import HTTPStatus
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from api.routes import health, metrics, sync, stats
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import SyncScheduler
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="AdSync Metrics API",
    description="Ad platform campaign sync and multi-resolution performance metrics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize Scheduler
scheduler = SyncScheduler()


# Include routers
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(sync.router)
app.include_router(stats.router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as ErrorResponse bodies"""
    body = ErrorResponse(
        error=HTTPStatus(exc.status_code).phrase,
        detail=exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json"),
        headers=getattr(exc, "headers", None)
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting AdSync Metrics API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down AdSync Metrics API")
    scheduler.stop()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "AdSync Metrics API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "metrics": "/metrics/{entity_type}/{entity_id}",
            "sync": "/sync/{account_id}",
            "sync_runs": "/sync/runs",
            "stats": "/stats"
        }
    }
