"""
Festival Admission API - Main Application Entry Point

Capacity-constrained admission for a student festival:
- Instant ticket sales that never oversell under concurrent buyers
- Gated registrations reviewed by hand against a payment screenshot
- One-time QR credentials verified at the gate
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from festgate.core.config import get_settings
from festgate.core.errors import DomainError
from festgate.core.logging import setup_logging, get_logger
from festgate.core.metrics import metrics_endpoint
from festgate.api.router import api_router
from festgate.api.middleware import RequestLoggingMiddleware
from festgate.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        notifier=settings.NOTIFIER_BACKEND,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Festival ticketing, registration review and gate admission",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain rejections to HTTP; context stays in the logs."""
    if exc.expected:
        logger.info("domain_rejection", code=exc.code.value, **exc.context)
    else:
        logger.error(
            "domain_failure",
            code=exc.code.value,
            error_type=type(exc).__name__,
            **exc.context,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code.value, "message": exc.message},
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
