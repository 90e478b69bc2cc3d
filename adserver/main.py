"""
FastAPI application main module.
Middleware, domain error mapping, health checks and the v1 router.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import os
from contextlib import asynccontextmanager
from sqlalchemy import text
from adserver.api.v1 import api_router
from adserver.utils import setup_logging, get_logger
from adserver.utils.observability import ensure_request_id, bind_request_id, reset_request_id, REQUEST_ID_HEADER
from adserver.database import engine, Base
from adserver import database
from adserver.config import RATE_LIMIT_SETTINGS
from adserver.errors import CampaignError
from adserver.utils.ratelimiter import rate_limiter
import adserver.models.db  # noqa: F401  registers every table on Base.metadata

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/adserver.log"),
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "community-ads-backend"
VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Application startup initiated")
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown completed")

app = FastAPI(
    title="Community Ads Backend",
    description="""
    Paid banner campaigns for a community marketplace.

    ## Features
    * **Campaign lifecycle** - submit, review, approve or reject, checkout, activate on payment
    * **Serving** - eligibility by placement, window, caps and segmentation; weighted selection; house-ad fallback
    * **Tracking** - cap-safe impression and click counters
    * **Payments** - idempotent activation from gateway webhooks

    ## Authentication
    Use Bearer token authentication with your API key:
    ```
    Authorization: Bearer <api_key>
    ```
    Serving and tracking endpoints are public. The payment webhook expects `X-Webhook-Token`.

    ## Rate Limiting
    Serving and tracking are limited per client address; other routes per API key.
    Standard headers: `X-RateLimit-Limit`, `X-RateLimit-Remaining`, `X-RateLimit-Reset`.
    """,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

# CORS middleware - configure appropriately for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


def _rate_limit_category(path: str, method: str) -> str:
    if path == "/api/v1/ads/active" and method == "GET":
        return "serve"
    if path.startswith("/api/v1/ads/") and path.endswith("/track") and method == "POST":
        return "track"
    return "default"


# Rate limiting middleware (runs inside the request context middleware so logs carry the request id)
@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Apply fixed-window rate limits.

    Categories:
      GET  /api/v1/ads/active        -> serve   (keyed by client address)
      POST /api/v1/ads/{id}/track    -> track   (keyed by client address)
      everything else                -> default (keyed by API key, else client address)
    """
    path = request.url.path
    category = _rate_limit_category(path, request.method.upper())
    settings = RATE_LIMIT_SETTINGS.get(category, RATE_LIMIT_SETTINGS["default"])
    limit = int(settings.get("limit", 1000))
    window_seconds = int(settings.get("window_seconds", 3600))

    client_host = request.client.host if request.client else "unknown"
    auth_header = request.headers.get("Authorization", "")
    if category == "default" and auth_header.startswith("Bearer "):
        key = f"key:{auth_header[7:]}"
    else:
        key = f"ip:{client_host}"

    allowed, meta = await rate_limiter.check_and_increment(key, category, limit, window_seconds)

    if not allowed:
        logger.warning("Rate limit exceeded", category=category, path=path)
        resp = JSONResponse(
            status_code=429,
            content={
                "success": False,
                "message": f"Rate limit exceeded for category '{category}'",
                "category": category,
            },
        )
        resp.headers["X-RateLimit-Limit"] = str(meta["limit"])
        resp.headers["X-RateLimit-Remaining"] = "0"
        resp.headers["X-RateLimit-Reset"] = str(meta["reset_epoch"])
        return resp

    response = await call_next(request)
    response.headers["X-RateLimit-Limit"] = str(meta["limit"])
    response.headers["X-RateLimit-Remaining"] = str(meta["remaining"])
    response.headers["X-RateLimit-Reset"] = str(meta["reset_epoch"])
    return response

# Request ID and request/response logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = ensure_request_id(request.headers)
    request.state.request_id = request_id
    token = bind_request_id(request_id)
    request.state.start_time = time.time()
    try:
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            user_agent=request.headers.get("User-Agent"),
            remote_addr=request.client.host if request.client else "unknown",
        )

        response = await call_next(request)

        process_time = time.time() - request.state.start_time
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=round(process_time * 1000, 2),
        )
        return response
    finally:
        reset_request_id(token)

# Custom exception handlers
@app.exception_handler(CampaignError)
async def campaign_error_handler(request: Request, exc: CampaignError):
    """Map the domain error taxonomy onto HTTP statuses."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Campaign operation rejected",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
        method=request.method
    )

    content = {
        "success": False,
        "message": exc.message,
        "error": type(exc).__name__,
        "request_id": request_id
    }
    if exc.details:
        content["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=str(exc.errors()),
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
            "request_id": request_id
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        },
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )

# Health check endpoints
@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Basic health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": time.time(),
    }

@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
async def detailed_health_check():
    """Detailed health check with database status."""
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": time.time(),
        "checks": {}
    }

    db = None
    try:
        # Looked up at call time so a rebound SessionLocal (tests) is honoured
        db = database.SessionLocal()
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"
    finally:
        if db is not None:
            db.close()

    return health_status

# API Documentation root
@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Community Ads Backend API",
        "version": VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "adserver.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["adserver"],
        log_level="info",
        access_log=True
    )
