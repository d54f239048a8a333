"""FastAPI application entrypoint for the trading academy platform API."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid

from app.api.routes import router
from app.core.errors import AccessError, ConfigurationError, Unauthenticated
from app.core.logging import get_logger, setup_logging
from app.core.config import settings

# Initialize structured logging
log_format = settings.environment == "production"
setup_logging(level=settings.log_level, json_format=log_format)
logger = get_logger(__name__)

# Application metadata
APP_VERSION = "1.0.0"
APP_NAME = "Trading Academy Platform API"

app = FastAPI(
    title=APP_NAME,
    description="Course delivery, demo trading practice and community for trading students",
    version=APP_VERSION,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Middleware to log all requests with timing and status code."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    request_logger = get_logger(__name__, {"request_id": request_id})

    start_time = time.time()

    try:
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        request_logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "endpoint": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )

        response.headers["X-Request-ID"] = request_id
        return response

    except Exception:
        duration_ms = (time.time() - start_time) * 1000
        request_logger.error(
            f"Request failed: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "endpoint": request.url.path,
                "duration_ms": round(duration_ms, 2),
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "request_id": request_id}
        )


@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError):
    """Render domain errors as ``{"error": reason}`` with their status code."""
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
        logger.info(
            f"Unauthenticated request to {request.url.path}",
            extra={"endpoint": request.url.path, "cause": exc.cause},
        )
    elif isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error on {request.url.path}: {exc.reason}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.reason},
        headers=headers,
    )


app.include_router(router)


@app.get("/")
def root():
    """Root endpoint with basic service info."""
    return {
        "service": APP_NAME,
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.environment
    }


@app.get("/health")
def health_check():
    """Liveness check. Reports whether credentials can be issued."""
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "checks": {
            "api": "ok",
            "signing_secret": "ok" if settings.jwt_secret_key else "missing",
            "session_registry": "enabled" if settings.session_registry_enabled else "disabled",
        }
    }
