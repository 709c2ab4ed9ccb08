"""FastAPI application entry point"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator

from parley import __version__
from parley.api import auth, health
from parley.config import settings
from parley.middleware.rate_limit import limiter
from parley.utils.jwt_utils import check_signing_config
from parley.utils.logger import logger, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup: a missing signing secret is fatal
    check_signing_config(settings)
    logger.info("Parley backend starting up", extra={
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED
    })
    yield
    # Shutdown
    logger.info("Parley backend shutting down")


app = FastAPI(
    title="Parley",
    description="Authentication and session lifecycle for the Parley chat backend",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ===== Middleware Setup =====

# CORS; credentials allowed so the refresh token cookie travels cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from parley.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="parley_requests_inprogress",
        inprogress_labels=True
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Rate limiting
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors"""
    logger.warning(
        "Rate limit exceeded",
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "message": "Too many requests. Please try again later.",
            "detail": str(exc.detail)
        }
    )

# ===== Route Setup =====

app.include_router(health.router)
app.include_router(auth.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "Parley",
        "version": __version__,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
    }


# ===== Error Handlers =====

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render malformed requests in the same shape as auth failures"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return JSONResponse(status_code=400, content={"success": False, "errors": errors})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support."
        }
    )
