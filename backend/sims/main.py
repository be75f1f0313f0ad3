from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sims.core.config import settings
from sims.core.database import init_db, close_db, get_session_local
from sims.core.exceptions import (
    AuthenticationError,
    ResourceNotFoundError,
    SIMSError,
    ValidationError,
    error_response,
)
from sims.core.logging_config import logger
from sims.core.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    RequestSizeLimitMiddleware,
)
from sims.core.rate_limiter import limiter, rate_limit_exceeded_handler
from sims.core.route_guard import RoleRouteGuardMiddleware
from sims.api.router import api_router
from sims.modules.auth.provider import AuthProvider, CodeDelivery
from sims.services.file_host import CloudinaryClient
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import sims.models  # noqa: F401  Import models so metadata knows about them

# Multipart framing on top of the largest accepted file
UPLOAD_OVERHEAD = 1024 * 1024


async def validate_critical_config():
    """Validate critical configuration at startup - fail fast if missing"""
    errors = []
    warnings = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")

    if not settings.SECRET_KEY or settings.SECRET_KEY == "CHANGE_ME":
        errors.append("SECRET_KEY is not set or using default value")

    if not settings.JWT_SECRET_KEY or settings.JWT_SECRET_KEY == "CHANGE_ME":
        errors.append("JWT_SECRET_KEY is not set or using default value")

    if settings.DEV_BYPASS_AUTH and settings.ENVIRONMENT == "production":
        errors.append("DEV_BYPASS_AUTH must not be enabled in production")

    if not settings.file_host_configured:
        warnings.append("CLOUDINARY_CLOUD_NAME/CLOUDINARY_UPLOAD_PRESET not set - uploads will fail")
    elif not settings.file_host_signing_configured:
        warnings.append("CLOUDINARY_API_KEY/CLOUDINARY_API_SECRET not set - failed uploads cannot be cleaned up")

    if settings.auth_bypass_active():
        warnings.append("DEV_BYPASS_AUTH is on - role route guard disabled")

    if errors:
        for err in errors:
            logger.critical(f"[Startup] CRITICAL: {err}")
        raise RuntimeError(f"Missing critical configuration: {', '.join(errors)}")

    for warn in warnings:
        logger.warning(f"[Startup] WARNING: {warn}")

    logger.info("[Startup] ✓ Critical configuration validated")
    return True


def configure_state(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    file_host: Optional[CloudinaryClient] = None,
    deliver_code: Optional[CodeDelivery] = None,
) -> None:
    """Attach the shared session factory, auth provider and file host to the app"""
    app.state.session_factory = session_factory
    app.state.auth_provider = AuthProvider(session_factory, deliver_code=deliver_code)
    app.state.file_host = file_host or CloudinaryClient()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info("=" * 60)

    await validate_critical_config()
    await init_db()

    if getattr(app.state, "session_factory", None) is None:
        configure_state(app, get_session_local())

    yield

    logger.info(f"Shutting down {settings.APP_NAME}...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Student, faculty and admin portals for courses, grades and documents",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False
)

# Add rate limiter state and exception handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Add middleware (order matters - last added runs first)
# 1. Default rate limits (innermost, keyed on the user the route guard resolved)
app.add_middleware(SlowAPIMiddleware)

# 2. Role route guard (sees the request after logging has tagged it)
app.add_middleware(RoleRouteGuardMiddleware)

# 3. Request logging
app.add_middleware(RequestLoggingMiddleware)

# 4. Security headers
app.add_middleware(SecurityHeadersMiddleware, hsts=not settings.is_dev_mode())

# 5. Request size limit
app.add_middleware(
    RequestSizeLimitMiddleware,
    max_upload_size=settings.MAX_UPLOAD_SIZE,
    overhead=UPLOAD_OVERHEAD,
)

# 6. CORS - Origins from CORS_ORIGINS_STR in .env
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content=error_response(exc))


@app.exception_handler(ResourceNotFoundError)
async def not_found_exception_handler(request: Request, exc: ResourceNotFoundError):
    return JSONResponse(status_code=404, content=error_response(exc))


@app.exception_handler(AuthenticationError)
async def auth_exception_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content=error_response(exc))


@app.exception_handler(SIMSError)
async def sims_exception_handler(request: Request, exc: SIMSError):
    logger.warning(f"Unhandled {type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=400, content=error_response(exc))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "message": str(exc) if settings.DEBUG else "An error occurred"
        }
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Landing page; the route guard sends signed-out users here"""
    return {
        "message": f"Welcome to the {settings.APP_NAME}",
        "login": "/auth/login",
        "docs": "/docs",
    }


@app.get("/auth/auth-code-error", tags=["Authentication"])
async def auth_code_error():
    """Landing page for a failed confirmation/recovery link"""
    return JSONResponse(
        status_code=400,
        content={"detail": "The link is invalid or has expired. Please request a new one."}
    )


app.include_router(api_router)


def run():
    """Console entry point"""
    import uvicorn
    uvicorn.run(
        "sims.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
