"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from authkit.core.config import INSECURE_JWT_SECRET, settings
from authkit.core.exceptions import AuthKitError, StorageError
from authkit.core.middleware import SecurityConfig, setup_middleware
from authkit.core.rate_limiter import build_rate_limiter
from authkit.db.session import init_db

from authkit.api.auth import router as auth_router
from authkit.api.users import router as users_router
from authkit.api.roles import router as roles_router, permissions_router
from authkit.api.admin import router as admin_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("authkit")


def configure_state(app: FastAPI) -> None:
    """Build the per-app rate limiter and guard config."""
    app.state.limiter = build_rate_limiter(settings)
    app.state.security_config = SecurityConfig.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("🚀 Starting %s", settings.APP_NAME)
    if settings.JWT_SECRET == INSECURE_JWT_SECRET:
        logger.warning("⚠️  JWT_SECRET is the built-in default; set it before deploying")

    init_db()
    configure_state(app)
    logger.info("✅ Rate limiter: %s backend", settings.RATE_LIMIT_BACKEND)

    yield

    logger.info("🔻 Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title="AuthKit API",
    description="JWT authentication and role-based access control",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware
setup_middleware(app)


@app.exception_handler(AuthKitError)
async def authkit_exception_handler(request: Request, exc: AuthKitError):
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s (cause: %r)",
                     request.method, request.url.path, exc.message, exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Invalid request data",
            "errors": jsonable_encoder(
                [{"loc": e["loc"], "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
            ),
        },
    )


# Register routers
app.include_router(auth_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(roles_router, prefix="/api/v1")
app.include_router(permissions_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Quick health check endpoint."""
    return {"status": "ok"}
