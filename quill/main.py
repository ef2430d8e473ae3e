"""
FastAPI Application - Quill blog API
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from pathlib import Path

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi_users import exceptions as user_exceptions
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from quill import __version__
from quill.auth import UserManager, get_jwt_strategy
from quill.config import Settings, settings
from quill.database import Base, SessionLocal, engine
from quill.database_async import AsyncSessionLocal, dispose_async_engine
from quill.errors import QuillError
from quill.models import Post, RefreshToken, User  # noqa: F401 - needed for metadata
from quill.observability.logging import configure_logging
from quill.observability.metrics import MetricsMiddleware, metrics_response
from quill.routers.auth import router as auth_router
from quill.routers.health import router as health_router
from quill.routers.posts import router as posts_router
from quill.routers.users import router as users_router
from quill.schemas.response import failure
from quill.schemas.user import UserCreate
from quill.security import limiter
from quill.services.post_service import PostService
from quill.services.post_store import PostStore
from quill.services.publish_worker import PublishWorker
from quill.services.publisher import PostPublisher
from quill.services.queue import build_publish_queue
from quill.services.token_service import TokenService

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# ==========================================
# Database Initialization & Seeding
# ==========================================
def init_database() -> None:
    url = engine.url
    if url.get_backend_name() == "sqlite" and url.database not in (None, ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)


async def create_admin_user_on_startup() -> None:
    """Create the admin account from ADMIN_EMAIL / ADMIN_PASSWORD."""
    from fastapi_users_db_sqlalchemy import SQLAlchemyUserDatabase

    if not (settings.admin_email and settings.admin_password):
        return

    async with AsyncSessionLocal() as session:
        user_db = SQLAlchemyUserDatabase(session, User)
        user_manager = UserManager(user_db)

        try:
            await user_manager.get_by_email(settings.admin_email)
        except user_exceptions.UserNotExists:
            pass
        else:
            logger.info("Admin user exists", extra={"email": settings.admin_email})
            return

        try:
            user = await user_manager.create(
                UserCreate(
                    email=settings.admin_email,
                    username=settings.admin_username,
                    password=settings.admin_password,
                    is_superuser=True,
                    is_verified=True,
                )
            )
        except (QuillError, user_exceptions.InvalidPasswordException) as exc:
            logger.warning("Could not create admin user", extra={"error": str(exc)})
            return
        await user_db.update(user, {"role": "admin"})
        logger.info("Created admin user", extra={"email": user.email})


def build_components(app: FastAPI, config: Settings) -> None:
    """Construct the post pipeline and attach it to ``app.state``."""
    queue = build_publish_queue(config)
    store = PostStore()
    publisher = PostPublisher(queue)
    app.state.publish_queue = queue
    app.state.post_store = store
    app.state.post_service = PostService(store, publisher)
    app.state.token_service = TokenService(
        get_jwt_strategy,
        access_lifetime_seconds=config.jwt_lifetime_seconds,
        refresh_lifetime_seconds=config.refresh_token_lifetime_seconds,
    )
    app.state.publish_worker = None
    if config.publish_worker_enabled:
        app.state.publish_worker = PublishWorker(
            queue,
            store,
            SessionLocal,
            poll_interval=config.publish_poll_interval,
            batch_size=config.publish_batch_size,
            max_attempts=config.publish_max_attempts,
            retry_backoff=config.publish_retry_backoff,
            max_backoff=config.publish_max_backoff,
        )


# ==========================================
# Application Lifespan
# ==========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application", extra={"environment": settings.environment})
    init_database()
    await create_admin_user_on_startup()

    build_components(app, settings)
    async with AsyncSessionLocal() as session:
        purged = await app.state.token_service.purge_expired(session)
    if purged:
        logger.info("Purged expired refresh tokens", extra={"count": purged})

    worker: PublishWorker | None = app.state.publish_worker
    if worker is not None:
        worker.start()

    logger.info("Application ready")
    try:
        yield
    finally:
        logger.info("Shutting down application")
        if worker is not None:
            await worker.stop()
        await app.state.publish_queue.close()
        await dispose_async_engine()


configure_logging(settings.log_level.upper(), settings.log_format)


# ==========================================
# Exception handlers
# ==========================================
HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_FAILED",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
}


def _envelope(status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        jsonable_encoder(failure(code, message)),
        status_code=status_code,
        headers=headers,
    )


async def quill_error_handler(request: Request, exc: QuillError):
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            exc_info=exc,
            extra={"path": request.url.path, "code": exc.code},
        )
        return _envelope(
            exc.status_code, "INTERNAL_SERVER_ERROR", "Internal server error"
        )
    return _envelope(exc.status_code, exc.code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return _envelope(
        status.HTTP_400_BAD_REQUEST, "VALIDATION_FAILED", details or "Validation failed"
    )


async def invalid_password_handler(
    request: Request, exc: user_exceptions.InvalidPasswordException
):
    return _envelope(status.HTTP_400_BAD_REQUEST, "VALIDATION_FAILED", exc.reason)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else code.title()
    return _envelope(
        exc.status_code, code, message, headers=getattr(exc, "headers", None)
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return _envelope(
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMITED",
        "Rate limit exceeded. Please retry shortly.",
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc, extra={"path": request.url.path})
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "Internal server error",
    )


# ==========================================
# FastAPI Application
# ==========================================
app = FastAPI(
    title="Quill",
    description="Blog API with deferred publication",
    version=__version__,
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)
# Order: compression → rate-limit/metrics → correlation id
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")
app.state.limiter = limiter
app.add_exception_handler(QuillError, quill_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(
    user_exceptions.InvalidPasswordException, invalid_password_handler
)
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Accept", "Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )


# ==========================================
# Metrics (Protected with HTTP Basic Auth)
# ==========================================
security = HTTPBasic()


def verify_metrics_auth(
    credentials: HTTPBasicCredentials = Depends(security),
) -> str:
    """Verify HTTP Basic Auth credentials for metrics endpoint."""
    if not settings.metrics_password:
        return credentials.username

    correct_username = secrets.compare_digest(
        credentials.username, settings.metrics_username
    )
    correct_password = secrets.compare_digest(
        credentials.password, settings.metrics_password
    )

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


@app.get("/metrics", include_in_schema=False)
def metrics(_: str = Depends(verify_metrics_auth)):
    """
    Prometheus metrics endpoint (protected with HTTP Basic Auth).

    Set METRICS_USERNAME and METRICS_PASSWORD environment variables.
    """
    return metrics_response()


# ==========================================
# Routers
# ==========================================
app.include_router(health_router)
app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(posts_router, prefix=API_PREFIX)
