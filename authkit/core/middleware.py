"""CORS, request-id, security guard, and request-logging middleware."""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Set

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from authkit.core.config import Settings, settings
from authkit.core.exceptions import (
    AuthKitError, AuthorizationError, PayloadTooLargeError, RateLimitError,
)
from authkit.db.session import SessionLocal
from authkit.services.security_service import SecurityService

logger = logging.getLogger("authkit")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

# Strong references to in-flight background tasks until they finish
_background_tasks: Set[asyncio.Task] = set()


@dataclass
class SecurityConfig:
    """Runtime knobs for SecurityMiddleware, kept on ``app.state.security_config``."""

    max_request_size: int
    allowed_ips: List[str] = field(default_factory=list)
    request_log_enabled: bool = True

    @classmethod
    def from_settings(cls, s: Settings) -> "SecurityConfig":
        return cls(
            max_request_size=s.MAX_REQUEST_SIZE_BYTES,
            allowed_ips=list(s.ALLOWED_IPS),
            request_log_enabled=s.REQUEST_LOG_ENABLED,
        )


def dispatch_background(func: Callable, *args, **kwargs) -> None:
    """Run a blocking call on the thread pool without awaiting it.

    Errors are logged and dropped; they never reach the caller.
    """

    async def runner():
        try:
            await run_in_threadpool(func, *args, **kwargs)
        except Exception:
            logger.exception("Background task %s failed", getattr(func, "__name__", func))

    task = asyncio.create_task(runner())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _error_response(exc: AuthKitError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


class SecurityHeadersMiddleware:
    """Raw ASGI middleware stamping SECURITY_HEADERS on every HTTP response.

    Registered outermost so CORS preflight answers carry the headers too. An
    unhandled error that escapes before the response starts is answered here
    with a generic 500 and then re-raised for the server to log.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def send_with_headers(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
                MutableHeaders(scope=message).update(SECURITY_HEADERS)
            await send(message)

        try:
            await self.app(scope, receive, send_with_headers)
        except Exception:
            if started:
                raise
            response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
            await response(scope, receive, send_with_headers)
            raise


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Add a unique request ID to every request/response."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        response: Response = await call_next(request)

        duration = round((time.time() - start_time) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration)

        logger.info(
            "%s %s %s %sms",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response


class SecurityMiddleware(BaseHTTPMiddleware):
    """Allow-list, rate limit, and body-size checks ahead of any handler.

    The limiter and config are read from ``app.state`` so they are built once at
    startup and can be swapped in tests.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        config: SecurityConfig = request.app.state.security_config
        ip = client_ip(request)

        if config.allowed_ips and ip not in config.allowed_ips:
            return _error_response(AuthorizationError("Access denied from this IP"))

        if not request.app.state.limiter.hit(ip):
            return _error_response(RateLimitError("Rate limit exceeded"))

        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > config.max_request_size:
            return _error_response(PayloadTooLargeError("Request too large"))

        response: Response = await call_next(request)

        if config.request_log_enabled:
            dispatch_background(
                SecurityService.log_request,
                SessionLocal,
                ip=ip,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=int((time.time() - start) * 1000),
                user_id=getattr(request.state, "user_id", None),
                user_agent=request.headers.get("user-agent"),
            )
        return response


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application (last added runs first)."""
    # Security guard (innermost)
    app.add_middleware(SecurityMiddleware)

    # Request ID + timing
    app.add_middleware(RequestIdMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
    )

    # Security headers + last-resort 500 (outermost)
    app.add_middleware(SecurityHeadersMiddleware)
