"""
SIMS - HTTP Middleware
Request logging tagged with the target portal, response security headers,
and the upload-sized request body limit
"""

import time
from typing import Callable, Optional, Set
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from sims.core.exceptions import FileTooLargeError, error_response
from sims.core.logging_config import (
    logger,
    set_request_id,
    set_user_id,
    generate_request_id,
)
from sims.core.roles import role_for_path


# Landing page, health checks and API docs
QUIET_PATHS: Set[str] = {
    "/",
    "/health",
    "/favicon.ico",
    "/docs",
    "/redoc",
    "/openapi.json",
}

SLOW_REQUEST_MS = 1000


def should_skip_logging(path: str) -> bool:
    """Check if path should skip detailed logging"""
    if path in QUIET_PATHS:
        return True
    return path.startswith("/static/") or path.endswith((".js", ".css", ".png", ".ico"))


def portal_for_path(path: str) -> Optional[str]:
    """Name of the role portal a path belongs to, if any"""
    role = role_for_path(path)
    return role.value if role else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request with its correlation id and the portal it targets.

    Completion is logged at warning for 4xx and error for 5xx so failed
    enrollments, rejected uploads and similar show up without debug logging.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)

        path = request.url.path
        quiet = should_skip_logging(path)
        context = {
            "http_method": request.method,
            "http_path": path,
            "portal": portal_for_path(path),
        }
        started = time.perf_counter()

        if not quiet:
            logger.info(
                f"→ {request.method} {path}",
                extra={
                    "event_type": "http_request_start",
                    "client_ip": request.client.host if request.client else "unknown",
                    "is_upload": request.headers.get("content-type", "").startswith("multipart/"),
                    **context,
                },
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"✗ {request.method} {path} - {type(exc).__name__}",
                exc_info=True,
                extra={
                    "event_type": "http_request_error",
                    "duration_ms": (time.perf_counter() - started) * 1000,
                    "error_type": type(exc).__name__,
                    **context,
                },
            )
            raise
        finally:
            set_user_id("")

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if not quiet:
            self._log_completion(request, response, duration_ms, context)

        set_request_id("")
        return response

    @staticmethod
    def _log_completion(request: Request, response: Response, duration_ms: float, context: dict) -> None:
        status_code = response.status_code
        if status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        else:
            log = logger.info

        extra = {"event_type": "http_request_complete", "http_status": status_code,
                 "duration_ms": duration_ms, **context}
        if status_code in (301, 302, 303, 307, 308):
            extra["redirect_to"] = response.headers.get("location")

        log(f"← {request.method} {request.url.path} - {status_code} ({duration_ms:.2f}ms)", extra=extra)

        if duration_ms > SLOW_REQUEST_MS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {duration_ms:.2f}ms",
                extra={"event_type": "slow_request", "duration_ms": duration_ms, **context},
            )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers to every response.

    Portal responses carry student records, so they are also marked
    uncacheable. HSTS is only sent when ``hsts`` is on (outside development).
    """

    def __init__(self, app: ASGIApp, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        if role_for_path(request.url.path) is not None or request.url.path.startswith("/auth/"):
            response.headers["Cache-Control"] = "no-store"

        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Refuses bodies larger than the upload limit plus multipart framing.

    Uploads are validated again by size once parsed; this only stops
    oversize bodies before they are read.
    """

    def __init__(self, app: ASGIApp, max_upload_size: int = 10 * 1024 * 1024, overhead: int = 64 * 1024):
        super().__init__(app)
        self.max_upload_size = max_upload_size
        self.max_size = max_upload_size + overhead

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("content-length")

        if content_length and content_length.isdigit() and int(content_length) > self.max_size:
            logger.warning(
                f"Request body too large: {content_length} bytes (max: {self.max_size})",
                extra={
                    "event_type": "request_too_large",
                    "content_length": int(content_length),
                    "max_size": self.max_size,
                    "http_path": request.url.path,
                    "portal": portal_for_path(request.url.path),
                }
            )
            return JSONResponse(
                status_code=413,
                content=error_response(FileTooLargeError(int(content_length), self.max_upload_size)),
            )

        return await call_next(request)


__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "RequestSizeLimitMiddleware",
    "should_skip_logging",
    "portal_for_path",
    "QUIET_PATHS",
]
