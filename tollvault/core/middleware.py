"""
HTTP middleware stack and exception handlers.

Order, outermost first: SecurityHeaders -> CorrelationId -> RequestLogging -> app.
Errors raised as AppException leave the API as
``{"error": {"code", "message", "details"}}`` with the correlation ID echoed in
the ``X-Correlation-ID`` header.
"""
import time
from typing import Any, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tollvault.core.exceptions import AppException, ErrorCode
from tollvault.core.logging import get_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Probes hit these every few seconds; only failures are logged
_QUIET_PATHS = frozenset({"/health"})


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Correlation-ID or mint one, and echo it back"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        cid = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = cid

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = cid
        return response


def _request_fields(request: Request, started: float) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "method": request.method,
        "path": request.url.path,
        "duration_seconds": round(time.perf_counter() - started, 4),
    }
    # Uploads: size from the header, the body is not read here
    content_length = request.headers.get("content-length")
    if request.method == "POST" and content_length:
        fields["content_length"] = int(content_length) if content_length.isdigit() else content_length
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request, with status and duration"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} raised {type(e).__name__}",
                extra_data={**_request_fields(request, started), "error": str(e)},
                exc_info=True,
            )
            raise

        status = response.status_code
        if request.url.path in _QUIET_PATHS and status < 400:
            return response

        fields = _request_fields(request, started)
        fields["status_code"] = status
        if request.query_params:
            fields["query_params"] = dict(request.query_params)

        if status >= 500:
            logger.error(f"{request.method} {request.url.path} -> {status}", extra_data=fields)
        elif status >= 400:
            logger.warning(f"{request.method} {request.url.path} -> {status}", extra_data=fields)
        else:
            logger.info(f"{request.method} {request.url.path} -> {status}", extra_data=fields)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    X-Content-Type-Options on every response. HSTS and the CSP upgrade
    directive are sent only for HTTPS requests outside DEBUG, since the
    dashboard is normally opened over plain HTTP on localhost.
    """

    def __init__(self, app: FastAPI, *, debug: bool = False) -> None:
        super().__init__(app)
        self._debug = debug

    @staticmethod
    def _is_https(request: Request) -> bool:
        forwarded = request.headers.get("X-Forwarded-Proto", "")
        return request.url.scheme == "https" or forwarded.split(",")[0].strip() == "https"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        if not self._debug and self._is_https(request):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            response.headers["Content-Security-Policy"] = "upgrade-insecure-requests"
        return response


def _error_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={CORRELATION_HEADER: get_correlation_id()},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """AppException -> its own status code and error body"""
    # Client mistakes (bad CSV, bad query) are warnings; our own failures are errors
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"{exc.error_code.value} on {request.method} {request.url.path}: {exc.message}",
        extra_data={
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "details": exc.details,
        },
    )
    return _error_response(exc.status_code, exc.to_dict())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else -> 500 without internals in the body"""
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        extra_data={"exception_type": type(exc).__name__, "error": str(exc)},
        exc_info=exc,
    )
    return _error_response(
        500,
        AppException("An unexpected error occurred", ErrorCode.INTERNAL_ERROR).to_dict(),
    )


def setup_middleware(app: FastAPI) -> None:
    """Install the middleware stack; the last one added runs first"""
    from tollvault.core.config import settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, debug=settings.DEBUG)


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
