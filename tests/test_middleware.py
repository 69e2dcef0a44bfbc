"""
Tests for Middleware - tollvault/core/middleware.py

Covers:
- CorrelationIdMiddleware: correlation ID propagation
- SecurityHeadersMiddleware: HTTPS-only HSTS/CSP
- Exception handlers: AppException and generic Exception
"""
import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from tollvault.core.exceptions import AppException, ErrorCode, ValidationException
from tollvault.core.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    app_exception_handler,
    generic_exception_handler,
)


# ============================================================================
# Helpers
# ============================================================================


def _hello(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def _invalid(request: Request) -> PlainTextResponse:
    raise ValidationException("invalid date", field="date")


def _crash(request: Request) -> PlainTextResponse:
    raise RuntimeError("boom")


def _make_app(*, debug: bool = False) -> Starlette:
    return Starlette(
        routes=[
            Route("/hello", _hello),
            Route("/invalid", _invalid),
            Route("/crash", _crash),
        ],
        middleware=[
            Middleware(SecurityHeadersMiddleware, debug=debug),
            Middleware(CorrelationIdMiddleware),
            Middleware(RequestLoggingMiddleware),
        ],
        exception_handlers={
            AppException: app_exception_handler,
            Exception: generic_exception_handler,
        },
    )


# ============================================================================
# Correlation ID
# ============================================================================


class TestCorrelationId:

    @pytest.mark.unit
    def test_generated_when_missing(self):
        response = TestClient(_make_app()).get("/hello")
        assert len(response.headers["X-Correlation-ID"]) == 8

    @pytest.mark.unit
    def test_incoming_id_echoed(self):
        response = TestClient(_make_app()).get("/hello", headers={"X-Correlation-ID": "abc12345"})
        assert response.headers["X-Correlation-ID"] == "abc12345"


# ============================================================================
# Security headers
# ============================================================================


class TestSecurityHeaders:

    @pytest.mark.unit
    def test_plain_http_has_no_hsts(self):
        response = TestClient(_make_app()).get("/hello")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "Strict-Transport-Security" not in response.headers
        assert "Content-Security-Policy" not in response.headers

    @pytest.mark.unit
    def test_https_gets_hsts_and_csp(self):
        response = TestClient(_make_app(), base_url="https://testserver").get("/hello")

        assert response.headers["Strict-Transport-Security"].startswith("max-age=31536000")
        assert response.headers["Content-Security-Policy"] == "upgrade-insecure-requests"

    @pytest.mark.unit
    def test_forwarded_proto_counts_as_https(self):
        response = TestClient(_make_app()).get("/hello", headers={"X-Forwarded-Proto": "https, http"})
        assert "Strict-Transport-Security" in response.headers

    @pytest.mark.unit
    def test_debug_mode_skips_hsts(self):
        response = TestClient(_make_app(debug=True), base_url="https://testserver").get("/hello")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "Strict-Transport-Security" not in response.headers


# ============================================================================
# Exception handlers
# ============================================================================


class TestExceptionHandlers:

    @pytest.mark.unit
    def test_app_exception_rendered(self):
        response = TestClient(_make_app()).get("/invalid")

        assert response.status_code == 400
        assert response.json() == {
            "error": {
                "code": ErrorCode.VALIDATION_ERROR.value,
                "message": "invalid date",
                "details": {"field": "date"},
            }
        }
        assert "X-Correlation-ID" in response.headers

    @pytest.mark.unit
    def test_unexpected_exception_hidden(self):
        response = TestClient(_make_app(), raise_server_exceptions=False).get("/crash")

        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == ErrorCode.INTERNAL_ERROR.value
        assert "boom" not in body["error"]["message"]
