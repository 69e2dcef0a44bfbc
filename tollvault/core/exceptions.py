"""
Custom Exception Hierarchy

Structured exceptions rendered by the API layer as
``{"error": {"code", "message", "details"}}``.
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    PAYLOAD_TOO_LARGE = "ERR_1007"

    # CSV ingestion errors (2xxx)
    MISSING_COLUMN = "ERR_2001"
    STREAM_READ_ERROR = "ERR_2002"

    # External service errors (5xxx)
    TELEGRAM_ERROR = "ERR_5001"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when request input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class PayloadTooLargeError(AppException):
    """Raised when an uploaded file exceeds MAX_FILE_SIZE"""

    def __init__(self, size: int, limit: int):
        super().__init__(
            message=f"Uploaded file is {size} bytes, limit is {limit} bytes",
            error_code=ErrorCode.PAYLOAD_TOO_LARGE,
            status_code=413,
            details={"size": size, "limit": limit}
        )


class CSVIngestionError(AppException):
    """Base exception for CSV documents that cannot be ingested"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )


class MissingColumnError(CSVIngestionError):
    """Raised before any row is read when a required header is absent"""

    def __init__(self, column: str):
        super().__init__(
            message=f"missing column: {column}",
            error_code=ErrorCode.MISSING_COLUMN,
            details={"column": column}
        )
        self.column = column


class StreamReadError(CSVIngestionError):
    """Raised when the CSV stream breaks mid-document.

    Rows yielded before the failure have already been persisted.
    """

    def __init__(self, reason: str, line: int | None = None):
        message = f"line {line}: {reason}" if line is not None else reason
        super().__init__(
            message=message,
            error_code=ErrorCode.STREAM_READ_ERROR,
            details={"line": line} if line is not None else None
        )
        self.line = line


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class TelegramError(ExternalServiceException):
    """Raised when the Telegram Bot API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="telegram",
            message=f"Telegram API error: {message}",
            error_code=ErrorCode.TELEGRAM_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "TelegramError":
        """
        Build a TelegramError from an HTTP response.

        Args:
            operation: Bot API method name (sendMessage, getFile, ...)
            response: response object (httpx.Response)
            max_response_chars: cap on the stored response body
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            message=f"{operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            details={"retry_after_seconds": retry_after_seconds}
        )
