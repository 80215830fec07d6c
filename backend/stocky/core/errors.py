"""Error taxonomy, typed exceptions and the JSON error envelope."""

from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stocky.config import get_settings

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class ErrorCode(str, Enum):
    MISSING_PARAMETER = "MISSING_PARAMETER"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    PARAMETER_OUT_OF_RANGE = "PARAMETER_OUT_OF_RANGE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class UpstreamErrorKind(str, Enum):
    """Failure classes reported by the provider clients."""

    RATE_LIMIT = "RATE_LIMIT"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class APIError(Exception):
    """Raised at the route boundary; rendered as an error envelope."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class ValidationError(APIError):
    def __init__(
        self,
        message: str,
        parameter: str | None = None,
        code: ErrorCode = ErrorCode.INVALID_PARAMETER,
        **details: Any,
    ) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, code, {"parameter": parameter, **details})


class MissingParameterError(ValidationError):
    def __init__(self, parameter: str) -> None:
        super().__init__(f"Missing required parameter: {parameter}", parameter, ErrorCode.MISSING_PARAMETER)


class RateLimitError(APIError):
    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            status.HTTP_429_TOO_MANY_REQUESTS,
            ErrorCode.RATE_LIMIT_EXCEEDED,
            {"retryAfter": retry_after},
        )
        self.retry_after = retry_after
        self.headers = headers or {}


class NotFoundError(APIError):
    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found", status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND, {"resource": resource})


class UnauthorizedError(APIError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, ErrorCode.UNAUTHORIZED)


class ExternalServiceError(APIError):
    def __init__(self, service: str, original: Exception | None = None) -> None:
        super().__init__(
            f"External service error: {service}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            ErrorCode.EXTERNAL_SERVICE_ERROR,
            {"service": service, "originalError": str(original) if original else None},
        )


class UpstreamError(Exception):
    """Raised by provider clients once a call has definitively failed."""

    def __init__(
        self,
        provider: str,
        kind: UpstreamErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return (
            f"UpstreamError(provider={self.provider!r}, kind={self.kind.value}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


UPSTREAM_ERROR_MAP: dict[UpstreamErrorKind, tuple[int, ErrorCode, str]] = {
    UpstreamErrorKind.RATE_LIMIT: (
        status.HTTP_429_TOO_MANY_REQUESTS,
        ErrorCode.RATE_LIMIT_EXCEEDED,
        "Rate limit exceeded. Please try again later.",
    ),
    UpstreamErrorKind.UNAUTHORIZED: (
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.UNAUTHORIZED,
        "Unauthorized. Please check your API key.",
    ),
    UpstreamErrorKind.INVALID_SYMBOL: (
        status.HTTP_404_NOT_FOUND,
        ErrorCode.NOT_FOUND,
        "Resource not found.",
    ),
    UpstreamErrorKind.TIMEOUT: (
        status.HTTP_408_REQUEST_TIMEOUT,
        ErrorCode.TIMEOUT,
        "Request timeout. Please try again.",
    ),
    UpstreamErrorKind.NETWORK_ERROR: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCode.EXTERNAL_SERVICE_ERROR,
        "Upstream provider is unreachable.",
    ),
    UpstreamErrorKind.UNKNOWN: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorCode.EXTERNAL_SERVICE_ERROR,
        "Upstream provider returned an error.",
    ),
}

_RANGE_ERROR_TYPES = {"greater_than", "greater_than_equal", "less_than", "less_than_equal"}


def generate_request_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _envelope(
    status_code: int,
    code: ErrorCode,
    message: str,
    request_id: str,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code.value,
        "timestamp": utc_timestamp(),
        "requestId": request_id,
    }
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def build_error_response(error: object) -> JSONResponse:
    """Convert any raised value into the uniform error envelope."""

    request_id = generate_request_id()

    if isinstance(error, APIError):
        logger.warning("[%s] %s (%s): %s", request_id, error.code.value, error.status_code, error.message)
        headers = None
        if isinstance(error, RateLimitError):
            headers = dict(error.headers)
            if error.retry_after is not None:
                headers["Retry-After"] = str(max(1, int(round(error.retry_after))))
        return _envelope(error.status_code, error.code, error.message, request_id, error.details, headers)

    if isinstance(error, UpstreamError):
        status_code, code, message = UPSTREAM_ERROR_MAP[error.kind]
        logger.error("[%s] %s upstream failure: %r", request_id, error.provider, error)
        details: dict[str, Any] = {"provider": error.provider, "upstreamStatus": error.status_code}
        headers = None
        if error.retry_after is not None:
            details["retryAfter"] = error.retry_after
            headers = {"Retry-After": str(max(1, int(round(error.retry_after))))}
        return _envelope(status_code, code, message, request_id, details, headers)

    if isinstance(error, Exception):
        logger.error("[%s] Unhandled error: %s", request_id, error, exc_info=error)
        if get_settings().is_development:
            return _envelope(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                ErrorCode.INTERNAL_ERROR,
                str(error),
                request_id,
                {"originalError": str(error)},
            )
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorCode.INTERNAL_ERROR,
            "An unexpected error occurred.",
            request_id,
        )

    logger.error("[%s] Unknown error value: %r", request_id, error)
    return _envelope(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.UNKNOWN_ERROR,
        "An unexpected error occurred.",
        request_id,
    )


def validation_error_from_request(exc: RequestValidationError) -> ValidationError:
    """Translate the first FastAPI validation failure into a typed error."""

    errors = exc.errors()
    if not errors:
        return ValidationError("Invalid request parameters")
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("query", "path", "header", "body")]
    parameter = ".".join(location) or None
    error_type = first.get("type", "")
    if error_type == "missing":
        return MissingParameterError(parameter or "unknown")
    if error_type in _RANGE_ERROR_TYPES:
        return ValidationError(
            f"Parameter {parameter} is out of range: {first.get('msg')}",
            parameter,
            ErrorCode.PARAMETER_OUT_OF_RANGE,
            value=first.get("input"),
        )
    return ValidationError(
        f"Invalid value for parameter {parameter}: {first.get('msg')}",
        parameter,
        value=first.get("input"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers so every failure leaves as an envelope."""

    @app.exception_handler(APIError)
    async def _api_error(_: Request, exc: APIError) -> JSONResponse:
        return build_error_response(exc)

    @app.exception_handler(UpstreamError)
    async def _upstream_error(_: Request, exc: UpstreamError) -> JSONResponse:
        return build_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return build_error_response(validation_error_from_request(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = {
            status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
            status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
            status.HTTP_429_TOO_MANY_REQUESTS: ErrorCode.RATE_LIMIT_EXCEEDED,
        }.get(exc.status_code, ErrorCode.INVALID_PARAMETER if exc.status_code < 500 else ErrorCode.INTERNAL_ERROR)
        return build_error_response(APIError(str(exc.detail), exc.status_code, code))

    @app.middleware("http")
    async def _catch_unhandled(request: Request, call_next):  # type: ignore[no-untyped-def]
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001 - converted to the error envelope
            return build_error_response(exc)


__all__ = [
    "APIError",
    "ErrorCode",
    "ExternalServiceError",
    "MissingParameterError",
    "NotFoundError",
    "RateLimitError",
    "UPSTREAM_ERROR_MAP",
    "UnauthorizedError",
    "UpstreamError",
    "UpstreamErrorKind",
    "ValidationError",
    "build_error_response",
    "generate_request_id",
    "register_error_handlers",
    "utc_timestamp",
    "validation_error_from_request",
]
