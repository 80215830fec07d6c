"""Error envelope construction."""

from __future__ import annotations

import json
import re

import pytest

from stocky.config import AppSettings
from stocky.core import errors
from stocky.core.errors import (
    ErrorCode,
    ExternalServiceError,
    MissingParameterError,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
    UpstreamError,
    UpstreamErrorKind,
    ValidationError,
    build_error_response,
    generate_request_id,
)


def _body(response) -> dict:
    return json.loads(response.body)


def test_request_id_format():
    assert re.fullmatch(r"req_\d{13}_[0-9a-z]{9}", generate_request_id())
    assert generate_request_id() != generate_request_id()


def test_api_error_envelope():
    response = build_error_response(MissingParameterError("symbol"))
    body = _body(response)

    assert response.status_code == 400
    assert body["success"] is False
    assert body["code"] == "MISSING_PARAMETER"
    assert body["error"] == "Missing required parameter: symbol"
    assert body["details"] == {"parameter": "symbol"}
    assert body["requestId"].startswith("req_")
    assert body["timestamp"].endswith("Z")


def test_validation_error_carries_range_code():
    error = ValidationError("limit too big", "limit", ErrorCode.PARAMETER_OUT_OF_RANGE, max=1000)
    body = _body(build_error_response(error))
    assert body["code"] == "PARAMETER_OUT_OF_RANGE"
    assert body["details"] == {"parameter": "limit", "max": 1000}


def test_rate_limit_error_sets_retry_after_header():
    response = build_error_response(RateLimitError(retry_after=42.4))
    assert response.status_code == 429
    assert response.headers["retry-after"] == "42"
    assert _body(response)["code"] == "RATE_LIMIT_EXCEEDED"


def test_not_found():
    response = build_error_response(NotFoundError("Cryptocurrency"))
    assert response.status_code == 404
    assert _body(response)["error"] == "Cryptocurrency not found"


@pytest.mark.parametrize(
    ("kind", "status_code", "code"),
    [
        (UpstreamErrorKind.RATE_LIMIT, 429, "RATE_LIMIT_EXCEEDED"),
        (UpstreamErrorKind.UNAUTHORIZED, 401, "UNAUTHORIZED"),
        (UpstreamErrorKind.INVALID_SYMBOL, 404, "NOT_FOUND"),
        (UpstreamErrorKind.TIMEOUT, 408, "TIMEOUT"),
        (UpstreamErrorKind.NETWORK_ERROR, 503, "EXTERNAL_SERVICE_ERROR"),
        (UpstreamErrorKind.UNKNOWN, 503, "EXTERNAL_SERVICE_ERROR"),
    ],
)
def test_upstream_errors_are_mapped(kind, status_code, code):
    response = build_error_response(UpstreamError("polygon", kind, "boom", status_code=500))
    body = _body(response)
    assert response.status_code == status_code
    assert body["code"] == code
    assert body["details"]["provider"] == "polygon"


def test_unexpected_exception_is_redacted_in_production(monkeypatch):
    monkeypatch.setattr(errors, "get_settings", lambda: AppSettings(environment="production"))
    body = _body(build_error_response(KeyError("secret-table")))
    assert body["code"] == "INTERNAL_ERROR"
    assert body["error"] == "An unexpected error occurred."
    assert "details" not in body


def test_unexpected_exception_is_detailed_in_development(monkeypatch):
    monkeypatch.setattr(errors, "get_settings", lambda: AppSettings(environment="development"))
    body = _body(build_error_response(RuntimeError("db offline")))
    assert body["error"] == "db offline"
    assert body["details"] == {"originalError": "db offline"}


def test_non_exception_value_is_unknown_error():
    response = build_error_response("something odd")
    assert response.status_code == 500
    assert _body(response)["code"] == "UNKNOWN_ERROR"


def test_service_and_auth_errors():
    external = build_error_response(ExternalServiceError("polygon", TimeoutError("slow")))
    assert external.status_code == 503
    assert _body(external)["details"] == {"service": "polygon", "originalError": "slow"}

    unauthorized = build_error_response(UnauthorizedError())
    assert unauthorized.status_code == 401
    assert _body(unauthorized)["code"] == "UNAUTHORIZED"
