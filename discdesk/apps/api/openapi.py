from __future__ import annotations

from typing import Any

from discdesk.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _error_response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: _error_response(
        "Unauthorized",
        _error_example(code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    ),
    403: _error_response(
        "Forbidden",
        _error_example(code="AUTH_FORBIDDEN", message="Insufficient role for this operation"),
    ),
    422: _error_response(
        "Validation error",
        _error_example(
            code="REQUEST_VALIDATION_ERROR",
            message="Validation error",
            details={"errors": [{"loc": ["query", "limit"], "msg": "Input should be a valid integer"}]},
        ),
    ),
    500: _error_response(
        "Internal error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
}

DEMO_SEED_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _error_response(
        "Provisioning failed",
        _error_example(
            code="DEMO_SEED_FAILED",
            message="Failed to create demo staff",
            details={"stage": "staff", "committed": {"clients": 25, "staff": 0, "assessments": 0}},
        ),
    ),
    409: _error_response(
        "Provisioning already running",
        _error_example(
            code="DEMO_SEED_IN_PROGRESS",
            message="Demo data is already being seeded for this account. Please wait for it to finish.",
        ),
    ),
    429: _error_response(
        "Cooldown window still open",
        _error_example(
            code="DEMO_SEED_RATE_LIMITED",
            message="Demo data can only be seeded once every 24 hours. Please try again in 23 hours.",
            details={"retry_after_hours": 23},
        ),
    ),
}
