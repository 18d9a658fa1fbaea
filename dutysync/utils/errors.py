"""Machine-readable error codes and the JSON error envelope.

Every failed API call answers with

    {"success": false, "error": "<human text>", "code": "ERR_…", "details": {…}?}

Usage
-----
    from dutysync.utils.errors import E, api_error, code_for

    return api_error(E.UNAUTHORIZED, "X-User-Id header is required")
    return api_error(code_for(exc), str(exc))
"""

from __future__ import annotations

from flask import jsonify

from dutysync.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)


class E:
    """Error code constants."""

    # 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 401: no usable acting-user header
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    # 403: role, scope, self-approval, requester-only actions
    FORBIDDEN = "ERR_FORBIDDEN"
    # 404: unknown id, or a swap the caller may not see
    NOT_FOUND = "ERR_NOT_FOUND"
    # 409: action not valid in the swap's current state
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    # 429
    RATE_LIMITED = "ERR_RATE_LIMITED"
    # 500
    INTERNAL = "ERR_INTERNAL"


HTTP_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}

# A version conflict that survived every retry reads as a state conflict.
EXCEPTION_CODES: dict[type, str] = {
    NotFoundError: E.NOT_FOUND,
    ValidationError: E.VALIDATION_INVALID,
    AuthorizationError: E.FORBIDDEN,
    StateError: E.CONFLICT_STATE,
    ConflictError: E.CONFLICT_STATE,
}


def code_for(exc: Exception) -> str:
    return EXCEPTION_CODES.get(type(exc), E.INTERNAL)


def status_for(code: str | None) -> int:
    return HTTP_STATUS.get(code or "", 400)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(jsonify(body), http_status)`` for a failed request.

    ``status`` overrides the status derived from ``code``; ``details``
    carries a field-level breakdown when there is one.
    """
    body: dict = {"success": False, "error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or status_for(code)
