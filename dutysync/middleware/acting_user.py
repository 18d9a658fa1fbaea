"""
Acting-user resolution.

Authentication is out of scope: an upstream gateway authenticates the
caller and forwards the user id in a header (ACTING_USER_HEADER, default
``X-User-Id``). This middleware parses it into ``g.acting_user_id`` for
every /api/ request; views that need an identity call
``require_acting_user()``.
"""

import logging

from flask import Flask, g, request

from dutysync.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def init_acting_user(app: Flask):
    """Register the before_request hook that reads the acting-user header."""

    @app.before_request
    def _resolve_acting_user():
        g.acting_user_id = None
        g.acting_user_error = None
        if not request.path.startswith("/api/"):
            return None
        header = app.config.get("ACTING_USER_HEADER", "X-User-Id")
        raw = request.headers.get(header, "").strip()
        if not raw:
            g.acting_user_error = f"{header} header is required"
            return None
        try:
            g.acting_user_id = int(raw)
        except ValueError:
            g.acting_user_error = f"{header} header must be an integer user id"
            logger.warning("Rejected malformed %s header: %r", header, raw,
                           extra={"path": request.path})
        return None


def require_acting_user():
    """Return ``(user_id, None)`` or ``(None, error_response)`` (tuple-return)."""
    user_id = getattr(g, "acting_user_id", None)
    if user_id is None:
        message = getattr(g, "acting_user_error", None) or "Acting user is required"
        return None, api_error(E.UNAUTHORIZED, message)
    return user_id, None
