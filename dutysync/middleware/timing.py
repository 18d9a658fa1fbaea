"""
Request timing middleware.

Every /api/ response carries X-Request-ID (echoed from the caller when
supplied) and X-Request-Duration-Ms. Swap mutations are logged at INFO
with the acting user and the swap or step id from the URL; reads at
DEBUG; anything slower than SLOW_REQUEST_MS at WARNING. Health probes
are never logged.
"""

import logging
import time
import uuid

from flask import Flask, current_app, g, request

logger = logging.getLogger(__name__)

_MUTATING = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _request_extra(response, duration_ms: float) -> dict:
    view_args = request.view_args or {}
    return {
        "method": request.method,
        "path": request.path,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "request_id": g.get("request_id", ""),
        "user_id": g.get("acting_user_id"),
        "swap_pair_id": view_args.get("swap_id"),
    }


def init_request_timing(app: Flask):
    """Register the before/after hooks that time each request."""

    @app.before_request
    def _stamp_request():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _record_duration(response):
        started = g.get("request_started")
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.blueprint == "health" or not request.path.startswith("/api/"):
            return response

        extra = _request_extra(response, duration_ms)
        summary = "%s %s -> %d (%.0fms)"
        args = (request.method, request.path, response.status_code, duration_ms)
        if duration_ms > current_app.config.get("SLOW_REQUEST_MS", 1000):
            logger.warning("Slow request: " + summary, *args, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: " + summary, *args, extra=extra)
        elif request.method in _MUTATING:
            logger.info(summary, *args, extra=extra)
        else:
            logger.debug(summary, *args, extra=extra)
        return response
