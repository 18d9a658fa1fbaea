"""
Per-user rate limits for the swap API.

The Limiter in dutysync/__init__.py has no default limits. Here the
"swaps" blueprint gets two shared buckets per acting user (writes and
reads, from SWAP_WRITE_LIMIT / SWAP_READ_LIMIT); health probes are
exempt. Requests without an acting-user header fall back to the remote
address. Nothing is applied when TESTING is set.
"""

import logging

from flask import current_app, request

logger = logging.getLogger(__name__)


def acting_user_rate_limit_key():
    header = current_app.config.get("ACTING_USER_HEADER", "X-User-Id")
    user_id = request.headers.get(header, "").strip()
    if user_id:
        return f"user:{user_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits skipped under TESTING")
        return

    write_limit = app.config.get("SWAP_WRITE_LIMIT", "60/minute")
    read_limit = app.config.get("SWAP_READ_LIMIT", "200/minute")

    swaps = app.blueprints.get("swaps")
    if swaps is not None:
        limiter.limit(write_limit, key_func=acting_user_rate_limit_key,
                      methods=["POST", "PUT", "PATCH", "DELETE"])(swaps)
        limiter.limit(read_limit, key_func=acting_user_rate_limit_key,
                      methods=["GET"])(swaps)

    health = app.blueprints.get("health")
    if health is not None:
        limiter.exempt(health)

    logger.info("Swap API rate limits: writes %s, reads %s per user", write_limit, read_limit)
