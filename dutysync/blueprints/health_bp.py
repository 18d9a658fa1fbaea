"""
Health check blueprint.

Endpoints (no acting user required):
    GET /api/v1/health/ready   process is up
    GET /api/v1/health/live    database round-trip, unit hierarchy loads,
                               count of open swap requests
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from dutysync.core.exceptions import ValidationError
from dutysync.models import db
from dutysync.models.swap import SwapPairRecord
from dutysync.services.sql_collaborators import SqlDirectory

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {}

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Liveness: database unreachable: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "degraded", "checks": checks}), 503

    try:
        tree = SqlDirectory().unit_tree()
        checks["unit_tree"] = {"status": "ok", "units": len(tree)}
    except ValidationError as exc:
        # A cycle or dangling parent blocks every approval-level lookup.
        logger.error("Liveness: unit hierarchy is invalid: %s", exc)
        checks["unit_tree"] = {"status": "error", "detail": str(exc)}

    open_swaps = db.session.execute(
        select(func.count()).select_from(SwapPairRecord).where(SwapPairRecord.status == "pending")
    ).scalar_one()
    checks["swaps"] = {"status": "ok", "open": open_swaps}

    healthy = all(check["status"] == "ok" for check in checks.values())
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
