"""
Duty Swap Blueprint.

Routes (all under /api/v1, acting user from the ACTING_USER_HEADER header):
  GET    /swaps/approval-level                 – preview level for two personnel
  POST   /swaps                                – create a swap request
  GET    /swaps                                – swaps visible to me (?status=)
  GET    /swaps/<swap_id>                      – one swap with recommendations
  DELETE /swaps/<swap_id>                      – requester deletes before acceptance
  POST   /swaps/<swap_id>/accept               – party accepts their side
  POST   /swaps/<swap_id>/reject               – approver / unaccepted party rejects
  POST   /swaps/<swap_id>/cancel               – requester withdraws before acceptance
  POST   /swaps/<swap_id>/recommendations      – advisory recommendation
  POST   /swap-approvals/<step_id>/approve     – approve one approval step
  GET    /swap-approvals/pending               – steps I can act on now

Every engine call returns an OperationResult; its error code picks the
HTTP status (400 / 403 / 404 / 409). A missing or malformed acting-user
header is a 401.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from dutysync.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from dutysync.middleware.acting_user import require_acting_user
from dutysync.services.sql_collaborators import build_sql_context
from dutysync.services.swap_workflow import SwapWorkflowEngine
from dutysync.utils.errors import E, api_error, code_for, status_for
from dutysync.utils.helpers import json_body, require_int

logger = logging.getLogger(__name__)

swap_bp = Blueprint("swaps", __name__, url_prefix="/api/v1")


# ── helpers ──────────────────────────────────────────────────────────────

def _engine():
    return SwapWorkflowEngine(
        build_sql_context(),
        max_conflict_retries=current_app.config.get("SWAP_MAX_CONFLICT_RETRIES", 3),
    )


def _respond(result, success_status=200):
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), status_for(result.code)


# ── Domain errors raised outside the engine (e.g. collaborator setup) ────

@swap_bp.errorhandler(NotFoundError)
@swap_bp.errorhandler(ValidationError)
@swap_bp.errorhandler(AuthorizationError)
@swap_bp.errorhandler(StateError)
def _handle_domain_error(e):
    return api_error(code_for(e), str(e), details=getattr(e, "details", None))


# ═════════════════════════════════════════════════════════════════════════════
# SWAP REQUESTS
# ═════════════════════════════════════════════════════════════════════════════

@swap_bp.route("/swaps/approval-level", methods=["GET"])
def preview_approval_level():
    """Which manager level a swap between two personnel would need."""
    _user_id, err = require_acting_user()
    if err:
        return err
    personnel_a_id, err = require_int(request.args, "personnel_a_id")
    if err:
        return err
    personnel_b_id, err = require_int(request.args, "personnel_b_id")
    if err:
        return err
    return _respond(_engine().preview_approval_level(personnel_a_id, personnel_b_id))


@swap_bp.route("/swaps", methods=["POST"])
def create_swap():
    """Create a swap request.

    Body: { personnel_a_id, slot_a_id, personnel_b_id, slot_b_id, reason }
    """
    user_id, err = require_acting_user()
    if err:
        return err
    data, err = json_body()
    if err:
        return err
    ids = {}
    for key in ("personnel_a_id", "slot_a_id", "personnel_b_id", "slot_b_id"):
        ids[key], err = require_int(data, key)
        if err:
            return err
    reason = (data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "reason is required", details={"reason": "required"})

    result = _engine().create_swap(
        ids["personnel_a_id"], ids["slot_a_id"],
        ids["personnel_b_id"], ids["slot_b_id"],
        requester_id=user_id,
        reason=reason,
    )
    return _respond(result, success_status=201)


@swap_bp.route("/swaps", methods=["GET"])
def list_swaps():
    """Swaps visible to the acting user, newest first. ?status=pending|approved|..."""
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().list_swaps(user_id, status=request.args.get("status") or None))


@swap_bp.route("/swaps/<swap_id>", methods=["GET"])
def get_swap(swap_id):
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().get_swap(swap_id, user_id))


@swap_bp.route("/swaps/<swap_id>", methods=["DELETE"])
def delete_swap(swap_id):
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().delete_swap(swap_id, user_id))


@swap_bp.route("/swaps/<swap_id>/accept", methods=["POST"])
def accept_swap(swap_id):
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().accept_swap(swap_id, user_id))


@swap_bp.route("/swaps/<swap_id>/reject", methods=["POST"])
def reject_swap(swap_id):
    """Body: { reason }"""
    user_id, err = require_acting_user()
    if err:
        return err
    data, err = json_body()
    if err:
        return err
    reason = (data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "reason is required", details={"reason": "required"})
    return _respond(_engine().reject_swap(swap_id, user_id, reason))


@swap_bp.route("/swaps/<swap_id>/cancel", methods=["POST"])
def cancel_swap(swap_id):
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().cancel_swap(swap_id, user_id))


@swap_bp.route("/swaps/<swap_id>/recommendations", methods=["POST"])
def add_recommendation(swap_id):
    """Body: { recommendation: "recommend" | "not_recommend", comment? }"""
    user_id, err = require_acting_user()
    if err:
        return err
    data, err = json_body()
    if err:
        return err
    recommendation = data.get("recommendation")
    if not recommendation:
        return api_error(E.VALIDATION_REQUIRED, "recommendation is required",
                         details={"recommendation": "required"})
    result = _engine().add_recommendation(swap_id, user_id, recommendation, data.get("comment"))
    return _respond(result, success_status=201)


# ═════════════════════════════════════════════════════════════════════════════
# APPROVAL STEPS
# ═════════════════════════════════════════════════════════════════════════════

@swap_bp.route("/swap-approvals/<step_id>/approve", methods=["POST"])
def approve_step(step_id):
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().approve_step(step_id, user_id))


@swap_bp.route("/swap-approvals/pending", methods=["GET"])
def pending_approvals():
    """Approval steps the acting user may approve right now."""
    user_id, err = require_acting_user()
    if err:
        return err
    return _respond(_engine().pending_approvals_for(user_id))
