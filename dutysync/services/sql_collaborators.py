"""
SQLAlchemy implementations of the swap engine's collaborators.

All five share ``db.session``, so one engine call is one transaction:
the pair's compare-and-set save, the roster exchange and the commit either
all land or are all rolled back.

Usage:
    from dutysync.services.sql_collaborators import build_sql_context
    engine = SwapWorkflowEngine(build_sql_context())
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from dutysync.core.exceptions import ConflictError, StateError, ValidationError
from dutysync.core.scope_authorizer import RoleAssignment
from dutysync.core.swap_aggregate import (
    ApprovalStep,
    ApproverType,
    Recommendation,
    RecommendationKind,
    StepStatus,
    SwapPair,
    SwapSide,
    SwapStatus,
)
from dutysync.core.unit_tree import HierarchyLevel, UnitNode, UnitTree
from dutysync.models import db
from dutysync.models.auth import User, UserRole
from dutysync.models.org import Personnel, UnitSection
from dutysync.models.roster import DutyRequirement, DutySlot, Qualification
from dutysync.models.swap import (
    SIDE_LABELS,
    SwapApprovalRecord,
    SwapPairRecord,
    SwapRecommendationRecord,
    SwapSideRecord,
)
from dutysync.services.collaborators import DutySlotRecord, PersonnelRecord, SwapContext

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Directory / roster / qualifications / roles
# ═════════════════════════════════════════════════════════════════════════════


class SqlDirectory:
    def __init__(self) -> None:
        self._tree: UnitTree | None = None

    def personnel_by_id(self, personnel_id: int) -> PersonnelRecord | None:
        person = db.session.get(Personnel, personnel_id)
        if person is None:
            return None
        return PersonnelRecord(id=person.id, unit_id=person.unit_id, display_name=person.display_name)

    def personnel_id_for_user(self, user_id: int) -> int | None:
        user = db.session.get(User, user_id)
        return user.personnel_id if user else None

    def user_exists(self, user_id: int) -> bool:
        return db.session.get(User, user_id) is not None

    def unit_tree(self) -> UnitTree:
        # One snapshot per context (i.e. per request).
        if self._tree is None:
            rows = db.session.execute(select(UnitSection)).scalars().all()
            self._tree = UnitTree(
                UnitNode(
                    id=row.id,
                    parent_id=row.parent_id,
                    name=row.name,
                    hierarchy_level=HierarchyLevel(row.hierarchy_level),
                )
                for row in rows
            )
        return self._tree

    def descendant_unit_ids(self, unit_id: int) -> frozenset[int]:
        return self.unit_tree().descendants_of(unit_id)


def _slot_record(slot: DutySlot) -> DutySlotRecord:
    return DutySlotRecord(
        id=slot.id,
        duty_type_id=slot.duty_type_id,
        personnel_id=slot.personnel_id,
        date_assigned=slot.date_assigned,
        status=slot.status,
    )


class SqlRoster:
    def duty_slot_by_id(self, slot_id: int) -> DutySlotRecord | None:
        slot = db.session.get(DutySlot, slot_id)
        return _slot_record(slot) if slot else None

    def exchange_slot_assignments(
        self, slot_id_a: int, slot_id_b: int, *, swap_pair_id: str, at: datetime,
    ) -> None:
        """Swap personnel_id between two slots and stamp the swap-tracking columns.

        Flushes but does not commit; the caller's commit makes it durable
        together with the pair's status change.
        """
        slots = db.session.execute(
            select(DutySlot)
            .where(DutySlot.id.in_([slot_id_a, slot_id_b]))
            .with_for_update()
        ).scalars().all()
        by_id = {slot.id: slot for slot in slots}
        slot_a, slot_b = by_id.get(slot_id_a), by_id.get(slot_id_b)
        if slot_a is None or slot_b is None:
            raise StateError(f"Duty slots {slot_id_a}/{slot_id_b} disappeared before the swap was applied")

        holder_a, holder_b = slot_a.personnel_id, slot_b.personnel_id
        slot_a.personnel_id, slot_b.personnel_id = holder_b, holder_a
        for slot, previous in ((slot_a, holder_a), (slot_b, holder_b)):
            slot.swapped_at = at
            slot.swapped_from_personnel_id = previous
            slot.swap_pair_id = swap_pair_id
        db.session.flush()
        logger.info(
            "Roster exchange: slot %s %s→%s, slot %s %s→%s",
            slot_a.id, holder_a, holder_b, slot_b.id, holder_b, holder_a,
            extra={"swap_pair_id": swap_pair_id, "event_type": "roster.exchanged"},
        )


class SqlQualificationChecker:
    def meets_all_duty_requirements(self, personnel_id: int, duty_type_id: int) -> bool:
        required = set(db.session.execute(
            select(DutyRequirement.required_qual_name)
            .where(DutyRequirement.duty_type_id == duty_type_id)
        ).scalars())
        if not required:
            return True
        held = set(db.session.execute(
            select(Qualification.qual_name).where(Qualification.personnel_id == personnel_id)
        ).scalars())
        return required <= held


class SqlRoleDirectory:
    def roles_for_user(self, user_id: int) -> list[RoleAssignment]:
        rows = db.session.execute(
            select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.id)
        ).scalars().all()
        roles = []
        for row in rows:
            try:
                roles.append(RoleAssignment.parse(row.role_name, row.scope_unit_id))
            except ValidationError:
                # Unknown role names grant nothing.
                logger.warning("Ignoring unknown role %r on user %s", row.role_name, user_id,
                               extra={"user_id": user_id})
        return roles


# ═════════════════════════════════════════════════════════════════════════════
# Swap repository
# ═════════════════════════════════════════════════════════════════════════════


def _step_from_record(row: SwapApprovalRecord) -> ApprovalStep:
    return ApprovalStep(
        id=row.id,
        approval_order=row.approval_order,
        approver_type=ApproverType(row.approver_type),
        scope_unit_id=row.scope_unit_id,
        status=StepStatus(row.status),
        approved_by=row.approved_by,
        approved_at=row.approved_at,
        rejection_reason=row.rejection_reason,
    )


def _side_from_record(row: SwapSideRecord) -> SwapSide:
    return SwapSide(
        personnel_id=row.personnel_id,
        duty_slot_id=row.duty_slot_id,
        approvals=[_step_from_record(a) for a in row.approvals],
        partner_accepted=row.partner_accepted,
        partner_accepted_at=row.partner_accepted_at,
        partner_accepted_by=row.partner_accepted_by,
        rejection_reason=row.rejection_reason,
    )


def _pair_from_record(row: SwapPairRecord) -> SwapPair:
    side_a, side_b = row.side("a"), row.side("b")
    if side_a is None or side_b is None:
        raise StateError(f"Swap {row.id} is missing a side")
    return SwapPair(
        id=row.id,
        requester_id=row.requester_id,
        reason=row.reason,
        required_level=HierarchyLevel(row.required_level),
        side_a=_side_from_record(side_a),
        side_b=_side_from_record(side_b),
        created_at=row.created_at,
        status=SwapStatus(row.status),
        updated_at=row.updated_at,
        resolved_at=row.resolved_at,
        version=row.version,
    )


def _copy_side(side: SwapSide, row: SwapSideRecord) -> None:
    row.partner_accepted = side.partner_accepted
    row.partner_accepted_at = side.partner_accepted_at
    row.partner_accepted_by = side.partner_accepted_by
    row.rejection_reason = side.rejection_reason
    by_id = {a.id: a for a in row.approvals}
    for step in side.approvals:
        approval = by_id[step.id]
        approval.status = step.status.value
        approval.approved_by = step.approved_by
        approval.approved_at = step.approved_at
        approval.rejection_reason = step.rejection_reason


class SqlSwapRepository:
    def get(self, swap_pair_id: str) -> SwapPair | None:
        row = db.session.get(SwapPairRecord, swap_pair_id)
        return _pair_from_record(row) if row else None

    def pair_id_for_step(self, step_id: str) -> str | None:
        return db.session.execute(
            select(SwapSideRecord.swap_pair_id)
            .join(SwapApprovalRecord, SwapApprovalRecord.swap_side_id == SwapSideRecord.id)
            .where(SwapApprovalRecord.id == step_id)
        ).scalar_one_or_none()

    def open_pair_for_slot(self, slot_id: int) -> str | None:
        return db.session.execute(
            select(SwapPairRecord.id)
            .join(SwapSideRecord, SwapSideRecord.swap_pair_id == SwapPairRecord.id)
            .where(
                SwapSideRecord.duty_slot_id == slot_id,
                SwapPairRecord.status == SwapStatus.PENDING.value,
            )
            .limit(1)
        ).scalar_one_or_none()

    def list_pairs(self, status: SwapStatus | None = None) -> list[SwapPair]:
        stmt = select(SwapPairRecord).order_by(SwapPairRecord.created_at.desc())
        if status is not None:
            stmt = stmt.where(SwapPairRecord.status == SwapStatus(status).value)
        return [_pair_from_record(row) for row in db.session.execute(stmt).scalars().all()]

    def add(self, pair: SwapPair) -> None:
        row = SwapPairRecord(
            id=pair.id,
            requester_id=pair.requester_id,
            reason=pair.reason,
            required_level=pair.required_level.value,
            status=pair.status.value,
            version=pair.version,
            created_at=pair.created_at,
            updated_at=pair.updated_at,
            resolved_at=pair.resolved_at,
        )
        for label, side in zip(SIDE_LABELS, pair.sides):
            row.sides.append(SwapSideRecord(
                side=label,
                personnel_id=side.personnel_id,
                duty_slot_id=side.duty_slot_id,
                partner_accepted=side.partner_accepted,
                approvals=[
                    SwapApprovalRecord(
                        id=step.id,
                        approval_order=step.approval_order,
                        approver_type=step.approver_type.value,
                        scope_unit_id=step.scope_unit_id,
                        status=step.status.value,
                    )
                    for step in side.approvals
                ],
            ))
        db.session.add(row)
        db.session.flush()

    def save(self, pair: SwapPair, expected_version: int) -> None:
        """Write ``pair`` back if nobody else saved it since it was loaded.

        Raises ConflictError when the stored version is not ``expected_version``.
        """
        result = db.session.execute(
            update(SwapPairRecord)
            .where(SwapPairRecord.id == pair.id, SwapPairRecord.version == expected_version)
            .values(
                version=expected_version + 1,
                status=pair.status.value,
                updated_at=pair.updated_at,
                resolved_at=pair.resolved_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("SwapPair", "version", expected_version)

        row = db.session.get(SwapPairRecord, pair.id)
        db.session.expire(row, ["version", "status", "updated_at", "resolved_at"])
        for label, side in zip(SIDE_LABELS, pair.sides):
            _copy_side(side, row.side(label))
        db.session.flush()
        pair.version = expected_version + 1

    def delete(self, swap_pair_id: str) -> None:
        row = db.session.get(SwapPairRecord, swap_pair_id)
        if row is not None:
            db.session.delete(row)
            db.session.flush()

    def add_recommendation(self, recommendation: Recommendation) -> None:
        db.session.add(SwapRecommendationRecord(
            id=recommendation.id,
            swap_pair_id=recommendation.swap_pair_id,
            manager_id=recommendation.manager_id,
            recommendation=recommendation.recommendation.value,
            comment=recommendation.comment,
            created_at=recommendation.created_at,
        ))

    def recommendations_for(self, swap_pair_id: str) -> list[Recommendation]:
        rows = db.session.execute(
            select(SwapRecommendationRecord)
            .where(SwapRecommendationRecord.swap_pair_id == swap_pair_id)
            .order_by(SwapRecommendationRecord.created_at)
        ).scalars().all()
        return [
            Recommendation(
                id=row.id,
                swap_pair_id=row.swap_pair_id,
                manager_id=row.manager_id,
                recommendation=RecommendationKind(row.recommendation),
                comment=row.comment,
                created_at=row.created_at,
            )
            for row in rows
        ]

    def commit(self) -> None:
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning("Integrity error on commit: %s", exc.orig)
            raise ValidationError("Duplicate or constraint violation") from exc

    def rollback(self) -> None:
        db.session.rollback()


def build_sql_context() -> SwapContext:
    """Fresh collaborator set bound to the current ``db.session``."""
    return SwapContext(
        directory=SqlDirectory(),
        roster=SqlRoster(),
        qualifications=SqlQualificationChecker(),
        roles=SqlRoleDirectory(),
        swaps=SqlSwapRepository(),
    )
