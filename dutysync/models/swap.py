"""
Duty swap persistence: one row per swap pair, two sides, N approval steps
per side, and advisory recommendations.

Architecture:
    SwapPairRecord ──1:2──▶ SwapSideRecord ──1:N──▶ SwapApprovalRecord
    SwapPairRecord ──1:N──▶ SwapRecommendationRecord

These rows are the storage form of the dutysync.core.swap_aggregate
dataclasses; SqlSwapRepository maps between the two. ``version`` is bumped
on every save and checked with compare-and-set, so concurrent writers in
other processes cannot both apply a transition.

Lifecycle (status): pending → approved | rejected | cancelled
"""

from datetime import datetime, timezone

from dutysync.models import db

SIDE_LABELS = ("a", "b")


class SwapPairRecord(db.Model):
    __tablename__ = "swap_pairs"

    id = db.Column(db.String(36), primary_key=True)
    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    reason = db.Column(db.Text, nullable=False)
    required_level = db.Column(db.String(20), nullable=False,
                               comment="work_section | section | company")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | approved | rejected | cancelled")
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sides = db.relationship(
        "SwapSideRecord",
        back_populates="pair",
        cascade="all, delete-orphan",
        order_by="SwapSideRecord.side",
        lazy="selectin",
    )
    recommendations = db.relationship(
        "SwapRecommendationRecord",
        cascade="all, delete-orphan",
        order_by="SwapRecommendationRecord.created_at",
    )

    __table_args__ = (
        db.Index("ix_swap_pairs_status", "status"),
    )

    def side(self, label):
        for side in self.sides:
            if side.side == label:
                return side
        return None


class SwapSideRecord(db.Model):
    __tablename__ = "swap_sides"

    id = db.Column(db.Integer, primary_key=True)
    swap_pair_id = db.Column(
        db.String(36), db.ForeignKey("swap_pairs.id", ondelete="CASCADE"), nullable=False,
    )
    side = db.Column(db.String(1), nullable=False, comment="a | b")
    personnel_id = db.Column(
        db.Integer, db.ForeignKey("personnel.id", ondelete="RESTRICT"), nullable=False,
    )
    duty_slot_id = db.Column(
        db.Integer, db.ForeignKey("duty_slots.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    partner_accepted = db.Column(db.Boolean, nullable=False, default=False)
    partner_accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    partner_accepted_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    rejection_reason = db.Column(db.Text, nullable=True)

    pair = db.relationship("SwapPairRecord", back_populates="sides")
    approvals = db.relationship(
        "SwapApprovalRecord",
        back_populates="side_record",
        cascade="all, delete-orphan",
        order_by="SwapApprovalRecord.approval_order",
        lazy="selectin",
    )

    __table_args__ = (
        db.UniqueConstraint("swap_pair_id", "side", name="uq_swap_side"),
    )


class SwapApprovalRecord(db.Model):
    __tablename__ = "swap_approvals"

    id = db.Column(db.String(36), primary_key=True)
    swap_side_id = db.Column(
        db.Integer, db.ForeignKey("swap_sides.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    approval_order = db.Column(db.Integer, nullable=False)
    approver_type = db.Column(db.String(30), nullable=False,
                              comment="work_section_manager | section_manager | company_manager")
    scope_unit_id = db.Column(
        db.Integer, db.ForeignKey("unit_sections.id", ondelete="SET NULL"), nullable=True,
    )
    status = db.Column(db.String(20), nullable=False, default="pending")
    approved_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    side_record = db.relationship("SwapSideRecord", back_populates="approvals")

    __table_args__ = (
        db.UniqueConstraint("swap_side_id", "approval_order", name="uq_swap_approval_order"),
    )


class SwapRecommendationRecord(db.Model):
    __tablename__ = "swap_recommendations"

    id = db.Column(db.String(36), primary_key=True)
    swap_pair_id = db.Column(
        db.String(36), db.ForeignKey("swap_pairs.id", ondelete="CASCADE"), nullable=False,
    )
    manager_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    recommendation = db.Column(db.String(20), nullable=False, comment="recommend | not_recommend")
    comment = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False,
                           default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("swap_pair_id", "manager_id", name="uq_swap_recommendation_manager"),
    )
