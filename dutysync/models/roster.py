"""
Roster models: duty types, their qualification requirements, personnel
qualifications and the duty slots people are assigned to.

Architecture:
    DutyType ──1:N──▶ DutyRequirement  (required_qual_name)
    Personnel ──1:N──▶ Qualification   (qual_name)
    DutyType ──1:N──▶ DutySlot ◀──N:1── Personnel

DutySlot lifecycle: scheduled → completed | cancelled.
A completed swap rewrites personnel_id on both slots and stamps the
swap-tracking columns (swapped_at, swapped_from_personnel_id, swap_pair_id).
"""

from datetime import datetime, timezone

from dutysync.models import db


class DutyType(db.Model):
    __tablename__ = "duty_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)

    requirements = db.relationship("DutyRequirement", cascade="all, delete-orphan", lazy="selectin")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "required_qualifications": sorted(r.required_qual_name for r in self.requirements),
        }


class DutyRequirement(db.Model):
    __tablename__ = "duty_requirements"

    id = db.Column(db.Integer, primary_key=True)
    duty_type_id = db.Column(
        db.Integer, db.ForeignKey("duty_types.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    required_qual_name = db.Column(db.String(100), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("duty_type_id", "required_qual_name", name="uq_duty_requirement"),
    )


class Qualification(db.Model):
    __tablename__ = "qualifications"

    id = db.Column(db.Integer, primary_key=True)
    personnel_id = db.Column(
        db.Integer, db.ForeignKey("personnel.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    qual_name = db.Column(db.String(100), nullable=False)
    granted_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("personnel_id", "qual_name", name="uq_personnel_qualification"),
    )


class DutySlot(db.Model):
    __tablename__ = "duty_slots"

    id = db.Column(db.Integer, primary_key=True)
    duty_type_id = db.Column(
        db.Integer, db.ForeignKey("duty_types.id", ondelete="RESTRICT"), nullable=False,
    )
    personnel_id = db.Column(
        db.Integer, db.ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    date_assigned = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="scheduled",
                       comment="scheduled | completed | cancelled")

    # Swap tracking, set when a completed swap reassigns this slot
    swapped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    swapped_from_personnel_id = db.Column(
        db.Integer, db.ForeignKey("personnel.id", ondelete="SET NULL"), nullable=True,
    )
    swap_pair_id = db.Column(db.String(36), nullable=True)

    duty_type = db.relationship("DutyType")

    __table_args__ = (
        db.Index("ix_duty_slots_date", "date_assigned"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "duty_type_id": self.duty_type_id,
            "personnel_id": self.personnel_id,
            "date_assigned": self.date_assigned.isoformat() if self.date_assigned else None,
            "status": self.status,
            "swapped_at": self.swapped_at.isoformat() if self.swapped_at else None,
            "swapped_from_personnel_id": self.swapped_from_personnel_id,
            "swap_pair_id": self.swap_pair_id,
        }
