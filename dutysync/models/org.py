"""
Organization models: the unit hierarchy and the people in it.

Architecture:
    UnitSection ──1:N──▶ UnitSection   (parent_id, self-referential)
    UnitSection ──1:N──▶ Personnel

hierarchy_level is one of unit | company | section | work_section.
"""

from datetime import datetime, timezone

from dutysync.models import db


class UnitSection(db.Model):
    __tablename__ = "unit_sections"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("unit_sections.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    hierarchy_level = db.Column(
        db.String(20),
        nullable=False,
        comment="unit | company | section | work_section",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    children = db.relationship("UnitSection", backref=db.backref("parent", remote_side=[id]))

    def to_dict(self):
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "hierarchy_level": self.hierarchy_level,
        }

    def __repr__(self):
        return f"<UnitSection {self.id}: {self.name} ({self.hierarchy_level})>"


class Personnel(db.Model):
    __tablename__ = "personnel"

    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(
        db.Integer,
        db.ForeignKey("unit_sections.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    rank = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    unit = db.relationship("UnitSection", backref=db.backref("personnel", lazy="dynamic"))

    @property
    def display_name(self):
        prefix = f"{self.rank} " if self.rank else ""
        return f"{prefix}{self.first_name} {self.last_name}"

    def to_dict(self):
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "rank": self.rank,
            "display_name": self.display_name,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Personnel {self.id}: {self.display_name}>"
