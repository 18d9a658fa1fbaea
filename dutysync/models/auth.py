"""
Auth models: application users and their scoped role assignments.

A user may be linked to one personnel record (the person they are in the
roster). Role assignments are (role_name, scope_unit_id) pairs; a null
scope means org-wide.
"""

from datetime import datetime, timezone

from dutysync.models import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True)
    full_name = db.Column(db.String(200))
    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    status = db.Column(db.String(20), default="active")  # active, inactive
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    roles = db.relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "personnel_id": self.personnel_id,
            "status": self.status,
            "roles": [r.to_dict() for r in self.roles],
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    role_name = db.Column(db.String(50), nullable=False)
    scope_unit_id = db.Column(
        db.Integer,
        db.ForeignKey("unit_sections.id", ondelete="CASCADE"),
        nullable=True,
        comment="NULL = org-wide",
    )
    assigned_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", back_populates="roles")

    __table_args__ = (
        db.UniqueConstraint("user_id", "role_name", "scope_unit_id", name="uq_user_role_scope"),
        db.Index("ix_user_roles_user_id", "user_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role_name": self.role_name,
            "scope_unit_id": self.scope_unit_id,
        }
