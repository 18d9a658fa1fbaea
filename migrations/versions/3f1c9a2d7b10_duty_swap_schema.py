"""duty_swap_schema

Creates the organization, roster and swap workflow tables:
  - unit_sections, personnel                 unit hierarchy and people
  - users, user_roles                        logins and scoped roles
  - duty_types, duty_requirements,
    qualifications, duty_slots               roster with swap tracking
  - swap_pairs, swap_sides, swap_approvals,
    swap_recommendations                     swap workflow state

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 3f1c9a2d7b10
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '3f1c9a2d7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Organization ──────────────────────────────────────────────────────
    if "unit_sections" not in existing:
        op.create_table(
            "unit_sections",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("parent_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("hierarchy_level", sa.String(length=20), nullable=False,
                      comment="unit | company | section | work_section"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["parent_id"], ["unit_sections.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_unit_sections_parent_id", "unit_sections", ["parent_id"])

    if "personnel" not in existing:
        op.create_table(
            "personnel",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("unit_id", sa.Integer(), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("rank", sa.String(length=50), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["unit_id"], ["unit_sections.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_personnel_unit_id", "personnel", ["unit_id"])

    # ── Users & roles ─────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("personnel_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["personnel_id"], ["personnel.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
            sa.UniqueConstraint("personnel_id"),
        )

    if "user_roles" not in existing:
        op.create_table(
            "user_roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role_name", sa.String(length=50), nullable=False),
            sa.Column("scope_unit_id", sa.Integer(), nullable=True, comment="NULL = org-wide"),
            sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scope_unit_id"], ["unit_sections.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "role_name", "scope_unit_id", name="uq_user_role_scope"),
        )
        op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # ── Roster ────────────────────────────────────────────────────────────
    if "duty_types" not in existing:
        op.create_table(
            "duty_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "duty_requirements" not in existing:
        op.create_table(
            "duty_requirements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("duty_type_id", sa.Integer(), nullable=False),
            sa.Column("required_qual_name", sa.String(length=100), nullable=False),
            sa.ForeignKeyConstraint(["duty_type_id"], ["duty_types.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("duty_type_id", "required_qual_name", name="uq_duty_requirement"),
        )
        op.create_index("ix_duty_requirements_duty_type_id", "duty_requirements", ["duty_type_id"])

    if "qualifications" not in existing:
        op.create_table(
            "qualifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("personnel_id", sa.Integer(), nullable=False),
            sa.Column("qual_name", sa.String(length=100), nullable=False),
            sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["personnel_id"], ["personnel.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("personnel_id", "qual_name", name="uq_personnel_qualification"),
        )
        op.create_index("ix_qualifications_personnel_id", "qualifications", ["personnel_id"])

    if "duty_slots" not in existing:
        op.create_table(
            "duty_slots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("duty_type_id", sa.Integer(), nullable=False),
            sa.Column("personnel_id", sa.Integer(), nullable=True),
            sa.Column("date_assigned", sa.Date(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="scheduled",
                      comment="scheduled | completed | cancelled"),
            sa.Column("swapped_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("swapped_from_personnel_id", sa.Integer(), nullable=True),
            sa.Column("swap_pair_id", sa.String(length=36), nullable=True),
            sa.ForeignKeyConstraint(["duty_type_id"], ["duty_types.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["personnel_id"], ["personnel.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["swapped_from_personnel_id"], ["personnel.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_duty_slots_personnel_id", "duty_slots", ["personnel_id"])
        op.create_index("ix_duty_slots_date", "duty_slots", ["date_assigned"])

    # ── Swap workflow ─────────────────────────────────────────────────────
    if "swap_pairs" not in existing:
        op.create_table(
            "swap_pairs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("requester_id", sa.Integer(), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("required_level", sa.String(length=20), nullable=False,
                      comment="work_section | section | company"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending",
                      comment="pending | approved | rejected | cancelled"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_swap_pairs_requester_id", "swap_pairs", ["requester_id"])
        op.create_index("ix_swap_pairs_status", "swap_pairs", ["status"])

    if "swap_sides" not in existing:
        op.create_table(
            "swap_sides",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("swap_pair_id", sa.String(length=36), nullable=False),
            sa.Column("side", sa.String(length=1), nullable=False, comment="a | b"),
            sa.Column("personnel_id", sa.Integer(), nullable=False),
            sa.Column("duty_slot_id", sa.Integer(), nullable=False),
            sa.Column("partner_accepted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("partner_accepted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("partner_accepted_by", sa.Integer(), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["swap_pair_id"], ["swap_pairs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["personnel_id"], ["personnel.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["duty_slot_id"], ["duty_slots.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["partner_accepted_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("swap_pair_id", "side", name="uq_swap_side"),
        )
        op.create_index("ix_swap_sides_duty_slot_id", "swap_sides", ["duty_slot_id"])

    if "swap_approvals" not in existing:
        op.create_table(
            "swap_approvals",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("swap_side_id", sa.Integer(), nullable=False),
            sa.Column("approval_order", sa.Integer(), nullable=False),
            sa.Column("approver_type", sa.String(length=30), nullable=False,
                      comment="work_section_manager | section_manager | company_manager"),
            sa.Column("scope_unit_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["swap_side_id"], ["swap_sides.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["scope_unit_id"], ["unit_sections.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("swap_side_id", "approval_order", name="uq_swap_approval_order"),
        )
        op.create_index("ix_swap_approvals_swap_side_id", "swap_approvals", ["swap_side_id"])

    if "swap_recommendations" not in existing:
        op.create_table(
            "swap_recommendations",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("swap_pair_id", sa.String(length=36), nullable=False),
            sa.Column("manager_id", sa.Integer(), nullable=False),
            sa.Column("recommendation", sa.String(length=20), nullable=False,
                      comment="recommend | not_recommend"),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["swap_pair_id"], ["swap_pairs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["manager_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("swap_pair_id", "manager_id", name="uq_swap_recommendation_manager"),
        )


def downgrade():
    for table in (
        "swap_recommendations",
        "swap_approvals",
        "swap_sides",
        "swap_pairs",
        "duty_slots",
        "qualifications",
        "duty_requirements",
        "duty_types",
        "user_roles",
        "users",
        "personnel",
        "unit_sections",
    ):
        op.drop_table(table)
