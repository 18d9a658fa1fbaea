"""
DutySync data model.

    org      unit_sections, personnel
    auth     users, user_roles
    roster   duty_types, duty_requirements, qualifications, duty_slots
    swap     swap_pairs, swap_sides, swap_approvals, swap_recommendations

Model modules import ``db`` from here; create_app() imports every module
so the metadata is complete before db.create_all().
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
