"""
Demo organization seed.

    1st Battalion (unit)
    ├── Alpha Company (company)
    │   ├── 1st Section ── WS 1A, WS 1B
    │   └── 2nd Section ── WS 2A
    └── Bravo Company (company)
        └── Bravo Section ── WS B1

One manager user per unit at its level, a Unit Manager on the battalion,
an org-wide App Admin, five rostered people with one login each, a Guard
duty type that requires the "Weapons" qualification and a Kitchen duty
type with no requirements.

Used by the ``flask seed-demo`` command and by the test suite's ``org``
fixture.
"""

import logging
from datetime import date, timedelta

from sqlalchemy import select

from dutysync.models import db
from dutysync.models.auth import User, UserRole
from dutysync.models.org import Personnel, UnitSection
from dutysync.models.roster import DutyRequirement, DutySlot, DutyType, Qualification

logger = logging.getLogger(__name__)

# key: (name, level, parent key)
_UNITS = [
    ("battalion", "1st Battalion", "unit", None),
    ("alpha", "Alpha Company", "company", "battalion"),
    ("bravo", "Bravo Company", "company", "battalion"),
    ("sec1", "1st Section", "section", "alpha"),
    ("sec2", "2nd Section", "section", "alpha"),
    ("bravo_sec", "Bravo Section", "section", "bravo"),
    ("ws1a", "WS 1A", "work_section", "sec1"),
    ("ws1b", "WS 1B", "work_section", "sec1"),
    ("ws2a", "WS 2A", "work_section", "sec2"),
    ("ws_b1", "WS B1", "work_section", "bravo_sec"),
]

# key: (first, last, rank, unit key, qualifications)
_PERSONNEL = [
    ("alice", "Alice", "Aydin", "Sgt", "ws1a", ["Weapons"]),
    ("bob", "Bob", "Bulut", "Cpl", "ws1a", ["Weapons"]),
    ("carol", "Carol", "Celik", "Cpl", "ws1b", ["Weapons"]),
    ("dave", "Dave", "Demir", "Pvt", "ws2a", ["Weapons"]),
    ("erin", "Erin", "Ersoy", "Pvt", "ws_b1", []),
]

# key: (role name, scope unit key or None for org-wide)
_MANAGERS = [
    ("wsm_1a", "Work Section Manager", "ws1a"),
    ("wsm_1b", "Work Section Manager", "ws1b"),
    ("wsm_2a", "Work Section Manager", "ws2a"),
    ("wsm_b1", "Work Section Manager", "ws_b1"),
    ("sm_1", "Section Manager", "sec1"),
    ("sm_2", "Section Manager", "sec2"),
    ("sm_bravo", "Section Manager", "bravo_sec"),
    ("cm_alpha", "Company Manager", "alpha"),
    ("cm_bravo", "Company Manager", "bravo"),
    ("unit_mgr", "Unit Manager", "battalion"),
    ("app_admin", "App Admin", None),
]


def seed_demo(start=None):
    """Insert the demo organization unless unit_sections already has rows.

    Flushes but does not commit. Returns a dict of id maps
    (``units``, ``personnel``, ``users``, ``slots``, ``duty_types``), or
    None when the database was already populated.
    """
    if db.session.execute(select(UnitSection.id).limit(1)).first() is not None:
        logger.info("Demo seed skipped: unit_sections is not empty")
        return None

    start = start or date.today() + timedelta(days=7)
    ids = {"units": {}, "personnel": {}, "users": {}, "slots": {}, "duty_types": {}}

    for key, name, level, parent in _UNITS:
        unit = UnitSection(
            name=name,
            hierarchy_level=level,
            parent_id=ids["units"][parent] if parent else None,
        )
        db.session.add(unit)
        db.session.flush()
        ids["units"][key] = unit.id

    guard = DutyType(name="Guard", description="Armed perimeter guard")
    guard.requirements.append(DutyRequirement(required_qual_name="Weapons"))
    kitchen = DutyType(name="Kitchen", description="Mess hall duty")
    db.session.add_all([guard, kitchen])
    db.session.flush()
    ids["duty_types"] = {"guard": guard.id, "kitchen": kitchen.id}

    for offset, (key, first, last, rank, unit_key, quals) in enumerate(_PERSONNEL):
        person = Personnel(first_name=first, last_name=last, rank=rank, unit_id=ids["units"][unit_key])
        db.session.add(person)
        db.session.flush()
        ids["personnel"][key] = person.id
        for qual in quals:
            db.session.add(Qualification(personnel_id=person.id, qual_name=qual))

        user = User(email=f"{key}@dutysync.local", full_name=f"{first} {last}", personnel_id=person.id)
        user.roles.append(UserRole(role_name="Standard User", scope_unit_id=ids["units"][unit_key]))
        db.session.add(user)

        duty = guard if quals else kitchen
        slot = DutySlot(
            duty_type_id=duty.id,
            personnel_id=person.id,
            date_assigned=start + timedelta(days=offset),
        )
        db.session.add(slot)
        db.session.flush()
        ids["users"][key] = user.id
        ids["slots"][key] = slot.id

    for key, role_name, scope_key in _MANAGERS:
        user = User(email=f"{key}@dutysync.local", full_name=key.replace("_", " ").title())
        user.roles.append(UserRole(
            role_name=role_name,
            scope_unit_id=ids["units"][scope_key] if scope_key else None,
        ))
        db.session.add(user)
        db.session.flush()
        ids["users"][key] = user.id

    logger.info(
        "Seeded demo org: %d units, %d personnel, %d users",
        len(ids["units"]), len(ids["personnel"]), len(ids["users"]),
    )
    return ids
