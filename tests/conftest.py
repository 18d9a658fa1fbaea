"""
pytest fixtures for the DutySync suite.

    app        create_app("testing") on in-memory SQLite, once per session
    _setup_db  schema for the session
    session    autouse; holds an app context for the test, then rolls back
               and rebuilds the schema (reset_schema) so no rows leak into
               the next test
    client     Flask test client (requests reuse the test's app context,
               so they share db.session with the test body)
    org        the demo organization from dutysync.services.seed, committed

Engine tests that do not need a database build their collaborators from
tests/fakes.py instead.
"""

import pytest

from dutysync import create_app
from dutysync.models import db as _db
from dutysync.services.seed import seed_demo


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


def _sqlite_foreign_keys(enabled):
    if _db.engine.dialect.name != "sqlite":
        return
    with _db.engine.connect() as conn:
        conn.exec_driver_sql(f"PRAGMA foreign_keys={'ON' if enabled else 'OFF'}")


def reset_schema():
    """Drop and recreate every table, committed rows included.

    unit_sections references itself with ON DELETE RESTRICT, so SQLite has
    to run the drop with foreign keys off.
    """
    _db.session.rollback()
    _db.session.remove()
    _sqlite_foreign_keys(False)
    try:
        _db.drop_all()
        _db.create_all()
    finally:
        _sqlite_foreign_keys(True)


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    with app.app_context():
        yield _db.session
        reset_schema()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def org(session):
    """Id maps for the seeded org: ``org["users"]["wsm_1a"]``, ``org["slots"]["alice"]``, …

    battalion > {alpha > {sec1 > {ws1a, ws1b}, sec2 > {ws2a}},
                 bravo > {bravo_sec > {ws_b1}}}

    alice and bob sit in ws1a, carol in ws1b, dave in ws2a, erin in ws_b1
    (erin lacks the Weapons qualification Guard duty requires).
    """
    ids = seed_demo()
    session.commit()
    return ids
