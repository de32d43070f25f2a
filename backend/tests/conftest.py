"""
Pytest fixtures for LMIS backend tests.

Provides test database setup, a small facility hierarchy, users in every
role, session tokens and the Flask test client.

Hierarchy:
    WH-01 (warehouse) -> FAC-01, FAC-02
    WH-02 (warehouse) -> FAC-09
"""

import pytest

from lmis import create_app
from lmis.extensions import db
from lmis.models import Facility, FacilityType, User
from lmis.permissions import Actor, Role
from lmis.services import session_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _facility(db_session, code, name, facility_type, warehouse=None):
    facility = Facility(
        code=code,
        name=name,
        type=facility_type,
        warehouse_id=warehouse.id if warehouse else None,
    )
    db_session.add(facility)
    db_session.commit()
    return facility


@pytest.fixture(scope='function')
def warehouse(db_session):
    return _facility(db_session, "WH-01", "Central Warehouse", FacilityType.WAREHOUSE)


@pytest.fixture(scope='function')
def other_warehouse(db_session):
    return _facility(db_session, "WH-02", "Northern Warehouse", FacilityType.WAREHOUSE)


@pytest.fixture(scope='function')
def facility(db_session, warehouse):
    return _facility(db_session, "FAC-01", "Health Centre One", FacilityType.FACILITY, warehouse)


@pytest.fixture(scope='function')
def facility_2(db_session, warehouse):
    return _facility(db_session, "FAC-02", "Health Centre Two", FacilityType.FACILITY, warehouse)


@pytest.fixture(scope='function')
def foreign_facility(db_session, other_warehouse):
    return _facility(db_session, "FAC-09", "Remote Clinic", FacilityType.FACILITY, other_warehouse)


@pytest.fixture(scope='function')
def make_user(db_session):
    """
    Factory for users.

    Password hashes are placeholders: bcrypt is slow and only the login
    tests need a real hash.
    """
    counter = {"n": 0}

    def _make(role, facility=None, email=None, is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"{role.lower()}{counter['n']}@lmis.test",
            full_name=f"{role.title()} {counter['n']}",
            password_hash="x",
            role=role,
            facility_id=facility.id if facility else None,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user(Role.SUPER_ADMIN)


@pytest.fixture(scope='function')
def warehouse_officer(make_user, warehouse):
    return make_user(Role.WAREHOUSE_OFFICER, warehouse)


@pytest.fixture(scope='function')
def facility_officer(make_user, facility):
    return make_user(Role.FACILITY_OFFICER, facility)


@pytest.fixture(scope='function')
def facility_officer_2(make_user, facility_2):
    return make_user(Role.FACILITY_OFFICER, facility_2)


@pytest.fixture(scope='function')
def clinician(make_user, facility):
    return make_user(Role.CLINICIAN, facility)


@pytest.fixture(scope='function')
def viewer(make_user, facility):
    return make_user(Role.VIEWER, facility)


def actor_for(user: User) -> Actor:
    """The Actor require_auth would build for this user."""
    return Actor(id=user.id, role=user.role, facility_id=user.facility_id)


@pytest.fixture(scope='function')
def as_actor():
    return actor_for


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: open a session for a user and return its Authorization headers."""
    def _headers(user):
        _, token = session_service.create_session(user.id)
        return auth_headers(token)

    return _headers
