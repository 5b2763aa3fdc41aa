from __future__ import annotations

import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from shiftroster.database import (
    Location,
    Organization,
    OrgStaff,
    User,
    build_session_factory,
    init_database,
)

UTC = datetime.timezone.utc


@pytest.fixture()
def memory_db():
    """Single in-memory engine shared by every session the test opens."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_database(engine)
    Session = build_session_factory(engine)
    session = Session()
    try:
        yield {"engine": engine, "session_factory": Session, "session": session}
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def org(memory_db):
    """One organization with an admin and two staff, plus an outsider in another organization."""
    session = memory_db["session"]
    organization = Organization(name="Harbor Clinic")
    other = Organization(name="Hillside Bakery")
    session.add_all([organization, other])
    session.flush()

    location = Location(
        organization_id=organization.id,
        name="Front Desk",
        address="1 Harbor Way",
        description="Reception",
    )
    foreign_location = Location(organization_id=other.id, name="Ovens", address="9 Hill Rd")
    admin_user = User(first_name="Ada", last_name="Admin", email="ada@example.com")
    staff_user = User(first_name="Sam", last_name="Staff", email="sam@example.com")
    second_user = User(first_name="Riley", last_name="Reed", email="riley@example.com")
    outsider_user = User(first_name="Olive", last_name="Out", email="olive@example.com")
    session.add_all([location, foreign_location, admin_user, staff_user, second_user, outsider_user])
    session.flush()

    admin = OrgStaff(
        organization_id=organization.id,
        user_id=admin_user.id,
        title="Manager",
        admin_assigned_at=datetime.datetime(2024, 1, 1, tzinfo=UTC),
    )
    staff = OrgStaff(organization_id=organization.id, user_id=staff_user.id, title="Nurse")
    second = OrgStaff(organization_id=organization.id, user_id=second_user.id, title="Porter")
    outsider = OrgStaff(organization_id=other.id, user_id=outsider_user.id, title="Baker")
    session.add_all([admin, staff, second, outsider])
    session.commit()

    return SimpleNamespace(
        organization=organization,
        other=other,
        location=location,
        foreign_location=foreign_location,
        admin_user=admin_user,
        staff_user=staff_user,
        second_user=second_user,
        outsider_user=outsider_user,
        admin=admin,
        staff=staff,
        second=second,
        outsider=outsider,
    )
