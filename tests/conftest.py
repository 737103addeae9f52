"""
Pytest configuration and fixtures for Yield Hub tests.

Provides an in-memory database, an API client with `get_db` overridden, a small
organisation (two regions, three sites, one user per role) and bearer headers.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-for-yieldhub-tests-0123456789")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from yieldhub.main import app
from yieldhub.db import Base, get_db
from yieldhub.auth.security import create_access_token, get_password_hash
from yieldhub.models.models import Region, Location, User, Profile, LocationAssignment, TrackedItem


SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PASSWORD = "correct-horse-1"


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email, role, location=None, region=None, password=PASSWORD, with_profile=True):
    user = User(email=email, password_hash=get_password_hash(password), display_name=email.split("@")[0])
    db.add(user)
    db.flush()
    if with_profile:
        db.add(Profile(
            user_id=user.id,
            role=role,
            location_id=location.id if location is not None else None,
            region_id=region.id if region is not None else None,
        ))
        if location is not None:
            db.add(LocationAssignment(user_id=user.id, location_id=location.id))
    db.commit()
    db.refresh(user)
    return user


def make_item(db, location, baseline_input=10.0, baseline_output=100.0, value_per_unit=2.0, locked=False, name="Flour"):
    item = TrackedItem(
        location_id=location.id,
        name=name,
        unit="kg",
        value_per_unit=value_per_unit,
        baseline_input=baseline_input,
        baseline_output=baseline_output,
        tolerance_green=0.03,
        tolerance_yellow=0.06,
        baseline_locked=locked,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def org(db_session):
    """
    Region North holds sites Alpha and Bravo, region South holds Charlie.
    One user per role; admins below master are scoped to North / Alpha.
    """
    db = db_session
    north = Region(name="North")
    south = Region(name="South")
    db.add_all([north, south])
    db.flush()
    alpha = Location(name="Alpha", kind="site", region_id=north.id, active=True)
    bravo = Location(name="Bravo", kind="site", region_id=north.id, active=True)
    charlie = Location(name="Charlie", kind="site", region_id=south.id, active=True)
    db.add_all([alpha, bravo, charlie])
    db.commit()

    return SimpleNamespace(
        north=north,
        south=south,
        alpha=alpha,
        bravo=bravo,
        charlie=charlie,
        master=make_user(db, "master@example.com", "master_admin"),
        regional=make_user(db, "regional@example.com", "regional_admin", region=north),
        regional_south=make_user(db, "regional.south@example.com", "regional_admin", region=south),
        local=make_user(db, "local@example.com", "local_admin", location=alpha, region=north),
        employee=make_user(db, "employee@example.com", "employee", location=alpha, region=north),
        employee_charlie=make_user(db, "employee.charlie@example.com", "employee", location=charlie, region=south),
    )


@pytest.fixture
def headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
