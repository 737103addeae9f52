"""
Seed the local database with a demo organisation: two regions, three sites,
one user per role, a few tracked items with entries and a vehicle fleet.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (name for regions/sites, email for users).
Master admins are only ever provisioned here, never through the API.
"""

from datetime import datetime, timezone

from yieldhub.db import SessionLocal, Base, engine
from yieldhub.models.models import (
    Region,
    Location,
    User,
    Profile,
    LocationAssignment,
    TrackedItem,
    Entry,
    CalibrationStandard,
)
from yieldhub.auth.security import get_password_hash


DEMO_PASSWORD = "YieldDemo123!"


def ensure_region(session, name: str) -> Region:
    region = session.query(Region).filter(Region.name == name).first()
    if region:
        return region
    region = Region(name=name)
    session.add(region)
    session.flush()
    return region


def ensure_location(session, name: str, kind: str = "site", region: Region | None = None, parent: Location | None = None, **kwargs) -> Location:
    query = session.query(Location).filter(Location.name == name, Location.kind == kind)
    if parent is not None:
        query = query.filter(Location.parent_id == parent.id)
    loc = query.first()
    if loc:
        return loc
    loc = Location(
        name=name,
        kind=kind,
        region_id=region.id if region else None,
        parent_id=parent.id if parent else None,
        active=True,
        **{k: v for k, v in kwargs.items() if hasattr(Location, k)}
    )
    session.add(loc)
    session.flush()
    return loc


def ensure_user(session, email: str, role: str, location: Location | None = None, region: Region | None = None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if not user:
        user = User(
            email=email,
            password_hash=get_password_hash(DEMO_PASSWORD),
            display_name=email.split("@")[0].replace(".", " ").title(),
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )
        session.add(user)
        session.flush()

    profile = session.query(Profile).filter(Profile.user_id == user.id).first()
    if not profile:
        profile = Profile(user_id=user.id)
        session.add(profile)
    profile.role = role
    profile.location_id = location.id if location else None
    profile.region_id = region.id if region else None
    session.flush()

    if location is not None:
        exists = session.query(LocationAssignment).filter(
            LocationAssignment.user_id == user.id,
            LocationAssignment.location_id == location.id,
        ).first()
        if not exists:
            session.add(LocationAssignment(user_id=user.id, location_id=location.id))
            session.flush()
    return user


def ensure_item(session, location: Location, name: str, unit: str, **kwargs) -> TrackedItem:
    item = session.query(TrackedItem).filter(TrackedItem.location_id == location.id, TrackedItem.name == name).first()
    if item:
        return item
    item = TrackedItem(location_id=location.id, name=name, unit=unit, **kwargs)
    session.add(item)
    session.flush()
    return item


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        north = ensure_region(session, "North")
        south = ensure_region(session, "South")
        alpha = ensure_location(session, "Alpha Bakery", region=north)
        ensure_location(session, "Bravo Bakery", region=north)
        charlie = ensure_location(session, "Charlie Bakery", region=south)

        master = ensure_user(session, "master@example.com", "master_admin")
        ensure_user(session, "regional.north@example.com", "regional_admin", region=north)
        ensure_user(session, "regional.south@example.com", "regional_admin", region=south)
        ensure_user(session, "local.alpha@example.com", "local_admin", location=alpha, region=north)
        employee = ensure_user(session, "employee.alpha@example.com", "employee", location=alpha, region=north)
        ensure_user(session, "employee.charlie@example.com", "employee", location=charlie, region=south)

        flour = ensure_item(
            session, alpha, "Flour", "kg",
            sub_label="Bread line",
            value_per_unit=1.2,
            baseline_input=10,
            baseline_output=100,
            baseline_locked=True,
            created_by=master.id,
        )
        ensure_item(session, alpha, "Sugar", "kg", value_per_unit=0.9, created_by=master.id)
        if not flour.entries:
            for label, used, out in (("Week 1", 10, 100), ("Week 2", 10, 95), ("Week 3", 10, 90)):
                session.add(Entry(
                    tracked_item_id=flour.id,
                    input_used=used,
                    output_count=out,
                    period_label=label,
                    entry_date=datetime.now(timezone.utc).date(),
                    created_by=employee.id,
                ))
        if not session.query(CalibrationStandard).filter(CalibrationStandard.tracked_item_id == flour.id).first():
            session.add(CalibrationStandard(
                location_id=alpha.id,
                tracked_item_id=flour.id,
                target_value=500,
                min_value=490,
                max_value=510,
                unit="g",
                updated_by=master.id,
            ))

        forklift = ensure_location(session, "Forklift", kind="vehicle_type", parent=alpha)
        for n in (1, 2):
            ensure_location(
                session, f"Forklift {n}", kind="vehicle_unit", parent=forklift,
                sequence_number=n,
                operational_status="in_service",
                status_changed_at=datetime.now(timezone.utc),
            )

        session.commit()
        print("Seed complete. Demo password for every user:", DEMO_PASSWORD)
    except Exception as e:
        session.rollback()
        raise e
    finally:
        session.close()


if __name__ == "__main__":
    main()
