from __future__ import annotations

import uuid
from typing import List, Optional, Set
from sqlalchemy.orm import Session

from ..models.models import Location, LocationAssignment
from .authorization import Actor, authorize_location_access, authorize_location_admin


def _as_uuid(value) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_parent_chain(location_id, db: Session, max_depth: int = 8) -> List[Location]:
    """Return the location itself followed by its ancestors, nearest first."""
    lid = _as_uuid(location_id)
    if lid is None:
        return []
    chain: List[Location] = []
    visited: Set[str] = set()
    current = db.query(Location).filter(Location.id == lid).first()
    depth = 0
    while current is not None and depth <= max_depth:
        if str(current.id) in visited:
            break
        chain.append(current)
        visited.add(str(current.id))
        depth += 1
        if current.parent_id is None:
            break
        current = db.query(Location).filter(Location.id == current.parent_id).first()
    return chain


def resolve_region_id(location_id, db: Session) -> Optional[uuid.UUID]:
    """Effective region: the first region_id found walking up from the location."""
    for loc in get_parent_chain(location_id, db):
        if loc.region_id is not None:
            return loc.region_id
    return None


def resolve_site(location_id, db: Session) -> Optional[Location]:
    for loc in get_parent_chain(location_id, db):
        if loc.kind == "site":
            return loc
    return None


def get_children(parent_id, kind: str, db: Session, active_only: bool = True) -> List[Location]:
    pid = _as_uuid(parent_id)
    if pid is None:
        return []
    query = db.query(Location).filter(Location.parent_id == pid, Location.kind == kind)
    if active_only:
        query = query.filter(Location.active.is_(True))
    if kind == "vehicle_unit":
        return query.order_by(Location.sequence_number.asc()).all()
    return query.order_by(Location.name.asc()).all()


def site_ids_in_region(region_id, db: Session) -> List[uuid.UUID]:
    rid = _as_uuid(region_id)
    if rid is None:
        return []
    rows = db.query(Location.id).filter(Location.region_id == rid).all()
    return [r[0] for r in rows]


def get_assigned_location_ids(user_id, db: Session) -> List[uuid.UUID]:
    uid = _as_uuid(user_id)
    if uid is None:
        return []
    rows = db.query(LocationAssignment.location_id).filter(LocationAssignment.user_id == uid).all()
    return [r[0] for r in rows]


def check_location_access(actor: Actor, location: Location, db: Session, admin: bool = False) -> None:
    """Apply the location access rule to a stored location (any kind)."""
    site = resolve_site(location.id, db) or location
    check = authorize_location_admin if admin else authorize_location_access
    check(
        actor,
        site.id,
        resolve_region_id(location.id, db),
        get_assigned_location_ids(actor.id, db),
    )
