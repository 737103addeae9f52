"""
Role authorization policy.

Pure decisions over an already-resolved actor profile. Routers look up the
actor, the target and the locations involved, then ask this module whether the
action is allowed. Nothing here touches the database.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Set


class Role(str, Enum):
    employee = "employee"
    local_admin = "local_admin"
    regional_admin = "regional_admin"
    master_admin = "master_admin"


ROLE_RANK = {
    Role.employee: 0,
    Role.local_admin: 1,
    Role.regional_admin: 2,
    Role.master_admin: 3,
}

ADMIN_ROLES = frozenset({Role.local_admin, Role.regional_admin, Role.master_admin})


class PolicyError(Exception):
    """Base class for authorization failures. `status_code` is the HTTP mapping."""
    status_code = 403

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Forbidden(PolicyError):
    pass


class OutOfScope(Forbidden):
    """Actor holds the role but the target lies outside its location or region."""


class InvalidActorState(PolicyError):
    """Actor profile lacks the scope data its role requires."""
    status_code = 400


class InvalidTarget(PolicyError):
    """Request lacks a parameter the rule requires."""
    status_code = 400


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: Role
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class TargetUser:
    id: uuid.UUID
    role: Role
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class CreateUserDecision:
    role: Role
    location_id: Optional[uuid.UUID]
    region_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class UserScope:
    """Filter to apply to the user set. `kind` is one of location|region|all."""
    kind: str
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None


def parse_role(value) -> Role:
    """Closed-set conversion for role strings coming from stored profiles."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip())
    except ValueError:
        raise InvalidActorState(f"Unknown role: {value!r}")


def role_rank(role: Role) -> int:
    return ROLE_RANK[parse_role(role)]


def has_at_least(role: Role, minimum: Role) -> bool:
    return role_rank(role) >= role_rank(minimum)


def is_admin(actor: Actor) -> bool:
    return actor.role in ADMIN_ROLES


def _same(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


# ---------- USERS ----------
def authorize_create_user(
    actor: Actor,
    target_role: Role,
    target_location_id: Optional[uuid.UUID] = None,
    target_region_id: Optional[uuid.UUID] = None,
    location_region_id: Optional[uuid.UUID] = None,
) -> CreateUserDecision:
    """
    Decide whether `actor` may create a user with `target_role`.

    `location_region_id` is the resolved region of `target_location_id`; the
    caller looks it up (and rejects unknown locations) before calling.

    Returns the role/location/region the new profile should carry.
    """
    target_role = Role(target_role)
    if target_role == Role.master_admin:
        raise Forbidden("Creating master admin is not allowed in app. Assign master admin out of band.")
    if not is_admin(actor):
        raise Forbidden("Access denied")

    if actor.role == Role.local_admin:
        if target_role != Role.employee:
            raise Forbidden("Local admin can only create employees")
        if actor.location_id is None:
            raise InvalidActorState("Requester missing location_id")
        if not _same(target_location_id, actor.location_id):
            raise OutOfScope("Local admin must assign their own location")
        # Region always follows the location for local admins
        return CreateUserDecision(target_role, actor.location_id, location_region_id)

    if actor.role == Role.regional_admin:
        if target_role == Role.regional_admin:
            raise Forbidden("Regional admin cannot create regional admins")
        if actor.region_id is None:
            raise InvalidActorState("Requester missing region_id")
        if target_location_id is None:
            raise InvalidTarget("Location required for this role")
        if not _same(location_region_id, actor.region_id):
            raise OutOfScope("Location not in your region")
        return CreateUserDecision(target_role, target_location_id, target_region_id or location_region_id)

    # master_admin
    if target_role in (Role.employee, Role.local_admin) and target_location_id is None:
        raise InvalidTarget("Location required for employee or local admin")
    if target_role == Role.regional_admin and target_region_id is None:
        raise InvalidTarget("Region required for regional admin")
    return CreateUserDecision(target_role, target_location_id, target_region_id or location_region_id)


def authorize_deactivate_user(actor: Actor, target: TargetUser) -> None:
    if actor.role in (Role.employee, Role.local_admin):
        raise Forbidden("Only regional and master admins can deactivate users")
    if target.role == Role.master_admin:
        raise Forbidden("Master admin cannot be deactivated in app")
    if _same(target.id, actor.id):
        raise Forbidden("You cannot deactivate yourself")
    if actor.role == Role.regional_admin:
        if actor.region_id is None:
            raise InvalidActorState("Requester missing region_id")
        if not _same(target.region_id, actor.region_id):
            raise OutOfScope("User not in your region")


def user_scope_for(actor: Actor) -> UserScope:
    if actor.role == Role.master_admin:
        return UserScope(kind="all")
    if actor.role == Role.regional_admin:
        if actor.region_id is None:
            raise InvalidActorState("Requester missing region_id")
        return UserScope(kind="region", region_id=actor.region_id)
    if actor.role == Role.local_admin:
        if actor.location_id is None:
            raise InvalidActorState("Requester missing location_id")
        return UserScope(kind="location", location_id=actor.location_id)
    raise Forbidden("Access denied")


# ---------- ALERTS / VEHICLES / AUDIT ----------
def can_view_alerts(actor: Actor) -> bool:
    return has_at_least(actor.role, Role.regional_admin)


def authorize_alert_board(actor: Actor) -> None:
    if not can_view_alerts(actor):
        raise Forbidden("Alerts are visible to regional admin and master admin only")


def authorize_vehicle_status_change(actor: Actor) -> None:
    if not has_at_least(actor.role, Role.regional_admin):
        raise Forbidden("Only regional admin and master admin can change vehicle status")


def authorize_audit_read(actor: Actor) -> None:
    if actor.role != Role.master_admin:
        raise Forbidden("Audit log is restricted to master admin")


# ---------- LOCATIONS ----------
def authorize_location_access(
    actor: Actor,
    location_id: uuid.UUID,
    location_region_id: Optional[uuid.UUID],
    assigned_location_ids: Iterable[uuid.UUID] = (),
) -> None:
    """Read/write access to data owned by a location (tracked items, entries, vehicles, training)."""
    if actor.role == Role.master_admin:
        return
    if actor.role == Role.regional_admin:
        if _same(location_region_id, region_of(actor)):
            return
        raise OutOfScope("Location not in your region")
    allowed: Set[str] = {str(x) for x in assigned_location_ids}
    if actor.location_id is not None:
        allowed.add(str(actor.location_id))
    if str(location_id) in allowed:
        return
    raise OutOfScope("Location not assigned to you")


def authorize_location_admin(
    actor: Actor,
    location_id: uuid.UUID,
    location_region_id: Optional[uuid.UUID],
    assigned_location_ids: Iterable[uuid.UUID] = (),
) -> None:
    """Configuration changes (items, baselines, calibration, training) need an admin with access."""
    if not is_admin(actor):
        raise Forbidden("Admin role required")
    authorize_location_access(actor, location_id, location_region_id, assigned_location_ids)


def region_of(actor: Actor) -> uuid.UUID:
    """Region a regional admin is bound to."""
    if actor.region_id is None:
        raise InvalidActorState("Requester missing region_id")
    return actor.region_id


# ---------- TRAINING ----------
def authorize_training_assignee(
    location_id: uuid.UUID,
    employee_location_id: Optional[uuid.UUID],
    employee_assigned_location_ids: Iterable[uuid.UUID] = (),
) -> None:
    """A session can only be booked for someone who works at its location."""
    allowed: Set[str] = {str(x) for x in employee_assigned_location_ids}
    if employee_location_id is not None:
        allowed.add(str(employee_location_id))
    if str(location_id) not in allowed:
        raise OutOfScope("Employee not assigned to this location")
