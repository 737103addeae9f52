import uuid
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User, Profile, Location, LocationAssignment
from ..auth.security import get_current_actor, get_password_hash
from ..schemas.users import UserCreate, UserCreatedResponse, UserRow, UserListResponse
from ..services.audit import create_audit_log
from ..services.authorization import (
    Actor,
    PolicyError,
    TargetUser,
    authorize_create_user,
    authorize_deactivate_user,
    parse_role,
    user_scope_for,
)
from ..services.hierarchy import resolve_region_id, site_ids_in_region


router = APIRouter(prefix="/users", tags=["users"])
logger = structlog.get_logger(__name__)


def _audit_denied(db: Session, actor: Actor, action: str, entity_id, err: PolicyError, context: dict) -> None:
    logger.info("authorization_denied", action=action, actor_id=str(actor.id), reason=err.message)
    create_audit_log(
        db,
        entity_type="user",
        entity_id=entity_id,
        action=action,
        actor_id=actor.id,
        actor_role=actor.role.value,
        ok=False,
        error=err.message,
        context=context,
    )


@router.get("", response_model=UserListResponse)
def list_users(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Active users inside the caller's scope, newest first"""
    scope = user_scope_for(actor)

    query = db.query(User, Profile).join(Profile, Profile.user_id == User.id).filter(User.is_active.is_(True))
    if scope.kind == "location":
        query = query.filter(Profile.location_id == scope.location_id)
    elif scope.kind == "region":
        # Users may be scoped by location without a direct region stamp
        loc_ids = site_ids_in_region(scope.region_id, db)
        if loc_ids:
            query = query.filter(or_(Profile.region_id == scope.region_id, Profile.location_id.in_(loc_ids)))
        else:
            query = query.filter(Profile.region_id == scope.region_id)

    rows = query.order_by(User.created_at.desc()).limit(500).all()
    return UserListResponse(rows=[
        UserRow(
            id=u.id,
            email=u.email,
            display_name=u.display_name,
            role=parse_role(p.role),
            location_id=p.location_id,
            region_id=p.region_id,
            created_at=u.created_at,
        )
        for u, p in rows
    ])


@router.post("", response_model=UserCreatedResponse)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if len(payload.password) < settings.min_password_length:
        raise HTTPException(status_code=400, detail=f"Password required, {settings.min_password_length} chars minimum")

    location_region_id = None
    if payload.location_id is not None:
        loc = db.query(Location).filter(Location.id == payload.location_id).first()
        if not loc:
            raise HTTPException(status_code=400, detail="Location not found")
        location_region_id = resolve_region_id(loc.id, db)

    context = {"email": payload.email, "role": payload.role.value}
    try:
        decision = authorize_create_user(
            actor,
            payload.role,
            target_location_id=payload.location_id,
            target_region_id=payload.region_id,
            location_region_id=location_region_id,
        )
    except PolicyError as e:
        _audit_denied(db, actor, "CREATE", None, e, context)
        raise

    if db.query(User).filter(User.email == payload.email).first():
        raise HTTPException(status_code=400, detail="A user with this email already exists")

    user = User(
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        display_name=(payload.display_name or "").strip() or None,
        created_by=actor.id,
    )
    db.add(user)
    db.flush()
    db.add(Profile(
        user_id=user.id,
        role=decision.role.value,
        location_id=decision.location_id,
        region_id=decision.region_id,
    ))
    if decision.location_id is not None:
        db.add(LocationAssignment(user_id=user.id, location_id=decision.location_id))
    create_audit_log(
        db,
        entity_type="user",
        entity_id=user.id,
        action="CREATE",
        actor_id=actor.id,
        actor_role=actor.role.value,
        location_id=decision.location_id,
        context=dict(context, region_id=str(decision.region_id) if decision.region_id else None),
        commit=False,
    )
    db.commit()
    logger.info("user_created", user_id=str(user.id), role=decision.role.value, actor_id=str(actor.id))
    return UserCreatedResponse(id=user.id)


@router.delete("/{user_id}")
def deactivate_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Soft delete: the user becomes inactive and loses its location assignments"""
    user = db.query(User).filter(User.id == user_id).first()
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not user or not profile:
        raise HTTPException(status_code=404, detail="User not found")

    target = TargetUser(
        id=user.id,
        role=parse_role(profile.role),
        location_id=profile.location_id,
        region_id=profile.region_id or (resolve_region_id(profile.location_id, db) if profile.location_id else None),
    )
    try:
        authorize_deactivate_user(actor, target)
    except PolicyError as e:
        _audit_denied(db, actor, "DEACTIVATE", user.id, e, {"target_role": target.role.value})
        raise

    user.is_active = False
    user.deactivated_at = datetime.now(timezone.utc)
    removed = db.query(LocationAssignment).filter(LocationAssignment.user_id == user.id).delete(synchronize_session=False)
    create_audit_log(
        db,
        entity_type="user",
        entity_id=user.id,
        action="DEACTIVATE",
        actor_id=actor.id,
        actor_role=actor.role.value,
        location_id=profile.location_id,
        context={"target_role": target.role.value, "assignments_removed": removed},
        commit=False,
    )
    db.commit()
    logger.info("user_deactivated", user_id=str(user.id), actor_id=str(actor.id))
    return {"ok": True}
