import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import (
    CalibrationStandard,
    Location,
    Profile,
    TrackedItem,
    TrainingCompletion,
    TrainingSession,
    TrainingSessionItem,
    User,
)
from ..auth.security import get_current_actor
from ..schemas.training import (
    TrainingSessionCreate,
    TrainingSessionUpdate,
    TrainingSessionResponse,
    TrainingSessionItemCreate,
    TrainingSessionItemResponse,
    TrainingCompleteRequest,
    TrainingCompletionResponse,
    TrainingStatus,
)
from ..services.authorization import (
    Actor,
    Role,
    Forbidden,
    authorize_training_assignee,
    is_admin,
    region_of,
)
from ..services.calibration import grade_readings, standards_by_item
from ..services.hierarchy import check_location_access, get_assigned_location_ids, site_ids_in_region


router = APIRouter(prefix="/training", tags=["training"])
logger = structlog.get_logger(__name__)


def _get_location(location_id: uuid.UUID, db: Session) -> Location:
    loc = db.query(Location).filter(Location.id == location_id).first()
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    return loc


def _get_session(session_id: uuid.UUID, db: Session, actor: Actor, admin: bool = False) -> TrainingSession:
    session = db.query(TrainingSession).filter(TrainingSession.id == session_id).first()
    if not session:
        raise HTTPException(status_code=404, detail="Training session not found")
    if not admin and str(session.employee_id) == str(actor.id):
        return session
    check_location_access(actor, _get_location(session.location_id, db), db, admin=True)
    return session


def _utc_naive(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _ensure_item_at_location(tracked_item_id: uuid.UUID, location_id: uuid.UUID, db: Session) -> TrackedItem:
    item = db.query(TrackedItem).filter(TrackedItem.id == tracked_item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Tracked item not found")
    if str(item.location_id) != str(location_id):
        raise HTTPException(status_code=400, detail="Tracked item belongs to another location")
    return item


@router.get("/sessions", response_model=List[TrainingSessionResponse])
def list_sessions(
    location_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Admins see sessions at locations they can manage; employees see their own"""
    query = db.query(TrainingSession)
    if location_id is not None:
        loc = _get_location(location_id, db)
        if is_admin(actor):
            check_location_access(actor, loc, db, admin=True)
        query = query.filter(TrainingSession.location_id == loc.id)

    if not is_admin(actor):
        query = query.filter(TrainingSession.employee_id == actor.id)
    elif location_id is None and actor.role != Role.master_admin:
        if actor.role == Role.regional_admin:
            allowed = site_ids_in_region(region_of(actor), db)
        else:
            allowed = set(get_assigned_location_ids(actor.id, db))
            if actor.location_id is not None:
                allowed.add(actor.location_id)
            allowed = list(allowed)
        query = query.filter(TrainingSession.location_id.in_(allowed))

    return query.order_by(TrainingSession.starts_at.desc()).limit(500).all()


@router.post("/sessions", response_model=TrainingSessionResponse)
def create_session(
    payload: TrainingSessionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    loc = _get_location(payload.location_id, db)
    check_location_access(actor, loc, db, admin=True)

    employee = db.query(User).filter(User.id == payload.employee_id, User.is_active.is_(True)).first()
    profile = db.query(Profile).filter(Profile.user_id == employee.id).first() if employee else None
    if not profile:
        raise HTTPException(status_code=400, detail="Employee not found")
    authorize_training_assignee(loc.id, profile.location_id, get_assigned_location_ids(employee.id, db))

    session = TrainingSession(
        location_id=loc.id,
        employee_id=employee.id,
        assigned_by=actor.id,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        status=TrainingStatus.scheduled.value,
    )
    db.add(session)
    db.flush()
    for tracked_id in dict.fromkeys(payload.tracked_item_ids):
        _ensure_item_at_location(tracked_id, loc.id, db)
        db.add(TrainingSessionItem(training_session_id=session.id, tracked_item_id=tracked_id))
    db.commit()
    db.refresh(session)
    logger.info("training_session_created", session_id=str(session.id), employee_id=str(employee.id))
    return session


@router.get("/sessions/{session_id}", response_model=TrainingSessionResponse)
def get_session(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return _get_session(session_id, db, actor)


@router.patch("/sessions/{session_id}", response_model=TrainingSessionResponse)
def update_session(
    session_id: uuid.UUID,
    payload: TrainingSessionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    session = _get_session(session_id, db, actor, admin=True)
    update_data = payload.model_dump(exclude_unset=True)
    starts_at = update_data.get("starts_at", session.starts_at)
    ends_at = update_data.get("ends_at", session.ends_at)
    if starts_at and ends_at and _utc_naive(ends_at) <= _utc_naive(starts_at):
        raise HTTPException(status_code=400, detail="ends_at must be after starts_at")
    for key, value in update_data.items():
        setattr(session, key, value.value if isinstance(value, TrainingStatus) else value)
    db.commit()
    db.refresh(session)
    return session


@router.delete("/sessions/{session_id}")
def delete_session(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    session = _get_session(session_id, db, actor, admin=True)
    db.delete(session)
    db.commit()
    return {"ok": True}


@router.post("/sessions/{session_id}/items", response_model=TrainingSessionItemResponse)
def add_session_item(
    session_id: uuid.UUID,
    payload: TrainingSessionItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    session = _get_session(session_id, db, actor, admin=True)
    _ensure_item_at_location(payload.tracked_item_id, session.location_id, db)
    existing = db.query(TrainingSessionItem).filter(
        TrainingSessionItem.training_session_id == session.id,
        TrainingSessionItem.tracked_item_id == payload.tracked_item_id,
    ).first()
    if existing:
        return existing
    row = TrainingSessionItem(training_session_id=session.id, tracked_item_id=payload.tracked_item_id)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.delete("/sessions/{session_id}/items/{item_id}")
def remove_session_item(
    session_id: uuid.UUID,
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    session = _get_session(session_id, db, actor, admin=True)
    row = db.query(TrainingSessionItem).filter(
        TrainingSessionItem.id == item_id,
        TrainingSessionItem.training_session_id == session.id,
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="Session item not found")
    db.delete(row)
    db.commit()
    return {"ok": True}


@router.post("/sessions/{session_id}/complete", response_model=TrainingCompletionResponse)
def complete_session(
    session_id: uuid.UUID,
    payload: TrainingCompleteRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """The assigned employee submits one reading per session item; each gets calibration feedback"""
    session = db.query(TrainingSession).filter(TrainingSession.id == session_id).first()
    if not session:
        raise HTTPException(status_code=404, detail="Training session not found")
    if str(session.employee_id) != str(actor.id):
        raise Forbidden("Only the assigned employee can complete this training")
    if session.status != TrainingStatus.scheduled.value:
        raise HTTPException(status_code=409, detail=f"Training session is {session.status}")

    session_item_ids = {str(i.tracked_item_id) for i in session.items}
    for r in payload.readings:
        if str(r.tracked_item_id) not in session_item_ids:
            raise HTTPException(status_code=400, detail="Reading for an item not in this session")

    standards = standards_by_item(
        db.query(CalibrationStandard).filter(CalibrationStandard.location_id == session.location_id).all()
    )
    graded = grade_readings(
        [{"tracked_item_id": str(r.tracked_item_id), "value": r.value} for r in payload.readings],
        standards,
    )
    completion = TrainingCompletion(
        training_session_id=session.id,
        employee_id=actor.id,
        completed_at=datetime.now(timezone.utc),
        readings=graded,
    )
    session.status = TrainingStatus.completed.value
    db.add(completion)
    db.commit()
    db.refresh(completion)
    logger.info("training_completed", session_id=str(session.id), employee_id=str(actor.id))
    return completion
