import uuid
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import CalibrationStandard, Location, TrackedItem
from ..auth.security import get_current_actor
from ..schemas.calibration import (
    CalibrationStandardCreate,
    CalibrationStandardUpdate,
    CalibrationStandardResponse,
)
from ..services.authorization import Actor
from ..services.hierarchy import check_location_access


router = APIRouter(prefix="/calibration", tags=["calibration"])


def _get_standard(standard_id: uuid.UUID, db: Session, actor: Actor, admin: bool = False) -> CalibrationStandard:
    std = db.query(CalibrationStandard).filter(CalibrationStandard.id == standard_id).first()
    if not std:
        raise HTTPException(status_code=404, detail="Calibration standard not found")
    loc = db.query(Location).filter(Location.id == std.location_id).first()
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    check_location_access(actor, loc, db, admin=admin)
    return std


@router.get("", response_model=List[CalibrationStandardResponse])
def list_standards(
    location_id: uuid.UUID = Query(...),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    loc = db.query(Location).filter(Location.id == location_id).first()
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    check_location_access(actor, loc, db)
    query = db.query(CalibrationStandard).filter(CalibrationStandard.location_id == loc.id)
    if active_only:
        query = query.filter(CalibrationStandard.active.is_(True))
    return query.order_by(CalibrationStandard.updated_at.desc()).all()


@router.post("", response_model=CalibrationStandardResponse)
def create_standard(
    payload: CalibrationStandardCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = db.query(TrackedItem).filter(TrackedItem.id == payload.tracked_item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Tracked item not found")
    loc = db.query(Location).filter(Location.id == item.location_id).first()
    check_location_access(actor, loc, db, admin=True)

    std = CalibrationStandard(
        location_id=item.location_id,
        tracked_item_id=item.id,
        target_value=payload.target_value,
        min_value=payload.min_value,
        max_value=payload.max_value,
        unit=(payload.unit or "").strip() or item.unit,
        active=payload.active,
        updated_by=actor.id,
        updated_at=datetime.now(timezone.utc),
    )
    db.add(std)
    db.commit()
    db.refresh(std)
    return std


@router.get("/{standard_id}", response_model=CalibrationStandardResponse)
def get_standard(
    standard_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return _get_standard(standard_id, db, actor)


@router.patch("/{standard_id}", response_model=CalibrationStandardResponse)
def update_standard(
    standard_id: uuid.UUID,
    payload: CalibrationStandardUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    std = _get_standard(standard_id, db, actor, admin=True)
    update_data = payload.model_dump(exclude_unset=True)

    target = update_data.get("target_value", std.target_value)
    low = update_data.get("min_value", std.min_value)
    high = update_data.get("max_value", std.max_value)
    if None in (target, low, high) or not (low <= target <= high):
        raise HTTPException(status_code=400, detail="Expected min_value <= target_value <= max_value")
    if "unit" in update_data and not (update_data["unit"] or "").strip():
        raise HTTPException(status_code=400, detail="unit must not be blank")

    for key, value in update_data.items():
        setattr(std, key, value)
    std.updated_by = actor.id
    std.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(std)
    return std
