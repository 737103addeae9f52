import uuid
from datetime import datetime, timezone
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Location, TrackedItem, Entry
from ..auth.security import get_current_actor, require_min_role
from ..schemas.locations import (
    LocationCreate,
    LocationResponse,
    LocationDetailResponse,
    TrackedItemCreate,
    TrackedItemUpdate,
    TrackedItemResponse,
    TrackedItemDetail,
    BaselineLockRequest,
    EntryCreate,
    EntryResponse,
    VarianceRequest,
    VarianceResponse,
)
from ..services.audit import create_audit_log, compute_diff
from ..services.authorization import Actor, Role, region_of
from ..services.hierarchy import check_location_access, get_assigned_location_ids, site_ids_in_region
from ..services.variance import Baseline, evaluate, evaluate_entry


router = APIRouter(tags=["locations"])
logger = structlog.get_logger(__name__)

BASELINE_FIELDS = ("baseline_input", "baseline_output")


def _item_snapshot(item: TrackedItem) -> dict:
    return {
        "name": item.name,
        "unit": item.unit,
        "sub_label": item.sub_label,
        "value_per_unit": item.value_per_unit,
        "baseline_input": item.baseline_input,
        "baseline_output": item.baseline_output,
        "tolerance_green": item.tolerance_green,
        "tolerance_yellow": item.tolerance_yellow,
        "baseline_locked": item.baseline_locked,
    }


def _audit_item(db: Session, actor: Actor, item: TrackedItem, action: str, old_row=None, new_row=None) -> None:
    create_audit_log(
        db,
        entity_type="tracked_item",
        entity_id=item.id,
        action=action,
        actor_id=actor.id,
        actor_role=actor.role.value,
        location_id=item.location_id,
        changes_json=compute_diff(old_row or {}, new_row or {}) if (old_row and new_row) else None,
        context={"old_row": old_row, "new_row": new_row},
        commit=False,
    )


def _get_location(location_id: uuid.UUID, db: Session) -> Location:
    loc = db.query(Location).filter(Location.id == location_id).first()
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    return loc


def _get_item(item_id: uuid.UUID, db: Session, actor: Actor, admin: bool = False) -> TrackedItem:
    item = db.query(TrackedItem).filter(TrackedItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Tracked item not found")
    check_location_access(actor, _get_location(item.location_id, db), db, admin=admin)
    return item


def _entry_response(item: TrackedItem, entry: Entry) -> EntryResponse:
    data = EntryResponse.model_validate(entry)
    data.variance = VarianceResponse(**evaluate_entry(item, entry).to_dict())
    return data


# ---------- LOCATIONS ----------
@router.get("/locations", response_model=List[LocationResponse])
def list_locations(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Active sites visible to the caller"""
    query = db.query(Location).filter(Location.kind == "site", Location.active.is_(True))
    if actor.role == Role.regional_admin:
        query = query.filter(Location.id.in_(site_ids_in_region(region_of(actor), db)))
    elif actor.role != Role.master_admin:
        allowed = set(get_assigned_location_ids(actor.id, db))
        if actor.location_id is not None:
            allowed.add(actor.location_id)
        query = query.filter(Location.id.in_(list(allowed)))
    return query.order_by(Location.name.asc()).all()


@router.post("/locations", response_model=LocationResponse)
def create_location(
    payload: LocationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_min_role(Role.master_admin)),
):
    loc = Location(name=payload.name, region_id=payload.region_id, kind="site", active=True)
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


@router.get("/locations/{location_id}", response_model=LocationDetailResponse)
def get_location_detail(
    location_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Tracked items with their entries and per-entry variance"""
    loc = _get_location(location_id, db)
    check_location_access(actor, loc, db)

    items = db.query(TrackedItem).filter(TrackedItem.location_id == loc.id).order_by(TrackedItem.created_at.desc()).all()
    details = []
    for item in items:
        detail = TrackedItemDetail.model_validate(item)
        detail.entries = [_entry_response(item, e) for e in item.entries]
        costs = [e.variance.waste_cost for e in detail.entries]
        if detail.entries and all(c is not None for c in costs):
            detail.total_waste_cost = sum(costs)
        details.append(detail)
    return LocationDetailResponse(location=LocationResponse.model_validate(loc), items=details)


# ---------- TRACKED ITEMS ----------
@router.post("/locations/{location_id}/items", response_model=TrackedItemResponse)
def create_tracked_item(
    location_id: uuid.UUID,
    payload: TrackedItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    loc = _get_location(location_id, db)
    check_location_access(actor, loc, db, admin=True)
    item = TrackedItem(
        location_id=loc.id,
        name=payload.name,
        unit=payload.unit,
        sub_label=payload.sub_label,
        value_per_unit=payload.value_per_unit,
        tolerance_green=settings.default_tolerance_green,
        tolerance_yellow=settings.default_tolerance_yellow,
        baseline_locked=False,
        created_by=actor.id,
    )
    db.add(item)
    db.flush()
    _audit_item(db, actor, item, "CREATE", new_row=_item_snapshot(item))
    db.commit()
    db.refresh(item)
    return item


@router.patch("/items/{item_id}", response_model=TrackedItemResponse)
def update_tracked_item(
    item_id: uuid.UUID,
    payload: TrackedItemUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = _get_item(item_id, db, actor, admin=True)
    update_data = payload.model_dump(exclude_unset=True)

    if item.baseline_locked:
        changed = [f for f in BASELINE_FIELDS if f in update_data and update_data[f] != getattr(item, f)]
        if changed:
            raise HTTPException(status_code=409, detail="Baseline is locked")

    green = update_data.get("tolerance_green", item.tolerance_green)
    yellow = update_data.get("tolerance_yellow", item.tolerance_yellow)
    if green is not None and yellow is not None and green > yellow:
        raise HTTPException(status_code=400, detail="tolerance_green must not exceed tolerance_yellow")

    for key in ("name", "unit"):
        if key in update_data and not (update_data[key] or "").strip():
            raise HTTPException(status_code=400, detail=f"{key} must not be blank")

    before = _item_snapshot(item)
    for key, value in update_data.items():
        setattr(item, key, value)
    item.updated_at = datetime.now(timezone.utc)
    _audit_item(db, actor, item, "UPDATE", old_row=before, new_row=_item_snapshot(item))
    db.commit()
    db.refresh(item)
    return item


@router.post("/items/{item_id}/lock-baseline", response_model=TrackedItemResponse)
def lock_baseline(
    item_id: uuid.UUID,
    payload: BaselineLockRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = _get_item(item_id, db, actor, admin=True)
    if item.baseline_locked:
        raise HTTPException(status_code=409, detail="Baseline is locked")

    before = _item_snapshot(item)
    if payload.baseline_input is not None:
        item.baseline_input = payload.baseline_input
    if payload.baseline_output is not None:
        item.baseline_output = payload.baseline_output
    if item.baseline_input is None or item.baseline_output is None or item.baseline_input == 0:
        raise HTTPException(status_code=400, detail="Baseline input and output are required to lock")

    item.baseline_locked = True
    item.updated_at = datetime.now(timezone.utc)
    _audit_item(db, actor, item, "LOCK_BASELINE", old_row=before, new_row=_item_snapshot(item))
    db.commit()
    db.refresh(item)
    logger.info("baseline_locked", item_id=str(item.id), actor_id=str(actor.id))
    return item


@router.delete("/items/{item_id}")
def delete_tracked_item(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = _get_item(item_id, db, actor, admin=True)
    _audit_item(db, actor, item, "DELETE", old_row=_item_snapshot(item))
    db.delete(item)
    db.commit()
    return {"ok": True}


# ---------- ENTRIES ----------
@router.get("/items/{item_id}/entries", response_model=List[EntryResponse])
def list_entries(
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = _get_item(item_id, db, actor)
    return [_entry_response(item, e) for e in item.entries]


@router.post("/items/{item_id}/entries", response_model=EntryResponse)
def add_entry(
    item_id: uuid.UUID,
    payload: EntryCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = _get_item(item_id, db, actor)
    if payload.period_start and payload.period_end and payload.period_end < payload.period_start:
        raise HTTPException(status_code=400, detail="period_end must not precede period_start")
    entry = Entry(
        tracked_item_id=item.id,
        input_used=payload.input_used,
        output_count=payload.output_count,
        period_label=(payload.period_label or "").strip() or None,
        period_start=payload.period_start,
        period_end=payload.period_end,
        entry_date=datetime.now(timezone.utc).date(),
        created_by=actor.id,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    result = _entry_response(item, entry)
    logger.info(
        "entry_added",
        item_id=str(item.id),
        classification=result.variance.classification,
        waste_cost=result.variance.waste_cost,
    )
    return result


@router.post("/variance/evaluate", response_model=VarianceResponse)
def evaluate_variance(
    payload: VarianceRequest,
    actor: Actor = Depends(get_current_actor),
):
    """Stateless preview of the variance classification"""
    baseline = Baseline(
        baseline_input=payload.baseline_input,
        baseline_output=payload.baseline_output,
        value_per_unit=payload.value_per_unit,
        tolerance_green=payload.tolerance_green,
        tolerance_yellow=payload.tolerance_yellow,
    )
    return VarianceResponse(**evaluate(baseline, payload.input_used, payload.output_count).to_dict())
