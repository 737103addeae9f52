import uuid
from datetime import datetime, timezone
from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Location
from ..auth.security import get_current_actor
from ..schemas.vehicles import (
    OperationalStatus,
    VehicleTypeResponse,
    VehicleUnitResponse,
    VehicleUnitCreate,
    VehicleStatusUpdate,
    VehicleStatusResponse,
)
from ..services.alerts import raise_vehicle_out_of_commission_alert
from ..services.audit import create_audit_log
from ..services.authorization import Actor, PolicyError, authorize_vehicle_status_change
from ..services.hierarchy import check_location_access, get_children, resolve_site


router = APIRouter(prefix="/vehicles", tags=["vehicles"])
logger = structlog.get_logger(__name__)


def _get_location_of_kind(location_id: uuid.UUID, kind: str, db: Session) -> Location:
    loc = db.query(Location).filter(Location.id == location_id, Location.kind == kind).first()
    if not loc:
        raise HTTPException(status_code=404, detail=f"{kind.replace('_', ' ').capitalize()} not found")
    return loc


def next_sequence_number(vehicle_type_id: uuid.UUID, db: Session) -> int:
    current = db.query(func.max(Location.sequence_number)).filter(
        Location.parent_id == vehicle_type_id,
        Location.kind == "vehicle_unit",
    ).scalar()
    return (current or 0) + 1


@router.get("/sites/{site_id}/types", response_model=List[VehicleTypeResponse])
def list_vehicle_types(
    site_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    site = _get_location_of_kind(site_id, "site", db)
    check_location_access(actor, site, db)
    return get_children(site.id, "vehicle_type", db)


@router.get("/types/{type_id}/units", response_model=List[VehicleUnitResponse])
def list_vehicle_units(
    type_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    vtype = _get_location_of_kind(type_id, "vehicle_type", db)
    check_location_access(actor, vtype, db)
    return get_children(vtype.id, "vehicle_unit", db)


@router.post("/units", response_model=VehicleUnitResponse)
def create_next_vehicle_unit(
    payload: VehicleUnitCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Create the next numbered unit of a vehicle type, creating the type on first use"""
    site = _get_location_of_kind(payload.site_id, "site", db)
    check_location_access(actor, site, db, admin=True)

    name = payload.vehicle_type_name
    vtype = db.query(Location).filter(
        Location.parent_id == site.id,
        Location.kind == "vehicle_type",
        func.lower(Location.name) == name.lower(),
    ).first()
    if vtype is None:
        vtype = Location(name=name, kind="vehicle_type", parent_id=site.id, active=True)
        db.add(vtype)
        db.flush()

    seq = next_sequence_number(vtype.id, db)
    unit = Location(
        name=f"{vtype.name} {seq}",
        kind="vehicle_unit",
        parent_id=vtype.id,
        sequence_number=seq,
        active=True,
        operational_status=OperationalStatus.in_service.value,
        status_changed_at=datetime.now(timezone.utc),
    )
    db.add(unit)
    db.commit()
    db.refresh(unit)
    logger.info("vehicle_unit_created", unit_id=str(unit.id), site_id=str(site.id))
    return unit


@router.post("/units/{unit_id}/status", response_model=VehicleStatusResponse)
def set_vehicle_unit_status(
    unit_id: uuid.UUID,
    payload: VehicleStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    unit = _get_location_of_kind(unit_id, "vehicle_unit", db)
    site = resolve_site(unit.id, db)
    try:
        authorize_vehicle_status_change(actor)
        check_location_access(actor, unit, db)
    except PolicyError as e:
        create_audit_log(
            db,
            entity_type="vehicle_unit",
            entity_id=unit.id,
            action="STATUS_CHANGE",
            actor_id=actor.id,
            actor_role=actor.role.value,
            location_id=site.id if site else None,
            ok=False,
            error=e.message,
            context={"requested_status": payload.status.value},
        )
        raise

    previous = unit.operational_status or OperationalStatus.in_service.value
    new_status = payload.status.value
    note = (payload.note or "").strip() or None

    unit.operational_status = new_status
    unit.status_note = note
    unit.status_changed_at = datetime.now(timezone.utc)

    alert = None
    if new_status == OperationalStatus.out_of_commission.value and previous != new_status:
        alert = raise_vehicle_out_of_commission_alert(db, unit, site, actor, note)

    create_audit_log(
        db,
        entity_type="vehicle_unit",
        entity_id=unit.id,
        action="STATUS_CHANGE",
        actor_id=actor.id,
        actor_role=actor.role.value,
        location_id=site.id if site else None,
        changes_json={"operational_status": {"before": previous, "after": new_status}},
        context={"note": note, "alert_id": str(alert.id) if alert else None},
        commit=False,
    )
    db.commit()
    db.refresh(unit)
    logger.info("vehicle_status_changed", unit_id=str(unit.id), before=previous, after=new_status)
    return VehicleStatusResponse(
        unit=VehicleUnitResponse.model_validate(unit),
        alert_id=alert.id if alert else None,
    )
