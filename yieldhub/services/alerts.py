"""
Alert store helpers.
"""
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import Alert, Location
from .authorization import Actor


logger = structlog.get_logger(__name__)


def raise_vehicle_out_of_commission_alert(
    db: Session,
    unit: Location,
    site: Optional[Location],
    actor: Actor,
    note: Optional[str] = None,
) -> Alert:
    """One open alert per transition into out_of_commission. Caller commits."""
    message = f"Vehicle {unit.name} is out of commission"
    if note:
        message = f"{message}: {note}"
    alert = Alert(
        severity="high",
        category="vehicle_status",
        status="open",
        message=message,
        metadata_json={
            "vehicle_unit_name": unit.name,
            "changed_by": str(actor.id),
            "note": note,
        },
        location_id=site.id if site else None,
        vehicle_unit_id=unit.id,
    )
    db.add(alert)
    db.flush()
    logger.info("alert_raised", alert_id=str(alert.id), vehicle_unit_id=str(unit.id))
    return alert


def acknowledge_alert(db: Session, alert: Alert, actor: Actor, note: Optional[str] = None) -> bool:
    """
    Move an alert from open to acknowledged.

    Returns False when the alert was already acknowledged; that case is a
    no-op and keeps the original acknowledger.
    """
    if alert.status == "acknowledged":
        return False
    alert.status = "acknowledged"
    alert.acknowledged_at = datetime.now(timezone.utc)
    alert.acknowledged_by = actor.id
    alert.acknowledged_note = (note or "").strip() or None
    db.flush()
    logger.info("alert_acknowledged", alert_id=str(alert.id), actor_id=str(actor.id))
    return True
