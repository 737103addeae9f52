import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Alert
from ..auth.security import get_current_actor
from ..schemas.alerts import AlertStatus, AlertResponse, AlertBoardResponse, AcknowledgeRequest
from ..services.alerts import acknowledge_alert
from ..services.audit import create_audit_log
from ..services.authorization import Actor, PolicyError, authorize_alert_board, can_view_alerts


router = APIRouter(prefix="/alerts", tags=["alerts"])


def _matches(alert: Alert, needle: str) -> bool:
    haystack = (alert.message, alert.category, alert.severity, str(alert.id))
    return any(needle in (h or "").lower() for h in haystack)


@router.get("", response_model=AlertBoardResponse)
def get_alert_board(
    status: AlertStatus = Query(AlertStatus.open),
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Alert board. Roles below regional admin get an empty placeholder board."""
    if not can_view_alerts(actor):
        return AlertBoardResponse(
            visible=False,
            message="Alerts are visible to regional admin and master admin only",
        )

    query = db.query(Alert).filter(Alert.status == status.value)
    if category and category.strip():
        query = query.filter(Alert.category == category.strip())
    rows = query.order_by(Alert.created_at.desc()).limit(settings.alert_board_limit).all()

    needle = (q or "").strip().lower()
    if needle:
        rows = [a for a in rows if _matches(a, needle)]

    return AlertBoardResponse(
        visible=True,
        categories=sorted({a.category for a in rows if a.category}),
        rows=[AlertResponse.model_validate(a) for a in rows],
    )


@router.post("/{alert_id}/acknowledge", response_model=AlertResponse)
def acknowledge(
    alert_id: uuid.UUID,
    payload: Optional[AcknowledgeRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    alert = db.query(Alert).filter(Alert.id == alert_id).first()
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    note = payload.note if payload else None
    try:
        authorize_alert_board(actor)
    except PolicyError as e:
        create_audit_log(
            db,
            entity_type="alert",
            entity_id=alert.id,
            action="ACKNOWLEDGE",
            actor_id=actor.id,
            actor_role=actor.role.value,
            location_id=alert.location_id,
            ok=False,
            error=e.message,
        )
        raise

    changed = acknowledge_alert(db, alert, actor, note)
    if changed:
        create_audit_log(
            db,
            entity_type="alert",
            entity_id=alert.id,
            action="ACKNOWLEDGE",
            actor_id=actor.id,
            actor_role=actor.role.value,
            location_id=alert.location_id,
            context={"note": alert.acknowledged_note},
            commit=False,
        )
    db.commit()
    db.refresh(alert)
    return alert
