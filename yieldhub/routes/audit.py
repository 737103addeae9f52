import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_actor
from ..schemas.audit import AuditLogResponse
from ..services.audit import get_audit_logs
from ..services.authorization import Actor, authorize_audit_read


router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=List[AuditLogResponse])
def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[uuid.UUID] = Query(None),
    location_id: Optional[uuid.UUID] = Query(None),
    action: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Master admin only"""
    authorize_audit_read(actor)
    if action and action.upper() == "ALL":
        action = None
    return get_audit_logs(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        location_id=location_id,
        action=action,
        q=(q or "").strip() or None,
        limit=limit,
        offset=offset,
    )
