"""
Audit logging service.
Append-only audit log with integrity hashing.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy import or_, String, cast
from sqlalchemy.orm import Session

from ..models.models import AuditLog
from ..config import settings


def _integrity_hash(canonical_data: Dict[str, Any], secret: str) -> str:
    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    hash_input = f"{canonical_json}:{secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    action: str,
    actor_id=None,
    actor_role: Optional[str] = None,
    location_id=None,
    ok: bool = True,
    error: Optional[str] = None,
    changes_json: Optional[Dict] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    """
    Create an append-only audit log entry.

    Args:
        db: Database session
        entity_type: Type of entity (user|tracked_item|vehicle_unit|alert)
        entity_id: Entity ID (may be None for a denied create)
        action: Action performed (CREATE|UPDATE|DELETE|DEACTIVATE|LOCK_BASELINE|STATUS_CHANGE|ACKNOWLEDGE)
        actor_id: User ID who performed the action
        actor_role: Role of the actor
        location_id: Location the entity belongs to, for filtering
        ok: Whether the action succeeded
        error: Denial or failure message when ok is False
        changes_json: Before/after diff
        context: Additional metadata (old_row, new_row, note, requested role)
        integrity_secret: Secret for integrity hash (defaults to JWT_SECRET)
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        Created AuditLog object
    """
    timestamp_utc = datetime.utcnow().replace(tzinfo=None)

    if integrity_secret is None:
        integrity_secret = settings.jwt_secret

    integrity_hash = None
    if integrity_secret:
        integrity_hash = _integrity_hash(
            {
                "entity_type": entity_type,
                "entity_id": str(entity_id) if entity_id else None,
                "action": action,
                "actor_id": str(actor_id) if actor_id else None,
                "actor_role": actor_role,
                "ok": ok,
                "error": error,
                "timestamp_utc": timestamp_utc.isoformat(),
                "changes": changes_json,
                "context": context,
            },
            integrity_secret,
        )

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        actor_role=actor_role,
        location_id=location_id,
        ok=ok,
        error=error,
        changes_json=changes_json,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=integrity_hash,
    )

    db.add(audit_log)
    if commit:
        db.commit()
        db.refresh(audit_log)
    else:
        db.flush()

    return audit_log


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    location_id=None,
    action: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[AuditLog]:
    """
    Get audit logs with optional filtering, newest first.

    Args:
        db: Database session
        entity_type: Filter by entity type
        entity_id: Filter by entity ID
        location_id: Filter by owning location
        action: Filter by action (case-insensitive)
        q: Free text matched against action, entity type and error
        limit: Maximum number of results
        offset: Offset for pagination
    """
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if location_id:
        query = query.filter(AuditLog.location_id == location_id)
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                AuditLog.action.ilike(like),
                AuditLog.entity_type.ilike(like),
                AuditLog.error.ilike(like),
                cast(AuditLog.entity_id, String).ilike(like),
            )
        )

    query = query.order_by(AuditLog.timestamp_utc.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def verify_integrity(log: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    """Recompute the hash of a stored row and compare it with the recorded one."""
    secret = integrity_secret if integrity_secret is not None else settings.jwt_secret
    if not log.integrity_hash or not secret:
        return False
    ts = log.timestamp_utc.replace(tzinfo=None) if log.timestamp_utc else None
    expected = _integrity_hash(
        {
            "entity_type": log.entity_type,
            "entity_id": str(log.entity_id) if log.entity_id else None,
            "action": log.action,
            "actor_id": str(log.actor_id) if log.actor_id else None,
            "actor_role": log.actor_role,
            "ok": log.ok,
            "error": log.error,
            "timestamp_utc": ts.isoformat() if ts else None,
            "changes": log.changes_json,
            "context": log.context,
        },
        secret,
    )
    return expected == log.integrity_hash


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    all_keys = set(before.keys()) | set(after.keys())

    for key in all_keys:
        before_val = before.get(key)
        after_val = after.get(key)

        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }

    return diff
