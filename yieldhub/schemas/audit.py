import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    action: str
    actor_id: Optional[uuid.UUID] = None
    actor_role: Optional[str] = None
    location_id: Optional[uuid.UUID] = None
    ok: bool
    error: Optional[str] = None
    changes_json: Optional[dict] = None
    context: Optional[dict] = None
    timestamp_utc: datetime

    class Config:
        from_attributes = True
