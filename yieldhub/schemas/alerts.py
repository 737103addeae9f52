import uuid
from datetime import datetime
from typing import Optional, List
from enum import Enum

from pydantic import BaseModel, Field


class AlertStatus(str, Enum):
    open = "open"
    acknowledged = "acknowledged"


class AlertSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class AlertResponse(BaseModel):
    id: uuid.UUID
    created_at: datetime
    severity: AlertSeverity
    category: str
    status: AlertStatus
    message: str
    metadata: Optional[dict] = Field(default=None, validation_alias="metadata_json")
    location_id: Optional[uuid.UUID] = None
    vehicle_unit_id: Optional[uuid.UUID] = None
    employee_id: Optional[uuid.UUID] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[uuid.UUID] = None
    acknowledged_note: Optional[str] = None

    class Config:
        from_attributes = True


class AlertBoardResponse(BaseModel):
    visible: bool
    message: Optional[str] = None
    categories: List[str] = []
    rows: List[AlertResponse] = []


class AcknowledgeRequest(BaseModel):
    note: Optional[str] = None
