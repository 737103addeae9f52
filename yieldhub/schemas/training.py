import uuid
from datetime import datetime
from typing import Optional, List
from enum import Enum

from pydantic import BaseModel, field_validator, model_validator


class TrainingStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class TrainingSessionCreate(BaseModel):
    location_id: uuid.UUID
    employee_id: uuid.UUID
    starts_at: datetime
    ends_at: datetime
    tracked_item_ids: List[uuid.UUID] = []

    @model_validator(mode="after")
    def check_window(self):
        if self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


class TrainingSessionUpdate(BaseModel):
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: Optional[TrainingStatus] = None

    @field_validator("starts_at", "ends_at", "status")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("May be omitted but not null")
        return v


class TrainingSessionItemResponse(BaseModel):
    id: uuid.UUID
    training_session_id: uuid.UUID
    tracked_item_id: uuid.UUID
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TrainingCompletionResponse(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    completed_at: datetime
    readings: Optional[List[dict]] = None

    class Config:
        from_attributes = True


class TrainingSessionResponse(BaseModel):
    id: uuid.UUID
    location_id: uuid.UUID
    employee_id: uuid.UUID
    assigned_by: Optional[uuid.UUID] = None
    starts_at: datetime
    ends_at: datetime
    status: TrainingStatus
    created_at: Optional[datetime] = None
    items: List[TrainingSessionItemResponse] = []
    completions: List[TrainingCompletionResponse] = []

    class Config:
        from_attributes = True


class TrainingSessionItemCreate(BaseModel):
    tracked_item_id: uuid.UUID


class TrainingReading(BaseModel):
    tracked_item_id: uuid.UUID
    value: Optional[float] = None


class TrainingCompleteRequest(BaseModel):
    readings: List[TrainingReading] = []
