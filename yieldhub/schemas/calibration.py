import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator


class CalibrationStandardCreate(BaseModel):
    tracked_item_id: uuid.UUID
    target_value: float
    min_value: float
    max_value: float
    unit: Optional[str] = None
    active: bool = True

    @model_validator(mode="after")
    def check_range(self):
        if not (self.min_value <= self.target_value <= self.max_value):
            raise ValueError("Expected min_value <= target_value <= max_value")
        return self


class CalibrationStandardUpdate(BaseModel):
    target_value: Optional[float] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    unit: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("target_value", "min_value", "max_value", "unit", "active")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("May be omitted but not null")
        return v


class CalibrationStandardResponse(BaseModel):
    id: uuid.UUID
    location_id: uuid.UUID
    tracked_item_id: uuid.UUID
    target_value: float
    min_value: float
    max_value: float
    unit: str
    active: bool
    updated_by: Optional[uuid.UUID] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
