import uuid
from datetime import date, datetime
from typing import Optional, List
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class LocationKind(str, Enum):
    site = "site"
    vehicle_type = "vehicle_type"
    vehicle_unit = "vehicle_unit"


class LocationCreate(BaseModel):
    name: str
    region_id: Optional[uuid.UUID] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Name required")
        return v


class LocationResponse(BaseModel):
    id: uuid.UUID
    name: str
    kind: LocationKind
    region_id: Optional[uuid.UUID] = None
    parent_id: Optional[uuid.UUID] = None
    active: bool

    class Config:
        from_attributes = True


# Tracked Item Schemas
class TrackedItemCreate(BaseModel):
    name: str
    unit: str
    sub_label: Optional[str] = None
    value_per_unit: float = 0

    @field_validator("name", "unit")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Required")
        return v


class TrackedItemUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    sub_label: Optional[str] = None
    value_per_unit: Optional[float] = None
    baseline_input: Optional[float] = None
    baseline_output: Optional[float] = None
    tolerance_green: Optional[float] = Field(default=None, ge=0)
    tolerance_yellow: Optional[float] = Field(default=None, ge=0)

    @field_validator("name", "unit", "value_per_unit", "tolerance_green", "tolerance_yellow")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("May be omitted but not null")
        return v

    @model_validator(mode="after")
    def check_bands(self):
        if self.tolerance_green is not None and self.tolerance_yellow is not None:
            if self.tolerance_green > self.tolerance_yellow:
                raise ValueError("tolerance_green must not exceed tolerance_yellow")
        return self


class BaselineLockRequest(BaseModel):
    baseline_input: Optional[float] = Field(default=None, gt=0)
    baseline_output: Optional[float] = Field(default=None, ge=0)


class TrackedItemResponse(BaseModel):
    id: uuid.UUID
    location_id: uuid.UUID
    name: str
    unit: str
    sub_label: Optional[str] = None
    value_per_unit: float
    baseline_input: Optional[float] = None
    baseline_output: Optional[float] = None
    tolerance_green: float
    tolerance_yellow: float
    baseline_locked: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Entry Schemas
class EntryCreate(BaseModel):
    input_used: float = Field(ge=0)
    output_count: float = Field(ge=0)
    period_label: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class VarianceResponse(BaseModel):
    expected_output: Optional[float] = None
    actual_output: float
    shortfall: Optional[float] = None
    loss_pct: Optional[float] = None
    classification: str
    waste_cost: Optional[float] = None
    insufficient_data: bool


class EntryResponse(BaseModel):
    id: uuid.UUID
    tracked_item_id: uuid.UUID
    input_used: float
    output_count: float
    period_label: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    entry_date: Optional[date] = None
    created_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    variance: Optional[VarianceResponse] = None

    class Config:
        from_attributes = True


class TrackedItemDetail(TrackedItemResponse):
    entries: List[EntryResponse] = []
    total_waste_cost: Optional[float] = None


class LocationDetailResponse(BaseModel):
    location: LocationResponse
    items: List[TrackedItemDetail]


class VarianceRequest(BaseModel):
    baseline_input: Optional[float] = None
    baseline_output: Optional[float] = None
    value_per_unit: float = 0
    tolerance_green: float = Field(default=0.03, ge=0)
    tolerance_yellow: float = Field(default=0.06, ge=0)
    input_used: float = Field(ge=0)
    output_count: float = Field(ge=0)

    @model_validator(mode="after")
    def check_bands(self):
        if self.tolerance_green > self.tolerance_yellow:
            raise ValueError("tolerance_green must not exceed tolerance_yellow")
        return self
