import uuid
from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, field_validator


class OperationalStatus(str, Enum):
    in_service = "in_service"
    out_of_commission = "out_of_commission"


class VehicleTypeResponse(BaseModel):
    id: uuid.UUID
    name: str
    parent_id: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True


class VehicleUnitResponse(BaseModel):
    id: uuid.UUID
    name: str
    parent_id: Optional[uuid.UUID] = None
    sequence_number: Optional[int] = None
    operational_status: Optional[OperationalStatus] = None
    status_note: Optional[str] = None
    status_changed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VehicleUnitCreate(BaseModel):
    site_id: uuid.UUID
    vehicle_type_name: str

    @field_validator("vehicle_type_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Vehicle type name is required")
        return v


class VehicleStatusUpdate(BaseModel):
    status: OperationalStatus
    note: Optional[str] = None


class VehicleStatusResponse(BaseModel):
    unit: VehicleUnitResponse
    alert_id: Optional[uuid.UUID] = None
