import uuid
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, field_validator

from ..services.authorization import Role


class UserCreate(BaseModel):
    email: str
    password: str
    role: Role = Role.employee
    display_name: Optional[str] = None
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if not v or "@" not in v:
            raise ValueError("Email required")
        return v

    @field_validator("password")
    @classmethod
    def strip_password(cls, v: str) -> str:
        return (v or "").strip()


class UserCreatedResponse(BaseModel):
    ok: bool = True
    id: uuid.UUID


class UserRow(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str] = None
    role: Role
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    rows: List[UserRow]
