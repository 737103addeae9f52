import uuid
from typing import Optional

from pydantic import BaseModel

from ..services.authorization import Role


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str] = None
    role: Role
    location_id: Optional[uuid.UUID] = None
    region_id: Optional[uuid.UUID] = None
