from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User, Profile
from ..schemas.auth import LoginRequest, TokenResponse, MeResponse
from ..services.authorization import Actor
from .security import verify_password, create_access_token, get_current_user, get_current_actor


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.info("login_failed", email=email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    token = create_access_token(user.id, profile.role if profile else None)
    return TokenResponse(access_token=token, expires_in=settings.jwt_ttl_seconds)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user), actor: Actor = Depends(get_current_actor)):
    return MeResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=actor.role,
        location_id=actor.location_id,
        region_id=actor.region_id,
    )
