import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import get_current_user
from app.models import User, get_db
from app.services.security import create_access_token, verify_password

router = APIRouter()
logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "admin@example.com", "password": "securepassword"}]},
        populate_by_name=True,
    )


class TokenResponse(CamelModel):
    access_token: str = Field(alias="accessToken")
    token_type: str = "bearer"
    expires_in: int = Field(alias="expiresIn")


class MeResponse(CamelModel):
    id: int
    email: str
    display_name: str | None = Field(default=None, alias="displayName")
    is_admin: bool = Field(alias="isAdmin")
    created_at: str = Field(alias="createdAt")


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get an access token",
)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Login with email/password and return a JWT access token."""
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    logger.info("User id=%s logged in (admin=%s)", user.id, user.is_admin)
    return TokenResponse(
        accessToken=create_access_token(user.id),
        expiresIn=settings.JWT_EXPIRE_MINUTES * 60,
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current user profile",
)
def me(current_user: Annotated[User, Depends(get_current_user)]):
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        displayName=current_user.display_name,
        isAdmin=current_user.is_admin,
        createdAt=current_user.created_at.isoformat() if current_user.created_at else "",
    )
