"""
Authentication router: credential login, session principal, sign-out and password reset.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.accounts import (
    authenticate,
    confirm_password_reset,
    get_user_or_404,
    request_password_reset,
)
from services.session_token import create_session_token

router = APIRouter()

login_rate_limit = rate_limit(
    "auth_login",
    limit=settings.LOGIN_RATE_LIMIT,
    window_seconds=settings.LOGIN_RATE_WINDOW_SECONDS,
)
password_reset_rate_limit = rate_limit(
    "auth_password_reset",
    limit=settings.PASSWORD_RESET_RATE_LIMIT,
    window_seconds=settings.PASSWORD_RESET_RATE_WINDOW_SECONDS,
)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=72)


class SessionResponse(BaseModel):
    user_id: str
    email: str
    role: str
    name: Optional[str] = None
    session_token: str
    session_expires_at: int


class CurrentUserResponse(BaseModel):
    user_id: str
    email: str
    role: str
    name: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class PasswordResetConfirmRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=1, max_length=72)


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    _rate_limit: None = Depends(login_rate_limit),
    db: AsyncSession = Depends(get_db),
):
    """Exchange email/password for a signed session token."""
    user = await authenticate(db, request.email, request.password)
    session = create_session_token(user.id, user.email, role=user.role)
    return SessionResponse(
        user_id=user.id,
        email=user.email,
        role=user.role,
        name=user.name,
        session_token=session.token,
        session_expires_at=session.expires_at,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Current principal for the presented session token."""
    user = await get_user_or_404(db, auth.user_id)
    return CurrentUserResponse(
        user_id=user.id,
        email=user.email,
        role=user.role,
        name=user.name,
        phone=user.phone,
        company_name=user.company_name,
    )


@router.post("/logout")
async def logout(_auth: AuthContext = Depends(get_auth_context)):
    """Frontend-managed logout acknowledgment endpoint."""
    return {"message": "Logged out successfully"}


@router.post("/password-reset", status_code=202)
async def send_password_reset(
    request: PasswordResetRequest,
    _rate_limit: None = Depends(password_reset_rate_limit),
    db: AsyncSession = Depends(get_db),
):
    """Issue a reset token. The response is identical whether or not the email exists."""
    await request_password_reset(db, request.email)
    return {"message": "Si el email existe, recibirás instrucciones para restablecer la contraseña."}


@router.post("/password-reset/confirm")
async def confirm_reset(
    request: PasswordResetConfirmRequest,
    db: AsyncSession = Depends(get_db),
):
    await confirm_password_reset(db, request.token, request.new_password)
    return {"message": "Contraseña actualizada"}
