"""Account management: credentials, profiles, password resets and admin bootstrap."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.password_reset_token import PasswordResetToken
from models.user import User
from services import store
from services.passwords import MAX_PASSWORD_BYTES, hash_password, hash_reset_token, verify_password

logger = logging.getLogger(__name__)

USER_ROLES = ("admin", "client")
PROFILE_FIELDS = ("name", "role", "phone", "company_name")


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def user_to_dict(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "phone": user.phone,
        "company_name": user.company_name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _check_password_strength(password: str) -> None:
    if len(password or "") < int(settings.MIN_PASSWORD_LENGTH):
        raise HTTPException(
            status_code=422,
            detail=f"La contraseña debe tener al menos {int(settings.MIN_PASSWORD_LENGTH)} caracteres",
        )
    if len((password or "").encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise HTTPException(
            status_code=422,
            detail=f"La contraseña no puede superar {MAX_PASSWORD_BYTES} bytes",
        )


def _check_role(role: str) -> None:
    if role not in USER_ROLES:
        raise HTTPException(status_code=422, detail=f"Rol no válido: {role}")


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await store.get_by_id(db, User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        logger.warning("login_failed email=%s", normalize_email(email))
        raise HTTPException(status_code=401, detail="Email o contraseña incorrectos")
    return user


async def create_account(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: Optional[str] = None,
    role: str = "client",
    phone: Optional[str] = None,
    company_name: Optional[str] = None,
) -> User:
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        raise HTTPException(status_code=422, detail="Email no válido")
    _check_password_strength(password)
    _check_role(role)
    if await get_user_by_email(db, normalized):
        raise HTTPException(status_code=409, detail="Este email ya está en uso")

    user = store.create_record(
        db,
        User,
        {
            "email": normalized,
            "password_hash": hash_password(password),
            "name": name,
            "role": role,
            "phone": phone,
            "company_name": company_name,
        },
    )
    await db.commit()
    await db.refresh(user)
    logger.info("account_created id=%s role=%s", user.id, user.role)
    return user


async def list_users(db: AsyncSession, role: Optional[str] = None) -> List[Dict[str, Any]]:
    if role:
        users = await store.get_by_filter(db, User, role=role, order_by=[User.name])
    else:
        users = await store.get_all(db, User, order_by=[User.name])
    return [user_to_dict(user) for user in users]


async def update_user(db: AsyncSession, user_id: str, fields: Dict[str, Any]) -> User:
    user = await get_user_or_404(db, user_id)
    changes = {key: value for key, value in fields.items() if key in PROFILE_FIELDS and value is not None}
    if "role" in changes:
        _check_role(changes["role"])
    store.update_record(user, changes)
    await db.commit()
    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, user_id: str) -> str:
    """Remove the account. Vouchers keep their denormalized client name."""
    user = await get_user_or_404(db, user_id)
    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
    await store.delete_record(db, user)
    await db.commit()
    logger.info("account_deleted id=%s", user_id)
    return user_id


async def request_password_reset(db: AsyncSession, email: str) -> Optional[str]:
    """Issue a reset token for ``email``; returns None when no account matches."""
    user = await get_user_by_email(db, email)
    if not user:
        logger.info("password_reset_requested for unknown email")
        return None

    token = secrets.token_urlsafe(32)
    ttl_minutes = max(int(settings.PASSWORD_RESET_TTL_MINUTES), 1)
    store.create_record(
        db,
        PasswordResetToken,
        {
            "user_id": user.id,
            "token_hash": hash_reset_token(token),
            "expires_at": datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes),
        },
    )
    await db.commit()
    logger.info("password_reset_issued user=%s ttl_minutes=%s", user.id, ttl_minutes)
    return token


async def confirm_password_reset(db: AsyncSession, token: str, new_password: str) -> User:
    token = str(token or "").strip()
    if not token:
        raise HTTPException(status_code=422, detail="token is required")

    result = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_reset_token(token))
    )
    reset = result.scalar_one_or_none()
    if not reset or reset.used_at is not None:
        raise HTTPException(status_code=400, detail="Enlace de restablecimiento no válido")

    now = datetime.now(timezone.utc)
    expires_at = reset.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= now:
        raise HTTPException(status_code=410, detail="Enlace de restablecimiento caducado")

    _check_password_strength(new_password)
    user = await get_user_or_404(db, reset.user_id)
    user.password_hash = hash_password(new_password)
    reset.used_at = now
    await db.commit()
    await db.refresh(user)
    logger.info("password_reset_completed user=%s", user.id)
    return user


async def ensure_default_admin(db: AsyncSession) -> Optional[User]:
    """Create the configured administrator, or restore its role if it already exists."""
    email = normalize_email(settings.DEFAULT_ADMIN_EMAIL)
    password = settings.DEFAULT_ADMIN_PASSWORD or ""
    if not email or not password:
        return None

    user = await get_user_by_email(db, email)
    if user is None:
        return await create_account(
            db,
            email=email,
            password=password,
            name=settings.DEFAULT_ADMIN_NAME,
            role="admin",
        )

    if user.role != "admin":
        user.role = "admin"
        user.name = user.name or settings.DEFAULT_ADMIN_NAME
        await db.commit()
        await db.refresh(user)
        logger.info("default_admin_restored id=%s", user.id)
    return user
