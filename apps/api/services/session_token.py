"""Signed session tokens identifying an account and its role."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from config import settings


SESSION_TOKEN_TYPE = "bonos_session"
SESSION_ROLES = ("admin", "client")


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: int


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    role: str
    email: Optional[str]
    expires_at: int


def create_session_token(
    user_id: str,
    email: Optional[str] = None,
    role: str = "client",
    expires_hours: Optional[int] = None,
) -> IssuedSession:
    if role not in SESSION_ROLES:
        raise ValueError(f"Unknown session role: {role}")

    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(hours=max(int(expires_hours or settings.JWT_EXPIRATION_HOURS or 24), 1))
    expires_at = int((issued_at + lifetime).timestamp())
    claims: Dict[str, Any] = {
        "sub": user_id,
        "type": SESSION_TOKEN_TYPE,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": expires_at,
    }
    if email:
        claims["email"] = email

    return IssuedSession(
        token=jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM),
        expires_at=expires_at,
    )


def decode_session_token(token: str) -> SessionClaims:
    """Verify signature, expiry and shape; raises ValueError on any mismatch."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")

    user_id = str(payload.get("sub") or "").strip()
    if not user_id:
        raise ValueError("Session token missing subject.")

    role = str(payload.get("role") or "")
    if role not in SESSION_ROLES:
        raise ValueError("Session token has an unknown role.")

    return SessionClaims(
        user_id=user_id,
        role=role,
        email=payload.get("email") or None,
        expires_at=int(payload["exp"]),
    )
