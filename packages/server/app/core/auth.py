"""
Identity resolution for Stagetrack.

Tokens are issued by the external identity service; this module only
verifies them and loads the user row:
- JWT (HS256) from the Authorization header or the session cookie
- AuthenticatedUser carries the id, role and reporting manager the
  services need for ownership and visibility checks
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.models.user import User
from stagetrack_shared.schemas.common import Role

log = structlog.get_logger()
settings = get_settings()

auth_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    role: str,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class AuthenticatedUser:
    """The caller's identity as seen by the service layer."""

    def __init__(self, user: User):
        self.user = user
        self.user_id = user.id
        self.role = Role(user.role)
        self.manager_id = user.manager_id

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER


async def _authenticate_jwt(token: str, session: AsyncSession) -> AuthenticatedUser:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError as exc:
        log.info("auth_rejected", reason=type(exc).__name__)
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return AuthenticatedUser(user)


async def get_authenticated_user(
    request: Request,
    authorization: Optional[str] = Depends(auth_header),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """Main authentication dependency. Tries the bearer token first, then the session cookie."""
    token: Optional[str] = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
    if not token:
        token = request.cookies.get(settings.session_cookie_name)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    auth_user = await _authenticate_jwt(token, session)
    request.state.user_id = auth_user.user_id
    structlog.contextvars.bind_contextvars(user_id=str(auth_user.user_id))
    return auth_user
