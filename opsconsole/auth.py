"""
Authentication & Authorization — JWT bearer tokens and role checks.

- Clients log in via /api/auth/login and send: Authorization: Bearer <jwt>
- get_current_user rejects missing/invalid tokens and inactive accounts (401).
- require_roles(...) rejects authenticated users without one of the roles (403).
"""

import logging
import uuid
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from opsconsole.database import get_db
from opsconsole.models import User, UserRole
from opsconsole.services.auth_service import decode_access_token

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Require a valid JWT and return the active User it names."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Access token required")

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token. Please log in again.")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid or expired token. Please log in again.")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or disabled")

    return user


def require_roles(*roles: str):
    """Dependency factory: current user must hold one of `roles`."""
    allowed = {r.value if isinstance(r, UserRole) else r for r in roles}

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return _check


require_admin = require_roles(UserRole.ADMIN)


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value
