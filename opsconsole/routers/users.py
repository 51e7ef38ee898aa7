"""
Users Router — User management (admin), self-service profile edits.
"""

import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from opsconsole.auth import get_current_user, require_admin, is_admin
from opsconsole.database import get_db
from opsconsole.models import User, UserRole
from opsconsole.services.auth_service import hash_password, validate_username, validate_password
from opsconsole.utils import ApiModel, ok, page_params, page_meta, parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

SORT_COLUMNS = {
    "createdAt": User.created_at,
    "updatedAt": User.updated_at,
    "username": User.username,
    "email": User.email,
}


# ── Schemas ────────────────────────────────────────────────────────────

class UserResponse(ApiModel):
    id: str
    username: str
    email: str
    role: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None


class UserCreateRequest(ApiModel):
    username: str
    email: EmailStr
    password: str
    role: UserRole = UserRole.USER


class UserUpdateRequest(ApiModel):
    username: str | None = None
    email: EmailStr | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class ResetPasswordRequest(ApiModel):
    password: str


def user_response(u: User) -> UserResponse:
    return UserResponse(
        id=str(u.id),
        username=u.username,
        email=u.email,
        role=u.role,
        is_active=u.is_active,
        last_login_at=u.last_login_at,
        created_at=u.created_at,
        updated_at=u.updated_at,
    )


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == parse_uuid(user_id)))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ── Endpoints ───────────────────────────────────────────────────────────

@router.get("")
async def list_users(
    page: int = Query(1),
    limit: int = Query(10),
    search: str | None = Query(None),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Paginated user list. Admin only."""
    page, limit = page_params(page, limit)
    query = select(User)
    count_query = select(func.count()).select_from(User)
    if search:
        cond = or_(User.username.contains(search), User.email.contains(search))
        query = query.where(cond)
        count_query = count_query.where(cond)

    column = SORT_COLUMNS.get(sort_by, User.created_at)
    query = query.order_by(column.asc() if sort_order.lower() == "asc" else column.desc())

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    users = result.scalars().all()
    return ok([user_response(u) for u in users], pagination=page_meta(page, limit, total))


@router.get("/stats")
async def user_stats(
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Account counts. Admin only."""
    total = (await db.execute(select(func.count()).select_from(User))).scalar() or 0
    active = (await db.execute(
        select(func.count()).select_from(User).where(User.is_active.is_(True))
    )).scalar() or 0
    admins = (await db.execute(
        select(func.count()).select_from(User).where(User.role == UserRole.ADMIN.value)
    )).scalar() or 0
    return ok({
        "totalUsers": total,
        "activeUsers": active,
        "adminUsers": admins,
        "inactiveUsers": total - active,
    })


@router.post("", status_code=201)
async def create_user(
    payload: UserCreateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a user directly. Admin only."""
    error = validate_username(payload.username) or validate_password(payload.password)
    if error:
        raise HTTPException(status_code=400, detail=error)

    email = payload.email.lower()
    existing = await db.execute(
        select(User).where(or_(User.username == payload.username, User.email == email))
    )
    if existing.scalars().first():
        raise HTTPException(status_code=400, detail="Username or email already exists")

    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role.value,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return ok(user_response(user), message="User created")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Fetch one user. Self or admin."""
    if not is_admin(current) and str(current.id) != user_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    user = await _get_user_or_404(db, user_id)
    return ok(user_response(user))


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdateRequest,
    current: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Update user. Admins may edit anyone; users may edit their own username/email."""
    if not is_admin(current) and str(current.id) != user_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    if not is_admin(current) and (payload.role is not None or payload.is_active is not None):
        raise HTTPException(status_code=403, detail="Only admins can change role or status")

    user = await _get_user_or_404(db, user_id)

    if payload.username is not None and payload.username != user.username:
        error = validate_username(payload.username)
        if error:
            raise HTTPException(status_code=400, detail=error)
        clash = await db.execute(select(User).where(User.username == payload.username))
        if clash.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="Username already exists")
        user.username = payload.username
    if payload.email is not None and payload.email.lower() != user.email:
        clash = await db.execute(select(User).where(User.email == payload.email.lower()))
        if clash.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="Email already registered")
        user.email = payload.email.lower()
    if payload.role is not None:
        user.role = payload.role.value
    if payload.is_active is not None:
        user.is_active = payload.is_active

    await db.flush()
    return ok(user_response(user), message="User updated")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete user. Admin only. Cannot delete self."""
    if str(current.id) == user_id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    user = await _get_user_or_404(db, user_id)
    await db.delete(user)
    await db.flush()
    logger.info(f"User {user.username} deleted by {current.username}")
    return ok(message="User deleted")


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: str,
    payload: ResetPasswordRequest,
    current: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Set a new password for a user. Admin only."""
    error = validate_password(payload.password)
    if error:
        raise HTTPException(status_code=400, detail=error)

    user = await _get_user_or_404(db, user_id)
    user.password_hash = hash_password(payload.password)
    await db.flush()
    logger.info(f"Password reset for {user.username} by {current.username}")
    return ok(message="Password reset")
