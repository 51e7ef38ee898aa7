"""
Auth Router — Login (username or email), self-registration, profile.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from opsconsole.auth import get_current_user
from opsconsole.database import get_db
from opsconsole.models import User, UserRole
from opsconsole.routers.users import user_response
from opsconsole.services.auth_service import (
    hash_password,
    verify_password,
    create_access_token,
    validate_username,
    validate_password,
)
from opsconsole.utils import ok, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


# ── Schemas ────────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    username: str  # username or email
    password: str


class RegisterRequest(BaseModel):
    username: str
    email: EmailStr
    password: str


def _auth_payload(user: User) -> dict:
    return {
        "token": create_access_token(str(user.id), user.username, user.role),
        "user": user_response(user),
    }


# ── Endpoints ───────────────────────────────────────────────────────────

@router.post("/login")
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with username (or email) and password. Returns JWT + user."""
    error = validate_password(payload.password)
    if not payload.username or error:
        raise HTTPException(status_code=400, detail=error or "Username is required")

    ident = payload.username.strip()
    result = await db.execute(
        select(User).where(or_(User.username == ident, User.email == ident.lower()))
    )
    user = result.scalar_one_or_none()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")

    user.last_login_at = utcnow()
    await db.flush()
    logger.info(f"User {user.username} logged in")
    return ok(_auth_payload(user), message="Login successful")


@router.post("/register", status_code=201)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Self-registration. New accounts get the USER role."""
    error = validate_username(payload.username) or validate_password(payload.password, strong=True)
    if error:
        raise HTTPException(status_code=400, detail=error)

    email = payload.email.lower()
    existing = await db.execute(select(User).where(User.username == payload.username))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Username already exists")
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        role=UserRole.USER.value,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    logger.info(f"Registered user {user.username}")
    return ok(_auth_payload(user), message="Registration successful")


@router.get("/profile")
async def profile(user: User = Depends(get_current_user)):
    """Return the current user. Requires JWT auth."""
    return ok({"user": user_response(user)})
