"""
Auth Service — Password hashing, JWT creation/verification, credential rules.
"""

import re
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from opsconsole.config import get_settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)

ALGORITHM = "HS256"

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
STRONG_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # Not a bcrypt hash (legacy/plaintext row)
        return False


def create_access_token(user_id: str, username: str, role: str) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "exp": now + timedelta(hours=settings.jwt_expire_hours),
        "iat": now,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None


def validate_username(username: str) -> str | None:
    """Return an error message, or None when the username is acceptable."""
    if not username:
        return "Username is required"
    if not 3 <= len(username) <= 20:
        return "Username must be 3-20 characters"
    if not USERNAME_PATTERN.match(username):
        return "Username may only contain letters, digits and underscores"
    return None


def validate_password(password: str, strong: bool = False) -> str | None:
    if not password or len(password) < 6:
        return "Password must be at least 6 characters"
    if strong and not STRONG_PASSWORD_PATTERN.match(password):
        return "Password must contain upper and lower case letters and a digit"
    return None
