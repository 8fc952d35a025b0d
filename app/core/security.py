"""Password hashing, JWT access tokens and one-time tokens."""

import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

_password_hasher = PasswordHasher()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def hash_password(plain_password: str) -> str:
    """Hash a plain password using Argon2"""
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except VerifyMismatchError:
        return False
    except InvalidHashError as e:
        logger.warning(f"verify_password: Invalid stored hash - {e}")
        return False


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def get_password_validation_error(password: str) -> Optional[str]:
    """Return a human readable reason the password is too weak, or None"""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if not re.search(r"[A-Za-z]", password):
        return "Password must contain at least one letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one number"
    return None


def create_access_token(user_id: str, email: str, tier: str, now: Optional[datetime] = None) -> str:
    """Create a signed JWT carrying the user id and tier claim"""
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "tier": tier,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.access_token_expire_days),
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.
    Raises jwt.InvalidTokenError (including expiry) on any validation failure.
    """
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != "access" or not payload.get("sub"):
        raise jwt.InvalidTokenError("Token is not an access token")
    return payload


def generate_one_time_token() -> str:
    """Opaque token for password reset and magic links"""
    return secrets.token_urlsafe(32)
