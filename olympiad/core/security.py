"""
Tokens and password hashing

Tokens are HS256 JWTs carrying:
    sub     record id (uid / coordinator id / school id / admin id)
    role    admin | school | coordinator | student
    status  coordinators only: pending | approved
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

import jwt
from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


class Role(str, Enum):
    ADMIN = "admin"
    SCHOOL = "school"
    COORDINATOR = "coordinator"
    STUDENT = "student"


# ==================== PASSWORDS ====================

# bcrypt runs in the threadpool, off the event loop

async def hash_password(password: str) -> str:
    return await run_in_threadpool(pwd_context.hash, password)


async def verify_password(password: str, hashed: Optional[str]) -> bool:
    """False for missing or malformed hashes instead of raising"""
    if not password or not hashed:
        return False
    try:
        return await run_in_threadpool(pwd_context.verify, password, hashed)
    except (ValueError, TypeError):
        return False


# ==================== TOKENS ====================

def token_lifetime(settings: Settings, role: Role) -> timedelta:
    if Role(role) == Role.STUDENT:
        return timedelta(days=settings.STUDENT_TOKEN_EXPIRE_DAYS)
    return timedelta(days=settings.STAFF_TOKEN_EXPIRE_DAYS)


def create_token(settings: Settings, subject: str, role: Role, status: Optional[str] = None) -> str:
    """
    Create a signed access token

    Args:
        settings: Application settings (secret, algorithm, lifetimes)
        subject: Record id the token identifies
        role: Role of the holder
        status: Coordinator approval status at issue time

    Returns:
        str: Encoded JWT
    """
    now = datetime.utcnow()
    payload = {
        "sub": subject,
        "role": Role(role).value,
        "iat": now,
        "exp": now + token_lifetime(settings, role),
    }
    if status is not None:
        payload["status"] = status

    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(settings: Settings, token: str) -> dict:
    """
    Verify signature and expiry

    Raises:
        AuthorizationError: If the token is expired or invalid
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthorizationError("Token expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise AuthorizationError("Invalid token.")

    if not payload.get("sub") or payload.get("role") not in {r.value for r in Role}:
        raise AuthorizationError("Invalid token.")
    return payload
