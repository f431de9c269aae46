import secrets
from typing import Optional

from fastapi import Depends, Header, Request
from pydantic import BaseModel

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError, Forbidden
from olympiad.core.security import Role, decode_token
from olympiad.core.store import COORDINATORS, join_path
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables

# ==================== APP STATE ====================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request):
    return request.app.state.store


def get_tables(request: Request) -> ReferenceTables:
    return request.app.state.tables


def get_pipeline(request: Request) -> ScoringPipeline:
    return request.app.state.pipeline


def get_mailer(request: Request):
    return request.app.state.mailer


def get_payments(request: Request):
    return request.app.state.payments


def get_bank_lookup(request: Request):
    return request.app.state.bank_lookup


def get_rng(request: Request):
    return request.app.state.rng


# ==================== AUTH ====================

class CurrentUser(BaseModel):
    """Identity taken from a verified bearer token"""
    uid: str
    role: Role
    status: Optional[str] = None


async def get_current_user(
    authorization: str = Header(None),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthorizationError("Access denied. No token provided.")

    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthorizationError("Access denied. No token provided.")

    payload = decode_token(settings, token)
    return CurrentUser(uid=payload["sub"], role=payload["role"], status=payload.get("status"))


def require_role(*roles: Role):
    """
    Dependency factory: 401 without a valid token, 403 for other roles

    Usage:
        @router.get("/profile")
        async def profile(user: CurrentUser = Depends(require_role(Role.STUDENT))):
    """
    allowed = {Role(r) for r in roles}

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise Forbidden("Access denied. Insufficient permissions.")
        return user

    return dependency


async def require_approved_coordinator(
    user: CurrentUser = Depends(require_role(Role.COORDINATOR)),
    store=Depends(get_store),
) -> CurrentUser:
    """Approval status comes from the stored record, not the token"""
    coordinator = await store.get(join_path(COORDINATORS, user.uid))
    if not coordinator:
        raise AuthorizationError("Coordinator account not found.")
    if coordinator.get("status") != "approved":
        raise Forbidden("Your account is pending approval.")
    return user


async def require_admin_registrar(
    authorization: str = Header(None),
    x_admin_setup_key: str = Header(None),
    settings: Settings = Depends(get_settings),
) -> Optional[CurrentUser]:
    """
    Admin accounts are created by an existing admin, or with the
    ADMIN_SETUP_KEY header when bootstrapping the first one
    """
    if x_admin_setup_key:
        if not settings.ADMIN_SETUP_KEY or not secrets.compare_digest(x_admin_setup_key, settings.ADMIN_SETUP_KEY):
            raise Forbidden("Invalid admin setup key.")
        return None

    user = await get_current_user(authorization, settings)
    if user.role != Role.ADMIN:
        raise Forbidden("Access denied. Insufficient permissions.")
    return user
