import logging
import random
import uuid
from typing import List, Optional

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError, Conflict, NotFound, ValidationFailed
from olympiad.core.security import Role, create_token, hash_password, verify_password
from olympiad.core.spreadsheet import Row
from olympiad.core.store import (
    ADMINS, CALLBACKS, COORDINATORS, REFERENCE_CODES, SCHOOLS, STUDENTS,
    find_one, join_path, without_secrets
)
from olympiad.admin.admin_schemas import (
    REFERENCE_CODE_PATTERN, AdminLogin, AdminRegister, ReferenceCodeCreate
)
from olympiad.notifications.mailer import send_approval_email
from olympiad.roster.roster_service import import_coordinators, import_students
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables
from olympiad.students.student_service import now_iso

logger = logging.getLogger(__name__)

REFERENCE_CODE_ATTEMPTS = 20

PAYMENT_DETAIL_FIELDS = ("bankName", "accountNumber", "ifsc", "branch", "upiId", "accountHolderName")


def _listing(records) -> List[dict]:
    """{key: record} -> [{uid: key, ...record}] without password hashes"""
    if not isinstance(records, dict):
        return []
    return [
        {"uid": key, **without_secrets(value)}
        for key, value in records.items() if isinstance(value, dict)
    ]


# ==================== AUTH ====================

async def register_admin(store, settings: Settings, data: AdminRegister) -> dict:
    if data.password != data.confirmPassword:
        raise ValidationFailed("Password and confirm password do not match")

    existing_id, _ = await find_one(store, ADMINS, "email", data.email)
    if existing_id:
        raise Conflict("Email is already in use.")

    uid = str(uuid.uuid4())
    await store.set(join_path(ADMINS, uid), {
        "uid": uid,
        "email": data.email,
        "name": data.name.strip(),
        "password": await hash_password(data.password),
        "role": Role.ADMIN.value,
        "createdAt": now_iso(),
    })
    logger.info(f"[ADMIN] Registered {uid} ({data.email})")
    return {"uid": uid, "email": data.email, "token": create_token(settings, uid, Role.ADMIN)}


async def login_admin(store, settings: Settings, data: AdminLogin) -> dict:
    uid, admin = await find_one(store, ADMINS, "email", data.email)
    if not admin or not await verify_password(data.password, admin.get("password")):
        raise AuthorizationError("Invalid email or password")
    if admin.get("role") != Role.ADMIN.value:
        raise AuthorizationError("Access denied. Admins only.")
    return {"uid": uid, "email": admin.get("email"), "token": create_token(settings, uid, Role.ADMIN)}


# ==================== STUDENTS & SCHOOLS ====================

async def list_students(store) -> List[dict]:
    return _listing(await store.get(STUDENTS))


async def list_schools(store) -> List[dict]:
    return _listing(await store.get(SCHOOLS))


async def bulk_upload_students(store, pipeline: ScoringPipeline, settings: Settings, rows: List[Row]) -> dict:
    report = await import_students(store, rows, settings.BULK_BATCH_SIZE, pipeline=pipeline)
    logger.info(f"[BULK] Admin student upload: {report.success_count} added, {len(report.failed_entries)} failed")
    return report.to_response()


async def list_request_callbacks(store) -> List[dict]:
    stored = await store.get(CALLBACKS) or {}
    return [{"id": key, **value} for key, value in stored.items() if isinstance(value, dict)]


# ==================== REFERENCE CODES ====================

async def generate_reference_code(store, data: ReferenceCodeCreate, rng: Optional[random.Random] = None) -> dict:
    """<PREFIX>-<4 digits>, retried until the code is unused"""
    rng = rng or random
    for _ in range(REFERENCE_CODE_ATTEMPTS):
        code = f"{data.prefix}-{rng.randint(1000, 9999)}"
        if await store.get(join_path(REFERENCE_CODES, code)) is None:
            break
    else:
        raise Conflict("Could not allocate a unique reference code, try again.")

    record = {
        "prefix": data.prefix,
        "schoolName": data.schoolName.strip(),
        "referenceCode": code,
        "createdAt": now_iso(),
    }
    await store.set(join_path(REFERENCE_CODES, code), record)
    logger.info(f"[ADMIN] Reference code {code} issued for {record['schoolName']}")
    return record


async def validate_reference_code(store, code: str) -> dict:
    code = (code or "").strip()
    if not REFERENCE_CODE_PATTERN.match(code):
        raise ValidationFailed("Invalid reference code format")
    record = await store.get(join_path(REFERENCE_CODES, code))
    if not record:
        raise NotFound("Reference code not found")
    return record


async def list_reference_codes(store) -> List[dict]:
    stored = await store.get(REFERENCE_CODES) or {}
    return [value for value in stored.values() if isinstance(value, dict)]


# ==================== COORDINATORS ====================

async def list_coordinators(store, status: Optional[str] = None) -> List[dict]:
    coordinators = _listing(await store.get(COORDINATORS))
    if status is None:
        return coordinators
    return [c for c in coordinators if c.get("status") == status]


async def approve_coordinator(store, mailer, uid: str) -> dict:
    coordinator = await store.get(join_path(COORDINATORS, uid))
    if not coordinator:
        raise NotFound("Coordinator not found")
    if coordinator.get("status") == "approved":
        raise ValidationFailed("Coordinator is already approved")

    updates = {"status": "approved", "approvedAt": now_iso()}
    await store.update(join_path(COORDINATORS, uid), updates)
    logger.info(f"[ADMIN] Approved coordinator {uid}")

    # best effort, failure is logged by the mailer
    await send_approval_email(mailer, coordinator.get("email"), coordinator.get("name"))
    return updates


async def delete_coordinator(store, uid: str) -> None:
    if not await store.get(join_path(COORDINATORS, uid)):
        raise NotFound("Coordinator not found")
    await store.delete(join_path(COORDINATORS, uid))
    logger.info(f"[ADMIN] Deleted coordinator {uid}")


async def coordinator_payment_details(store, uid: str) -> dict:
    coordinator = await store.get(join_path(COORDINATORS, uid))
    if not coordinator:
        raise NotFound("Coordinator not found.")
    return {key: coordinator.get(key) or "" for key in PAYMENT_DETAIL_FIELDS}


async def bulk_upload_coordinators(store, tables: ReferenceTables, settings: Settings, rows: List[Row]) -> dict:
    report = await import_coordinators(store, rows, tables, settings.BULK_BATCH_SIZE)
    logger.info(f"[BULK] Admin coordinator upload: {report.success_count} added, {len(report.failed_entries)} failed")
    return report.to_response()
