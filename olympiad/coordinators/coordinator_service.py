import logging
from datetime import datetime
from typing import List

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError, Conflict, Forbidden, NotFound, ValidationFailed
from olympiad.core.security import Role, create_token, hash_password, verify_password
from olympiad.core.spreadsheet import Row
from olympiad.core.store import COORDINATORS, STUDENTS, find_one, join_path, without_secrets
from olympiad.coordinators.bank_lookup import IfscLookup, is_valid_account_number, is_valid_ifsc, is_valid_upi
from olympiad.coordinators.coordinator_schemas import (
    CoordinatorLogin, CoordinatorProfileUpdate, CoordinatorRegister, VerifyDetailsRequest
)
from olympiad.incentives.calculator import IncentiveSummary, recalculate_coordinator_incentives
from olympiad.notifications.mailer import send_registration_email
from olympiad.roster.roster_service import build_coordinator_record, import_students
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables
from olympiad.students.student_models import PaymentStatus, as_number
from olympiad.students.student_service import attempt_totals

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 10


async def get_coordinator(store, coordinator_id: str) -> dict:
    coordinator = await store.get(join_path(COORDINATORS, coordinator_id))
    if not coordinator:
        raise NotFound("Coordinator not found.")
    return coordinator


def _students_of(all_students, coordinator_id: str) -> dict:
    if not isinstance(all_students, dict):
        return {}
    return {
        uid: s for uid, s in all_students.items()
        if isinstance(s, dict) and s.get("addedBy") == coordinator_id
    }


# ==================== AUTH ====================

async def register_coordinator(store, settings: Settings, tables: ReferenceTables, mailer, data: CoordinatorRegister) -> dict:
    existing_id, _ = await find_one(store, COORDINATORS, "email", data.email)
    if existing_id:
        raise Conflict("Email is already in use.")

    record = build_coordinator_record(
        data.dict(), await hash_password(data.password), tables.category_tiers[0].name, "pending"
    )
    user_id = record["userId"]
    await store.set(join_path(COORDINATORS, user_id), record)
    logger.info(f"[COORDINATOR] Registered {user_id} ({record['email']}), pending approval")

    # best effort, failure is logged by the mailer
    await send_registration_email(mailer, record["email"], record.get("name"))

    return {
        "token": create_token(settings, user_id, Role.COORDINATOR, status="pending"),
        "data": {"userId": user_id, "email": record["email"], "role": Role.COORDINATOR.value, "status": "pending"},
    }


async def login_coordinator(store, settings: Settings, data: CoordinatorLogin) -> dict:
    user_id, coordinator = await find_one(store, COORDINATORS, "email", data.email)
    if not coordinator or not await verify_password(data.password, coordinator.get("password")):
        raise AuthorizationError("Invalid email or password.")

    status = coordinator.get("status") or "pending"
    return {
        "token": create_token(settings, user_id, Role.COORDINATOR, status=status),
        "data": {"userId": user_id, "email": coordinator.get("email"), "role": Role.COORDINATOR.value, "status": status},
    }


# ==================== PROFILE ====================

async def get_profile(store, coordinator_id: str) -> dict:
    return without_secrets(await get_coordinator(store, coordinator_id))


async def update_profile(store, bank_lookup: IfscLookup, coordinator_id: str, data: CoordinatorProfileUpdate) -> dict:
    await get_coordinator(store, coordinator_id)
    if not is_valid_ifsc(data.ifsc):
        raise ValidationFailed("Invalid IFSC code format.")

    bank = await bank_lookup.lookup(data.ifsc)
    updates = {
        "upiId": data.upiId,
        "bankName": bank.get("bankName", ""),
        "accountNumber": data.accountNumber,
        "ifsc": data.ifsc.upper(),
        "branch": bank.get("branch", ""),
        "accountHolderName": data.accountHolderName,
        "updatedAt": datetime.utcnow().isoformat() + "Z",
    }
    await store.update(join_path(COORDINATORS, coordinator_id), updates)
    return updates


async def verify_details(store, bank_lookup: IfscLookup, coordinator_id: str, data: VerifyDetailsRequest) -> dict:
    """
    Bank details: IFSC must resolve and account number must be 9-18 digits
    UPI: format check only
    """
    if not data.bankName and not data.upiId:
        raise ValidationFailed("At least one verification detail (bank or UPI) is required.")
    await get_coordinator(store, coordinator_id)

    updates = {"updatedAt": datetime.utcnow().isoformat() + "Z"}
    bank_verified = False
    upi_verified = False

    if data.has_bank:
        await bank_lookup.lookup(data.ifsc)
        if not is_valid_account_number(data.accountNumber):
            raise ValidationFailed("Invalid account number format.")
        bank_verified = True
        updates.update({
            "bankName": data.bankName,
            "accountNumber": data.accountNumber,
            "ifsc": data.ifsc.upper(),
            "branch": data.branch,
            "bankVerified": True,
        })

    if data.upiId:
        if not is_valid_upi(data.upiId):
            raise ValidationFailed("Invalid UPI ID format.")
        upi_verified = True
        updates.update({"upiId": data.upiId, "upiVerified": True})

    await store.update(join_path(COORDINATORS, coordinator_id), updates)
    return {"bankVerified": bank_verified, "upiVerified": upi_verified}


# ==================== STUDENTS ====================

async def bulk_upload_students(store, pipeline: ScoringPipeline, settings: Settings, coordinator_id: str, rows: List[Row]) -> dict:
    coordinator = await get_coordinator(store, coordinator_id)

    report = await import_students(
        store, rows, settings.BULK_BATCH_SIZE, added_by=coordinator_id, pipeline=pipeline
    )

    if report.success_count:
        total = int(as_number(coordinator.get("totalStudents")) or 0) + report.success_count
        await store.update(join_path(COORDINATORS, coordinator_id), {"totalStudents": total})

    totals = attempt_totals(_students_of(await store.get(STUDENTS), coordinator_id).values())
    logger.info(f"[BULK] Coordinator {coordinator_id}: {report.success_count} added, {len(report.failed_entries)} failed")
    return {**report.to_response(), **totals}


async def list_students(store, coordinator_id: str) -> dict:
    students = _students_of(await store.get(STUDENTS), coordinator_id)
    return {uid: without_secrets(s) for uid, s in students.items()}


async def get_test_counts(store, coordinator_id: str) -> dict:
    return attempt_totals(_students_of(await store.get(STUDENTS), coordinator_id).values())


async def update_student_payment_status(
    store, tables: ReferenceTables, coordinator_id: str, student_id: str, status: PaymentStatus
) -> IncentiveSummary:
    student = await store.get(join_path(STUDENTS, student_id))
    if not student:
        raise NotFound("Student not found.")
    if student.get("addedBy") != coordinator_id:
        raise Forbidden("Unauthorized to update this student.")

    updates = {"paymentStatus": PaymentStatus(status).value}
    if PaymentStatus(status) == PaymentStatus.UNPAID:
        updates["testCompleted"] = False
    await store.update(join_path(STUDENTS, student_id), updates)

    return await recalculate_coordinator_incentives(store, tables, coordinator_id)


# ==================== STANDINGS ====================

async def partner_rank(store, coordinator_id: str) -> dict:
    """1-based position by totalEarnings among all coordinators"""
    coordinators = await store.get(COORDINATORS) or {}
    ordered = sorted(
        ((key, as_number(c.get("totalEarnings")) or 0) for key, c in coordinators.items() if isinstance(c, dict)),
        key=lambda item: -item[1],
    )
    for position, (key, earnings) in enumerate(ordered, start=1):
        if key == coordinator_id:
            return {"rank": position, "totalCoordinators": len(ordered), "totalEarnings": earnings}
    raise NotFound("Coordinator not found.")


async def leaderboard(store) -> List[dict]:
    """Top approved coordinators by bonusAmount, grouped by category"""
    coordinators = await store.get(COORDINATORS) or {}
    approved = [
        {
            "userId": key,
            "name": c.get("name"),
            "category": c.get("category") or "N/A",
            "bonusAmount": as_number(c.get("bonusAmount")) or 0,
        }
        for key, c in coordinators.items()
        if isinstance(c, dict) and str(c.get("status") or "").lower() == "approved"
    ]
    top = sorted(approved, key=lambda c: -c["bonusAmount"])[:LEADERBOARD_SIZE]

    grouped = {}
    for entry in top:
        grouped.setdefault(entry["category"], []).append(entry)
    return [{"category": category, "topCoordinators": entries} for category, entries in grouped.items()]


async def achievements(store, coordinator_id: str) -> List[dict]:
    stored = await store.get(join_path(COORDINATORS, coordinator_id, "achievements")) or {}
    return [{"id": key, **value} for key, value in stored.items() if isinstance(value, dict)]
