import logging
import uuid
from datetime import datetime
from typing import Optional

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError, Conflict, NotFound, ValidationFailed
from olympiad.core.security import Role, create_token, hash_password, verify_password
from olympiad.core.store import CALLBACKS, STUDENTS, find_one, join_path, without_secrets
from olympiad.scoring.aggregator import empty_breakdown
from olympiad.scoring.certificates import index_removals
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.ranking import Rank
from olympiad.students.student_models import PaymentStatus, RankScope, TestType
from olympiad.students.student_schemas import (
    CallbackRequest, QuizSubmission, StudentLogin, StudentProfileUpdate, StudentRegister
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "name", "username", "PhoneNumber", "teacherPhoneNumber", "whatsappNumber",
    "standard", "schoolName", "country", "state", "city", "email",
)


def now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


def build_student_record(fields: dict, password_hash: str, added_by: Optional[str] = None) -> dict:
    """New gio-students/<uid> node; profile values are stored as strings"""
    uid = str(uuid.uuid4())
    record = {
        "uid": uid,
        "password": password_hash,
        "role": Role.STUDENT.value,
        "paymentStatus": PaymentStatus.UNPAID.value,
        "testCompleted": False,
        "practiceTestsAttempted": 0,
        "createdAt": now_iso(),
    }
    for key in PROFILE_FIELDS:
        value = fields.get(key)
        if value not in (None, ""):
            record[key] = str(value).strip()
    if added_by:
        record["addedBy"] = added_by
    return record


async def get_student(store, uid: str) -> dict:
    student = await store.get(join_path(STUDENTS, uid))
    if not student:
        raise NotFound("User not found.")
    return student


# ==================== AUTH ====================

async def register_student(store, settings: Settings, data: StudentRegister) -> dict:
    if data.password != data.confirmPassword:
        raise ValidationFailed("Password and confirm password do not match")

    existing_id, _ = await find_one(store, STUDENTS, "username", data.username)
    if existing_id:
        raise Conflict("Username already exists")

    record = build_student_record(data.dict(), await hash_password(data.password))
    await store.set(join_path(STUDENTS, record["uid"]), record)

    logger.info(f"[STUDENT] Registered {record['uid']} ({record['username']})")
    return {
        "uid": record["uid"],
        "username": record["username"],
        "token": create_token(settings, record["uid"], Role.STUDENT),
    }


async def login_student(store, settings: Settings, data: StudentLogin) -> dict:
    uid, student = await find_one(store, STUDENTS, "username", data.username)
    if not student or not await verify_password(data.password, student.get("password")):
        raise AuthorizationError("Invalid username or password")

    uid = student.get("uid") or uid
    return {
        "uid": uid,
        "username": student.get("username"),
        "token": create_token(settings, uid, Role.STUDENT),
    }


# ==================== PROFILE ====================

async def get_profile(store, uid: str) -> dict:
    return without_secrets(await get_student(store, uid))


async def delete_student(store, pipeline: ScoringPipeline, uid: str, student: dict) -> None:
    """
    Remove the record and its certificates from the global index in one
    update, then re-rank the school cohort it left
    """
    codes = list((student.get("certificateCodes") or {}).keys())
    await store.update("", {join_path(STUDENTS, uid): None, **index_removals(codes)})
    logger.info(f"[STUDENT] Deleted {uid} ({len(codes)} certificates revoked)")

    for test_type in TestType:
        await pipeline.refresh_school_ranks(student.get("schoolName"), test_type)


async def update_profile(store, pipeline: ScoringPipeline, uid: str, data: StudentProfileUpdate) -> Optional[dict]:
    """
    Apply the fields that were sent; returns None when the account was deleted
    """
    student = await get_student(store, uid)

    if data.deleteAccount:
        await delete_student(store, pipeline, uid, student)
        return None

    changes = data.dict(exclude_unset=True, exclude={"password", "confirmPassword", "deleteAccount", "uid"})
    updates = {k: str(v).strip() for k, v in changes.items() if v not in (None, "")}

    if "username" in updates:
        other_id, _ = await find_one(store, STUDENTS, "username", updates["username"])
        if other_id and other_id != uid:
            raise Conflict("Username already exists")

    if data.password:
        if data.confirmPassword is not None and data.password != data.confirmPassword:
            raise ValidationFailed("Passwords do not match.")
        updates["password"] = await hash_password(data.password)

    await store.update(join_path(STUDENTS, uid), updates)
    student.update(updates)
    return without_secrets(student)


async def set_payment_status(store, uid: str, status: PaymentStatus) -> dict:
    await get_student(store, uid)
    updates = {"paymentStatus": PaymentStatus(status).value}
    if PaymentStatus(status) == PaymentStatus.UNPAID:
        updates["testCompleted"] = False
    await store.update(join_path(STUDENTS, uid), updates)
    return updates


# ==================== QUIZ ====================

async def save_quiz_marks(pipeline: ScoringPipeline, uid: str, submission: QuizSubmission) -> dict:
    outcome = await pipeline.submit_quiz(
        uid,
        submission.type,
        [q.dict() for q in submission.questions],
        submission.selectedAnswers,
    )

    result = {
        "attemptId": outcome.attempt_id,
        "score": outcome.score,
        "total": outcome.total,
        "subjectMarks": outcome.subject_scores,
        "ranks": outcome.ranks,
    }
    if outcome.certificate:
        result["certificateCode"] = outcome.certificate["code"]
        result["name"] = outcome.certificate["name"]
        result["schoolName"] = outcome.certificate["schoolName"]
    return result


async def get_ranks(store, uid: str, test_type: TestType) -> dict:
    stored = await store.get(join_path(STUDENTS, uid, "ranks", TestType(test_type).value)) or {}
    return {scope.value: Rank.from_store(stored.get(scope.value)).dict() for scope in RankScope}


def count_attempts(student: dict) -> dict:
    marks = student.get("marks") if isinstance(student.get("marks"), dict) else {}
    return {
        t.value: len(marks[t.value]) if isinstance(marks.get(t.value), dict) else 0
        for t in TestType
    }


def attempt_totals(students) -> dict:
    """mock attempts count as practice tests, live attempts as final tests"""
    practice = 0
    final = 0
    for student in students:
        counts = count_attempts(student)
        practice += counts[TestType.MOCK.value]
        final += counts[TestType.LIVE.value]
    return {"totalPracticeTests": practice, "finalPracticeTests": final}


async def get_test_counts(store, uid: str) -> dict:
    return count_attempts(await get_student(store, uid))


async def get_subject_marks(store, uid: str) -> dict:
    student = await get_student(store, uid)
    stored = student.get("subjectMarks") if isinstance(student.get("subjectMarks"), dict) else {}

    subject_marks = {}
    for t in TestType:
        marks = {name: entry.dict() for name, entry in empty_breakdown().items()}
        marks.update(stored.get(t.value) or {})
        subject_marks[t.value] = marks

    return {"standard": student.get("standard") or "Unknown", "subjectMarks": subject_marks}


# ==================== PUBLIC ====================

async def request_callback(store, data: CallbackRequest) -> str:
    key = await store.push(CALLBACKS, {
        "name": data.name,
        "mobile": data.mobile,
        "message": data.message,
        "createdAt": now_iso(),
    })
    logger.info(f"[CALLBACK] Saved request {key}")
    return key
