import logging
import re
import uuid
from datetime import datetime
from typing import List, Optional

from olympiad.core.config import Settings
from olympiad.core.errors import AuthorizationError, Conflict, NotFound, ValidationFailed
from olympiad.core.security import Role, create_token, hash_password, verify_password
from olympiad.core.spreadsheet import Row
from olympiad.core.store import SCHOOLS, STUDENTS, find_one, join_path, without_secrets
from olympiad.roster.roster_service import import_students
from olympiad.scoring.aggregator import SUBJECTS, normalize_subject
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.ranking import rank_school_cohort, school_cohort
from olympiad.schools.school_schemas import SchoolLogin, SchoolRegister
from olympiad.students.student_models import TestType, as_number, load_students, same_school
from olympiad.students.student_service import attempt_totals

logger = logging.getLogger(__name__)

STUDENT_LIST_FIELDS = (
    "uid", "name", "username", "PhoneNumber", "teacherPhoneNumber", "whatsappNumber",
    "standard", "schoolName", "country", "state", "city", "paymentStatus",
    "testCompleted", "createdAt",
)


async def get_school(store, school_id: str) -> dict:
    school = await store.get(join_path(SCHOOLS, school_id))
    if not school:
        raise NotFound("School representative not found.")
    return school


def _school_students(all_students, school_name: str) -> List[dict]:
    if not isinstance(all_students, dict):
        return []
    return [
        s for s in all_students.values()
        if isinstance(s, dict) and same_school(s.get("schoolName"), school_name)
    ]


def standard_key(value) -> str:
    """'7th' / ' 7 ' / 7 -> '7'"""
    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))


# ==================== AUTH ====================

async def register_school(store, settings: Settings, data: SchoolRegister) -> dict:
    if data.password != data.confirmPassword:
        raise ValidationFailed("Password and confirm password do not match.")

    existing_id, _ = await find_one(store, SCHOOLS, "email", data.email)
    if existing_id:
        raise Conflict("Email is already in use.")

    uid = str(uuid.uuid4())
    await store.set(join_path(SCHOOLS, uid), {
        "uid": uid,
        "email": data.email,
        "password": await hash_password(data.password),
        "schoolName": data.schoolName,
        "principalName": data.principalName,
        "role": Role.SCHOOL.value,
        "createdAt": datetime.utcnow().isoformat() + "Z",
    })
    logger.info(f"[SCHOOL] Registered {uid} ({data.schoolName})")
    return {"uid": uid, "token": create_token(settings, uid, Role.SCHOOL)}


async def login_school(store, settings: Settings, data: SchoolLogin) -> dict:
    uid, school = await find_one(store, SCHOOLS, "email", data.email)
    if not school or not await verify_password(data.password, school.get("password")):
        raise AuthorizationError("Invalid email or password")
    return {"uid": uid, "token": create_token(settings, uid, Role.SCHOOL)}


# ==================== STUDENTS ====================

async def bulk_upload_students(store, pipeline: ScoringPipeline, settings: Settings, rows: List[Row]) -> dict:
    report = await import_students(store, rows, settings.BULK_BATCH_SIZE, pipeline=pipeline)
    logger.info(f"[BULK] School upload: {report.success_count} added, {len(report.failed_entries)} failed")
    return report.to_response()


async def fetch_users(store, school_id: str, standard: Optional[str] = None) -> List[dict]:
    """
    Students of the caller's school; standard filter accepts '7' or '7th'
    """
    school = await get_school(store, school_id)
    wanted = standard_key(standard) if standard else ""

    users = []
    for student in _school_students(await store.get(STUDENTS), school.get("schoolName")):
        if wanted and standard_key(student.get("standard")) != wanted:
            continue
        user = {k: student.get(k) for k in STUDENT_LIST_FIELDS}
        ranks = student.get("ranks") if isinstance(student.get("ranks"), dict) else {}
        user.update({
            "marks": student.get("marks") or {},
            "certificateCodes": student.get("certificateCodes") or {},
            "ranks": {t.value: ranks.get(t.value) or {} for t in TestType},
        })
        users.append(user)
    return users


async def representative(store, school_id: str) -> dict:
    school = await get_school(store, school_id)

    students = _school_students(await store.get(STUDENTS), school.get("schoolName"))
    return {
        "representative": {**without_secrets(school), "role": school.get("role") or Role.SCHOOL.value},
        "practiceTestCounts": attempt_totals(students),
    }


async def subject_marks(store, school_id: str) -> dict:
    """
    {type: {standard: {subject: [{studentName, marks}, ...]}}}, each list sorted by marks desc
    """
    school = await get_school(store, school_id)
    result = {t.value: {} for t in TestType}

    for student in _school_students(await store.get(STUDENTS), school.get("schoolName")):
        standard = standard_key(student.get("standard"))
        if not standard:
            logger.warning(f"[SCHOOL] Skipping {student.get('uid')}: missing or invalid standard")
            continue
        stored = student.get("subjectMarks") if isinstance(student.get("subjectMarks"), dict) else {}

        for t in TestType:
            by_subject = result[t.value].setdefault(standard, {name: [] for name in SUBJECTS.values()})
            for label, marks in (stored.get(t.value) or {}).items():
                subject = normalize_subject(label)
                score = as_number(marks.get("score")) if isinstance(marks, dict) else None
                if subject is None or score is None:
                    continue
                by_subject[subject].append({"studentName": student.get("name"), "marks": score})

    for by_standard in result.values():
        for by_subject in by_standard.values():
            for entries in by_subject.values():
                entries.sort(key=lambda e: -e["marks"])
    return result


async def rankings(store, school_id: str, test_type: TestType) -> List[dict]:
    """School-scope ranking computed on read, nothing is written"""
    school = await get_school(store, school_id)
    cohort = school_cohort(load_students(await store.get(STUDENTS)), school.get("schoolName"))
    return [s.to_response() for s in rank_school_cohort(cohort, test_type)]
