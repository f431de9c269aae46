"""
Bulk roster import from .xlsx

Rows are processed one by one. A row that fails validation goes into
failedEntries with its sheet row number and a reason; it never stops the
rest of the upload. Accepted rows are written in batches, one multi-path
update per batch.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from olympiad.core.errors import OlympiadError
from olympiad.core.security import Role, hash_password
from olympiad.core.spreadsheet import Row
from olympiad.core.store import COORDINATORS, STUDENTS, without_secrets
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables
from olympiad.students.student_models import TestType, as_number
from olympiad.students.student_service import build_student_record

logger = logging.getLogger(__name__)

STUDENT_REQUIRED = (
    "name", "username", "password", "PhoneNumber", "teacherPhoneNumber",
    "whatsappNumber", "standard", "schoolName", "country", "state", "city",
)

COORDINATOR_REQUIRED = (
    "email", "password", "phoneNumber", "whatsappNumber",
    "country", "state", "city", "name", "category",
)

COORDINATOR_FIELDS = ("name", "phoneNumber", "whatsappNumber", "country", "state", "city")

# spreadsheet column -> test type for coordinator seeded scores
SEED_COLUMNS = (("mockScore", TestType.MOCK), ("liveScore", TestType.LIVE))


@dataclass
class ImportReport:
    entity: str
    success_count: int = 0
    created_ids: List[str] = field(default_factory=list)
    failed_entries: List[dict] = field(default_factory=list)
    score_errors: List[dict] = field(default_factory=list)

    def fail(self, row_number: int, row: dict, reason: str) -> None:
        logger.warning(f"[BULK] {self.entity} row {row_number} rejected: {reason}")
        self.failed_entries.append({
            "row": row_number,
            self.entity: without_secrets(row),
            "reason": reason,
        })

    def to_response(self) -> dict:
        response = {
            "successCount": self.success_count,
            "failedCount": len(self.failed_entries),
            "failedEntries": self.failed_entries,
        }
        if self.score_errors:
            response["scoreErrors"] = self.score_errors
        return response


def missing_fields(row: dict, required: Sequence[str]) -> List[str]:
    return [name for name in required if row.get(name) in (None, "")]


def _fold(value) -> str:
    return str(value).strip().lower() if value is not None else ""


def _existing_values(records: Optional[dict], key: str) -> set:
    if not isinstance(records, dict):
        return set()
    return {_fold(r.get(key)) for r in records.values() if isinstance(r, dict) and r.get(key)}


def batched(items: List[Tuple[str, dict]], size: int) -> Iterable[List[Tuple[str, dict]]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ==================== STUDENTS ====================

def _seed_scores(row: dict, tables: ReferenceTables) -> Tuple[Dict[TestType, object], Optional[str]]:
    """mockScore / liveScore columns -> {TestType: score}, or a rejection reason"""
    seeds = {}
    for column, test_type in SEED_COLUMNS:
        raw = row.get(column)
        if raw in (None, ""):
            continue
        score = as_number(raw)
        max_score = tables.max_score(test_type)
        if score is None or score < 0 or score > max_score:
            return {}, f"{column} must be a number between 0 and {max_score}"
        if score:
            seeds[test_type] = score
    return seeds, None


async def import_students(
    store,
    rows: List[Row],
    batch_size: int,
    added_by: Optional[str] = None,
    pipeline: Optional[ScoringPipeline] = None,
) -> ImportReport:
    """
    Create student accounts from spreadsheet rows

    When a pipeline is given, non-zero mockScore /
    liveScore columns are recorded as attempts after the batch is written.
    """
    report = ImportReport(entity="student")
    taken = _existing_values(await store.get(STUDENTS), "username")

    accepted: List[Tuple[str, dict]] = []
    seeds: Dict[str, Dict[TestType, object]] = {}

    for row_number, row in rows:
        try:
            missing = missing_fields(row, STUDENT_REQUIRED)
            if missing:
                report.fail(row_number, row, f"Missing required fields: {', '.join(missing)}")
                continue

            username = _fold(row["username"])
            if username in taken:
                report.fail(row_number, row, f"Username '{row['username']}' already exists")
                continue

            row_seeds = {}
            if pipeline is not None:
                row_seeds, problem = _seed_scores(row, pipeline.tables)
                if problem:
                    report.fail(row_number, row, problem)
                    continue

            record = build_student_record(row, await hash_password(str(row["password"])), added_by=added_by)
            practice = as_number(row.get("practiceTestsAttempted"))
            if practice and practice > 0:
                record["practiceTestsAttempted"] = int(practice)
        except (OlympiadError, ValueError, TypeError) as e:
            report.fail(row_number, row, str(e))
            continue

        taken.add(username)
        accepted.append((record["uid"], record))
        if row_seeds:
            seeds[record["uid"]] = row_seeds

    for batch in batched(accepted, batch_size):
        await store.update(STUDENTS, dict(batch))
        report.success_count += len(batch)
        report.created_ids.extend(uid for uid, _ in batch)
        logger.info(f"[BULK] Wrote batch of {len(batch)} students")

        for uid, _ in batch:
            for test_type, score in seeds.get(uid, {}).items():
                try:
                    await pipeline.record_score(uid, test_type, score)
                except OlympiadError as e:
                    logger.warning(f"[BULK] Could not record {test_type.value} score for {uid}: {e.message}")
                    report.score_errors.append({"uid": uid, "type": test_type.value, "reason": e.message})

    return report


# ==================== COORDINATORS ====================

def build_coordinator_record(fields: dict, password_hash: str, category: str, status: str) -> dict:
    user_id = str(uuid.uuid4())
    record = {
        "userId": user_id,
        "email": str(fields["email"]).strip().lower(),
        "password": password_hash,
        "role": Role.COORDINATOR.value,
        "status": status,
        "category": category,
        "totalStudents": 0,
        "totalPaidStudents": 0,
        "totalIncentives": 0,
        "bonusAmount": 0,
        "totalEarnings": 0,
        "createdAt": datetime.utcnow().isoformat() + "Z",
    }
    for key in COORDINATOR_FIELDS:
        value = fields.get(key)
        if value not in (None, ""):
            record[key] = str(value).strip()
    return record


async def import_coordinators(store, rows: List[Row], tables: ReferenceTables, batch_size: int) -> ImportReport:
    """Coordinators created by an admin are approved immediately"""
    report = ImportReport(entity="coordinator")
    taken = _existing_values(await store.get(COORDINATORS), "email")

    accepted: List[Tuple[str, dict]] = []
    for row_number, row in rows:
        try:
            missing = missing_fields(row, COORDINATOR_REQUIRED)
            if missing:
                report.fail(row_number, row, f"Missing required fields: {', '.join(missing)}")
                continue

            tier = tables.tier_named(str(row["category"]))
            if tier is None:
                report.fail(row_number, row, f"Invalid category \"{row['category']}\"")
                continue

            email = _fold(row["email"])
            if email in taken:
                report.fail(row_number, row, f"Email '{row['email']}' already registered")
                continue

            record = build_coordinator_record(row, await hash_password(str(row["password"])), tier.name, "approved")
        except (OlympiadError, ValueError, TypeError) as e:
            report.fail(row_number, row, str(e))
            continue

        taken.add(email)
        accepted.append((record["userId"], record))

    for batch in batched(accepted, batch_size):
        await store.update(COORDINATORS, dict(batch))
        report.success_count += len(batch)
        report.created_ids.extend(uid for uid, _ in batch)
        logger.info(f"[BULK] Wrote batch of {len(batch)} coordinators")

    return report
