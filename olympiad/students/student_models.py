import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

# ==================== ENUMS ====================

class TestType(str, Enum):
    MOCK = "mock"
    LIVE = "live"

class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    PAID_BUT_NOT_ATTEMPTED = "paid_but_not_attempted"

class RankScope(str, Enum):
    GLOBAL = "global"
    COUNTRY = "country"
    STATE = "state"
    SCHOOL = "school"

# Scopes resolved from the static bucket tables; school is computed from the cohort
TABLE_SCOPES = (RankScope.GLOBAL, RankScope.COUNTRY, RankScope.STATE)

# ==================== NORMALIZATION HELPERS ====================

LEGACY_TIMESTAMP = re.compile(r"^(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z$")

def as_number(value: Any) -> Optional[float]:
    """Coerce a stored score to int/float, None when it is not numeric"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string -> naive UTC datetime, None when absent or unparseable"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        # attempt ids carry the timestamp with ':' and '.' replaced by '-'
        legacy = LEGACY_TIMESTAMP.match(text)
        if legacy:
            text = "{}T{}:{}:{}.{}Z".format(*legacy.groups())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed

# ==================== SCORE RECORDS ====================

class SubjectScore(BaseModel):
    """Absent fields read as zero"""
    score: Union[int, float] = 0
    total: Union[int, float] = 0

    @classmethod
    def from_raw(cls, raw: Any) -> "SubjectScore":
        if not isinstance(raw, dict):
            return cls()
        return cls(score=as_number(raw.get("score")) or 0, total=as_number(raw.get("total")) or 0)


class Attempt(BaseModel):
    attempt_id: str
    score: Optional[Union[int, float]] = None
    total: Union[int, float] = 0
    subject_scores: Dict[str, SubjectScore] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @property
    def is_rankable(self) -> bool:
        """Only attempts with both a score and a timestamp count towards school totals"""
        return self.score is not None and self.timestamp is not None


def normalize_attempts(raw: Any) -> List[Attempt]:
    """
    marks/<type> as stored ({attempt_id: {...}}) -> typed attempts

    Anything that is not a mapping is ignored rather than raising, so one
    malformed legacy record cannot break ranking for a whole school.
    """
    if not isinstance(raw, dict):
        return []
    attempts = []
    for attempt_id, record in raw.items():
        if not isinstance(record, dict):
            continue
        subjects = record.get("subjectScores")
        attempts.append(Attempt(
            attempt_id=str(attempt_id),
            score=as_number(record.get("score")),
            total=as_number(record.get("total")) or 0,
            subject_scores={
                name: SubjectScore.from_raw(value)
                for name, value in (subjects.items() if isinstance(subjects, dict) else [])
            },
            timestamp=parse_timestamp(record.get("timestamp")),
        ))
    return attempts


class StudentRecord(BaseModel):
    """The parts of a gio-students/<uid> node the scoring code reads"""
    uid: str
    name: str = ""
    school_name: str = ""
    standard: str = ""
    payment_status: str = PaymentStatus.UNPAID.value
    practice_tests_attempted: int = 0
    added_by: Optional[str] = None
    attempts: Dict[TestType, List[Attempt]] = Field(default_factory=dict)

    @classmethod
    def from_store(cls, uid: str, raw: dict) -> "StudentRecord":
        marks = raw.get("marks") if isinstance(raw.get("marks"), dict) else {}
        standard = raw.get("standard")
        return cls(
            uid=raw.get("uid") or uid,
            name=raw.get("name") or "",
            school_name=raw.get("schoolName") or "",
            standard="" if standard is None else str(standard),
            payment_status=raw.get("paymentStatus") or PaymentStatus.UNPAID.value,
            practice_tests_attempted=int(as_number(raw.get("practiceTestsAttempted")) or 0),
            added_by=raw.get("addedBy"),
            attempts={t: normalize_attempts(marks.get(t.value)) for t in TestType},
        )

    def attempts_for(self, test_type: TestType) -> List[Attempt]:
        return self.attempts.get(TestType(test_type), [])


def same_school(a: Optional[str], b: Optional[str]) -> bool:
    """School names are compared trimmed and case-insensitively"""
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def load_students(raw_students: Any) -> List[StudentRecord]:
    if not isinstance(raw_students, dict):
        return []
    return [
        StudentRecord.from_store(uid, raw)
        for uid, raw in raw_students.items()
        if isinstance(raw, dict)
    ]
