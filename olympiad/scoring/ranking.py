"""
Rank resolution

Table scopes (global, country, state):
  score == max score       -> rank 1, Gold
  score not in the table   -> Unranked / Unranked
  otherwise                -> random rank inside the entry's "start to end" range

  The random pick means the same score can resolve to different ranks on
  different submissions. Consumers (certificates) snapshot the value once.

School scope is computed from the whole cohort instead of a table, see
rank_school_cohort()
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from pydantic import BaseModel

from olympiad.scoring.tables import RankEntry
from olympiad.students.student_models import StudentRecord, TestType, as_number, same_school

logger = logging.getLogger(__name__)

UNRANKED = "Unranked"
TOP_CATEGORY = "Gold"

# (last rank of the band, category)
SCHOOL_BANDS = ((10, "Gold"), (20, "Silver"), (30, "Bronze"))
SCHOOL_FALLBACK_CATEGORY = "Participant"


class Rank(BaseModel):
    rank: Union[int, str]
    category: str

    @classmethod
    def unranked(cls) -> "Rank":
        return cls(rank=UNRANKED, category=UNRANKED)

    @classmethod
    def from_store(cls, raw) -> "Rank":
        if not isinstance(raw, dict) or raw.get("rank") is None:
            return cls.unranked()
        return cls(rank=raw["rank"], category=raw.get("category") or UNRANKED)


# ==================== TABLE SCOPES ====================

def resolve_rank(
    score,
    max_score: int,
    table: Dict[int, RankEntry],
    rng: Optional[random.Random] = None,
) -> Rank:
    number = as_number(score)
    if number is None:
        return Rank.unranked()
    if number == max_score:
        return Rank(rank=1, category=TOP_CATEGORY)

    entry = table.get(number) if isinstance(number, int) else None
    if entry is None:
        return Rank.unranked()

    rng = rng or random
    return Rank(rank=rng.randint(entry.start, entry.end), category=entry.category)


# ==================== SCHOOL SCOPE ====================

def school_category(rank: int) -> str:
    for last_rank, category in SCHOOL_BANDS:
        if 1 <= rank <= last_rank:
            return category
    return SCHOOL_FALLBACK_CATEGORY


@dataclass
class SchoolStanding:
    uid: str
    name: str
    total_marks: Union[int, float]
    latest_timestamp: Optional[datetime]
    rank: int = 0
    category: str = SCHOOL_FALLBACK_CATEGORY

    def to_rank(self) -> Rank:
        return Rank(rank=self.rank, category=self.category)

    def to_response(self) -> dict:
        return {
            "uid": self.uid,
            "name": self.name,
            "totalMarks": self.total_marks,
            "timestamp": self.latest_timestamp.isoformat() + "Z" if self.latest_timestamp else None,
            "rank": self.rank,
            "category": self.category,
        }


def _standing_for(student: StudentRecord, test_type: TestType) -> SchoolStanding:
    total = 0
    latest = None
    for attempt in student.attempts_for(test_type):
        if not attempt.is_rankable:
            continue
        total += attempt.score
        if latest is None or attempt.timestamp > latest:
            latest = attempt.timestamp
    return SchoolStanding(uid=student.uid, name=student.name, total_marks=total, latest_timestamp=latest)


def _sort_key(standing: SchoolStanding):
    # total desc, then earlier timestamp, then timestamped before untimestamped
    return (
        -standing.total_marks,
        standing.latest_timestamp is None,
        standing.latest_timestamp or datetime.min,
        standing.uid,
    )


def rank_school_cohort(students: Iterable[StudentRecord], test_type: TestType) -> List[SchoolStanding]:
    """
    Rank one school's students for one test type

    A student starts a new rank (their 1-based position) when their total
    differs from the previous row or their latest timestamp is strictly
    later than the previous row's. Otherwise they share the previous rank.
    """
    standings = sorted((_standing_for(s, test_type) for s in students), key=_sort_key)

    current_rank = 0
    previous = None
    for position, standing in enumerate(standings, start=1):
        if previous is None or standing.total_marks != previous.total_marks:
            current_rank = position
        elif standing.latest_timestamp is not None and (
            previous.latest_timestamp is None or standing.latest_timestamp > previous.latest_timestamp
        ):
            current_rank = position
        standing.rank = current_rank
        standing.category = school_category(current_rank)
        previous = standing

    return standings


def school_cohort(students: Iterable[StudentRecord], school_name: str) -> List[StudentRecord]:
    return [s for s in students if same_school(s.school_name, school_name)]
