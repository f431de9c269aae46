"""
Score -> rank -> certificate pipeline

    submission ──► aggregate subjects ──► attempt + subjectMarks ─┐
                     global / country / state (bucket tables) ───┤
                     school cohort resort (attempt counted) ─────┤
                     certificate (live max, code allocated) ─────┤
                                                                 ▼
                                               one multi-path write
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from olympiad.core.errors import NotFound, ValidationFailed
from olympiad.core.store import STUDENTS, join_path
from olympiad.scoring.aggregator import aggregate_subject_scores, breakdown_to_store, breakdown_total
from olympiad.scoring.certificates import allocate_certificate_code, build_certificate, certificate_updates
from olympiad.scoring.ranking import Rank, SchoolStanding, rank_school_cohort, resolve_rank, school_cohort
from olympiad.scoring.tables import ReferenceTables
from olympiad.students.student_models import (
    TABLE_SCOPES, RankScope, SubjectScore, TestType, as_number, load_students
)

logger = logging.getLogger(__name__)


def attempt_id_for(moment: datetime) -> str:
    """test-2025-01-31T10-15-00-123Z"""
    stamp = moment.isoformat(timespec="milliseconds") + "Z"
    return "test-" + stamp.replace(":", "-").replace(".", "-")


@dataclass
class ScoreOutcome:
    attempt_id: str
    test_type: TestType
    score: Any
    total: int
    ranks: Dict[str, dict] = field(default_factory=dict)
    subject_scores: Dict[str, dict] = field(default_factory=dict)
    certificate: Optional[dict] = None


class ScoringPipeline:
    """
    Collaborators are injected so tests can pass an in-memory store and a
    seeded random source
    """

    def __init__(
        self,
        store,
        tables: ReferenceTables,
        certificate_prefix: str = "GIO-GQC",
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.tables = tables
        self.certificate_prefix = certificate_prefix
        self.rng = rng or random.Random()

    # ==================== ENTRY POINTS ====================

    async def submit_quiz(
        self,
        uid: str,
        test_type: TestType,
        questions: Sequence[Mapping[str, Any]],
        answers: Sequence[Any],
    ) -> ScoreOutcome:
        """Score a quiz submission server-side and run it through the pipeline"""
        breakdown = aggregate_subject_scores(questions, answers)
        return await self.record_score(
            uid, test_type, breakdown_total(breakdown), subject_scores=breakdown
        )

    async def record_score(
        self,
        uid: str,
        test_type: TestType,
        score,
        subject_scores: Optional[Dict[str, SubjectScore]] = None,
    ) -> ScoreOutcome:
        """
        Persist one attempt and recompute every rank that depends on it

        Used directly for scores seeded by coordinator bulk imports, which
        carry no per-subject breakdown
        """
        test_type = TestType(test_type)
        max_score = self.tables.max_score(test_type)

        number = as_number(score)
        if number is None or number < 0 or number > max_score:
            raise ValidationFailed(f"{test_type.value} score must be between 0 and {max_score}.")

        student = await self.store.get(join_path(STUDENTS, uid))
        if not student:
            raise NotFound("User not found.")
        if not student.get("standard"):
            raise ValidationFailed("User standard is not defined.")

        now = datetime.utcnow()
        attempt_id = attempt_id_for(now)
        attempt = {
            "score": number,
            "total": max_score,
            "timestamp": now.isoformat(timespec="milliseconds") + "Z",
        }
        subject_marks = breakdown_to_store(subject_scores) if subject_scores is not None else None
        if subject_marks is not None:
            attempt["subjectScores"] = subject_marks

        ranks = {k: r.dict() for k, r in self.resolve_table_ranks(number, test_type).items()}

        base = join_path(STUDENTS, uid)
        updates = {join_path(base, "marks", test_type.value, attempt_id): attempt}
        for scope, rank in ranks.items():
            updates[join_path(base, "ranks", test_type.value, scope)] = rank
        if subject_marks is not None:
            updates[join_path(base, "subjectMarks", test_type.value)] = subject_marks
        if test_type == TestType.MOCK:
            practice = int(as_number(student.get("practiceTestsAttempted")) or 0)
            updates[join_path(base, "practiceTestsAttempted")] = practice + 1

        try:
            standings = await self.school_standings(
                student.get("schoolName"), test_type, pending=(uid, attempt_id, attempt)
            )
        except Exception as e:
            logger.error(f"[PIPELINE] School ranking failed for {uid}, saving attempt without it: {e}")
            standings = []
        updates.update(school_rank_updates(standings, test_type))
        for standing in standings:
            if standing.uid == uid:
                ranks[RankScope.SCHOOL.value] = standing.to_rank().dict()

        certificate = None
        if test_type == TestType.LIVE and number == max_score:
            code = await allocate_certificate_code(self.store, self.certificate_prefix, self.rng)
            certificate = build_certificate(code, student.get("name"), student.get("schoolName"), dict(ranks))
            updates.update(certificate_updates(uid, certificate))

        await self.store.update("", updates)

        logger.info(f"[PIPELINE] {uid} {test_type.value} attempt {attempt_id}: {number}/{max_score}")
        if standings:
            logger.info(f"[PIPELINE] Re-ranked {len(standings)} students of '{student['schoolName'].strip()}' ({test_type.value})")
        if certificate:
            logger.info(f"[CERTIFICATE] Issued {certificate['code']} to {uid}")

        return ScoreOutcome(
            attempt_id=attempt_id,
            test_type=test_type,
            score=number,
            total=max_score,
            ranks=ranks,
            subject_scores=subject_marks or {},
            certificate=certificate,
        )

    # ==================== RANKS ====================

    def resolve_table_ranks(self, score, test_type: TestType) -> Dict[str, Rank]:
        max_score = self.tables.max_score(test_type)
        return {
            scope.value: resolve_rank(score, max_score, self.tables.rank_table(test_type, scope), self.rng)
            for scope in TABLE_SCOPES
        }

    async def school_standings(
        self,
        school_name: Optional[str],
        test_type: TestType,
        pending: Optional[Tuple[str, str, dict]] = None,
    ) -> List[SchoolStanding]:
        """
        Rank the whole school cohort from stored attempts

        `pending` is an (uid, attempt id, attempt) not yet written, counted
        as if it were stored
        """
        if not school_name or not school_name.strip():
            logger.warning("[PIPELINE] Student has no schoolName, skipping school ranking")
            return []

        raw = await self.store.get(STUDENTS) or {}
        if pending is not None:
            uid, attempt_id, attempt = pending
            record = dict(raw.get(uid) or {})
            marks = dict(record.get("marks") or {})
            marks[TestType(test_type).value] = {**(marks.get(TestType(test_type).value) or {}), attempt_id: attempt}
            record["marks"] = marks
            raw = {**raw, uid: record}

        return rank_school_cohort(school_cohort(load_students(raw), school_name), test_type)

    async def refresh_school_ranks(self, school_name: Optional[str], test_type: TestType) -> List[SchoolStanding]:
        """Resort the whole school cohort and rewrite every member's school rank"""
        standings = await self.school_standings(school_name, test_type)
        if standings:
            await self.store.update("", school_rank_updates(standings, test_type))
            logger.info(f"[PIPELINE] Re-ranked {len(standings)} students of '{school_name.strip()}' ({TestType(test_type).value})")
        return standings


def school_rank_updates(standings: Sequence[SchoolStanding], test_type: TestType) -> Dict[str, dict]:
    return {
        join_path(STUDENTS, s.uid, "ranks", TestType(test_type).value, RankScope.SCHOOL.value): s.to_rank().dict()
        for s in standings
    }
