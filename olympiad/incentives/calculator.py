"""
Coordinator incentive calculation

Only students added by the coordinator whose payment status is "paid"
count. The calculation is idempotent: it always overwrites the stored
fields on coordinators/<id>.
"""

import logging
from datetime import datetime
from typing import Iterable, List

from pydantic import BaseModel

from olympiad.core.errors import NotFound
from olympiad.core.store import COORDINATORS, STUDENTS, join_path
from olympiad.scoring.tables import CategoryTier, EngagementTier, ReferenceTables
from olympiad.students.student_models import PaymentStatus, StudentRecord, load_students

logger = logging.getLogger(__name__)

INCENTIVE_PAYMENT_STATUS = PaymentStatus.PAID.value


class IncentiveSummary(BaseModel):
    category: str
    totalRegistrations: int
    totalIncentives: int
    bonusAmount: int
    totalEarnings: int

    def to_store(self, calculated_at: str) -> dict:
        return {
            "category": self.category,
            "totalPaidStudents": self.totalRegistrations,
            "totalIncentives": self.totalIncentives,
            "bonusAmount": self.bonusAmount,
            "totalEarnings": self.totalEarnings,
            "lastIncentiveCalculation": calculated_at,
        }


# ==================== PURE CALCULATION ====================

def determine_category(count: int, tiers: List[CategoryTier]) -> CategoryTier:
    for tier in tiers:
        if tier.contains(count):
            return tier
    return tiers[0]


def engagement_bonus(practice_tests_attempted: int, tiers: List[EngagementTier]) -> int:
    """tiers must be ordered highest threshold first"""
    for tier in tiers:
        if practice_tests_attempted >= tier.threshold:
            return tier.bonus
    return 0


def counts_towards_incentives(student: StudentRecord, coordinator_id: str) -> bool:
    return student.added_by == coordinator_id and student.payment_status == INCENTIVE_PAYMENT_STATUS


def calculate_incentives(paid_students: Iterable[StudentRecord], tables: ReferenceTables) -> IncentiveSummary:
    paid_students = list(paid_students)
    count = len(paid_students)
    tier = determine_category(count, tables.category_tiers)

    base = count * tier.per_student
    bonus = sum(
        engagement_bonus(s.practice_tests_attempted, tables.engagement_tiers)
        for s in paid_students
    )

    return IncentiveSummary(
        category=tier.name,
        totalRegistrations=count,
        totalIncentives=base,
        bonusAmount=bonus,
        totalEarnings=base + bonus,
    )


# ==================== STORE BACKED ====================

async def recalculate_coordinator_incentives(store, tables: ReferenceTables, coordinator_id: str) -> IncentiveSummary:
    """Recompute from the current student records and overwrite the coordinator's fields"""
    coordinator = await store.get(join_path(COORDINATORS, coordinator_id))
    if not coordinator:
        raise NotFound("Coordinator not found.")

    students = load_students(await store.get(STUDENTS))
    paid = [s for s in students if counts_towards_incentives(s, coordinator_id)]

    summary = calculate_incentives(paid, tables)
    await store.update(
        join_path(COORDINATORS, coordinator_id),
        summary.to_store(datetime.utcnow().isoformat() + "Z"),
    )

    logger.info(
        f"[INCENTIVES] {coordinator_id}: {summary.totalRegistrations} paid students, "
        f"{summary.category}, earnings {summary.totalEarnings}"
    )
    return summary
