"""
Static reference tables
Category tiers, engagement bonus tiers and the per scope x test type
rank bucket tables. Loaded and validated once in create_app() and
shared read-only through app.state.tables
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from olympiad.students.student_models import TABLE_SCOPES, RankScope, TestType

logger = logging.getLogger(__name__)

TIERS_FILE = "tiers.json"
RANKS_DIR = "ranks"


class ReferenceTableError(Exception):
    """A static data file is missing or inconsistent"""


# ==================== TABLE ROWS ====================

@dataclass(frozen=True)
class CategoryTier:
    name: str
    min_count: int
    max_count: Optional[int]  # None = unbounded
    per_student: int

    def contains(self, count: int) -> bool:
        if count < self.min_count:
            return False
        return self.max_count is None or count <= self.max_count


@dataclass(frozen=True)
class EngagementTier:
    threshold: int
    bonus: int


@dataclass(frozen=True)
class RankEntry:
    score: int
    start: int
    end: int
    category: str


def parse_rank_range(text: str) -> Tuple[int, int]:
    """'1500 to 2400' -> (1500, 2400)"""
    parts = str(text).split(" to ")
    if len(parts) != 2:
        raise ReferenceTableError(f"Malformed rankRange: {text!r}")
    try:
        start, end = int(parts[0]), int(parts[1])
    except ValueError:
        raise ReferenceTableError(f"Malformed rankRange: {text!r}")
    if start < 1 or start > end:
        raise ReferenceTableError(f"rankRange must satisfy 1 <= start <= end: {text!r}")
    return start, end


# ==================== CONTAINER ====================

@dataclass
class ReferenceTables:
    """
    Everything the scoring and incentive code looks up

    category_tiers    ascending, contiguous from 0, last one unbounded
    engagement_tiers  highest threshold first
    rank_tables       {TestType: {RankScope: {score: RankEntry}}}
    max_scores        {TestType: int}
    """
    category_tiers: List[CategoryTier]
    engagement_tiers: List[EngagementTier]
    rank_tables: Dict[TestType, Dict[RankScope, Dict[int, RankEntry]]] = field(default_factory=dict)
    max_scores: Dict[TestType, int] = field(default_factory=dict)

    def rank_table(self, test_type: TestType, scope: RankScope) -> Dict[int, RankEntry]:
        return self.rank_tables.get(TestType(test_type), {}).get(RankScope(scope), {})

    def max_score(self, test_type: TestType) -> int:
        return self.max_scores[TestType(test_type)]

    def tier_named(self, name: str) -> Optional[CategoryTier]:
        wanted = (name or "").strip().lower()
        for tier in self.category_tiers:
            if tier.name.lower() == wanted:
                return tier
        return None

    @property
    def category_names(self) -> List[str]:
        return [tier.name for tier in self.category_tiers]


# ==================== VALIDATION ====================

def build_category_tiers(raw: list) -> List[CategoryTier]:
    if not isinstance(raw, list) or not raw:
        raise ReferenceTableError("categoryTiers must be a non-empty list")

    tiers = []
    for item in raw:
        try:
            tiers.append(CategoryTier(
                name=str(item["name"]),
                min_count=int(item["min"]),
                max_count=None if item.get("max") is None else int(item["max"]),
                per_student=int(item["perStudent"]),
            ))
        except (KeyError, TypeError, ValueError) as e:
            raise ReferenceTableError(f"Invalid category tier {item!r}: {e}")

    tiers.sort(key=lambda t: t.min_count)

    expected_min = 0
    for index, tier in enumerate(tiers):
        is_last = index == len(tiers) - 1
        if tier.min_count != expected_min:
            raise ReferenceTableError(
                f"Category tiers must be contiguous: '{tier.name}' starts at "
                f"{tier.min_count}, expected {expected_min}"
            )
        if tier.per_student <= 0:
            raise ReferenceTableError(f"Tier '{tier.name}' must have a positive payout")
        if tier.max_count is None:
            if not is_last:
                raise ReferenceTableError(f"Only the last tier may be unbounded ('{tier.name}')")
        else:
            if is_last:
                raise ReferenceTableError(f"Last tier '{tier.name}' must be unbounded")
            if tier.max_count < tier.min_count:
                raise ReferenceTableError(f"Tier '{tier.name}' has max < min")
            expected_min = tier.max_count + 1

    return tiers


def build_engagement_tiers(raw: list) -> List[EngagementTier]:
    if not isinstance(raw, list):
        raise ReferenceTableError("engagementTiers must be a list")

    tiers = []
    for item in raw:
        try:
            tiers.append(EngagementTier(threshold=int(item["threshold"]), bonus=int(item["bonus"])))
        except (KeyError, TypeError, ValueError) as e:
            raise ReferenceTableError(f"Invalid engagement tier {item!r}: {e}")

    thresholds = [t.threshold for t in tiers]
    if len(set(thresholds)) != len(thresholds):
        raise ReferenceTableError("Engagement thresholds must be unique")
    if any(t.threshold < 0 or t.bonus < 0 for t in tiers):
        raise ReferenceTableError("Engagement thresholds and bonuses must be non-negative")

    return sorted(tiers, key=lambda t: t.threshold, reverse=True)


def build_rank_table(raw: list, source: str = "") -> Dict[int, RankEntry]:
    if not isinstance(raw, list):
        raise ReferenceTableError(f"{source}: rank table must be a list")

    table = {}
    for item in raw:
        try:
            score = int(item["score"])
            start, end = parse_rank_range(item["rankRange"])
            category = str(item["category"])
        except (KeyError, TypeError, ValueError) as e:
            raise ReferenceTableError(f"{source}: invalid rank entry {item!r}: {e}")
        if score in table:
            raise ReferenceTableError(f"{source}: duplicate score {score}")
        table[score] = RankEntry(score=score, start=start, end=end, category=category)
    return table


# ==================== LOADING ====================

def _read_json(path: Path):
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        raise ReferenceTableError(f"Missing reference data file: {path}")
    except json.JSONDecodeError as e:
        raise ReferenceTableError(f"Invalid JSON in {path}: {e}")


def load_reference_tables(data_dir: Path, max_scores: Mapping[TestType, int]) -> ReferenceTables:
    """
    Read tiers.json and ranks/<test_type>/<scope>.json under data_dir

    Raises ReferenceTableError on the first problem found
    """
    data_dir = Path(data_dir)
    tiers = _read_json(data_dir / TIERS_FILE)
    if not isinstance(tiers, dict):
        raise ReferenceTableError(f"{TIERS_FILE} must hold an object")

    rank_tables = {}
    for test_type in TestType:
        rank_tables[test_type] = {}
        for scope in TABLE_SCOPES:
            path = data_dir / RANKS_DIR / test_type.value / f"{scope.value}.json"
            rank_tables[test_type][scope] = build_rank_table(_read_json(path), source=str(path))

    tables = ReferenceTables(
        category_tiers=build_category_tiers(tiers.get("categoryTiers")),
        engagement_tiers=build_engagement_tiers(tiers.get("engagementTiers", [])),
        rank_tables=rank_tables,
        max_scores={TestType(k): int(v) for k, v in max_scores.items()},
    )

    logger.info(
        f"[TABLES] Loaded {len(tables.category_tiers)} category tiers, "
        f"{len(tables.engagement_tiers)} engagement tiers, "
        f"{sum(len(t) for by_scope in rank_tables.values() for t in by_scope.values())} rank entries"
    )
    return tables
