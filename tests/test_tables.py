import json

import pytest

from olympiad.scoring.tables import (
    ReferenceTableError, build_category_tiers, build_engagement_tiers, build_rank_table,
    load_reference_tables, parse_rank_range
)
from olympiad.students.student_models import RankScope, TestType


def tier(name, lo, hi, pay):
    return {"name": name, "min": lo, "max": hi, "perStudent": pay}


def test_shipped_tables_load(tables):
    assert tables.category_names == [
        "Starter Partner", "Bronze Partner", "Silver Partner", "Gold Partner", "Platinum Partner"
    ]
    assert [t.threshold for t in tables.engagement_tiers] == [50, 20, 10, 5, 0]
    assert tables.max_score(TestType.MOCK) == 100
    assert tables.max_score(TestType.LIVE) == 400
    assert tables.rank_table(TestType.LIVE, RankScope.GLOBAL)[399].start == 2


def test_tier_lookup_by_name_is_case_insensitive(tables):
    assert tables.tier_named(" gold partner ").per_student == 110
    assert tables.tier_named("Diamond") is None


def test_category_tiers_must_be_contiguous_from_zero():
    with pytest.raises(ReferenceTableError, match="contiguous"):
        build_category_tiers([tier("A", 1, 100, 75), tier("B", 101, None, 85)])
    with pytest.raises(ReferenceTableError, match="contiguous"):
        build_category_tiers([tier("A", 0, 100, 75), tier("B", 150, None, 85)])


def test_only_last_tier_is_unbounded():
    with pytest.raises(ReferenceTableError, match="unbounded"):
        build_category_tiers([tier("A", 0, None, 75), tier("B", 101, None, 85)])
    with pytest.raises(ReferenceTableError, match="must be unbounded"):
        build_category_tiers([tier("A", 0, 100, 75), tier("B", 101, 200, 85)])


def test_tier_payout_must_be_positive():
    with pytest.raises(ReferenceTableError, match="positive"):
        build_category_tiers([tier("A", 0, None, 0)])


def test_tiers_are_sorted_by_min():
    tiers = build_category_tiers([tier("B", 11, None, 85), tier("A", 0, 10, 75)])
    assert [t.name for t in tiers] == ["A", "B"]
    assert tiers[0].contains(10) and not tiers[0].contains(11)
    assert tiers[1].contains(10 ** 6)


def test_engagement_tiers_validated_and_sorted():
    tiers = build_engagement_tiers([{"threshold": 5, "bonus": 5}, {"threshold": 50, "bonus": 20}])
    assert [t.threshold for t in tiers] == [50, 5]

    with pytest.raises(ReferenceTableError, match="unique"):
        build_engagement_tiers([{"threshold": 5, "bonus": 5}, {"threshold": 5, "bonus": 6}])
    with pytest.raises(ReferenceTableError, match="non-negative"):
        build_engagement_tiers([{"threshold": -1, "bonus": 5}])


def test_rank_range_parsing():
    assert parse_rank_range("1500 to 2400") == (1500, 2400)
    for bad in ("1500-2400", "x to 5", "9 to 3", "0 to 3"):
        with pytest.raises(ReferenceTableError):
            parse_rank_range(bad)


def test_rank_table_rejects_duplicate_scores():
    entry = {"score": 90, "rankRange": "2 to 10", "category": "Gold"}
    with pytest.raises(ReferenceTableError, match="duplicate"):
        build_rank_table([entry, dict(entry)], source="t.json")


def test_missing_rank_file_fails_loading(tmp_path):
    (tmp_path / "tiers.json").write_text(json.dumps({
        "categoryTiers": [tier("Only", 0, None, 75)],
        "engagementTiers": [],
    }))
    with pytest.raises(ReferenceTableError, match="Missing reference data file"):
        load_reference_tables(tmp_path, {TestType.MOCK: 100, TestType.LIVE: 400})


def test_invalid_json_fails_loading(tmp_path):
    (tmp_path / "tiers.json").write_text("{not json")
    with pytest.raises(ReferenceTableError, match="Invalid JSON"):
        load_reference_tables(tmp_path, {TestType.MOCK: 100, TestType.LIVE: 400})
