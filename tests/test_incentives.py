from conftest import auth, run, student_record

from olympiad.incentives.calculator import (
    calculate_incentives, determine_category, engagement_bonus, recalculate_coordinator_incentives
)
from olympiad.students.student_models import StudentRecord


def paid_students(count, practice=0, coordinator="c1"):
    return [
        StudentRecord(uid=f"s{i}", payment_status="paid", practice_tests_attempted=practice, added_by=coordinator)
        for i in range(count)
    ]


def test_tier_boundaries(tables):
    summary = calculate_incentives(paid_students(100), tables)
    assert summary.category == "Starter Partner"
    assert summary.totalIncentives == 7500

    summary = calculate_incentives(paid_students(101), tables)
    assert summary.category == "Bronze Partner"
    assert summary.totalIncentives == 8585

    assert determine_category(0, tables.category_tiers).name == "Starter Partner"
    assert determine_category(5000, tables.category_tiers).name == "Platinum Partner"


def test_engagement_bonus_thresholds(tables):
    bonuses = [engagement_bonus(n, tables.engagement_tiers) for n in (0, 4, 5, 9, 10, 19, 20, 49, 50, 500)]
    assert bonuses == [0, 0, 5, 5, 10, 10, 15, 15, 20, 20]


def test_earnings_add_bonus_to_base(tables):
    students = paid_students(2, practice=50) + paid_students(1, practice=5)
    summary = calculate_incentives(students, tables)
    assert summary.totalRegistrations == 3
    assert summary.totalIncentives == 3 * 75
    assert summary.bonusAmount == 20 + 20 + 5
    assert summary.totalEarnings == 225 + 45


def test_recalculation_counts_only_own_paid_students(store, tables):
    store.data = {
        "coordinators": {"c1": {"userId": "c1", "status": "approved"}},
        "gio-students": {
            "a": student_record("a", addedBy="c1", paymentStatus="paid", practiceTestsAttempted=12),
            "b": student_record("b", addedBy="c1", paymentStatus="paid_but_not_attempted"),
            "c": student_record("c", addedBy="c1", paymentStatus="unpaid"),
            "d": student_record("d", addedBy="c2", paymentStatus="paid"),
        },
    }
    summary = run(recalculate_coordinator_incentives(store, tables, "c1"))
    assert summary.totalRegistrations == 1
    assert summary.bonusAmount == 10

    stored = store.data["coordinators"]["c1"]
    assert stored["totalPaidStudents"] == 1
    assert stored["totalEarnings"] == 85
    assert stored["category"] == "Starter Partner"
    assert stored["lastIncentiveCalculation"].endswith("Z")

    # idempotent
    again = run(recalculate_coordinator_incentives(store, tables, "c1"))
    assert again == summary


def test_payment_status_change_recalculates(client, store, coordinator):
    user_id, token = coordinator
    store.data["gio-students"] = {
        "s1": student_record("s1", addedBy=user_id, practiceTestsAttempted=20),
        "s2": student_record("s2", addedBy="someone-else"),
    }

    resp = client.put("/api/coordinator/update-payment-status", headers=auth(token),
                      json={"studentId": "s1", "paymentStatus": "paid"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "category": "Starter Partner",
        "totalRegistrations": 1,
        "totalIncentives": 75,
        "bonusAmount": 15,
        "totalEarnings": 90,
    }
    assert store.data["coordinators"][user_id]["totalEarnings"] == 90

    resp = client.put("/api/coordinator/update-payment-status", headers=auth(token),
                      json={"studentId": "s2", "paymentStatus": "paid"})
    assert resp.status_code == 403

    resp = client.put("/api/coordinator/update-payment-status", headers=auth(token),
                      json={"studentId": "s1", "paymentStatus": "unpaid"})
    assert resp.json()["data"]["totalEarnings"] == 0
    assert store.data["gio-students"]["s1"]["testCompleted"] is False


def test_pending_coordinator_cannot_calculate(client, store, coordinator):
    user_id, token = coordinator
    store.data["coordinators"][user_id]["status"] = "pending"
    resp = client.post("/api/coordinator/calculate-incentives", headers=auth(token))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Your account is pending approval."


def test_leaderboard_and_partner_rank(client, store, coordinator):
    user_id, token = coordinator
    store.data["coordinators"].update({
        "x": {"name": "X", "status": "approved", "category": "Gold Partner", "bonusAmount": 300, "totalEarnings": 900},
        "y": {"name": "Y", "status": "pending", "category": "Gold Partner", "bonusAmount": 999, "totalEarnings": 50},
    })
    store.data["coordinators"][user_id].update({"bonusAmount": 10, "totalEarnings": 100})

    board = client.get("/api/coordinator/leaderboard", headers=auth(token)).json()["leaderboard"]
    names = [c["name"] for group in board for c in group["topCoordinators"]]
    assert names == ["X", "Ravi Kumar"]

    rank = client.get("/api/coordinator/rank", headers=auth(token)).json()["data"]
    assert rank == {"rank": 2, "totalCoordinators": 3, "totalEarnings": 100}
