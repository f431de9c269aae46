import pytest
from conftest import auth, run, xlsx_upload

from olympiad.core.errors import ValidationFailed
from olympiad.core.spreadsheet import read_rows, validate_upload
from olympiad.roster.roster_service import import_students

STUDENT_HEADER = (
    "name", "username", "password", "PhoneNumber", "teacherPhoneNumber", "whatsappNumber",
    "standard", "schoolName", "country", "state", "city", "practiceTestsAttempted", "mockScore", "liveScore",
)


def student_row(username, school="Springfield High", mock=None, live=None, practice=None, **overrides):
    row = {
        "name": username.title(), "username": username, "password": "pw123", "PhoneNumber": 9000000000,
        "teacherPhoneNumber": "9000000001", "whatsappNumber": "9000000002", "standard": "8th",
        "schoolName": school, "country": "India", "state": "Goa", "city": "Panaji",
        "practiceTestsAttempted": practice, "mockScore": mock, "liveScore": live,
    }
    row.update(overrides)
    return tuple(row[h] for h in STUDENT_HEADER)


# ==================== SPREADSHEET ====================

def test_read_rows_skips_blank_rows_and_keeps_sheet_numbers():
    content = xlsx_upload([("name", "username"), ("A", "a"), (None, None), (" B ", 7.0)])["file"][1]
    assert read_rows(content) == [(2, {"name": "A", "username": "a"}), (4, {"name": "B", "username": 7})]


@pytest.mark.parametrize("filename,content,message", [
    (None, b"x", "No file uploaded."),
    ("roster.csv", b"x", "Only .xlsx files are allowed."),
    ("roster.xlsx", b"", "Uploaded file is empty."),
    ("roster.xlsx", b"x" * 11, "File too large. Maximum size is 0MB."),
])
def test_upload_validation(filename, content, message):
    with pytest.raises(ValidationFailed) as exc:
        validate_upload(filename, content, max_bytes=10)
    assert exc.value.message == message


def test_unreadable_workbook():
    with pytest.raises(ValidationFailed, match="Could not read spreadsheet"):
        read_rows(b"definitely not a zip")


# ==================== STUDENTS ====================

def test_import_students_batches_and_reports_failures(store, tables):
    rows = [
        (2, {"name": "A", "username": "a", "password": "p"}),
        (3, dict(zip(STUDENT_HEADER, student_row("bob")))),
        (4, dict(zip(STUDENT_HEADER, student_row("BOB ")))),
        (5, dict(zip(STUDENT_HEADER, student_row("cy", practice=12)))),
        (6, dict(zip(STUDENT_HEADER, student_row("dee")))),
    ]
    rows = [(n, {k: v for k, v in r.items() if v is not None}) for n, r in rows]
    report = run(import_students(store, rows, batch_size=2, added_by="c1"))

    assert report.success_count == 3
    reasons = {f["row"]: f["reason"] for f in report.failed_entries}
    assert reasons[2].startswith("Missing required fields: PhoneNumber")
    assert reasons[4] == "Username 'BOB ' already exists"
    assert all("password" not in f["student"] for f in report.failed_entries)

    # 3 accepted rows in batches of 2
    batches = [values for path, values in store.updates if path == "gio-students"]
    assert [len(b) for b in batches] == [2, 1]

    students = store.data["gio-students"].values()
    cy = next(s for s in students if s["username"] == "cy")
    assert cy["practiceTestsAttempted"] == 12
    assert cy["addedBy"] == "c1"
    assert cy["PhoneNumber"] == "9000000000"


def test_coordinator_upload_seeds_scores(client, store, coordinator):
    user_id, token = coordinator
    files = xlsx_upload([
        STUDENT_HEADER,
        student_row("eve", mock=99, live=400),
        student_row("fay", mock=150),
        student_row("gil"),
    ])
    resp = client.post("/api/coordinator/bulk-upload", headers=auth(token), files=files)
    assert resp.status_code == 200
    body = resp.json()

    assert body["successCount"] == 2
    assert body["failedEntries"][0]["row"] == 3
    assert body["failedEntries"][0]["reason"] == "mockScore must be a number between 0 and 100"
    assert body["totalPracticeTests"] == 1
    assert body["finalPracticeTests"] == 1

    eve = next(s for s in store.data["gio-students"].values() if s["username"] == "eve")
    assert eve["ranks"]["live"]["global"] == {"rank": 1, "category": "Gold"}
    assert len(eve["certificateCodes"]) == 1
    assert store.data["coordinators"][user_id]["totalStudents"] == 2

    listed = client.get("/api/coordinator/students", headers=auth(token)).json()["students"]
    assert {s["username"] for s in listed.values()} == {"eve", "gil"}
    assert all("password" not in s for s in listed.values())


def test_pending_coordinator_cannot_upload(client, store, coordinator):
    user_id, token = coordinator
    store.data["coordinators"][user_id]["status"] = "pending"
    files = xlsx_upload([STUDENT_HEADER, student_row("eve")])
    assert client.post("/api/coordinator/bulk-upload", headers=auth(token), files=files).status_code == 403


def test_upload_rejects_non_xlsx(client, coordinator):
    _, token = coordinator
    resp = client.post("/api/coordinator/bulk-upload", headers=auth(token),
                       files={"file": ("roster.csv", b"a,b\n1,2", "text/csv")})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only .xlsx files are allowed."


# ==================== COORDINATORS ====================

def test_admin_coordinator_upload_requires_known_category(client, store, admin_token):
    header = ("email", "password", "phoneNumber", "whatsappNumber", "country", "state", "city", "name", "category")
    files = xlsx_upload([
        header,
        ("one@example.com", "pw", "1", "1", "India", "Goa", "Panaji", "One", "gold partner"),
        ("two@example.com", "pw", "2", "2", "India", "Goa", "Panaji", "Two", "Diamond"),
        ("ONE@example.com", "pw", "3", "3", "India", "Goa", "Panaji", "Dup", "Bronze Partner"),
        ("three@example.com", "pw", "4", "4", "India", "Goa", "Panaji", "Three", None),
    ])
    resp = client.post("/api/admin/coordinator/bulk-upload", headers=auth(admin_token), files=files)
    body = resp.json()

    assert body["successCount"] == 1
    reasons = [f["reason"] for f in body["failedEntries"]]
    assert reasons == [
        'Invalid category "Diamond"',
        "Email 'ONE@example.com' already registered",
        "Missing required fields: category",
    ]

    (created,) = store.data["coordinators"].values()
    assert created["category"] == "Gold Partner"
    assert created["status"] == "approved"

    login = client.post("/api/coordinator/login", json={"email": "one@example.com", "password": "pw"})
    assert login.status_code == 200
