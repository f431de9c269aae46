import asyncio
import copy
import random
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from olympiad.core.config import Settings
from olympiad.core.errors import ValidationFailed
from olympiad.core.store import join_path
from olympiad.coordinators.bank_lookup import is_valid_ifsc
from olympiad.main import create_app
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import load_reference_tables


TEST_ENV = {
    "JWT_SECRET_KEY": "test-secret-key",
    "FIREBASE_DATABASE_URL": "https://olympiad-test.firebaseio.com",
    "BULK_BATCH_SIZE": "2",
    "LOG_LEVEL": "WARNING",
    "ADMIN_SETUP_KEY": "test-setup-key",
}


class MemoryStore:
    """Path addressed dict tree with Realtime Database update semantics"""

    def __init__(self, data=None):
        self.data = copy.deepcopy(data) if data else {}
        self.updates = []
        self._pushes = 0

    @staticmethod
    def _parts(path):
        return [p for p in str(path).split("/") if p]

    def _read(self, path):
        node = self.data
        for part in self._parts(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _write(self, path, value):
        parts = self._parts(path)
        if not parts:
            self.data = copy.deepcopy(value) if isinstance(value, dict) else {}
            return
        node = self.data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = copy.deepcopy(value)

    async def get(self, path):
        return copy.deepcopy(self._read(path))

    async def set(self, path, value):
        self._write(path, value)

    async def update(self, path, values):
        if not values:
            return
        # Realtime Database rejects a multi-path update where one path contains another
        paths = sorted(self._parts(join_path(path, key)) for key in values)
        for parent, child in zip(paths, paths[1:]):
            if child[:len(parent)] == parent:
                raise ValueError(f"Path {'/'.join(parent)} is an ancestor of {'/'.join(child)}")
        self.updates.append((path, copy.deepcopy(values)))
        for key, value in values.items():
            self._write(join_path(path, key), value)

    async def delete(self, path):
        self._write(path, None)

    async def push(self, path, value):
        self._pushes += 1
        key = f"-push{self._pushes:04d}"
        self._write(join_path(path, key), value)
        return key


class FakeMailer:

    def __init__(self):
        self.sent = []

    async def send(self, subject, to_address, text_body, html_body=None):
        self.sent.append({"subject": subject, "to": to_address, "text": text_body})
        return True


class FakePayments:

    def __init__(self):
        self.orders = []

    async def create_order(self, amount_rupees, receipt):
        order = {"orderId": f"order_{len(self.orders) + 1}", "amount": int(round(amount_rupees * 100)), "currency": "INR"}
        self.orders.append((order, receipt))
        return order


class FakeBankLookup:
    """SBIN0000001 resolves, any other well-formed code is unknown"""

    async def lookup(self, ifsc):
        if not is_valid_ifsc(ifsc):
            raise ValidationFailed("Invalid IFSC code format.")
        if ifsc.upper() != "SBIN0000001":
            raise ValidationFailed("Invalid IFSC code.")
        return {"bankName": "State Bank of India", "branch": "Main Branch", "ifsc": ifsc.upper()}


def run(coro):
    return asyncio.run(coro)


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def xlsx_upload(rows, name="roster.xlsx"):
    """rows[0] is the header row"""
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return {"file": (name, buffer.getvalue(), "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")}


def student_record(uid, school="Springfield High", standard="7th", **extra):
    record = {
        "uid": uid,
        "name": uid.title(),
        "username": uid,
        "schoolName": school,
        "standard": standard,
        "paymentStatus": "unpaid",
        "practiceTestsAttempted": 0,
    }
    record.update(extra)
    return record


# ==================== FIXTURES ====================

@pytest.fixture
def settings():
    return Settings(environ=TEST_ENV)


@pytest.fixture(scope="session")
def tables():
    return load_reference_tables(Settings(environ=TEST_ENV).DATA_DIR, Settings(environ=TEST_ENV).max_scores)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def pipeline(store, tables, rng):
    return ScoringPipeline(store, tables, "GIO-GQC", rng)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def app(settings, store, tables, mailer, payments, rng):
    return create_app(
        settings=settings,
        store=store,
        tables=tables,
        mailer=mailer,
        payments=payments,
        bank_lookup=FakeBankLookup(),
        rng=rng,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def student_token(client):
    resp = client.post("/api/gio/register", json={
        "name": "Asha Rao",
        "username": "asha",
        "password": "secret1",
        "confirmPassword": "secret1",
        "PhoneNumber": "9876543210",
        "standard": "7th",
        "schoolName": "Springfield High",
        "country": "India",
        "state": "Karnataka",
        "city": "Mysuru",
    })
    assert resp.status_code == 201
    return resp.json()["token"]


@pytest.fixture
def admin_token(client):
    resp = client.post("/api/admin/register", headers={"X-Admin-Setup-Key": "test-setup-key"}, json={
        "name": "Root Admin",
        "email": "admin@example.com",
        "password": "admin-pass",
        "confirmPassword": "admin-pass",
    })
    assert resp.status_code == 201
    return resp.json()["token"]


@pytest.fixture
def coordinator(client, store):
    """(userId, token) for an approved coordinator"""
    resp = client.post("/api/coordinator/register", json={
        "email": "coord@example.com",
        "password": "coord-pass",
        "phoneNumber": "9000000001",
        "whatsappNumber": "9000000001",
        "country": "India",
        "state": "Karnataka",
        "city": "Mysuru",
        "name": "Ravi Kumar",
    })
    assert resp.status_code == 201
    user_id = resp.json()["data"]["userId"]
    run(store.update(join_path("coordinators", user_id), {"status": "approved"}))
    login = client.post("/api/coordinator/login", json={"email": "coord@example.com", "password": "coord-pass"})
    return user_id, login.json()["token"]
