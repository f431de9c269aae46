"""
Persistence gateway over the Firebase Realtime Database
Everything is addressed by slash separated paths: <collection>/<id>/<subpath>
"""

import logging
from typing import Any, Optional, Tuple

import firebase_admin
from fastapi.concurrency import run_in_threadpool
from firebase_admin import credentials, db

from olympiad.core.config import Settings

logger = logging.getLogger(__name__)

# Top level collections
STUDENTS = "gio-students"
COORDINATORS = "coordinators"
SCHOOLS = "schools"
ADMINS = "admins"
CERTIFICATES = "certificateCodes"
REFERENCE_CODES = "reference_codes"
CALLBACKS = "RequestCallback"


def join_path(*parts: str) -> str:
    return "/".join(str(p).strip("/") for p in parts if p not in (None, ""))


def _fold(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ""


async def find_one(store, collection: str, field: str, value: Any) -> Tuple[Optional[str], Optional[dict]]:
    """
    Linear scan of a collection for a record whose field matches value
    (trimmed, case-insensitive). Returns (key, record) or (None, None)
    """
    wanted = _fold(value)
    if not wanted:
        return None, None
    records = await store.get(collection) or {}
    for key, record in records.items():
        if isinstance(record, dict) and _fold(record.get(field)) == wanted:
            return key, record
    return None, None


def without_secrets(record: Optional[dict]) -> dict:
    """Copy of a stored record without its password hash"""
    if not record:
        return {}
    return {k: v for k, v in record.items() if k != "password"}


def init_firebase(settings: Settings) -> firebase_admin.App:
    """
    Initialize the Firebase Admin SDK once per process

    Falls back to application default credentials when no service
    account is configured (e.g. on Cloud Run)
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    try:
        if settings.FIREBASE_PRIVATE_KEY and settings.FIREBASE_CLIENT_EMAIL:
            cred = credentials.Certificate({
                "type": "service_account",
                "project_id": settings.FIREBASE_PROJECT_ID,
                "private_key": settings.FIREBASE_PRIVATE_KEY,
                "client_email": settings.FIREBASE_CLIENT_EMAIL,
                "token_uri": "https://oauth2.googleapis.com/token",
            })
        else:
            cred = credentials.ApplicationDefault()
        app = firebase_admin.initialize_app(cred, {"databaseURL": settings.FIREBASE_DATABASE_URL})
    except Exception as e:
        raise RuntimeError(f"❌ FATAL: Firebase initialization failed: {e}")

    logger.info("✅ Firebase Admin SDK initialized")
    return app


class FirebaseStore:
    """
    Async facade over firebase_admin.db

    get    -> value or None when the path is absent
    set    -> full overwrite
    update -> shallow merge; keys may themselves be paths (multi-location update)
    """

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app

    def _ref(self, path: str):
        return db.reference(f"/{path}" if path else "/", app=self._app)

    async def get(self, path: str) -> Any:
        return await run_in_threadpool(self._ref(path).get)

    async def set(self, path: str, value: Any) -> None:
        await run_in_threadpool(self._ref(path).set, value)

    async def update(self, path: str, values: dict) -> None:
        if not values:
            return
        await run_in_threadpool(self._ref(path).update, values)

    async def delete(self, path: str) -> None:
        await run_in_threadpool(self._ref(path).delete)

    async def push(self, path: str, value: Any) -> str:
        new_ref = await run_in_threadpool(self._ref(path).push, value)
        return new_ref.key
