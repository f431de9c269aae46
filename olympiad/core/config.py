"""
Application configuration
Validated once at start-up and shared through app.state
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from olympiad.students.student_models import TestType

DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings:
    """Validated configuration - fails fast on missing vars"""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._env = os.environ if environ is None else environ

        # Auth
        self.JWT_SECRET_KEY = self._require_env("JWT_SECRET_KEY")
        self.JWT_ALGORITHM = "HS256"
        self.STUDENT_TOKEN_EXPIRE_DAYS = self._int_env("STUDENT_TOKEN_EXPIRE_DAYS", 1)
        self.STAFF_TOKEN_EXPIRE_DAYS = self._int_env("STAFF_TOKEN_EXPIRE_DAYS", 30)
        # Lets the first admin register without a token; empty disables it
        self.ADMIN_SETUP_KEY = self._env.get("ADMIN_SETUP_KEY", "")

        # Firebase Realtime Database
        self.FIREBASE_DATABASE_URL = self._require_env("FIREBASE_DATABASE_URL")
        self.FIREBASE_PROJECT_ID = self._env.get("FIREBASE_PROJECT_ID", "")
        self.FIREBASE_CLIENT_EMAIL = self._env.get("FIREBASE_CLIENT_EMAIL", "")
        self.FIREBASE_PRIVATE_KEY = self._env.get("FIREBASE_PRIVATE_KEY", "").replace("\\n", "\n")

        # Scoring
        self.MOCK_MAX_SCORE = self._int_env("MOCK_MAX_SCORE", 100)
        self.LIVE_MAX_SCORE = self._int_env("LIVE_MAX_SCORE", 400)
        self.CERTIFICATE_PREFIX = self._env.get("CERTIFICATE_PREFIX", "GIO-GQC")
        self.DATA_DIR = Path(self._env.get("REFERENCE_DATA_DIR") or DEFAULT_DATA_DIR)

        # Bulk import
        self.BULK_BATCH_SIZE = self._int_env("BULK_BATCH_SIZE", 50)
        self.MAX_UPLOAD_BYTES = self._int_env("MAX_UPLOAD_MB", 5) * 1024 * 1024

        # Razorpay
        self.RAZORPAY_KEY_ID = self._env.get("RZP_KEY_ID", "")
        self.RAZORPAY_KEY_SECRET = self._env.get("RZP_SECRET_KEY", "")
        self.IFSC_LOOKUP_URL = self._env.get("IFSC_LOOKUP_URL", "https://ifsc.razorpay.com")

        # Mail
        self.MAIL_HOST = self._env.get("MAIL_HOST", "")
        self.MAIL_PORT = self._int_env("MAIL_PORT", 587)
        self.MAIL_USER = self._env.get("MAIL_USER", "")
        self.MAIL_PASSWORD = self._env.get("MAIL_PASS", "")
        self.MAIL_FROM = self._env.get("MAIL_FROM") or self.MAIL_USER
        self.MAIL_USE_TLS = self._env.get("MAIL_USE_TLS", "true").lower() != "false"

        self.LOG_LEVEL = self._env.get("LOG_LEVEL", "INFO").upper()

        if self.BULK_BATCH_SIZE < 1:
            raise RuntimeError("❌ FATAL: BULK_BATCH_SIZE must be at least 1")

    def _require_env(self, key: str) -> str:
        """Get required environment variable or crash"""
        value = self._env.get(key)
        if not value:
            raise RuntimeError(f"❌ FATAL: Missing required environment variable: {key}")
        return value

    def _int_env(self, key: str, default: int) -> int:
        raw = self._env.get(key)
        if raw in (None, ""):
            return default
        try:
            return int(raw)
        except ValueError:
            raise RuntimeError(f"❌ FATAL: {key} must be an integer, got {raw!r}")

    @property
    def max_scores(self) -> dict:
        return {TestType.MOCK: self.MOCK_MAX_SCORE, TestType.LIVE: self.LIVE_MAX_SCORE}

    def max_score(self, test_type: TestType) -> int:
        return self.max_scores[TestType(test_type)]
