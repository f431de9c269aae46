"""
GQC certificates

Issued when a live attempt reaches the live maximum. Stored under the
student (gio-students/<uid>/certificateCodes/<code>) and mirrored into
the global certificateCodes/<code> index used for verification.

The code is allocated before anything is written so the certificate can
join the attempt's multi-path update.
"""

import logging
import random
from datetime import datetime
from typing import Dict, Iterable, Optional

from olympiad.core.errors import Conflict, NotFound, ValidationFailed
from olympiad.core.store import CERTIFICATES, STUDENTS, join_path

logger = logging.getLogger(__name__)

CERTIFICATE_TYPE = "GQC"
MAX_CODE_ATTEMPTS = 20


def certificate_code(prefix: str, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{prefix}-{rng.randint(1000, 9999)}"


async def allocate_certificate_code(store, prefix: str, rng: Optional[random.Random] = None) -> str:
    """
    Pick a code not yet in the global index

    Raises:
        Conflict: If no free code was found after MAX_CODE_ATTEMPTS draws
    """
    for _ in range(MAX_CODE_ATTEMPTS):
        code = certificate_code(prefix, rng)
        if await store.get(join_path(CERTIFICATES, code)) is None:
            return code
    raise Conflict("Could not allocate a unique certificate code")


def build_certificate(code: str, name: Optional[str], school_name: Optional[str], ranks: dict) -> dict:
    return {
        "code": code,
        "name": name or "Unknown",
        "schoolName": school_name or "Unknown School",
        "ranks": ranks,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


def certificate_updates(uid: str, certificate: dict) -> Dict[str, dict]:
    """Both copies of one certificate, keyed by root-relative path"""
    code = certificate["code"]
    return {
        join_path(STUDENTS, uid, "certificateCodes", code): certificate,
        join_path(CERTIFICATES, code): {
            **certificate,
            "uid": uid,
            "type": CERTIFICATE_TYPE,
            "createdAt": certificate["timestamp"],
        },
    }


def index_removals(codes: Iterable[str]) -> Dict[str, None]:
    """Paths that drop the given codes from the global index"""
    return {join_path(CERTIFICATES, code): None for code in codes}


async def verify_certificate(store, code: str) -> dict:
    code = (code or "").strip()
    if not code:
        raise ValidationFailed("Certificate code is required.")

    record = await store.get(join_path(CERTIFICATES, code))
    if not record:
        raise NotFound("Invalid certificate code.")

    return {
        "code": record.get("code", code),
        "name": record.get("name"),
        "schoolName": record.get("schoolName"),
        "ranks": record.get("ranks") or {},
        "timestamp": record.get("timestamp"),
    }
