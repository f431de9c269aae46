from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from olympiad.core.config import Settings
from olympiad.core.dependencies import CurrentUser, get_pipeline, get_settings, get_store, require_role
from olympiad.core.security import Role
from olympiad.core.spreadsheet import read_upload
from olympiad.schools.school_schemas import SchoolLogin, SchoolRegister
from olympiad.schools import school_service as service
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.students.student_models import TestType

router = APIRouter(prefix="/api/school", tags=["Schools"])

current_school = require_role(Role.SCHOOL)

# ==================== AUTH ====================

@router.post("/register", status_code=201)
async def register(
    data: SchoolRegister,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    result = await service.register_school(store, settings, data)
    return {"status": "success", "message": "School registered successfully!", **result}

@router.post("/login")
async def login(
    data: SchoolLogin,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    result = await service.login_school(store, settings, data)
    return {"status": "success", "message": "Login successful!", **result}

# ==================== STUDENTS ====================

@router.post("/bulk-upload")
async def bulk_upload(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(current_school),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    rows = await read_upload(file, settings.MAX_UPLOAD_BYTES)
    result = await service.bulk_upload_students(store, pipeline, settings, rows)
    return {"status": "success", "message": "Bulk upload completed.", **result}

@router.get("/fetch-users")
async def fetch_users(
    standard: Optional[str] = Query(None),
    user: CurrentUser = Depends(current_school),
    store=Depends(get_store)
):
    """
    Students of this school with marks, certificates and ranks

    ?standard=7 and ?standard=7th are equivalent
    """
    users = await service.fetch_users(store, user.uid, standard)
    return {"status": "success", "count": len(users), "users": users}

# ==================== REPORTS ====================

@router.get("/representative")
async def representative(user: CurrentUser = Depends(current_school), store=Depends(get_store)):
    return {"status": "success", **await service.representative(store, user.uid)}

@router.get("/subject-marks")
async def subject_marks(user: CurrentUser = Depends(current_school), store=Depends(get_store)):
    return {"status": "success", "subjectMarks": await service.subject_marks(store, user.uid)}

@router.get("/rankings")
async def rankings(
    type: TestType = Query(...),
    user: CurrentUser = Depends(current_school),
    store=Depends(get_store)
):
    return {"status": "success", "rankings": await service.rankings(store, user.uid, type)}
