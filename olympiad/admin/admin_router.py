from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from olympiad.core.config import Settings
from olympiad.core.dependencies import (
    CurrentUser, get_mailer, get_pipeline, get_rng, get_settings, get_store, get_tables,
    require_admin_registrar, require_role
)
from olympiad.core.security import Role
from olympiad.core.spreadsheet import read_upload
from olympiad.admin.admin_schemas import (
    AdminLogin, AdminRegister, CoordinatorAction, ReferenceCodeCheck, ReferenceCodeCreate
)
from olympiad.admin import admin_service as service
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables
from olympiad.students import student_service
from olympiad.students.student_schemas import AdminStudentUpdate

router = APIRouter(prefix="/api/admin", tags=["Admin"])

current_admin = require_role(Role.ADMIN)

# ==================== AUTH ====================

@router.post("/register", status_code=201)
async def register(
    data: AdminRegister,
    registrar: Optional[CurrentUser] = Depends(require_admin_registrar),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    """
    Needs an admin token, or the X-Admin-Setup-Key header for the first admin
    """
    result = await service.register_admin(store, settings, data)
    return {"status": "success", "message": "Admin registered successfully", **result}

@router.post("/login")
async def login(
    data: AdminLogin,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    result = await service.login_admin(store, settings, data)
    return {"status": "success", "message": "Admin logged in successfully", **result}

# ==================== STUDENTS ====================

@router.get("/students")
async def list_students(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    students = await service.list_students(store)
    return {"status": "success", "count": len(students), "students": students}

@router.post("/bulk-upload")
async def bulk_upload_students(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    rows = await read_upload(file, settings.MAX_UPLOAD_BYTES)
    result = await service.bulk_upload_students(store, pipeline, settings, rows)
    return {"status": "success", "message": "Bulk upload completed.", **result}

@router.post("/students/update")
async def update_student(
    data: AdminStudentUpdate,
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    """
    Edit any student's profile, or delete the account with deleteAccount=true
    """
    updated = await student_service.update_profile(store, pipeline, data.uid, data)
    if updated is None:
        return {"status": "success", "message": "Student account deleted successfully."}
    return {"status": "success", "message": "Student profile updated successfully.", "user": updated}

@router.get("/request-callbacks")
async def request_callbacks(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "requestCallbacks": await service.list_request_callbacks(store)}

# ==================== SCHOOLS & REFERENCE CODES ====================

@router.get("/schools")
async def list_schools(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "schools": await service.list_schools(store)}

@router.post("/generate-reference-code", status_code=201)
async def generate_reference_code(
    data: ReferenceCodeCreate,
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store),
    rng=Depends(get_rng)
):
    record = await service.generate_reference_code(store, data, rng)
    return {"status": "success", **record}

@router.post("/validate-reference-code")
async def validate_reference_code(data: ReferenceCodeCheck, store=Depends(get_store)):
    """Public: used by registration forms before an account exists"""
    record = await service.validate_reference_code(store, data.referenceCode)
    return {"status": "success", "valid": True, "schoolName": record.get("schoolName")}

@router.get("/reference-codes")
async def list_reference_codes(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "referenceCodes": await service.list_reference_codes(store)}

# ==================== COORDINATORS ====================

@router.get("/coordinators")
async def list_coordinators(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "coordinators": await service.list_coordinators(store)}

@router.get("/coordinators/pending")
async def pending_coordinators(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "coordinators": await service.list_coordinators(store, "pending")}

@router.get("/coordinators/approved")
async def approved_coordinators(user: CurrentUser = Depends(current_admin), store=Depends(get_store)):
    return {"status": "success", "coordinators": await service.list_coordinators(store, "approved")}

@router.post("/coordinators/approve")
async def approve_coordinator(
    data: CoordinatorAction,
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store),
    mailer=Depends(get_mailer)
):
    updates = await service.approve_coordinator(store, mailer, data.uid)
    return {"status": "success", "message": "Coordinator approved successfully", "data": updates}

@router.delete("/coordinators/delete")
async def delete_coordinator(
    data: CoordinatorAction,
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store)
):
    await service.delete_coordinator(store, data.uid)
    return {"status": "success", "message": "Coordinator deleted successfully"}

@router.get("/coordinators/payment-details")
async def coordinator_payment_details(
    userId: str = Query(..., min_length=1),
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store)
):
    return {"status": "success", "paymentDetails": await service.coordinator_payment_details(store, userId)}

@router.post("/coordinator/bulk-upload")
async def bulk_upload_coordinators(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(current_admin),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
    tables: ReferenceTables = Depends(get_tables)
):
    """
    Import coordinators from .xlsx; each row's category must name a tier
    and imported coordinators are approved immediately
    """
    rows = await read_upload(file, settings.MAX_UPLOAD_BYTES)
    result = await service.bulk_upload_coordinators(store, tables, settings, rows)
    return {"status": "success", "message": "Coordinator bulk upload completed.", **result}
