from fastapi import APIRouter, Depends, File, UploadFile
from olympiad.core.config import Settings
from olympiad.core.dependencies import (
    CurrentUser, get_bank_lookup, get_mailer, get_pipeline, get_settings,
    get_store, get_tables, require_approved_coordinator, require_role
)
from olympiad.core.security import Role
from olympiad.core.spreadsheet import read_upload
from olympiad.coordinators.coordinator_schemas import (
    CoordinatorLogin, CoordinatorProfileUpdate, CoordinatorRegister, VerifyDetailsRequest
)
from olympiad.coordinators import coordinator_service as service
from olympiad.incentives.calculator import recalculate_coordinator_incentives
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import ReferenceTables
from olympiad.students.student_schemas import CoordinatorPaymentStatusUpdate

router = APIRouter(prefix="/api/coordinator", tags=["Coordinators"])

current_coordinator = require_role(Role.COORDINATOR)

# ==================== AUTH ====================

@router.post("/register", status_code=201)
async def register(
    data: CoordinatorRegister,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
    tables: ReferenceTables = Depends(get_tables),
    mailer=Depends(get_mailer)
):
    """
    Create a pending coordinator account

    A welcome email is attempted; delivery failure does not fail registration
    """
    result = await service.register_coordinator(store, settings, tables, mailer, data)
    return {
        "status": "success",
        "message": "Coordinator registered successfully! Your account is pending admin approval.",
        **result
    }

@router.post("/login")
async def login(
    data: CoordinatorLogin,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    result = await service.login_coordinator(store, settings, data)
    return {"status": "success", "message": "Login successful!", **result}

# ==================== PROFILE ====================

@router.get("/profile")
async def get_profile(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    return {"status": "success", "data": await service.get_profile(store, user.uid)}

@router.put("/update-profile")
async def update_profile(
    data: CoordinatorProfileUpdate,
    user: CurrentUser = Depends(current_coordinator),
    store=Depends(get_store),
    bank_lookup=Depends(get_bank_lookup)
):
    """
    Save payout details; bank name and branch come from the IFSC lookup
    """
    updates = await service.update_profile(store, bank_lookup, user.uid, data)
    return {"status": "success", "message": "Profile updated successfully!", "data": updates}

@router.post("/verify-details")
async def verify_details(
    data: VerifyDetailsRequest,
    user: CurrentUser = Depends(current_coordinator),
    store=Depends(get_store),
    bank_lookup=Depends(get_bank_lookup)
):
    result = await service.verify_details(store, bank_lookup, user.uid, data)
    return {"status": "success", "message": "Verification successful.", **result}

# ==================== STUDENTS ====================

@router.post("/bulk-upload")
async def bulk_upload(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(require_approved_coordinator),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    """
    Import students from .xlsx (approved coordinators only)

    - students are tagged with addedBy = this coordinator
    - mockScore / liveScore columns are recorded as attempts and ranked
    - totalStudents is incremented by the number of accepted rows
    """
    rows = await read_upload(file, settings.MAX_UPLOAD_BYTES)
    result = await service.bulk_upload_students(store, pipeline, settings, user.uid, rows)
    return {"status": "success", "message": "Bulk upload completed.", **result}

@router.get("/students")
async def list_students(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    students = await service.list_students(store, user.uid)
    return {"status": "success", "students": students}

@router.get("/test-counts")
async def get_test_counts(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    return {"status": "success", **await service.get_test_counts(store, user.uid)}

@router.put("/update-payment-status")
async def update_payment_status(
    data: CoordinatorPaymentStatusUpdate,
    user: CurrentUser = Depends(require_approved_coordinator),
    store=Depends(get_store),
    tables: ReferenceTables = Depends(get_tables)
):
    """
    Change the payment status of one of this coordinator's students,
    then recalculate incentives
    """
    summary = await service.update_student_payment_status(
        store, tables, user.uid, data.studentId, data.paymentStatus
    )
    return {
        "status": "success",
        "message": "Payment status updated and incentives recalculated.",
        "data": summary.dict()
    }

# ==================== INCENTIVES ====================

@router.post("/calculate-incentives")
async def calculate_incentives(
    user: CurrentUser = Depends(require_approved_coordinator),
    store=Depends(get_store),
    tables: ReferenceTables = Depends(get_tables)
):
    summary = await recalculate_coordinator_incentives(store, tables, user.uid)
    return {"status": "success", "message": "Incentives calculated successfully!", "data": summary.dict()}

@router.get("/rank")
async def partner_rank(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    return {"status": "success", "data": await service.partner_rank(store, user.uid)}

@router.get("/leaderboard")
async def leaderboard(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    return {"status": "success", "leaderboard": await service.leaderboard(store)}

@router.get("/achievements")
async def achievements(user: CurrentUser = Depends(current_coordinator), store=Depends(get_store)):
    return {"status": "success", "achievements": await service.achievements(store, user.uid)}
