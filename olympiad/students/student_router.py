from fastapi import APIRouter, Depends, Query
from olympiad.core.config import Settings
from olympiad.core.dependencies import (
    CurrentUser, get_pipeline, get_settings, get_store, require_role
)
from olympiad.core.security import Role
from olympiad.scoring.certificates import verify_certificate
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.students.student_models import TestType
from olympiad.students.student_schemas import (
    CallbackRequest, CertificateVerify, PaymentStatusUpdate,
    QuizSubmission, StudentLogin, StudentProfileUpdate, StudentRegister
)
from olympiad.students import student_service as service

router = APIRouter(prefix="/api/gio", tags=["Students"])

current_student = require_role(Role.STUDENT)

# ==================== AUTH ====================

@router.post("/register", status_code=201)
async def register(
    data: StudentRegister,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    """
    Create a student account and return a 1 day token
    """
    result = await service.register_student(store, settings, data)
    return {"status": "success", "message": "User registered successfully", **result}

@router.post("/login")
async def login(
    data: StudentLogin,
    store=Depends(get_store),
    settings: Settings = Depends(get_settings)
):
    result = await service.login_student(store, settings, data)
    return {"status": "success", "message": "Login successful", **result}

# ==================== PROFILE ====================

@router.get("/profile")
async def get_profile(user: CurrentUser = Depends(current_student), store=Depends(get_store)):
    """
    Own record without the password hash
    """
    return {"status": "success", "user": await service.get_profile(store, user.uid)}

@router.post("/update-profile")
async def update_profile(
    data: StudentProfileUpdate,
    user: CurrentUser = Depends(current_student),
    store=Depends(get_store),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    """
    Partial profile update

    - password is re-hashed when sent (confirmPassword must match if present)
    - deleteAccount=true deletes the record instead
    """
    updated = await service.update_profile(store, pipeline, user.uid, data)
    if updated is None:
        return {"status": "success", "message": "Student account deleted successfully."}
    return {"status": "success", "message": "Student profile updated successfully.", "user": updated}

@router.patch("/update-payment-status")
async def update_payment_status(
    data: PaymentStatusUpdate,
    user: CurrentUser = Depends(current_student),
    store=Depends(get_store)
):
    updates = await service.set_payment_status(store, user.uid, data.paymentStatus)
    return {"status": "success", "message": "Payment status updated successfully.", **updates}

# ==================== QUIZ ====================

@router.post("/save-quiz-marks")
async def save_quiz_marks(
    data: QuizSubmission,
    user: CurrentUser = Depends(current_student),
    pipeline: ScoringPipeline = Depends(get_pipeline)
):
    """
    Score a submission and update ranks

    Server-side flow:
    - subject scores from questions + selectedAnswers
    - attempt stored under marks/<type>/<attemptId>, subjectMarks/<type> overwritten
    - global / country / state ranks from the bucket tables
    - whole school cohort re-ranked
    - certificate issued when a live attempt reaches the maximum
    """
    result = await service.save_quiz_marks(pipeline, user.uid, data)
    message = f"{data.type.value.capitalize()} test marks saved successfully."
    if "certificateCode" in result:
        message = "Live test marks saved + certificate generated successfully."
    return {"status": "success", "message": message, **result}

@router.get("/get-rank")
async def get_rank(
    type: TestType = Query(...),
    user: CurrentUser = Depends(current_student),
    store=Depends(get_store)
):
    rankings = await service.get_ranks(store, user.uid, type)
    return {"status": "success", "rankings": rankings}

@router.get("/get-test-counts")
async def get_test_counts(user: CurrentUser = Depends(current_student), store=Depends(get_store)):
    counts = await service.get_test_counts(store, user.uid)
    return {"status": "success", **counts}

@router.get("/get-user-subject-marks")
async def get_user_subject_marks(user: CurrentUser = Depends(current_student), store=Depends(get_store)):
    return {"status": "success", **await service.get_subject_marks(store, user.uid)}

# ==================== PUBLIC ====================

@router.post("/verify")
async def verify_certificate_code(data: CertificateVerify, store=Depends(get_store)):
    """
    Look a certificate up by code (no auth)
    """
    certificate = await verify_certificate(store, data.certificateCode)
    return {"status": "success", "message": "Certificate verified successfully", **certificate}

@router.post("/request-callback")
async def request_callback(data: CallbackRequest, store=Depends(get_store)):
    key = await service.request_callback(store, data)
    return {"status": "success", "message": "Request callback saved successfully!", "id": key}
