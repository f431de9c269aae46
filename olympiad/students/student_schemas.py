from pydantic import BaseModel, Field, validator
from typing import Any, List, Optional
from olympiad.students.student_models import PaymentStatus, TestType

# ==================== AUTH ====================

class StudentRegister(BaseModel):
    """
    Self-registration
    Optional fields can be filled in later through /update-profile
    """
    name: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    confirmPassword: str = ""
    PhoneNumber: str = Field(..., min_length=1)
    teacherPhoneNumber: Optional[str] = None
    whatsappNumber: Optional[str] = None
    standard: Optional[str] = None
    schoolName: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None

    @validator('username')
    def normalize_username(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Username is required')
        return v

class StudentLogin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

# ==================== PROFILE ====================

class StudentProfileUpdate(BaseModel):
    """
    Partial update: only the fields that are sent are changed
    deleteAccount=True removes the record instead
    """
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    confirmPassword: Optional[str] = None
    PhoneNumber: Optional[str] = None
    teacherPhoneNumber: Optional[str] = None
    whatsappNumber: Optional[str] = None
    standard: Optional[str] = None
    schoolName: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    email: Optional[str] = None
    deleteAccount: bool = False

class AdminStudentUpdate(StudentProfileUpdate):
    uid: str = Field(..., min_length=1)

class PaymentStatusUpdate(BaseModel):
    paymentStatus: PaymentStatus

class CoordinatorPaymentStatusUpdate(BaseModel):
    studentId: str = Field(..., min_length=1)
    paymentStatus: PaymentStatus

# ==================== QUIZ ====================

class QuizQuestion(BaseModel):
    """Questions on a missing or unknown subject are dropped when scoring"""
    subject: Optional[Any] = None
    answer: Any = None

class QuizSubmission(BaseModel):
    """
    selectedAnswers is parallel to questions; null or "" means skipped
    score/total sent by older clients are ignored, both are computed here
    """
    type: TestType
    questions: List[QuizQuestion] = Field(..., min_length=1)
    selectedAnswers: List[Any]
    score: Optional[float] = None
    total: Optional[float] = None

    @validator('selectedAnswers')
    def answers_match_questions(cls, v, values):
        questions = values.get('questions')
        if questions is not None and len(v) > len(questions):
            raise ValueError('More answers than questions')
        return v

# ==================== PUBLIC ====================

class CertificateVerify(BaseModel):
    certificateCode: str = Field(..., min_length=1)

class CallbackRequest(BaseModel):
    name: str = Field(..., min_length=1)
    mobile: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
