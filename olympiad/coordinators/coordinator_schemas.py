import re
from pydantic import BaseModel, Field, validator
from typing import Optional

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# ==================== AUTH ====================

class CoordinatorRegister(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    phoneNumber: str = Field(..., min_length=1)
    whatsappNumber: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v

class CoordinatorLogin(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

# ==================== PAYOUT DETAILS ====================

class CoordinatorProfileUpdate(BaseModel):
    """
    Payout details; bank name and branch are filled from the IFSC lookup
    """
    upiId: str = Field(..., min_length=1)
    ifsc: str = Field(..., min_length=1)
    accountHolderName: str = Field(..., min_length=1)
    accountNumber: str = Field(..., min_length=1)

class VerifyDetailsRequest(BaseModel):
    """
    Bank and UPI are verified independently; send either or both
    """
    bankName: Optional[str] = None
    accountNumber: Optional[str] = None
    ifsc: Optional[str] = None
    branch: Optional[str] = None
    upiId: Optional[str] = None

    @property
    def has_bank(self) -> bool:
        return bool(self.bankName and self.accountNumber and self.ifsc and self.branch)
