import re
from pydantic import BaseModel, Field, validator
from olympiad.coordinators.coordinator_schemas import EMAIL_PATTERN

REFERENCE_CODE_PATTERN = re.compile(r'^[A-Za-z0-9]+-\d+$')

class AdminRegister(BaseModel):
    name: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=6)
    confirmPassword: str = Field(..., min_length=1)

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v

class AdminLogin(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class ReferenceCodeCreate(BaseModel):
    prefix: str = Field(..., min_length=1, max_length=20)
    schoolName: str = Field(..., min_length=1)

    @validator('prefix')
    def validate_prefix(cls, v):
        v = v.strip().upper()
        if not v.isalnum():
            raise ValueError('Prefix must be letters and digits only')
        return v

class ReferenceCodeCheck(BaseModel):
    referenceCode: str = Field(..., min_length=1)

class CoordinatorAction(BaseModel):
    uid: str = Field(..., min_length=1)
