from pydantic import BaseModel, Field, validator
from olympiad.coordinators.coordinator_schemas import EMAIL_PATTERN

class SchoolRegister(BaseModel):
    schoolName: str = Field(..., min_length=1)
    email: str
    password: str = Field(..., min_length=1)
    confirmPassword: str = Field(..., min_length=1)
    principalName: str = Field(..., min_length=1)

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v

    @validator('schoolName')
    def strip_school_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('School name is required')
        return v

class SchoolLogin(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
