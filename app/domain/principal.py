"""Domain models for principals, accounts and session credentials."""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    """Fixed role enumeration. ``superadmin`` is the top-level admin tier."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STUDENT = "student"


class AccountStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LearningLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


ADMIN_ROLES = frozenset({Role.SUPERADMIN, Role.ADMIN})
STAFF_ROLES = frozenset({Role.SUPERADMIN, Role.ADMIN, Role.INSTRUCTOR})

# Roles a visitor may request at signup; superadmin is never self-assigned
SIGNUP_ROLES = frozenset({Role.ADMIN, Role.INSTRUCTOR, Role.STUDENT})

# Roles an administrator may assign through a role change
ASSIGNABLE_ROLES = SIGNUP_ROLES


def is_super_admin(role: Role, email: Optional[str], super_admin_email: Optional[str] = None) -> bool:
    """True for the superadmin role or the configured super admin address."""
    if role == Role.SUPERADMIN:
        return True
    if not super_admin_email or not email:
        return False
    return email.strip().lower() == super_admin_email.strip().lower()


class StudentDetails(BaseModel):
    """Onboarding data collected from students."""
    trading_level: Optional[LearningLevel] = Field(default=None, alias="tradingLevel")
    onboarding_completed: bool = Field(default=False, alias="onboardingCompleted")

    class Config:
        populate_by_name = True


class Principal(BaseModel):
    """An authenticated actor.

    Attributes:
        id: Opaque account identifier
        email: Account email
        name: Display name (unknown when rebuilt from a credential)
        role: One of the fixed roles
        status: Approval status; only approved principals hold credentials
        learning_level: Explicit learning level, if one has been assigned
        student_details: Onboarding extension data for students
    """
    id: str
    email: EmailStr
    name: Optional[str] = None
    role: Role
    status: AccountStatus = AccountStatus.APPROVED
    learning_level: Optional[LearningLevel] = Field(default=None, alias="learningLevel")
    student_details: Optional[StudentDetails] = Field(default=None, alias="studentDetails")
    created_at: Optional[datetime] = None

    class Config:
        populate_by_name = True

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT


class Account(Principal):
    """Persisted account record. Never returned to clients as-is."""
    password_hash: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_principal(self) -> Principal:
        return Principal(**self.model_dump(include=set(Principal.model_fields)))


class TokenClaims(BaseModel):
    """Identity claims bound into a session credential at issuance."""
    sub: str
    email: EmailStr
    role: Role

    class Config:
        frozen = True


class SessionCredential(BaseModel):
    """A verified credential: its claims plus issuance window."""
    claims: TokenClaims
    issued_at: datetime
    expires_at: datetime


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    class Config:
        json_schema_extra = {
            "example": {
                "email": "student@example.com",
                "password": "secure_password123"
            }
        }


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: Role = Role.STUDENT


class UserProfile(BaseModel):
    """Public view of an account."""
    id: str
    email: str
    name: Optional[str] = None
    role: Role
    status: AccountStatus


class TokenResponse(BaseModel):
    """Authentication response.

    ``access_token`` is None when the account still awaits approval.
    """
    access_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user: UserProfile
    message: Optional[str] = None
