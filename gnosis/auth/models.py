import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")

PASSWORD_LENGTH_MSG = "Password must be at least 6 characters long"
PASSWORD_STRENGTH_MSG = "Password must contain at least one uppercase letter, one lowercase letter, and one number"


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))


def check_email(value: str) -> str:
    if not is_valid_email(value):
        raise ValueError("Please provide a valid email address")
    return value.strip().lower()


def check_strong_password(value: str) -> str:
    if len(value) < 6:
        raise ValueError(PASSWORD_LENGTH_MSG)
    if not STRONG_PASSWORD_RE.match(value):
        raise ValueError(PASSWORD_STRENGTH_MSG)
    return value


def check_name(value: str, label: str) -> str:
    value = (value or "").strip()
    if not 2 <= len(value) <= 50:
        raise ValueError(f"{label} must be between 2 and 50 characters")
    return value


# ==================== ENUMS ====================

class UserRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


class AuthProvider(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"
    APPLE = "apple"


# ==================== REQUEST MODELS ====================

class RegisterRequest(BaseModel):
    email: str
    password: str
    confirmPassword: str
    role: str
    firstName: str
    lastName: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return check_strong_password(v)

    @field_validator("role")
    @classmethod
    def valid_role(cls, v):
        if v not in (UserRole.ADMIN.value, UserRole.STUDENT.value):
            raise ValueError("Role must be either admin or student")
        return v

    @field_validator("firstName")
    @classmethod
    def valid_first_name(cls, v):
        return check_name(v, "First name")

    @field_validator("lastName")
    @classmethod
    def valid_last_name(cls, v):
        return check_name(v, "Last name")


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)


class IdTokenRequest(BaseModel):
    idToken: Optional[str] = None


class AppleName(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class AppleUser(BaseModel):
    name: Optional[AppleName] = None
    email: Optional[str] = None


class AppleSignInRequest(BaseModel):
    idToken: Optional[str] = None
    user: Optional[AppleUser] = None


class EmailRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)


class VerifyOtpRequest(BaseModel):
    email: str
    code: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)

    @field_validator("code")
    @classmethod
    def four_digits(cls, v):
        v = str(v).strip()
        if len(v) != 4:
            raise ValueError("Verification code must be exactly 4 digits")
        if not v.isdigit():
            raise ValueError("Verification code must contain only numbers")
        return v


class ResetPasswordRequest(BaseModel):
    email: str
    newPassword: str
    confirmPassword: str

    @field_validator("email")
    @classmethod
    def valid_email(cls, v):
        return check_email(v)

    @field_validator("newPassword")
    @classmethod
    def strong_password(cls, v):
        return check_strong_password(v)
