import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

# the lookaheads need Python's re; pydantic's default regex engine has none
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[0-9])(?=.*[@$!%*?&])[A-Za-z0-9@$!%*?&]+$")
PASSWORD_MIN_LENGTH = 8
PHONE_PATTERN = r"^\+?[1-9][0-9]{1,14}$"
OTP_PATTERN = r"^[0-9]{6}$"


def check_password(value: Any) -> str:
    """Check the raw password; used as a plain validator so it is never stripped."""
    if not isinstance(value, str):
        raise PydanticCustomError("string_type", "Password must be a string")
    if len(value) < PASSWORD_MIN_LENGTH:
        raise PydanticCustomError("string_too_short", "Password must be at least 8 characters long")
    if not PASSWORD_RE.match(value):
        raise PydanticCustomError(
            "string_pattern_mismatch",
            "Password must contain at least one lowercase letter, one uppercase letter, one number, and one special character",
        )
    return value


class StrictModel(BaseModel):
    """Request body; unknown keys are rejected and strings are stripped, passwords excepted."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, str_strip_whitespace=True)


class CreateUserRequest(StrictModel):
    surname: str = Field(..., min_length=2, max_length=50)
    othernames: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str
    phone_number: str = Field(..., alias="phoneNumber", pattern=PHONE_PATTERN)
    location: str = Field(..., min_length=2, max_length=100)
    address: str = Field(..., min_length=5, max_length=200)
    role: Optional[Literal["user", "admin"]] = None

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("password", mode="plain")
    @classmethod
    def _password_rules(cls, v: Any) -> str:
        return check_password(v)


class UpdateUserRequest(StrictModel):
    surname: Optional[str] = Field(None, min_length=2, max_length=50)
    othernames: Optional[str] = Field(None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(None, alias="phoneNumber", pattern=PHONE_PATTERN)
    location: Optional[str] = Field(None, min_length=2, max_length=100)
    address: Optional[str] = Field(None, min_length=5, max_length=200)


class EmailRequest(StrictModel):
    email: EmailStr


class ResetPasswordRequest(StrictModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6, pattern=OTP_PATTERN)
    new_password: str = Field(..., alias="newPassword")

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("new_password", mode="plain")
    @classmethod
    def _password_rules(cls, v: Any) -> str:
        return check_password(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    surname: str
    othernames: str
    email: str
    phone_number: str
    location: str
    address: str
    role: str
    is_email_verified: bool
    is_active: bool


class UserStatusRequest(BaseModel):
    is_active: bool = Field(..., alias="isActive")

    model_config = ConfigDict(populate_by_name=True)
