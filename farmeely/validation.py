"""Request payload validation.

Each ``*_validation`` function checks one request shape and returns a
:class:`ValidationResult` instead of raising, so callers decide how a
failure is reported. API routes use :func:`validate_body`, which turns a
failure into ``400 {"status": "error", "message": ...}``.
"""
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, ValidationError

from farmeely.schemas.group import CreateGroupRequest, CreateLivestockRequest, JoinGroupRequest
from farmeely.schemas.user import CreateUserRequest, EmailRequest, ResetPasswordRequest, UpdateUserRequest

M = TypeVar("M", bound=BaseModel)


@dataclass
class ValidationResult(Generic[M]):
    value: Any
    error: Optional[ValidationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> Optional[str]:
        """First error message, the one shown to the user."""
        if self.error is None:
            return None
        return self.error.errors()[0]["msg"]

    @property
    def error_type(self) -> Optional[str]:
        if self.error is None:
            return None
        return self.error.errors()[0]["type"]


def _validate(model: Type[M], data: Any) -> ValidationResult[M]:
    try:
        return ValidationResult(value=model.model_validate(data))
    except ValidationError as exc:
        return ValidationResult(value=data, error=exc)


def create_user_validation(data: Any) -> ValidationResult[CreateUserRequest]:
    return _validate(CreateUserRequest, data)


def update_user_validation(data: Any) -> ValidationResult[UpdateUserRequest]:
    return _validate(UpdateUserRequest, data)


def create_group_validation(data: Any) -> ValidationResult[CreateGroupRequest]:
    return _validate(CreateGroupRequest, data)


def create_livestock_validation(data: Any) -> ValidationResult[CreateLivestockRequest]:
    return _validate(CreateLivestockRequest, data)


def forgot_password_validation(data: Any) -> ValidationResult[EmailRequest]:
    return _validate(EmailRequest, data)


def reset_password_validation(data: Any) -> ValidationResult[ResetPasswordRequest]:
    return _validate(ResetPasswordRequest, data)


def join_group_validation(data: Any) -> ValidationResult[JoinGroupRequest]:
    return _validate(JoinGroupRequest, data)


def resend_otp_validation(data: Any) -> ValidationResult[EmailRequest]:
    return _validate(EmailRequest, data)


def ensure_valid(result: ValidationResult[M]) -> M:
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
    return result.value


def validate_body(validator: Callable[[Any], ValidationResult[M]]):
    """Dependency factory: parse the JSON body and run ``validator`` on it."""

    async def _dep(request: Request) -> M:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body format")
        return ensure_valid(validator(payload))

    return _dep
