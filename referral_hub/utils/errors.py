# referral_hub/utils/errors.py
"""
Error taxonomy shared by controllers and services.

Every error is an HTTPException so FastAPI can surface it directly, and carries
a stable ``kind`` that the exception handler in ``main.py`` puts in the body
next to the human readable message.
"""
from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    kind = "error"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.message_default,
        )

    @property
    def message(self) -> str:
        return str(self.detail)


class NotFound(AppError):
    kind = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "Not found"


class InvalidTransition(AppError):
    kind = "invalid_transition"
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Invalid status transition"


class AlreadyConverted(AppError):
    kind = "already_converted"
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Referee is already converted to a customer"


class AlreadyClaimed(AppError):
    kind = "already_claimed"
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Reward has already been claimed"


class AlreadyExists(AppError):
    kind = "already_exists"
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "Already exists"


class Expired(AppError):
    kind = "expired"
    status_code_default = status.HTTP_410_GONE
    message_default = "Expired"


class Forbidden(AppError):
    kind = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "Not authorized"


class ValidationError(AppError):
    kind = "validation_error"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "Invalid input"


class StorageError(AppError):
    kind = "storage_error"
    status_code_default = status.HTTP_503_SERVICE_UNAVAILABLE
    message_default = "Storage failure, the operation was not applied"
