"""
Application error taxonomy.

Every error the API reports on purpose is an ``AppError``: an ``HTTPException``
that also carries a machine-readable ``ErrorCode``. The exception handlers in
``app.main`` render them as ``{"success": false, "error": ..., "code": ...}``.
The same ``ErrorCode`` values are read back by ``app.client`` to tell an
expired access token apart from every other 401.
"""

from enum import Enum
from typing import Dict, Optional

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    USER_GONE = "USER_GONE"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    FORBIDDEN = "FORBIDDEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    OTP_EXPIRED_OR_INVALID = "OTP_EXPIRED_OR_INVALID"
    OTP_INVALID = "OTP_INVALID"
    RESET_LINK_EXPIRED = "RESET_LINK_EXPIRED"
    RESET_LINK_ALREADY_USED = "RESET_LINK_ALREADY_USED"
    RATE_LIMITED = "RATE_LIMITED"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    HTTP_ERROR = "HTTP_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    message: str = "Bad request."

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=self.status_code, detail=message or self.message, headers=headers)


class BadRequestError(AppError):
    pass


UNAUTHORIZED_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.NO_TOKEN: "Not authorized. No token provided.",
    ErrorCode.INVALID_TOKEN: "Not authorized. Invalid token.",
    ErrorCode.TOKEN_EXPIRED: "Token expired.",
    ErrorCode.USER_GONE: "User no longer exists.",
    ErrorCode.INVALID_CREDENTIALS: "Invalid email or password.",
    ErrorCode.INVALID_REFRESH_TOKEN: "Invalid or expired refresh token.",
}


class UnauthorizedError(AppError):
    """401 tagged with the reason; ``TOKEN_EXPIRED`` tells clients to refresh."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, reason: ErrorCode = ErrorCode.INVALID_TOKEN, message: Optional[str] = None):
        self.code = reason
        super().__init__(
            message or UNAUTHORIZED_MESSAGES.get(reason, "Not authorized."),
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN
    message = "You do not have permission to perform this action."


class RegistrationClosedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.REGISTRATION_CLOSED
    message = "Registration is closed. An account already exists."


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND
    message = "Not found."


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONFLICT
    message = "An account with this email already exists."


class OtpExpiredOrInvalidError(AppError):
    code = ErrorCode.OTP_EXPIRED_OR_INVALID
    message = "OTP has expired or is invalid. Please request a new one."


class OtpInvalidError(AppError):
    code = ErrorCode.OTP_INVALID
    message = "Invalid OTP or email."


class ResetLinkExpiredError(AppError):
    code = ErrorCode.RESET_LINK_EXPIRED
    message = "Reset link has expired. Please request a new OTP."


class ResetLinkAlreadyUsedError(AppError):
    code = ErrorCode.RESET_LINK_ALREADY_USED
    message = "This reset link has already been used."


class TooManyRequestsError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = ErrorCode.RATE_LIMITED
    message = "Too many requests. Please try again later."


class EmailDeliveryError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.EMAIL_DELIVERY_FAILED
    message = "Failed to send the verification email. Please try again later."
