"""
Custom exceptions for the Inex auth service.
Provides consistent error handling across the application.
"""
from typing import List, Optional

from fastapi import status


class ConfigurationError(Exception):
    """Invalid startup configuration. The service must not start."""


class InexAuthException(Exception):
    """Base exception for Inex auth"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(InexAuthException):
    """Validation failed"""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "Validation failed", errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class AuthenticationError(InexAuthException):
    """Authentication failed"""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_reason = "invalid"

    def __init__(self, message: str = "Authentication failed", reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(message)


class NotFoundError(InexAuthException):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class ConflictError(InexAuthException):
    """Resource already exists"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, resource: str = "Resource", field: str = None):
        message = f"{resource} already exists"
        if field:
            message = f"{resource} with this {field} already exists"
        super().__init__(message)


class ServerError(InexAuthException):
    """Unexpected failure. The message is always generic."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


class EmailSendError(ServerError):
    """Email could not be rendered or delivered"""

    def __init__(self, message: str = "Failed to send email"):
        super().__init__(message)


class TokenInvalidError(AuthenticationError):
    """Token is invalid"""
    default_reason = "invalid"

    def __init__(self, token_type: str = "Token"):
        super().__init__(f"{token_type} is invalid")


class TokenExpiredError(AuthenticationError):
    """Token has expired"""
    default_reason = "expired"

    def __init__(self, token_type: str = "Token"):
        super().__init__(f"{token_type} has expired")


class TokenAlreadyUsedError(AuthenticationError):
    """Single-use token was already consumed"""
    default_reason = "already_used"

    def __init__(self, token_type: str = "Token"):
        super().__init__(f"{token_type} has already been used")


class TokenNotFoundError(AuthenticationError):
    """Single-use token was never issued"""
    default_reason = "not_found"

    def __init__(self, token_type: str = "Token"):
        super().__init__(f"{token_type} was not found")
