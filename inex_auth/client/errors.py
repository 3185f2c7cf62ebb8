"""
Client-side error types and categorization.
"""
import enum
from dataclasses import dataclass
from typing import Any, Optional

import httpx


class ErrorType(str, enum.Enum):
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    SERVER = "SERVER"
    CLIENT = "CLIENT"
    AUTHENTICATION = "AUTHENTICATION"
    VALIDATION = "VALIDATION"
    UNKNOWN = "UNKNOWN"


@dataclass
class CategorizedError:
    """A failure reduced to what a UI needs: a kind, a message and whether to retry."""
    type: ErrorType
    message: str
    retryable: bool
    status_code: Optional[int] = None
    original_error: Optional[BaseException] = None


class ClientError(Exception):
    """Base exception for the token manager"""

    def __init__(self, message: str = "Request failed"):
        self.message = message
        super().__init__(message)


class SessionExpiredError(ClientError):
    """Credentials are gone; the user must sign in again"""

    def __init__(self, message: str = "Session expired. Please sign in again."):
        super().__init__(message)


class NetworkError(ClientError):
    """Transport failed after all retry attempts"""

    def __init__(self, message: str = "Network error. Please check your internet connection."):
        super().__init__(message)


class APIError(ClientError):
    """Server answered with an error status"""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def from_response(cls, response: httpx.Response) -> "APIError":
        try:
            detail: Any = response.json().get("detail")
        except ValueError:
            detail = None
        if not isinstance(detail, str):
            detail = response.text or f"HTTP {response.status_code}"
        return cls(response.status_code, detail)


def categorize_error(error: BaseException, status_code: Optional[int] = None) -> CategorizedError:
    """Map an exception (and optional HTTP status) to a CategorizedError."""
    if status_code is None:
        status_code = getattr(error, "status_code", None)

    if isinstance(error, httpx.TimeoutException):
        return CategorizedError(
            ErrorType.TIMEOUT, "Request timed out. Please try again.", True,
            original_error=error
        )
    if isinstance(error, (httpx.TransportError, NetworkError)):
        return CategorizedError(
            ErrorType.NETWORK, "Network error. Please check your internet connection.", True,
            original_error=error
        )
    if isinstance(error, SessionExpiredError):
        return CategorizedError(
            ErrorType.AUTHENTICATION, error.message, False, status_code=401,
            original_error=error
        )

    message = getattr(error, "message", None) or str(error) or "An error occurred"

    if status_code is None:
        return CategorizedError(ErrorType.UNKNOWN, message, False, original_error=error)
    if status_code in (401, 403):
        return CategorizedError(
            ErrorType.AUTHENTICATION, "Authentication failed. Please sign in again.", False,
            status_code=status_code, original_error=error
        )
    if status_code in (400, 422):
        return CategorizedError(
            ErrorType.VALIDATION, message, False,
            status_code=status_code, original_error=error
        )
    if status_code == 429:
        return CategorizedError(
            ErrorType.CLIENT, "Too many requests. Please wait a moment and try again.", True,
            status_code=status_code, original_error=error
        )
    if 500 <= status_code < 600:
        return CategorizedError(
            ErrorType.SERVER, "Server error. Please try again later.", True,
            status_code=status_code, original_error=error
        )
    if 400 <= status_code < 500:
        return CategorizedError(
            ErrorType.CLIENT, message, False,
            status_code=status_code, original_error=error
        )
    return CategorizedError(
        ErrorType.UNKNOWN, message, False, status_code=status_code, original_error=error
    )
