"""Custom exception classes for AuthKit.

Each error carries the HTTP status it maps to; ``main.py`` registers a single
handler that renders ``{"detail": message}`` with that status.
"""

from fastapi import status


class AuthKitError(Exception):
    """Base exception for AuthKit."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(AuthKitError):
    """Raised when input validation fails."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AuthKitError):
    """Raised when authentication fails (missing/invalid token, bad credentials)."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AuthKitError):
    """Raised when an authenticated user lacks a permission or role."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AuthKitError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AuthKitError):
    """Raised when a resource already exists."""
    status_code = status.HTTP_409_CONFLICT


class PayloadTooLargeError(AuthKitError):
    """Raised when a request body exceeds the configured ceiling."""
    status_code = 413


class RateLimitError(AuthKitError):
    """Raised when a client exceeds its request budget."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class StorageError(AuthKitError):
    """Raised when the persistence layer fails.

    The message is logged but never returned to the caller.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)
