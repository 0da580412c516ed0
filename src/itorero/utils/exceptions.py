# src/itorero/utils/exceptions.py
from __future__ import annotations

from typing import List, Optional


class AppError(Exception):
    """Base for errors the API turns into a `{success: false, message}` body."""

    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.errors = list(errors or [])
        super().__init__(self.message)


class ValidationFailedError(AppError):
    status_code = 400
    default_message = "Validation failed"


class HierarchyError(AppError):
    status_code = 400
    default_message = "Invalid hierarchy"


class DanglingReferenceError(AppError):
    status_code = 404
    default_message = "Referenced record not found"


class DuplicateKeyError(AppError):
    status_code = 409
    default_message = "Duplicate field value entered"


class ConflictError(AppError):
    status_code = 409
    default_message = "Operation conflicts with existing records"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Resource not found"


class AuthError(AppError):
    status_code = 401
    default_message = "Not authenticated"


class PermissionDeniedError(AuthError):
    status_code = 403
    default_message = "Access denied. Insufficient permissions."


class RateLimitedError(AppError):
    status_code = 429
    default_message = "Too many requests. Please try again later."


class AccountLockedError(AuthError):
    status_code = 423
    default_message = "Account is temporarily locked due to too many failed login attempts."
