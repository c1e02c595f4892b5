# backend/utils/errors.py
from typing import Any, Optional


# Base class for errors that map directly onto an HTTP error envelope
class AppError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_ERROR",
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details


class ValidationError(AppError):
    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: Optional[Any] = None):
        super().__init__(message, 400, code, details)


class AuthenticationError(AppError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401, "AUTHENTICATION_ERROR")


class AuthorizationError(AppError):
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, 403, "AUTHORIZATION_ERROR")


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource", code: str = "NOT_FOUND"):
        super().__init__(f"{resource} not found", 404, code)


class ConflictError(AppError):
    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, 409, code)


# Raised for deactivated accounts at login/refresh time
class AccountLockedError(AppError):
    def __init__(self, message: str = "Account is deactivated"):
        super().__init__(message, 423, "ACCOUNT_LOCKED")


class InsufficientStockError(AppError):
    def __init__(self, title: str, available: int):
        super().__init__(
            f"Insufficient stock for {title}. Available: {available}",
            400,
            "INSUFFICIENT_STOCK",
            {"available": available},
        )
