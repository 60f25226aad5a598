"""
Custom exceptions for the DietSaaS API.
Every exception carries the HTTP status it maps to; the handlers in
main.py turn them into the standard error envelope.
"""
from typing import List, Optional

from fastapi import status


class DietSaaSException(Exception):
    """Base exception for DietSaaS"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An error occurred", errors: Optional[List[dict]] = None):
        self.message = message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(DietSaaSException):
    """Validation failed"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "Validation failed",
        field: str = None,
        errors: Optional[List[dict]] = None,
    ):
        if field and errors is None:
            errors = [{"field": field, "message": message}]
        super().__init__(message, errors)


class UnauthorizedError(DietSaaSException):
    """Authentication failed"""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class TokenInvalidError(UnauthorizedError):
    """Token is invalid, malformed or expired"""
    def __init__(self, token_type: str = "Token"):
        super().__init__(f"{token_type} is invalid or expired")


class ForbiddenError(DietSaaSException):
    """Access denied"""
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "You don't have permission to access this resource"):
        super().__init__(message)


class AccountLockedError(ForbiddenError):
    """Too many failed logins; the account is temporarily locked"""
    def __init__(self, minutes_left: int):
        self.minutes_left = minutes_left
        super().__init__(
            "Account is locked due to too many failed login attempts. "
            f"Try again in {minutes_left} minutes."
        )


class UsageLimitExceededError(ForbiddenError):
    """Plan quota reached for a counted resource"""
    def __init__(self, resource: str, current: int, maximum: int):
        self.resource = resource
        self.current = current
        self.maximum = maximum
        super().__init__(f"Usage limit exceeded. Current: {current}, Max: {maximum}")


class NotFoundError(DietSaaSException):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ConflictError(DietSaaSException):
    """Resource already exists"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, resource: str = "Resource", field: str = None, value: str = None):
        if field and value:
            message = f"{resource} with {field} '{value}' already exists"
        elif field:
            message = f"{resource} with this {field} already exists"
        else:
            message = f"{resource} already exists"
        self.field = field
        super().__init__(message)


class RateLimitedError(DietSaaSException):
    """Too many requests"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message)


class InternalError(DietSaaSException):
    """Unexpected failure; never exposes the underlying cause"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


class InvalidDurationError(ValueError):
    """Duration expression could not be parsed"""
    def __init__(self, expression: str):
        super().__init__(f"Invalid duration expression: '{expression}'")
