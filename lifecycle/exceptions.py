# lifecycle/exceptions.py
"""
Error taxonomy for the lifecycle engine.

Every failure surfaces as one of these. They are DRF APIExceptions so the
HTTP layer renders them with the matching status code unchanged.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.exceptions import APIException


class LifecycleError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Lifecycle operation failed."
    default_code = "lifecycle_error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        message = str(message or self.default_detail)
        super().__init__(detail=message, code=self.default_code)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    @property
    def code(self) -> str:
        return self.default_code

    def as_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status_code": self.status_code,
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LifecycleError):
    """Malformed input, caught before any store access."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation failed."
    default_code = "validation_error"


class ForbiddenError(LifecycleError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action."
    default_code = "forbidden"


class NotFoundError(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."
    default_code = "not_found"

    def __init__(self, resource: str, identifier: Any = None, details: Optional[Dict[str, Any]] = None):
        if identifier is not None:
            message = f"{resource} with identifier '{identifier}' was not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, details)
        self.resource = resource
        self.identifier = identifier


class ConflictError(LifecycleError):
    """
    The requested transition is structurally illegal, or a business
    precondition of the approval chain does not hold.
    """

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource conflict."
    default_code = "conflict"


__all__ = [
    "LifecycleError",
    "ValidationError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
]
