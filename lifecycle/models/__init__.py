# lifecycle/models/__init__.py

from .core import (
    TimeStampedModel,
    Organization,
    UserRole,
    Order,
    Sample,
    Test,
    Invoice,
)
from .audit import AuditLog, ApprovalAction

__all__ = [
    "TimeStampedModel",
    "Organization",
    "UserRole",
    "Order",
    "Sample",
    "Test",
    "Invoice",
    "AuditLog",
    "ApprovalAction",
]
