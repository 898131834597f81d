# lifecycle/workflows/audit.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from django.utils import timezone

from lifecycle.models import AuditLog
from lifecycle.workflows.rules import normalize_entity_type


STATUS_TRANSITION = "STATUS_TRANSITION"


@dataclass(frozen=True)
class AuditRecord:
    organization_id: int
    user_id: Optional[int]
    entity_type: str
    entity_id: int
    action: str
    previous_status: str
    new_status: str
    timestamp: datetime = field(default_factory=timezone.now)
    metadata: Optional[Dict[str, Any]] = None


class DjangoAuditSink:
    """
    Appends audit records to AuditLog.

    Must be called inside the executor's transaction: a failed insert
    raises and rolls the status write back with it.
    """

    def append(self, record: AuditRecord) -> AuditLog:
        return AuditLog.objects.create(
            organization_id=record.organization_id,
            user_id=record.user_id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            action=record.action,
            previous_status=record.previous_status,
            new_status=record.new_status,
            metadata=record.metadata,
            timestamp=record.timestamp,
        )


def audit_trail(entity_type, entity_id):
    """
    AuditLog records for one entity, oldest first.
    """
    kind = normalize_entity_type(entity_type)
    return AuditLog.objects.filter(entity_type=kind.value, entity_id=entity_id).order_by("timestamp", "id")
