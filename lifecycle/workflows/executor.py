# lifecycle/workflows/executor.py
"""
Authoritative status transition executor.

All status changes MUST go through execute_transition.
Never update status directly in views, services or serializers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.utils import timezone

from lifecycle.exceptions import ConflictError, ValidationError
from lifecycle.workflows.audit import STATUS_TRANSITION, AuditRecord, DjangoAuditSink
from lifecycle.workflows.rules import (
    normalize_entity_type,
    normalize_status,
    reason_required,
)
from lifecycle.workflows.store import DjangoEntityStore
from lifecycle.workflows.validator import validate_transition

logger = logging.getLogger(__name__)


def _check_request(kind, entity_id, target: str, metadata) -> None:
    """
    Input checks that need no storage access.
    """
    if entity_id is None or str(entity_id).strip() == "":
        raise ValidationError("Entity id is required.", {"entity_type": kind.value})

    if not target:
        raise ValidationError("Target status is required.", {"entity_type": kind.value})

    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("Metadata must be a mapping.", {"entity_type": kind.value})

    if reason_required(kind, target):
        reason = (metadata or {}).get("reason")
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError(
                f"A reason is required to move {kind.value} to '{target}'.",
                {"entity_type": kind.value, "target_status": target, "field": "reason"},
            )


def execute_transition(
    entity_type,
    entity_id,
    target: str,
    user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    *,
    action: str = STATUS_TRANSITION,
    fields: Optional[Dict[str, Any]] = None,
    store=None,
    audit_sink=None,
):
    """
    Execute one status transition as a single atomic unit.

    1) Lock and read the current status and organization
    2) Validate current -> target against the table
    3) Write the new status (and any extra `fields`)
    4) Append the audit record
    5) Return the updated entity

    Any failure rolls back steps 3 and 4. A second caller racing on the same
    row blocks on the lock, then validates against the status the first
    caller wrote.

    user_id is None for system-initiated transitions. `action` lets higher
    level callers (the approval chain) record a domain-specific action.
    """
    kind = normalize_entity_type(entity_type)
    tgt = normalize_status(target)
    _check_request(kind, entity_id, tgt, metadata)

    store = store or DjangoEntityStore()
    audit_sink = audit_sink or DjangoAuditSink()

    with transaction.atomic():
        current, organization_id = store.read_status(kind, entity_id)

        try:
            validate_transition(kind, current, tgt)
        except ConflictError:
            logger.info(
                "Rejected %s %s transition %s -> %s",
                kind.value, entity_id, current, tgt,
            )
            raise

        updated = store.write_status(kind, entity_id, tgt, **(fields or {}))

        audit_sink.append(
            AuditRecord(
                organization_id=organization_id,
                user_id=user_id,
                entity_type=kind.value,
                entity_id=entity_id,
                action=action,
                previous_status=current,
                new_status=tgt,
                timestamp=timezone.now(),
                metadata=metadata,
            )
        )

    logger.info(
        "%s %s %s: %s -> %s by %s",
        action, kind.value, entity_id, current, tgt,
        user_id if user_id is not None else "system",
    )
    return updated
