# lifecycle/workflows/validator.py
"""
Structural transition validation.

Pure: no roles, no storage. Role gating lives in authorization.py so the
same check serves read-only "what is possible" queries.
"""

from __future__ import annotations

from typing import List

from lifecycle.exceptions import ConflictError, ValidationError
from lifecycle.workflows.rules import (
    get_transitions,
    normalize_entity_type,
    normalize_status,
)


def allowed_targets(entity_type, current: str) -> List[str]:
    """
    Every target reachable from `current`, in table order, ignoring roles.
    """
    cur = normalize_status(current)
    return [rule.to_status for rule in get_transitions(entity_type) if rule.from_status == cur]


def validate_transition(entity_type, current: str, target: str) -> None:
    """
    Raises ConflictError unless current -> target is a rule of the table.

    An identity transition is a conflict, never a silent no-op.
    """
    kind = normalize_entity_type(entity_type)
    cur = normalize_status(current)
    tgt = normalize_status(target)

    if not tgt:
        raise ValidationError("Target status is required.", {"entity_type": kind.value})

    allowed = allowed_targets(kind, cur)
    details = {
        "entity_type": kind.value,
        "current_status": cur,
        "target_status": tgt,
        "allowed_targets": allowed,
    }

    if cur == tgt:
        raise ConflictError(f"{kind.value} is already in status '{cur}'", details)

    if tgt not in allowed:
        raise ConflictError(
            f"Cannot transition {kind.value} from '{cur}' to '{tgt}'",
            details,
        )


__all__ = [
    "allowed_targets",
    "validate_transition",
]
