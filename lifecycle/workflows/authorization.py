# lifecycle/workflows/authorization.py
"""
Role gating layered over the transition tables.

Read-only and lock-free. Drives "what can this user do right now" and is
called far more often than the executor.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from lifecycle.exceptions import ForbiddenError
from lifecycle.workflows.rules import (
    get_transitions,
    initial_status,
    normalize_entity_type,
    normalize_role,
    normalize_status,
    statuses_for,
    terminal_statuses,
)
from lifecycle.workflows.validator import validate_transition


def get_available_transitions(entity_type, current: str, role: Optional[str] = None) -> List[str]:
    """
    Targets from `current` the given role may trigger, in table order.

    Unrestricted rules are open to any caller. Restricted rules require the
    role to be a member; with no role at all they are excluded.
    """
    cur = normalize_status(current)
    role_norm = normalize_role(role)

    out: List[str] = []
    for rule in get_transitions(entity_type):
        if rule.from_status != cur:
            continue
        if rule.required_roles:
            if not role_norm or role_norm not in rule.required_roles:
                continue
        out.append(rule.to_status)
    return out


def required_roles(entity_type, current: str, target: str) -> Set[str]:
    """
    Roles that may perform current -> target. Empty means unrestricted.
    """
    validate_transition(entity_type, current, target)

    cur = normalize_status(current)
    tgt = normalize_status(target)
    for rule in get_transitions(entity_type):
        if rule.from_status == cur and rule.to_status == tgt:
            return set(rule.required_roles or ())
    return set()


def check_transition_role(entity_type, current: str, target: str, role: Optional[str]) -> None:
    """
    Raises ForbiddenError unless `role` may perform current -> target.

    Structural legality is checked first, so an illegal move still fails
    with ConflictError.
    """
    required = required_roles(entity_type, current, target)
    if not required:
        return

    role_norm = normalize_role(role)
    if role_norm not in required:
        kind = normalize_entity_type(entity_type)
        raise ForbiddenError(
            f"Role '{role_norm or 'NONE'}' cannot transition {kind.value} "
            f"from '{normalize_status(current)}' to '{normalize_status(target)}'",
            {"required_roles": sorted(required), "role": role_norm or None},
        )


def workflow_definition(entity_type) -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI and compliance review.
    """
    kind = normalize_entity_type(entity_type)
    rules = get_transitions(kind)

    transitions: Dict[str, List[str]] = {status: [] for status in statuses_for(kind)}
    restrictions: List[Dict[str, Any]] = []
    for rule in rules:
        transitions[rule.from_status].append(rule.to_status)
        if rule.required_roles:
            restrictions.append(
                {
                    "from": rule.from_status,
                    "to": rule.to_status,
                    "roles": sorted(rule.required_roles),
                }
            )

    return {
        "entity_type": kind.value,
        "initial_status": initial_status(kind),
        "statuses": list(statuses_for(kind)),
        "terminal_statuses": sorted(terminal_statuses(kind)),
        "transitions": transitions,
        "role_restrictions": restrictions,
    }


__all__ = [
    "get_available_transitions",
    "required_roles",
    "check_transition_role",
    "workflow_definition",
]
