# lifecycle/workflows/__init__.py
"""
Public lifecycle engine API.

Only the pure pieces are exported here: tables, validator and role
filter. The executor, store and audit sink import models, so import them
from their own modules (lifecycle.workflows.executor, ...).
"""

from __future__ import annotations

from lifecycle.workflows.rules import (
    APPROVER_ROLES,
    REVIEWER_ROLES,
    ROLES,
    EntityType,
    TransitionRule,
    get_transitions,
    initial_status,
    normalize_entity_type,
    normalize_role,
    normalize_status,
    reason_required,
    statuses_for,
    terminal_statuses,
)
from lifecycle.workflows.validator import allowed_targets, validate_transition
from lifecycle.workflows.authorization import (
    check_transition_role,
    get_available_transitions,
    required_roles,
    workflow_definition,
)


__all__ = [
    "APPROVER_ROLES",
    "REVIEWER_ROLES",
    "ROLES",
    "EntityType",
    "TransitionRule",
    "get_transitions",
    "initial_status",
    "normalize_entity_type",
    "normalize_role",
    "normalize_status",
    "reason_required",
    "statuses_for",
    "terminal_statuses",
    "allowed_targets",
    "validate_transition",
    "check_transition_role",
    "get_available_transitions",
    "required_roles",
    "workflow_definition",
]
