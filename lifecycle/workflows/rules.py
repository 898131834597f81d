"""
Authoritative transition tables for lifecycle entities.

Defines:
- Entity types and their status universes
- Allowed transitions per entity type (explicit + derived wildcards)
- Role requirements per transition
- Canonical role names and role normalization

Each table is flat data so a compliance reviewer can audit it without
reading the engine. Nothing in this module touches the database.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Set, Tuple

from django.db import models

from lifecycle.exceptions import ValidationError


class EntityType(models.TextChoices):
    SAMPLE = "SAMPLE", "Sample"
    TEST = "TEST", "Test"
    ORDER = "ORDER", "Order"
    INVOICE = "INVOICE", "Invoice"


class TransitionRule(NamedTuple):
    from_status: str
    to_status: str
    required_roles: Optional[FrozenSet[str]] = None


# ===============================================================
# ROLES
# ===============================================================
SUPER_ADMIN = "SUPER_ADMIN"
LAB_DIRECTOR = "LAB_DIRECTOR"
LAB_MANAGER = "LAB_MANAGER"
SENIOR_ANALYST = "SENIOR_ANALYST"
ANALYST = "ANALYST"
SAMPLE_RECEIVER = "SAMPLE_RECEIVER"
DATA_ENTRY = "DATA_ENTRY"
BILLING_ADMIN = "BILLING_ADMIN"
BILLING_VIEWER = "BILLING_VIEWER"
CLIENT_ADMIN = "CLIENT_ADMIN"
CLIENT_USER = "CLIENT_USER"
READONLY = "READONLY"

ROLES: FrozenSet[str] = frozenset({
    SUPER_ADMIN,
    LAB_DIRECTOR,
    LAB_MANAGER,
    SENIOR_ANALYST,
    ANALYST,
    SAMPLE_RECEIVER,
    DATA_ENTRY,
    BILLING_ADMIN,
    BILLING_VIEWER,
    CLIENT_ADMIN,
    CLIENT_USER,
    READONLY,
})

# Peer review (level 1) and final approval (level 2) of test results.
REVIEWER_ROLES: FrozenSet[str] = frozenset({LAB_DIRECTOR, LAB_MANAGER, SENIOR_ANALYST})
APPROVER_ROLES: FrozenSet[str] = frozenset({LAB_DIRECTOR, LAB_MANAGER})

# Examples handled:
# - "Lab Manager" -> LAB_MANAGER
# - "lab-manager" -> LAB_MANAGER
# - "Director" -> LAB_DIRECTOR
# - "Senior Analyst" -> SENIOR_ANALYST
ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": SUPER_ADMIN,
    "SUPERUSER": SUPER_ADMIN,
    "SYSTEM_ADMIN": SUPER_ADMIN,
    "DIRECTOR": LAB_DIRECTOR,
    "MANAGER": LAB_MANAGER,
    "SENIOR": SENIOR_ANALYST,
    "SR_ANALYST": SENIOR_ANALYST,
    "TECHNICIAN": ANALYST,
    "LAB_TECH": ANALYST,
    "RECEIVER": SAMPLE_RECEIVER,
    "RECEPTIONIST": SAMPLE_RECEIVER,
    "BILLING": BILLING_ADMIN,
    "VIEWER": READONLY,
    "READ_ONLY": READONLY,
}


def normalize_role(role: Optional[str]) -> str:
    """
    Canonicalize role strings so that small formatting differences
    do not break permission logic.

    Steps:
    1) Uppercase and strip
    2) Convert whitespace and hyphens to underscores
    3) Collapse repeated underscores
    4) Apply alias mapping
    """
    r = (role or "").strip().upper()
    if not r:
        return r

    r = re.sub(r"[\s\-]+", "_", r)
    r = re.sub(r"_+", "_", r)

    return ROLE_ALIASES.get(r, r)


def normalize_status(value: Optional[str]) -> str:
    return str(value or "").strip().upper()


def normalize_entity_type(value) -> EntityType:
    raw = normalize_status(value)
    try:
        return EntityType(raw)
    except ValueError:
        raise ValidationError(
            f"Unknown entity type: {value}",
            {"entity_type": value, "allowed": list(EntityType.values)},
        )


# ===============================================================
# SAMPLE
# ===============================================================
SAMPLE_STATUSES: Tuple[str, ...] = (
    "REGISTERED",
    "RECEIVED",
    "IN_STORAGE",
    "IN_PROGRESS",
    "TESTING_COMPLETE",
    "APPROVED",
    "REPORTED",
    "ON_HOLD",
    "DISPOSED",
    "REJECTED",
    "CANCELLED",
)

SAMPLE_TERMINAL: FrozenSet[str] = frozenset({"DISPOSED", "REJECTED", "CANCELLED"})

# Hold/cancel edges not listed here are derived (see SAMPLE_WILDCARD_TARGETS).
SAMPLE_TRANSITIONS: Dict[str, List[str]] = {
    "REGISTERED": ["RECEIVED", "REJECTED", "CANCELLED"],
    "RECEIVED": ["IN_STORAGE", "IN_PROGRESS", "ON_HOLD", "REJECTED", "CANCELLED"],
    "IN_STORAGE": ["IN_PROGRESS", "ON_HOLD", "DISPOSED", "CANCELLED"],
    "IN_PROGRESS": ["TESTING_COMPLETE", "ON_HOLD", "CANCELLED"],
    "TESTING_COMPLETE": ["APPROVED", "IN_PROGRESS", "ON_HOLD"],
    "APPROVED": ["REPORTED", "ON_HOLD"],
    "REPORTED": ["DISPOSED"],
    "ON_HOLD": ["RECEIVED", "IN_STORAGE", "IN_PROGRESS", "TESTING_COMPLETE", "CANCELLED"],
}

SAMPLE_WILDCARD_TARGETS: Tuple[str, ...] = ("ON_HOLD", "CANCELLED")


# ===============================================================
# TEST
# ===============================================================
TEST_STATUSES: Tuple[str, ...] = (
    "PENDING",
    "ASSIGNED",
    "IN_PROGRESS",
    "COMPLETED",
    "IN_REVIEW",
    "REVIEW_REJECTED",
    "APPROVED",
    "CANCELLED",
    "ON_HOLD",
)

TEST_TERMINAL: FrozenSet[str] = frozenset({"APPROVED", "CANCELLED"})

TEST_TRANSITIONS: Dict[str, List[str]] = {
    "PENDING": ["ASSIGNED", "CANCELLED", "ON_HOLD"],
    "ASSIGNED": ["IN_PROGRESS", "PENDING", "CANCELLED", "ON_HOLD"],
    "IN_PROGRESS": ["COMPLETED", "ON_HOLD", "CANCELLED"],
    "COMPLETED": ["IN_REVIEW", "IN_PROGRESS", "ON_HOLD"],
    "IN_REVIEW": ["APPROVED", "REVIEW_REJECTED", "ON_HOLD"],
    "REVIEW_REJECTED": ["IN_PROGRESS", "CANCELLED", "ON_HOLD"],
    "ON_HOLD": ["PENDING", "ASSIGNED", "IN_PROGRESS", "COMPLETED", "IN_REVIEW", "CANCELLED"],
}


# ===============================================================
# ORDER
# ===============================================================
ORDER_STATUSES: Tuple[str, ...] = (
    "DRAFT",
    "SUBMITTED",
    "RECEIVED",
    "IN_PROGRESS",
    "TESTING_COMPLETE",
    "IN_REVIEW",
    "APPROVED",
    "REPORTED",
    "COMPLETED",
    "ON_HOLD",
    "CANCELLED",
)

ORDER_TERMINAL: FrozenSet[str] = frozenset({"COMPLETED", "CANCELLED"})

ORDER_TRANSITIONS: Dict[str, List[str]] = {
    "DRAFT": ["SUBMITTED", "CANCELLED"],
    "SUBMITTED": ["RECEIVED", "ON_HOLD", "CANCELLED"],
    "RECEIVED": ["IN_PROGRESS", "ON_HOLD", "CANCELLED"],
    "IN_PROGRESS": ["TESTING_COMPLETE", "ON_HOLD"],
    "TESTING_COMPLETE": ["IN_REVIEW", "ON_HOLD"],
    "IN_REVIEW": ["APPROVED", "ON_HOLD"],
    "APPROVED": ["REPORTED"],
    "REPORTED": ["COMPLETED"],
    "ON_HOLD": ["SUBMITTED", "RECEIVED", "IN_PROGRESS", "TESTING_COMPLETE", "CANCELLED"],
}


# ===============================================================
# INVOICE
# ===============================================================
INVOICE_STATUSES: Tuple[str, ...] = (
    "DRAFT",
    "PENDING_APPROVAL",
    "APPROVED",
    "SENT",
    "VIEWED",
    "PARTIALLY_PAID",
    "PAID",
    "OVERDUE",
    "VOID",
    "WRITTEN_OFF",
)

INVOICE_TERMINAL: FrozenSet[str] = frozenset({"PAID", "VOID", "WRITTEN_OFF"})

INVOICE_TRANSITIONS: Dict[str, List[str]] = {
    "DRAFT": ["PENDING_APPROVAL", "APPROVED", "VOID"],
    "PENDING_APPROVAL": ["APPROVED", "DRAFT", "VOID"],
    "APPROVED": ["SENT", "DRAFT", "VOID"],
    "SENT": ["VIEWED", "PARTIALLY_PAID", "PAID", "OVERDUE", "VOID"],
    "VIEWED": ["PARTIALLY_PAID", "PAID", "OVERDUE", "VOID"],
    "PARTIALLY_PAID": ["PAID", "OVERDUE", "VOID", "WRITTEN_OFF"],
    "OVERDUE": ["PARTIALLY_PAID", "PAID", "VOID", "WRITTEN_OFF"],
}


# ===============================================================
# ROLE RESTRICTIONS (keyed by target status)
# ===============================================================
# A transition whose target is not listed is open to any authenticated caller.
ROLE_RESTRICTIONS: Dict[EntityType, Dict[str, FrozenSet[str]]] = {
    EntityType.SAMPLE: {
        "APPROVED": frozenset({LAB_DIRECTOR, LAB_MANAGER, SENIOR_ANALYST}),
    },
    EntityType.TEST: {
        "APPROVED": REVIEWER_ROLES,
        "REVIEW_REJECTED": REVIEWER_ROLES,
    },
    EntityType.ORDER: {
        "APPROVED": frozenset({LAB_DIRECTOR, LAB_MANAGER}),
    },
    EntityType.INVOICE: {
        "APPROVED": frozenset({LAB_DIRECTOR, LAB_MANAGER, BILLING_ADMIN}),
    },
}

# Targets that require a non-blank "reason" in the caller's metadata.
REASON_REQUIRED: Dict[EntityType, FrozenSet[str]] = {
    EntityType.SAMPLE: frozenset({"ON_HOLD", "CANCELLED", "REJECTED"}),
    EntityType.TEST: frozenset({"ON_HOLD", "CANCELLED"}),
    EntityType.ORDER: frozenset({"ON_HOLD", "CANCELLED"}),
    EntityType.INVOICE: frozenset({"VOID", "WRITTEN_OFF"}),
}


_TABLES = {
    EntityType.SAMPLE: (SAMPLE_STATUSES, SAMPLE_TERMINAL, SAMPLE_TRANSITIONS, SAMPLE_WILDCARD_TARGETS),
    EntityType.TEST: (TEST_STATUSES, TEST_TERMINAL, TEST_TRANSITIONS, ()),
    EntityType.ORDER: (ORDER_STATUSES, ORDER_TERMINAL, ORDER_TRANSITIONS, ()),
    EntityType.INVOICE: (INVOICE_STATUSES, INVOICE_TERMINAL, INVOICE_TRANSITIONS, ()),
}

INITIAL_STATUS: Dict[EntityType, str] = {
    EntityType.SAMPLE: "REGISTERED",
    EntityType.TEST: "PENDING",
    EntityType.ORDER: "DRAFT",
    EntityType.INVOICE: "DRAFT",
}


# ===============================================================
# TABLE CONSTRUCTION
# ===============================================================
def derive_wildcard_pairs(
    statuses,
    terminal,
    explicit: Set[Tuple[str, str]],
    targets,
) -> List[Tuple[str, str]]:
    """
    (from, to) pairs for targets reachable from every non-terminal status.

    Terminal sources, self-loops and pairs already authored explicitly
    are skipped.
    """
    pairs: List[Tuple[str, str]] = []
    for source in statuses:
        if source in terminal:
            continue
        for target in targets:
            if target == source or (source, target) in explicit:
                continue
            pairs.append((source, target))
    return pairs


@lru_cache(maxsize=None)
def _build_rules(entity_type: EntityType) -> Tuple[TransitionRule, ...]:
    statuses, terminal, transitions, wildcard_targets = _TABLES[entity_type]
    restrictions = ROLE_RESTRICTIONS.get(entity_type, {})

    pairs: List[Tuple[str, str]] = [
        (source, target)
        for source, targets in transitions.items()
        for target in targets
    ]
    pairs += derive_wildcard_pairs(statuses, terminal, set(pairs), wildcard_targets)

    return tuple(
        TransitionRule(source, target, restrictions.get(target))
        for source, target in pairs
    )


def get_transitions(entity_type) -> Tuple[TransitionRule, ...]:
    """
    Effective, ordered rule list for an entity type. Built once and cached.
    """
    return _build_rules(normalize_entity_type(entity_type))


def statuses_for(entity_type) -> Tuple[str, ...]:
    return _TABLES[normalize_entity_type(entity_type)][0]


def terminal_statuses(entity_type) -> FrozenSet[str]:
    return _TABLES[normalize_entity_type(entity_type)][1]


def initial_status(entity_type) -> str:
    return INITIAL_STATUS[normalize_entity_type(entity_type)]


def reason_required(entity_type, target: str) -> bool:
    return normalize_status(target) in REASON_REQUIRED.get(normalize_entity_type(entity_type), frozenset())


__all__ = [
    "EntityType",
    "TransitionRule",
    "ROLES",
    "REVIEWER_ROLES",
    "APPROVER_ROLES",
    "normalize_role",
    "normalize_status",
    "normalize_entity_type",
    "derive_wildcard_pairs",
    "get_transitions",
    "statuses_for",
    "terminal_statuses",
    "initial_status",
    "reason_required",
]
