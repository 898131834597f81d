# lifecycle/services/approval.py
"""
Test approval chain.

submit -> peer review (approve / reject) -> optional final approval,
with identity rules layered over the executor:
- an analyst never reviews or approves their own test
- the reviewer never doubles as the final approver

Every decision runs in one transaction with the test row locked, writes
the status through the executor (domain-specific audit action) and
appends an ApprovalAction.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from lifecycle.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from lifecycle.models import ApprovalAction, Order, Test, UserRole
from lifecycle.workflows.executor import execute_transition
from lifecycle.workflows.rules import (
    APPROVER_ROLES,
    REVIEWER_ROLES,
    EntityType,
    normalize_role,
)

logger = logging.getLogger(__name__)


SUBMIT_FOR_REVIEW = "SUBMIT_FOR_REVIEW"
REVIEW_APPROVE = "REVIEW_APPROVE"
REVIEW_REJECT = "REVIEW_REJECT"
APPROVE = "APPROVE"
FINAL_APPROVAL = "FINAL_APPROVAL"

DECISIONS = {"approve", "reject"}

# approve_test accepts either; COMPLETED is the single-tier entry point.
APPROVAL_ENTRY_STATUSES = frozenset({"IN_REVIEW", "COMPLETED"})


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _lock_test(test_id) -> Test:
    try:
        return (
            Test.objects.select_for_update(of=("self",))
            .select_related("sample")
            .get(pk=test_id)
        )
    except Test.DoesNotExist:
        raise NotFoundError("Test", test_id)


def _user_pk(user_id):
    """
    Caller id coerced to the user primary key type, so identity checks
    compare like with like ("7" and 7 are the same user).
    """
    if user_id is None or str(user_id).strip() == "":
        raise NotFoundError("User", user_id)
    try:
        return get_user_model()._meta.pk.to_python(user_id)
    except DjangoValidationError:
        raise NotFoundError("User", user_id)


def _resolve_role(user_id, organization_id) -> str:
    """
    Role of an active user inside the test's organization.
    """
    row = (
        UserRole.objects.filter(
            user_id=user_id,
            organization_id=organization_id,
            user__is_active=True,
        )
        .values_list("role", flat=True)
        .first()
    )
    if row is None:
        raise NotFoundError("User", user_id)
    return normalize_role(row)


def _record_action(
    *,
    test: Test,
    action: str,
    level: int,
    user_id,
    previous_status: str,
    new_status: str,
    comments: Optional[str],
) -> ApprovalAction:
    return ApprovalAction.objects.create(
        organization_id=test.sample.organization_id,
        entity_type=EntityType.TEST,
        entity_id=test.pk,
        action=action,
        level=level,
        performed_by_id=user_id,
        previous_status=previous_status,
        new_status=new_status,
        comments=comments,
    )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def submit_for_review(test_id, user_id) -> Test:
    """
    Submit a completed test for peer review (level 0).

    No role restriction: the assigned analyst submits their own work.
    """
    user_id = _user_pk(user_id)

    with transaction.atomic():
        test = _lock_test(test_id)
        previous = test.status

        # Any role will do, but the user must belong to the test's organization.
        _resolve_role(user_id, test.sample.organization_id)

        updated = execute_transition(
            EntityType.TEST,
            test.pk,
            "IN_REVIEW",
            user_id,
            action=SUBMIT_FOR_REVIEW,
        )
        _record_action(
            test=test,
            action=SUBMIT_FOR_REVIEW,
            level=ApprovalAction.Level.SUBMIT,
            user_id=user_id,
            previous_status=previous,
            new_status="IN_REVIEW",
            comments=None,
        )

    logger.info("Test %s submitted for review by %s", test_id, user_id)

    return updated


def review_test(test_id, reviewer_id, decision: str, comments: Optional[str] = None) -> Test:
    """
    Peer review (level 1) of a test in IN_REVIEW.

    On approve the approval fields are stamped as well, so a lab without a
    separate approver treats the review as the approval.
    """
    decision = (decision or "").strip().lower()
    if decision not in DECISIONS:
        raise ValidationError(
            f"Unknown review decision: {decision or 'EMPTY'}",
            {"decision": decision, "allowed": sorted(DECISIONS)},
        )
    reviewer_id = _user_pk(reviewer_id)

    with transaction.atomic():
        test = _lock_test(test_id)
        previous = test.status

        if previous != "IN_REVIEW":
            raise ConflictError(
                f"Test must be in IN_REVIEW status to be reviewed (current: {previous})",
                {"current_status": previous, "required_status": "IN_REVIEW"},
            )

        if test.assigned_to_id is not None and test.assigned_to_id == reviewer_id:
            raise ForbiddenError("Analysts cannot review their own tests")

        role = _resolve_role(reviewer_id, test.sample.organization_id)
        if role not in REVIEWER_ROLES:
            raise ForbiddenError(
                f"User role '{role}' is not authorized to review tests",
                {"role": role, "required_roles": sorted(REVIEWER_ROLES)},
            )

        approve = decision == "approve"
        target = "APPROVED" if approve else "REVIEW_REJECTED"
        action = REVIEW_APPROVE if approve else REVIEW_REJECT

        now = timezone.now()
        fields: Dict[str, Any] = {
            "reviewed_by_id": reviewer_id,
            "reviewed_at": now,
            "review_notes": comments,
        }
        if approve:
            fields.update(
                approved_by_id=reviewer_id,
                approved_at=now,
                approval_notes=comments,
            )

        updated = execute_transition(
            EntityType.TEST,
            test.pk,
            target,
            reviewer_id,
            {"review_notes": comments},
            action=action,
            fields=fields,
        )
        _record_action(
            test=test,
            action=action,
            level=ApprovalAction.Level.PEER_REVIEW,
            user_id=reviewer_id,
            previous_status=previous,
            new_status=target,
            comments=comments,
        )

    logger.info("Test %s reviewed by %s: %s", test_id, reviewer_id, decision)

    return updated


def approve_test(test_id, approver_id, comments: Optional[str] = None) -> Test:
    """
    Final approval (level 2).

    Two-tier labs approve from IN_REVIEW after a peer review. Single-tier
    labs approve straight from COMPLETED; the test then passes through
    IN_REVIEW inside the same transaction so both moves are audited.
    """
    approver_id = _user_pk(approver_id)

    with transaction.atomic():
        test = _lock_test(test_id)
        previous = test.status

        if previous not in APPROVAL_ENTRY_STATUSES:
            raise ConflictError(
                "Test must be in IN_REVIEW or COMPLETED status to be approved "
                f"(current: {previous})",
                {"current_status": previous, "required_status": sorted(APPROVAL_ENTRY_STATUSES)},
            )

        if test.assigned_to_id is not None and test.assigned_to_id == approver_id:
            raise ForbiddenError("Analysts cannot approve their own tests")

        if test.reviewed_by_id is not None and test.reviewed_by_id == approver_id:
            raise ForbiddenError(
                "The reviewer cannot also be the final approver for the same test"
            )

        role = _resolve_role(approver_id, test.sample.organization_id)
        if role not in APPROVER_ROLES:
            raise ForbiddenError(
                f"User role '{role}' is not authorized for final test approval",
                {"role": role, "required_roles": sorted(APPROVER_ROLES)},
            )

        if previous == "COMPLETED":
            execute_transition(
                EntityType.TEST,
                test.pk,
                "IN_REVIEW",
                approver_id,
                {"via": "approve_test"},
            )

        updated = execute_transition(
            EntityType.TEST,
            test.pk,
            "APPROVED",
            approver_id,
            {"approval_notes": comments},
            action=FINAL_APPROVAL,
            fields={
                "approved_by_id": approver_id,
                "approved_at": timezone.now(),
                "approval_notes": comments,
            },
        )
        _record_action(
            test=test,
            action=APPROVE,
            level=ApprovalAction.Level.FINAL_APPROVAL,
            user_id=approver_id,
            previous_status=previous,
            new_status="APPROVED",
            comments=comments,
        )

    logger.info("Test %s approved by %s (from %s)", test_id, approver_id, previous)

    return updated


def get_approval_queue(org_id, role: str):
    """
    Tests awaiting review or approval in an organization.

    Queue visibility is role-gated here, not filtered by the client.
    """
    role_norm = normalize_role(role)
    if role_norm not in REVIEWER_ROLES and role_norm not in APPROVER_ROLES:
        raise ForbiddenError(
            f"Role '{role_norm or 'NONE'}' does not have access to the approval queue",
            {"role": role_norm or None},
        )

    return (
        Test.objects.filter(
            sample__organization_id=org_id,
            status="IN_REVIEW",
        )
        .select_related("sample", "sample__order", "assigned_to", "reviewed_by")
        .order_by("sample__order__due_date", "created_at", "id")
    )


def check_order_approval_status(order_id) -> Dict[str, Any]:
    """
    An order is fully approved iff every test on every sample is APPROVED or
    CANCELLED and at least one is APPROVED.
    """
    if not Order.objects.filter(pk=order_id).exists():
        raise NotFoundError("Order", order_id)

    statuses = list(
        Test.objects.filter(sample__order_id=order_id).values_list("status", flat=True)
    )
    total = len(statuses)

    if total == 0:
        return {
            "order_id": order_id,
            "is_fully_approved": False,
            "total_tests": 0,
            "approved_tests": 0,
            "cancelled_tests": 0,
            "pending_tests": 0,
            "reason": "No tests found on order",
        }

    approved = sum(1 for s in statuses if s == "APPROVED")
    cancelled = sum(1 for s in statuses if s == "CANCELLED")
    pending = total - approved - cancelled
    fully_approved = pending == 0 and approved > 0

    if fully_approved:
        reason = "All tests are approved or cancelled"
    elif pending == 0:
        reason = "All tests were cancelled"
    else:
        reason = f"{pending} test(s) still pending approval"

    return {
        "order_id": order_id,
        "is_fully_approved": fully_approved,
        "total_tests": total,
        "approved_tests": approved,
        "cancelled_tests": cancelled,
        "pending_tests": pending,
        "reason": reason,
    }
