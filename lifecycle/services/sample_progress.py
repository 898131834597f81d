# lifecycle/services/sample_progress.py
from __future__ import annotations

from typing import Optional

from lifecycle.exceptions import NotFoundError
from lifecycle.models import Sample
from lifecycle.workflows.executor import execute_transition
from lifecycle.workflows.rules import EntityType, terminal_statuses


AUTO_STATUS_TRANSITION = "AUTO_STATUS_TRANSITION"


def advance_sample_if_tests_complete(sample_id) -> Optional[Sample]:
    """
    Move an IN_PROGRESS sample to TESTING_COMPLETE once every one of its
    tests is final (APPROVED or CANCELLED).

    System-initiated: the audit record carries no user. Returns the
    updated sample, or None when nothing changed.
    """
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFoundError("Sample", sample_id)

    if sample.status != "IN_PROGRESS":
        return None

    statuses = list(sample.tests.values_list("status", flat=True))
    if not statuses:
        return None

    final = terminal_statuses(EntityType.TEST)
    if not all(s in final for s in statuses):
        return None

    return execute_transition(
        EntityType.SAMPLE,
        sample.pk,
        "TESTING_COMPLETE",
        None,
        {"reason": "All tests reached terminal status"},
        action=AUTO_STATUS_TRANSITION,
    )
