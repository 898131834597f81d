# lifecycle/tasks.py
from __future__ import annotations

from celery import shared_task

from lifecycle.services.sample_progress import advance_sample_if_tests_complete


@shared_task
def advance_sample_progress(sample_id: int) -> bool:
    return advance_sample_if_tests_complete(sample_id) is not None
