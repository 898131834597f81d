# lifecycle/signals.py
from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from lifecycle.models import AuditLog, Test
from lifecycle.tasks import advance_sample_progress
from lifecycle.workflows.rules import EntityType, terminal_statuses

logger = logging.getLogger(__name__)


@receiver(post_save, sender=AuditLog)
def schedule_sample_progress(sender, instance: AuditLog, created: bool, **kwargs):
    """
    When a test reaches a final status, re-check its sample once the
    transition has committed.
    """
    if not created:
        return

    if not getattr(settings, "LIFECYCLE_AUTO_ADVANCE_SAMPLES", True):
        return

    if instance.entity_type != EntityType.TEST:
        return

    if instance.new_status not in terminal_statuses(EntityType.TEST):
        return

    sample_id = (
        Test.objects.filter(pk=instance.entity_id)
        .values_list("sample_id", flat=True)
        .first()
    )
    if sample_id is None:
        return

    logger.debug("Scheduling sample %s progress check after test %s", sample_id, instance.entity_id)
    transaction.on_commit(lambda: advance_sample_progress.delay(sample_id))
