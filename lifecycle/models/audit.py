# lifecycle/models/audit.py

from django.conf import settings
from django.db import models

from lifecycle.workflows.guards import AppendOnlyMixin
from lifecycle.workflows.rules import EntityType


class AuditLog(AppendOnlyMixin, models.Model):
    """
    Immutable audit record, one per successful status transition.
    """

    organization = models.ForeignKey(
        "lifecycle.Organization",
        on_delete=models.PROTECT,
        related_name="audit_logs",
    )
    # Null for system-initiated transitions.
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="lifecycle_audit_logs",
    )

    entity_type = models.CharField(max_length=16, choices=EntityType.choices)
    entity_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=64)
    previous_status = models.CharField(max_length=32)
    new_status = models.CharField(max_length=32)
    metadata = models.JSONField(null=True, blank=True)

    timestamp = models.DateTimeField()

    class Meta:
        ordering = ["timestamp", "id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"]),
        ]

    def __str__(self):
        return (
            f"{self.entity_type}:{self.entity_id} {self.action} "
            f"{self.previous_status} -> {self.new_status}"
        )


class ApprovalAction(AppendOnlyMixin, models.Model):
    """
    One human decision in the test approval chain.
    """

    class Level(models.IntegerChoices):
        SUBMIT = 0, "Submit for review"
        PEER_REVIEW = 1, "Peer review"
        FINAL_APPROVAL = 2, "Final approval"

    organization = models.ForeignKey(
        "lifecycle.Organization",
        on_delete=models.PROTECT,
        related_name="approval_actions",
    )

    entity_type = models.CharField(max_length=16, choices=EntityType.choices)
    entity_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=64)
    level = models.PositiveSmallIntegerField(choices=Level.choices)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approval_actions",
    )

    previous_status = models.CharField(max_length=32)
    new_status = models.CharField(max_length=32)
    comments = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"]),
        ]

    def __str__(self):
        return f"{self.entity_type}:{self.entity_id} L{self.level} {self.action}"
