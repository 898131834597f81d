# lifecycle/models/core.py

from django.conf import settings
from django.db import models

from lifecycle.workflows.guards import StatusWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Organization (tenant)
# ============================================================
class Organization(TimeStampedModel):
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.code} - {self.name}"


# ============================================================
# User Roles
# ============================================================
class UserRole(TimeStampedModel):
    """
    The single lifecycle role a user holds inside one organization.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lifecycle_roles",
    )
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="user_roles",
    )
    role = models.CharField(max_length=64)

    class Meta:
        unique_together = ("user", "organization")

    def __str__(self):
        return f"{self.user} - {self.role}"


# ============================================================
# Order
# ============================================================
class Order(StatusWriteGuardMixin, TimeStampedModel):
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    order_number = models.CharField(max_length=50, unique=True)
    due_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=32, default="DRAFT", editable=False)

    def __str__(self):
        return self.order_number


# ============================================================
# Sample
# ============================================================
class Sample(StatusWriteGuardMixin, TimeStampedModel):
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="samples",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="samples",
    )
    sample_number = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=255, blank=True)

    status = models.CharField(max_length=32, default="REGISTERED", editable=False)

    def __str__(self):
        return self.sample_number


# ============================================================
# Test
# ============================================================
class Test(StatusWriteGuardMixin, TimeStampedModel):
    """
    One analysis performed on a sample. The tenant is the sample's
    organization.
    """

    # Keep pytest from collecting this model as a test class.
    __test__ = False

    sample = models.ForeignKey(
        Sample,
        on_delete=models.PROTECT,
        related_name="tests",
    )
    method_code = models.CharField(max_length=50, blank=True)

    status = models.CharField(max_length=32, default="PENDING", editable=False)

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_tests",
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_tests",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(null=True, blank=True)

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_tests",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approval_notes = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.sample.sample_number}:{self.method_code or self.pk}"


# ============================================================
# Invoice
# ============================================================
class Invoice(StatusWriteGuardMixin, TimeStampedModel):
    organization = models.ForeignKey(
        Organization,
        on_delete=models.PROTECT,
        related_name="invoices",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="invoices",
    )
    invoice_number = models.CharField(max_length=50, unique=True)

    status = models.CharField(max_length=32, default="DRAFT", editable=False)

    def __str__(self):
        return self.invoice_number
