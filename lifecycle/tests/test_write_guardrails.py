# lifecycle/tests/test_write_guardrails.py

import pytest
from django.core.exceptions import PermissionDenied
from django.test import TestCase

from lifecycle.models import ApprovalAction, AuditLog, Invoice, Order, Organization, Sample
from lifecycle.workflows.executor import execute_transition


class StatusWriteGuardTests(TestCase):
    def setUp(self):
        self.org = Organization.objects.create(code="GUARD", name="Guard Lab")
        self.sample = Sample.objects.create(organization=self.org, sample_number="S-GUARD-1")

    def test_direct_status_change_is_blocked(self):
        self.sample.status = "RECEIVED"
        with self.assertRaises(PermissionDenied):
            self.sample.save()

        self.assertEqual(Sample.objects.get(pk=self.sample.pk).status, "REGISTERED")

    def test_other_fields_can_still_be_saved(self):
        self.sample.name = "Soil core 4"
        self.sample.save()

        self.assertEqual(Sample.objects.get(pk=self.sample.pk).name, "Soil core 4")

    def test_bypass_for_data_repair(self):
        self.sample.status = "RECEIVED"
        self.sample.save(_lifecycle_bypass=True)

        self.assertEqual(Sample.objects.get(pk=self.sample.pk).status, "RECEIVED")

    def test_new_rows_must_start_in_the_initial_status(self):
        with self.assertRaises(PermissionDenied):
            Sample.objects.create(organization=self.org, sample_number="S-GUARD-2", status="APPROVED")
        with self.assertRaises(PermissionDenied):
            Order.objects.create(organization=self.org, order_number="O-GUARD-1", status="COMPLETED")

        self.assertFalse(Sample.objects.filter(sample_number="S-GUARD-2").exists())
        self.assertFalse(Order.objects.filter(order_number="O-GUARD-1").exists())

    def test_explicit_initial_status_is_accepted(self):
        invoice = Invoice.objects.create(organization=self.org, invoice_number="I-GUARD-1", status="DRAFT")

        self.assertEqual(invoice.status, "DRAFT")

    def test_bypass_allows_seeding_any_status(self):
        sample = Sample(organization=self.org, sample_number="S-GUARD-3", status="IN_PROGRESS")
        sample.save(_lifecycle_bypass=True)

        self.assertEqual(Sample.objects.get(pk=sample.pk).status, "IN_PROGRESS")

    def test_executor_is_the_write_path(self):
        execute_transition("SAMPLE", self.sample.pk, "RECEIVED")

        self.sample.refresh_from_db()
        self.assertEqual(self.sample.status, "RECEIVED")
        # A stale in-memory instance cannot undo the transition.
        stale = Sample.objects.get(pk=self.sample.pk)
        stale.status = "REGISTERED"
        with self.assertRaises(PermissionDenied):
            stale.save()


@pytest.mark.django_db
def test_audit_records_cannot_be_edited_or_deleted(sample_factory):
    sample = sample_factory(status="REGISTERED")
    execute_transition("SAMPLE", sample.pk, "RECEIVED")
    log = AuditLog.objects.get(entity_type="SAMPLE", entity_id=sample.pk)

    log.new_status = "APPROVED"
    with pytest.raises(PermissionDenied):
        log.save()
    with pytest.raises(PermissionDenied):
        log.delete()
    with pytest.raises(PermissionDenied):
        AuditLog.objects.filter(pk=log.pk).update(new_status="APPROVED")
    with pytest.raises(PermissionDenied):
        AuditLog.objects.filter(pk=log.pk).delete()

    assert AuditLog.objects.get(pk=log.pk).new_status == "RECEIVED"


@pytest.mark.django_db
def test_approval_actions_are_append_only(lab_test_factory, analyst):
    from lifecycle.services.approval import submit_for_review

    test = lab_test_factory(status="COMPLETED", assigned_to=analyst)
    submit_for_review(test.pk, analyst.pk)
    action = ApprovalAction.objects.get(entity_id=test.pk)

    action.comments = "edited later"
    with pytest.raises(PermissionDenied):
        action.save()
    with pytest.raises(PermissionDenied):
        ApprovalAction.objects.all().delete()
