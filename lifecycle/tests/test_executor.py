# lifecycle/tests/test_executor.py

import threading

import pytest
from django.db import connection, connections

from lifecycle.exceptions import ConflictError, NotFoundError, ValidationError
from lifecycle.models import AuditLog, Sample, Test
from lifecycle.workflows.audit import STATUS_TRANSITION, audit_trail
from lifecycle.workflows.executor import execute_transition


pytestmark = pytest.mark.django_db


def test_transition_updates_status_and_appends_one_audit_record(sample_factory, analyst):
    sample = sample_factory(status="RECEIVED")

    updated = execute_transition("SAMPLE", sample.pk, "IN_STORAGE", analyst.pk, {"shelf": "B2"})

    assert isinstance(updated, Sample)
    assert updated.status == "IN_STORAGE"

    logs = list(audit_trail("SAMPLE", sample.pk))
    assert len(logs) == 1
    log = logs[0]
    assert log.action == STATUS_TRANSITION
    assert log.previous_status == "RECEIVED"
    assert log.new_status == "IN_STORAGE"
    assert log.user_id == analyst.pk
    assert log.organization_id == sample.organization_id
    assert log.metadata == {"shelf": "B2"}


def test_illegal_transition_changes_nothing(sample_factory, analyst):
    sample = sample_factory(status="REGISTERED")
    before = (Sample.objects.get(pk=sample.pk).status, AuditLog.objects.count())

    with pytest.raises(ConflictError) as exc:
        execute_transition("SAMPLE", sample.pk, "APPROVED", analyst.pk)

    assert "RECEIVED" in exc.value.details["allowed_targets"]
    after = (Sample.objects.get(pk=sample.pk).status, AuditLog.objects.count())
    assert after == before


def test_missing_entity_is_not_found(organization):
    with pytest.raises(NotFoundError) as exc:
        execute_transition("ORDER", 999999, "SUBMITTED")

    assert exc.value.status_code == 404
    assert "999999" in exc.value.message
    assert AuditLog.objects.count() == 0


class _UntouchableStore:
    def read_status(self, *args, **kwargs):
        raise AssertionError("store must not be read")

    def write_status(self, *args, **kwargs):
        raise AssertionError("store must not be written")


@pytest.mark.parametrize(
    "kind,target",
    [
        ("SAMPLE", "ON_HOLD"),
        ("SAMPLE", "CANCELLED"),
        ("SAMPLE", "REJECTED"),
        ("TEST", "CANCELLED"),
        ("ORDER", "ON_HOLD"),
        ("INVOICE", "VOID"),
        ("INVOICE", "WRITTEN_OFF"),
    ],
)
def test_reason_is_required_before_any_store_access(kind, target):
    with pytest.raises(ValidationError) as exc:
        execute_transition(kind, 1, target, metadata={"reason": "   "}, store=_UntouchableStore())

    assert exc.value.details["field"] == "reason"


def test_request_shape_is_validated_before_store_access():
    store = _UntouchableStore()

    with pytest.raises(ValidationError):
        execute_transition("SAMPLE", None, "RECEIVED", store=store)
    with pytest.raises(ValidationError):
        execute_transition("SAMPLE", 1, "", store=store)
    with pytest.raises(ValidationError):
        execute_transition("SAMPLE", 1, "RECEIVED", metadata=["not", "a", "dict"], store=store)
    with pytest.raises(ValidationError):
        execute_transition("SPACESHIP", 1, "RECEIVED", store=store)


def test_reason_is_recorded_in_audit_metadata(order_factory, lab_manager):
    order = order_factory(status="SUBMITTED")

    execute_transition("ORDER", order.pk, "ON_HOLD", lab_manager.pk, {"reason": "Client query"})

    log = audit_trail("ORDER", order.pk).get()
    assert log.metadata == {"reason": "Client query"}


def test_second_caller_validates_against_the_committed_status(sample_factory, analyst, lab_manager):
    sample = sample_factory(status="RECEIVED")

    execute_transition("SAMPLE", sample.pk, "IN_STORAGE", analyst.pk)

    # A caller that read RECEIVED earlier now loses the race.
    with pytest.raises(ConflictError) as exc:
        execute_transition("SAMPLE", sample.pk, "IN_STORAGE", lab_manager.pk)

    assert exc.value.details["current_status"] == "IN_STORAGE"
    assert Sample.objects.get(pk=sample.pk).status == "IN_STORAGE"
    assert audit_trail("SAMPLE", sample.pk).count() == 1


def test_system_transition_has_no_user(invoice_factory):
    invoice = invoice_factory(status="SENT")

    execute_transition("INVOICE", invoice.pk, "OVERDUE", None, {"reason": "Past due date"})

    log = audit_trail("INVOICE", invoice.pk).get()
    assert log.user_id is None
    assert log.new_status == "OVERDUE"


class _FailingSink:
    def append(self, record):
        raise RuntimeError("audit storage unavailable")


def test_failed_audit_write_rolls_back_status(sample_factory):
    sample = sample_factory(status="RECEIVED")

    with pytest.raises(RuntimeError):
        execute_transition("SAMPLE", sample.pk, "IN_STORAGE", audit_sink=_FailingSink())

    assert Sample.objects.get(pk=sample.pk).status == "RECEIVED"
    assert AuditLog.objects.count() == 0


class _MemoryStore:
    def __init__(self, rows):
        self.rows = rows

    def read_status(self, entity_type, entity_id):
        try:
            return self.rows[entity_id]
        except KeyError:
            raise NotFoundError(entity_type.label, entity_id)

    def write_status(self, entity_type, entity_id, new_status, **fields):
        _, org_id = self.rows[entity_id]
        self.rows[entity_id] = (new_status, org_id)
        return {"id": entity_id, "status": new_status, **fields}


class _MemorySink:
    def __init__(self):
        self.records = []

    def append(self, record):
        self.records.append(record)


def test_store_and_sink_are_replaceable():
    store = _MemoryStore({7: ("IN_PROGRESS", 3)})
    sink = _MemorySink()

    result = execute_transition(
        "test", 7, "completed", 11,
        store=store,
        audit_sink=sink,
        fields={"review_notes": "ok"},
    )

    assert result == {"id": 7, "status": "COMPLETED", "review_notes": "ok"}
    assert store.rows[7] == ("COMPLETED", 3)

    (record,) = sink.records
    assert record.organization_id == 3
    assert record.entity_type == "TEST"
    assert (record.previous_status, record.new_status) == ("IN_PROGRESS", "COMPLETED")
    assert record.user_id == 11


def test_extra_fields_are_written_with_the_status(lab_test_factory, analyst):
    test = lab_test_factory(status="PENDING")

    updated = execute_transition(
        "TEST", test.pk, "ASSIGNED", analyst.pk,
        fields={"assigned_to_id": analyst.pk},
    )

    assert updated.status == "ASSIGNED"
    assert updated.assigned_to_id == analyst.pk
    assert audit_trail("TEST", test.pk).get().organization_id == test.sample.organization_id


def test_audit_trail_is_ordered_oldest_first(order_factory, lab_manager):
    order = order_factory(status="DRAFT")

    for target in ("SUBMITTED", "RECEIVED", "IN_PROGRESS"):
        execute_transition("ORDER", order.pk, target, lab_manager.pk)

    assert [log.new_status for log in audit_trail("order", order.pk)] == [
        "SUBMITTED",
        "RECEIVED",
        "IN_PROGRESS",
    ]


@pytest.mark.skipif(
    connection.vendor != "postgresql",
    reason="needs a backend with row locks (DJANGO_ENV=production)",
)
@pytest.mark.django_db(transaction=True)
def test_concurrent_transitions_on_one_test_let_exactly_one_win(lab_test_factory, analyst, senior_analyst):
    test = lab_test_factory(status="IN_PROGRESS")
    barrier = threading.Barrier(2)
    outcomes = []

    def _complete(user_id):
        try:
            barrier.wait(timeout=10)
            execute_transition("TEST", test.pk, "COMPLETED", user_id)
            outcomes.append("ok")
        except ConflictError:
            outcomes.append("conflict")
        finally:
            connections.close_all()

    threads = [
        threading.Thread(target=_complete, args=(user.pk,))
        for user in (analyst, senior_analyst)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["conflict", "ok"]
    assert Test.objects.get(pk=test.pk).status == "COMPLETED"
    assert audit_trail("TEST", test.pk).count() == 1
