# lifecycle/tests/conftest.py

from __future__ import annotations

import uuid
from typing import Any, Callable, Optional

import pytest
from django.contrib.auth import get_user_model

from lifecycle.models import Invoice, Order, Organization, Sample, Test, UserRole


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _seed(instance):
    # Fixtures may start an entity at any status; the write guard allows it
    # only with the bypass flag.
    instance.save(_lifecycle_bypass=True)
    return instance


@pytest.fixture
def organization(db) -> Organization:
    return Organization.objects.create(code=_rand("ORG"), name=_rand("Lab"))


@pytest.fixture
def other_organization(db) -> Organization:
    return Organization.objects.create(code=_rand("ORG"), name=_rand("Other Lab"))


@pytest.fixture
def user_factory(db, organization) -> Callable[..., Any]:
    """
    Factory for active users holding one role in an organization.
    """
    User = get_user_model()

    def _factory(role: Optional[str], *, org: Optional[Organization] = None, **extra: Any):
        user = User.objects.create_user(username=_rand("user"), password="pass123", **extra)
        if role:
            UserRole.objects.create(user=user, organization=org or organization, role=role)
        return user

    return _factory


@pytest.fixture
def analyst(user_factory):
    return user_factory("ANALYST")


@pytest.fixture
def senior_analyst(user_factory):
    return user_factory("SENIOR_ANALYST")


@pytest.fixture
def lab_manager(user_factory):
    return user_factory("LAB_MANAGER")


@pytest.fixture
def lab_director(user_factory):
    return user_factory("LAB_DIRECTOR")


@pytest.fixture
def order_factory(db, organization) -> Callable[..., Order]:
    def _factory(*, status: str = "DRAFT", org: Optional[Organization] = None, **extra: Any) -> Order:
        return _seed(
            Order(
                organization=org or organization,
                order_number=_rand("ORD"),
                status=status,
                **extra,
            )
        )

    return _factory


@pytest.fixture
def sample_factory(db, organization) -> Callable[..., Sample]:
    def _factory(
        *,
        status: str = "REGISTERED",
        order: Optional[Order] = None,
        org: Optional[Organization] = None,
        **extra: Any,
    ) -> Sample:
        return _seed(
            Sample(
                organization=org or (order.organization if order else organization),
                order=order,
                sample_number=_rand("SMP"),
                status=status,
                **extra,
            )
        )

    return _factory


@pytest.fixture
def lab_test_factory(db, sample_factory) -> Callable[..., Test]:
    def _factory(*, status: str = "PENDING", sample: Optional[Sample] = None, **extra: Any) -> Test:
        return _seed(
            Test(
                sample=sample or sample_factory(status="IN_PROGRESS"),
                method_code=_rand("M"),
                status=status,
                **extra,
            )
        )

    return _factory


@pytest.fixture
def invoice_factory(db, organization) -> Callable[..., Invoice]:
    def _factory(*, status: str = "DRAFT", **extra: Any) -> Invoice:
        return _seed(
            Invoice(
                organization=organization,
                invoice_number=_rand("INV"),
                status=status,
                **extra,
            )
        )

    return _factory
