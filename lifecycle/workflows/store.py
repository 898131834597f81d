# lifecycle/workflows/store.py
"""
Django-backed entity store used by the executor.

Both methods must run inside the caller's transaction.atomic() block;
read_status takes the row lock that serializes concurrent transitions
of the same entity.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple, Type

from django.db import models
from django.utils import timezone

from lifecycle.exceptions import NotFoundError
from lifecycle.models import Invoice, Order, Sample, Test
from lifecycle.workflows.rules import EntityType, normalize_entity_type


# ---------------------------------------------------------------------
# MODEL REGISTRY
# ---------------------------------------------------------------------
# entity type -> (model, lookup path of the owning organization id)
MODEL_REGISTRY: Dict[EntityType, Tuple[Type[models.Model], str]] = {
    EntityType.SAMPLE: (Sample, "organization_id"),
    EntityType.TEST: (Test, "sample__organization_id"),
    EntityType.ORDER: (Order, "organization_id"),
    EntityType.INVOICE: (Invoice, "organization_id"),
}


class DjangoEntityStore:
    def model_for(self, entity_type) -> Type[models.Model]:
        return MODEL_REGISTRY[normalize_entity_type(entity_type)][0]

    def read_status(self, entity_type, entity_id) -> Tuple[str, int]:
        """
        Lock the entity row and return (status, organization_id).
        """
        kind = normalize_entity_type(entity_type)
        model, org_path = MODEL_REGISTRY[kind]

        row = (
            model.objects.select_for_update(of=("self",))
            .filter(pk=entity_id)
            .values_list("status", org_path)
            .first()
        )
        if row is None:
            raise NotFoundError(kind.label, entity_id)

        status, organization_id = row
        return status, organization_id

    def write_status(self, entity_type, entity_id, new_status: str, **fields: Any):
        """
        Write the new status (plus any extra columns) and return the fresh row.

        Queryset update on purpose: it is the one path the model write
        guard lets through.
        """
        model = self.model_for(entity_type)
        model.objects.filter(pk=entity_id).update(
            status=new_status,
            updated_at=timezone.now(),
            **fields,
        )
        return model.objects.get(pk=entity_id)
