# lifecycle/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class StatusWriteGuardMixin(models.Model):
    """
    Prevent direct modification of the lifecycle status outside the executor.

    New rows start at the status field's default (the entity's initial
    status) and are afterwards only written by
    lifecycle.workflows.executor (queryset update). Direct .save() changes to
    STATUS_FIELD are blocked so every status change has an audit record.

    Escape hatch:
      - pass _lifecycle_bypass=True to save(), OR
      - set instance._lifecycle_bypass = True
    Use sparingly (fixtures, data repair scripts).
    """

    STATUS_FIELD = "status"
    BYPASS_KWARG = "_lifecycle_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.BYPASS_KWARG, False)
            or getattr(self, "_lifecycle_bypass", False)
        )

        if not bypass and self._state.adding and self.STATUS_FIELD:
            initial = self._meta.get_field(self.STATUS_FIELD).get_default()
            new = getattr(self, self.STATUS_FIELD, None)

            if new != initial:
                raise PermissionDenied(
                    f"New {self.__class__.__name__} records must start in '{initial}', "
                    f"not '{new}'. Use lifecycle transition APIs."
                )

        if not bypass and not self._state.adding and self.pk is not None and self.STATUS_FIELD:
            old = (
                self.__class__.objects.filter(pk=self.pk)
                .values_list(self.STATUS_FIELD, flat=True)
                .first()
            )
            new = getattr(self, self.STATUS_FIELD, None)

            if old is not None and old != new:
                raise PermissionDenied(
                    f"Direct modification of '{self.STATUS_FIELD}' is forbidden. "
                    "Use lifecycle transition APIs."
                )

        return super().save(*args, **kwargs)


class AppendOnlyQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise PermissionDenied(f"{self.model.__name__} records are append-only.")

    def delete(self):
        raise PermissionDenied(f"{self.model.__name__} records are append-only.")


class AppendOnlyMixin(models.Model):
    """
    Audit rows are written once and never mutated or deleted.
    """

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise PermissionDenied(f"{self.__class__.__name__} records are append-only.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied(f"{self.__class__.__name__} records are append-only.")
