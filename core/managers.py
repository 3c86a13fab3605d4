# core/managers.py
from django.db import models


class SoftDeleteQuerySet(models.QuerySet):
    """
    Base QuerySet that respects BaseModel(SoftDeleteModel):
    - visible(): not deleted
    - deleted(): soft deleted
    - active(): not deleted and flagged is_active
    """

    def visible(self):
        return self.filter(is_deleted=False)

    def deleted(self):
        return self.filter(is_deleted=True)

    def active(self):
        return self.visible().filter(is_active=True)


class AllObjectsManager(models.Manager.from_queryset(SoftDeleteQuerySet)):  # type: ignore[misc]
    """Every row, soft-deleted ones included."""


class VisibleManager(AllObjectsManager):
    """Default manager that hides soft-deleted rows."""

    def get_queryset(self):
        return super().get_queryset().visible()
