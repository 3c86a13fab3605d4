import uuid

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class TimeStampedModel(models.Model):
    """
    Adds created_at / updated_at fields.
    Use this for almost all models.
    """
    created_at = models.DateTimeField(
        default=timezone.now,
        editable=False,
        verbose_name=_("Created at"),
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        verbose_name=_("Updated at"),
    )

    class Meta:
        abstract = True


class ActorStampedModel(models.Model):
    """
    Adds created_by / updated_by fields.

    Staff identity is owned by the hotel's auth system, so actors are stored
    as the display name handed in by the calling service.
    """
    created_by = models.CharField(
        max_length=150,
        blank=True,
        verbose_name=_("Created by"),
    )
    updated_by = models.CharField(
        max_length=150,
        blank=True,
        verbose_name=_("Updated by"),
    )

    class Meta:
        abstract = True


class SoftDeleteModel(models.Model):
    """
    Soft delete support:
    - is_deleted: mark record as deleted without actually removing it
    - deleted_at / deleted_by: track who deleted and when
    """
    is_deleted = models.BooleanField(
        default=False,
        verbose_name=_("Deleted?"),
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_("Deleted at"),
    )
    deleted_by = models.CharField(
        max_length=150,
        blank=True,
        verbose_name=_("Deleted by"),
    )

    class Meta:
        abstract = True

    def soft_delete(self, actor: str = "", save=True):
        """
        Mark the object as deleted without actually removing it from DB.
        Call this from services instead of obj.delete().
        """
        if not self.is_deleted:
            self.is_deleted = True
            self.deleted_at = timezone.now()
            if actor:
                self.deleted_by = actor

            if save:
                self.save(update_fields=["is_deleted", "deleted_at", "deleted_by"])


class BaseModel(TimeStampedModel, ActorStampedModel, SoftDeleteModel):
    """
    Base model for the hotel stock-control apps:

    - public_id (UUID) for APIs and integrations
    - created_at / updated_at
    - created_by / updated_by
    - soft delete (is_deleted, deleted_at, deleted_by)

    The default integer `id` stays the primary key.
    """
    public_id = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        db_index=True,
        verbose_name=_("Public ID (UUID)"),
    )

    class Meta:
        abstract = True
