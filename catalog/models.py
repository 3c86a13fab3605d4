# catalog/models.py

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from core.managers import AllObjectsManager, VisibleManager
from core.models import BaseModel


# ============================================================
# Categories
# ============================================================
class Category(BaseModel):
    # Translated via modeltranslation: label, description
    label = models.CharField(max_length=120, verbose_name=_("Label"))
    description = models.TextField(blank=True, verbose_name=_("Description"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = VisibleManager()
    all_objects = AllObjectsManager()

    class Meta:
        verbose_name = _("Category")
        verbose_name_plural = _("Categories")
        ordering = ("label",)
        indexes = [
            models.Index(fields=["is_deleted", "is_active"], name="category_del_active_idx"),
        ]

    def __str__(self) -> str:
        return self.label

    def clean(self):
        super().clean()
        if not (self.label or "").strip():
            raise ValidationError({"label": _("Label is required.")})


# ============================================================
# Departments
# ============================================================
class Department(BaseModel):
    """Hotel department that owns stock (kitchen, bar, housekeeping...)."""

    # Translated via modeltranslation: name, description
    name = models.CharField(max_length=120, verbose_name=_("Name"))
    description = models.TextField(blank=True, verbose_name=_("Description"))
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = VisibleManager()
    all_objects = AllObjectsManager()

    class Meta:
        verbose_name = _("Department")
        verbose_name_plural = _("Departments")
        ordering = ("name",)
        indexes = [
            models.Index(fields=["is_deleted", "is_active"], name="department_del_active_idx"),
        ]

    def __str__(self) -> str:
        return self.name

    def clean(self):
        super().clean()
        if not (self.name or "").strip():
            raise ValidationError({"name": _("Name is required.")})


# ============================================================
# Suppliers
# ============================================================
class Supplier(BaseModel):
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    contact_person = models.CharField(max_length=150, blank=True, verbose_name=_("Contact person"))
    email = models.EmailField(blank=True, verbose_name=_("Email"))
    phone = models.CharField(max_length=50, blank=True, verbose_name=_("Phone"))
    address = models.TextField(blank=True, verbose_name=_("Address"))
    tax_id = models.CharField(max_length=50, blank=True, verbose_name=_("Tax ID / VAT"))
    payment_terms = models.CharField(
        max_length=100,
        blank=True,
        verbose_name=_("Payment terms"),
        help_text=_("e.g. Net 30"),
    )
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=1,
        null=True,
        blank=True,
        verbose_name=_("Rating"),
        help_text=_("0 to 5."),
    )
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))

    objects = VisibleManager()
    all_objects = AllObjectsManager()

    class Meta:
        verbose_name = _("Supplier")
        verbose_name_plural = _("Suppliers")
        ordering = ("name",)
        indexes = [
            models.Index(fields=["is_deleted", "is_active"], name="supplier_del_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(rating__isnull=True) | (Q(rating__gte=0) & Q(rating__lte=5)),
                name="supplier_rating_between_0_and_5",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def can_receive_orders(self) -> bool:
        return self.is_active and not self.is_deleted

    def clean(self):
        super().clean()
        errors: dict[str, str] = {}

        if not (self.name or "").strip():
            errors["name"] = _("Name is required.")
        if self.rating is not None and not (Decimal("0") <= self.rating <= Decimal("5")):
            errors["rating"] = _("Rating must be between 0 and 5.")

        if errors:
            raise ValidationError(errors)
