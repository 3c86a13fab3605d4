# catalog/services.py

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from django.db import transaction
from django.utils.translation import gettext as _

from core.exceptions import (
    CategoryNotFound,
    DepartmentNotFound,
    ReferenceInUse,
    SupplierNotFound,
    ValidationFailed,
)
from core.models import AuditLog
from core.services.audit import log_event
from core.services.validation import full_clean_or_fail

from .models import Category, Department, Supplier

logger = logging.getLogger(__name__)

# PO statuses that still count as a live reference to their supplier.
OPEN_PO_STATUSES = ("draft", "ordered")

SUPPLIER_FIELDS = (
    "name",
    "contact_person",
    "email",
    "phone",
    "address",
    "tax_id",
    "payment_terms",
    "rating",
    "is_active",
)


# ============================================================
# Lookups
# ============================================================

def active_suppliers():
    return Supplier.objects.active()


def active_categories():
    return Category.objects.active()


def active_departments():
    return Department.objects.active()


def get_supplier(supplier_id: Any) -> Supplier:
    try:
        return Supplier.objects.get(pk=supplier_id)
    except (Supplier.DoesNotExist, ValueError, TypeError):
        raise SupplierNotFound(supplier_id) from None


# ============================================================
# Create / update
# ============================================================

@transaction.atomic
def create_category(label: str, *, description: str = "", actor: str = "") -> Category:
    category = Category(label=(label or "").strip(), description=description, created_by=actor)
    full_clean_or_fail(category)
    category.save()

    log_event(
        action=AuditLog.Action.CREATE,
        message=_("Category created."),
        actor=actor,
        target=category,
    )
    return category


@transaction.atomic
def create_department(name: str, *, description: str = "", actor: str = "") -> Department:
    department = Department(name=(name or "").strip(), description=description, created_by=actor)
    full_clean_or_fail(department)
    department.save()

    log_event(
        action=AuditLog.Action.CREATE,
        message=_("Department created."),
        actor=actor,
        target=department,
    )
    return department


@transaction.atomic
def create_supplier(
    *,
    name: str,
    contact_person: str = "",
    email: str = "",
    phone: str = "",
    address: str = "",
    tax_id: str = "",
    payment_terms: str = "",
    rating: Optional[Decimal] = None,
    actor: str = "",
) -> Supplier:
    supplier = Supplier(
        name=(name or "").strip(),
        contact_person=contact_person,
        email=email,
        phone=phone,
        address=address,
        tax_id=tax_id,
        payment_terms=payment_terms,
        rating=rating,
        created_by=actor,
    )
    full_clean_or_fail(supplier)
    supplier.save()

    log_event(
        action=AuditLog.Action.CREATE,
        message=_("Supplier created."),
        actor=actor,
        target=supplier,
        extra={"name": supplier.name},
    )
    return supplier


@transaction.atomic
def update_supplier(supplier_id: Any, *, actor: str = "", **changes: Any) -> Supplier:
    """
    Update contact details of a supplier.

    Only the fields in SUPPLIER_FIELDS may be changed; anything else is a
    caller bug and is rejected.
    """
    unknown = sorted(set(changes) - set(SUPPLIER_FIELDS))
    if unknown:
        raise ValidationFailed({name: [_("Unknown supplier field.")] for name in unknown})

    supplier = get_supplier(supplier_id)
    for name, value in changes.items():
        setattr(supplier, name, value)
    supplier.updated_by = actor
    full_clean_or_fail(supplier)
    supplier.save()

    log_event(
        action=AuditLog.Action.UPDATE,
        message=_("Supplier updated."),
        actor=actor,
        target=supplier,
        extra={"fields": sorted(changes)},
    )
    return supplier


def deactivate_supplier(supplier_id: Any, *, actor: str = "") -> Supplier:
    return update_supplier(supplier_id, actor=actor, is_active=False)


# ============================================================
# Guarded deletes
# ============================================================

def _live_item_count(related_manager) -> int:
    return related_manager.filter(is_deleted=False).count()


def _soft_delete(obj, *, actor: str, label: str, references: dict[str, int]) -> None:
    references = {name: count for name, count in references.items() if count}
    if references:
        raise ReferenceInUse(label, references)

    obj.soft_delete(actor=actor)
    log_event(
        action=AuditLog.Action.DELETE,
        message=_("%(label)s deleted.") % {"label": label},
        actor=actor,
        target=obj,
    )
    logger.info("Soft-deleted %s", label)


@transaction.atomic
def delete_category(category_id: Any, *, actor: str = "") -> None:
    category = Category.objects.select_for_update().filter(pk=category_id).first()
    if category is None:
        raise CategoryNotFound(category_id)

    _soft_delete(
        category,
        actor=actor,
        label=f"Category '{category.label}'",
        references={"inventory items": _live_item_count(category.items)},
    )


@transaction.atomic
def delete_department(department_id: Any, *, actor: str = "") -> None:
    department = Department.objects.select_for_update().filter(pk=department_id).first()
    if department is None:
        raise DepartmentNotFound(department_id)

    _soft_delete(
        department,
        actor=actor,
        label=f"Department '{department.name}'",
        references={"inventory items": _live_item_count(department.items)},
    )


@transaction.atomic
def delete_supplier(supplier_id: Any, *, actor: str = "") -> None:
    """
    Soft-delete a supplier.

    Blocked while any live item names it as preferred supplier or any draft /
    ordered purchase order is addressed to it. Received and cancelled orders
    keep their supplier name snapshot and do not block.
    """
    supplier = get_supplier(supplier_id)

    _soft_delete(
        supplier,
        actor=actor,
        label=f"Supplier '{supplier.name}'",
        references={
            "inventory items": _live_item_count(supplier.preferred_items),
            "open purchase orders": supplier.purchase_orders.filter(status__in=OPEN_PO_STATUSES).count(),
        },
    )
