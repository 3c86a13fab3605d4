# core/exceptions.py
"""
Typed domain errors shared by the catalog, inventory and purchasing apps.

Callers catch by type and read structured attributes instead of parsing
messages. Every class carries a machine-readable ``code``.

    DomainError
    +-- NotFound
    |   +-- ItemNotFound
    |   +-- SupplierNotFound
    |   +-- CategoryNotFound
    |   +-- DepartmentNotFound
    |   +-- PurchaseOrderNotFound
    +-- ValidationFailed          (also a django ValidationError)
    |   +-- ReferenceInUse
    +-- InvalidStateTransition
    +-- NegativeStockRejected
    +-- ConcurrentModification
        +-- DuplicateAdjustment
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.core.exceptions import ValidationError


class DomainError(Exception):
    """Base class for every business rule violation."""

    code: str = "DOMAIN_ERROR"


# ============================================================
# Lookups
# ============================================================
class NotFound(DomainError):
    code = "NOT_FOUND"
    entity = "Object"

    def __init__(self, object_id: Any):
        self.object_id = object_id
        super().__init__(f"{self.entity} not found: {object_id}")


class ItemNotFound(NotFound):
    code = "ITEM_NOT_FOUND"
    entity = "Inventory item"


class SupplierNotFound(NotFound):
    code = "SUPPLIER_NOT_FOUND"
    entity = "Supplier"


class CategoryNotFound(NotFound):
    code = "CATEGORY_NOT_FOUND"
    entity = "Category"


class DepartmentNotFound(NotFound):
    code = "DEPARTMENT_NOT_FOUND"
    entity = "Department"


class PurchaseOrderNotFound(NotFound):
    code = "PURCHASE_ORDER_NOT_FOUND"
    entity = "Purchase order"


# ============================================================
# Validation
# ============================================================
class ValidationFailed(DomainError, ValidationError):
    """
    Malformed or inconsistent input.

    Accepts the same payloads as django's ValidationError. Line level
    problems are keyed by position, e.g. ``{"items.2.quantity": [...]}``,
    so callers can point at the offending row.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, message, params=None):
        ValidationError.__init__(self, message, code=self.code, params=params)

    @property
    def field_errors(self) -> dict[str, list[str]]:
        if hasattr(self, "error_dict"):
            return self.message_dict
        return {}


class ReferenceInUse(ValidationFailed):
    code = "REFERENCE_IN_USE"

    def __init__(self, label: str, references: dict[str, int]):
        self.label = label
        self.references = references
        detail = ", ".join(f"{count} {name}" for name, count in references.items())
        super().__init__(f"{label} is still referenced by {detail}.")


# ============================================================
# State & stock
# ============================================================
class InvalidStateTransition(DomainError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, attempted: str, *, subject: str = "Purchase order"):
        self.current = current
        self.attempted = attempted
        super().__init__(f"{subject} in status '{current}' cannot be {attempted}.")


class NegativeStockRejected(DomainError):
    code = "NEGATIVE_STOCK_REJECTED"

    def __init__(self, item_id: Any, current: Decimal, delta: Decimal):
        self.item_id = item_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} on item {item_id} would take stock "
            f"from {current} to {current + delta}."
        )


# ============================================================
# Concurrency & idempotency
# ============================================================
class ConcurrentModification(DomainError):
    code = "CONCURRENT_MODIFICATION"


class DuplicateAdjustment(ConcurrentModification):
    code = "DUPLICATE_ADJUSTMENT"

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Stock adjustment already recorded for key '{idempotency_key}'.")
