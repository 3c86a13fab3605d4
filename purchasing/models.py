# purchasing/models.py

from __future__ import annotations

from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel, TimeStampedModel

from .managers import PurchaseOrderManager

DECIMAL_ZERO = Decimal("0.000")
MONEY_PLACES = Decimal("0.001")


# ============================================================
# Purchase Orders
# ============================================================
class PurchaseOrder(BaseModel):
    """
    Purchase order lifecycle:

        draft ──place──▶ ordered ──receive──▶ received
          │                 │
          └────cancel───────┴──▶ cancelled

    received and cancelled are terminal.
    """

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        ORDERED = "ordered", _("Ordered")
        RECEIVED = "received", _("Received")
        CANCELLED = "cancelled", _("Cancelled")

    ALLOWED_TRANSITIONS = {
        "draft": ("ordered", "cancelled"),
        "ordered": ("received", "cancelled"),
        "received": (),
        "cancelled": (),
    }
    EDITABLE_STATUSES = ("draft", "ordered")

    po_number = models.CharField(
        max_length=50,
        unique=True,
        editable=False,
        verbose_name=_("PO number"),
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
        db_index=True,
        verbose_name=_("Status"),
    )

    # Null while a draft still has a placeholder supplier
    supplier = models.ForeignKey(
        "catalog.Supplier",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="purchase_orders",
        verbose_name=_("Supplier"),
    )
    supplier_name = models.CharField(
        max_length=200,
        blank=True,
        verbose_name=_("Supplier name (snapshot)"),
    )

    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=DECIMAL_ZERO,
        verbose_name=_("Total amount"),
    )
    expected_delivery_date = models.DateField(null=True, blank=True, verbose_name=_("Expected delivery"))
    notes = models.TextField(blank=True, verbose_name=_("Notes"))
    invoice_url = models.URLField(max_length=500, blank=True, verbose_name=_("Invoice URL"))
    target_location_id = models.CharField(max_length=64, blank=True, verbose_name=_("Target location"))
    is_auto_generated = models.BooleanField(default=False, verbose_name=_("Auto-generated"))

    received_details = models.JSONField(
        null=True,
        blank=True,
        encoder=DjangoJSONEncoder,
        verbose_name=_("Receipt record"),
        help_text=_("Written once when the order is received."),
    )
    ordered_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Ordered at"))
    received_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Received at"))
    cancelled_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Cancelled at"))
    cancel_reason = models.CharField(max_length=255, blank=True, verbose_name=_("Cancellation reason"))

    objects = PurchaseOrderManager()

    class Meta:
        verbose_name = _("Purchase order")
        verbose_name_plural = _("Purchase orders")
        ordering = ("-created_at", "-id")
        indexes = [
            models.Index(fields=["status", "created_at"], name="po_status_created_idx"),
            models.Index(fields=["supplier", "status"], name="po_supplier_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(total_amount__gte=0), name="po_total_non_negative"),
            models.CheckConstraint(
                condition=~Q(status="received") | Q(received_details__isnull=False),
                name="po_received_has_details",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.po_number} ({self.status})"

    # -------------------------
    # State machine helpers
    # -------------------------
    def can_transition_to(self, status: str) -> bool:
        return str(status) in self.ALLOWED_TRANSITIONS.get(str(self.status), ())

    @property
    def is_editable(self) -> bool:
        return str(self.status) in self.EDITABLE_STATUSES

    @property
    def is_open(self) -> bool:
        return self.is_editable

    # -------------------------
    # Totals
    # -------------------------
    def compute_total(self) -> Decimal:
        total = DECIMAL_ZERO
        for line in self.lines.all():
            total += line.total_cost
        return total

    def recompute_totals(self, save: bool = True) -> None:
        """
        total_amount = Σ quantity × unit_cost over the lines.
        Only meaningful before receipt; the receipt record freezes amounts.
        """
        self.total_amount = self.compute_total()
        if save:
            self.save(update_fields=["total_amount", "updated_at"])


# ============================================================
# Purchase Order Lines
# ============================================================
class PurchaseOrderLine(TimeStampedModel):
    purchase_order = models.ForeignKey(
        PurchaseOrder,
        on_delete=models.CASCADE,
        related_name="lines",
        verbose_name=_("Purchase order"),
    )
    position = models.PositiveIntegerField(verbose_name=_("Position"))
    item = models.ForeignKey(
        "inventory.InventoryItem",
        on_delete=models.PROTECT,
        related_name="purchase_order_lines",
        verbose_name=_("Item"),
    )
    # Snapshots taken when the line is added
    name = models.CharField(max_length=255, verbose_name=_("Item name"))
    unit = models.CharField(max_length=10, verbose_name=_("Unit"))

    quantity = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Quantity"))
    unit_cost = models.DecimalField(max_digits=12, decimal_places=3, verbose_name=_("Unit cost"))
    total_cost = models.DecimalField(max_digits=14, decimal_places=3, verbose_name=_("Line total"))

    class Meta:
        verbose_name = _("Purchase order line")
        verbose_name_plural = _("Purchase order lines")
        ordering = ("purchase_order", "position")
        constraints = [
            models.UniqueConstraint(fields=["purchase_order", "position"], name="uniq_po_line_position"),
            models.CheckConstraint(condition=Q(quantity__gt=0), name="po_line_qty_gt_zero"),
            models.CheckConstraint(condition=Q(unit_cost__gte=0), name="po_line_cost_non_negative"),
        ]

    def __str__(self) -> str:
        return f"{self.name} × {self.quantity} {self.unit}"

    def save(self, *args, **kwargs):
        self.total_cost = (self.quantity * self.unit_cost).quantize(MONEY_PLACES)
        super().save(*args, **kwargs)


# ============================================================
# Receipt intents
# ============================================================
class ReceiptIntent(TimeStampedModel):
    """
    Marks a receipt in progress. Holds the reconciled lines so an interrupted
    receipt can be resumed with the same idempotency key.
    """

    purchase_order = models.OneToOneField(
        PurchaseOrder,
        on_delete=models.CASCADE,
        related_name="receipt_intent",
        verbose_name=_("Purchase order"),
    )
    idempotency_key = models.CharField(max_length=100, verbose_name=_("Idempotency key"))
    payload = models.JSONField(encoder=DjangoJSONEncoder, verbose_name=_("Reconciled receipt"))
    created_by = models.CharField(max_length=150, blank=True, verbose_name=_("Started by"))

    class Meta:
        verbose_name = _("Receipt in progress")
        verbose_name_plural = _("Receipts in progress")

    def __str__(self) -> str:
        return f"{self.purchase_order_id} [{self.idempotency_key}]"
