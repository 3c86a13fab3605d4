from datetime import date
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from catalog.services import create_supplier, deactivate_supplier
from core.exceptions import (
    ConcurrentModification,
    InvalidStateTransition,
    PurchaseOrderNotFound,
    ValidationFailed,
)
from core.models import AuditLog
from core.services.audit import history_for
from inventory.models import InventoryItem, InventorySettings, StockTransaction
from inventory.services import ItemSpec, adjust_stock, create_item
from purchasing import services
from purchasing.models import PurchaseOrder, ReceiptIntent
from purchasing.receiving import (
    ReceivingInput,
    ReceivingLineInput,
    discard_receipt_intent,
    receive,
    stage,
)
from purchasing.services import LineInput, PurchaseOrderPatch


class BasePurchasingTestCase(TestCase):
    def setUp(self):
        self.supplier = create_supplier(name="Coast Provisions", payment_terms="Net 30")
        self.other_supplier = create_supplier(name="Island Beverages")

        # Opening stock above the reorder point so nothing is ordered on setup
        self.rice = create_item(
            ItemSpec(
                name="Basmati rice",
                sku="KIT-RICE-25",
                unit="kg",
                min_stock_level=Decimal("5"),
                max_stock_level=Decimal("50"),
                reorder_point=Decimal("5"),
                unit_cost=Decimal("2.500"),
                preferred_supplier_id=self.supplier.pk,
                opening_stock=Decimal("10"),
            )
        )
        self.oil = create_item(
            ItemSpec(
                name="Sunflower oil",
                sku="KIT-OIL-20",
                unit="liter",
                min_stock_level=Decimal("5"),
                max_stock_level=Decimal("40"),
                reorder_point=Decimal("5"),
                unit_cost=Decimal("3.000"),
                preferred_supplier_id=self.supplier.pk,
                opening_stock=Decimal("20"),
            )
        )

    def stock_of(self, item):
        return InventoryItem.objects.get(pk=item.pk).current_stock

    def ordered_po(self, *lines, supplier=None):
        return services.create_purchase_order(
            supplier_id=(supplier or self.supplier).pk,
            items=list(lines) or [LineInput(item_id=self.rice.pk, quantity=Decimal("10"), unit_cost=Decimal("2.50"))],
            status="ordered",
            created_by="Zawadi",
        )

    def set_inventory_settings(self, **values):
        settings = InventorySettings.get_solo()
        for name, value in values.items():
            setattr(settings, name, value)
        settings.save()


# ============================================================
# Creation & validation
# ============================================================
class CreatePurchaseOrderTests(BasePurchasingTestCase):
    def test_create_draft_computes_total_and_number(self):
        po = services.create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[
                LineInput(item_id=self.rice.pk, quantity=Decimal("10")),
                LineInput(item_id=self.oil.pk, quantity=Decimal("4"), unit_cost=Decimal("2.750")),
            ],
            notes="Weekly dry goods",
            created_by="Zawadi",
        )

        self.assertEqual(po.status, "draft")
        self.assertTrue(po.po_number.startswith(f"PO-{timezone.localtime().year}-"))
        self.assertEqual(po.supplier_name, "Coast Provisions")
        self.assertEqual(po.total_amount, Decimal("36.000"))

        lines = list(po.lines.order_by("position"))
        self.assertEqual([line.position for line in lines], [0, 1])
        self.assertEqual(lines[0].unit_cost, Decimal("2.500"))
        self.assertEqual(lines[0].unit, "kg")
        self.assertEqual(lines[1].total_cost, Decimal("11.000"))
        self.assertTrue(history_for(po).filter(action=AuditLog.Action.CREATE).exists())

    def test_numbers_are_sequential(self):
        first = services.create_purchase_order(supplier_id=None, items=[])
        second = services.create_purchase_order(supplier_id=None, items=[])

        year = timezone.localtime().year
        self.assertEqual(first.po_number, f"PO-{year}-001")
        self.assertEqual(second.po_number, f"PO-{year}-002")

    def test_draft_may_leave_supplier_and_lines_empty(self):
        po = services.create_purchase_order(supplier_id=None, items=[])

        self.assertIsNone(po.supplier)
        self.assertEqual(po.total_amount, Decimal("0"))

    def test_ordered_needs_supplier_and_lines(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_purchase_order(supplier_id=None, items=[], status="ordered")

        self.assertIn("supplier_id", ctx.exception.field_errors)
        self.assertIn("items", ctx.exception.field_errors)
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_ordered_needs_active_supplier(self):
        deactivate_supplier(self.other_supplier.pk)

        with self.assertRaises(ValidationFailed) as ctx:
            self.ordered_po(supplier=self.other_supplier)
        self.assertIn("supplier_id", ctx.exception.field_errors)

    def test_line_errors_are_keyed_by_index(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_purchase_order(
                supplier_id=self.supplier.pk,
                items=[
                    LineInput(item_id=self.rice.pk, quantity=Decimal("0")),
                    LineInput(item_id=999999, quantity=Decimal("1")),
                    LineInput(item_id=self.oil.pk, quantity=Decimal("2"), unit_cost=Decimal("-1")),
                    LineInput(item_id=self.oil.pk, quantity=Decimal("2"), unit="box"),
                ],
            )

        errors = ctx.exception.field_errors
        self.assertIn("items.0.quantity", errors)
        self.assertIn("items.1.item_id", errors)
        self.assertIn("items.2.unit_cost", errors)
        self.assertIn("items.3.unit", errors)

    def test_unknown_supplier(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_purchase_order(supplier_id=999999, items=[])
        self.assertIn("supplier_id", ctx.exception.field_errors)

    def test_cannot_start_as_received(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_purchase_order(supplier_id=self.supplier.pk, items=[], status="received")
        self.assertIn("status", ctx.exception.field_errors)

    def test_lookup(self):
        po = self.ordered_po()

        self.assertEqual(services.get_purchase_order(po.pk), po)
        with self.assertRaises(PurchaseOrderNotFound):
            services.get_purchase_order(999999)


# ============================================================
# State machine
# ============================================================
class PurchaseOrderStateTests(BasePurchasingTestCase):
    def test_place_draft(self):
        draft = services.create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[LineInput(item_id=self.rice.pk, quantity=Decimal("5"))],
        )

        po = services.place_purchase_order(draft.pk, actor="Zawadi")

        self.assertEqual(po.status, "ordered")
        self.assertIsNotNone(po.ordered_at)
        with self.assertRaises(InvalidStateTransition):
            services.place_purchase_order(po.pk)

    def test_place_needs_supplier(self):
        draft = services.create_purchase_order(
            supplier_id=None,
            items=[LineInput(item_id=self.rice.pk, quantity=Decimal("5"))],
        )

        with self.assertRaises(ValidationFailed) as ctx:
            services.place_purchase_order(draft.pk)
        self.assertIn("supplier_id", ctx.exception.field_errors)
        self.assertEqual(PurchaseOrder.objects.get(pk=draft.pk).status, "draft")

    def test_edit_replaces_lines_and_recomputes_total(self):
        po = self.ordered_po()

        po = services.edit_purchase_order(
            po.pk,
            PurchaseOrderPatch(
                items=[
                    LineInput(item_id=self.rice.pk, quantity=Decimal("4"), unit_cost=Decimal("2.5")),
                    LineInput(item_id=self.oil.pk, quantity=Decimal("2")),
                ],
                notes="Changed after call",
                expected_delivery_date=date(2026, 11, 2),
            ),
            actor="Zawadi",
        )

        self.assertEqual(po.total_amount, Decimal("16.000"))
        self.assertEqual(po.lines.count(), 2)
        self.assertEqual(po.notes, "Changed after call")
        self.assertEqual(po.status, "ordered")

    def test_edit_can_set_supplier_on_draft(self):
        draft = services.create_purchase_order(supplier_id=None, items=[])

        po = services.edit_purchase_order(draft.pk, PurchaseOrderPatch(supplier_id=self.other_supplier.pk))

        self.assertEqual(po.supplier, self.other_supplier)
        self.assertEqual(po.supplier_name, "Island Beverages")

    def test_edit_can_clear_supplier_and_delivery_date_on_draft(self):
        draft = services.create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[],
            expected_delivery_date=date(2026, 11, 2),
        )

        po = services.edit_purchase_order(draft.pk, PurchaseOrderPatch(clear=("supplier_id", "expected_delivery_date")))

        po = PurchaseOrder.objects.get(pk=po.pk)
        self.assertIsNone(po.supplier_id)
        self.assertEqual(po.supplier_name, "")
        self.assertIsNone(po.expected_delivery_date)

    def test_ordered_po_keeps_its_supplier(self):
        po = self.ordered_po()

        with self.assertRaises(ValidationFailed) as ctx:
            services.edit_purchase_order(po.pk, PurchaseOrderPatch(clear=("supplier_id",)))
        self.assertIn("supplier_id", ctx.exception.field_errors)

        with self.assertRaises(ValidationFailed) as ctx:
            services.edit_purchase_order(po.pk, PurchaseOrderPatch(clear=("notes",)))
        self.assertIn("notes", ctx.exception.field_errors)
        self.assertEqual(PurchaseOrder.objects.get(pk=po.pk).supplier_id, self.supplier.pk)

    def test_cancel(self):
        po = self.ordered_po()

        po = services.cancel_purchase_order(po.pk, reason="Supplier out of stock", actor="Zawadi")

        self.assertEqual(po.status, "cancelled")
        self.assertEqual(po.cancel_reason, "Supplier out of stock")
        self.assertIsNotNone(po.cancelled_at)

    def test_terminal_states_reject_every_operation(self):
        cancelled = services.cancel_purchase_order(self.ordered_po().pk)

        with self.assertRaises(InvalidStateTransition):
            services.cancel_purchase_order(cancelled.pk)
        with self.assertRaises(InvalidStateTransition):
            services.place_purchase_order(cancelled.pk)
        with self.assertRaises(InvalidStateTransition):
            services.edit_purchase_order(cancelled.pk, PurchaseOrderPatch(notes="too late"))
        with self.assertRaises(InvalidStateTransition):
            receive(cancelled.pk, self.full_receipt())

        received = receive(self.ordered_po().pk, self.full_receipt())
        with self.assertRaises(InvalidStateTransition):
            services.cancel_purchase_order(received.pk)
        with self.assertRaises(InvalidStateTransition):
            services.edit_purchase_order(received.pk, PurchaseOrderPatch(notes="too late"))

    def test_draft_cannot_be_received(self):
        draft = services.create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[LineInput(item_id=self.rice.pk, quantity=Decimal("10"))],
        )

        with self.assertRaises(InvalidStateTransition):
            receive(draft.pk, self.full_receipt())
        self.assertEqual(self.stock_of(self.rice), Decimal("10"))

    def full_receipt(self):
        return ReceivingInput(
            lines=[ReceivingLineInput(item_id=self.rice.pk, received_qty=Decimal("10"))],
            received_by="Baraka",
        )


# ============================================================
# Receiving
# ============================================================
class ReceivingTests(BasePurchasingTestCase):
    def counted(self, received, rejected="0", **extra):
        return ReceivingInput(
            lines=[
                ReceivingLineInput(
                    item_id=self.rice.pk,
                    received_qty=Decimal(received),
                    rejected_qty=Decimal(rejected),
                    actual_unit_cost=Decimal("2.50"),
                    rejection_reason="Torn bags" if rejected != "0" else "",
                )
            ],
            received_by="Baraka",
            **extra,
        )

    def test_partial_receipt_with_rejections(self):
        po = self.ordered_po(LineInput(item_id=self.rice.pk, quantity=Decimal("10"), unit_cost=Decimal("2.00")))

        with mock.patch("purchasing.receiving.emit") as emitted:
            po = receive(po.pk, self.counted("7", "2"))

        self.assertEqual(po.status, "received")
        self.assertIsNotNone(po.received_at)
        self.assertEqual(self.stock_of(self.rice), Decimal("17"))

        record = po.received_details
        self.assertEqual(Decimal(record["total_rejected_value"]), Decimal("5.00"))
        self.assertEqual(Decimal(record["final_payable_amount"]), Decimal("17.50"))
        self.assertNotIn("total_missing_value", record)
        self.assertEqual(record["received_by"], "Baraka")

        line = record["items"][0]
        self.assertEqual(Decimal(line["missing_qty"]), Decimal("1"))
        self.assertEqual(line["rejection_reason"], "Torn bags")

        # The order amount is left as ordered
        self.assertEqual(PurchaseOrder.objects.get(pk=po.pk).total_amount, Decimal("20.000"))

        event = emitted.call_args.args[0]
        self.assertEqual(event.total_missing_value, Decimal("2.000"))
        self.assertEqual(event.final_payable_amount, Decimal("17.500"))

        audit = history_for(po).get(action=AuditLog.Action.STATUS_CHANGE, actor="Baraka")
        self.assertEqual(Decimal(audit.extra["total_missing_value"]), Decimal("2"))

    def test_received_rejected_and_missing_add_up_to_ordered(self):
        po = self.ordered_po(
            LineInput(item_id=self.rice.pk, quantity=Decimal("10"), unit_cost=Decimal("2.50")),
            LineInput(item_id=self.oil.pk, quantity=Decimal("6"), unit_cost=Decimal("3")),
        )

        po = receive(
            po.pk,
            ReceivingInput(
                lines=[
                    ReceivingLineInput(item_id=self.rice.pk, received_qty=Decimal("4"), rejected_qty=Decimal("1")),
                    ReceivingLineInput(item_id=self.oil.pk, received_qty=Decimal("6")),
                ],
                received_by="Baraka",
            ),
        )

        for line in po.received_details["items"]:
            total = Decimal(line["received_qty"]) + Decimal(line["rejected_qty"]) + Decimal(line["missing_qty"])
            self.assertEqual(total, Decimal(line["ordered_qty"]))
        self.assertEqual(self.stock_of(self.oil), Decimal("26"))

    def test_over_count_is_rejected_without_side_effects(self):
        po = self.ordered_po()

        with self.assertRaises(ValidationFailed) as ctx:
            receive(po.pk, self.counted("8", "5"))

        self.assertIn("items.0.received_qty", ctx.exception.field_errors)
        self.assertEqual(self.stock_of(self.rice), Decimal("10"))
        self.assertEqual(PurchaseOrder.objects.get(pk=po.pk).status, "ordered")
        self.assertFalse(ReceiptIntent.objects.exists())

    def test_over_count_clamped_when_configured(self):
        self.set_inventory_settings(over_count_policy="clamp")
        po = self.ordered_po()

        po = receive(po.pk, self.counted("8", "5"))

        self.assertEqual(Decimal(po.received_details["items"][0]["missing_qty"]), Decimal("0"))
        self.assertEqual(self.stock_of(self.rice), Decimal("18"))

    def test_negative_quantities_are_rejected(self):
        po = self.ordered_po()

        with self.assertRaises(ValidationFailed) as ctx:
            receive(po.pk, self.counted("-1"))
        self.assertIn("items.0.received_qty", ctx.exception.field_errors)

    def test_every_line_must_be_accounted_for(self):
        po = self.ordered_po()

        with self.assertRaises(ValidationFailed) as ctx:
            receive(po.pk, ReceivingInput(lines=[], received_by="Baraka"))
        self.assertIn("items", ctx.exception.field_errors)

        with self.assertRaises(ValidationFailed) as ctx:
            receive(
                po.pk,
                ReceivingInput(
                    lines=[ReceivingLineInput(item_id=self.oil.pk, received_qty=Decimal("10"))],
                    received_by="Baraka",
                ),
            )
        self.assertIn("items.0.item_id", ctx.exception.field_errors)

    def test_credit_note_needs_a_shortfall(self):
        po = self.ordered_po()

        with self.assertRaises(ValidationFailed) as ctx:
            receive(po.pk, self.counted("10", credit_note_requested=True))
        self.assertIn("credit_note_requested", ctx.exception.field_errors)

        po = receive(po.pk, self.counted("9", credit_note_requested=True))
        self.assertTrue(po.received_details["credit_note_requested"])

    def test_same_key_is_applied_once(self):
        po = self.ordered_po()

        receive(po.pk, self.counted("7", "2", idempotency_key="grn-0412"))
        again = receive(po.pk, self.counted("7", "2", idempotency_key="grn-0412"))

        self.assertEqual(again.status, "received")
        self.assertEqual(self.stock_of(self.rice), Decimal("17"))
        self.assertEqual(StockTransaction.objects.for_item(self.rice).of_type("purchase").count(), 1)

    def test_second_receipt_under_new_key_is_rejected(self):
        po = self.ordered_po()
        receive(po.pk, self.counted("10", idempotency_key="grn-0412"))

        with self.assertRaises(InvalidStateTransition):
            receive(po.pk, self.counted("10", idempotency_key="grn-0413"))
        self.assertEqual(self.stock_of(self.rice), Decimal("20"))

    def test_interrupted_receipt_resumes_without_double_booking(self):
        po = self.ordered_po(
            LineInput(item_id=self.rice.pk, quantity=Decimal("10"), unit_cost=Decimal("2.50")),
            LineInput(item_id=self.oil.pk, quantity=Decimal("5"), unit_cost=Decimal("3")),
        )
        counted = ReceivingInput(
            lines=[
                ReceivingLineInput(item_id=self.rice.pk, received_qty=Decimal("10")),
                ReceivingLineInput(item_id=self.oil.pk, received_qty=Decimal("5")),
            ],
            received_by="Baraka",
            idempotency_key="grn-0500",
        )

        # First attempt staged and booked line 0, then stopped
        stage(po.pk, counted, "grn-0500")
        adjust_stock(
            self.rice.pk,
            Decimal("10"),
            "Received",
            transaction_type="purchase",
            idempotency_key="grn-0500:0",
        )

        po = receive(po.pk, counted)

        self.assertEqual(po.status, "received")
        self.assertEqual(self.stock_of(self.rice), Decimal("20"))
        self.assertEqual(self.stock_of(self.oil), Decimal("25"))
        self.assertFalse(ReceiptIntent.objects.exists())

    def test_receipt_in_progress_blocks_other_keys_and_cancel(self):
        po = self.ordered_po()
        stage(po.pk, self.counted("10"), "grn-a")

        with self.assertRaises(ConcurrentModification):
            receive(po.pk, self.counted("10", idempotency_key="grn-b"))
        with self.assertRaises(ConcurrentModification):
            services.cancel_purchase_order(po.pk)

        self.assertTrue(discard_receipt_intent(po.pk, actor="Zawadi"))
        po = receive(po.pk, self.counted("10", idempotency_key="grn-b"))
        self.assertEqual(po.received_details["idempotency_key"], "grn-b")

    def test_receipt_in_progress_blocks_edit(self):
        po = self.ordered_po()
        stage(po.pk, self.counted("10"), "grn-1")

        with self.assertRaises(ConcurrentModification):
            services.edit_purchase_order(
                po.pk,
                PurchaseOrderPatch(items=[LineInput(item_id=self.oil.pk, quantity=Decimal("2"), unit_cost=Decimal("3"))]),
            )

        po = receive(po.pk, self.counted("10", idempotency_key="grn-1"))
        lines = [(line.item_id, line.quantity) for line in po.lines.order_by("position")]
        self.assertEqual(lines, [(self.rice.pk, Decimal("10"))])
        self.assertEqual([row["item_id"] for row in po.received_details["items"]], [self.rice.pk])
        self.assertEqual(InventoryItem.objects.get(pk=self.rice.pk).current_stock, Decimal("20"))
        self.assertEqual(InventoryItem.objects.get(pk=self.oil.pk).current_stock, Decimal("20"))

    def test_edit_allowed_again_after_discarding_receipt(self):
        po = self.ordered_po()
        stage(po.pk, self.counted("10"), "grn-1")
        discard_receipt_intent(po.pk, actor="Zawadi")

        po = services.edit_purchase_order(
            po.pk,
            PurchaseOrderPatch(items=[LineInput(item_id=self.oil.pk, quantity=Decimal("2"), unit_cost=Decimal("3"))]),
        )
        self.assertEqual(po.total_amount, Decimal("6.000"))

    def test_receipt_converts_purchase_units_and_updates_cost(self):
        flour = create_item(
            ItemSpec(
                name="Flour",
                sku="KIT-FLOUR",
                unit="kg",
                purchase_unit="box",
                conversion_factor=Decimal("12"),
            )
        )
        po = self.ordered_po(LineInput(item_id=flour.pk, quantity=Decimal("2"), unit_cost=Decimal("30"), unit="box"))

        receive(
            po.pk,
            ReceivingInput(
                lines=[
                    ReceivingLineInput(
                        item_id=flour.pk,
                        received_qty=Decimal("2"),
                        expiry_date=date(2027, 3, 31),
                    )
                ],
                received_by="Baraka",
            ),
        )

        flour = InventoryItem.objects.get(pk=flour.pk)
        self.assertEqual(flour.current_stock, Decimal("24"))
        self.assertEqual(flour.unit_cost, Decimal("2.500"))
        self.assertEqual(flour.expiry_date, date(2027, 3, 31))
        self.assertIsNotNone(flour.last_restocked_at)

    def test_receipt_updates_weighted_cost(self):
        po = self.ordered_po(LineInput(item_id=self.rice.pk, quantity=Decimal("10"), unit_cost=Decimal("3.50")))

        receive(
            po.pk,
            ReceivingInput(
                lines=[ReceivingLineInput(item_id=self.rice.pk, received_qty=Decimal("10"))],
                received_by="Baraka",
            ),
        )

        self.assertEqual(InventoryItem.objects.get(pk=self.rice.pk).unit_cost, Decimal("3.000"))


# ============================================================
# Auto reorder
# ============================================================
class AutoReorderTests(BasePurchasingTestCase):
    def auto_orders(self):
        return PurchaseOrder.objects.auto_generated()

    def test_falling_to_reorder_point_creates_draft_order(self):
        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        po = self.auto_orders().get()
        self.assertEqual(po.status, "draft")
        self.assertEqual(po.supplier, self.supplier)
        self.assertEqual(po.created_by, "system")

        line = po.lines.get()
        self.assertEqual(line.item, self.rice)
        self.assertEqual(line.quantity, Decimal("46"))
        self.assertEqual(po.total_amount, Decimal("115.000"))

        audit = history_for(self.rice).get(action=AuditLog.Action.AUTO_REORDER)
        self.assertEqual(audit.actor, "system")
        self.assertEqual(audit.extra["po_number"], po.po_number)

    def test_no_duplicate_order_while_one_is_open(self):
        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        adjust_stock(self.rice.pk, Decimal("-1"), "Staff meal", transaction_type="usage")

        self.assertEqual(self.auto_orders().count(), 1)

    def test_new_order_once_the_previous_one_is_closed(self):
        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        services.cancel_purchase_order(self.auto_orders().get().pk)

        adjust_stock(self.rice.pk, Decimal("-1"), "Staff meal", transaction_type="usage")

        latest = self.auto_orders().open().get()
        self.assertEqual(latest.lines.get().quantity, Decimal("47"))

    def test_manual_order_does_not_block_auto_reorder(self):
        services.create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[LineInput(item_id=self.rice.pk, quantity=Decimal("5"))],
        )

        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertEqual(self.auto_orders().count(), 1)

    def test_stock_above_reorder_point_orders_nothing(self):
        adjust_stock(self.rice.pk, Decimal("-4"), "Banquet", transaction_type="usage")
        adjust_stock(self.rice.pk, Decimal("3"), "Found in storeroom")

        self.assertFalse(self.auto_orders().exists())

    def test_reorder_quantity_is_at_least_one(self):
        kitchen_towel = create_item(
            ItemSpec(
                name="Kitchen towel",
                sku="KIT-TOWEL",
                max_stock_level=Decimal("2"),
                reorder_point=Decimal("5"),
                preferred_supplier_id=self.supplier.pk,
                opening_stock=Decimal("6"),
            )
        )

        adjust_stock(kitchen_towel.pk, Decimal("-3"), "Kitchen", transaction_type="usage")

        po = self.auto_orders().get()
        self.assertEqual(po.lines.get().quantity, Decimal("1"))

    def test_missing_supplier_is_skipped_and_audited(self):
        flour = create_item(
            ItemSpec(name="Flour", sku="KIT-FLOUR", reorder_point=Decimal("5"), max_stock_level=Decimal("30"),
                     opening_stock=Decimal("10"))
        )

        with self.assertLogs("purchasing", level="WARNING") as logs:
            adjust_stock(flour.pk, Decimal("-6"), "Bakery", transaction_type="usage")

        self.assertFalse(self.auto_orders().exists())
        audit = history_for(flour).get(action=AuditLog.Action.AUTO_REORDER)
        self.assertEqual(audit.extra["reason"], "no_preferred_supplier")
        self.assertTrue(any("no_preferred_supplier" in line for line in logs.output))

    def test_inactive_supplier_is_skipped(self):
        deactivate_supplier(self.supplier.pk)

        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertFalse(self.auto_orders().exists())
        audit = history_for(self.rice).get(action=AuditLog.Action.AUTO_REORDER)
        self.assertEqual(audit.extra["reason"], "supplier_unavailable")

    def test_orders_can_be_placed_immediately(self):
        self.set_inventory_settings(auto_reorder_status="ordered")

        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        po = self.auto_orders().get()
        self.assertEqual(po.status, "ordered")
        self.assertIsNotNone(po.ordered_at)

    def test_disabled_auto_reorder(self):
        self.set_inventory_settings(auto_reorder_enabled=False)

        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertFalse(self.auto_orders().exists())

    def test_inactive_items_are_not_reordered(self):
        InventoryItem.objects.filter(pk=self.rice.pk).update(is_active=False)

        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertFalse(self.auto_orders().exists())


class CheckAutoReorderCommandTests(BasePurchasingTestCase):
    def run_command(self, *args):
        out = StringIO()
        call_command("check_auto_reorder", *args, stdout=out)
        return out.getvalue()

    def test_reports_stock_above_reorder_point(self):
        output = self.run_command("KIT-RICE-25")

        self.assertIn("Coast Provisions", output)
        self.assertIn("nothing to order", output)

    def test_dry_run_then_apply(self):
        self.set_inventory_settings(auto_reorder_enabled=False)
        adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        self.set_inventory_settings(auto_reorder_enabled=True)

        self.assertIn("Would order 46", self.run_command("KIT-RICE-25"))
        self.assertFalse(PurchaseOrder.objects.exists())

        output = self.run_command("KIT-RICE-25", "--apply")
        po = PurchaseOrder.objects.auto_generated().get()
        self.assertIn(po.po_number, output)

        self.assertIn(po.po_number, self.run_command("KIT-RICE-25"))

    def test_unknown_sku(self):
        with self.assertRaises(CommandError):
            self.run_command("NOPE")

    def test_item_without_supplier(self):
        create_item(ItemSpec(name="Flour", sku="KIT-FLOUR"))

        with self.assertRaises(CommandError):
            self.run_command("KIT-FLOUR")
