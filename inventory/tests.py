from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.db.models import Sum
from django.test import TestCase
from django.utils import timezone
from tablib import Dataset

from catalog.services import create_category, create_department, create_supplier
from core.exceptions import (
    DuplicateAdjustment,
    ItemNotFound,
    NegativeStockRejected,
    ReferenceInUse,
    ValidationFailed,
)
from core.models import AuditLog
from core.services.audit import history_for
from inventory import services
from inventory.models import InventoryItem, InventorySettings, LowStockAlert, StockTransaction
from inventory.reports import inventory_usage_report, inventory_value_report, low_stock_items
from inventory.resources import InventoryItemResource
from inventory.spreadsheets import export_items, import_items
from purchasing.models import PurchaseOrder


class BaseInventoryTestCase(TestCase):
    def setUp(self):
        self.kitchen = create_department("Kitchen")
        self.dry_goods = create_category("Dry goods")
        self.beverages = create_category("Beverages")

        # Opening stock above the reorder point so nothing is ordered on setup
        self.rice = services.create_item(
            services.ItemSpec(
                name="Basmati rice",
                sku="KIT-RICE-25",
                unit="kg",
                department_id=self.kitchen.pk,
                category_id=self.dry_goods.pk,
                min_stock_level=Decimal("5"),
                max_stock_level=Decimal("50"),
                reorder_point=Decimal("5"),
                unit_cost=Decimal("2.000"),
                opening_stock=Decimal("10"),
            ),
            actor="Zawadi",
        )
        self.tonic = services.create_item(
            services.ItemSpec(
                name="Tonic water 330ml",
                sku="BAR-TON-33",
                unit="can",
                category_id=self.beverages.pk,
                min_stock_level=Decimal("12"),
                max_stock_level=Decimal("96"),
                reorder_point=Decimal("12"),
                unit_cost=Decimal("0.500"),
                opening_stock=Decimal("48"),
            ),
        )

    def stock_of(self, item):
        return InventoryItem.objects.get(pk=item.pk).current_stock


class ItemLifecycleTests(BaseInventoryTestCase):
    def test_opening_stock_is_booked_through_the_journal(self):
        self.assertEqual(self.rice.current_stock, Decimal("10"))

        entry = StockTransaction.objects.for_item(self.rice).get()
        self.assertEqual(entry.transaction_type, "adjustment")
        self.assertEqual(entry.previous_stock, Decimal("0"))
        self.assertEqual(entry.new_stock, Decimal("10"))
        self.assertEqual(entry.performed_by, "Zawadi")

    def test_duplicate_sku_is_rejected(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_item(services.ItemSpec(name="Other rice", sku="KIT-RICE-25"))
        self.assertIn("sku", ctx.exception.field_errors)

    def test_unknown_references_are_reported_per_field(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_item(
                services.ItemSpec(name="Flour", sku="KIT-FLOUR", category_id=999999, preferred_supplier_id=999999)
            )
        self.assertIn("category", ctx.exception.field_errors)
        self.assertIn("preferred_supplier", ctx.exception.field_errors)

    def test_negative_levels_and_opening_stock_are_rejected(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_item(
                services.ItemSpec(name="Flour", sku="KIT-FLOUR", opening_stock=Decimal("-1"))
            )
        self.assertIn("opening_stock", ctx.exception.field_errors)

        with self.assertRaises(ValidationFailed) as ctx:
            services.create_item(
                services.ItemSpec(name="Flour", sku="KIT-FLOUR", reorder_point=Decimal("-3"))
            )
        self.assertIn("reorder_point", ctx.exception.field_errors)

    def test_purchase_unit_needs_conversion_factor(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_item(
                services.ItemSpec(name="Flour", sku="KIT-FLOUR", unit="kg", purchase_unit="box")
            )
        self.assertIn("conversion_factor", ctx.exception.field_errors)

    def test_update_item_changes_fields_but_not_stock(self):
        item = services.update_item(
            self.rice.pk,
            services.ItemPatch(name="Basmati rice 25kg", reorder_point=Decimal("8")),
            actor="Baraka",
        )

        self.assertEqual(item.name, "Basmati rice 25kg")
        self.assertEqual(item.reorder_point, Decimal("8"))
        self.assertEqual(item.updated_by, "Baraka")
        self.assertEqual(self.stock_of(item), Decimal("10"))

    def test_update_item_rejects_taken_sku(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.update_item(self.rice.pk, services.ItemPatch(sku="BAR-TON-33"))
        self.assertIn("sku", ctx.exception.field_errors)

    def test_update_item_clears_optional_references(self):
        item = services.update_item(
            self.rice.pk,
            services.ItemPatch(clear=("category_id", "department_id"), location="Dry store B"),
        )

        item = InventoryItem.objects.get(pk=item.pk)
        self.assertIsNone(item.category_id)
        self.assertIsNone(item.department_id)
        self.assertEqual(item.location, "Dry store B")

    def test_update_item_rejects_bad_clear_requests(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.update_item(self.rice.pk, services.ItemPatch(clear=("sku",)))
        self.assertIn("sku", ctx.exception.field_errors)

        with self.assertRaises(ValidationFailed) as ctx:
            services.update_item(
                self.rice.pk,
                services.ItemPatch(category_id=self.beverages.pk, clear=("category_id",)),
            )
        self.assertIn("category_id", ctx.exception.field_errors)
        self.assertEqual(InventoryItem.objects.get(pk=self.rice.pk).category_id, self.dry_goods.pk)

    def test_deactivate_keeps_the_row(self):
        services.deactivate_item(self.rice.pk)

        item = InventoryItem.objects.get(pk=self.rice.pk)
        self.assertFalse(item.is_active)
        self.assertFalse(InventoryItem.objects.active().filter(pk=item.pk).exists())

    def test_unused_item_can_be_deleted(self):
        flour = services.create_item(services.ItemSpec(name="Flour", sku="KIT-FLOUR"))

        services.delete_item(flour.pk, actor="Zawadi")

        self.assertFalse(InventoryItem.objects.filter(pk=flour.pk).exists())
        self.assertTrue(InventoryItem.all_objects.get(pk=flour.pk).is_deleted)
        with self.assertRaises(ItemNotFound):
            services.get_item(flour.pk)

    def test_item_with_history_cannot_be_deleted(self):
        with self.assertRaises(ReferenceInUse) as ctx:
            services.delete_item(self.rice.pk)
        self.assertEqual(ctx.exception.references, {"stock transactions": 1})

    def test_deleted_sku_can_be_reused(self):
        flour = services.create_item(services.ItemSpec(name="Flour", sku="KIT-FLOUR"))
        services.delete_item(flour.pk)

        again = services.create_item(services.ItemSpec(name="Flour", sku="KIT-FLOUR"))
        self.assertNotEqual(again.pk, flour.pk)


class AdjustStockTests(BaseInventoryTestCase):
    def test_adjustment_updates_stock_and_writes_journal(self):
        new_stock = services.adjust_stock(
            self.tonic.pk,
            Decimal("-6"),
            "Pool bar service",
            transaction_type="usage",
            reference="SHIFT-12",
            performed_by="Baraka",
        )

        self.assertEqual(new_stock, Decimal("42"))
        self.assertEqual(self.stock_of(self.tonic), Decimal("42"))

        entry = StockTransaction.objects.for_item(self.tonic).of_type("usage").get()
        self.assertEqual(entry.quantity, Decimal("-6"))
        self.assertEqual(entry.previous_stock, Decimal("48"))
        self.assertEqual(entry.new_stock, Decimal("42"))
        self.assertEqual(entry.total_cost, Decimal("3.000"))
        self.assertEqual(entry.reference, "SHIFT-12")

        audit = history_for(self.tonic).get(action=AuditLog.Action.STOCK_ADJUSTMENT, actor="Baraka")
        self.assertEqual(audit.message, "Pool bar service")
        self.assertEqual(Decimal(audit.extra["new_stock"]), Decimal("42"))

    def test_journal_explains_current_stock(self):
        services.adjust_stock(self.tonic.pk, Decimal("-10"), "Usage", transaction_type="usage")
        services.adjust_stock(self.tonic.pk, Decimal("24"), "Delivery", transaction_type="transfer_in")
        services.adjust_stock(self.tonic.pk, Decimal("-2"), "Broken cans", transaction_type="waste")

        total = StockTransaction.objects.for_item(self.tonic).aggregate(total=Sum("quantity"))["total"]
        self.assertEqual(total, self.stock_of(self.tonic))
        self.assertEqual(total, Decimal("60"))

    def test_going_negative_is_rejected_by_default(self):
        with self.assertRaises(NegativeStockRejected) as ctx:
            services.adjust_stock(self.rice.pk, Decimal("-11"), "Banquet", transaction_type="usage")

        self.assertEqual(ctx.exception.current, Decimal("10"))
        self.assertEqual(self.stock_of(self.rice), Decimal("10"))
        self.assertFalse(StockTransaction.objects.of_type("usage").exists())

    def test_backorder_allowed_per_call(self):
        new_stock = services.adjust_stock(
            self.rice.pk,
            Decimal("-12"),
            "Banquet",
            transaction_type="usage",
            allow_negative=True,
        )
        self.assertEqual(new_stock, Decimal("-2"))

    def test_backorder_allowed_by_setting(self):
        settings = InventorySettings.get_solo()
        settings.allow_negative_stock = True
        settings.save()

        new_stock = services.adjust_stock(self.rice.pk, Decimal("-12"), "Banquet", transaction_type="usage")
        self.assertEqual(new_stock, Decimal("-2"))

    def test_repeated_idempotency_key_is_rejected(self):
        services.adjust_stock(self.tonic.pk, Decimal("-1"), "Minibar 204", idempotency_key="minibar-204-0412")

        with self.assertRaises(DuplicateAdjustment):
            services.adjust_stock(self.tonic.pk, Decimal("-1"), "Minibar 204", idempotency_key="minibar-204-0412")

        self.assertEqual(self.stock_of(self.tonic), Decimal("47"))

    def test_bad_input_is_rejected(self):
        cases = [
            (Decimal("0"), "Nothing", "adjustment", "delta"),
            (Decimal("-1"), "   ", "adjustment", "reason"),
            (Decimal("5"), "Usage", "usage", "delta"),
            (Decimal("-5"), "Receipt", "purchase", "delta"),
            (Decimal("1"), "Magic", "teleport", "transaction_type"),
        ]
        for delta, reason, transaction_type, field in cases:
            with self.subTest(transaction_type=transaction_type, delta=delta):
                with self.assertRaises(ValidationFailed) as ctx:
                    services.adjust_stock(self.tonic.pk, delta, reason, transaction_type=transaction_type)
                self.assertIn(field, ctx.exception.field_errors)

        self.assertEqual(self.stock_of(self.tonic), Decimal("48"))

    def test_unknown_item(self):
        with self.assertRaises(ItemNotFound):
            services.adjust_stock(999999, Decimal("1"), "Found in storeroom")

    def test_purchase_sets_last_restocked_at(self):
        services.adjust_stock(self.tonic.pk, Decimal("24"), "Delivery", transaction_type="purchase")

        self.assertIsNotNone(InventoryItem.objects.get(pk=self.tonic.pk).last_restocked_at)

    def test_failing_reorder_check_undoes_the_adjustment(self):
        with mock.patch("purchasing.handlers.on_stock_decreased", side_effect=RuntimeError("down")):
            with self.assertRaises(RuntimeError):
                services.adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertEqual(self.stock_of(self.rice), Decimal("10"))
        self.assertFalse(StockTransaction.objects.of_type("usage").exists())

    def test_failing_alert_bookkeeping_does_not_block_the_adjustment(self):
        with mock.patch("inventory.handlers.open_low_stock_alert", side_effect=RuntimeError("down")):
            with self.assertLogs("core.domain.dispatcher", level="ERROR"):
                services.adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")

        self.assertEqual(self.stock_of(self.rice), Decimal("4"))
        self.assertFalse(LowStockAlert.objects.exists())


class ReceiptCostTests(BaseInventoryTestCase):
    def test_weighted_average_cost(self):
        item = services.apply_receipt_cost(self.rice.pk, Decimal("10"), Decimal("3.000"))

        self.assertEqual(item.unit_cost, Decimal("2.500"))
        self.assertEqual(item.last_purchase_price, Decimal("3.000"))

    def test_cost_resets_when_shelf_is_empty(self):
        services.adjust_stock(self.rice.pk, Decimal("-10"), "Banquet", transaction_type="usage")

        item = services.apply_receipt_cost(self.rice.pk, Decimal("5"), Decimal("2.800"))
        self.assertEqual(item.unit_cost, Decimal("2.800"))

    def test_unit_conversion(self):
        flour = services.create_item(
            services.ItemSpec(
                name="Flour",
                sku="KIT-FLOUR",
                unit="kg",
                purchase_unit="box",
                conversion_factor=Decimal("12"),
            )
        )

        self.assertEqual(flour.to_base(Decimal("2"), "box"), Decimal("24"))
        self.assertEqual(flour.to_base(Decimal("2"), "kg"), Decimal("2"))

    def test_fractional_conversion_keeps_journal_in_step_with_stock(self):
        syrup = services.create_item(
            services.ItemSpec(
                name="Vanilla syrup",
                sku="BAR-SYRUP-VAN",
                unit="bottle",
                purchase_unit="pack",
                conversion_factor=Decimal("0.333333"),
                opening_stock=Decimal("1"),
            )
        )

        base_qty = syrup.to_base(Decimal("1.5"), "pack")
        self.assertEqual(base_qty, Decimal("0.500"))

        services.adjust_stock(syrup.pk, Decimal("1.5") * Decimal("0.333333"), "Bar restock", transaction_type="transfer_in")

        total = StockTransaction.objects.for_item(syrup).aggregate(total=Sum("quantity"))["total"]
        self.assertEqual(self.stock_of(syrup), Decimal("1.500"))
        self.assertEqual(total, Decimal("1.500"))


class LowStockAlertTests(BaseInventoryTestCase):
    def test_one_active_alert_while_below_reorder_point(self):
        services.adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        services.adjust_stock(self.rice.pk, Decimal("-1"), "Staff meal", transaction_type="usage")

        alert = LowStockAlert.objects.active().get(item=self.rice)
        self.assertEqual(alert.current_stock, Decimal("3"))
        self.assertEqual(alert.reorder_point, Decimal("5"))

    def test_alert_resolves_when_stock_recovers(self):
        services.adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        services.adjust_stock(self.rice.pk, Decimal("20"), "Delivery", transaction_type="purchase")

        self.assertFalse(LowStockAlert.objects.active().exists())
        self.assertEqual(LowStockAlert.objects.resolved().count(), 1)

    def test_manual_resolve(self):
        services.adjust_stock(self.rice.pk, Decimal("-6"), "Banquet", transaction_type="usage")
        alert = LowStockAlert.objects.active().get(item=self.rice)

        resolved = services.resolve_low_stock_alert(alert.pk, actor="Zawadi")

        self.assertEqual(resolved.status, "resolved")
        self.assertIsNotNone(resolved.resolved_at)


class ReportTests(BaseInventoryTestCase):
    def test_inventory_value(self):
        report = inventory_value_report()

        self.assertEqual(report.item_count, 2)
        self.assertEqual(report.total_value, Decimal("44.000"))
        self.assertEqual(report.category_breakdown["Dry goods"], Decimal("20.000"))
        self.assertEqual(report.category_breakdown["Beverages"], Decimal("24.000"))

    def test_usage_report(self):
        services.adjust_stock(self.rice.pk, Decimal("-3"), "Lunch", transaction_type="usage")
        services.adjust_stock(self.tonic.pk, Decimal("-10"), "Pool bar", transaction_type="usage")
        services.adjust_stock(self.tonic.pk, Decimal("-2"), "Broken", transaction_type="waste")

        now = timezone.now()
        rows = inventory_usage_report(now - timedelta(hours=1), now + timedelta(hours=1))

        self.assertEqual([row.item_id for row in rows], [self.tonic.pk, self.rice.pk])
        self.assertEqual(rows[0].total_usage, Decimal("10"))
        self.assertEqual(rows[0].total_cost, Decimal("5.000"))
        self.assertEqual(rows[1].total_cost, Decimal("6.000"))

    def test_low_stock_items(self):
        services.adjust_stock(self.rice.pk, Decimal("-5"), "Banquet", transaction_type="usage")

        self.assertEqual(list(low_stock_items()), [InventoryItem.objects.get(pk=self.rice.pk)])


class ItemResourceTests(BaseInventoryTestCase):
    def test_export_uses_labels_for_relations(self):
        supplier = create_supplier(name="Coast Provisions")
        services.update_item(self.rice.pk, services.ItemPatch(preferred_supplier_id=supplier.pk))

        dataset = InventoryItemResource().export(InventoryItem.objects.filter(pk=self.rice.pk))
        row = dataset.dict[0]

        self.assertEqual(dataset.headers[0], "sku")
        self.assertEqual(row["sku"], "KIT-RICE-25")
        self.assertEqual(row["category"], "Dry goods")
        self.assertEqual(row["department"], "Kitchen")
        self.assertEqual(row["preferred_supplier"], "Coast Provisions")


class SeedCommandTests(TestCase):
    def test_seed_is_repeatable(self):
        call_command("seed_inventory_demo", stdout=StringIO())
        call_command("seed_inventory_demo", stdout=StringIO())

        self.assertEqual(InventoryItem.objects.count(), 6)
        self.assertEqual(InventoryItem.objects.get(sku="KIT-RICE-25").current_stock, Decimal("62"))
        self.assertEqual(StockTransaction.objects.of_type("usage").count(), 3)
        self.assertFalse(PurchaseOrder.objects.exists())


class SpreadsheetTests(BaseInventoryTestCase):
    def sheet(self):
        return InventoryItemResource().export(InventoryItem.objects.filter(pk=self.rice.pk))

    def test_xlsx_export(self):
        content = export_items("xlsx")

        self.assertTrue(content.startswith(b"PK"))

    def test_import_creates_and_updates_by_sku(self):
        exported = self.sheet()
        rice_row = exported.dict[0]

        sheet = Dataset(headers=exported.headers)
        sheet.append([{**rice_row, "name": "Basmati rice (aged)"}[h] for h in exported.headers])
        sheet.append([{**rice_row, "sku": "KIT-RICE-10", "name": "Jasmine rice"}[h] for h in exported.headers])

        summary = import_items(sheet.csv, fmt="csv", actor="Zawadi")

        self.assertEqual(summary.new, 1)
        self.assertEqual(summary.updated, 1)
        self.assertEqual(InventoryItem.objects.get(sku="KIT-RICE-25").name, "Basmati rice (aged)")
        self.assertEqual(self.stock_of(self.rice), Decimal("10"))

        jasmine = InventoryItem.objects.get(sku="KIT-RICE-10")
        self.assertEqual(jasmine.category, self.dry_goods)
        self.assertEqual(jasmine.current_stock, Decimal("0"))

    def test_bad_row_rejects_the_whole_file(self):
        exported = self.sheet()
        rice_row = exported.dict[0]

        sheet = Dataset(headers=exported.headers)
        sheet.append([{**rice_row, "sku": "KIT-RICE-10", "name": "Jasmine rice"}[h] for h in exported.headers])
        sheet.append([{**rice_row, "sku": "KIT-RICE-05", "category": "No such category"}[h] for h in exported.headers])

        with self.assertRaises(ValidationFailed) as ctx:
            import_items(sheet.csv, fmt="csv")

        self.assertTrue(all(key.startswith("rows.") for key in ctx.exception.field_errors))
        self.assertFalse(InventoryItem.objects.filter(sku="KIT-RICE-10").exists())
