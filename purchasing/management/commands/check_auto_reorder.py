# purchasing/management/commands/check_auto_reorder.py

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from inventory.models import InventoryItem
from purchasing.models import PurchaseOrder
from purchasing.reorder import open_auto_order_exists, on_stock_decreased, reorder_quantity


class Command(BaseCommand):
    help = "Explain (and optionally run) the auto-reorder decision for one inventory item."

    def add_arguments(self, parser):
        parser.add_argument("sku", help="SKU of the item to check.")
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Create the purchase order when one is due (default is a dry run).",
        )

    def handle(self, *args, **options):
        sku = options["sku"]
        try:
            item = InventoryItem.objects.select_related("preferred_supplier").get(sku=sku)
        except InventoryItem.DoesNotExist as e:
            raise CommandError(f"No inventory item with SKU '{sku}'.") from e

        self.stdout.write(self.style.MIGRATE_HEADING(f"{item.name} [{item.sku}]"))
        self.stdout.write(f"- Current stock:   {item.current_stock} {item.unit}")
        self.stdout.write(f"- Reorder point:   {item.reorder_point}")
        self.stdout.write(f"- Min / max level: {item.min_stock_level} / {item.max_stock_level}")

        supplier = item.preferred_supplier
        if supplier is None:
            raise CommandError("Item has no preferred supplier; auto reorder cannot run for it.")
        self.stdout.write(f"- Preferred supplier: {supplier.name}")
        if not supplier.can_receive_orders:
            raise CommandError(f"Supplier '{supplier.name}' is inactive or deleted.")

        if item.current_stock > item.reorder_point:
            self.stdout.write(self.style.SUCCESS("Stock is above the reorder point; nothing to order."))
            return

        if open_auto_order_exists(item, supplier.pk):
            open_orders = (
                PurchaseOrder.objects.open()
                .auto_generated()
                .for_supplier(supplier)
                .containing_item(item)
                .values_list("po_number", flat=True)
            )
            self.stdout.write(
                self.style.WARNING(f"Already covered by open order(s): {', '.join(open_orders)}")
            )
            return

        quantity = reorder_quantity(item, item.current_stock)
        if not options["apply"]:
            self.stdout.write(self.style.HTTP_INFO(f"Would order {quantity} {item.unit}. Re-run with --apply."))
            return

        with transaction.atomic():
            po = on_stock_decreased(item.pk, item.current_stock)

        if po is None:
            raise CommandError("Auto reorder did not create an order; check the logs.")
        self.stdout.write(self.style.SUCCESS(f"Created {po.po_number} ({po.status}) for {quantity} {item.unit}."))
