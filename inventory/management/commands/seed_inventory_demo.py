# inventory/management/commands/seed_inventory_demo.py

from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from catalog.models import Category, Department, Supplier
from core.models import NumberingScheme
from inventory.models import InventoryItem, InventorySettings
from inventory.services import ItemSpec, adjust_stock, create_item

SEED_ACTOR = "seed"

DEMO_ITEMS = [
    # sku, name, department, category, unit, opening, min, max, reorder point, unit cost, supplier
    ("KIT-RICE-25", "Basmati rice", "Kitchen", "Dry goods", "kg", "80", "30", "150", "25", "2.400", "Coast Provisions"),
    ("KIT-OIL-20", "Sunflower oil", "Kitchen", "Dry goods", "liter", "40", "15", "80", "12", "3.150", "Coast Provisions"),
    ("BAR-GIN-07", "London dry gin 70cl", "Bar", "Beverages", "bottle", "24", "10", "48", "8", "18.500", "Island Beverages"),
    ("BAR-TON-33", "Tonic water 330ml", "Bar", "Beverages", "can", "120", "48", "240", "36", "0.650", "Island Beverages"),
    ("HK-TOWEL-L", "Bath towel, large", "Housekeeping", "Linen", "piece", "200", "80", "300", "60", "9.900", "Linen House"),
    ("HK-SOAP-40", "Guest soap 40g", "Housekeeping", "Amenities", "piece", "500", "200", "1000", "150", "0.120", None),
]

DEMO_USAGE = [
    ("KIT-RICE-25", "-18", "Dinner service"),
    ("BAR-GIN-07", "-6", "Weekend events"),
    ("HK-SOAP-40", "-120", "Room turnover"),
]


class Command(BaseCommand):
    help = "Seed demo inventory data (departments, categories, suppliers, items, usage)."

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write(self.style.MIGRATE_HEADING("Seeding demo inventory data..."))

        # ============================================================
        # 1) Settings + numbering
        # ============================================================
        InventorySettings.get_solo()
        NumberingScheme.objects.get_or_create(
            model_label="purchasing.PurchaseOrder",
            field_name="po_number",
            defaults={
                "pattern": "PO-{year}-{seq:03d}",
                "reset": NumberingScheme.ResetPolicy.YEAR,
                "start": 1,
                "is_active": True,
            },
        )

        # ============================================================
        # 2) Catalog
        # ============================================================
        self.stdout.write(self.style.HTTP_INFO("Creating departments, categories and suppliers..."))

        departments = {}
        for name in ("Kitchen", "Bar", "Housekeeping"):
            departments[name], _ = Department.objects.get_or_create(name=name, defaults={"created_by": SEED_ACTOR})

        categories = {}
        for label in ("Dry goods", "Beverages", "Linen", "Amenities"):
            categories[label], _ = Category.objects.get_or_create(label=label, defaults={"created_by": SEED_ACTOR})

        suppliers = {}
        for name, contact, terms in (
            ("Coast Provisions", "Amina Said", "Net 30"),
            ("Island Beverages", "Juma Ali", "Net 14"),
            ("Linen House", "Grace Otieno", "Cash on delivery"),
        ):
            suppliers[name], _ = Supplier.objects.get_or_create(
                name=name,
                defaults={"contact_person": contact, "payment_terms": terms, "created_by": SEED_ACTOR},
            )

        # ============================================================
        # 3) Items (opening stock goes through the ledger)
        # ============================================================
        self.stdout.write(self.style.HTTP_INFO("Creating inventory items..."))

        created = 0
        for sku, name, dept, cat, unit, opening, min_level, max_level, point, cost, supplier in DEMO_ITEMS:
            if InventoryItem.objects.filter(sku=sku).exists():
                continue
            create_item(
                ItemSpec(
                    name=name,
                    sku=sku,
                    unit=unit,
                    department_id=departments[dept].pk,
                    category_id=categories[cat].pk,
                    min_stock_level=Decimal(min_level),
                    max_stock_level=Decimal(max_level),
                    reorder_point=Decimal(point),
                    unit_cost=Decimal(cost),
                    preferred_supplier_id=suppliers[supplier].pk if supplier else None,
                    opening_stock=Decimal(opening),
                ),
                actor=SEED_ACTOR,
            )
            created += 1
            self.stdout.write(f"   - {sku} {name}")

        # ============================================================
        # 4) Some usage, only on a fresh seed
        # ============================================================
        if created == 0:
            self.stdout.write(self.style.WARNING("Items already exist, skipping demo usage."))
        else:
            for sku, delta, reason in DEMO_USAGE:
                item = InventoryItem.objects.get(sku=sku)
                new_stock = adjust_stock(
                    item.pk,
                    Decimal(delta),
                    reason,
                    transaction_type="usage",
                    performed_by=SEED_ACTOR,
                )
                self.stdout.write(f"   - {sku}: {delta} -> {new_stock}")

        self.stdout.write(self.style.SUCCESS(f"Done. {created} item(s) created."))
