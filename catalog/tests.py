from decimal import Decimal

from django.test import TestCase

from catalog import services
from catalog.models import Category, Department, Supplier
from core.exceptions import CategoryNotFound, ReferenceInUse, SupplierNotFound, ValidationFailed
from core.models import AuditLog
from core.services.audit import history_for
from inventory.services import ItemSpec, create_item
from purchasing.services import LineInput, cancel_purchase_order, create_purchase_order


class BaseCatalogTestCase(TestCase):
    def setUp(self):
        self.kitchen = services.create_department("Kitchen", actor="Zawadi")
        self.dry_goods = services.create_category("Dry goods", actor="Zawadi")
        self.supplier = services.create_supplier(
            name="Coast Provisions",
            contact_person="Amina Said",
            email="orders@coastprovisions.example",
            payment_terms="Net 30",
            rating=Decimal("4.5"),
            actor="Zawadi",
        )


class CatalogCreateTests(BaseCatalogTestCase):
    def test_create_records_actor_and_audit(self):
        self.assertEqual(self.supplier.created_by, "Zawadi")
        self.assertTrue(
            history_for(self.supplier).filter(action=AuditLog.Action.CREATE).exists()
        )

    def test_names_are_required(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_category("   ")
        self.assertIn("label", ctx.exception.field_errors)

        with self.assertRaises(ValidationFailed) as ctx:
            services.create_supplier(name="")
        self.assertIn("name", ctx.exception.field_errors)

    def test_rating_must_be_between_zero_and_five(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.create_supplier(name="Bad Rating Ltd", rating=Decimal("7"))
        self.assertIn("rating", ctx.exception.field_errors)


class SupplierUpdateTests(BaseCatalogTestCase):
    def test_update_changes_allowed_fields(self):
        supplier = services.update_supplier(self.supplier.pk, actor="Baraka", phone="+255 700 000 000")

        self.assertEqual(supplier.phone, "+255 700 000 000")
        self.assertEqual(supplier.updated_by, "Baraka")

    def test_unknown_fields_are_rejected(self):
        with self.assertRaises(ValidationFailed) as ctx:
            services.update_supplier(self.supplier.pk, is_deleted=True)
        self.assertIn("is_deleted", ctx.exception.field_errors)

    def test_deactivate_hides_supplier_from_active_list(self):
        services.deactivate_supplier(self.supplier.pk)

        self.assertFalse(services.active_suppliers().filter(pk=self.supplier.pk).exists())
        self.assertFalse(Supplier.objects.get(pk=self.supplier.pk).can_receive_orders)

    def test_missing_supplier(self):
        with self.assertRaises(SupplierNotFound):
            services.get_supplier(999999)


class GuardedDeleteTests(BaseCatalogTestCase):
    def _item(self, **overrides):
        spec = ItemSpec(
            name="Basmati rice",
            sku="KIT-RICE-25",
            unit="kg",
            department_id=self.kitchen.pk,
            category_id=self.dry_goods.pk,
            reorder_point=Decimal("5"),
            max_stock_level=Decimal("50"),
            preferred_supplier_id=self.supplier.pk,
        )
        for name, value in overrides.items():
            setattr(spec, name, value)
        return create_item(spec)

    def test_unused_category_is_soft_deleted(self):
        services.delete_category(self.dry_goods.pk, actor="Zawadi")

        self.assertFalse(Category.objects.filter(pk=self.dry_goods.pk).exists())
        deleted = Category.all_objects.get(pk=self.dry_goods.pk)
        self.assertTrue(deleted.is_deleted)
        self.assertEqual(deleted.deleted_by, "Zawadi")

    def test_category_in_use_cannot_be_deleted(self):
        self._item()

        with self.assertRaises(ReferenceInUse) as ctx:
            services.delete_category(self.dry_goods.pk)
        self.assertEqual(ctx.exception.references, {"inventory items": 1})
        self.assertTrue(Category.objects.filter(pk=self.dry_goods.pk).exists())

    def test_department_in_use_cannot_be_deleted(self):
        self._item()

        with self.assertRaises(ReferenceInUse):
            services.delete_department(self.kitchen.pk)
        self.assertTrue(Department.objects.filter(pk=self.kitchen.pk).exists())

    def test_supplier_preferred_by_item_cannot_be_deleted(self):
        self._item()

        with self.assertRaises(ReferenceInUse) as ctx:
            services.delete_supplier(self.supplier.pk)
        self.assertIn("inventory items", ctx.exception.references)

    def test_supplier_with_open_order_cannot_be_deleted(self):
        item = self._item(preferred_supplier_id=None)
        po = create_purchase_order(
            supplier_id=self.supplier.pk,
            items=[LineInput(item_id=item.pk, quantity=Decimal("3"))],
        )

        with self.assertRaises(ReferenceInUse) as ctx:
            services.delete_supplier(self.supplier.pk)
        self.assertEqual(ctx.exception.references, {"open purchase orders": 1})

        cancel_purchase_order(po.pk, reason="Duplicate")
        services.delete_supplier(self.supplier.pk)
        self.assertFalse(Supplier.objects.filter(pk=self.supplier.pk).exists())

    def test_deleting_missing_category(self):
        with self.assertRaises(CategoryNotFound):
            services.delete_category(999999)
