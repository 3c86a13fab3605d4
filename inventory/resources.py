# inventory/resources.py
from import_export import fields, resources
from import_export.widgets import ForeignKeyWidget

from catalog.models import Category, Department, Supplier

from .models import InventoryItem


class InventoryItemResource(resources.ModelResource):
    # Relations by label instead of raw ids
    category = fields.Field(
        column_name="category",
        attribute="category",
        widget=ForeignKeyWidget(Category, field="label"),
    )
    department = fields.Field(
        column_name="department",
        attribute="department",
        widget=ForeignKeyWidget(Department, field="name"),
    )
    preferred_supplier = fields.Field(
        column_name="preferred_supplier",
        attribute="preferred_supplier",
        widget=ForeignKeyWidget(Supplier, field="name"),
    )
    # Exported for stock counts; imports never write it
    current_stock = fields.Field(
        column_name="current_stock",
        attribute="current_stock",
        readonly=True,
    )

    class Meta:
        model = InventoryItem
        fields = (
            "sku",
            "name",
            "category",
            "department",
            "unit",
            "current_stock",
            "min_stock_level",
            "max_stock_level",
            "reorder_point",
            "unit_cost",
            "purchase_unit",
            "conversion_factor",
            "preferred_supplier",
            "location",
            "is_active",
        )
        export_order = fields
        import_id_fields = ("sku",)
        skip_unchanged = True
        report_skipped = True
        clean_model_instances = True
