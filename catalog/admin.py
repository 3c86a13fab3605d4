# catalog/admin.py
from django.contrib import admin
from modeltranslation.admin import TranslationAdmin

from .models import Category, Department, Supplier


@admin.register(Category)
class CategoryAdmin(TranslationAdmin):
    list_display = ("label", "is_active", "is_deleted")
    list_filter = ("is_active", "is_deleted")
    search_fields = ("label",)


@admin.register(Department)
class DepartmentAdmin(TranslationAdmin):
    list_display = ("name", "is_active", "is_deleted")
    list_filter = ("is_active", "is_deleted")
    search_fields = ("name",)


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("name", "contact_person", "phone", "email", "payment_terms", "rating", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "contact_person", "email", "tax_id")
    readonly_fields = ("public_id", "created_at", "updated_at", "created_by", "updated_by")
