# catalog/translation.py
from modeltranslation.translator import register, TranslationOptions

from .models import Category, Department


@register(Category)
class CategoryTranslationOptions(TranslationOptions):
    fields = ("label", "description")


@register(Department)
class DepartmentTranslationOptions(TranslationOptions):
    fields = ("name", "description")
