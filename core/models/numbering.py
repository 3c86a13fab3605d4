# core/models/numbering.py
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _


# Fallback patterns used the first time a model asks for a number.
DEFAULT_SCHEMES = {
    "purchasing.PurchaseOrder": ("PO-{year}-{seq:03d}", "year"),
}


class NumberingScheme(models.Model):
    """
    Numbering configuration per model.

    Example row:
    - model_label: "purchasing.PurchaseOrder"
    - field_name: "po_number"
    - pattern: "PO-{year}-{seq:03d}"
    - reset: "year"
    - start: 1
    """

    class ResetPolicy(models.TextChoices):
        NEVER = "never", _("Never reset")
        YEAR = "year", _("Reset yearly")
        MONTH = "month", _("Reset monthly")

    model_label = models.CharField(
        max_length=100,
        verbose_name=_("Model label"),
        help_text=_("e.g. purchasing.PurchaseOrder"),
    )

    field_name = models.CharField(
        max_length=50,
        default="number",
        verbose_name=_("Field name"),
    )

    pattern = models.CharField(
        max_length=100,
        verbose_name=_("Pattern"),
        help_text=_("e.g. PO-{year}-{seq:03d} or GRN-{year}-{month:02d}-{seq:04d}"),
    )

    reset = models.CharField(
        max_length=10,
        choices=ResetPolicy.choices,
        default=ResetPolicy.YEAR,
        verbose_name=_("Reset policy"),
    )

    start = models.PositiveIntegerField(
        default=1,
        verbose_name=_("Sequence start"),
    )

    is_active = models.BooleanField(
        default=True,
        verbose_name=_("Active"),
    )

    updated_at = models.DateTimeField(
        auto_now=True,
        verbose_name=_("Updated at"),
    )

    class Meta:
        verbose_name = _("Numbering scheme")
        verbose_name_plural = _("Numbering schemes")
        indexes = [
            models.Index(fields=["model_label"]),
        ]
        unique_together = ("model_label", "field_name")

    def __str__(self) -> str:
        return f"{self.model_label} → {self.pattern}"

    def clean(self):
        super().clean()
        if "{seq" not in self.pattern:
            raise ValidationError({"pattern": _("The pattern must contain the {seq} placeholder.")})

    @classmethod
    def get_for_instance(
        cls,
        instance: models.Model,
        field_name: str = "number",
    ) -> "NumberingScheme":
        """
        Get the active scheme for the instance's model label + field_name.
        A default scheme is created on first use so a fresh database can
        number documents without manual setup.
        """
        label = instance._meta.label

        try:
            return cls.objects.get(
                model_label=label,
                field_name=field_name,
                is_active=True,
            )
        except cls.DoesNotExist:
            pattern, reset = DEFAULT_SCHEMES.get(label, ("{seq:06d}", cls.ResetPolicy.NEVER))
            scheme, _created = cls.objects.get_or_create(
                model_label=label,
                field_name=field_name,
                defaults={
                    "pattern": pattern,
                    "reset": reset,
                    "start": 1,
                    "is_active": True,
                },
            )
            return scheme
