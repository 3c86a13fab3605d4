# core/models/sequences.py
from django.db import models
from django.utils.translation import gettext_lazy as _


class NumberSequence(models.Model):
    """
    Counter behind a NumberingScheme: the last number handed out for one
    document type in one reset period.

    Purchase orders use ``key="purchasing.PurchaseOrder"`` and, with the
    default yearly reset, ``period="2026"``. A ``last_value`` of 41 means the
    next order is PO-2026-042. Rows are only touched under
    ``select_for_update`` by core.services.numbering.
    """

    key = models.CharField(max_length=100, verbose_name=_("Document type"))
    period = models.CharField(max_length=16, blank=True, verbose_name=_("Period"))
    last_value = models.PositiveIntegerField(default=0, verbose_name=_("Last number issued"))

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["key", "period"], name="uniq_number_sequence_period"),
        ]
        verbose_name = _("Number sequence")
        verbose_name_plural = _("Number sequences")

    def __str__(self) -> str:
        label = f"{self.key} [{self.period}]" if self.period else self.key
        return f"{label}: {self.last_value}"
