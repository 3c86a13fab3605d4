# inventory/spreadsheets.py
"""
Bulk item maintenance through spreadsheets (django-import-export).

Imports never touch stock levels: ``current_stock`` is exported for counting
sheets but is read-only on the way back in.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import transaction
from django.utils.translation import gettext as _
from tablib import Dataset

from core.exceptions import ValidationFailed
from core.models import AuditLog
from core.services.audit import log_event

from .models import InventoryItem
from .resources import InventoryItemResource

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    new: int = 0
    updated: int = 0
    skipped: int = 0


def export_items(fmt: str = "xlsx", queryset=None) -> bytes | str:
    dataset = InventoryItemResource().export(queryset if queryset is not None else InventoryItem.objects.all())
    return dataset.export(fmt)


def _row_errors(result) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for number, row_errors in result.row_errors():
        errors[f"rows.{number}"] = [str(getattr(err, "error", err)) for err in row_errors]
    for invalid in result.invalid_rows:
        errors[f"rows.{invalid.number}"] = list(invalid.error.messages)
    return errors


def import_items(data, *, fmt: str = "xlsx", actor: str = "") -> ImportSummary:
    """
    Create or update items from a spreadsheet, matched by SKU.

    The whole file is checked with a dry run first; any bad row rejects the
    file and nothing is written.
    """
    dataset = Dataset()
    dataset.load(data, format=fmt)
    resource = InventoryItemResource()

    dry = resource.import_data(dataset, dry_run=True)
    if dry.has_errors() or dry.has_validation_errors():
        raise ValidationFailed(_row_errors(dry))

    with transaction.atomic():
        result = resource.import_data(dataset, dry_run=False)
        summary = ImportSummary(
            new=result.totals.get("new", 0),
            updated=result.totals.get("update", 0),
            skipped=result.totals.get("skip", 0),
        )
        log_event(
            action=AuditLog.Action.OTHER,
            message=_("Inventory items imported."),
            actor=actor,
            extra={"new": summary.new, "updated": summary.updated, "skipped": summary.skipped},
        )

    logger.info("Item import: %d new, %d updated, %d skipped", summary.new, summary.updated, summary.skipped)
    return summary
