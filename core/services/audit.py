# core/services/audit.py

from __future__ import annotations

from typing import Any, Mapping, Optional

from django.contrib.contenttypes.models import ContentType

from core.models import AuditLog


def log_event(
    *,
    action: str | AuditLog.Action,
    message: str = "",
    actor: str = "",
    target: Optional[Any] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    """
    Create a single audit log entry.

    Parameters
    ----------
    action:
        The action code to store. Prefer AuditLog.Action.* enums, e.g.:
        - AuditLog.Action.CREATE
        - AuditLog.Action.STATUS_CHANGE
        - AuditLog.Action.STOCK_ADJUSTMENT
        - AuditLog.Action.AUTO_REORDER

    message:
        Human-readable description of what happened.

    actor:
        Display name of whoever performed the action. Background work such as
        the auto-reorder trigger logs as "system".

    target:
        Optional model instance that this event relates to (InventoryItem,
        PurchaseOrder, Supplier, ...). It is stored via GenericForeignKey.

    extra:
        Optional mapping of additional structured data (stored as JSON, so
        values must already be JSON-safe: Decimals go in as strings).

    Returns
    -------
    AuditLog
        The created AuditLog instance.
    """

    # -------- Normalize and validate action --------
    if isinstance(action, AuditLog.Action):
        action_value = action.value
    else:
        action_value = str(action)

    valid_actions = {choice[0] for choice in AuditLog.Action.choices}
    if action_value not in valid_actions:
        raise ValueError(
            f"Invalid audit action '{action_value}'. "
            f"Allowed values: {sorted(valid_actions)}"
        )

    data: dict[str, Any] = {
        "action": action_value,
        "message": message or "",
        "actor": actor or "",
        # Copy extra to avoid mutating external dict
        "extra": dict(extra) if extra is not None else {},
    }

    # -------- Target object (via GenericForeignKey) --------
    if target is not None:
        ct = ContentType.objects.get_for_model(target, for_concrete_model=True)

        obj_id = getattr(target, "pk", None)
        if obj_id is not None:
            data["target_content_type"] = ct
            data["target_object_id"] = str(obj_id)

    return AuditLog.objects.create(**data)


def history_for(target: Any):
    """Audit entries recorded against ``target``, newest first."""
    ct = ContentType.objects.get_for_model(target, for_concrete_model=True)
    return AuditLog.objects.filter(
        target_content_type=ct,
        target_object_id=str(target.pk),
    )
