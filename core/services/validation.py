# core/services/validation.py
from __future__ import annotations

from django.core.exceptions import ValidationError

from core.exceptions import ValidationFailed


def full_clean_or_fail(instance, *, exclude=None) -> None:
    """
    Run model validation and re-raise problems as ValidationFailed so
    services expose one error type for bad input.
    """
    try:
        instance.full_clean(exclude=exclude)
    except ValidationError as exc:
        raise ValidationFailed(exc.message_dict if hasattr(exc, "error_dict") else exc.messages) from exc
