from .base import BaseModel, TimeStampedModel, ActorStampedModel, SoftDeleteModel
from .audit import AuditLog
from .numbering import NumberingScheme
from .sequences import NumberSequence

__all__ = [
    "BaseModel",
    "TimeStampedModel",
    "ActorStampedModel",
    "SoftDeleteModel",
    "AuditLog",
    # Auto Number
    "NumberSequence",
    "NumberingScheme",
]
