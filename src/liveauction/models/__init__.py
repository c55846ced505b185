"""Entity models for players, teams and callers."""

from .player import CustomFields, FieldValue, PlayerRecord, PlayerStatus, RESERVED_FIELD_KEYS
from .principal import Principal
from .team import BUDGET_TOLERANCE, TeamRecord

__all__ = [
    "BUDGET_TOLERANCE",
    "CustomFields",
    "FieldValue",
    "PlayerRecord",
    "PlayerStatus",
    "Principal",
    "RESERVED_FIELD_KEYS",
    "TeamRecord",
]
