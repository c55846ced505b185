"""Team roster model."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from .player import utcnow


# Amounts are floats; sums of decimal prices drift by a few ulps.
BUDGET_TOLERANCE = 1e-6


class TeamRecord(BaseModel):
    """Competing team with slot capacity and an optional budget ceiling.

    ``budget is None`` means unlimited spending; ``remaining_budget`` then
    stays ``None`` as well.
    """

    team_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    logo_url: str = ""
    total_slots: int = Field(..., ge=1)
    filled_slots: int = Field(default=0, ge=0)
    budget: float | None = Field(default=None, ge=0)
    remaining_budget: float | None = None
    player_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @property
    def available_slots(self) -> int:
        return self.total_slots - self.filled_slots

    def can_add_player(self) -> bool:
        return self.filled_slots < self.total_slots

    def has_enough_budget(self, amount: float) -> bool:
        if self.budget is None:
            return True
        return (self.remaining_budget or 0.0) + BUDGET_TOLERANCE >= amount
