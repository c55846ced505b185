"""Authenticated caller context handed in by the auth collaborator."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class Principal(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    role: str = "auctioneer"
    is_active: bool = True
    access_expiry: datetime | None = None

    model_config = ConfigDict(frozen=True)

    def is_expired(self, now: datetime | None = None) -> bool:
        # Expiry only applies to auctioneer accounts; admins never lapse.
        if self.role != "auctioneer" or self.access_expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        expiry = self.access_expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return now > expiry
