"""Canonical player models shared across the store, engine and client layers."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Union

from pydantic import BaseModel, Field, RootModel, field_validator
from pydantic.config import ConfigDict


FieldValue = Union[bool, int, float, str, None]

_FIELD_KEY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")

# Keys owned by the core record; a form schema may not shadow them.
RESERVED_FIELD_KEYS = frozenset(
    {
        "name",
        "reg_no",
        "regNo",
        "class",
        "player_class",
        "position",
        "photo",
        "photo_url",
        "status",
        "team",
        "team_id",
        "sold_amount",
        "soldAmount",
        "token",
    }
)


class PlayerStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"
    UNSOLD = "unsold"


class CustomFields(RootModel[Dict[str, FieldValue]]):
    """Extension map of form-defined fields, checked at the boundary.

    Keys must look like identifiers and may not collide with core player
    attributes; values are JSON scalars. Whether a key is *known* is decided
    by the tenant's form schema, not here.
    """

    root: Dict[str, FieldValue] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def _check_keys(cls, value: Dict[str, FieldValue]) -> Dict[str, FieldValue]:
        for key in value:
            if not _FIELD_KEY_PATTERN.match(key):
                raise ValueError(f"invalid custom field name {key!r}")
            if key in RESERVED_FIELD_KEYS:
                raise ValueError(f"custom field {key!r} shadows a core player attribute")
        return value

    @classmethod
    def from_form(cls, data: Mapping[str, object]) -> "CustomFields":
        """Build from raw form input, dropping blank values."""

        cleaned: dict[str, FieldValue] = {}
        for key, raw in data.items():
            if raw is None:
                continue
            if isinstance(raw, str):
                raw = raw.strip()
                if not raw:
                    continue
            cleaned[key] = raw  # type: ignore[assignment]
        return cls(cleaned)

    def get(self, key: str, default: FieldValue = None) -> FieldValue:
        return self.root.get(key, default)

    def keys(self):
        return self.root.keys()

    def __len__(self) -> int:
        return len(self.root)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlayerRecord(BaseModel):
    """Persisted auction entry.

    ``status == sold`` iff ``team_id`` is set, and ``sold_amount`` is only
    meaningful while sold. The model does not reject drifted rows so the
    repair path can still load them; see ``liveauction.engine.ledger``.
    """

    player_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    reg_no: str | None = None
    player_class: str = "N/A"
    position: str = "N/A"
    photo_url: str = ""
    status: PlayerStatus = PlayerStatus.AVAILABLE
    team_id: str | None = None
    sold_amount: float | None = None
    custom_fields: CustomFields = Field(default_factory=CustomFields)
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @property
    def is_sold(self) -> bool:
        return self.status is PlayerStatus.SOLD
