"""Inputs and results of engine operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field

from liveauction.models import CustomFields, PlayerRecord, PlayerStatus, TeamRecord


class PlayerDraft(BaseModel):
    name: str = Field(..., min_length=1)
    reg_no: str | None = None
    player_class: str | None = None
    position: str | None = None
    custom_fields: CustomFields = Field(default_factory=CustomFields)


class PlayerPatch(BaseModel):
    """Partial player update; only fields explicitly set are applied."""

    name: str | None = Field(default=None, min_length=1)
    reg_no: str | None = None
    player_class: str | None = None
    position: str | None = None
    photo_url: str | None = None
    custom_fields: CustomFields | None = None
    status: PlayerStatus | None = None
    team_id: str | None = None
    sold_amount: float | None = None


class TeamDraft(BaseModel):
    name: str = Field(..., min_length=1)
    total_slots: int = Field(..., ge=1)
    budget: float | None = Field(default=None, ge=0)
    logo_url: str = ""


class TeamPatch(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    total_slots: int | None = Field(default=None, ge=1)
    budget: float | None = Field(default=None, ge=0)
    logo_url: str | None = None


@dataclass(frozen=True)
class AssignmentResult:
    player: PlayerRecord
    team: Optional[TeamRecord] = None
    previous_team: Optional[TeamRecord] = None


@dataclass(frozen=True)
class ResetSummary:
    players_deleted: int
    teams_deleted: int


@dataclass(frozen=True)
class ResultPlayer:
    player_id: str
    name: str
    reg_no: str | None
    player_class: str
    position: str
    sold_amount: float | None


@dataclass(frozen=True)
class TeamResult:
    team_id: str
    team_name: str
    total_slots: int
    budget: float | None
    remaining_budget: float | None
    players: List[ResultPlayer] = field(default_factory=list)

    @property
    def total_players(self) -> int:
        return len(self.players)

    @property
    def total_spent(self) -> float:
        return sum(player.sold_amount or 0.0 for player in self.players)
