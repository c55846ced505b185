from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from liveauction.engine import InvariantViolation, TeamPatch, TeamResult
from liveauction.errors import AuctionValidationError


class TeamUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    total_slots: int | None = Field(default=None, ge=1, alias="totalSlots")
    budget: float | None = Field(default=None, ge=0)
    logo_url: str | None = Field(default=None, alias="logoUrl")

    def to_patch(self) -> TeamPatch:
        try:
            return TeamPatch(**self.model_dump(exclude_unset=True))
        except ValidationError as exc:
            raise AuctionValidationError(str(exc)) from exc


class ResultPlayerResponse(BaseModel):
    player_id: str
    name: str
    reg_no: str | None
    player_class: str
    position: str
    sold_amount: float | None


class TeamResultResponse(BaseModel):
    team_id: str
    team_name: str
    total_players: int
    total_slots: int
    budget: float | None
    remaining_budget: float | None
    total_spent: float
    players: List[ResultPlayerResponse]

    @classmethod
    def from_result(cls, result: TeamResult) -> "TeamResultResponse":
        return cls(
            team_id=result.team_id,
            team_name=result.team_name,
            total_players=result.total_players,
            total_slots=result.total_slots,
            budget=result.budget,
            remaining_budget=result.remaining_budget,
            total_spent=result.total_spent,
            players=[ResultPlayerResponse(**vars(player)) for player in result.players],
        )


class ResetResponse(BaseModel):
    players_deleted: int
    teams_deleted: int


class ViolationResponse(BaseModel):
    entity: str
    entity_id: str
    message: str


class AuditResponse(BaseModel):
    consistent: bool
    violations: List[ViolationResponse]

    @classmethod
    def from_violations(cls, violations: List[InvariantViolation]) -> "AuditResponse":
        return cls(
            consistent=not violations,
            violations=[ViolationResponse(**vars(item)) for item in violations],
        )
