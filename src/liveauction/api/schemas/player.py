from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from liveauction.engine import AssignmentResult, PlayerPatch
from liveauction.errors import AuctionValidationError
from liveauction.models import PlayerRecord, PlayerStatus, TeamRecord


class AssignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_id: str | None = Field(default=None, alias="teamId")
    amount: float | None = None


class PlayerUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    reg_no: str | None = Field(default=None, alias="regNo")
    player_class: str | None = Field(default=None, alias="class")
    position: str | None = None
    photo_url: str | None = Field(default=None, alias="photoUrl")
    custom_fields: Dict[str, Any] | None = Field(default=None, alias="customFields")
    status: PlayerStatus | None = None
    team_id: str | None = Field(default=None, alias="teamId")
    sold_amount: float | None = Field(default=None, alias="soldAmount")

    def to_patch(self) -> PlayerPatch:
        try:
            return PlayerPatch(**self.model_dump(exclude_unset=True))
        except ValidationError as exc:
            raise AuctionValidationError(str(exc)) from exc


class AssignmentResponse(BaseModel):
    player: PlayerRecord
    team: Optional[TeamRecord] = None
    previous_team: Optional[TeamRecord] = None

    @classmethod
    def from_result(cls, result: AssignmentResult) -> "AssignmentResponse":
        return cls(player=result.player, team=result.team, previous_team=result.previous_team)


class PlayerDeletedResponse(BaseModel):
    player_id: str
    refunded_team: Optional[TeamRecord] = None
