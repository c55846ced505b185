"""Pure slot/budget bookkeeping for team rosters.

Every function returns a new ``TeamRecord``; nothing here touches storage.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from liveauction.errors import AuctionValidationError, InsufficientBudget, SlotsExhausted
from liveauction.models import BUDGET_TOLERANCE, PlayerRecord, PlayerStatus, TeamRecord


_BUDGET_TOLERANCE = BUDGET_TOLERANCE
_MONEY_DIGITS = 6
_REG_DIGITS = re.compile(r"\d+")


def require_amount(amount: object) -> float:
    """Validate an operator-entered sale amount."""

    if amount is None:
        raise AuctionValidationError("Sold amount is required")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise AuctionValidationError("Sold amount must be a number")
    value = float(amount)
    if math.isnan(value) or math.isinf(value):
        raise AuctionValidationError("Sold amount must be a finite number")
    if value < 0:
        raise AuctionValidationError("Sold amount cannot be negative")
    return value


def _settle(value: float) -> float:
    """Round away float noise so stored balances do not drift."""

    return round(value, _MONEY_DIGITS) + 0.0


def _remaining(team: TeamRecord) -> float:
    if team.remaining_budget is not None:
        return team.remaining_budget
    return team.budget or 0.0


def ensure_can_take(team: TeamRecord, amount: float) -> None:
    """Raise unless ``team`` has a free slot and can afford ``amount``."""

    if not team.can_add_player():
        raise SlotsExhausted(team.name)
    if not team.has_enough_budget(amount):
        raise InsufficientBudget(team.remaining_budget, amount)


def add_member(team: TeamRecord, player_id: str, amount: float) -> TeamRecord:
    ids = list(team.player_ids)
    if player_id not in ids:
        ensure_can_take(team, amount)
        ids.append(player_id)
    elif not team.has_enough_budget(amount):
        raise InsufficientBudget(team.remaining_budget, amount)
    remaining = team.remaining_budget
    if team.budget is not None:
        remaining = _settle(_remaining(team) - amount)
    return team.model_copy(
        update={"player_ids": ids, "filled_slots": len(ids), "remaining_budget": remaining}
    )


def remove_member(team: TeamRecord, player_id: str, refund: float) -> TeamRecord:
    ids = [pid for pid in team.player_ids if pid != player_id]
    remaining = team.remaining_budget
    if team.budget is not None and refund:
        remaining = _settle(_remaining(team) + refund)
    return team.model_copy(
        update={"player_ids": ids, "filled_slots": len(ids), "remaining_budget": remaining}
    )


def adjust_spend(team: TeamRecord, delta: float) -> TeamRecord:
    """Re-price an existing member: positive ``delta`` spends more."""

    if team.budget is None or not delta:
        return team
    remaining = _remaining(team)
    if delta > 0 and remaining + _BUDGET_TOLERANCE < delta:
        raise InsufficientBudget(remaining, delta)
    return team.model_copy(update={"remaining_budget": _settle(remaining - delta)})


def spent_by(team: TeamRecord, players: Mapping[str, PlayerRecord]) -> float:
    total = 0.0
    for player_id in team.player_ids:
        player = players.get(player_id)
        if player is not None and player.status is PlayerStatus.SOLD and player.sold_amount:
            total += player.sold_amount
    return total


def rebudget(team: TeamRecord, budget: float | None, spent: float) -> TeamRecord:
    """Change the ceiling while keeping what has already been spent."""

    if budget is None:
        return team.model_copy(update={"budget": None, "remaining_budget": None})
    if budget < 0:
        raise AuctionValidationError("Budget cannot be negative")
    remaining = _settle(budget - spent)
    if remaining < -_BUDGET_TOLERANCE:
        raise AuctionValidationError(
            f"Budget cannot be lower than the amount already spent ({spent:g})"
        )
    remaining = max(remaining, 0.0)
    return team.model_copy(update={"budget": float(budget), "remaining_budget": remaining})


def next_reg_no(existing: Iterable[str]) -> str:
    """``P`` + four digits, one past the largest number already in use."""

    highest = 0
    for reg_no in existing:
        match = _REG_DIGITS.search(reg_no or "")
        if match:
            highest = max(highest, int(match.group(0)))
    return f"P{highest + 1:04d}"


@dataclass(frozen=True)
class InvariantViolation:
    entity: str
    entity_id: str
    message: str


def audit(players: Sequence[PlayerRecord], teams: Sequence[TeamRecord]) -> list[InvariantViolation]:
    """List every broken player/team invariant for one tenant."""

    issues: list[InvariantViolation] = []
    by_id = {player.player_id: player for player in players}
    teams_by_id = {team.team_id: team for team in teams}

    for player in players:
        sold = player.status is PlayerStatus.SOLD
        if sold != (player.team_id is not None):
            issues.append(InvariantViolation("player", player.player_id, "status is sold but team is unset" if sold else "team is set but status is not sold"))
        if not sold and player.sold_amount:
            issues.append(InvariantViolation("player", player.player_id, "sold amount set on a player that is not sold"))
        if sold and player.team_id is not None:
            owner = teams_by_id.get(player.team_id)
            if owner is None:
                issues.append(InvariantViolation("player", player.player_id, "references a missing team"))
            elif player.player_id not in owner.player_ids:
                issues.append(InvariantViolation("player", player.player_id, f"not listed by team {owner.team_id}"))

    for team in teams:
        if team.filled_slots != len(team.player_ids):
            issues.append(InvariantViolation("team", team.team_id, f"filled slots {team.filled_slots} != {len(team.player_ids)} members"))
        if team.filled_slots > team.total_slots:
            issues.append(InvariantViolation("team", team.team_id, "filled slots exceed total slots"))
        for player_id in team.player_ids:
            member = by_id.get(player_id)
            if member is None or member.team_id != team.team_id:
                issues.append(InvariantViolation("team", team.team_id, f"member {player_id} does not point back at this team"))
        if team.budget is not None:
            expected = team.budget - spent_by(team, by_id)
            if team.remaining_budget is None or abs(team.remaining_budget - expected) > _BUDGET_TOLERANCE:
                issues.append(InvariantViolation("team", team.team_id, f"remaining budget {team.remaining_budget} != expected {expected:g}"))
    return issues
