"""Auction assignment engine."""

from .ledger import InvariantViolation, audit, next_reg_no
from .service import AssignmentEngine
from .types import (
    AssignmentResult,
    PlayerDraft,
    PlayerPatch,
    ResetSummary,
    ResultPlayer,
    TeamDraft,
    TeamPatch,
    TeamResult,
)

__all__ = [
    "AssignmentEngine",
    "AssignmentResult",
    "InvariantViolation",
    "PlayerDraft",
    "PlayerPatch",
    "ResetSummary",
    "ResultPlayer",
    "TeamDraft",
    "TeamPatch",
    "TeamResult",
    "audit",
    "next_reg_no",
]
