"""Pydantic models for API I/O."""

from .player import AssignRequest, AssignmentResponse, PlayerDeletedResponse, PlayerUpdateRequest
from .team import (
    AuditResponse,
    ResetResponse,
    ResultPlayerResponse,
    TeamResultResponse,
    TeamUpdateRequest,
    ViolationResponse,
)

__all__ = [
    "AssignRequest",
    "AssignmentResponse",
    "AuditResponse",
    "PlayerDeletedResponse",
    "PlayerUpdateRequest",
    "ResetResponse",
    "ResultPlayerResponse",
    "TeamResultResponse",
    "TeamUpdateRequest",
    "ViolationResponse",
]
