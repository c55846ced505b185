"""Event names and payload shaping for the per-tenant room."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from liveauction.models import PlayerRecord, TeamRecord


class EventName(str, Enum):
    PLAYER_ADDED = "playerAdded"
    PLAYER_UPDATED = "playerUpdated"
    PLAYER_SOLD = "playerSold"
    PLAYER_MARKED_UNSOLD = "playerMarkedUnsold"
    PLAYER_REMOVED_FROM_TEAM = "playerRemovedFromTeam"
    PLAYER_DELETED = "playerDeleted"
    TEAM_CREATED = "teamCreated"
    TEAM_UPDATED = "teamUpdated"
    TEAM_DELETED = "teamDeleted"
    DATA_RESET = "dataReset"
    PLAYERS_CLEARED = "playersCleared"


# Channel control messages; never emitted by the engine.
JOIN_ROOM = "joinAuctioneer"
JOINED_ROOM = "joinedAuctioneer"
LEAVE_ROOM = "leaveAuctioneer"
HEARTBEAT = "heartbeat"
HEARTBEAT_ACK = "heartbeat_ack"
PING = "ping"
PONG = "pong"
ERROR = "error"


def room_name(tenant_id: str) -> str:
    return f"auctioneer_{tenant_id}"


def player_payload(player: PlayerRecord) -> dict[str, Any]:
    return player.model_dump(mode="json")


def team_payload(team: TeamRecord) -> dict[str, Any]:
    return team.model_dump(mode="json")


class Publisher(Protocol):
    """Announces a committed mutation to every viewer of a tenant."""

    def announce(self, tenant_id: str, event: str, payload: Any) -> None:
        ...


class NullPublisher:
    def announce(self, tenant_id: str, event: str, payload: Any) -> None:
        return None


class RecordingPublisher:
    """Keeps announcements in memory; handy for scripts and tests."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, Any]] = []

    def announce(self, tenant_id: str, event: str, payload: Any) -> None:
        self.events.append((tenant_id, str(getattr(event, "value", event)), payload))

    def names(self, tenant_id: str | None = None) -> list[str]:
        return [name for tenant, name, _ in self.events if tenant_id is None or tenant == tenant_id]

    def clear(self) -> None:
        self.events.clear()
