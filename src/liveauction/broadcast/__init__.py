"""Per-tenant real-time event channel."""

from .events import (
    EventName,
    NullPublisher,
    Publisher,
    RecordingPublisher,
    player_payload,
    room_name,
    team_payload,
)
from .hub import RoomHub

__all__ = [
    "EventName",
    "NullPublisher",
    "Publisher",
    "RecordingPublisher",
    "RoomHub",
    "player_payload",
    "room_name",
    "team_payload",
]
