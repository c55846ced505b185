"""Operator board state kept in step with the server.

The board applies sales optimistically, then lets a debounced full refetch
settle the real state. Server events never patch the board piecemeal; they
only trigger that refetch. Everything here runs on one event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx

from liveauction.broadcast import EventName
from liveauction.broadcast.events import HEARTBEAT, HEARTBEAT_ACK
from liveauction.config import AuctionSettings
from liveauction.models import PlayerRecord, PlayerStatus, TeamRecord

from .http import ApiError, AuctionApiClient


logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.3
DEFAULT_HEARTBEAT_INTERVAL = 10.0

_REFETCH_EVENTS = {event.value for event in EventName}
_CLEARING_EVENTS = {EventName.DATA_RESET.value, EventName.PLAYERS_CLEARED.value}
_RequestFailure = (ApiError, httpx.HTTPError)


class AuctionBoard:
    def __init__(
        self,
        api: AuctionApiClient,
        *,
        debounce: float = DEFAULT_DEBOUNCE,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ):
        self._api = api
        self._debounce = debounce
        self._heartbeat_interval = heartbeat_interval
        self.teams: Dict[str, TeamRecord] = {}
        self.available_count = 0
        self.current_player: Optional[PlayerRecord] = None
        self.sold_amount: Optional[float] = None
        self.connected = False
        self.latency_ms: Optional[float] = None
        self.last_error: Optional[str] = None
        self._closed = False
        self._busy = False
        self._refresh_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, api: AuctionApiClient, settings: AuctionSettings) -> "AuctionBoard":
        return cls(api, debounce=settings.refetch_debounce, heartbeat_interval=settings.heartbeat_interval)

    # reads -------------------------------------------------------------------

    def team_list(self) -> List[TeamRecord]:
        return list(self.teams.values())

    @property
    def refresh_pending(self) -> bool:
        return self._refresh_handle is not None

    async def refresh(self) -> None:
        """Replace local state with the server's."""

        teams = await self._api.list_teams()
        available = await self._api.list_players(PlayerStatus.AVAILABLE)
        self.teams = {team.team_id: team for team in teams}
        self.available_count = len(available)
        if self.current_player is not None:
            still_available = {player.player_id for player in available}
            if self.current_player.player_id not in still_available:
                self.current_player = None
                self.sold_amount = None

    # operator actions --------------------------------------------------------

    async def spin(self) -> Optional[PlayerRecord]:
        try:
            player = await self._api.random_player()
        except ApiError as exc:
            if exc.status_code != 404:
                raise
            self.last_error = exc.detail
            self.current_player = None
            return None
        self.current_player = player
        self.sold_amount = None
        self.last_error = None
        return player

    def enter_amount(self, amount: float) -> None:
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
            raise ValueError("Sold amount must be a positive number")
        self.sold_amount = float(amount)

    async def sell_to(self, team_id: str) -> None:
        """Sell the current player, showing the result before the server answers.

        On failure the pre-sale state is restored, a full refetch runs
        immediately and the error is re-raised.
        """

        player = self.current_player
        if player is None:
            raise ValueError("No player selected")
        if not self.sold_amount or self.sold_amount <= 0:
            raise ValueError("Enter a sold amount first")
        team = self.teams.get(team_id)
        if team is None:
            raise ValueError("Unknown team")
        if self._busy:
            raise ValueError("Another sale is still in progress")

        amount = self.sold_amount
        snapshot = self._snapshot()
        self.teams[team_id] = self._optimistic_sale(team, player, amount)
        if player.status is PlayerStatus.AVAILABLE:
            self.available_count = max(0, self.available_count - 1)
        self.current_player = None
        self.sold_amount = None

        self._busy = True
        try:
            await self._api.assign(player.player_id, team_id, amount)
        except _RequestFailure as exc:
            await self._roll_back(snapshot, exc)
            raise
        finally:
            self._busy = False
        self.last_error = None
        self.schedule_refresh()

    async def mark_current_unsold(self) -> None:
        player = self.current_player
        if player is None:
            raise ValueError("No player selected")
        if self._busy:
            raise ValueError("Another sale is still in progress")

        snapshot = self._snapshot()
        if player.status is PlayerStatus.AVAILABLE:
            self.available_count = max(0, self.available_count - 1)
        self.current_player = None
        self.sold_amount = None

        self._busy = True
        try:
            await self._api.mark_unsold(player.player_id)
        except _RequestFailure as exc:
            await self._roll_back(snapshot, exc)
            raise
        finally:
            self._busy = False
        self.last_error = None
        self.schedule_refresh()

    # channel -----------------------------------------------------------------

    def set_connected(self, connected: bool) -> None:
        self.connected = connected
        if connected:
            self.schedule_refresh()

    async def run_heartbeat(self, send: Callable[[dict], Awaitable[None]]) -> None:
        """Send a timestamped heartbeat every interval until the board closes.

        ``send`` writes one message to the server connection. A failed send
        marks the board disconnected and propagates.
        """

        while not self._closed:
            message = {"event": HEARTBEAT, "data": {"timestamp": time.time() * 1000.0}}
            try:
                await send(message)
            except Exception:
                self.connected = False
                raise
            await asyncio.sleep(self._heartbeat_interval)

    def handle_event(self, name: str, payload: Any = None) -> None:
        """Feed one server message into the board."""

        if name == HEARTBEAT_ACK:
            if isinstance(payload, dict) and isinstance(payload.get("latency"), (int, float)):
                self.latency_ms = float(payload["latency"])
            return
        if name not in _REFETCH_EVENTS:
            logger.debug("Ignoring event %s", name)
            return
        if name in _CLEARING_EVENTS:
            self._clear()
        elif name == EventName.PLAYER_DELETED.value and self.current_player is not None:
            if isinstance(payload, dict) and payload.get("playerId") == self.current_player.player_id:
                self.current_player = None
                self.sold_amount = None
        self.schedule_refresh()

    def schedule_refresh(self) -> None:
        """Coalesce refetch requests arriving within the debounce window."""

        if self._closed:
            return
        loop = asyncio.get_running_loop()
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
        self._refresh_handle = loop.call_later(self._debounce, self._start_refresh)

    async def close(self) -> None:
        self._closed = True
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # internals ---------------------------------------------------------------

    def _start_refresh(self) -> None:
        self._refresh_handle = None
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._refresh_quietly())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except _RequestFailure as exc:
            self.last_error = str(exc)
            logger.warning("Board refetch failed: %s", exc)

    async def _roll_back(self, snapshot: dict, exc: Exception) -> None:
        self._restore(snapshot)
        self.last_error = exc.detail if isinstance(exc, ApiError) else str(exc)
        if self._closed:
            return
        try:
            await self.refresh()
        except _RequestFailure as refetch_exc:
            logger.warning("Refetch after failed request also failed: %s", refetch_exc)

    def _snapshot(self) -> dict:
        return {
            "teams": dict(self.teams),
            "available_count": self.available_count,
            "current_player": self.current_player,
            "sold_amount": self.sold_amount,
        }

    def _restore(self, snapshot: dict) -> None:
        self.teams = snapshot["teams"]
        self.available_count = snapshot["available_count"]
        self.current_player = snapshot["current_player"]
        self.sold_amount = snapshot["sold_amount"]

    def _clear(self) -> None:
        self.teams = {}
        self.available_count = 0
        self.current_player = None
        self.sold_amount = None

    @staticmethod
    def _optimistic_sale(team: TeamRecord, player: PlayerRecord, amount: float) -> TeamRecord:
        remaining = team.remaining_budget
        if team.budget is not None:
            remaining = (remaining if remaining is not None else team.budget) - amount
        ids = team.player_ids if player.player_id in team.player_ids else [*team.player_ids, player.player_id]
        return team.model_copy(
            update={"filled_slots": len(ids), "remaining_budget": remaining, "player_ids": ids}
        )
