"""In-process room hub delivering events to WebSocket subscribers."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, Iterable, List, Protocol, Set

from .events import room_name


logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class RoomHub:
    """Tracks which subscribers sit in which tenant room.

    ``announce`` may be called from worker threads (sync endpoints); delivery
    always runs on the bound event loop and never blocks the caller. A
    subscriber whose send fails is dropped from every room.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rooms: Dict[str, Set[Subscriber]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: Set[Any] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = loop

    def join(self, tenant_id: str, subscriber: Subscriber) -> str:
        room = room_name(tenant_id)
        with self._lock:
            members = self._rooms.setdefault(room, set())
            members.add(subscriber)
            size = len(members)
        logger.info("Subscriber joined room %s (%d connected)", room, size)
        return room

    def leave(self, tenant_id: str, subscriber: Subscriber) -> None:
        room = room_name(tenant_id)
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(subscriber)
            if not members:
                del self._rooms[room]
        logger.info("Subscriber left room %s", room)

    def drop(self, subscriber: Subscriber) -> None:
        with self._lock:
            for room in list(self._rooms):
                members = self._rooms[room]
                members.discard(subscriber)
                if not members:
                    del self._rooms[room]

    def room_size(self, tenant_id: str) -> int:
        with self._lock:
            return len(self._rooms.get(room_name(tenant_id), ()))

    def announce(self, tenant_id: str, event: str, payload: Any) -> None:
        room = room_name(tenant_id)
        with self._lock:
            members = list(self._rooms.get(room, ()))
            loop = self._loop
        if not members:
            return
        if loop is None or loop.is_closed():
            logger.debug("No event loop bound; dropping %s for %s", event, room)
            return
        message = {"event": str(getattr(event, "value", event)), "data": payload}
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            pending: Any = loop.create_task(self._deliver(members, message))
        else:
            pending = asyncio.run_coroutine_threadsafe(self._deliver(members, message), loop)
        with self._lock:
            self._pending.add(pending)
        pending.add_done_callback(self._forget)

    def pending_deliveries(self) -> int:
        with self._lock:
            return len(self._pending)

    def _forget(self, pending) -> None:
        with self._lock:
            self._pending.discard(pending)

    async def _deliver(self, members: Iterable[Subscriber], message: dict) -> None:
        failed: List[Subscriber] = []
        for subscriber in members:
            try:
                await subscriber.send_json(message)
            except Exception as exc:  # delivery is best-effort
                logger.warning("Dropping subscriber after failed send of %s: %s", message["event"], exc)
                failed.append(subscriber)
        for subscriber in failed:
            self.drop(subscriber)
