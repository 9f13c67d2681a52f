import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from tunequeue.errors import NotFoundError
from tunequeue.models.messages import EventKind, build_message
from tunequeue.services.room import RoomStore

logger = logging.getLogger(__name__)

# (connection_id, event, data) -> None
SendFunc = Callable[[str, str, Any], Awaitable[None]]


class RoomHub:
    """
    Tracks which connections are subscribed to which room and pushes messages
    to them. Every message carries a full snapshot (except playback updates),
    so a client that missed something only needs to join again.
    """

    def __init__(self, store: RoomStore, send: SendFunc):
        self.store = store
        self.send = send
        self._subscribers: Dict[str, Set[str]] = {}
        self._connection_rooms: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def subscribers(self, room_id: str) -> Set[str]:
        return set(self._subscribers.get(room_id, ()))

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._connection_rooms.get(connection_id)

    async def subscribe(self, room_id: str, connection_id: str):
        previous = self._connection_rooms.get(connection_id)
        if previous and previous != room_id:
            self.unsubscribe(connection_id)

        async with self._lock(room_id):
            self._subscribers.setdefault(room_id, set()).add(connection_id)
            self._connection_rooms[connection_id] = room_id
            logger.info(f"Connection {connection_id} joined room {room_id}")

            try:
                room = await self.store.get_room(room_id)
            except NotFoundError:
                logger.warning(f"Room {room_id} not found for join request from {connection_id}")
                return
            message = build_message(EventKind.ROOM_STATE, room)
            await self._deliver(connection_id, message.type, message.model_dump(mode="json", by_alias=True))

    def unsubscribe(self, connection_id: str) -> Optional[str]:
        room_id = self._connection_rooms.pop(connection_id, None)
        if room_id is None:
            return None
        members = self._subscribers.get(room_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._subscribers[room_id]
                lock = self._locks.get(room_id)
                if lock is not None and not lock.locked():
                    del self._locks[room_id]
        logger.info(f"Connection {connection_id} left room {room_id}")
        return room_id

    async def publish(self, room_id: str, kind: EventKind, payload):
        message = build_message(kind, payload)
        data = message.model_dump(mode="json", by_alias=True)
        if room_id not in self._subscribers:
            return
        async with self._lock(room_id):
            for connection_id in self.subscribers(room_id):
                await self._deliver(connection_id, message.type, data)

    async def _deliver(self, connection_id: str, event: str, data):
        try:
            await self.send(connection_id, event, data)
        except Exception as e:
            logger.warning(f"Failed to deliver {event} to {connection_id}: {e}")
