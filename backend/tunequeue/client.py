"""
Python client for a room's real-time channel.

Connects over Socket.IO, joins the room, and hands every server message to a
callback as a typed message. After an unexpected disconnect it reconnects with
exponential backoff and joins again, which brings a fresh room_state snapshot,
so nothing missed while offline needs replaying.
"""
import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional

import socketio
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from tunequeue.models.messages import EventKind, server_message_adapter

logger = logging.getLogger(__name__)


class ReconnectPolicy(BaseModel):
    max_attempts: int = Field(5, ge=0)
    base_delay_ms: int = Field(1000, gt=0)
    max_delay_ms: int = Field(10000, gt=0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnect attempt `attempt` (1-based)."""
        delay_ms = min(self.base_delay_ms * 2 ** max(attempt - 1, 0), self.max_delay_ms)
        return delay_ms / 1000


class RoomClient:
    def __init__(
        self,
        url: str,
        room_id: str,
        on_message: Callable[[object], Awaitable[None]],
        policy: Optional[ReconnectPolicy] = None,
        sio: Optional[socketio.AsyncClient] = None,
    ):
        self.url = url
        self.room_id = room_id
        self.on_message = on_message
        self.policy = policy or ReconnectPolicy()
        # Reconnection is driven by run(), not by the Socket.IO client
        self.sio = sio or socketio.AsyncClient(reconnection=False)
        self.attempts = 0
        self._closing = False
        self._disconnected = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        for kind in EventKind:
            self.sio.on(kind.value, self._on_event)

    async def _on_connect(self):
        self.attempts = 0
        logger.info(f"Connected to {self.url}, joining room {self.room_id}")
        await self.sio.emit("join_room", {"roomId": self.room_id})

    async def _on_disconnect(self, *args):
        logger.info(f"Disconnected from {self.url}")
        self._disconnected.set()

    async def _on_event(self, data):
        try:
            message = server_message_adapter.validate_python(data)
        except PydanticValidationError as e:
            logger.error(f"Failed to parse server message: {e}")
            return
        await self.on_message(message)

    async def run(self):
        while not self._closing:
            self._disconnected.clear()
            try:
                await self.sio.connect(self.url)
            except socketio.exceptions.ConnectionError as e:
                logger.warning(f"Connection to {self.url} failed: {e}")
            else:
                await self._disconnected.wait()
                if self._closing:
                    break

            self.attempts += 1
            if self.attempts > self.policy.max_attempts:
                logger.error("Max reconnection attempts reached")
                break
            delay = self.policy.delay_for(self.attempts)
            logger.info(f"Attempting to reconnect in {delay:.1f}s ({self.attempts}/{self.policy.max_attempts})")
            await asyncio.sleep(delay)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    async def close(self):
        self._closing = True
        self._disconnected.set()
        if self.sio.connected:
            await self.sio.disconnect()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
