"""Playback transitions for a room: play, pause, sync, advance, restart."""
import logging

from tunequeue.models.room import Room
from tunequeue.services.room import RoomStore, validate_offset

logger = logging.getLogger(__name__)


class PlaybackController:
    """
    Room states:
        Idle    - no current track
        Playing - current track, is_playing
        Paused  - current track, not is_playing

    Advancing only happens on request. Clients report the natural end of a
    track with the same request as a manual skip.
    """

    def __init__(self, store: RoomStore):
        self.store = store

    async def play(self, room_id: str, offset: float = 0) -> Room:
        await self.store.update_playback_state(room_id, True, offset)
        return await self.store.get_room(room_id)

    async def pause(self, room_id: str, offset: float = 0) -> Room:
        await self.store.update_playback_state(room_id, False, offset)
        return await self.store.get_room(room_id)

    async def sync(self, room_id: str, offset: float) -> Room:
        """Record where playback is without changing play/pause."""
        offset = validate_offset(offset)
        async with self.store.transaction(room_id) as room:
            if room.current_track is not None:
                room.current_time = room.clamp_offset(offset)
            snapshot = room.model_copy(deep=True)
        return snapshot

    async def advance(self, room_id: str) -> Room:
        """
        Promote the head of the queue to current track, or go idle when the
        queue is empty.
        """
        async with self.store.transaction(room_id) as room:
            if room.queue:
                next_track = room.queue.pop(0)
                room.replace_current(next_track)
                room.is_playing = True
                logger.info(f"Room {room_id} advanced to '{next_track.title}'")
            else:
                room.replace_current(None)
                logger.info(f"Room {room_id} queue exhausted, going idle")
            snapshot = room.model_copy(deep=True)
        return snapshot

    async def restart(self, room_id: str) -> Room:
        """
        The "previous" action. Restarts the current track from 0 rather than
        going back through history.
        """
        async with self.store.transaction(room_id) as room:
            if room.current_track is not None:
                room.current_time = 0.0
                room.is_playing = True
            snapshot = room.model_copy(deep=True)
        return snapshot
