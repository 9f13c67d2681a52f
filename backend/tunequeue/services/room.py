import asyncio
import logging
import secrets
import string
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from tunequeue.errors import ConflictError, NotFoundError, ValidationError
from tunequeue.models.room import (
    Participant,
    ParticipantCreate,
    Room,
    RoomCreate,
    Track,
    TrackCreate,
)

logger = logging.getLogger(__name__)

ROOM_TTL = 3600 * 10  # 10 hours
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def _validate(model, data, what: str):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid {what} data: {problems}") from e


class RoomStore:
    """
    Owns room state. Every mutation runs inside transaction(): the room's lock is
    held, a copy is edited, and the copy is written back only if the block
    finishes without raising.

    Subclasses provide the backing (_load/_save and the code index).
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()

    # Backing

    async def _load(self, room_id: str) -> Optional[Room]:
        raise NotImplementedError

    async def _save(self, room: Room):
        raise NotImplementedError

    async def _lookup_code(self, code: str) -> Optional[str]:
        raise NotImplementedError

    async def _claim_code(self, code: str, room_id: str) -> bool:
        raise NotImplementedError

    async def close(self):
        pass

    # Helpers

    def _lock(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    async def _require(self, room_id: str) -> Room:
        room = await self._load(room_id)
        if room is None:
            # Rooms that expired or never existed must not leave a lock behind
            self._locks.pop(room_id, None)
            raise NotFoundError(f"Room '{room_id}' not found")
        return room

    @asynccontextmanager
    async def transaction(self, room_id: str):
        await self._require(room_id)
        async with self._lock(room_id):
            room = await self._require(room_id)
            draft = room.model_copy(deep=True)
            yield draft
            await self._save(draft)

    async def _generate_code(self) -> str:
        while True:
            code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
            if await self._lookup_code(code) is None:
                return code

    # Rooms

    async def create_room(self, code: Optional[str] = None, name: str = "") -> Room:
        data = _validate(RoomCreate, {"code": code, "name": name}, "room")
        async with self._create_lock:
            code = data.code or await self._generate_code()
            room = Room(code=code, name=data.name)
            if not await self._claim_code(code, room.id):
                raise ConflictError(f"Room code '{code}' is already in use")
            await self._save(room)
        logger.info(f"Created room {room.id} with code {room.code}")
        return room.model_copy(deep=True)

    async def get_room(self, room_id: str) -> Room:
        room = await self._load(room_id)
        if room is None:
            raise NotFoundError(f"Room '{room_id}' not found")
        return room.model_copy(deep=True)

    async def get_room_by_code(self, code: str) -> Room:
        room_id = await self._lookup_code((code or "").strip().upper())
        if room_id is None:
            raise NotFoundError(f"Room with code '{code}' not found")
        return await self.get_room(room_id)

    # Participants

    async def add_participant(self, room_id: str, name: str, initials: str) -> Participant:
        data = _validate(ParticipantCreate, {"name": name, "initials": initials}, "participant")
        async with self.transaction(room_id) as room:
            existing = room.find_participant(data.name)
            if existing:
                return existing
            participant = Participant(name=data.name, initials=data.initials)
            room.participants.append(participant)
        logger.info(f"{participant.name} joined room {room_id}")
        return participant

    async def remove_participant(self, room_id: str, participant_id: str) -> bool:
        async with self.transaction(room_id) as room:
            room.participants = [p for p in room.participants if p.id != participant_id]
        return True

    # Queue

    async def enqueue(self, room_id: str, track_data: Union[TrackCreate, dict]) -> Track:
        data = _validate(TrackCreate, track_data, "track")
        track = Track(**data.model_dump())
        async with self.transaction(room_id) as room:
            if room.current_track is None and not room.queue:
                # Idle room: the first song starts playing straight away
                room.replace_current(track)
                room.is_playing = True
            else:
                room.queue.append(track)

            requester = room.find_participant(track.requested_by)
            if requester:
                requester.songs_added += 1
        logger.info(f"Queued '{track.title}' in room {room_id} for {track.requested_by}")
        return track

    async def remove_from_queue(self, room_id: str, track_id: str) -> bool:
        async with self.transaction(room_id) as room:
            room.queue = [t for t in room.queue if t.id != track_id]
        return True

    async def clear_queue(self, room_id: str) -> bool:
        async with self.transaction(room_id) as room:
            count = len(room.queue)
            room.queue = []
        logger.info(f"Cleared {count} tracks from queue in room {room_id}")
        return True

    # Playback

    async def set_current_track(self, room_id: str, track: Optional[Track]) -> bool:
        async with self.transaction(room_id) as room:
            if track is not None:
                room.queue = [t for t in room.queue if t.id != track.id]
            room.replace_current(track)
        return True

    async def update_playback_state(self, room_id: str, playing: bool, offset: float) -> bool:
        offset = validate_offset(offset)
        async with self.transaction(room_id) as room:
            if room.current_track is None:
                room.is_playing = False
                room.current_time = 0.0
            else:
                room.is_playing = bool(playing)
                room.current_time = room.clamp_offset(offset)
        return True

    async def toggle_auto_selection(self, room_id: str) -> bool:
        async with self.transaction(room_id) as room:
            room.auto_selection = not room.auto_selection
            enabled = room.auto_selection
        logger.info(f"Auto selection {'enabled' if enabled else 'disabled'} for room {room_id}")
        return enabled

    async def get_recent_tracks(self, room_id: str, limit: int = 10) -> List[Track]:
        room = await self.get_room(room_id)
        tracks = ([room.current_track] if room.current_track else []) + room.history
        return tracks[:max(limit, 0)]


def validate_offset(offset) -> float:
    if offset is None:
        return 0.0
    if isinstance(offset, bool) or not isinstance(offset, (int, float)):
        raise ValidationError("currentTime must be a number")
    return float(offset)


class MemoryRoomStore(RoomStore):
    """Process-local store. State is lost on restart."""

    def __init__(self):
        super().__init__()
        self._rooms: Dict[str, Room] = {}
        self._codes: Dict[str, str] = {}

    async def _load(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    async def _save(self, room: Room):
        self._rooms[room.id] = room.model_copy(deep=True)

    async def _lookup_code(self, code: str) -> Optional[str]:
        return self._codes.get(code)

    async def _claim_code(self, code: str, room_id: str) -> bool:
        if code in self._codes:
            return False
        self._codes[code] = room_id
        return True


class RedisRoomStore(RoomStore):
    """
    Rooms as JSON under room:{id}, with a room_code:{code} -> id index.
    Keys expire after `ttl` seconds without a write. Locks are per process, so
    only one server should write to a keyspace.
    """

    def __init__(self, redis_client, ttl: int = ROOM_TTL):
        super().__init__()
        self.redis = redis_client
        self.ttl = ttl

    async def _load(self, room_id: str) -> Optional[Room]:
        data = await self.redis.get(f"room:{room_id}")
        if not data:
            return None
        try:
            return Room.model_validate_json(data)
        except PydanticValidationError as e:
            logger.error(f"Error loading room {room_id}: {e}")
            return None

    async def _save(self, room: Room):
        await self.redis.set(f"room:{room.id}", room.model_dump_json(), ex=self.ttl)
        # Keep the code index alive as long as the room
        await self.redis.expire(f"room_code:{room.code}", self.ttl)

    async def _lookup_code(self, code: str) -> Optional[str]:
        room_id = await self.redis.get(f"room_code:{code}")
        if isinstance(room_id, bytes):
            room_id = room_id.decode()
        return room_id

    async def _claim_code(self, code: str, room_id: str) -> bool:
        return bool(await self.redis.set(f"room_code:{code}", room_id, nx=True, ex=self.ttl))

    async def close(self):
        await self.redis.aclose()
