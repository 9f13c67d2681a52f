import re
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_DURATION_RE = re.compile(r"^\d+:\d{2}(:\d{2})?$")

HISTORY_SIZE = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def parse_duration(duration: str) -> Optional[int]:
    """'3:45' -> 225, '1:02:03' -> 3723. None if the string isn't a duration."""
    if not duration or not _DURATION_RE.match(duration):
        return None
    seconds = 0
    for part in duration.split(":"):
        seconds = seconds * 60 + int(part)
    return seconds


def format_duration(seconds: Optional[float]) -> str:
    if not seconds or seconds < 0:
        return "0:00"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python; either is accepted as input
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackCreate(WireModel):
    youtube_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    artist: str = Field(min_length=1)
    duration: str = "0:00"
    thumbnail: str = ""
    requested_by: str = Field(min_length=1)

    @field_validator("duration")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        if parse_duration(value) is None:
            raise ValueError("duration must look like m:ss or h:mm:ss")
        return value


class Track(TrackCreate):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    requested_at: datetime = Field(default_factory=_now)

    @property
    def duration_seconds(self) -> Optional[int]:
        return parse_duration(self.duration)


class ParticipantCreate(WireModel):
    name: str = Field(min_length=1)
    initials: str = Field(min_length=1, max_length=4)

    @field_validator("name", "initials")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class Participant(ParticipantCreate):
    id: str = Field(default_factory=_new_id)
    songs_added: int = 0
    joined_at: datetime = Field(default_factory=_now)


class RoomCreate(WireModel):
    code: Optional[str] = None
    name: str = Field(min_length=1)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().upper()
        if not value:
            raise ValueError("code must not be blank")
        return value


class PlaybackState(WireModel):
    is_playing: bool
    current_time: float


class Room(WireModel):
    id: str = Field(default_factory=_new_id)
    code: str
    name: str
    current_track: Optional[Track] = None
    queue: List[Track] = []
    participants: List[Participant] = []
    is_playing: bool = False
    current_time: float = 0.0
    auto_selection: bool = False
    history: List[Track] = []  # Superseded current tracks, most recent first
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_idle(self) -> bool:
        return self.current_track is None

    @property
    def playback(self) -> PlaybackState:
        return PlaybackState(is_playing=self.is_playing, current_time=self.current_time)

    def find_participant(self, name: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.name == name), None)

    def clamp_offset(self, offset: float) -> float:
        if self.current_track is None:
            return 0.0
        offset = max(0.0, float(offset or 0))
        duration = self.current_track.duration_seconds
        if duration:
            offset = min(offset, float(duration))
        return offset

    def replace_current(self, track: Optional[Track]):
        """Swap the current track, remembering the old one. Offset goes back to 0."""
        if self.current_track is not None:
            self.history = ([self.current_track] + self.history)[:HISTORY_SIZE]
        self.current_track = track
        self.current_time = 0.0
        if track is None:
            self.is_playing = False


class SearchResult(WireModel):
    youtube_id: str
    title: str
    artist: str
    duration: str = "0:00"
    thumbnail: str = ""

    def to_track(self, requested_by: str) -> TrackCreate:
        return TrackCreate(
            youtube_id=self.youtube_id,
            title=self.title,
            artist=self.artist or "Unknown",
            duration=self.duration if parse_duration(self.duration) is not None else "0:00",
            thumbnail=self.thumbnail,
            requested_by=requested_by,
        )


class RecommendationContext(BaseModel):
    current_track: Optional[Track] = None
    recent_tracks: List[Track] = []
    preferred_genres: List[str] = []
