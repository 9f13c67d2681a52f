"""Socket messages in both directions, as closed tagged unions."""
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from tunequeue.models.room import PlaybackState, Room, WireModel


class EventKind(str, Enum):
    ROOM_STATE = "room_state"
    QUEUE_UPDATED = "queue_updated"
    PARTICIPANTS_UPDATED = "participants_updated"
    TRACK_CHANGED = "track_changed"
    PLAYBACK_STATE_CHANGED = "playback_state_changed"
    AUTO_SELECTION_TOGGLED = "auto_selection_toggled"


# Client -> server

class JoinRoomMessage(WireModel):
    type: Literal["join_room"] = "join_room"
    room_id: str = Field(min_length=1)


class LeaveRoomMessage(WireModel):
    type: Literal["leave_room"] = "leave_room"


ClientMessage = Annotated[
    Union[JoinRoomMessage, LeaveRoomMessage],
    Field(discriminator="type"),
]
client_message_adapter = TypeAdapter(ClientMessage)


# Server -> client

class RoomStateMessage(WireModel):
    type: Literal["room_state"] = "room_state"
    data: Room


class QueueUpdatedMessage(WireModel):
    type: Literal["queue_updated"] = "queue_updated"
    data: Room


class ParticipantsUpdatedMessage(WireModel):
    type: Literal["participants_updated"] = "participants_updated"
    data: Room


class TrackChangedMessage(WireModel):
    type: Literal["track_changed"] = "track_changed"
    data: Room


class PlaybackStateChangedMessage(WireModel):
    type: Literal["playback_state_changed"] = "playback_state_changed"
    data: PlaybackState


class AutoSelectionToggledMessage(WireModel):
    type: Literal["auto_selection_toggled"] = "auto_selection_toggled"
    data: Room


ServerMessage = Annotated[
    Union[
        RoomStateMessage,
        QueueUpdatedMessage,
        ParticipantsUpdatedMessage,
        TrackChangedMessage,
        PlaybackStateChangedMessage,
        AutoSelectionToggledMessage,
    ],
    Field(discriminator="type"),
]
server_message_adapter = TypeAdapter(ServerMessage)

MESSAGE_TYPES = {
    EventKind.ROOM_STATE: RoomStateMessage,
    EventKind.QUEUE_UPDATED: QueueUpdatedMessage,
    EventKind.PARTICIPANTS_UPDATED: ParticipantsUpdatedMessage,
    EventKind.TRACK_CHANGED: TrackChangedMessage,
    EventKind.PLAYBACK_STATE_CHANGED: PlaybackStateChangedMessage,
    EventKind.AUTO_SELECTION_TOGGLED: AutoSelectionToggledMessage,
}


def build_message(kind: EventKind, payload):
    return MESSAGE_TYPES[EventKind(kind)](data=payload)
