"""Room API endpoints"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from tunequeue.api.deps import get_autodj, get_hub, get_playback, get_store
from tunequeue.models.messages import EventKind
from tunequeue.models.room import (
    Participant,
    ParticipantCreate,
    Room,
    RoomCreate,
    Track,
    TrackCreate,
    WireModel,
)
from tunequeue.services.autodj import AutoRecommender
from tunequeue.services.fanout import RoomHub
from tunequeue.services.playback import PlaybackController
from tunequeue.services.room import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


class PlaybackRequest(WireModel):
    current_time: float = 0


@router.post("", response_model=Room)
async def create_room(body: RoomCreate, store: RoomStore = Depends(get_store)):
    """Create a room. A join code is generated when none is given."""
    return await store.create_room(body.code, body.name)


@router.get("/code/{code}", response_model=Room)
async def get_room_by_code(code: str, store: RoomStore = Depends(get_store)):
    return await store.get_room_by_code(code)


@router.get("/{room_id}", response_model=Room)
async def get_room(room_id: str, store: RoomStore = Depends(get_store)):
    return await store.get_room(room_id)


# Participants

@router.post("/{room_id}/participants", response_model=Participant)
async def add_participant(
    room_id: str,
    body: ParticipantCreate,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    """Join a room. Joining again with the same name returns the same participant."""
    participant = await store.add_participant(room_id, body.name, body.initials)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.PARTICIPANTS_UPDATED, room)
    return participant


@router.delete("/{room_id}/participants/{participant_id}")
async def remove_participant(
    room_id: str,
    participant_id: str,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    await store.remove_participant(room_id, participant_id)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.PARTICIPANTS_UPDATED, room)
    return {"success": True}


# Queue

@router.post("/{room_id}/queue", response_model=Track)
async def add_to_queue(
    room_id: str,
    body: TrackCreate,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    """Add a song. In an idle room it starts playing immediately."""
    track = await store.enqueue(room_id, body)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.QUEUE_UPDATED, room)
    return track


@router.delete("/{room_id}/queue/{track_id}")
async def remove_from_queue(
    room_id: str,
    track_id: str,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    await store.remove_from_queue(room_id, track_id)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.QUEUE_UPDATED, room)
    return {"success": True}


@router.delete("/{room_id}/queue")
async def clear_queue(
    room_id: str,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    await store.clear_queue(room_id)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.QUEUE_UPDATED, room)
    return {"success": True}


# Playback

@router.post("/{room_id}/play")
async def play(
    room_id: str,
    body: Optional[PlaybackRequest] = None,
    playback: PlaybackController = Depends(get_playback),
    hub: RoomHub = Depends(get_hub),
):
    room = await playback.play(room_id, body.current_time if body else 0)
    await hub.publish(room_id, EventKind.PLAYBACK_STATE_CHANGED, room.playback)
    return {"success": True}


@router.post("/{room_id}/pause")
async def pause(
    room_id: str,
    body: Optional[PlaybackRequest] = None,
    playback: PlaybackController = Depends(get_playback),
    hub: RoomHub = Depends(get_hub),
):
    room = await playback.pause(room_id, body.current_time if body else 0)
    await hub.publish(room_id, EventKind.PLAYBACK_STATE_CHANGED, room.playback)
    return {"success": True}


@router.post("/{room_id}/sync")
async def sync(
    room_id: str,
    body: Optional[PlaybackRequest] = None,
    playback: PlaybackController = Depends(get_playback),
):
    """Periodic position report. Not broadcast."""
    await playback.sync(room_id, body.current_time if body else 0)
    return {"success": True}


async def _top_up_queue(room_id: str, autodj: AutoRecommender, hub: RoomHub):
    added = await autodj.maybe_recommend(room_id)
    if added:
        room = await autodj.store.get_room(room_id)
        await hub.publish(room_id, EventKind.QUEUE_UPDATED, room)


@router.post("/{room_id}/next")
async def next_track(
    room_id: str,
    background_tasks: BackgroundTasks,
    playback: PlaybackController = Depends(get_playback),
    hub: RoomHub = Depends(get_hub),
    autodj: AutoRecommender = Depends(get_autodj),
):
    """Skip to the next song, or go idle when the queue is empty."""
    room = await playback.advance(room_id)
    await hub.publish(room_id, EventKind.TRACK_CHANGED, room)
    # Recommendations run after the response has been sent
    background_tasks.add_task(_top_up_queue, room_id, autodj, hub)
    return {"success": True, "currentTrack": room.current_track}


@router.post("/{room_id}/previous")
async def previous_track(
    room_id: str,
    playback: PlaybackController = Depends(get_playback),
    hub: RoomHub = Depends(get_hub),
):
    """Restart the current song from the beginning."""
    room = await playback.restart(room_id)
    await hub.publish(room_id, EventKind.PLAYBACK_STATE_CHANGED, room.playback)
    return {"success": True}


# Auto selection

@router.post("/{room_id}/toggle-auto-selection")
async def toggle_auto_selection(
    room_id: str,
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    enabled = await store.toggle_auto_selection(room_id)
    room = await store.get_room(room_id)
    await hub.publish(room_id, EventKind.AUTO_SELECTION_TOGGLED, room)
    return {"success": True, "autoSelection": enabled}


@router.post("/{room_id}/ai-recommend")
async def ai_recommend(
    room_id: str,
    autodj: AutoRecommender = Depends(get_autodj),
    store: RoomStore = Depends(get_store),
    hub: RoomHub = Depends(get_hub),
):
    """Add recommended songs now, whatever the queue length."""
    added = await autodj.recommend(room_id)
    if added:
        room = await store.get_room(room_id)
        await hub.publish(room_id, EventKind.QUEUE_UPDATED, room)
    return {"success": True, "added": len(added)}
