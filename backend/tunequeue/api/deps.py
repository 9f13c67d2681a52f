"""Request dependencies: the services built once in create_app()."""
from fastapi import Request

from tunequeue.services.autodj import AutoRecommender
from tunequeue.services.fanout import RoomHub
from tunequeue.services.playback import PlaybackController
from tunequeue.services.room import RoomStore
from tunequeue.services.search import TrackSearchProvider


def get_store(request: Request) -> RoomStore:
    return request.app.state.store


def get_hub(request: Request) -> RoomHub:
    return request.app.state.hub


def get_playback(request: Request) -> PlaybackController:
    return request.app.state.playback


def get_autodj(request: Request) -> AutoRecommender:
    return request.app.state.autodj


def get_search(request: Request) -> TrackSearchProvider:
    return request.app.state.search
