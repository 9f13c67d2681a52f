"""Socket.IO events. Clients only join and leave; everything else comes from the server."""
import logging

import socketio
from pydantic import ValidationError as PydanticValidationError

from tunequeue.models.messages import JoinRoomMessage, LeaveRoomMessage, client_message_adapter
from tunequeue.services.fanout import RoomHub

logger = logging.getLogger(__name__)


async def handle_client_message(hub: RoomHub, sid: str, data):
    try:
        message = client_message_adapter.validate_python(data)
    except PydanticValidationError as e:
        # Never answer with an error; the client just doesn't get a snapshot
        logger.warning(f"Ignoring malformed message from {sid}: {e.error_count()} errors")
        return

    if isinstance(message, JoinRoomMessage):
        await hub.subscribe(message.room_id, sid)
    elif isinstance(message, LeaveRoomMessage):
        hub.unsubscribe(sid)


def register_socket_handlers(sio: socketio.AsyncServer, hub: RoomHub):
    async def connect(sid, environ, auth=None):
        logger.info(f"Client {sid} connected")

    async def disconnect(sid, *args):
        logger.info(f"Client {sid} disconnected")
        hub.unsubscribe(sid)

    async def join_room(sid, data=None):
        payload = dict(data) if isinstance(data, dict) else {}
        payload["type"] = "join_room"
        await handle_client_message(hub, sid, payload)

    async def leave_room(sid, data=None):
        await handle_client_message(hub, sid, {"type": "leave_room"})

    async def message(sid, data=None):
        await handle_client_message(hub, sid, data)

    sio.on("connect", connect)
    sio.on("disconnect", disconnect)
    sio.on("join_room", join_room)
    sio.on("leave_room", leave_room)
    sio.on("message", message)
