"""Room store construction for the configured backend"""
import logging

import redis.asyncio as redis

from tunequeue.config import Settings
from tunequeue.services.room import MemoryRoomStore, RedisRoomStore, RoomStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings) -> RoomStore:
    backend = settings.store_backend.lower()
    if backend == "redis":
        logger.info(f"Using Redis room store at {settings.redis_url}")
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        return RedisRoomStore(redis_client, ttl=settings.room_ttl)
    if backend != "memory":
        logger.warning(f"Unknown store backend '{settings.store_backend}', falling back to memory")
    return MemoryRoomStore()
