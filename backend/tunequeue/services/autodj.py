import asyncio
import logging
from typing import List

from tunequeue.errors import NotFoundError
from tunequeue.models.room import RecommendationContext, Room, Track
from tunequeue.services.recommend import RecommendationProvider
from tunequeue.services.room import RoomStore
from tunequeue.services.search import TrackSearchProvider

logger = logging.getLogger(__name__)

AUTO_REQUESTER = "Auto DJ"
LOW_QUEUE_THRESHOLD = 1
# Headroom over the recommender's own timeout
RECOMMEND_GRACE = 5.0


class AutoRecommender:
    """
    Keeps a room's queue topped up with recommended songs.

    The pipeline is: recent listening -> recommendation queries -> first search
    hit per query -> enqueue. A failing query is logged and skipped; nothing here
    raises into the request that triggered it.
    """

    def __init__(
        self,
        store: RoomStore,
        search: TrackSearchProvider,
        recommender: RecommendationProvider,
        count: int = 2,
        history_limit: int = 10,
        timeout: float = 10.0,
    ):
        self.store = store
        self.search = search
        self.recommender = recommender
        self.count = count
        self.history_limit = history_limit
        self.timeout = timeout

    @staticmethod
    def should_trigger(room: Room) -> bool:
        return bool(
            room.auto_selection
            and len(room.queue) <= LOW_QUEUE_THRESHOLD
            and room.current_track is not None
        )

    async def maybe_recommend(self, room_id: str) -> List[Track]:
        try:
            room = await self.store.get_room(room_id)
        except NotFoundError:
            return []
        if not self.should_trigger(room):
            return []
        logger.info(f"Queue running low in room {room_id}, fetching recommendations")
        return await self.recommend(room_id)

    async def build_context(self, room_id: str) -> RecommendationContext:
        recent = await self.store.get_recent_tracks(room_id, self.history_limit)
        room = await self.store.get_room(room_id)
        return RecommendationContext(current_track=room.current_track, recent_tracks=recent)

    async def recommend(self, room_id: str) -> List[Track]:
        """Run the pipeline regardless of queue length. Returns the tracks added."""
        try:
            context = await self.build_context(room_id)
            queries = await asyncio.wait_for(
                self.recommender.recommend(context, self.count),
                timeout=self.timeout + RECOMMEND_GRACE,
            )
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Recommendation request failed for room {room_id}: {e}")
            return []

        added = []
        for query in queries[:self.count]:
            track = await self._resolve_and_enqueue(room_id, query)
            if track:
                added.append(track)
        logger.info(f"Added {len(added)} recommended tracks to room {room_id}")
        return added

    async def _resolve_and_enqueue(self, room_id: str, query: str):
        try:
            results = await asyncio.wait_for(self.search.search(query, 1), timeout=self.timeout)
            if not results:
                logger.warning(f"No search results for recommendation '{query}'")
                return None
            return await self.store.enqueue(room_id, results[0].to_track(AUTO_REQUESTER))
        except Exception as e:
            logger.error(f"Failed to add recommendation '{query}' to room {room_id}: {e}")
            return None
