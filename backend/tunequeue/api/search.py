"""Track search endpoint"""
from typing import List

from fastapi import APIRouter, Depends, Query

from tunequeue.api.deps import get_search
from tunequeue.models.room import SearchResult
from tunequeue.services.search import TrackSearchProvider

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search", response_model=List[SearchResult])
async def search_tracks(
    q: str = Query(..., description="Search query"),
    max_results: int = Query(10, alias="maxResults", ge=1, le=50),
    search: TrackSearchProvider = Depends(get_search),
):
    """Search for videos to add. 429 when the provider's quota is used up."""
    return await search.search(q, max_results)
