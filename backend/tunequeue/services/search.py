import asyncio
import html
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx
from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

from tunequeue.config import Settings
from tunequeue.errors import QuotaExceededError, UpstreamError, ValidationError
from tunequeue.models.room import SearchResult, format_duration

logger = logging.getLogger(__name__)

YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"

_ISO_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")
_QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}


class TrackSearchProvider(Protocol):
    async def search(self, query: str, max_results: int = 10) -> List[SearchResult]:
        ...


def iso_duration_to_seconds(duration: str) -> int:
    """'PT1H2M3S' -> 3723. Anything unparseable counts as 0."""
    match = _ISO_DURATION_RE.match(duration or "")
    if not match:
        return 0
    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def _clean_query(query: str) -> str:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Query parameter 'q' is required")
    return query


class YouTubeSearch:
    """Search through the YouTube Data API v3."""

    def __init__(self, api_key: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def search(self, query: str, max_results: int = 10) -> List[SearchResult]:
        query = _clean_query(query)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            data = await self._get(client, YOUTUBE_SEARCH_URL, {
                "part": "snippet",
                "maxResults": max_results,
                "q": query,
                "type": "video",
                "key": self.api_key,
            })
            items = [item for item in data.get("items", []) if item.get("id", {}).get("videoId")]
            if not items:
                return []

            video_ids = [item["id"]["videoId"] for item in items]
            details = await self._get(client, YOUTUBE_VIDEOS_URL, {
                "part": "contentDetails",
                "id": ",".join(video_ids),
                "key": self.api_key,
            })

        durations = {
            video["id"]: video.get("contentDetails", {}).get("duration", "PT0S")
            for video in details.get("items", [])
        }

        results = []
        for item in items:
            video_id = item["id"]["videoId"]
            snippet = item.get("snippet", {})
            thumbnails = snippet.get("thumbnails", {})
            thumbnail = (thumbnails.get("medium") or thumbnails.get("default") or {}).get("url", "")
            results.append(SearchResult(
                youtube_id=video_id,
                title=html.unescape(snippet.get("title", "Unknown Track")),
                artist=html.unescape(snippet.get("channelTitle", "Unknown")),
                duration=format_duration(iso_duration_to_seconds(durations.get(video_id, "PT0S"))),
                thumbnail=thumbnail,
            ))
        return results

    async def _get(self, client: httpx.AsyncClient, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"YouTube request failed: {e}") from e

        if response.status_code == 403 and _is_quota_error(response):
            raise QuotaExceededError("YouTube API quota exceeded")
        if response.status_code != 200:
            raise UpstreamError(f"YouTube API returned HTTP {response.status_code}")
        return response.json()


def _is_quota_error(response: httpx.Response) -> bool:
    try:
        errors = response.json().get("error", {}).get("errors", [])
    except ValueError:
        return False
    return any(err.get("reason") in _QUOTA_REASONS for err in errors)


def _extract_entries(query: str, max_results: int, proxy_url: Optional[str] = None) -> List[Dict[str, Any]]:
    ydl_opts = {
        'quiet': True,
        'no_warnings': True,
        'skip_download': True,
        'extract_flat': 'in_playlist',
        'noplaylist': True,
        'source_address': '0.0.0.0',  # bind to ipv4
    }

    if proxy_url:
        ydl_opts['proxy'] = proxy_url

    with YoutubeDL(ydl_opts) as ydl:
        info = ydl.extract_info(f"ytsearch{max_results}:{query}", download=False)
    return (info or {}).get('entries') or []


def _entry_to_result(entry: Dict[str, Any]) -> Optional[SearchResult]:
    video_id = entry.get('id')
    if not video_id:
        return None
    thumbnail = entry.get('thumbnail')
    if not thumbnail and entry.get('thumbnails'):
        thumbnail = entry['thumbnails'][-1].get('url')
    return SearchResult(
        youtube_id=video_id,
        title=entry.get('title') or 'Unknown Track',
        artist=entry.get('channel') or entry.get('uploader') or entry.get('artist') or 'Unknown',
        duration=format_duration(entry.get('duration')),
        thumbnail=thumbnail or '',
    )


class YtDlpSearch:
    """Search YouTube through yt-dlp. Needs no API key and has no quota."""

    def __init__(self, timeout: float = 20.0, proxy_url: Optional[str] = None):
        self.timeout = timeout
        self.proxy_url = proxy_url

    async def search(self, query: str, max_results: int = 10) -> List[SearchResult]:
        query = _clean_query(query)
        loop = asyncio.get_running_loop()
        try:
            # yt-dlp blocks, so run it in the thread pool
            entries = await asyncio.wait_for(
                loop.run_in_executor(None, _extract_entries, query, max_results, self.proxy_url),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"yt-dlp search timed out for '{query}'") from e
        except DownloadError as e:
            logger.error(f"yt-dlp search error: {e}")
            raise UpstreamError(f"yt-dlp search failed for '{query}'") from e

        results = [_entry_to_result(entry) for entry in entries]
        return [r for r in results if r is not None]


def create_search_provider(settings: Settings) -> TrackSearchProvider:
    backend = settings.search_backend.lower()
    if backend == "youtube" or (backend == "auto" and settings.youtube_api_key):
        if not settings.youtube_api_key:
            logger.warning("SEARCH_BACKEND=youtube but YOUTUBE_API_KEY is not set")
        return YouTubeSearch(settings.youtube_api_key or "", timeout=settings.search_timeout)
    logger.info("Using yt-dlp for track search")
    return YtDlpSearch(timeout=settings.search_timeout * 2, proxy_url=settings.proxy_url)
