"""Song recommendations from a generative-text model, as search queries."""
import asyncio
import logging
import re
from typing import List, Optional, Protocol

import httpx

from tunequeue.config import Settings
from tunequeue.models.room import RecommendationContext

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

FALLBACK_QUERIES = [
    "popular korean music 2024",
    "trending pop songs",
    "chill music playlist",
]

_NUMBERING_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


class RecommendationProvider(Protocol):
    async def recommend(self, context: RecommendationContext, max_results: int = 3) -> List[str]:
        ...


def fallback_queries(max_results: int) -> List[str]:
    return FALLBACK_QUERIES[:max_results]


def build_prompt(context: RecommendationContext, max_results: int) -> str:
    parts = [
        "You are a music recommendation expert. Based on what this group is "
        "listening to, recommend songs in a similar genre or style.",
        "",
    ]

    if context.current_track:
        track = context.current_track
        parts.append(f'Now playing: "{track.title}" by {track.artist}')

    if context.recent_tracks:
        parts.append("Recently played:")
        for index, track in enumerate(context.recent_tracks[:5], start=1):
            parts.append(f'{index}. "{track.title}" by {track.artist}')

    if context.preferred_genres:
        parts.append(f"Preferred genres: {', '.join(context.preferred_genres)}")

    parts.append("")
    parts.append(f"Recommend {max_results} songs. Answer with one song per line, formatted as:")
    parts.append('"Song title" - Artist')
    parts.append("Only recommend songs that actually exist. Korean and English songs are both fine.")
    return "\n".join(parts)


def parse_recommendations(text: str, max_results: int) -> List[str]:
    """Turn the model's answer into search queries, one per song line."""
    queries = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line or ("-" not in line and " by " not in line):
            continue
        cleaned = _NUMBERING_RE.sub("", line).replace('"', "").replace("'", "").strip()
        if cleaned:
            queries.append(cleaned)
    return queries[:max_results]


class GeminiRecommender:
    """
    Asks Gemini for songs. Never raises: without an API key, or on any failure,
    it answers with FALLBACK_QUERIES instead.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.transport = transport

    async def recommend(self, context: RecommendationContext, max_results: int = 3) -> List[str]:
        if not self.api_key:
            logger.info("No Gemini API key configured, using fallback recommendations")
            return fallback_queries(max_results)

        try:
            text = await asyncio.wait_for(
                self._generate(build_prompt(context, max_results)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"AI recommendation timed out after {self.timeout}s")
            return fallback_queries(max_results)
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.error(f"AI recommendation error: {e}")
            return fallback_queries(max_results)

        queries = parse_recommendations(text, max_results)
        if not queries:
            logger.warning("AI recommendation response had no usable lines")
            return fallback_queries(max_results)
        return queries

    async def _generate(self, prompt: str) -> str:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )
            response.raise_for_status()
            data = response.json()
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)


def create_recommender(settings: Settings) -> RecommendationProvider:
    return GeminiRecommender(
        settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.recommend_timeout,
    )
