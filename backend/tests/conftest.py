import asyncio

import pytest

from tunequeue.errors import UpstreamError
from tunequeue.models.room import SearchResult
from tunequeue.services.playback import PlaybackController
from tunequeue.services.room import MemoryRoomStore


def track_data(title="Song", requested_by="Alice", duration="3:30", youtube_id=None) -> dict:
    return {
        "youtubeId": youtube_id or f"yt-{title}",
        "title": title,
        "artist": "Some Artist",
        "duration": duration,
        "thumbnail": f"https://img.example/{title}.jpg",
        "requestedBy": requested_by,
    }


def assert_invariants(room):
    if room.current_track is None:
        assert room.is_playing is False
        assert room.current_time == 0
    assert room.current_time >= 0
    ids = [t.id for t in room.queue]
    assert len(ids) == len(set(ids))
    if room.current_track is not None:
        assert room.current_track.id not in ids
        duration = room.current_track.duration_seconds
        if duration:
            assert room.current_time <= duration


async def enqueue_concurrently(store, room_id, count=20):
    """Enqueue `count` tracks at once and check none of the writes got lost."""
    added = await asyncio.gather(
        *(store.enqueue(room_id, track_data(f"T{i}")) for i in range(count))
    )
    snapshot = await store.get_room(room_id)
    assert_invariants(snapshot)
    assert snapshot.current_track is not None
    assert len(snapshot.queue) == count - 1
    stored = {snapshot.current_track.id} | {t.id for t in snapshot.queue}
    assert stored == {t.id for t in added}
    return snapshot


async def advance_while_enqueueing(store, room_id):
    """Interleave skips, adds and reads on one room; every read must be consistent."""
    playback = PlaybackController(store)
    tracks = [await store.enqueue(room_id, track_data(f"T{i}")) for i in range(3)]

    async def read():
        snapshot = await store.get_room(room_id)
        assert_invariants(snapshot)
        return snapshot

    results = await asyncio.gather(
        playback.advance(room_id),
        store.enqueue(room_id, track_data("T3")),
        read(),
        playback.advance(room_id),
        store.enqueue(room_id, track_data("T4")),
        read(),
        playback.advance(room_id),
        read(),
    )
    tracks += [results[1], results[4]]

    snapshot = await read()
    seen = ([snapshot.current_track.id] if snapshot.current_track else []) + [t.id for t in snapshot.queue]
    assert len(seen) == len(set(seen))
    # Each track is exactly once in current, queue or history
    everywhere = seen + [t.id for t in snapshot.history]
    assert sorted(everywhere) == sorted(t.id for t in tracks)
    return snapshot


class FakeSearch:
    def __init__(self, fail_on=(), empty_on=()):
        self.queries = []
        self.fail_on = set(fail_on)
        self.empty_on = set(empty_on)

    async def search(self, query, max_results=10):
        self.queries.append(query)
        if query in self.fail_on:
            raise UpstreamError(f"search failed for {query}")
        if query in self.empty_on:
            return []
        return [
            SearchResult(
                youtube_id=f"yt-{query}-{i}",
                title=f"{query} #{i}",
                artist="Channel",
                duration="4:00",
                thumbnail="",
            )
            for i in range(max_results)
        ]


class FakeRecommender:
    def __init__(self, queries=("song a - artist a", "song b - artist b")):
        self.queries = list(queries)
        self.contexts = []

    async def recommend(self, context, max_results=3):
        self.contexts.append(context)
        return self.queries[:max_results]


class Recorder:
    """Stands in for the socket send function."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    async def __call__(self, sid, event, data):
        if sid in self.fail_for:
            raise ConnectionError(f"{sid} is gone")
        self.sent.append((sid, event, data))

    def events_for(self, sid):
        return [(event, data) for s, event, data in self.sent if s == sid]


@pytest.fixture
def store():
    return MemoryRoomStore()


@pytest.fixture
async def room(store):
    return await store.create_room("ABCD", "Test")
