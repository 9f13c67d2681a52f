"""
Unit tests for the room store.

Covers room creation, idempotent joins, the auto-start rule on enqueue,
queue edits and the playback-state clamping rules.
"""

import pytest

from conftest import advance_while_enqueueing, assert_invariants, enqueue_concurrently, track_data
from tunequeue.errors import ConflictError, NotFoundError, ValidationError
from tunequeue.models.room import Track, parse_duration


class TestCreateRoom:
    async def test_new_room_is_idle(self, store):
        room = await store.create_room("ABCD", "Test")
        assert room.code == "ABCD"
        assert room.name == "Test"
        assert room.current_track is None
        assert room.queue == []
        assert room.participants == []
        assert room.is_playing is False
        assert room.current_time == 0
        assert room.auto_selection is False

    async def test_duplicate_code_conflicts(self, store, room):
        with pytest.raises(ConflictError):
            await store.create_room("ABCD", "Other")

    async def test_code_is_normalised(self, store):
        room = await store.create_room("  wxyz ", "Lower")
        assert room.code == "WXYZ"
        found = await store.get_room_by_code("wxyz")
        assert found.id == room.id

    async def test_code_generated_when_missing(self, store):
        first = await store.create_room(None, "One")
        second = await store.create_room(None, "Two")
        assert len(first.code) == 6
        assert first.code != second.code

    async def test_blank_name_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.create_room("ZZZZ", "")

    async def test_lookup_unknown_room(self, store):
        with pytest.raises(NotFoundError):
            await store.get_room("missing")
        with pytest.raises(NotFoundError):
            await store.get_room_by_code("NOPE")


class TestParticipants:
    async def test_join_is_idempotent_by_name(self, store, room):
        first = await store.add_participant(room.id, "Alice", "AL")
        second = await store.add_participant(room.id, "Alice", "AL")
        assert first.id == second.id
        snapshot = await store.get_room(room.id)
        assert len(snapshot.participants) == 1

    async def test_participants_keep_join_order(self, store, room):
        await store.add_participant(room.id, "Alice", "AL")
        await store.add_participant(room.id, "Bob", "BO")
        snapshot = await store.get_room(room.id)
        assert [p.name for p in snapshot.participants] == ["Alice", "Bob"]

    async def test_join_missing_room(self, store):
        with pytest.raises(NotFoundError):
            await store.add_participant("missing", "Alice", "AL")

    async def test_remove_participant(self, store, room):
        alice = await store.add_participant(room.id, "Alice", "AL")
        assert await store.remove_participant(room.id, alice.id) is True
        assert await store.remove_participant(room.id, "unknown") is True
        snapshot = await store.get_room(room.id)


class TestEnqueue:
    async def test_first_track_starts_playing(self, store, room):
        await store.add_participant(room.id, "Alice", "AL")
        t1 = await store.enqueue(room.id, track_data("T1"))

        snapshot = await store.get_room(room.id)
        assert snapshot.current_track.id == t1.id
        assert snapshot.queue == []
        assert snapshot.is_playing is True
        assert snapshot.current_time == 0
        assert_invariants(snapshot)

    async def test_tracks_append_in_order_while_playing(self, store, room):
        t1 = await store.enqueue(room.id, track_data("T1"))
        t2 = await store.enqueue(room.id, track_data("T2"))
        t3 = await store.enqueue(room.id, track_data("T3"))

        snapshot = await store.get_room(room.id)
        assert snapshot.current_track.id == t1.id
        assert [t.id for t in snapshot.queue] == [t2.id, t3.id]
        assert_invariants(snapshot)

    async def test_requester_count_increments(self, store, room):
        await store.add_participant(room.id, "Alice", "AL")
        await store.enqueue(room.id, track_data("T1", requested_by="Alice"))
        await store.enqueue(room.id, track_data("T2", requested_by="Alice"))
        await store.enqueue(room.id, track_data("T3", requested_by="Nobody"))

        snapshot = await store.get_room(room.id)
        assert snapshot.participants[0].songs_added == 2

    async def test_idle_room_with_queue_appends(self, store, room):
        t1 = await store.enqueue(room.id, track_data("T1"))
        t2 = await store.enqueue(room.id, track_data("T2"))
        await store.set_current_track(room.id, None)

        t3 = await store.enqueue(room.id, track_data("T3"))
        snapshot = await store.get_room(room.id)
        assert snapshot.current_track is None
        assert [t.id for t in snapshot.queue] == [t2.id, t3.id]
        assert t1.id not in [t.id for t in snapshot.queue]
        assert_invariants(snapshot)

    async def test_missing_fields_rejected_without_mutation(self, store, room):
        bad = track_data("T1")
        del bad["title"]
        with pytest.raises(ValidationError):
            await store.enqueue(room.id, bad)
        snapshot = await store.get_room(room.id)
        assert snapshot.current_track is None
        assert snapshot.queue == []

    async def test_bad_duration_rejected(self, store, room):
        with pytest.raises(ValidationError):
            await store.enqueue(room.id, track_data("T1", duration="three minutes"))

    async def test_enqueue_missing_room(self, store):
        with pytest.raises(NotFoundError):
            await store.enqueue("missing", track_data("T1"))

    async def test_tracks_are_immutable(self, store, room):
        track = await store.enqueue(room.id, track_data("T1"))
        with pytest.raises(Exception):
            track.title = "changed"


class TestQueueEdits:
    async def test_remove_from_queue(self, store, room):
        await store.enqueue(room.id, track_data("T1"))
        t2 = await store.enqueue(room.id, track_data("T2"))
        t3 = await store.enqueue(room.id, track_data("T3"))

        assert await store.remove_from_queue(room.id, t2.id) is True
        snapshot = await store.get_room(room.id)
        assert [t.id for t in snapshot.queue] == [t3.id]

    async def test_remove_unknown_track_succeeds(self, store, room):
        assert await store.remove_from_queue(room.id, "not-there") is True

    async def test_remove_from_missing_room(self, store):
        with pytest.raises(NotFoundError):
            await store.remove_from_queue("missing", "x")

    async def test_clear_keeps_current_track(self, store, room):
        t1 = await store.enqueue(room.id, track_data("T1"))
        await store.enqueue(room.id, track_data("T2"))
        assert await store.clear_queue(room.id) is True

        snapshot = await store.get_room(room.id)
        assert snapshot.queue == []
        assert snapshot.current_track.id == t1.id


class TestPlaybackState:
    async def test_update_sets_both_fields(self, store, room):
        await store.enqueue(room.id, track_data("T1"))
        await store.update_playback_state(room.id, False, 42.5)
        snapshot = await store.get_room(room.id)
        assert snapshot.is_playing is False
        assert snapshot.current_time == 42.5

    async def test_offset_clamped_to_duration(self, store, room):
        await store.enqueue(room.id, track_data("T1", duration="3:30"))
        await store.update_playback_state(room.id, True, 999)
        snapshot = await store.get_room(room.id)
        assert snapshot.current_time == 210

    async def test_negative_offset_clamped(self, store, room):
        await store.enqueue(room.id, track_data("T1"))
        await store.update_playback_state(room.id, True, -5)
        snapshot = await store.get_room(room.id)
        assert snapshot.current_time == 0

    async def test_idle_room_stays_stopped(self, store, room):
        await store.update_playback_state(room.id, True, 30)
        snapshot = await store.get_room(room.id)
        assert snapshot.is_playing is False
        assert snapshot.current_time == 0

    async def test_non_numeric_offset_rejected(self, store, room):
        with pytest.raises(ValidationError):
            await store.update_playback_state(room.id, True, "soon")

    async def test_set_current_track_resets_offset_only(self, store, room):
        await store.enqueue(room.id, track_data("T1"))
        await store.update_playback_state(room.id, False, 60)
        replacement = Track(**track_data("T9"))
        await store.set_current_track(room.id, replacement)

        snapshot = await store.get_room(room.id)
        assert snapshot.current_track.id == replacement.id
        assert snapshot.current_time == 0
        assert snapshot.is_playing is False

    async def test_set_current_track_none_goes_idle(self, store, room):
        await store.enqueue(room.id, track_data("T1"))
        await store.set_current_track(room.id, None)
        snapshot = await store.get_room(room.id)
        assert_invariants(snapshot)

    async def test_toggle_returns_new_value(self, store, room):
        assert await store.toggle_auto_selection(room.id) is True
        assert await store.toggle_auto_selection(room.id) is False

    async def test_recent_tracks_most_recent_first(self, store, room):
        t1 = await store.enqueue(room.id, track_data("T1"))
        t2 = Track(**track_data("T2"))
        t3 = Track(**track_data("T3"))
        await store.set_current_track(room.id, t2)
        await store.set_current_track(room.id, t3)

        recent = await store.get_recent_tracks(room.id, 10)
        assert [t.id for t in recent] == [t3.id, t2.id, t1.id]
        assert len(await store.get_recent_tracks(room.id, 2)) == 2
        assert await store.get_recent_tracks(room.id, 0) == []


class TestSnapshots:
    async def test_reads_are_copies(self, store, room):
        snapshot = await store.get_room(room.id)
        snapshot.queue.append(Track(**track_data("Sneaky")))
        assert (await store.get_room(room.id)).queue == []

    async def test_failed_transaction_is_not_saved(self, store, room):
        with pytest.raises(RuntimeError):
            async with store.transaction(room.id) as draft:
                draft.auto_selection = True
                raise RuntimeError("abort")
        assert (await store.get_room(room.id)).auto_selection is False


class TestConcurrency:
    async def test_concurrent_enqueues_are_all_kept(self, store, room):
        snapshot = await enqueue_concurrently(store, room.id)
        assert snapshot.is_playing is True

    async def test_advance_alongside_enqueue(self, store, room):
        await advance_while_enqueueing(store, room.id)

    async def test_unknown_rooms_leave_no_locks(self, store, room):
        for i in range(50):
            with pytest.raises(NotFoundError):
                await store.update_playback_state(f"missing-{i}", True, 1)
        assert store._locks == {}

        await store.enqueue(room.id, track_data("T1"))
        assert list(store._locks) == [room.id]


def test_parse_duration():
    assert parse_duration("3:45") == 225
    assert parse_duration("1:02:03") == 3723
    assert parse_duration("0:00") == 0
    assert parse_duration("abc") is None
