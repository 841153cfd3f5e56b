"""Tests for the playback queue."""

from unittest.mock import MagicMock

import pytest

from tunebase.library.types import Track
from tunebase.playback.queue import (
    InvalidQueueIndexError,
    PlaybackQueue,
    QueueState,
)


def make_tracks(count: int) -> list[Track]:
    return [
        Track(id=f"s{i}", title=f"Song {i}", file_url=f"https://cdn.test/s{i}.mp3")
        for i in range(1, count + 1)
    ]


@pytest.fixture
def queue() -> PlaybackQueue:
    """Create a fresh queue."""
    return PlaybackQueue()


@pytest.fixture
def tracks() -> list[Track]:
    return make_tracks(3)


class TestInitialState:
    """Tests for an empty queue."""

    def test_empty(self, queue: PlaybackQueue) -> None:
        assert queue.tracks == ()
        assert queue.current_index is None
        assert queue.current_track is None
        assert queue.is_playing is False
        assert queue.is_empty is True

    def test_toggle_without_track_is_noop(self, queue: PlaybackQueue) -> None:
        """Toggle with no current track leaves is_playing unchanged."""
        listener = MagicMock()
        queue.add_listener(listener)

        queue.toggle_play_pause()

        assert queue.is_playing is False
        listener.assert_not_called()

    def test_next_previous_on_empty_are_noops(self, queue: PlaybackQueue) -> None:
        queue.next()
        queue.previous()
        assert queue.current_index is None
        assert queue.is_playing is False


class TestPlayAt:
    """Tests for play_at."""

    def test_scenario_play_then_wrap(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        """play_at(1) selects S2; two next() calls reach S3 then wrap to S1."""
        s1, s2, s3 = tracks

        queue.play_at(tracks, 1)
        assert queue.current_track == s2
        assert queue.is_playing is True

        queue.next()
        assert queue.current_track == s3

        queue.next()
        assert queue.current_track == s1

    def test_replaces_tracks(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        queue.play_at(tracks, 0)
        other = make_tracks(5)
        queue.play_at(other, 4)

        assert queue.tracks == tuple(other)
        assert queue.current_index == 4

    def test_copies_input(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        """Mutating the caller's list does not change the queue."""
        queue.play_at(tracks, 0)
        tracks.clear()
        assert len(queue.tracks) == 3

    @pytest.mark.parametrize("index", [-1, 3, 10])
    def test_out_of_range_rejected(
        self, queue: PlaybackQueue, tracks: list[Track], index: int
    ) -> None:
        """Invalid index raises and leaves state untouched."""
        queue.play_at(tracks, 0)
        queue.toggle_play_pause()
        before = queue.get_state()

        with pytest.raises(InvalidQueueIndexError):
            queue.play_at(tracks, index)

        assert queue.get_state() == before

    def test_empty_list_rejected(self, queue: PlaybackQueue) -> None:
        with pytest.raises(InvalidQueueIndexError):
            queue.play_at([], 0)
        assert queue.current_track is None

    def test_invalid_index_is_value_error(self, queue: PlaybackQueue) -> None:
        with pytest.raises(ValueError):
            queue.play_at(make_tracks(1), 1)


class TestNavigation:
    """Tests for next/previous."""

    @pytest.mark.parametrize("length", [1, 2, 3, 7])
    def test_next_cycles_back_to_start(self, queue: PlaybackQueue, length: int) -> None:
        """Exactly len(queue) next() calls return to every start index."""
        tracks = make_tracks(length)
        for start in range(length):
            queue.play_at(tracks, start)
            seen = []
            for _ in range(length):
                queue.next()
                seen.append(queue.current_index)
            assert queue.current_index == start
            assert sorted(seen) == list(range(length))

    @pytest.mark.parametrize("length", [1, 2, 5])
    def test_next_then_previous_returns(self, queue: PlaybackQueue, length: int) -> None:
        tracks = make_tracks(length)
        for start in range(length):
            queue.play_at(tracks, start)
            queue.next()
            queue.previous()
            assert queue.current_index == start

            queue.previous()
            queue.next()
            assert queue.current_index == start

    def test_previous_wraps_to_last(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        queue.play_at(tracks, 0)
        queue.previous()
        assert queue.current_index == 2

    def test_navigation_resumes_playback(
        self, queue: PlaybackQueue, tracks: list[Track]
    ) -> None:
        queue.play_at(tracks, 0)
        queue.toggle_play_pause()
        assert queue.is_playing is False

        queue.next()
        assert queue.is_playing is True

        queue.toggle_play_pause()
        queue.previous()
        assert queue.is_playing is True


class TestPlayFlag:
    """Tests for toggle_play_pause and set_is_playing."""

    def test_toggle(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        queue.play_at(tracks, 0)
        queue.toggle_play_pause()
        assert queue.is_playing is False
        queue.toggle_play_pause()
        assert queue.is_playing is True

    def test_set_is_playing_notifies_only_on_change(
        self, queue: PlaybackQueue, tracks: list[Track]
    ) -> None:
        queue.play_at(tracks, 0)
        listener = MagicMock()
        queue.add_listener(listener)

        queue.set_is_playing(True)
        listener.assert_not_called()

        queue.set_is_playing(False)
        listener.assert_called_once()
        assert queue.is_playing is False


class TestClear:
    def test_clear(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        queue.play_at(tracks, 1)
        queue.clear()
        assert queue.is_empty
        assert queue.current_index is None
        assert queue.is_playing is False


class TestListeners:
    """Tests for state listeners."""

    def test_listener_receives_state(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        states: list[QueueState] = []
        queue.add_listener(states.append)

        queue.play_at(tracks, 2)

        assert len(states) == 1
        assert states[0].current_index == 2
        assert states[0].current_track == tracks[2]
        assert states[0].is_playing is True

    def test_remove_listener(self, queue: PlaybackQueue, tracks: list[Track]) -> None:
        listener = MagicMock()
        queue.add_listener(listener)
        queue.remove_listener(listener)
        queue.remove_listener(listener)  # unknown is fine

        queue.play_at(tracks, 0)
        listener.assert_not_called()

    def test_failing_listener_does_not_block_others(
        self, queue: PlaybackQueue, tracks: list[Track]
    ) -> None:
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        queue.add_listener(broken)
        queue.add_listener(healthy)

        queue.play_at(tracks, 0)

        healthy.assert_called_once()
        assert queue.current_index == 0
