"""Tests for optimistic playlist editing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from tunebase.backend.exceptions import BackendError
from tunebase.library.editor import (
    REMOVE_FAILED_MESSAGE,
    REMOVE_SUCCEEDED_MESSAGE,
    REORDER_FAILED_MESSAGE,
    MutationInProgressError,
    MutationState,
    PlaylistEditor,
    move_item,
)
from tunebase.library.types import Track
from tunebase.realtime.subscription import ChangeSubscription, Invalidation

A = Track(id="a", title="A", file_url="https://cdn.test/a.mp3", position=0)
B = Track(id="b", title="B", file_url="https://cdn.test/b.mp3", position=1)
C = Track(id="c", title="C", file_url="https://cdn.test/c.mp3", position=2)


def ids(entries: tuple[Track, ...]) -> list[str]:
    return [e.id for e in entries]


@pytest.fixture
def repository() -> MagicMock:
    repo = MagicMock()
    repo.fetch_entries = AsyncMock(return_value=[A, B, C])
    repo.reorder_entry = AsyncMock()
    repo.remove_entry = AsyncMock()
    return repo


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest_asyncio.fixture
async def editor(repository: MagicMock, notifier: MagicMock) -> PlaylistEditor:
    ed = PlaylistEditor("p1", repository, notifier)
    await ed.load()
    return ed


class TestMoveItem:
    def test_move_forward(self) -> None:
        assert ids(move_item((A, B, C), 0, 2)) == ["b", "c", "a"]

    def test_move_backward(self) -> None:
        assert ids(move_item((A, B, C), 2, 0)) == ["c", "a", "b"]

    def test_input_untouched(self) -> None:
        items = (A, B, C)
        move_item(items, 0, 1)
        assert items == (A, B, C)


class TestLoad:
    """Tests for loading entries."""

    @pytest.mark.asyncio
    async def test_load(self, editor: PlaylistEditor) -> None:
        assert ids(editor.entries) == ["a", "b", "c"]
        assert editor.loaded is True
        assert editor.error is None

    @pytest.mark.asyncio
    async def test_load_failure_keeps_entries(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        repository.fetch_entries.side_effect = BackendError("timeout", status=0)

        assert await editor.load() is False

        assert ids(editor.entries) == ["a", "b", "c"]
        assert editor.error == "timeout"

    @pytest.mark.asyncio
    async def test_on_change_called(self, repository: MagicMock) -> None:
        ed = PlaylistEditor("p1", repository)
        seen: list[tuple[Track, ...]] = []
        ed.on_change(seen.append)

        await ed.load()

        assert seen == [(A, B, C)]


class TestReorder:
    """Tests for optimistic reorder."""

    @pytest.mark.asyncio
    async def test_local_order_before_remote_resolves(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        """Moving A to index 2 shows [B, C, A] while the call is outstanding."""
        release = asyncio.Event()

        async def slow_reorder(*args: object) -> None:
            await release.wait()

        repository.reorder_entry.side_effect = slow_reorder

        task = asyncio.create_task(editor.reorder("a", 0, 2))
        await asyncio.sleep(0)

        assert ids(editor.entries) == ["b", "c", "a"]
        assert editor.state is MutationState.APPLIED
        assert editor.is_busy is True

        release.set()
        assert await task is True
        assert ids(editor.entries) == ["b", "c", "a"]
        assert editor.state is MutationState.IDLE
        assert editor.last_outcome is MutationState.CONFIRMED

    @pytest.mark.asyncio
    async def test_remote_call_carries_original_positions(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        await editor.reorder("a", 0, 2)
        repository.reorder_entry.assert_awaited_once_with("p1", "a", 0, 2)

    @pytest.mark.asyncio
    async def test_failure_restores_original_order(
        self, editor: PlaylistEditor, repository: MagicMock, notifier: MagicMock
    ) -> None:
        repository.reorder_entry.side_effect = BackendError("edge function failed", 500)

        assert await editor.reorder("a", 0, 2) is False

        assert ids(editor.entries) == ["a", "b", "c"]
        assert editor.last_outcome is MutationState.REVERTED
        assert editor.is_busy is False
        notifier.error.assert_called_once_with(REORDER_FAILED_MESSAGE)

    @pytest.mark.asyncio
    async def test_same_index_is_noop(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        assert await editor.reorder("b", 1, 1) is True
        repository.reorder_entry.assert_not_called()

    @pytest.mark.asyncio
    async def test_out_of_range(self, editor: PlaylistEditor) -> None:
        with pytest.raises(ValueError):
            await editor.reorder("a", 0, 3)
        assert editor.is_busy is False

    @pytest.mark.asyncio
    async def test_wrong_song_at_index(self, editor: PlaylistEditor) -> None:
        with pytest.raises(ValueError):
            await editor.reorder("b", 0, 2)

    @pytest.mark.asyncio
    async def test_move_by_ids(self, editor: PlaylistEditor, repository: MagicMock) -> None:
        assert await editor.move("c", "a") is True
        assert ids(editor.entries) == ["c", "a", "b"]
        repository.reorder_entry.assert_awaited_once_with("p1", "c", 2, 0)

    @pytest.mark.asyncio
    async def test_cancelled_call_restores_snapshot(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        async def hang(*args: object) -> None:
            await asyncio.Event().wait()

        repository.reorder_entry.side_effect = hang

        task = asyncio.create_task(editor.reorder("a", 0, 2))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert ids(editor.entries) == ["a", "b", "c"]
        assert editor.is_busy is False


class TestRemove:
    """Tests for optimistic remove."""

    @pytest.mark.asyncio
    async def test_local_removal_before_remote_resolves(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        release = asyncio.Event()

        async def slow_remove(*args: object) -> None:
            await release.wait()

        repository.remove_entry.side_effect = slow_remove
        repository.fetch_entries.return_value = [A, C.with_position(1)]

        task = asyncio.create_task(editor.remove("b"))
        await asyncio.sleep(0)
        assert ids(editor.entries) == ["a", "c"]

        release.set()
        assert await task is True
        assert ids(editor.entries) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_success_notifies_and_refetches(
        self, editor: PlaylistEditor, repository: MagicMock, notifier: MagicMock
    ) -> None:
        repository.fetch_entries.return_value = [A, C.with_position(1)]

        await editor.remove("b")

        repository.remove_entry.assert_awaited_once_with("p1", "b")
        notifier.success.assert_called_once_with(REMOVE_SUCCEEDED_MESSAGE)
        assert repository.fetch_entries.await_count == 2
        assert editor.entries[1].position == 1

    @pytest.mark.asyncio
    async def test_failure_reverts(
        self, editor: PlaylistEditor, repository: MagicMock, notifier: MagicMock
    ) -> None:
        repository.remove_entry.side_effect = BackendError("nope", 500)

        assert await editor.remove("b") is False

        assert ids(editor.entries) == ["a", "b", "c"]
        notifier.error.assert_called_once_with(REMOVE_FAILED_MESSAGE)
        notifier.success.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_song(self, editor: PlaylistEditor) -> None:
        with pytest.raises(ValueError):
            await editor.remove("zzz")


class TestSerialization:
    """One mutation in flight at a time."""

    @pytest.mark.asyncio
    async def test_second_mutation_rejected(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        release = asyncio.Event()

        async def slow_reorder(*args: object) -> None:
            await release.wait()

        repository.reorder_entry.side_effect = slow_reorder

        first = asyncio.create_task(editor.reorder("a", 0, 2))
        await asyncio.sleep(0)

        with pytest.raises(MutationInProgressError):
            await editor.reorder("b", 0, 1)
        with pytest.raises(MutationInProgressError):
            await editor.remove("c")

        assert ids(editor.entries) == ["b", "c", "a"]

        release.set()
        assert await first is True
        assert await editor.reorder("b", 0, 1) is True
        assert ids(editor.entries) == ["c", "b", "a"]


class TestFollow:
    """Tests for refetching on change signals."""

    @pytest.mark.asyncio
    async def test_signal_triggers_reload(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        sub = ChangeSubscription("playlist-p1", "realtime:playlist-p1", [])
        repository.fetch_entries.return_value = [B, A]

        task = asyncio.create_task(editor.follow(sub))
        sub.push(Invalidation(event="UPDATE", table="playlist_songs"))
        for _ in range(5):
            await asyncio.sleep(0)

        assert ids(editor.entries) == ["b", "a"]

        await sub.close()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_signal_during_mutation_is_deferred(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        release = asyncio.Event()

        async def slow_reorder(*args: object) -> None:
            await release.wait()

        repository.reorder_entry.side_effect = slow_reorder
        sub = ChangeSubscription("playlist-p1", "realtime:playlist-p1", [])
        follower = asyncio.create_task(editor.follow(sub))

        mutation = asyncio.create_task(editor.reorder("a", 0, 2))
        await asyncio.sleep(0)

        sub.push(Invalidation(event="UPDATE", table="playlist_songs"))
        for _ in range(5):
            await asyncio.sleep(0)

        # Optimistic order not clobbered by the refetch
        assert ids(editor.entries) == ["b", "c", "a"]
        assert repository.fetch_entries.await_count == 1

        repository.fetch_entries.return_value = [
            B.with_position(0),
            C.with_position(1),
            A.with_position(2),
        ]
        release.set()
        await mutation

        assert repository.fetch_entries.await_count == 2
        assert [e.position for e in editor.entries] == [0, 1, 2]

        await sub.close()
        await asyncio.wait_for(follower, timeout=1.0)


class TestStaleRefetch:
    """A fetch that overlaps a mutation never replaces the local order."""

    @pytest.mark.asyncio
    async def test_load_started_before_mutation_is_deferred(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        fetch_gate = asyncio.Event()
        reorder_gate = asyncio.Event()

        async def slow_fetch(*args: object) -> list[Track]:
            await fetch_gate.wait()
            return [A, B, C]

        async def slow_reorder(*args: object) -> None:
            await reorder_gate.wait()

        repository.fetch_entries.side_effect = slow_fetch
        repository.reorder_entry.side_effect = slow_reorder

        load = asyncio.create_task(editor.load())
        await asyncio.sleep(0)
        mutation = asyncio.create_task(editor.reorder("a", 0, 2))
        await asyncio.sleep(0)

        fetch_gate.set()
        assert await load is True
        assert ids(editor.entries) == ["b", "c", "a"]
        assert editor.is_busy is True

        repository.fetch_entries.side_effect = None
        repository.fetch_entries.return_value = [
            B.with_position(0),
            C.with_position(1),
            A.with_position(2),
        ]
        reorder_gate.set()
        assert await mutation is True

        assert ids(editor.entries) == ["b", "c", "a"]
        assert [e.position for e in editor.entries] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_mutation_finished_during_load_refetches(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        fetch_gate = asyncio.Event()
        calls: list[str] = []

        async def fetch(playlist_id: str) -> list[Track]:
            calls.append(playlist_id)
            if len(calls) == 1:
                await fetch_gate.wait()
                return [A, B, C]
            return [B.with_position(0), C.with_position(1), A.with_position(2)]

        repository.fetch_entries.side_effect = fetch

        load = asyncio.create_task(editor.load())
        await asyncio.sleep(0)
        assert await editor.reorder("a", 0, 2) is True

        fetch_gate.set()
        assert await load is True

        assert len(calls) == 2
        assert ids(editor.entries) == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_remove_with_deferred_signal_refetches_once(
        self, editor: PlaylistEditor, repository: MagicMock
    ) -> None:
        release = asyncio.Event()

        async def slow_remove(*args: object) -> None:
            await release.wait()

        repository.remove_entry.side_effect = slow_remove
        repository.fetch_entries.return_value = [A, C.with_position(1)]
        sub = ChangeSubscription("playlist-p1", "realtime:playlist-p1", [])
        follower = asyncio.create_task(editor.follow(sub))

        mutation = asyncio.create_task(editor.remove("b"))
        await asyncio.sleep(0)
        sub.push(Invalidation(event="DELETE", table="playlist_songs"))
        for _ in range(5):
            await asyncio.sleep(0)

        release.set()
        assert await mutation is True

        assert repository.fetch_entries.await_count == 2
        assert ids(editor.entries) == ["a", "c"]

        await sub.close()
        await asyncio.wait_for(follower, timeout=1.0)
