"""Tests for the command history: undo/redo, merging, grouping, snapshots."""

from __future__ import annotations

import asyncio

import pytest

from branchcraft.commands import (
    Command,
    CommandHistory,
    CommandMetadata,
    CommandNotExecutableError,
    HistoryBusyError,
    HistoryEvent,
    MoveSceneCommand,
    NothingToRedoError,
    NothingToUndoError,
)
from branchcraft.config import HistoryConfig
from branchcraft.graph import StoryGraph
from branchcraft.models import Position


class Counter:
    def __init__(self) -> None:
        self.value = 0


class AddCommand(Command):
    """Adds to a counter; configurable guards, failures and metadata."""

    def __init__(
        self,
        counter: Counter,
        amount: int = 1,
        *,
        metadata: CommandMetadata | None = None,
        executable: bool = True,
        fail_on_redo: bool = False,
        gate: asyncio.Event | None = None,
    ) -> None:
        super().__init__(f"Add {amount}", metadata)
        self.counter = counter
        self.amount = amount
        self.executable = executable
        self.fail_on_redo = fail_on_redo
        self.gate = gate
        self.runs = 0

    async def execute(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.runs += 1
        if self.fail_on_redo and self.runs > 1:
            raise RuntimeError("redo failed")
        self.counter.value += self.amount
        self.executed = True

    async def undo(self) -> None:
        self.counter.value -= self.amount
        self.executed = False

    def can_execute(self) -> bool:
        return self.executable


def _nudge() -> CommandMetadata:
    return CommandMetadata(type="nudge", groupable=True, group_type="nudge")


def _history(**overrides: object) -> CommandHistory:
    return CommandHistory(HistoryConfig.from_dict(overrides))


class TestUndoRedo:
    @pytest.mark.asyncio
    async def test_execute_undo_redo(self) -> None:
        counter = Counter()
        history = _history()

        await history.execute_command(AddCommand(counter, 2))
        await history.execute_command(AddCommand(counter, 3))
        assert counter.value == 5
        assert history.current_index == 1

        await history.undo()
        assert counter.value == 2
        assert history.can_redo()
        assert history.redo_description == "Add 3"

        await history.redo()
        assert counter.value == 5
        assert not history.can_redo()

    @pytest.mark.asyncio
    async def test_nothing_to_undo_or_redo(self) -> None:
        history = _history()

        assert not history.can_undo()
        with pytest.raises(NothingToUndoError):
            await history.undo()
        with pytest.raises(NothingToRedoError):
            await history.redo()
        assert not history.is_busy

    @pytest.mark.asyncio
    async def test_new_command_discards_redo_tail(self) -> None:
        counter = Counter()
        history = _history()
        for amount in (1, 2, 3):
            await history.execute_command(AddCommand(counter, amount))
        await history.undo()
        await history.undo()

        await history.execute_command(AddCommand(counter, 10))

        assert len(history) == 2
        assert not history.can_redo()
        assert counter.value == 11
        assert [c.description for c in history.undoable_commands()] == ["Add 10", "Add 1"]

    @pytest.mark.asyncio
    async def test_guard_refusal_records_nothing(self) -> None:
        counter = Counter()
        history = _history()

        with pytest.raises(CommandNotExecutableError):
            await history.execute_command(AddCommand(counter, executable=False))

        assert len(history) == 0
        assert counter.value == 0

    @pytest.mark.asyncio
    async def test_failed_execute_leaves_history_unchanged(self) -> None:
        class Broken(AddCommand):
            async def execute(self) -> None:
                raise RuntimeError("nope")

        history = _history()
        await history.execute_command(AddCommand(Counter()))

        with pytest.raises(RuntimeError, match="nope"):
            await history.execute_command(Broken(Counter()))

        assert len(history) == 1
        assert history.current_index == 0
        assert not history.is_busy
        assert history.stats.failed_commands == 1
        assert history.get_stats()["failed_commands"] == 1

    @pytest.mark.asyncio
    async def test_failed_execute_keeps_redo_tail(self) -> None:
        class Broken(AddCommand):
            async def execute(self) -> None:
                raise RuntimeError("nope")

        history = _history()
        await history.execute_command(AddCommand(Counter()))
        await history.execute_command(AddCommand(Counter()))
        snapshot_id = history.create_snapshot({"at": 1})
        await history.undo()

        with pytest.raises(RuntimeError, match="nope"):
            await history.execute_command(Broken(Counter()))

        assert len(history) == 2
        assert history.current_index == 0
        assert history.can_redo()
        assert history.get_snapshot(snapshot_id) is not None

    @pytest.mark.asyncio
    async def test_failed_redo_restores_cursor(self) -> None:
        counter = Counter()
        history = _history()
        await history.execute_command(AddCommand(counter, fail_on_redo=True))
        await history.undo()

        with pytest.raises(RuntimeError, match="redo failed"):
            await history.redo()

        assert history.current_index == -1
        assert history.can_redo()

    @pytest.mark.asyncio
    async def test_concurrent_call_is_rejected(self) -> None:
        gate = asyncio.Event()
        history = _history()
        task = asyncio.create_task(history.execute_command(AddCommand(Counter(), gate=gate)))
        await asyncio.sleep(0)

        assert history.is_busy
        with pytest.raises(HistoryBusyError):
            await history.undo()
        with pytest.raises(HistoryBusyError):
            await history.execute_command(AddCommand(Counter()))

        gate.set()
        await task
        assert len(history) == 1
        assert not history.is_busy

    @pytest.mark.asyncio
    async def test_jump_to(self) -> None:
        counter = Counter()
        history = _history()
        for amount in (1, 2, 4):
            await history.execute_command(AddCommand(counter, amount))

        assert await history.jump_to(-1) == 3
        assert counter.value == 0
        assert await history.jump_to(1) == 2
        assert counter.value == 3
        with pytest.raises(IndexError):
            await history.jump_to(3)

    @pytest.mark.asyncio
    async def test_jump_while_busy_is_rejected(self) -> None:
        gate = asyncio.Event()
        history = _history()
        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))
        task = asyncio.create_task(history.execute_command(AddCommand(Counter(), metadata=_nudge(), gate=gate)))
        await asyncio.sleep(0)

        with pytest.raises(HistoryBusyError):
            await history.jump_to(-1)
        assert history.pending_group is not None
        assert len(history) == 0

        gate.set()
        await task
        history.clear()

    @pytest.mark.asyncio
    async def test_execute_batch_is_one_entry(self) -> None:
        counter = Counter()
        history = _history()

        await history.execute_batch([AddCommand(counter, 1), AddCommand(counter, 2)], "Add three")
        assert len(history) == 1
        assert counter.value == 3

        await history.undo()
        assert counter.value == 0

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self) -> None:
        counter = Counter()
        history = _history()
        await history.execute_command(AddCommand(counter))

        with pytest.raises(ValueError, match="no commands"):
            await history.execute_batch([], "Nothing")

        assert len(history) == 1
        await history.undo()
        assert counter.value == 0


class TestMerging:
    @pytest.mark.asyncio
    async def test_consecutive_moves_collapse(self, graph: StoryGraph) -> None:
        history = _history(enable_grouping=False)

        first = MoveSceneCommand(graph, "start", Position(x=1, y=1))
        await history.execute_command(first)
        recorded = await history.execute_command(MoveSceneCommand(graph, "start", Position(x=5, y=5)))

        assert recorded is first
        assert len(history) == 1
        assert history.stats.merge_count == 1

        await history.undo()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position is None

        await history.redo()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position == Position(x=5, y=5)

    @pytest.mark.asyncio
    async def test_moves_outside_window_do_not_merge(self, graph: StoryGraph) -> None:
        history = _history(enable_grouping=False, merge_window=1.0)

        first = MoveSceneCommand(graph, "start", Position(x=1, y=1))
        await history.execute_command(first)
        late = MoveSceneCommand(graph, "start", Position(x=5, y=5))
        late.timestamp = first.timestamp + 2.0
        await history.execute_command(late)

        assert len(history) == 2

    @pytest.mark.asyncio
    async def test_merging_can_be_disabled(self, graph: StoryGraph) -> None:
        history = _history(enable_grouping=False, enable_merging=False)

        await history.execute_command(MoveSceneCommand(graph, "start", Position(x=1, y=1)))
        await history.execute_command(MoveSceneCommand(graph, "start", Position(x=5, y=5)))

        assert len(history) == 2

    @pytest.mark.asyncio
    async def test_moves_merge_inside_pending_group(self, graph: StoryGraph) -> None:
        history = _history(group_timeout=10.0)

        await history.execute_command(MoveSceneCommand(graph, "start", Position(x=1, y=1)))
        await history.execute_command(MoveSceneCommand(graph, "start", Position(x=2, y=2)))
        await history.execute_command(MoveSceneCommand(graph, "end", Position(x=3, y=3)))

        pending = history.pending_group
        assert pending is not None
        assert len(pending.commands) == 2

        await history.undo()
        assert len(history) == 1
        for scene_id in ("start", "end"):
            scene = graph.get_scene(scene_id)
            assert scene is not None
            assert scene.position is None


class TestGrouping:
    @pytest.mark.asyncio
    async def test_different_command_finalizes_group(self) -> None:
        counter = Counter()
        history = _history(group_timeout=10.0)
        events: list[HistoryEvent] = []
        history.add_listener(events.append)

        await history.execute_command(AddCommand(counter, 1, metadata=_nudge()))
        await history.execute_command(AddCommand(counter, 2, metadata=_nudge()))
        assert history.can_undo()
        assert not history.can_redo()
        assert history.undo_description == "Add 1 (+1 more)"
        assert len(history) == 0

        await history.execute_command(AddCommand(counter, 4))

        assert len(history) == 2
        view = history.get_history()
        assert view.entries[0].is_group
        assert view.entries[0].description == "Add 1 (+1 more)"
        assert "group" in [e.type for e in events]
        assert history.stats.group_count == 1

    @pytest.mark.asyncio
    async def test_timer_finalizes_group(self) -> None:
        history = _history(group_timeout=0.02)

        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))
        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))
        await asyncio.sleep(0.06)

        assert history.pending_group is None
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_single_member_group_is_recorded_alone(self) -> None:
        history = _history(group_timeout=0.02)

        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))
        await asyncio.sleep(0.06)

        assert not history.get_history().entries[0].is_group

    @pytest.mark.asyncio
    async def test_undo_reverts_whole_group(self) -> None:
        counter = Counter()
        history = _history(group_timeout=10.0)
        for amount in (1, 2, 3):
            await history.execute_command(AddCommand(counter, amount, metadata=_nudge()))

        await history.undo()

        assert counter.value == 0
        assert history.current_index == -1
        assert history.can_redo()

    @pytest.mark.asyncio
    async def test_grouping_can_be_disabled(self) -> None:
        history = _history(enable_grouping=False)

        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))
        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))

        assert len(history) == 2
        assert history.pending_group is None


class TestCapacityAndSnapshots:
    @pytest.mark.asyncio
    async def test_oldest_entry_is_evicted(self) -> None:
        counter = Counter()
        history = _history(max_history_size=3)

        for amount in (1, 2, 3, 4):
            await history.execute_command(AddCommand(counter, amount))

        assert len(history) == 3
        assert history.current_index == 2
        assert [c.description for c in history.redoable_commands()] == []
        assert history.undoable_commands(limit=1)[0].description == "Add 4"

    @pytest.mark.asyncio
    async def test_eviction_purges_snapshots_of_evicted_entry(self) -> None:
        history = _history(max_history_size=2)
        await history.execute_command(AddCommand(Counter()))
        first_snapshot = history.create_snapshot({"value": 1})
        await history.execute_command(AddCommand(Counter()))
        second_snapshot = history.create_snapshot({"value": 2})

        await history.execute_command(AddCommand(Counter()))

        assert history.get_snapshot(first_snapshot) is None
        kept = history.get_snapshot(second_snapshot)
        assert kept is not None
        assert kept.index == 0

    @pytest.mark.asyncio
    async def test_truncation_purges_redo_tail_snapshots(self) -> None:
        history = _history()
        await history.execute_command(AddCommand(Counter()))
        await history.execute_command(AddCommand(Counter()))
        tail_snapshot = history.create_snapshot("state")
        await history.undo()

        await history.execute_command(AddCommand(Counter()))

        assert tail_snapshot not in history.snapshot_ids

    def test_snapshot_is_a_deep_copy(self) -> None:
        history = _history()
        state = {"scenes": ["a"]}

        snapshot_id = history.create_snapshot(state, "before edit")
        state["scenes"].append("b")

        snapshot = history.get_snapshot(snapshot_id)
        assert snapshot is not None
        assert snapshot.state == {"scenes": ["a"]}
        assert snapshot.index == -1
        assert snapshot.command_id is None

    @pytest.mark.asyncio
    async def test_snapshot_needed_every_interval(self) -> None:
        history = _history(snapshot_interval=2)
        events: list[HistoryEvent] = []
        history.add_listener(events.append)

        for _ in range(4):
            await history.execute_command(AddCommand(Counter()))

        needed = [e.details["index"] for e in events if e.type == "snapshot_needed"]
        assert needed == [1, 3]


class TestListenersAndViews:
    @pytest.mark.asyncio
    async def test_events_and_unsubscribe(self) -> None:
        history = _history()
        events: list[str] = []
        remove = history.add_listener(lambda e: events.append(e.type))

        await history.execute_command(AddCommand(Counter()))
        await history.undo()
        await history.redo()
        history.clear()
        remove()
        await history.execute_command(AddCommand(Counter()))

        assert events == ["execute", "undo", "redo", "clear"]

    @pytest.mark.asyncio
    async def test_failing_listener_is_ignored(self) -> None:
        history = _history()

        def explode(event: HistoryEvent) -> None:
            raise RuntimeError("listener broke")

        history.add_listener(explode)

        await history.execute_command(AddCommand(Counter()))

        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_clear_resets_everything(self) -> None:
        history = _history(group_timeout=10.0)
        await history.execute_command(AddCommand(Counter()))
        history.create_snapshot("state")
        await history.execute_command(AddCommand(Counter(), metadata=_nudge()))

        history.clear()

        assert len(history) == 0
        assert history.pending_group is None
        assert history.snapshot_ids == []
        assert not history.can_undo()

    @pytest.mark.asyncio
    async def test_get_history_view(self) -> None:
        history = _history()
        for amount in (1, 2):
            await history.execute_command(AddCommand(Counter(), amount))
        await history.undo()

        view = history.get_history()

        assert view.current_index == 0
        assert [e.is_current for e in view.entries] == [True, False]
        assert [e.is_redoable for e in view.entries] == [False, True]
        assert view.can_undo and view.can_redo
        assert view.stats["undo_operations"] == 1
        assert view.stats["history_size"] == 2
