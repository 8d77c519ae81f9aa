"""Tests for the concrete editor commands against a live story graph.

The key property for every command: execute then undo leaves the
adventure exactly as it was (ignoring the revision marker).
"""

from __future__ import annotations

from typing import Any

import pytest

from branchcraft.commands import (
    BulkOperationCommand,
    BulkOperationError,
    CommandHistory,
    CreateChoiceCommand,
    CreateConnectionCommand,
    CreateSceneCommand,
    DeleteChoiceCommand,
    DeleteConnectionCommand,
    DeleteSceneCommand,
    ImportAdventureCommand,
    MoveSceneCommand,
    UpdateChoiceCommand,
    UpdateSceneCommand,
    UpdateStatsCommand,
)
from branchcraft.config import HistoryConfig
from branchcraft.graph import SceneNotFoundError, StoryGraph
from branchcraft.models import Adventure, Choice, Position, Scene, Stat
from tests.fixtures.adventures import make_adventure, make_stat_adventure


def _state(graph: StoryGraph) -> dict[str, Any]:
    return graph.adventure.model_dump(exclude={"last_modified"})


class FailingDeleteGraph(StoryGraph):
    """Story graph that refuses to delete one particular scene."""

    def __init__(self, adventure: Adventure, fail_on: str) -> None:
        super().__init__(adventure)
        self.fail_on = fail_on

    async def on_scene_delete(self, scene_id: str) -> None:
        if scene_id == self.fail_on:
            msg = f"refusing to delete {scene_id}"
            raise RuntimeError(msg)
        await super().on_scene_delete(scene_id)


class TestSceneCommands:
    @pytest.mark.asyncio
    async def test_create_then_undo(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = CreateSceneCommand(graph, Scene(id="new", title="New"), index=0)

        assert command.can_execute()
        await command.execute()
        assert graph.scene_ids()[0] == "new"
        assert not CreateSceneCommand(graph, Scene(id="new")).can_execute()

        await command.undo()
        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_delete_detaches_and_undo_reconnects(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = DeleteSceneCommand(graph, "end")

        await command.execute()

        assert "end" not in graph.scene_ids()
        middle = graph.get_scene("middle")
        assert middle is not None
        assert middle.choices[0].target_scene_id is None

        await command.undo()
        assert _state(graph) == before
        assert graph.scene_index("end") == 3

    @pytest.mark.asyncio
    async def test_delete_missing_scene(self, graph: StoryGraph) -> None:
        command = DeleteSceneCommand(graph, "ghost")

        assert not command.can_execute()
        with pytest.raises(SceneNotFoundError):
            await command.execute()
        assert not command.executed

    @pytest.mark.asyncio
    async def test_failed_delete_reattaches_connections(self) -> None:
        graph = FailingDeleteGraph(make_adventure({"a": ["b"], "b": []}), fail_on="b")
        before = _state(graph)

        with pytest.raises(RuntimeError, match="refusing"):
            await DeleteSceneCommand(graph, "b").execute()

        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_move_from_unplaced_scene_undoes_to_none(self, graph: StoryGraph) -> None:
        command = MoveSceneCommand(graph, "start", Position(x=10, y=20))

        await command.execute()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position == Position(x=10, y=20)

        await command.undo()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position is None

    @pytest.mark.asyncio
    async def test_move_with_explicit_old_position(self, graph: StoryGraph) -> None:
        await graph.on_scene_move("start", Position(x=1, y=1))
        command = MoveSceneCommand(graph, "start", Position(x=5, y=5), old_position=Position(x=0, y=0))

        await command.execute()
        await command.undo()

        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position == Position(x=0, y=0)

    @pytest.mark.asyncio
    async def test_update_then_undo(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = UpdateSceneCommand(graph, "start", {"title": "Dawn", "content": "Light."})

        await command.execute()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.title == "Dawn"

        await command.undo()
        assert _state(graph) == before

    def test_update_mergeability_depends_on_fields(self, graph: StoryGraph) -> None:
        assert UpdateSceneCommand(graph, "start", {"title": "x"}).metadata.mergeable
        assert not UpdateSceneCommand(graph, "start", {"tags": ["x"]}).metadata.mergeable
        assert not UpdateSceneCommand(graph, "start", {}).metadata.mergeable

    @pytest.mark.asyncio
    async def test_consecutive_moves_merge_to_final_position(self, graph: StoryGraph) -> None:
        first = MoveSceneCommand(graph, "start", Position(x=1, y=1))
        second = MoveSceneCommand(graph, "start", Position(x=2, y=2))
        await first.execute()
        await second.execute()

        assert first.merge_with(second)
        assert first.new_position == Position(x=2, y=2)

        await first.undo()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position is None
        await first.execute()
        scene = graph.get_scene("start")
        assert scene is not None
        assert scene.position == Position(x=2, y=2)

    def test_moves_of_different_scenes_do_not_merge(self, graph: StoryGraph) -> None:
        first = MoveSceneCommand(graph, "start", Position(x=1, y=1))
        second = MoveSceneCommand(graph, "end", Position(x=2, y=2))

        assert not first.merge_with(second)


class TestChoiceAndConnectionCommands:
    @pytest.mark.asyncio
    async def test_choice_create_delete_update_round_trip(self, graph: StoryGraph) -> None:
        before = _state(graph)
        commands = [
            CreateChoiceCommand(graph, "end", Choice(id="again", text="Again", target_scene_id="start")),
            DeleteChoiceCommand(graph, "start", "start_to_side"),
            UpdateChoiceCommand(graph, "middle", "middle_to_end", {"text": "Onward"}),
        ]

        for command in commands:
            await command.execute()
        middle = graph.get_scene("middle")
        assert middle is not None
        assert middle.choices[0].text == "Onward"

        for command in reversed(commands):
            await command.undo()
        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_delete_choice_restores_position(self, graph: StoryGraph) -> None:
        command = DeleteChoiceCommand(graph, "start", "start_to_middle")

        await command.execute()
        await command.undo()

        start = graph.get_scene("start")
        assert start is not None
        assert [c.id for c in start.choices] == ["start_to_middle", "start_to_side"]

    def test_delete_missing_choice_cannot_execute(self, graph: StoryGraph) -> None:
        assert not DeleteChoiceCommand(graph, "start", "nope").can_execute()
        assert not UpdateChoiceCommand(graph, "ghost", "nope", {"text": "x"}).can_execute()

    @pytest.mark.asyncio
    async def test_retarget_connection_undo_restores_previous_target(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = CreateConnectionCommand(graph, "start", "start_to_middle", "end")

        await command.execute()
        assert command.previous_target == "middle"
        await command.undo()

        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_connect_unconnected_choice_undo_disconnects(self) -> None:
        graph = StoryGraph(make_adventure({"a": [None], "b": []}))
        before = _state(graph)
        command = CreateConnectionCommand(graph, "a", "a_c0", "b")

        await command.execute()
        await command.undo()

        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_disconnect_then_undo(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = DeleteConnectionCommand(graph, "side", "side_to_end")

        await command.execute()
        side = graph.get_scene("side")
        assert side is not None
        assert side.choices[0].target_scene_id is None

        await command.undo()
        assert _state(graph) == before


class TestStatCommands:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("operation", "stat_id", "stat"),
        [
            ("add", "hp", Stat(id="hp", default_value=10)),
            ("update", "gold", Stat(id="gold", default_value=99)),
            ("delete", "courage", None),
        ],
    )
    async def test_round_trip(self, operation: Any, stat_id: str, stat: Stat | None) -> None:
        graph = StoryGraph(make_stat_adventure())
        before = _state(graph)
        command = UpdateStatsCommand(graph, operation, stat_id, stat)

        assert command.can_execute()
        await command.execute()
        assert _state(graph) != before

        await command.undo()
        assert _state(graph) == before

    def test_guards_follow_operation(self) -> None:
        graph = StoryGraph(make_stat_adventure())

        assert not UpdateStatsCommand(graph, "add", "gold", Stat(id="gold")).can_execute()
        assert not UpdateStatsCommand(graph, "delete", "ghost").can_execute()

    def test_invalid_arguments(self, graph: StoryGraph) -> None:
        with pytest.raises(ValueError, match="Unknown stat operation"):
            UpdateStatsCommand(graph, "rename", "hp")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="requires a stat"):
            UpdateStatsCommand(graph, "add", "hp")


class TestImportCommand:
    @pytest.mark.asyncio
    async def test_import_undo_restores_previous(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = ImportAdventureCommand(graph, make_stat_adventure())

        await command.execute()
        assert graph.scene_ids() == ["intro", "cave"]

        await command.undo()
        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_import_into_blank_graph_undo_clears(self) -> None:
        graph = StoryGraph()
        command = ImportAdventureCommand(graph, make_stat_adventure())

        await command.execute()
        await command.undo()

        assert graph.scene_ids() == []
        assert graph.adventure.title == ""


class TestBulkOperations:
    @pytest.mark.asyncio
    async def test_move_scenes_reports_progress(self, graph: StoryGraph) -> None:
        progress: list[tuple[int, int]] = []
        command = BulkOperationCommand(
            graph,
            "move_scenes",
            {"start": Position(x=0, y=0), "middle": Position(x=100, y=0), "end": Position(x=200, y=0)},
            on_progress=lambda done, total, cmd: progress.append((done, total)),
        )

        await command.execute()

        assert progress == [(1, 3), (2, 3), (3, 3)]
        end = graph.get_scene("end")
        assert end is not None
        assert end.position == Position(x=200, y=0)
        assert command.description == "Move scenes (3)"

    @pytest.mark.asyncio
    async def test_update_scenes_undo(self, graph: StoryGraph) -> None:
        before = _state(graph)
        command = BulkOperationCommand(graph, "update_scenes", {"start": {"title": "A"}, "end": {"title": "Z"}})

        await command.execute()
        await command.undo()

        assert _state(graph) == before

    @pytest.mark.asyncio
    async def test_failure_rolls_back_completed_steps(self) -> None:
        adventure = make_adventure({"start": ["middle", "side"], "middle": ["end"], "side": ["end"], "end": []})
        graph = FailingDeleteGraph(adventure, fail_on="side")
        before = _state(graph)
        command = BulkOperationCommand(graph, "delete_scenes", ["middle", "side", "end"])

        with pytest.raises(BulkOperationError) as exc_info:
            await command.execute()

        error = exc_info.value
        assert error.operation == "delete_scenes"
        assert error.failed_index == 1
        assert error.total == 3
        assert isinstance(error.__cause__, RuntimeError)
        assert "step 2/3" in str(error)
        assert _state(graph) == before
        assert not command.executed

    @pytest.mark.asyncio
    async def test_failed_bulk_leaves_history_unchanged(self) -> None:
        adventure = make_adventure({"a": ["b"], "b": ["c"], "c": []})
        graph = FailingDeleteGraph(adventure, fail_on="c")
        history = CommandHistory()
        await history.execute_command(UpdateSceneCommand(graph, "a", {"title": "Opening"}))
        before = _state(graph)

        with pytest.raises(BulkOperationError):
            await history.execute_command(BulkOperationCommand(graph, "delete_scenes", ["b", "c"]))

        assert _state(graph) == before
        assert len(history) == 1
        assert history.undo_description == "Update scene 'a' (title)"

    @pytest.mark.asyncio
    async def test_failed_bulk_after_undo_keeps_redo_entry(self) -> None:
        adventure = make_adventure({"a": ["b"], "b": ["c"], "c": []})
        graph = FailingDeleteGraph(adventure, fail_on="c")
        history = CommandHistory(HistoryConfig(enable_grouping=False, enable_merging=False))
        await history.execute_command(UpdateSceneCommand(graph, "a", {"title": "Opening"}))
        await history.execute_command(UpdateSceneCommand(graph, "b", {"title": "Middle"}))
        await history.undo()
        before = _state(graph)

        with pytest.raises(BulkOperationError):
            await history.execute_command(BulkOperationCommand(graph, "delete_scenes", ["b", "c"]))

        assert _state(graph) == before
        assert (len(history), history.current_index, history.can_redo()) == (2, 0, True)
        assert history.stats.failed_commands == 1

        await history.redo()
        scene = graph.get_scene("b")
        assert scene is not None
        assert scene.title == "Middle"

    def test_empty_selection_is_rejected(self, graph: StoryGraph) -> None:
        with pytest.raises(ValueError, match="at least one item"):
            BulkOperationCommand(graph, "move_scenes", {})

    def test_unknown_operation(self, graph: StoryGraph) -> None:
        with pytest.raises(ValueError, match="Unknown bulk operation"):
            BulkOperationCommand(graph, "rename_scenes", [])  # type: ignore[arg-type]
