"""In-memory story graph host.

StoryGraph owns a live :class:`~branchcraft.models.adventure.Adventure` and
implements both host protocols the editing core needs:

- ``EditorCallbacks``: async mutations invoked by commands
- ``EditorState``: copy-returning reads used to capture undo data

The graph enforces referential integrity similar to foreign keys:
- Scene creation is explicit (fails if the ID exists)
- Updates and deletes require the scene/choice/stat to exist
- Errors carry the available IDs for actionable feedback

Choice targets are NOT enforced: a dangling target is a validation
finding, not a storage error.

Every mutation bumps ``adventure.last_modified`` to a new revision number so
validation results cached for the previous state are never reused.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from branchcraft.graph.errors import (
    ChoiceExistsError,
    ChoiceNotFoundError,
    SceneExistsError,
    SceneNotFoundError,
    StatExistsError,
    StatNotFoundError,
)
from branchcraft.models.adventure import Adventure, Choice, Connection, Scene, Stat
from branchcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from branchcraft.models.adventure import Position

log = get_logger(__name__)


class StoryGraph:
    """Live adventure graph with integrity-checked mutations.

    Attributes:
        revision: Incremented on every successful mutation.
    """

    def __init__(self, adventure: Adventure | None = None) -> None:
        """Initialize with an optional adventure (deep-copied)."""
        self._adventure = adventure.model_copy(deep=True) if adventure else Adventure()
        self.revision = 0
        self._touch()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, file_path: Path) -> StoryGraph:
        """Load an adventure from an editor JSON file.

        Args:
            file_path: Path to a ``.json`` adventure.

        Returns:
            Graph wrapping the loaded adventure.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            pydantic.ValidationError: If the JSON is not an adventure.
        """
        return cls(Adventure.model_validate_json(file_path.read_text(encoding="utf-8")))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoryGraph:
        """Create a graph from an editor dict (camelCase or snake_case keys)."""
        return cls(Adventure.model_validate(data))

    # -------------------------------------------------------------------------
    # Reads (EditorState)
    # -------------------------------------------------------------------------

    @property
    def adventure(self) -> Adventure:
        """The live adventure, passed by reference to validation."""
        return self._adventure

    def get_scene(self, scene_id: str) -> Scene | None:
        scene = self._adventure.get_scene(scene_id)
        return scene.model_copy(deep=True) if scene else None

    def scene_index(self, scene_id: str) -> int | None:
        return self._adventure.scene_index(scene_id)

    def get_stat(self, stat_id: str) -> Stat | None:
        stat = self._adventure.get_stat(stat_id)
        return stat.model_copy(deep=True) if stat else None

    def stat_index(self, stat_id: str) -> int | None:
        for i, stat in enumerate(self._adventure.stats):
            if stat.id == stat_id:
                return i
        return None

    def incoming_connections(self, scene_id: str) -> list[Connection]:
        return [
            Connection(from_scene_id=scene.id, choice_id=choice.id, to_scene_id=scene_id)
            for scene in self._adventure.scenes
            if scene.id != scene_id
            for choice in scene.choices
            if choice.target_scene_id == scene_id
        ]

    def snapshot(self) -> Adventure:
        return self._adventure.model_copy(deep=True)

    def scene_ids(self) -> list[str]:
        """Return all scene IDs in list order."""
        return [scene.id for scene in self._adventure.scenes]

    # -------------------------------------------------------------------------
    # Scene mutations (EditorCallbacks)
    # -------------------------------------------------------------------------

    async def on_scene_create(self, scene: Scene, *, index: int | None = None) -> None:
        if self._adventure.get_scene(scene.id) is not None:
            raise SceneExistsError(scene.id)
        new_scene = scene.model_copy(deep=True)
        if index is None:
            self._adventure.scenes.append(new_scene)
        else:
            self._adventure.scenes.insert(index, new_scene)
        self._touch()
        log.debug("scene_created", scene_id=scene.id, index=index)

    async def on_scene_delete(self, scene_id: str) -> None:
        index = self._require_scene_index(scene_id, "on_scene_delete")
        del self._adventure.scenes[index]
        self._touch()
        log.debug("scene_deleted", scene_id=scene_id)

    async def on_scene_move(self, scene_id: str, position: Position) -> None:
        index = self._require_scene_index(scene_id, "on_scene_move")
        self._adventure.scenes[index].position = position.model_copy()
        self._touch()

    async def on_scene_update(self, scene_id: str, updates: dict[str, Any]) -> None:
        index = self._require_scene_index(scene_id, "on_scene_update")
        if updates.get("id", scene_id) != scene_id:
            msg = f"Scene IDs are immutable (tried to rename '{scene_id}')"
            raise ValueError(msg)
        data = self._adventure.scenes[index].model_dump()
        data.update(copy.deepcopy(updates))
        self._adventure.scenes[index] = Scene.model_validate(data)
        self._touch()

    # -------------------------------------------------------------------------
    # Choice mutations
    # -------------------------------------------------------------------------

    async def on_choice_add(self, scene_id: str, choice: Choice, *, index: int | None = None) -> None:
        scene = self._require_scene(scene_id, "on_choice_add")
        if scene.get_choice(choice.id) is not None:
            raise ChoiceExistsError(scene_id, choice.id)
        new_choice = choice.model_copy(deep=True)
        if index is None:
            scene.choices.append(new_choice)
        else:
            scene.choices.insert(index, new_choice)
        self._touch()

    async def on_choice_delete(self, scene_id: str, choice_id: str) -> None:
        scene = self._require_scene(scene_id, "on_choice_delete")
        index = self._require_choice_index(scene, choice_id)
        del scene.choices[index]
        self._touch()

    async def on_choice_update(self, scene_id: str, choice_id: str, updates: dict[str, Any]) -> None:
        scene = self._require_scene(scene_id, "on_choice_update")
        index = self._require_choice_index(scene, choice_id)
        if updates.get("id", choice_id) != choice_id:
            msg = f"Choice IDs are immutable (tried to rename '{choice_id}')"
            raise ValueError(msg)
        data = scene.choices[index].model_dump()
        data.update(copy.deepcopy(updates))
        scene.choices[index] = Choice.model_validate(data)
        self._touch()

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    async def on_connection_create(self, connection: Connection) -> None:
        choice = self._require_choice(connection, "on_connection_create")
        choice.target_scene_id = connection.to_scene_id
        self._touch()

    async def on_connection_delete(self, connection: Connection) -> None:
        choice = self._require_choice(connection, "on_connection_delete")
        choice.target_scene_id = None
        self._touch()

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def on_stat_add(self, stat: Stat, *, index: int | None = None) -> None:
        if self._adventure.get_stat(stat.id) is not None:
            raise StatExistsError(stat.id)
        new_stat = stat.model_copy(deep=True)
        if index is None:
            self._adventure.stats.append(new_stat)
        else:
            self._adventure.stats.insert(index, new_stat)
        self._touch()

    async def on_stat_update(self, stat_id: str, stat: Stat) -> None:
        index = self._require_stat_index(stat_id)
        self._adventure.stats[index] = stat.model_copy(deep=True)
        self._touch()

    async def on_stat_delete(self, stat_id: str) -> None:
        index = self._require_stat_index(stat_id)
        del self._adventure.stats[index]
        self._touch()

    # -------------------------------------------------------------------------
    # Whole adventure
    # -------------------------------------------------------------------------

    async def on_adventure_import(self, adventure: Adventure) -> None:
        self._adventure = adventure.model_copy(deep=True)
        self._touch()
        log.info("adventure_imported", title=adventure.title, scenes=len(adventure.scenes))

    async def on_adventure_clear(self) -> None:
        self._adventure = Adventure()
        self._touch()
        log.info("adventure_cleared")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _touch(self) -> None:
        self.revision += 1
        self._adventure.last_modified = self.revision

    def _require_scene_index(self, scene_id: str, context: str) -> int:
        index = self._adventure.scene_index(scene_id)
        if index is None:
            raise SceneNotFoundError(scene_id, available=self.scene_ids(), context=context)
        return index

    def _require_scene(self, scene_id: str, context: str) -> Scene:
        return self._adventure.scenes[self._require_scene_index(scene_id, context)]

    def _require_choice_index(self, scene: Scene, choice_id: str) -> int:
        for i, choice in enumerate(scene.choices):
            if choice.id == choice_id:
                return i
        raise ChoiceNotFoundError(scene.id, choice_id, available=[c.id for c in scene.choices])

    def _require_choice(self, connection: Connection, context: str) -> Choice:
        scene = self._require_scene(connection.from_scene_id, context)
        return scene.choices[self._require_choice_index(scene, connection.choice_id)]

    def _require_stat_index(self, stat_id: str) -> int:
        index = self.stat_index(stat_id)
        if index is None:
            raise StatNotFoundError(stat_id, available=[s.id for s in self._adventure.stats])
        return index

    def __repr__(self) -> str:
        """Return string representation of graph."""
        adventure = self._adventure
        return (
            f"StoryGraph(scenes={len(adventure.scenes)}, stats={len(adventure.stats)}, "
            f"revision={self.revision})"
        )
