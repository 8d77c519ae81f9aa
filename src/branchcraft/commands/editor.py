"""Concrete editor commands.

Every command talks to the host through the ``EditorCallbacks`` mutation
surface and captures the data it needs to undo through ``EditorState``
at execution time (not at construction), so a redo after unrelated edits
captures fresh state.

Merging:
- ``MoveSceneCommand``: consecutive moves of the same scene collapse into
  one entry ending at the last position.
- ``UpdateSceneCommand``: consecutive ``title``/``content`` edits of the
  same scene and field set collapse into one entry.
- ``UpdateChoiceCommand``: consecutive ``text`` edits of the same choice.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Literal, Protocol

from branchcraft.commands.base import Command, CommandMetadata, CompositeCommand
from branchcraft.commands.errors import BulkOperationError
from branchcraft.graph.callbacks import EditorCallbacks, EditorState
from branchcraft.models.adventure import Connection, Position
from branchcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from branchcraft.models.adventure import Adventure, Choice, Scene, Stat

log = get_logger(__name__)

MERGEABLE_SCENE_FIELDS = frozenset({"title", "content"})
MERGEABLE_CHOICE_FIELDS = frozenset({"text"})


class EditorHost(EditorCallbacks, EditorState, Protocol):
    """A host providing both the mutation callbacks and the state reads."""


class EditorCommand(Command):
    """Command bound to an editor host.

    Subclasses implement ``_apply`` and ``_revert``; the executed flag is
    maintained here.
    """

    def __init__(self, host: EditorHost, description: str, metadata: CommandMetadata) -> None:
        super().__init__(description, metadata)
        self.host = host

    async def execute(self) -> None:
        await self._apply()
        self.executed = True

    async def undo(self) -> None:
        await self._revert()
        self.executed = False

    @abstractmethod
    async def _apply(self) -> None: ...

    @abstractmethod
    async def _revert(self) -> None: ...


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------


class CreateSceneCommand(EditorCommand):
    def __init__(self, host: EditorHost, scene: Scene, *, index: int | None = None) -> None:
        super().__init__(
            host,
            f"Create scene '{scene.title or scene.id}'",
            CommandMetadata(type="create_scene", category="scene", target=scene.id),
        )
        self.scene = scene.model_copy(deep=True)
        self.index = index

    def can_execute(self) -> bool:
        return self.host.get_scene(self.scene.id) is None

    async def _apply(self) -> None:
        await self.host.on_scene_create(self.scene, index=self.index)

    async def _revert(self) -> None:
        await self.host.on_scene_delete(self.scene.id)


class DeleteSceneCommand(EditorCommand):
    """Delete a scene and detach every choice of other scenes pointing at it.

    Undo re-inserts the scene at its old list position and reconnects the
    detached choices.
    """

    def __init__(self, host: EditorHost, scene_id: str) -> None:
        super().__init__(
            host,
            f"Delete scene '{scene_id}'",
            CommandMetadata(type="delete_scene", category="scene", target=scene_id),
        )
        self.scene_id = scene_id
        self.scene: Scene | None = None
        self.index: int | None = None
        self.incoming: list[Connection] = []

    def can_execute(self) -> bool:
        return self.host.get_scene(self.scene_id) is not None

    async def _apply(self) -> None:
        self.scene = self.host.get_scene(self.scene_id)
        self.index = self.host.scene_index(self.scene_id)
        self.incoming = self.host.incoming_connections(self.scene_id)

        detached: list[Connection] = []
        try:
            for connection in self.incoming:
                await self.host.on_connection_delete(connection)
                detached.append(connection)
            await self.host.on_scene_delete(self.scene_id)
        except Exception:
            for connection in reversed(detached):
                await self.host.on_connection_create(connection)
            raise

    async def _revert(self) -> None:
        if self.scene is None:
            msg = f"Scene '{self.scene_id}' was never captured; cannot undo delete"
            raise RuntimeError(msg)
        await self.host.on_scene_create(self.scene, index=self.index)
        for connection in self.incoming:
            await self.host.on_connection_create(connection)


class MoveSceneCommand(EditorCommand):
    def __init__(
        self,
        host: EditorHost,
        scene_id: str,
        new_position: Position,
        old_position: Position | None = None,
    ) -> None:
        super().__init__(
            host,
            f"Move scene '{scene_id}'",
            CommandMetadata(
                type="move_scene",
                mergeable=True,
                groupable=True,
                group_type="scene_move",
                category="scene",
                target=scene_id,
            ),
        )
        self.scene_id = scene_id
        self.new_position = new_position.model_copy()
        self.old_position = old_position.model_copy() if old_position else None
        self._captured = old_position is not None

    def can_execute(self) -> bool:
        return self.host.get_scene(self.scene_id) is not None

    async def _apply(self) -> None:
        if not self._captured:
            scene = self.host.get_scene(self.scene_id)
            self.old_position = scene.position if scene else None
            self._captured = True
        await self.host.on_scene_move(self.scene_id, self.new_position)

    async def _revert(self) -> None:
        if self.old_position is None:
            await self.host.on_scene_update(self.scene_id, {"position": None})
        else:
            await self.host.on_scene_move(self.scene_id, self.old_position)

    def _absorb(self, other: Command) -> bool:
        assert isinstance(other, MoveSceneCommand)
        self.new_position = other.new_position.model_copy()
        return True


class UpdateSceneCommand(EditorCommand):
    """Update scene fields (snake_case names: ``title``, ``content``, ``on_enter`` ...)."""

    def __init__(self, host: EditorHost, scene_id: str, updates: Mapping[str, Any]) -> None:
        fields = frozenset(updates)
        super().__init__(
            host,
            f"Update scene '{scene_id}' ({', '.join(sorted(fields))})",
            CommandMetadata(
                type="update_scene",
                mergeable=bool(fields) and fields <= MERGEABLE_SCENE_FIELDS,
                group_type=f"scene_update:{','.join(sorted(fields))}",
                category="scene",
                target=scene_id,
            ),
        )
        self.scene_id = scene_id
        self.updates = dict(updates)
        self.previous: dict[str, Any] = {}

    def can_execute(self) -> bool:
        return self.host.get_scene(self.scene_id) is not None

    async def _apply(self) -> None:
        scene = self.host.get_scene(self.scene_id)
        if scene is not None:
            current = scene.model_dump()
            self.previous = {key: current.get(key) for key in self.updates}
        await self.host.on_scene_update(self.scene_id, self.updates)

    async def _revert(self) -> None:
        await self.host.on_scene_update(self.scene_id, self.previous)

    def _absorb(self, other: Command) -> bool:
        assert isinstance(other, UpdateSceneCommand)
        self.updates = dict(other.updates)
        return True


# ---------------------------------------------------------------------------
# Choices
# ---------------------------------------------------------------------------


class CreateChoiceCommand(EditorCommand):
    def __init__(self, host: EditorHost, scene_id: str, choice: Choice, *, index: int | None = None) -> None:
        super().__init__(
            host,
            f"Add choice '{choice.text or choice.id}' to '{scene_id}'",
            CommandMetadata(type="create_choice", category="choice", target=f"{scene_id}/{choice.id}"),
        )
        self.scene_id = scene_id
        self.choice = choice.model_copy(deep=True)
        self.index = index

    def can_execute(self) -> bool:
        return self.host.get_scene(self.scene_id) is not None

    async def _apply(self) -> None:
        await self.host.on_choice_add(self.scene_id, self.choice, index=self.index)

    async def _revert(self) -> None:
        await self.host.on_choice_delete(self.scene_id, self.choice.id)


class DeleteChoiceCommand(EditorCommand):
    def __init__(self, host: EditorHost, scene_id: str, choice_id: str) -> None:
        super().__init__(
            host,
            f"Delete choice '{choice_id}' from '{scene_id}'",
            CommandMetadata(type="delete_choice", category="choice", target=f"{scene_id}/{choice_id}"),
        )
        self.scene_id = scene_id
        self.choice_id = choice_id
        self.choice: Choice | None = None
        self.index: int | None = None

    def can_execute(self) -> bool:
        scene = self.host.get_scene(self.scene_id)
        return scene is not None and scene.get_choice(self.choice_id) is not None

    async def _apply(self) -> None:
        scene = self.host.get_scene(self.scene_id)
        if scene is not None:
            for i, choice in enumerate(scene.choices):
                if choice.id == self.choice_id:
                    self.choice, self.index = choice, i
                    break
        await self.host.on_choice_delete(self.scene_id, self.choice_id)

    async def _revert(self) -> None:
        if self.choice is None:
            msg = f"Choice '{self.choice_id}' was never captured; cannot undo delete"
            raise RuntimeError(msg)
        await self.host.on_choice_add(self.scene_id, self.choice, index=self.index)


class UpdateChoiceCommand(EditorCommand):
    def __init__(self, host: EditorHost, scene_id: str, choice_id: str, updates: Mapping[str, Any]) -> None:
        fields = frozenset(updates)
        super().__init__(
            host,
            f"Update choice '{choice_id}' ({', '.join(sorted(fields))})",
            CommandMetadata(
                type="update_choice",
                mergeable=bool(fields) and fields <= MERGEABLE_CHOICE_FIELDS,
                group_type=f"choice_update:{','.join(sorted(fields))}",
                category="choice",
                target=f"{scene_id}/{choice_id}",
            ),
        )
        self.scene_id = scene_id
        self.choice_id = choice_id
        self.updates = dict(updates)
        self.previous: dict[str, Any] = {}

    def can_execute(self) -> bool:
        scene = self.host.get_scene(self.scene_id)
        return scene is not None and scene.get_choice(self.choice_id) is not None

    async def _apply(self) -> None:
        scene = self.host.get_scene(self.scene_id)
        choice = scene.get_choice(self.choice_id) if scene else None
        if choice is not None:
            current = choice.model_dump()
            self.previous = {key: current.get(key) for key in self.updates}
        await self.host.on_choice_update(self.scene_id, self.choice_id, self.updates)

    async def _revert(self) -> None:
        await self.host.on_choice_update(self.scene_id, self.choice_id, self.previous)

    def _absorb(self, other: Command) -> bool:
        assert isinstance(other, UpdateChoiceCommand)
        self.updates = dict(other.updates)
        return True


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


def _current_target(host: EditorHost, scene_id: str, choice_id: str) -> str | None:
    scene = host.get_scene(scene_id)
    choice = scene.get_choice(choice_id) if scene else None
    return choice.target_scene_id if choice else None


class CreateConnectionCommand(EditorCommand):
    """Point a choice at a scene; undo restores the previous target (or none)."""

    def __init__(self, host: EditorHost, from_scene_id: str, choice_id: str, to_scene_id: str) -> None:
        super().__init__(
            host,
            f"Connect '{from_scene_id}' to '{to_scene_id}'",
            CommandMetadata(type="create_connection", category="connection", target=f"{from_scene_id}/{choice_id}"),
        )
        self.connection = Connection(from_scene_id=from_scene_id, choice_id=choice_id, to_scene_id=to_scene_id)
        self.previous_target: str | None = None

    async def _apply(self) -> None:
        conn = self.connection
        self.previous_target = _current_target(self.host, conn.from_scene_id, conn.choice_id)
        await self.host.on_connection_create(conn)

    async def _revert(self) -> None:
        previous = self.connection.model_copy(update={"to_scene_id": self.previous_target})
        if self.previous_target is None:
            await self.host.on_connection_delete(previous)
        else:
            await self.host.on_connection_create(previous)


class DeleteConnectionCommand(EditorCommand):
    def __init__(self, host: EditorHost, from_scene_id: str, choice_id: str) -> None:
        super().__init__(
            host,
            f"Disconnect choice '{choice_id}' of '{from_scene_id}'",
            CommandMetadata(type="delete_connection", category="connection", target=f"{from_scene_id}/{choice_id}"),
        )
        self.connection = Connection(from_scene_id=from_scene_id, choice_id=choice_id)
        self.previous_target: str | None = None

    async def _apply(self) -> None:
        conn = self.connection
        self.previous_target = _current_target(self.host, conn.from_scene_id, conn.choice_id)
        await self.host.on_connection_delete(conn)

    async def _revert(self) -> None:
        if self.previous_target is not None:
            await self.host.on_connection_create(
                self.connection.model_copy(update={"to_scene_id": self.previous_target})
            )


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

StatOperation = Literal["add", "update", "delete"]


class UpdateStatsCommand(EditorCommand):
    """Add, replace or delete a stat definition.

    Args:
        host: Editor host.
        operation: ``"add"``, ``"update"`` or ``"delete"``.
        stat_id: Target stat ID.
        stat: New definition (required for add and update).
    """

    def __init__(
        self,
        host: EditorHost,
        operation: StatOperation,
        stat_id: str,
        stat: Stat | None = None,
    ) -> None:
        if operation not in ("add", "update", "delete"):
            msg = f"Unknown stat operation '{operation}'. Expected add, update or delete"
            raise ValueError(msg)
        if operation != "delete" and stat is None:
            msg = f"Stat operation '{operation}' requires a stat definition"
            raise ValueError(msg)
        super().__init__(
            host,
            f"{operation.capitalize()} stat '{stat_id}'",
            CommandMetadata(type=f"{operation}_stat", category="stat", target=stat_id),
        )
        self.operation = operation
        self.stat_id = stat_id
        self.stat = stat.model_copy(deep=True) if stat else None
        self.previous: Stat | None = None
        self.index: int | None = None

    def can_execute(self) -> bool:
        exists = self.host.get_stat(self.stat_id) is not None
        return not exists if self.operation == "add" else exists

    async def _apply(self) -> None:
        if self.operation == "add":
            assert self.stat is not None
            await self.host.on_stat_add(self.stat)
            return
        self.previous = self.host.get_stat(self.stat_id)
        self.index = self.host.stat_index(self.stat_id)
        if self.operation == "update":
            assert self.stat is not None
            await self.host.on_stat_update(self.stat_id, self.stat)
        else:
            await self.host.on_stat_delete(self.stat_id)

    async def _revert(self) -> None:
        if self.operation == "add":
            await self.host.on_stat_delete(self.stat_id)
            return
        if self.previous is None:
            msg = f"Stat '{self.stat_id}' was never captured; cannot undo {self.operation}"
            raise RuntimeError(msg)
        if self.operation == "update":
            await self.host.on_stat_update(self.stat_id, self.previous)
        else:
            await self.host.on_stat_add(self.previous, index=self.index)


# ---------------------------------------------------------------------------
# Whole adventure
# ---------------------------------------------------------------------------


def _is_blank(adventure: Adventure) -> bool:
    return not (adventure.scenes or adventure.stats or adventure.flags or adventure.title)


class ImportAdventureCommand(EditorCommand):
    """Replace the whole adventure; undo restores the previous one."""

    def __init__(self, host: EditorHost, adventure: Adventure) -> None:
        super().__init__(
            host,
            f"Import adventure '{adventure.title or adventure.id}'",
            CommandMetadata(type="import_adventure", category="adventure", target=adventure.id),
        )
        self.adventure = adventure.model_copy(deep=True)
        self.previous: Adventure | None = None

    async def _apply(self) -> None:
        self.previous = self.host.snapshot()
        await self.host.on_adventure_import(self.adventure)

    async def _revert(self) -> None:
        if self.previous is None or _is_blank(self.previous):
            await self.host.on_adventure_clear()
        else:
            await self.host.on_adventure_import(self.previous)


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

BulkOperation = Literal["delete_scenes", "move_scenes", "update_scenes"]
ProgressCallback = Callable[[int, int, Command], None]


def _expand_bulk(host: EditorHost, operation: str, items: Any) -> list[Command]:
    if operation == "delete_scenes":
        return [DeleteSceneCommand(host, scene_id) for scene_id in items]
    if operation == "move_scenes":
        pairs: Iterable[tuple[str, Position]] = items.items() if isinstance(items, Mapping) else items
        return [MoveSceneCommand(host, scene_id, position) for scene_id, position in pairs]
    if operation == "update_scenes":
        return [UpdateSceneCommand(host, scene_id, updates) for scene_id, updates in items.items()]
    msg = f"Unknown bulk operation '{operation}'. Expected delete_scenes, move_scenes or update_scenes"
    raise ValueError(msg)


class BulkOperationCommand(CompositeCommand):
    """Apply one logical operation to many scenes, all or nothing.

    ``items`` depends on the operation:

    - ``delete_scenes``: iterable of scene IDs
    - ``move_scenes``: mapping (or pairs) of scene ID -> ``Position``
    - ``update_scenes``: mapping of scene ID -> field updates

    If the (k+1)-th sub-command fails, the k that succeeded are undone in
    reverse order and ``BulkOperationError`` is raised, leaving the graph
    as it was before the operation.

    Args:
        on_progress: Called after each sub-command as ``(done, total, command)``.

    Raises:
        ValueError: If *items* is empty or *operation* is unknown.
    """

    def __init__(
        self,
        host: EditorHost,
        operation: BulkOperation,
        items: Any,
        *,
        on_progress: ProgressCallback | None = None,
        description: str | None = None,
    ) -> None:
        commands = _expand_bulk(host, operation, items)
        if not commands:
            msg = f"Bulk {operation} needs at least one item"
            raise ValueError(msg)
        super().__init__(
            description or f"{operation.replace('_', ' ').capitalize()} ({len(commands)})",
            commands,
            CommandMetadata(type="bulk_operation", category="bulk", extra={"operation": operation}),
        )
        self.operation = operation
        self.on_progress = on_progress

    async def execute(self) -> None:
        total = len(self.commands)
        for done, command in enumerate(self.commands):
            try:
                await command.execute()
            except Exception as e:
                log.warning(
                    "bulk_operation_failed",
                    operation=self.operation,
                    step=done + 1,
                    total=total,
                    error=str(e),
                )
                await self.rollback()
                raise BulkOperationError(self.operation, done, total, str(e)) from e
            if self.on_progress is not None:
                self.on_progress(done + 1, total, command)
        self.executed = True
