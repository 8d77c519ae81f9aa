"""Host protocols the editing core depends on.

Commands never touch the adventure directly. They call the host's
``EditorCallbacks`` (async, may persist or fail) and read current state
through ``EditorState``. The editor injects an implementation; tests and
the CLI use :class:`~branchcraft.graph.graph.StoryGraph`.

Callbacks may raise; the owning command lets the error propagate to the
history manager.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from branchcraft.models.adventure import Adventure, Choice, Connection, Position, Scene, Stat


@runtime_checkable
class EditorCallbacks(Protocol):
    """Mutation surface provided by the host editor."""

    # -- Scenes ----------------------------------------------------------------

    async def on_scene_create(self, scene: Scene, *, index: int | None = None) -> None:
        """Insert *scene* (at *index*, or at the end)."""
        ...

    async def on_scene_delete(self, scene_id: str) -> None:
        """Remove a scene. Incoming connections are the caller's concern."""
        ...

    async def on_scene_move(self, scene_id: str, position: Position) -> None:
        """Set a scene's canvas position."""
        ...

    async def on_scene_update(self, scene_id: str, updates: dict[str, Any]) -> None:
        """Merge field updates into an existing scene."""
        ...

    # -- Choices ---------------------------------------------------------------

    async def on_choice_add(self, scene_id: str, choice: Choice, *, index: int | None = None) -> None:
        """Insert *choice* into a scene (at *index*, or at the end)."""
        ...

    async def on_choice_delete(self, scene_id: str, choice_id: str) -> None:
        """Remove a choice from a scene."""
        ...

    async def on_choice_update(self, scene_id: str, choice_id: str, updates: dict[str, Any]) -> None:
        """Merge field updates into an existing choice."""
        ...

    # -- Connections -----------------------------------------------------------

    async def on_connection_create(self, connection: Connection) -> None:
        """Point the connection's choice at ``connection.to_scene_id``."""
        ...

    async def on_connection_delete(self, connection: Connection) -> None:
        """Clear the connection's choice target."""
        ...

    # -- Stats -----------------------------------------------------------------

    async def on_stat_add(self, stat: Stat, *, index: int | None = None) -> None:
        """Define a new stat."""
        ...

    async def on_stat_update(self, stat_id: str, stat: Stat) -> None:
        """Replace a stat definition."""
        ...

    async def on_stat_delete(self, stat_id: str) -> None:
        """Remove a stat definition."""
        ...

    # -- Whole adventure -------------------------------------------------------

    async def on_adventure_import(self, adventure: Adventure) -> None:
        """Replace the whole adventure."""
        ...

    async def on_adventure_clear(self) -> None:
        """Reset to an empty adventure."""
        ...


@runtime_checkable
class EditorState(Protocol):
    """Read-only view of the live adventure used by commands to capture undo data.

    Returned objects are copies; mutating them does not affect the host.
    """

    def get_scene(self, scene_id: str) -> Scene | None:
        """Return a copy of the scene, or None."""
        ...

    def scene_index(self, scene_id: str) -> int | None:
        """Return the scene's list position, or None."""
        ...

    def get_stat(self, stat_id: str) -> Stat | None:
        """Return a copy of the stat definition, or None."""
        ...

    def stat_index(self, stat_id: str) -> int | None:
        """Return the stat's list position, or None."""
        ...

    def incoming_connections(self, scene_id: str) -> list[Connection]:
        """Return connections from *other* scenes whose choices target *scene_id*."""
        ...

    def snapshot(self) -> Adventure:
        """Return a deep copy of the whole adventure."""
        ...
