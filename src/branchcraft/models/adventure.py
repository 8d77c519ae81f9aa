"""Adventure graph models.

An adventure is a directed graph: scenes are nodes, choices are edges
pointing at a target scene. These models are the shape the editor hands
to the validation engine and that commands mutate through the host
callbacks.

The editor serializes with camelCase keys (``startSceneId``,
``targetSceneId``, ``onEnter``); both camelCase and snake_case are
accepted on input.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

STAT_CONDITION_TYPES = frozenset({"stat"})
FLAG_CONDITION_TYPES = frozenset({"flag"})
STAT_ACTION_TYPES = frozenset({"set_stat", "add_stat", "multiply_stat"})
FLAG_ACTION_TYPES = frozenset({"set_flag", "toggle_flag"})


class _EditorModel(BaseModel):
    """Base for models exchanged with the editor (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class Position(_EditorModel):
    """Canvas position of a scene node."""

    x: float = 0.0
    y: float = 0.0


class Condition(_EditorModel):
    """A guard on a choice.

    A condition is either a leaf comparison (``type``/``key``/``operator``/
    ``value``) or a group combining nested ``conditions`` with ``logic``.
    """

    type: str = ""
    key: str = ""
    operator: str = "eq"
    value: Any = None
    logic: str | None = None
    conditions: list[Condition] = Field(default_factory=list)

    @property
    def is_group(self) -> bool:
        """True if this condition combines nested conditions."""
        return bool(self.conditions)


class Action(_EditorModel):
    """A side effect triggered by a choice or on scene enter/exit."""

    type: str = ""
    key: str = ""
    value: Any = None


class Choice(_EditorModel):
    """A directed edge from the owning scene to ``target_scene_id``.

    The target may be None or name a scene that does not exist; both are
    reported by validation rather than rejected here.
    """

    id: str
    text: str = ""
    target_scene_id: str | None = None
    conditions: list[Condition] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)


class Scene(_EditorModel):
    """One narrative beat."""

    id: str
    title: str = ""
    content: str = ""
    choices: list[Choice] = Field(default_factory=list)
    on_enter: list[Action] = Field(default_factory=list)
    on_exit: list[Action] = Field(default_factory=list)
    position: Position | None = None
    tags: list[str] = Field(default_factory=list)

    def get_choice(self, choice_id: str) -> Choice | None:
        """Return the choice with ``choice_id``, or None."""
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class Stat(_EditorModel):
    """A tracked numeric/string/boolean value."""

    id: str
    name: str = ""
    type: str = "number"
    default_value: Any = None
    min: float | None = None
    max: float | None = None


class Flag(_EditorModel):
    """A declared boolean flag."""

    id: str
    name: str = ""
    default_value: bool = False


class Connection(_EditorModel):
    """The edge view of a choice: ``from_scene_id`` --choice_id--> ``to_scene_id``."""

    from_scene_id: str
    choice_id: str
    to_scene_id: str | None = None


class Adventure(_EditorModel):
    """The whole story graph plus its declared stats and flags.

    Attributes:
        last_modified: Caller-supplied change marker. Any value that changes
            whenever the graph changes works (timestamp, revision counter).
    """

    id: str = ""
    title: str = ""
    description: str = ""
    author: str = ""
    start_scene_id: str | None = None
    scenes: list[Scene] = Field(default_factory=list)
    stats: list[Stat] = Field(default_factory=list)
    flags: list[Flag] = Field(default_factory=list)
    last_modified: int | float | str | None = None

    def get_scene(self, scene_id: str) -> Scene | None:
        """Return the scene with ``scene_id``, or None."""
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def scene_index(self, scene_id: str) -> int | None:
        """Return the list position of ``scene_id``, or None."""
        for i, scene in enumerate(self.scenes):
            if scene.id == scene_id:
                return i
        return None

    def get_stat(self, stat_id: str) -> Stat | None:
        """Return the stat with ``stat_id``, or None."""
        for stat in self.stats:
            if stat.id == stat_id:
                return stat
        return None

    def to_editor_dict(self) -> dict[str, Any]:
        """Serialize with the editor's camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")
