"""Graph integrity error types with editor-actionable feedback.

These errors are raised by the story graph host when an edit violates
referential integrity, similar to foreign key constraint violations in
databases. Commands let them propagate so the history manager can
report the failed edit.

Each error can format itself as markdown feedback for the editor UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


class GraphIntegrityError(Exception):
    """Base class for graph integrity violations.

    Subclasses must implement to_feedback() to provide an actionable
    message for the author.
    """

    def to_feedback(self) -> str:
        """Format error as actionable feedback.

        Returns:
            Human-readable message explaining what's wrong and how to fix it.
        """
        raise NotImplementedError


def _suggestions(missing_id: str, available: list[str]) -> list[str]:
    """Find similar IDs that might be typos."""
    return get_close_matches(missing_id, available, n=3, cutoff=0.6)


def _format_not_found(kind: str, missing_id: str, available: list[str], context: str) -> str:
    lines = [
        f"## Reference Error: {kind} Not Found",
        "",
        f"**You referenced**: `{missing_id}`",
    ]
    if context:
        lines.append(f"**Context**: {context}")
    lines.extend(["", f"**Problem**: This {kind.lower()} does not exist.", ""])

    suggestions = _suggestions(missing_id, available)
    if suggestions:
        lines.append("**Did you mean one of these?**")
        for s in suggestions:
            lines.append(f"  - `{s}`")
        lines.append("")

    if available:
        lines.append("**Valid IDs**:")
        for a in sorted(available)[:20]:
            lines.append(f"  - `{a}`")
        if len(available) > 20:
            lines.append(f"  - ... and {len(available) - 20} more")

    return "\n".join(lines)


@dataclass
class SceneNotFoundError(GraphIntegrityError):
    """Raised when an edit references a scene that does not exist.

    Attributes:
        scene_id: The ID that was referenced but doesn't exist.
        available: Scene IDs that could be used instead.
        context: Description of where the reference occurred.
    """

    scene_id: str
    available: list[str] = field(default_factory=list)
    context: str = ""

    def __post_init__(self) -> None:
        msg = f"Scene '{self.scene_id}' not found"
        if self.context:
            msg += f" ({self.context})"
        super().__init__(msg)

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return _format_not_found("Scene", self.scene_id, self.available, self.context)


@dataclass
class SceneExistsError(GraphIntegrityError):
    """Raised when creating a scene whose ID is already taken.

    Attributes:
        scene_id: The ID that already exists.
    """

    scene_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Scene '{self.scene_id}' already exists")

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return f"""## Error: Scene Already Exists

**You tried to create**: `{self.scene_id}`

**Problem**: A scene with this ID already exists in the adventure.

**Solutions**:
1. Use a different ID if this is meant to be a new scene
2. Edit the existing scene instead of creating it again
"""


@dataclass
class ChoiceNotFoundError(GraphIntegrityError):
    """Raised when an edit references a choice missing from its scene.

    Attributes:
        scene_id: Scene that was searched.
        choice_id: The choice ID that was not found.
        available: Choice IDs present on the scene.
    """

    scene_id: str
    choice_id: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Choice '{self.choice_id}' not found in scene '{self.scene_id}'")

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return _format_not_found(
            "Choice", self.choice_id, self.available, f"in scene `{self.scene_id}`"
        )


@dataclass
class ChoiceExistsError(GraphIntegrityError):
    """Raised when adding a choice whose ID is already used in the scene."""

    scene_id: str
    choice_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Choice '{self.choice_id}' already exists in scene '{self.scene_id}'")

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return (
            "## Error: Choice Already Exists\n\n"
            f"**Scene**: `{self.scene_id}`\n"
            f"**Choice**: `{self.choice_id}`\n\n"
            "**Problem**: Choice IDs must be unique within their scene."
        )


@dataclass
class StatNotFoundError(GraphIntegrityError):
    """Raised when updating or deleting a stat that is not defined."""

    stat_id: str
    available: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__init__(f"Stat '{self.stat_id}' not found")

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return _format_not_found("Stat", self.stat_id, self.available, "")


@dataclass
class StatExistsError(GraphIntegrityError):
    """Raised when adding a stat whose ID is already defined."""

    stat_id: str

    def __post_init__(self) -> None:
        super().__init__(f"Stat '{self.stat_id}' already exists")

    def to_feedback(self) -> str:
        """Format as actionable feedback."""
        return (
            "## Error: Stat Already Exists\n\n"
            f"**You tried to add**: `{self.stat_id}`\n\n"
            "**Solution**: Update the existing stat or pick another ID."
        )
