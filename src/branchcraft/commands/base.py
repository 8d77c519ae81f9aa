"""Command primitives.

A command is one undoable unit of work. Its lifecycle is::

    created -> executed -> undone <-> executed (redo) -> discarded

The history manager checks ``can_execute()`` / ``can_undo()`` before
calling ``execute()`` / ``undo()``; commands do not guard themselves.

``CompositeCommand`` runs children in order and is atomic: if a child
fails, the children that already ran are undone in reverse order and the
original error is re-raised.
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from branchcraft.observability.logging import get_logger

log = get_logger(__name__)


def _new_command_id() -> str:
    return f"cmd_{uuid.uuid4().hex[:12]}"


@dataclass
class CommandMetadata:
    """Descriptive flags the history manager uses for merging and grouping.

    Attributes:
        type: Command type tag (e.g. ``"move_scene"``).
        mergeable: May collapse into the previous command of the same kind.
        groupable: May be folded into a pending group of the same group type.
        group_type: Merge/group compatibility tag.
        category: UI category (``"scene"``, ``"choice"``, ...).
        target: Logical target (e.g. the scene ID) that merges must share.
        extra: Free-form data for the UI.
    """

    type: str = "command"
    mergeable: bool = False
    groupable: bool = False
    group_type: str | None = None
    category: str = "general"
    target: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class Command(ABC):
    """Base class for undoable edits.

    Attributes:
        id: Unique command ID (``cmd_<hex>``).
        description: Human-readable label for the history UI.
        metadata: Merge/group flags and target.
        executed: True between a successful ``execute()`` and ``undo()``.
        timestamp: Wall-clock creation time (updated by merges).
    """

    def __init__(self, description: str, metadata: CommandMetadata | None = None) -> None:
        self.id = _new_command_id()
        self.description = description
        self.metadata = metadata or CommandMetadata()
        self.executed = False
        self.timestamp = time.time()

    @abstractmethod
    async def execute(self) -> None:
        """Apply the edit. Also used for redo."""

    @abstractmethod
    async def undo(self) -> None:
        """Revert the edit."""

    def can_execute(self) -> bool:
        return True

    def can_undo(self) -> bool:
        return self.executed

    def merge_with(self, other: Command) -> bool:
        """Absorb *other* into this command.

        Only commands of the same class, both mergeable, with the same
        target and group type can merge. On success this command takes
        over *other*'s terminal state and timestamp, and the caller must
        discard *other*.

        Returns:
            True if merged.
        """
        if type(other) is not type(self):
            return False
        mine, theirs = self.metadata, other.metadata
        if not (mine.mergeable and theirs.mergeable):
            return False
        if mine.target != theirs.target or mine.group_type != theirs.group_type:
            return False
        if not self._absorb(other):
            return False
        self.timestamp = other.timestamp
        return True

    def _absorb(self, other: Command) -> bool:
        """Copy *other*'s terminal state into this command. Override to support merging."""
        return False

    def info(self) -> dict[str, Any]:
        """Display data for the history UI."""
        return {
            "id": self.id,
            "description": self.description,
            "timestamp": self.timestamp,
            "executed": self.executed,
            "type": self.metadata.type,
            "category": self.metadata.category,
            "target": self.metadata.target,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, description={self.description!r}, executed={self.executed})"


class CompositeCommand(Command):
    """An ordered, atomic group of commands."""

    def __init__(
        self,
        description: str,
        commands: list[Command] | None = None,
        metadata: CommandMetadata | None = None,
    ) -> None:
        super().__init__(description, metadata or CommandMetadata(type="composite"))
        self.commands: list[Command] = list(commands or [])

    def add_command(self, command: Command) -> None:
        self.commands.append(command)

    async def execute(self) -> None:
        """Execute children in order; roll back and re-raise on failure."""
        for command in self.commands:
            try:
                await command.execute()
            except Exception:
                await self.rollback()
                raise
        self.executed = True

    async def undo(self) -> None:
        """Undo executed children in reverse order."""
        for command in reversed(self.commands):
            if command.executed:
                await command.undo()
        self.executed = False

    async def rollback(self) -> None:
        """Undo executed children in reverse order, logging (not raising) failures."""
        for command in reversed(self.commands):
            if not command.executed:
                continue
            try:
                await command.undo()
            except Exception as e:
                log.warning(
                    "command_rollback_failed",
                    command_id=command.id,
                    description=command.description,
                    error=str(e),
                )

    def can_execute(self) -> bool:
        return all(command.can_execute() for command in self.commands)

    def can_undo(self) -> bool:
        if not self.commands:
            return self.executed
        return self.executed and any(command.executed for command in self.commands)

    def info(self) -> dict[str, Any]:
        data = super().info()
        data["children"] = [command.info() for command in self.commands]
        return data

    def __len__(self) -> int:
        return len(self.commands)
