"""Command history manager.

A linear undo/redo stack with a cursor in ``[-1, len - 1]``. Entries after
the cursor are the redo tail; executing a new command discards it.

On top of plain undo/redo:

- Merging: a mergeable command that arrives within ``merge_window``
  seconds of the most recent command and matches it (class, target,
  group type) is absorbed into it instead of becoming a new entry.
- Grouping: groupable commands of the same group type are folded into a
  pending ``CompositeCommand``. The group is finalized when its timer
  fires, when a different command arrives, or before undo/redo/clear.
- Snapshots: callers may store state snapshots tied to the current entry.
  They are purged with the redo tail and with evicted entries.

Execute, undo and redo are mutually exclusive. A call made while another
is in flight is rejected with ``HistoryBusyError``, not queued.
"""

from __future__ import annotations

import asyncio
import copy
import time
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from branchcraft.commands.base import Command, CommandMetadata, CompositeCommand
from branchcraft.commands.errors import (
    CommandNotExecutableError,
    HistoryBusyError,
    NothingToRedoError,
    NothingToUndoError,
)
from branchcraft.config import HistoryConfig
from branchcraft.observability.logging import editor_context, get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

log = get_logger(__name__)


@dataclass(frozen=True)
class HistoryEvent:
    """Notification sent to history listeners.

    Attributes:
        type: ``execute``, ``merge``, ``group``, ``undo``, ``redo``,
            ``clear`` or ``snapshot_needed``.
        command: The command concerned, if any.
        can_undo: Undo availability after the change.
        can_redo: Redo availability after the change.
        details: Extra data (e.g. the entry index for ``snapshot_needed``).
    """

    type: str
    command: Command | None
    can_undo: bool
    can_redo: bool
    details: dict[str, Any] = field(default_factory=dict)


HistoryListener = Callable[[HistoryEvent], None]


@dataclass
class Snapshot:
    """Caller-provided state stored alongside a history entry."""

    id: str
    state: Any
    description: str
    index: int
    command_id: str | None
    timestamp: float = field(default_factory=time.time)


@dataclass
class HistoryStats:
    total_commands: int = 0
    undo_operations: int = 0
    redo_operations: int = 0
    failed_commands: int = 0
    merge_count: int = 0
    group_count: int = 0
    snapshot_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_commands": self.total_commands,
            "undo_operations": self.undo_operations,
            "redo_operations": self.redo_operations,
            "failed_commands": self.failed_commands,
            "merge_count": self.merge_count,
            "group_count": self.group_count,
            "snapshot_count": self.snapshot_count,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """Read-only view of one history entry."""

    id: str
    description: str
    timestamp: float
    executed: bool
    type: str
    is_current: bool
    is_redoable: bool
    is_group: bool


@dataclass(frozen=True)
class HistoryView:
    """Read-only view of the whole history, for display."""

    entries: tuple[HistoryEntry, ...]
    current_index: int
    can_undo: bool
    can_redo: bool
    pending: tuple[str, ...]
    stats: dict[str, int]


class CommandHistory:
    """Undo/redo stack with merging, grouping and snapshots.

    Args:
        config: History settings; defaults apply when omitted.
    """

    def __init__(self, config: HistoryConfig | None = None) -> None:
        self.config = config or HistoryConfig()
        self._history: list[Command] = []
        self._cursor = -1
        self._busy: str | None = None

        self._pending: CompositeCommand | None = None
        self._group_timer: asyncio.TimerHandle | None = None

        self._snapshots: dict[str, Snapshot] = {}
        self._snapshot_seq = 0
        self._listeners: list[HistoryListener] = []
        self.stats = HistoryStats()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def current_index(self) -> int:
        return self._cursor

    @property
    def is_busy(self) -> bool:
        return self._busy is not None

    @property
    def pending_group(self) -> CompositeCommand | None:
        return self._pending

    def __len__(self) -> int:
        return len(self._history)

    def can_undo(self) -> bool:
        return self._cursor >= 0 or self._pending is not None

    def can_redo(self) -> bool:
        return self._pending is None and self._cursor < len(self._history) - 1

    @property
    def undo_description(self) -> str | None:
        if self._pending is not None:
            return self._group_description(self._pending)
        if self._cursor < 0:
            return None
        return self._history[self._cursor].description

    @property
    def redo_description(self) -> str | None:
        if not self.can_redo():
            return None
        return self._history[self._cursor + 1].description

    def undoable_commands(self, limit: int | None = None) -> list[Command]:
        """Commands that undo would revert, most recent first."""
        commands = list(reversed(self._history[: self._cursor + 1]))
        return commands[:limit] if limit is not None else commands

    def redoable_commands(self, limit: int | None = None) -> list[Command]:
        """Commands that redo would re-apply, next first."""
        commands = self._history[self._cursor + 1 :]
        return commands[:limit] if limit is not None else commands

    # -------------------------------------------------------------------------
    # Execute / undo / redo
    # -------------------------------------------------------------------------

    async def execute_command(self, command: Command) -> Command:
        """Execute *command* and record it.

        Returns:
            The command that now represents the edit in history: *command*
            itself, or the earlier command it was merged into.

        Raises:
            HistoryBusyError: If another history operation is in flight.
            CommandNotExecutableError: If the command's guard refuses.
            Exception: Whatever the command raised; history is unchanged.
        """
        with self._operation("execute", command):
            try:
                if not command.can_execute():
                    raise CommandNotExecutableError(command.description)

                await command.execute()
                self.stats.total_commands += 1
                self._truncate_redo_tail()

                target = self._try_merge(command)
                if target is not None:
                    self.stats.merge_count += 1
                    if self._pending is not None:
                        self._restart_group_timer()
                    self._notify("merge", target, merged_id=command.id)
                    log.debug("command_merged", into=target.id)
                    return target

                if self.config.enable_grouping and command.metadata.groupable:
                    self._add_to_group(command)
                else:
                    self._finalize_pending_group()
                    self._append(command)

                self._notify("execute", command)
                log.info("command_executed", description=command.description, history_size=len(self._history))
                return command
            except Exception as e:
                self.stats.failed_commands += 1
                log.error("command_failed", description=command.description, error=str(e))
                raise

    async def undo(self) -> Command:
        """Undo the entry at the cursor.

        Raises:
            HistoryBusyError: If another history operation is in flight.
            NothingToUndoError: If there is nothing to undo.
        """
        with self._operation("undo"):
            self._finalize_pending_group()
            if self._cursor < 0:
                raise NothingToUndoError()
            command = self._history[self._cursor]
            if not command.can_undo():
                raise CommandNotExecutableError(command.description, action="undone")
            await command.undo()
            self._cursor -= 1
            self.stats.undo_operations += 1
            self._notify("undo", command)
            log.info("command_undone", description=command.description, current_index=self._cursor)
            return command

    async def redo(self) -> Command:
        """Re-execute the entry after the cursor.

        The cursor is restored if the command fails.

        Raises:
            HistoryBusyError: If another history operation is in flight.
            NothingToRedoError: If there is nothing to redo.
        """
        with self._operation("redo"):
            self._finalize_pending_group()
            if self._cursor >= len(self._history) - 1:
                raise NothingToRedoError()
            command = self._history[self._cursor + 1]
            if not command.can_execute():
                raise CommandNotExecutableError(command.description)
            self._cursor += 1
            try:
                await command.execute()
            except Exception as e:
                self._cursor -= 1
                log.error("redo_failed", description=command.description, error=str(e))
                raise
            self.stats.redo_operations += 1
            self._notify("redo", command)
            log.info("command_redone", description=command.description, current_index=self._cursor)
            return command

    async def jump_to(self, index: int) -> int:
        """Undo or redo until the cursor is at *index*.

        Args:
            index: Target cursor, ``-1`` for "before the first entry".

        Returns:
            Number of undo/redo steps performed.

        Raises:
            HistoryBusyError: If another history operation is in flight.
            IndexError: If *index* is outside the history.
        """
        if self.is_busy:
            raise HistoryBusyError("jump")
        self._finalize_pending_group()
        if not -1 <= index < len(self._history):
            msg = f"History index {index} out of range [-1, {len(self._history) - 1}]"
            raise IndexError(msg)
        steps = 0
        while self._cursor > index:
            await self.undo()
            steps += 1
        while self._cursor < index:
            await self.redo()
            steps += 1
        return steps

    async def execute_batch(self, commands: Iterable[Command], description: str) -> Command:
        """Execute *commands* atomically as one history entry.

        Raises:
            ValueError: If *commands* is empty.
        """
        children = list(commands)
        if not children:
            msg = f"Batch {description!r} has no commands"
            raise ValueError(msg)
        batch = CompositeCommand(description, children, CommandMetadata(type="batch", category="batch"))
        return await self.execute_command(batch)

    def clear(self) -> None:
        """Drop every entry, the pending group and all snapshots."""
        self._cancel_group_timer()
        self._pending = None
        self._history.clear()
        self._cursor = -1
        self._snapshots.clear()
        self._notify("clear", None)
        log.info("history_cleared")

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: HistoryListener) -> Callable[[], None]:
        """Subscribe to history events.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, event_type: str, command: Command | None, **details: Any) -> None:
        event = HistoryEvent(event_type, command, self.can_undo(), self.can_redo(), details)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.warning("history_listener_failed", event_type=event_type, error=str(e))

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def create_snapshot(self, state: Any, description: str = "Snapshot") -> str:
        """Store a deep copy of *state* tied to the current entry.

        Returns:
            The snapshot ID.
        """
        self._snapshot_seq += 1
        snapshot_id = f"snapshot_{self._snapshot_seq}_{self._cursor}"
        command_id = self._history[self._cursor].id if self._cursor >= 0 else None
        self._snapshots[snapshot_id] = Snapshot(
            id=snapshot_id,
            state=copy.deepcopy(state),
            description=description,
            index=self._cursor,
            command_id=command_id,
        )
        self.stats.snapshot_count += 1
        while len(self._snapshots) > self.config.max_history_size:
            del self._snapshots[next(iter(self._snapshots))]
        return snapshot_id

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        return self._snapshots.get(snapshot_id)

    @property
    def snapshot_ids(self) -> list[str]:
        return list(self._snapshots)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def get_history(self) -> HistoryView:
        """Return a read-only view of the entries and cursor."""
        entries = tuple(
            HistoryEntry(
                id=command.id,
                description=command.description,
                timestamp=command.timestamp,
                executed=command.executed,
                type=command.metadata.type,
                is_current=i == self._cursor,
                is_redoable=i > self._cursor,
                is_group=isinstance(command, CompositeCommand),
            )
            for i, command in enumerate(self._history)
        )
        pending: tuple[str, ...] = ()
        if self._pending is not None:
            pending = tuple(c.description for c in self._pending.commands)
        return HistoryView(
            entries=entries,
            current_index=self._cursor,
            can_undo=self.can_undo(),
            can_redo=self.can_redo(),
            pending=pending,
            stats=self.get_stats(),
        )

    def get_stats(self) -> dict[str, int]:
        return {
            **self.stats.to_dict(),
            "history_size": len(self._history),
            "current_index": self._cursor,
            "snapshots": len(self._snapshots),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str, command: Command | None = None) -> Iterator[None]:
        self._acquire(name)
        try:
            with editor_context(
                operation=name,
                command_id=command.id if command is not None else None,
                command_type=command.metadata.type if command is not None else None,
            ):
                yield
        finally:
            self._release()

    def _acquire(self, operation: str) -> None:
        if self._busy is not None:
            raise HistoryBusyError(operation)
        self._busy = operation

    def _release(self) -> None:
        self._busy = None

    def _truncate_redo_tail(self) -> None:
        if self._cursor >= len(self._history) - 1:
            return
        removed = self._history[self._cursor + 1 :]
        del self._history[self._cursor + 1 :]
        removed_ids = {c.id for c in removed}
        for snapshot_id, snapshot in list(self._snapshots.items()):
            if snapshot.index > self._cursor or snapshot.command_id in removed_ids:
                del self._snapshots[snapshot_id]
        log.debug("redo_tail_discarded", count=len(removed))

    def _last_command(self) -> Command | None:
        if self._pending is not None and self._pending.commands:
            return self._pending.commands[-1]
        if self._cursor >= 0 and self._cursor == len(self._history) - 1:
            return self._history[self._cursor]
        return None

    def _try_merge(self, command: Command) -> Command | None:
        if not (self.config.enable_merging and command.metadata.mergeable):
            return None
        last = self._last_command()
        if last is None or not last.executed:
            return None
        if command.timestamp - last.timestamp > self.config.merge_window:
            return None
        return last if last.merge_with(command) else None

    def _add_to_group(self, command: Command) -> None:
        pending = self._pending
        if pending is not None and pending.metadata.group_type == command.metadata.group_type:
            pending.add_command(command)
        else:
            self._finalize_pending_group()
            self._pending = CompositeCommand(
                f"Group: {command.description}",
                [command],
                CommandMetadata(
                    type="group",
                    group_type=command.metadata.group_type,
                    category=command.metadata.category,
                ),
            )
            self._pending.executed = True
        self._restart_group_timer()

    def _restart_group_timer(self) -> None:
        self._cancel_group_timer()
        loop = asyncio.get_running_loop()
        self._group_timer = loop.call_later(self.config.group_timeout, self._finalize_pending_group)

    def _cancel_group_timer(self) -> None:
        if self._group_timer is not None:
            self._group_timer.cancel()
            self._group_timer = None

    def _finalize_pending_group(self) -> None:
        self._cancel_group_timer()
        pending, self._pending = self._pending, None
        if pending is None:
            return
        if len(pending.commands) == 1:
            self._append(pending.commands[0])
            return
        pending.description = self._group_description(pending)
        self._append(pending)
        self.stats.group_count += 1
        self._notify("group", pending, size=len(pending.commands))

    @staticmethod
    def _group_description(group: CompositeCommand) -> str:
        if len(group.commands) == 1:
            return group.commands[0].description
        return f"{group.commands[0].description} (+{len(group.commands) - 1} more)"

    def _append(self, command: Command) -> None:
        self._history.append(command)
        self._cursor += 1

        if len(self._history) > self.config.max_history_size:
            evicted = self._history.pop(0)
            self._cursor -= 1
            self._purge_snapshots_for(evicted)

        if self.config.enable_snapshots and (self._cursor + 1) % self.config.snapshot_interval == 0:
            self._notify("snapshot_needed", command, index=self._cursor)

    def _purge_snapshots_for(self, evicted: Command) -> None:
        ids = {evicted.id}
        if isinstance(evicted, CompositeCommand):
            ids.update(c.id for c in evicted.commands)
        for snapshot_id, snapshot in list(self._snapshots.items()):
            if snapshot.command_id in ids:
                del self._snapshots[snapshot_id]
            else:
                snapshot.index -= 1
