"""Undoable editor commands and the history that records them."""

from branchcraft.commands.base import Command, CommandMetadata, CompositeCommand
from branchcraft.commands.editor import (
    BulkOperationCommand,
    CreateChoiceCommand,
    CreateConnectionCommand,
    CreateSceneCommand,
    DeleteChoiceCommand,
    DeleteConnectionCommand,
    DeleteSceneCommand,
    EditorCommand,
    EditorHost,
    ImportAdventureCommand,
    MoveSceneCommand,
    UpdateChoiceCommand,
    UpdateSceneCommand,
    UpdateStatsCommand,
)
from branchcraft.commands.errors import (
    BulkOperationError,
    CommandError,
    CommandNotExecutableError,
    HistoryBusyError,
    NothingToRedoError,
    NothingToUndoError,
)
from branchcraft.commands.history import (
    CommandHistory,
    HistoryEntry,
    HistoryEvent,
    HistoryView,
    Snapshot,
)

__all__ = [
    "BulkOperationCommand",
    "BulkOperationError",
    "Command",
    "CommandError",
    "CommandHistory",
    "CommandMetadata",
    "CommandNotExecutableError",
    "CompositeCommand",
    "CreateChoiceCommand",
    "CreateConnectionCommand",
    "CreateSceneCommand",
    "DeleteChoiceCommand",
    "DeleteConnectionCommand",
    "DeleteSceneCommand",
    "EditorCommand",
    "EditorHost",
    "HistoryBusyError",
    "HistoryEntry",
    "HistoryEvent",
    "HistoryView",
    "ImportAdventureCommand",
    "MoveSceneCommand",
    "NothingToRedoError",
    "NothingToUndoError",
    "Snapshot",
    "UpdateChoiceCommand",
    "UpdateSceneCommand",
    "UpdateStatsCommand",
]
