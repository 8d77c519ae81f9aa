"""Command and history error types.

Command failures are exceptions, not findings: the editor must know the
edit did not happen. Errors raised by host callbacks (for example
:class:`~branchcraft.graph.errors.SceneNotFoundError`) propagate unchanged;
the types here cover the history manager's own refusals.
"""

from __future__ import annotations

from dataclasses import dataclass


class CommandError(Exception):
    """Base class for command and history errors."""


class CommandNotExecutableError(CommandError):
    """Raised when a command's guard refuses execution (or undo)."""

    def __init__(self, description: str, action: str = "executed") -> None:
        self.description = description
        self.action = action
        super().__init__(f"Command cannot be {action}: {description}")


class HistoryBusyError(CommandError):
    """Raised when execute/undo/redo is called while another one is in flight."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation}: another history operation is in progress")


class NothingToUndoError(CommandError):
    """Raised by ``undo()`` when the cursor is before the first entry."""

    def __init__(self) -> None:
        super().__init__("Nothing to undo")


class NothingToRedoError(CommandError):
    """Raised by ``redo()`` when the cursor is at the last entry."""

    def __init__(self) -> None:
        super().__init__("Nothing to redo")


@dataclass
class BulkOperationError(CommandError):
    """Raised when a bulk operation fails part-way.

    The sub-commands that had succeeded were rolled back before this is
    raised; the original exception is chained as ``__cause__``.

    Attributes:
        operation: Bulk operation name (e.g. ``"delete_scenes"``).
        failed_index: Zero-based index of the sub-command that failed.
        total: Number of sub-commands in the operation.
        reason: Message of the underlying error.
    """

    operation: str
    failed_index: int
    total: int
    reason: str

    def __post_init__(self) -> None:
        msg = (
            f"Bulk operation '{self.operation}' failed at step "
            f"{self.failed_index + 1}/{self.total}: {self.reason}"
        )
        super().__init__(msg)
