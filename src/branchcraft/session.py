"""Editor session: one history, one validation engine, one scheduler.

Each open adventure gets its own ``EditorSession``; there is no
process-wide engine or history. Every successful edit (execute, undo,
redo) schedules a debounced validation of the host's current state.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from branchcraft.commands.history import CommandHistory
from branchcraft.config import EditorConfig
from branchcraft.observability.logging import get_logger
from branchcraft.validation.engine import ValidationEngine
from branchcraft.validation.scheduler import DebouncedValidator

if TYPE_CHECKING:
    from collections.abc import Iterable

    from branchcraft.commands.base import Command
    from branchcraft.commands.editor import EditorHost
    from branchcraft.validation.types import ValidationResult

log = get_logger(__name__)

ResultListener = Callable[["ValidationResult"], None]


class EditorSession:
    """Bundle of the editing core for one adventure.

    Args:
        host: Object implementing both ``EditorCallbacks`` and ``EditorState``
            (for example :class:`~branchcraft.graph.graph.StoryGraph`).
        config: Editor configuration; defaults apply when omitted.

    Attributes:
        engine: Validation engine.
        history: Command history.
        scheduler: Debounced validation trigger.
        last_result: Result of the most recent validation, if any.
    """

    def __init__(self, host: EditorHost, config: EditorConfig | None = None) -> None:
        self.host = host
        self.config = config or EditorConfig()
        self.engine = ValidationEngine(self.config.validation)
        self.history = CommandHistory(self.config.history)
        self.scheduler = DebouncedValidator(self.validate, delay=self.config.validation.debounce_seconds)
        self.last_result: ValidationResult | None = None
        self._result_listeners: list[ResultListener] = []

    def on_result(self, listener: ResultListener) -> Callable[[], None]:
        """Subscribe to validation results; returns an unsubscribe function."""
        self._result_listeners.append(listener)
        return lambda: self._result_listeners.remove(listener)

    async def validate(self) -> ValidationResult:
        """Validate the host's current state now."""
        result = await self.engine.validate(self.host.snapshot())
        self.last_result = result
        for listener in list(self._result_listeners):
            try:
                listener(result)
            except Exception as e:
                log.warning("validation_result_listener_failed", error=str(e))
        return result

    async def execute(self, command: Command) -> Command:
        """Execute a command through the history and schedule validation."""
        recorded = await self.history.execute_command(command)
        self.scheduler.notify()
        return recorded

    async def execute_batch(self, commands: Iterable[Command], description: str) -> Command:
        recorded = await self.history.execute_batch(commands, description)
        self.scheduler.notify()
        return recorded

    async def undo(self) -> Command:
        command = await self.history.undo()
        self.scheduler.notify()
        return command

    async def redo(self) -> Command:
        command = await self.history.redo()
        self.scheduler.notify()
        return command

    async def aclose(self) -> None:
        """Stop scheduled validation; waits for an in-flight run."""
        await self.scheduler.aclose()
