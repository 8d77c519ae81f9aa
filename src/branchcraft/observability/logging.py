"""Structured logging for Branchcraft.

Events are created with structlog and handed to the standard ``logging``
tree, where up to two handlers render them:

- the console (rich, stderr), filtered by the ``-v`` count
- ``<log_dir>/debug.jsonl`` when ``--log-dir`` is given, one JSON object
  per event at DEBUG and above

Editor operations bind their context with :func:`editor_context`, so every
event logged below them (rollbacks and rule failures included) carries the
operation, command and adventure it belongs to.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from collections.abc import Iterator, MutableMapping
    from pathlib import Path

    from structlog.typing import Processor

LOG_FILE_NAME = "debug.jsonl"
VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}

# Timers from the debounce scheduler and history grouping run on asyncio.
QUIET_LOGGERS = ("asyncio",)

_configured = False
_file_handler: logging.FileHandler | None = None


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _drop_console_fields(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    # rich prints its own time and level columns
    for key in ("timestamp", "level", "logger"):
        event_dict.pop(key, None)
    return event_dict


def _console_handler(verbosity: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=verbosity >= 2,
        markup=False,
        level=VERBOSITY_LEVELS.get(verbosity, logging.DEBUG),
    )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _drop_console_fields,
                structlog.dev.ConsoleRenderer(colors=False),
            ],
        )
    )
    return handler


def _jsonl_handler(log_dir: Path) -> logging.FileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE_NAME, mode="a", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(default=str),
            ],
        )
    )
    return handler


def configure_logging(verbosity: int = 0, log_dir: Path | None = None) -> None:
    """Configure console and (optionally) JSON-lines file logging.

    Safe to call again: the previous file handler is closed and the
    handlers are replaced.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_dir: When given, every event is also appended to
            ``{log_dir}/debug.jsonl``.
    """
    global _configured, _file_handler

    close_file_logging()

    handlers = [_console_handler(verbosity)]
    if log_dir is not None:
        _file_handler = _jsonl_handler(log_dir)
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_dir is not None) else logging.WARNING
    logging.basicConfig(level=root_level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*_shared_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Get a structured logger, configuring console logging on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def editor_context(**values: Any) -> Iterator[None]:
    """Bind editor context to every event logged inside the block.

    ``None`` values are skipped, so optional IDs can be passed as they are.
    Bindings are context-local and restored on exit, which keeps concurrent
    tasks (a validation run and a history operation) apart.

    Example:
        with editor_context(operation="execute", command_id=command.id):
            await command.execute()
    """
    bound = {key: value for key, value in values.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def close_file_logging() -> None:
    """Flush and close the JSON-lines file handler, if any."""
    global _file_handler
    if _file_handler is not None:
        logging.getLogger().removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None
