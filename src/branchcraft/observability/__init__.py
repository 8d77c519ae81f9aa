"""Observability module for Branchcraft.

Provides structured logging for the validation engine and command history.
"""

from branchcraft.observability.logging import (
    close_file_logging,
    configure_logging,
    editor_context,
    get_logger,
)

__all__ = [
    "close_file_logging",
    "configure_logging",
    "editor_context",
    "get_logger",
]
