"""Branchcraft: structural validation and undoable editing for branching stories."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("branchcraft")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
