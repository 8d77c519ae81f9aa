"""Editor configuration.

Settings live in a YAML file (``branchcraft.yaml`` by convention)::

    validation:
      enable_cache: true
      cache_ttl: 30
      max_cache_entries: 100
      debounce_seconds: 0.5
      complexity_threshold: 10
    history:
      max_history_size: 100
      enable_grouping: true
      group_timeout: 1.0
      enable_merging: true
      merge_window: 1.0
      enable_snapshots: true
      snapshot_interval: 10

Every key is optional; missing keys keep their defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

DEFAULT_CONFIG_FILENAME = "branchcraft.yaml"


@dataclass
class ValidationConfig:
    """Validation engine and scheduler settings.

    Attributes:
        enable_cache: Cache results keyed by adventure fingerprint.
        cache_ttl: Seconds a cached result stays valid.
        max_cache_entries: Cache size bound.
        debounce_seconds: Quiet period before a scheduled validation runs.
        complexity_threshold: Scene complexity above which a warning is raised.
    """

    enable_cache: bool = True
    cache_ttl: float = 30.0
    max_cache_entries: int = 100
    debounce_seconds: float = 0.5
    complexity_threshold: float = 10.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary with any of the validation fields.

        Returns:
            ValidationConfig instance.
        """
        defaults = cls()
        return cls(
            enable_cache=bool(data.get("enable_cache", defaults.enable_cache)),
            cache_ttl=float(data.get("cache_ttl", defaults.cache_ttl)),
            max_cache_entries=int(data.get("max_cache_entries", defaults.max_cache_entries)),
            debounce_seconds=float(data.get("debounce_seconds", defaults.debounce_seconds)),
            complexity_threshold=float(
                data.get("complexity_threshold", defaults.complexity_threshold)
            ),
        )


@dataclass
class HistoryConfig:
    """Command history settings.

    Attributes:
        max_history_size: Entries kept before the oldest are evicted.
        enable_grouping: Fold rapid groupable commands into one entry.
        group_timeout: Seconds a pending group stays open.
        enable_merging: Merge mergeable commands into the previous entry.
        merge_window: Seconds within which a command may merge.
        enable_snapshots: Emit ``snapshot_needed`` every ``snapshot_interval`` entries.
        snapshot_interval: Entries between snapshot requests.
    """

    max_history_size: int = 100
    enable_grouping: bool = True
    group_timeout: float = 1.0
    enable_merging: bool = True
    merge_window: float = 1.0
    enable_snapshots: bool = True
    snapshot_interval: int = 10

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryConfig:
        defaults = cls()
        return cls(
            max_history_size=int(data.get("max_history_size", defaults.max_history_size)),
            enable_grouping=bool(data.get("enable_grouping", defaults.enable_grouping)),
            group_timeout=float(data.get("group_timeout", defaults.group_timeout)),
            enable_merging=bool(data.get("enable_merging", defaults.enable_merging)),
            merge_window=float(data.get("merge_window", defaults.merge_window)),
            enable_snapshots=bool(data.get("enable_snapshots", defaults.enable_snapshots)),
            snapshot_interval=int(data.get("snapshot_interval", defaults.snapshot_interval)),
        )


@dataclass
class EditorConfig:
    """Top-level editor configuration."""

    validation: ValidationConfig = field(default_factory=ValidationConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EditorConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary with optional ``validation`` and ``history`` sections.

        Returns:
            EditorConfig instance.
        """
        return cls(
            validation=ValidationConfig.from_dict(dict(data.get("validation") or {})),
            history=HistoryConfig.from_dict(dict(data.get("history") or {})),
        )


class EditorConfigError(Exception):
    """Raised when editor configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load editor config at {path}: {reason}")


def load_editor_config(config_path: Path) -> EditorConfig:
    """Load editor configuration from a YAML file.

    Args:
        config_path: Path to the YAML file, or to a directory holding
            ``branchcraft.yaml``.

    Returns:
        EditorConfig instance.

    Raises:
        EditorConfigError: If config cannot be loaded.
    """
    if config_path.is_dir():
        config_path = config_path / DEFAULT_CONFIG_FILENAME

    if not config_path.exists():
        raise EditorConfigError(config_path, "File not found")

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise EditorConfigError(config_path, "Empty file")

        return EditorConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, EditorConfigError):
            raise
        raise EditorConfigError(config_path, str(e)) from e


def create_default_config() -> EditorConfig:
    """Create an editor configuration with default values."""
    return EditorConfig()
