"""Validation result cache.

Results are keyed by a structural fingerprint of the adventure plus the
validation options. The fingerprint only looks at a handful of fields
(title, start scene, scene and stat counts, ``last_modified``); callers
must bump ``last_modified`` on every edit. When the marker is missing the
full adventure dump is hashed instead, so an unmarked edit is never served
a stale result.
"""

from __future__ import annotations

import copy
import hashlib
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from branchcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from branchcraft.models.adventure import Adventure
    from branchcraft.validation.types import ValidationOptions, ValidationResult

log = get_logger(__name__)

DEFAULT_TTL = 30.0
DEFAULT_MAX_ENTRIES = 100


def _digest(data: dict[str, Any]) -> str:
    encoded = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def fingerprint(adventure: Adventure) -> str:
    """Hash the fields that identify one revision of an adventure."""
    marker: Any = adventure.last_modified
    if marker is None:
        marker = _digest(adventure.model_dump(mode="json", exclude={"last_modified"}))
    return _digest(
        {
            "title": adventure.title,
            "start_scene_id": adventure.start_scene_id,
            "scene_count": len(adventure.scenes),
            "stat_count": len(adventure.stats),
            "last_modified": marker,
        }
    )


def cache_key(adventure: Adventure, options: ValidationOptions) -> str:
    """Build ``<content digest>_<options digest>``.

    ``skip_cache`` is not part of the key: it controls lookup, not the result.
    """
    options_digest = _digest(options.model_dump(exclude={"skip_cache"}))
    return f"{fingerprint(adventure)}_{options_digest}"


@dataclass
class _Entry:
    result: ValidationResult
    stored_at: float


class ValidationCache:
    """TTL-bounded, size-bounded store of validation results.

    Stored and returned results are deep copies; callers may mutate what
    they get back.

    Args:
        ttl: Entry lifetime in seconds.
        max_entries: Size bound. Expired entries are purged first when it
            is exceeded, then the oldest entries.
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> ValidationResult | None:
        """Return a copy of a live entry, or None (expired entries are dropped)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            return None
        result = copy.deepcopy(entry.result)
        result.cached = True
        return result

    def put(self, key: str, result: ValidationResult) -> None:
        """Store a copy of *result*, evicting when over capacity."""
        self._entries.pop(key, None)
        self._entries[key] = _Entry(copy.deepcopy(result), self._clock())
        if len(self._entries) > self.max_entries:
            self.cleanup()

    def cleanup(self) -> int:
        """Drop expired entries, then oldest ones until within bounds.

        Returns:
            Number of entries removed.
        """
        before = len(self._entries)
        for key in [k for k, e in self._entries.items() if self._expired(e)]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            del self._entries[next(iter(self._entries))]
        removed = before - len(self._entries)
        if removed:
            log.debug("validation_cache_cleanup", removed=removed, remaining=len(self._entries))
        return removed

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def _expired(self, entry: _Entry) -> bool:
        return self._clock() - entry.stored_at > self.ttl
