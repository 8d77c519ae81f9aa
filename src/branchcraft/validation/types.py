"""Validation result types shared by the rule engine, cache and CLI."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from branchcraft.validation.context import ValidationContext

Level = Literal["error", "warning", "info"]
Severity = Literal["critical", "error", "warning", "info", "clean"]

LEVELS: tuple[Level, ...] = ("error", "warning", "info")

# More blocking errors than this makes the result "critical".
CRITICAL_ERROR_COUNT = 5


@dataclass
class Finding:
    """One validation finding.

    Attributes:
        level: "error" (blocks export), "warning" or "info".
        message: Human-readable description.
        location: Where the problem is (e.g. ``scenes.intro.choices.c1``).
        fix: Optional suggestion for the author.
        details: Optional structured data (IDs, paths, scores).
        rule: Name of the rule that produced the finding.
        category: Rule category, used to group findings in the UI.
    """

    level: Level
    message: str
    location: str = ""
    fix: str | None = None
    details: dict[str, Any] | None = None
    rule: str = ""
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "level": self.level,
            "message": self.message,
            "location": self.location,
            "fix": self.fix,
            "details": self.details,
            "rule": self.rule,
            "category": self.category,
        }


@dataclass
class ValidationResult:
    """Aggregated findings of one validation run.

    Attributes:
        errors: Blocking findings.
        warnings: Non-blocking findings that deserve attention.
        info: Advisory findings.
        context: The analysis context, only when requested.
        timestamp: Wall-clock time the run started.
        validation_time: Run duration in seconds (0.0 on a cache hit copy).
        cached: True if the result was served from the cache.
    """

    errors: list[Finding] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    info: list[Finding] = field(default_factory=list)
    context: ValidationContext | None = None
    timestamp: float = field(default_factory=time.time)
    validation_time: float = 0.0
    cached: bool = False

    def add(self, finding: Finding) -> None:
        """File a finding under its level."""
        self._bucket(finding.level).append(finding)

    def _bucket(self, level: Level) -> list[Finding]:
        if level == "error":
            return self.errors
        if level == "warning":
            return self.warnings
        return self.info

    @property
    def findings(self) -> list[Finding]:
        """All findings, errors first."""
        return [*self.errors, *self.warnings, *self.info]

    @property
    def is_valid(self) -> bool:
        """True if there are no blocking errors."""
        return not self.errors

    @property
    def severity(self) -> Severity:
        """Overall severity of the result."""
        if len(self.errors) > CRITICAL_ERROR_COUNT:
            return "critical"
        if self.errors:
            return "error"
        if self.warnings:
            return "warning"
        if self.info:
            return "info"
        return "clean"

    @property
    def fixes(self) -> list[str]:
        """Every fix suggestion, errors first."""
        return [f.fix for f in self.findings if f.fix]

    @property
    def summary(self) -> str:
        """Human-readable summary of the result."""
        parts: list[str] = []
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        if self.warnings:
            parts.append(f"{len(self.warnings)} warnings")
        if self.info:
            parts.append(f"{len(self.info)} info")
        return ", ".join(parts) if parts else "no issues"

    def by_category(self) -> dict[str, dict[Level, list[Finding]]]:
        """Group findings by rule category, then level."""
        grouped: dict[str, dict[Level, list[Finding]]] = {}
        for finding in self.findings:
            levels = grouped.setdefault(finding.category, {lvl: [] for lvl in LEVELS})
            levels[finding.level].append(finding)
        return grouped

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output (the context is not included)."""
        return {
            "is_valid": self.is_valid,
            "severity": self.severity,
            "summary": self.summary,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "info": [f.to_dict() for f in self.info],
            "timestamp": self.timestamp,
            "validation_time": self.validation_time,
            "cached": self.cached,
        }


class ValidationOptions(BaseModel):
    """Options accepted by ``ValidationEngine.validate``.

    Every field except ``skip_cache`` participates in the cache key.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    skip_cache: bool = False
    include_context: bool = False


@dataclass
class ExportReadiness:
    """Whether an adventure may be exported, derived from a validation run."""

    can_export: bool
    blockers: list[Finding]
    concerns: list[Finding]
    notes: list[Finding]

    @property
    def recommendation(self) -> str:
        """One-line advice for the author."""
        if self.can_export:
            return "Adventure is ready for export"
        return f"Fix {len(self.blockers)} error(s) before exporting"
