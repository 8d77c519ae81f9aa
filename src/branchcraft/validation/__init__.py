"""Adventure validation: structural analysis, rules, caching and scheduling."""

from branchcraft.validation.analyzers import (
    canonical_cycle,
    find_cycles,
    find_dead_ends,
    find_orphans,
    find_reachable,
    run_analyzers,
    scan_usage,
    score_complexity,
)
from branchcraft.validation.cache import ValidationCache, cache_key, fingerprint
from branchcraft.validation.context import Edge, ValidationContext, build_validation_context
from branchcraft.validation.engine import ValidationEngine, ValidationStats
from branchcraft.validation.rules import FindingCollector, Rule, builtin_rules
from branchcraft.validation.scheduler import DebouncedValidator
from branchcraft.validation.types import (
    ExportReadiness,
    Finding,
    ValidationOptions,
    ValidationResult,
)

__all__ = [
    "DebouncedValidator",
    "Edge",
    "ExportReadiness",
    "Finding",
    "FindingCollector",
    "Rule",
    "ValidationCache",
    "ValidationContext",
    "ValidationEngine",
    "ValidationOptions",
    "ValidationResult",
    "ValidationStats",
    "build_validation_context",
    "builtin_rules",
    "cache_key",
    "canonical_cycle",
    "find_cycles",
    "find_dead_ends",
    "find_orphans",
    "find_reachable",
    "fingerprint",
    "run_analyzers",
    "scan_usage",
    "score_complexity",
]
