"""Validation engine: the single entry point for adventure validation.

``ValidationEngine.validate`` runs the pipeline:

1. Coerce the input into an :class:`Adventure` (failure -> one system error)
2. Look the result up in the cache
3. Build the validation context and run the structural analyzers
4. Run built-in rules, then custom rules, each isolated from the others
5. Store the result and notify listeners

Rules never mutate the context or the adventure. A rule that raises is
reported as a warning and the remaining rules still run.
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from branchcraft.config import ValidationConfig
from branchcraft.models.adventure import Adventure
from branchcraft.observability.logging import editor_context, get_logger
from branchcraft.validation.analyzers import run_analyzers
from branchcraft.validation.cache import ValidationCache, cache_key
from branchcraft.validation.context import build_validation_context
from branchcraft.validation.rules import FindingCollector, Rule, RuleEvaluator, builtin_rules
from branchcraft.validation.types import (
    ExportReadiness,
    Finding,
    Level,
    ValidationOptions,
    ValidationResult,
)

if TYPE_CHECKING:
    from branchcraft.validation.context import ValidationContext

log = get_logger(__name__)

ValidationEvent = Literal["validation-complete", "validation-cached", "validation-error"]
EVENTS: tuple[ValidationEvent, ...] = ("validation-complete", "validation-cached", "validation-error")

Listener = Callable[[dict[str, Any]], None]


@dataclass
class ValidationStats:
    """Running counters for one engine."""

    total_validations: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    average_validation_time: float = 0.0
    _timed_runs: int = 0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def record_time(self, seconds: float) -> None:
        self._timed_runs += 1
        self.average_validation_time += (seconds - self.average_validation_time) / self._timed_runs

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_validations": self.total_validations,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "cache_hit_rate": self.cache_hit_rate,
            "average_validation_time": self.average_validation_time,
        }


class ValidationEngine:
    """Cached, extensible rule pipeline over adventures.

    Args:
        config: Cache and complexity settings. Defaults apply when omitted.
        clock: Monotonic time source for the cache (tests inject a fake).
    """

    def __init__(
        self,
        config: ValidationConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config or ValidationConfig()
        self.cache: ValidationCache | None = None
        if self.config.enable_cache:
            cache_kwargs: dict[str, Any] = {
                "ttl": self.config.cache_ttl,
                "max_entries": self.config.max_cache_entries,
            }
            if clock is not None:
                cache_kwargs["clock"] = clock
            self.cache = ValidationCache(**cache_kwargs)

        self._rules: dict[str, Rule] = {
            rule.name: rule for rule in builtin_rules(self.config.complexity_threshold)
        }
        self._custom_rules: dict[str, Rule] = {}
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}
        self.stats = ValidationStats()

    # -------------------------------------------------------------------------
    # Rule registry
    # -------------------------------------------------------------------------

    def add_rule(self, name: str, level: Level, category: str, evaluate: RuleEvaluator) -> None:
        """Register (or replace) a built-in-tier rule.

        A rule with an existing name is replaced in place, keeping its
        position in the run order.
        """
        self._register(self._rules, self._custom_rules, Rule(name, level, category, evaluate))

    def add_custom_rule(
        self,
        name: str,
        evaluate: RuleEvaluator,
        level: Level = "warning",
        category: str = "custom",
    ) -> None:
        """Register (or replace) a custom rule; custom rules run after built-ins."""
        rule = Rule(name, level, category, evaluate, custom=True)
        self._register(self._custom_rules, self._rules, rule)

    def _register(self, target: dict[str, Rule], other: dict[str, Rule], rule: Rule) -> None:
        other.pop(rule.name, None)
        target[rule.name] = rule
        self.invalidate_cache()
        log.debug("validation_rule_registered", rule=rule.name, custom=rule.custom)

    def remove_rule(self, name: str) -> bool:
        """Remove a rule from either tier.

        Returns:
            True if a rule was removed.
        """
        removed = self._rules.pop(name, None) or self._custom_rules.pop(name, None)
        if removed is None:
            return False
        self.invalidate_cache()
        return True

    def rule_names(self) -> list[str]:
        """Rule names in execution order."""
        return [*self._rules, *self._custom_rules]

    def get_rule(self, name: str) -> Rule | None:
        return self._rules.get(name) or self._custom_rules.get(name)

    def invalidate_cache(self) -> None:
        """Drop every cached result."""
        if self.cache is not None:
            self.cache.clear()

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on(self, event: ValidationEvent, listener: Listener) -> Callable[[], None]:
        """Subscribe to an engine event.

        Returns:
            A function that unsubscribes the listener.
        """
        if event not in self._listeners:
            msg = f"Unknown validation event '{event}'. Expected one of: {', '.join(EVENTS)}"
            raise ValueError(msg)
        self._listeners[event].append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: ValidationEvent, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def _emit(self, event: ValidationEvent, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(payload)
            except Exception as e:
                log.warning("validation_listener_failed", event_name=event, error=str(e))

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    async def validate(
        self,
        adventure: Adventure | dict[str, Any],
        options: ValidationOptions | dict[str, Any] | None = None,
    ) -> ValidationResult:
        """Validate an adventure.

        Args:
            adventure: An ``Adventure`` or its editor dict.
            options: ``ValidationOptions`` or a dict of them.

        Returns:
            The validation result. Never raises for bad adventure input:
            a single ``system`` error is returned instead.
        """
        started = time.perf_counter()
        self.stats.total_validations += 1
        opts = (
            options
            if isinstance(options, ValidationOptions)
            else ValidationOptions.model_validate(options or {})
        )

        try:
            model = adventure if isinstance(adventure, Adventure) else Adventure.model_validate(adventure)
        except ValidationError as e:
            return self._system_error(adventure, e, started)

        key = cache_key(model, opts)
        if self.cache is not None and not opts.skip_cache:
            cached = self.cache.get(key)
            if cached is not None:
                self.stats.cache_hits += 1
                log.debug("validation_cache_hit", adventure_id=model.id)
                self._emit("validation-cached", {"adventure": model, "result": cached})
                return cached
            self.stats.cache_misses += 1

        with editor_context(operation="validate", adventure_id=model.id or None):
            try:
                context = run_analyzers(build_validation_context(model))
                result = ValidationResult(context=context if opts.include_context else None)
                await self._run_rules(model, context, result)
            except Exception as e:
                log.exception("validation_failed")
                return self._system_error(model, e, started)

        result.validation_time = time.perf_counter() - started
        self.stats.record_time(result.validation_time)

        if self.cache is not None:
            self.cache.put(key, result)

        log.debug(
            "validation_complete",
            adventure_id=model.id,
            errors=len(result.errors),
            warnings=len(result.warnings),
            info=len(result.info),
            seconds=round(result.validation_time, 4),
        )
        self._emit("validation-complete", {"adventure": model, "result": result})
        return result

    async def _run_rules(self, adventure: Adventure, context: ValidationContext, result: ValidationResult) -> None:
        for rule in [*self._rules.values(), *self._custom_rules.values()]:
            collector = FindingCollector(rule)
            try:
                outcome = rule.evaluate(adventure, context, collector)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                log.warning("validation_rule_failed", rule=rule.name, error=str(e))
                result.add(
                    Finding(
                        level="warning",
                        message=f"Rule '{rule.name}' failed: {e}",
                        location=f"rules.{rule.name}",
                        fix="Check the rule implementation",
                        rule=rule.name,
                        category=rule.category,
                    )
                )
                continue
            for finding in collector.findings:
                result.add(finding)

    def _system_error(self, adventure: Any, error: Exception, started: float) -> ValidationResult:
        result = ValidationResult(validation_time=time.perf_counter() - started)
        result.add(
            Finding(
                level="error",
                message=f"Validation system error: {error}",
                location="system",
                fix="Check that the adventure is a well-formed object",
                rule="system",
                category="system",
            )
        )
        self._emit("validation-error", {"adventure": adventure, "error": error})
        return result

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    async def export_readiness(self, adventure: Adventure | dict[str, Any]) -> ExportReadiness:
        """Validate and decide whether the adventure may be exported."""
        result = await self.validate(adventure)
        return ExportReadiness(
            can_export=result.is_valid,
            blockers=list(result.errors),
            concerns=list(result.warnings),
            notes=list(result.info),
        )

    def get_stats(self) -> dict[str, Any]:
        """Counters plus current cache size and rule counts."""
        return {
            **self.stats.to_dict(),
            "cache_size": len(self.cache) if self.cache is not None else 0,
            "rule_count": len(self._rules),
            "custom_rule_count": len(self._custom_rules),
        }
