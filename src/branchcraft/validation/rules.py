"""Validation rules.

A rule is a named evaluator with a default level and a category. It reads
the adventure and the analysed context and reports findings through a
``FindingCollector``. The engine collects each rule's findings separately
and merges them only when the rule returns, so a rule that raises
half-way contributes nothing but a single failure warning.

Built-in rules (run in this order):
- basic-structure: adventure title
- start-scene: start scene declared and present
- choice-targets: every choice has an existing target
- self-references: choices pointing back at their own scene
- dead-ends: scenes without choices
- circular-references: loops in the scene flow
- orphaned-scenes: scenes unreachable from the start
- undefined-stats: stats referenced but never defined
- unused-stats: stats defined but never referenced
- unset-flags: flags tested but never set or declared
- condition-complexity: scenes above the complexity threshold
- scene-content: titles, content, choice text, condition keys
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from branchcraft.validation.analyzers import iter_conditions
from branchcraft.validation.types import Finding, Level

if TYPE_CHECKING:
    from branchcraft.models.adventure import Adventure
    from branchcraft.validation.context import ValidationContext

DEFAULT_COMPLEXITY_THRESHOLD = 10.0


class FindingCollector:
    """Per-rule buffer of findings.

    Findings default to the owning rule's level and category and are
    tagged with the rule name.
    """

    def __init__(self, rule: Rule) -> None:
        self.rule = rule
        self.findings: list[Finding] = []

    def report(
        self,
        message: str,
        *,
        location: str = "",
        fix: str | None = None,
        details: dict[str, Any] | None = None,
        level: Level | None = None,
    ) -> Finding:
        """Record a finding and return it."""
        finding = Finding(
            level=level or self.rule.level,
            message=message,
            location=location,
            fix=fix,
            details=details,
            rule=self.rule.name,
            category=self.rule.category,
        )
        self.findings.append(finding)
        return finding

    def error(self, message: str, **kwargs: Any) -> Finding:
        return self.report(message, level="error", **kwargs)

    def warning(self, message: str, **kwargs: Any) -> Finding:
        return self.report(message, level="warning", **kwargs)

    def info(self, message: str, **kwargs: Any) -> Finding:
        return self.report(message, level="info", **kwargs)


RuleEvaluator = Callable[["Adventure", "ValidationContext", FindingCollector], None]


@dataclass
class Rule:
    """A registered validation rule.

    Attributes:
        name: Unique rule name (e.g. ``"dead-ends"``).
        level: Default level of the rule's findings.
        category: Category used to group findings.
        evaluate: ``evaluate(adventure, context, report)``.
        custom: True for rules registered through ``add_custom_rule``.
    """

    name: str
    level: Level
    category: str
    evaluate: RuleEvaluator
    custom: bool = False


# ---------------------------------------------------------------------------
# Built-in evaluators
# ---------------------------------------------------------------------------


def check_basic_structure(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Warn when the adventure has no title."""
    if not adventure.title.strip():
        report.warning(
            "Adventure has no title or empty title",
            location="adventure.title",
            fix="Add a descriptive title to your adventure",
        )


def check_start_scene(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """The start scene must be declared and must exist."""
    if not context.start_scene_id:
        report.error(
            "No start scene specified",
            location="adventure.startSceneId",
            fix="Set a valid start scene ID",
        )
    elif not context.start_exists:
        report.error(
            f"Start scene '{context.start_scene_id}' not found",
            location="adventure.startSceneId",
            fix="Ensure start scene ID references an existing scene",
            details={"start_scene_id": context.start_scene_id},
        )


def check_choice_targets(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Every choice must point at an existing scene."""
    for edge in context.edges:
        location = f"scenes.{edge.from_id}.choices.{edge.choice_id}"
        if edge.to_id is None:
            report.error(
                f"Choice '{edge.choice_id}' in scene '{edge.from_id}' has no target",
                location=location,
                fix="Connect the choice to a scene",
                details={"scene_id": edge.from_id, "choice_id": edge.choice_id},
            )
        elif edge.to_id not in context.nodes:
            report.error(
                f"Choice '{edge.choice_id}' in scene '{edge.from_id}' targets missing scene '{edge.to_id}'",
                location=location,
                fix="Point the choice at an existing scene or create the missing scene",
                details={
                    "scene_id": edge.from_id,
                    "choice_id": edge.choice_id,
                    "target_scene_id": edge.to_id,
                },
            )


def check_self_references(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Warn on choices that lead back to their own scene."""
    for edge in context.edges:
        if edge.to_id == edge.from_id:
            report.warning(
                f"Choice '{edge.choice_id}' in scene '{edge.from_id}' points to its own scene",
                location=f"scenes.{edge.from_id}.choices.{edge.choice_id}",
                fix="Make sure the loop is intentional, or point the choice elsewhere",
                details={"scene_id": edge.from_id, "choice_id": edge.choice_id},
            )


def check_dead_ends(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Report scenes without choices (often intended endings)."""
    dead_ends = context.in_scene_order(context.dead_ends)
    if dead_ends:
        report.report(
            f"Found {len(dead_ends)} dead-end scene(s): {', '.join(dead_ends)}",
            location="scenes",
            fix="Add choices to dead-end scenes, or mark them as intentional endings",
            details={"scene_ids": dead_ends},
        )


def check_circular_references(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    cycles = context.circular_references
    if cycles:
        report.report(
            f"Found {len(cycles)} circular reference(s) in scene flow",
            location="scenes",
            fix="Review scene connections to prevent infinite loops",
            details={"cycles": [list(cycle) for cycle in cycles]},
        )


def check_orphaned_scenes(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    orphaned = context.in_scene_order(context.orphaned)
    if orphaned:
        report.report(
            f"Found {len(orphaned)} unreachable scene(s): {', '.join(orphaned)}",
            location="scenes",
            fix="Add connections to unreachable scenes or remove them",
            details={"scene_ids": orphaned},
        )


def check_undefined_stats(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    undefined = sorted(context.undefined_stats_used)
    if undefined:
        report.report(
            f"Found usage of undefined stat(s): {', '.join(undefined)}",
            location="stats",
            fix="Define missing stats or fix references",
            details={
                "stat_ids": undefined,
                "locations": {sid: context.stat_locations.get(sid, []) for sid in undefined},
            },
        )


def check_unused_stats(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    unused = [s for s in context.stats if s in context.unused_stats]
    if unused:
        report.report(
            f"Found {len(unused)} unused stat(s): {', '.join(unused)}",
            location="stats",
            fix="Remove unused stats or add conditions/actions that use them",
            details={"stat_ids": unused},
        )


def check_unset_flags(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Flags tested by conditions but never set by an action nor declared."""
    unset = sorted(context.used_flags - context.set_flags - context.defined_flags)
    if unset:
        report.report(
            f"Found {len(unset)} flag(s) checked but never set: {', '.join(unset)}",
            location="flags",
            fix="Declare the flags or add actions that set them",
            details={"flag_ids": unset},
        )


def make_complexity_check(threshold: float = DEFAULT_COMPLEXITY_THRESHOLD) -> RuleEvaluator:
    """Build the condition-complexity evaluator for a given threshold."""

    def check_condition_complexity(
        adventure: Adventure, context: ValidationContext, report: FindingCollector
    ) -> None:
        complex_scenes = {
            sid: score for sid, score in context.node_complexity.items() if score > threshold
        }
        if complex_scenes:
            report.report(
                f"Found {len(complex_scenes)} scene(s) with high complexity",
                location="scenes",
                fix="Consider simplifying complex scenes by breaking them into smaller scenes",
                details={"scores": complex_scenes, "threshold": threshold},
            )

    return check_condition_complexity


def check_scene_content(adventure: Adventure, context: ValidationContext, report: FindingCollector) -> None:
    """Per-scene authoring gaps: titles, content, choice text and condition keys."""
    for dup in context.duplicate_scene_ids:
        report.warning(
            f"Scene ID '{dup}' is used more than once; later copies are ignored",
            location=f"scenes.{dup}",
            fix="Give every scene a unique ID",
        )

    for sid, scene in context.nodes.items():
        if not scene.title.strip():
            report.warning(
                f"Scene '{sid}' has no title",
                location=f"scenes.{sid}.title",
                fix="Add a descriptive title to this scene",
            )
        if not scene.content.strip():
            report.warning(
                f"Scene '{sid}' has no content",
                location=f"scenes.{sid}.content",
                fix="Add content to describe what happens in this scene",
            )

        for choice in scene.choices:
            location = f"scenes.{sid}.choices.{choice.id}"
            if not choice.text.strip():
                report.warning(
                    f"Choice '{choice.id}' in scene '{sid}' has no text",
                    location=f"{location}.text",
                    fix="Add text so the reader knows what the choice does",
                )
            for condition in iter_conditions(choice.conditions):
                if condition.is_group:
                    continue
                if not condition.key:
                    report.warning(
                        f"Condition in choice '{choice.id}' (scene '{sid}') has no key",
                        location=f"{location}.conditions",
                        fix="Select what the condition checks",
                    )
                elif condition.type == "scene_visited" and condition.key not in context.nodes:
                    report.warning(
                        f"Condition in choice '{choice.id}' references unknown scene '{condition.key}'",
                        location=f"{location}.conditions",
                        fix="Point the condition at an existing scene",
                        details={"scene_id": condition.key},
                    )


def builtin_rules(complexity_threshold: float = DEFAULT_COMPLEXITY_THRESHOLD) -> list[Rule]:
    """Return fresh built-in rule records in execution order."""
    return [
        Rule("basic-structure", "warning", "structure", check_basic_structure),
        Rule("start-scene", "error", "structure", check_start_scene),
        Rule("choice-targets", "error", "connections", check_choice_targets),
        Rule("self-references", "warning", "connections", check_self_references),
        Rule("dead-ends", "info", "flow", check_dead_ends),
        Rule("circular-references", "warning", "flow", check_circular_references),
        Rule("orphaned-scenes", "warning", "flow", check_orphaned_scenes),
        Rule("undefined-stats", "error", "stats", check_undefined_stats),
        Rule("unused-stats", "info", "stats", check_unused_stats),
        Rule("unset-flags", "info", "flags", check_unset_flags),
        Rule("condition-complexity", "warning", "complexity", make_complexity_check(complexity_threshold)),
        Rule("scene-content", "warning", "content", check_scene_content),
    ]
