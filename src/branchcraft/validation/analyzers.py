"""Structural analyzers over a validation context.

Pure functions: they read the context indices and return derived data.
``run_analyzers`` stores the results on the context before any rule runs.

None of these raise on malformed references. Unknown choice targets are
simply not followed; the choice-target rule reports them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from branchcraft.models.adventure import (
    FLAG_ACTION_TYPES,
    FLAG_CONDITION_TYPES,
    STAT_ACTION_TYPES,
    STAT_CONDITION_TYPES,
)
from branchcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

    from branchcraft.models.adventure import Action, Condition, Scene
    from branchcraft.validation.context import ValidationContext

log = get_logger(__name__)

# Complexity weights
CHOICE_WEIGHT = 1.0
ACTION_WEIGHT = 0.5
NESTED_GROUP_PENALTY = 1.2


# ---------------------------------------------------------------------------
# Reachability
# ---------------------------------------------------------------------------


def build_successors(context: ValidationContext) -> dict[str, list[str]]:
    """Build scene -> successor scenes, following existing targets only.

    Successors keep choice order; a scene targeted by two choices appears
    twice.
    """
    successors: dict[str, list[str]] = {sid: [] for sid in context.nodes}
    for edge in context.edges:
        if edge.to_id is not None and edge.to_id in context.nodes:
            successors[edge.from_id].append(edge.to_id)
    return successors


def find_reachable(
    context: ValidationContext,
    successors: dict[str, list[str]] | None = None,
) -> set[str]:
    """Depth-first traversal from the start scene.

    Returns:
        Reachable scene IDs, including the start. Empty if the start
        scene is missing.
    """
    if not context.start_exists:
        return set()
    assert context.start_scene_id is not None
    successors = successors if successors is not None else build_successors(context)

    reachable: set[str] = set()
    stack = [context.start_scene_id]
    while stack:
        current = stack.pop()
        if current in reachable:
            continue
        reachable.add(current)
        stack.extend(s for s in reversed(successors[current]) if s not in reachable)
    return reachable


def find_orphans(context: ValidationContext, reachable: set[str]) -> set[str]:
    """Scenes not reachable from the start (the start ID itself is never orphaned)."""
    return {sid for sid in context.nodes if sid not in reachable and sid != context.start_scene_id}


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


def canonical_cycle(cycle: tuple[str, ...]) -> tuple[str, ...]:
    """Rotate a closed cycle's loop to start at its smallest ID.

    ``("b", "c", "a", "b")`` and ``("a", "b", "c", "a")`` both map to
    ``("a", "b", "c")``.
    """
    loop = cycle[:-1]
    if not loop:
        return cycle
    pivot = loop.index(min(loop))
    return loop[pivot:] + loop[:pivot]


def find_cycles(
    context: ValidationContext,
    successors: dict[str, list[str]] | None = None,
) -> list[tuple[str, ...]]:
    """Detect circular references with an explicit recursion stack.

    Every scene is used as a DFS root unless an earlier walk already
    finished it. Revisiting a scene on the current stack records the path
    from its first occurrence to the revisit, inclusive. Finished scenes
    are never rescanned, so not every elementary cycle is enumerated; each
    back-edge found yields one cycle.

    Cycles are deduplicated by canonical rotation (see ``canonical_cycle``).

    Returns:
        Closed ID paths in discovery order, e.g. ``[("a", "b", "a")]``.
    """
    successors = successors if successors is not None else build_successors(context)

    finished: set[str] = set()
    found: dict[tuple[str, ...], tuple[str, ...]] = {}

    for root in context.nodes:
        if root in finished:
            continue

        path = [root]
        on_stack = {root}
        pending: list[Iterator[str]] = [iter(successors[root])]

        while pending:
            nxt = next(pending[-1], None)
            if nxt is None:
                done = path.pop()
                on_stack.discard(done)
                finished.add(done)
                pending.pop()
                continue

            if nxt in on_stack:
                start = path.index(nxt)
                cycle = (*path[start:], nxt)
                found.setdefault(canonical_cycle(cycle), cycle)
            elif nxt not in finished:
                path.append(nxt)
                on_stack.add(nxt)
                pending.append(iter(successors[nxt]))

    return list(found.values())


# ---------------------------------------------------------------------------
# Dead ends
# ---------------------------------------------------------------------------


def find_dead_ends(context: ValidationContext) -> set[str]:
    """Scenes whose choice list is empty."""
    return {sid for sid, scene in context.nodes.items() if not scene.choices}


# ---------------------------------------------------------------------------
# Stats / flags usage
# ---------------------------------------------------------------------------


def iter_conditions(conditions: list[Condition]) -> Iterator[Condition]:
    """Yield every condition, descending into nested groups."""
    stack = list(reversed(conditions))
    while stack:
        condition = stack.pop()
        yield condition
        stack.extend(reversed(condition.conditions))


@dataclass
class UsageScan:
    """Stat and flag references found in one pass over the scenes."""

    used_stats: set[str] = field(default_factory=set)
    stat_locations: dict[str, list[str]] = field(default_factory=dict)
    used_flags: set[str] = field(default_factory=set)
    set_flags: set[str] = field(default_factory=set)

    def _stat(self, key: str, location: str) -> None:
        self.used_stats.add(key)
        self.stat_locations.setdefault(key, []).append(location)

    def scan_actions(self, actions: list[Action], location: str) -> None:
        for action in actions:
            if not action.key:
                continue
            if action.type in STAT_ACTION_TYPES:
                self._stat(action.key, location)
            elif action.type in FLAG_ACTION_TYPES:
                self.set_flags.add(action.key)

    def scan_conditions(self, conditions: list[Condition], location: str) -> None:
        for condition in iter_conditions(conditions):
            if not condition.key:
                continue
            if condition.type in STAT_CONDITION_TYPES:
                self._stat(condition.key, location)
            elif condition.type in FLAG_CONDITION_TYPES:
                self.used_flags.add(condition.key)


def scan_usage(context: ValidationContext) -> UsageScan:
    """Collect stat and flag references from actions and conditions.

    Looks at scene ``on_enter``/``on_exit`` actions and each choice's
    conditions (including nested groups) and actions.
    """
    scan = UsageScan()
    for sid, scene in context.nodes.items():
        scan.scan_actions(scene.on_enter, f"scenes.{sid}.onEnter")
        scan.scan_actions(scene.on_exit, f"scenes.{sid}.onExit")
        for choice in scene.choices:
            location = f"scenes.{sid}.choices.{choice.id}"
            scan.scan_conditions(choice.conditions, location)
            scan.scan_actions(choice.actions, location)
    return scan


# ---------------------------------------------------------------------------
# Complexity
# ---------------------------------------------------------------------------


def condition_weight(condition: Condition) -> float:
    """Weight of one condition: 1 per leaf, nested groups multiply by 1.2."""
    if condition.is_group:
        return NESTED_GROUP_PENALTY * sum(condition_weight(c) for c in condition.conditions)
    return 1.0


def score_scene(scene: Scene) -> float:
    """Complexity of a scene: conditions + one per choice + a fraction per action."""
    score = ACTION_WEIGHT * (len(scene.on_enter) + len(scene.on_exit))
    for choice in scene.choices:
        score += CHOICE_WEIGHT
        score += sum(condition_weight(c) for c in choice.conditions)
        score += ACTION_WEIGHT * len(choice.actions)
    return round(score, 2)


def score_complexity(context: ValidationContext) -> dict[str, float]:
    """Complexity score per scene."""
    return {sid: score_scene(scene) for sid, scene in context.nodes.items()}


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def run_analyzers(context: ValidationContext) -> ValidationContext:
    """Fill the analysis fields of *context* and return it."""
    successors = build_successors(context)

    context.reachable = find_reachable(context, successors)
    context.orphaned = find_orphans(context, context.reachable)
    context.circular_references = find_cycles(context, successors)
    context.dead_ends = find_dead_ends(context)

    scan = scan_usage(context)
    context.used_stats = scan.used_stats
    context.stat_locations = scan.stat_locations
    context.undefined_stats_used = scan.used_stats - context.defined_stats
    context.unused_stats = context.defined_stats - scan.used_stats
    context.used_flags = scan.used_flags
    context.set_flags = scan.set_flags

    context.node_complexity = score_complexity(context)

    log.debug(
        "analysis_complete",
        scenes=len(context.nodes),
        reachable=len(context.reachable),
        cycles=len(context.circular_references),
        dead_ends=len(context.dead_ends),
    )
    return context
