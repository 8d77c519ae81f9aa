"""Validation context: analysis-friendly indices over one adventure snapshot.

A context is created per validation run and discarded afterwards. The
builder fills the indices in one linear pass; the analyzers then fill the
derived sets. Rules only read it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from collections.abc import Iterable

    from branchcraft.models.adventure import Adventure, Flag, Scene, Stat


class Edge(NamedTuple):
    """A choice seen as a directed edge. ``to_id`` may be None or dangling."""

    from_id: str
    to_id: str | None
    choice_id: str


@dataclass
class ValidationContext:
    """Indices and analysis results for one validation run.

    Attributes:
        nodes: Scene ID -> scene, in adventure order (first wins on duplicates).
        edges: One edge per choice.
        has_incoming: Scene ID -> True if any choice of another scene targets it.
        has_outgoing: Scene ID -> True if the scene has at least one choice.
        reachable: Scene IDs reachable from the start scene.
        circular_references: Cycles as closed ID paths, e.g. ``("a", "b", "a")``.
        dead_ends: Scenes without choices.
        orphaned: Scenes unreachable from the start (start itself excluded).
        used_stats: Stat IDs referenced by any condition or action.
        undefined_stats_used: Referenced but not defined.
        unused_stats: Defined but never referenced.
        stat_locations: Stat ID -> locations referencing it.
        used_flags: Flag IDs tested by conditions.
        set_flags: Flag IDs written by actions.
        node_complexity: Scene ID -> complexity score.
    """

    adventure_id: str = ""
    title: str = ""
    start_scene_id: str | None = None

    nodes: dict[str, Scene] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    has_incoming: dict[str, bool] = field(default_factory=dict)
    has_outgoing: dict[str, bool] = field(default_factory=dict)
    duplicate_scene_ids: list[str] = field(default_factory=list)

    stats: dict[str, Stat] = field(default_factory=dict)
    defined_stats: set[str] = field(default_factory=set)
    flags: dict[str, Flag] = field(default_factory=dict)
    defined_flags: set[str] = field(default_factory=set)

    reachable: set[str] = field(default_factory=set)
    circular_references: list[tuple[str, ...]] = field(default_factory=list)
    dead_ends: set[str] = field(default_factory=set)
    orphaned: set[str] = field(default_factory=set)

    used_stats: set[str] = field(default_factory=set)
    undefined_stats_used: set[str] = field(default_factory=set)
    unused_stats: set[str] = field(default_factory=set)
    stat_locations: dict[str, list[str]] = field(default_factory=dict)
    used_flags: set[str] = field(default_factory=set)
    set_flags: set[str] = field(default_factory=set)

    node_complexity: dict[str, float] = field(default_factory=dict)

    @property
    def start_exists(self) -> bool:
        """True if the declared start scene is present."""
        return self.start_scene_id is not None and self.start_scene_id in self.nodes

    def in_scene_order(self, scene_ids: Iterable[str]) -> list[str]:
        """Return *scene_ids* ordered as the scenes appear in the adventure."""
        wanted = set(scene_ids)
        return [sid for sid in self.nodes if sid in wanted]


def build_validation_context(adventure: Adventure) -> ValidationContext:
    """Index an adventure for analysis.

    Never raises on a missing or dangling start ID: the reachable set is
    left empty and the start-scene rule reports the problem.

    Args:
        adventure: The adventure to index. Not modified.

    Returns:
        A context with indices filled and analysis fields empty.
    """
    context = ValidationContext(
        adventure_id=adventure.id,
        title=adventure.title,
        start_scene_id=adventure.start_scene_id or None,
    )

    for scene in adventure.scenes:
        if not scene.id:
            continue
        if scene.id in context.nodes:
            context.duplicate_scene_ids.append(scene.id)
            continue
        context.nodes[scene.id] = scene
        context.has_outgoing[scene.id] = bool(scene.choices)
        context.has_incoming.setdefault(scene.id, False)
        for choice in scene.choices:
            target = choice.target_scene_id or None
            context.edges.append(Edge(scene.id, target, choice.id))
            if target and target != scene.id:
                context.has_incoming[target] = True

    # Dangling targets were flagged too; keep real scenes only.
    context.has_incoming = {
        sid: flag for sid, flag in context.has_incoming.items() if sid in context.nodes
    }

    for stat in adventure.stats:
        if stat.id:
            context.stats[stat.id] = stat
            context.defined_stats.add(stat.id)

    for flag in adventure.flags:
        if flag.id:
            context.flags[flag.id] = flag
            context.defined_flags.add(flag.id)

    return context
