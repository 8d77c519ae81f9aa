"""Tests for the validation context builder and structural analyzers."""

from __future__ import annotations

import pytest

from branchcraft.models import Adventure, Choice, Condition, Scene
from branchcraft.validation.analyzers import (
    canonical_cycle,
    condition_weight,
    find_cycles,
    find_dead_ends,
    find_orphans,
    find_reachable,
    run_analyzers,
    scan_usage,
    score_scene,
)
from branchcraft.validation.context import Edge, build_validation_context
from tests.fixtures.adventures import (
    make_adventure,
    make_cycle_example,
    make_linear_adventure,
    make_orphan_example,
    make_stat_adventure,
)


class TestBuildValidationContext:
    def test_indexes_nodes_and_edges(self) -> None:
        context = build_validation_context(make_orphan_example())

        assert list(context.nodes) == ["A", "B", "C", "D"]
        assert context.edges == [Edge("A", "B", "A_to_B"), Edge("B", "C", "B_to_C")]
        assert context.has_incoming == {"A": False, "B": True, "C": True, "D": False}
        assert context.has_outgoing == {"A": True, "B": True, "C": False, "D": False}

    def test_missing_start_does_not_raise(self) -> None:
        context = build_validation_context(make_adventure({"a": []}, start="ghost"))

        assert not context.start_exists
        assert find_reachable(context) == set()

    def test_skips_scenes_without_id_and_records_duplicates(self) -> None:
        adventure = Adventure(
            start_scene_id="a",
            scenes=[Scene(id="a"), Scene(id=""), Scene(id="a", title="copy")],
        )

        context = build_validation_context(adventure)

        assert list(context.nodes) == ["a"]
        assert context.nodes["a"].title == ""
        assert context.duplicate_scene_ids == ["a"]

    def test_dangling_targets_are_not_nodes(self) -> None:
        context = build_validation_context(make_adventure({"a": ["ghost"]}))

        assert "ghost" not in context.has_incoming
        assert context.edges == [Edge("a", "ghost", "a_to_ghost")]


class TestReachability:
    def test_start_is_always_reachable(self) -> None:
        for adventure in (make_orphan_example(), make_cycle_example(), make_linear_adventure(1)):
            context = build_validation_context(adventure)
            assert adventure.start_scene_id in find_reachable(context)

    def test_orphans_exclude_reachable_and_start(self) -> None:
        context = build_validation_context(make_orphan_example())
        reachable = find_reachable(context)

        assert reachable == {"A", "B", "C"}
        assert find_orphans(context, reachable) == {"D"}

    def test_unknown_targets_are_not_followed(self) -> None:
        context = build_validation_context(make_adventure({"a": ["ghost", "b"], "b": []}))

        assert find_reachable(context) == {"a", "b"}

    def test_deep_chain_does_not_hit_recursion_limit(self) -> None:
        context = build_validation_context(make_linear_adventure(5000))

        assert len(find_reachable(context)) == 5000
        assert find_cycles(context) == []


class TestCycles:
    def test_acyclic_graph_has_no_cycles(self) -> None:
        diamond = make_adventure({"a": ["b", "c"], "b": ["d"], "c": ["d"], "d": []})

        assert find_cycles(build_validation_context(diamond)) == []

    def test_back_edge_yields_cycle_containing_it(self) -> None:
        adventure = make_adventure({"a": ["b"], "b": ["c"], "c": ["a"]})

        cycles = find_cycles(build_validation_context(adventure))

        assert cycles == [("a", "b", "c", "a")]

    def test_two_scene_loop(self) -> None:
        cycles = find_cycles(build_validation_context(make_cycle_example()))

        assert cycles == [("A", "B", "A")]

    def test_self_loop_is_a_cycle(self) -> None:
        cycles = find_cycles(build_validation_context(make_adventure({"a": ["a"]})))

        assert cycles == [("a", "a")]

    def test_same_loop_entered_twice_is_reported_once(self) -> None:
        """Two choices closing the same loop collapse by canonical rotation."""
        adventure = make_adventure({"a": ["b", "b"], "b": ["a"]})

        cycles = find_cycles(build_validation_context(adventure))

        assert len(cycles) == 1

    def test_distinct_loops_over_shared_node(self) -> None:
        adventure = make_adventure({"hub": ["x", "y"], "x": ["hub"], "y": ["hub"]})

        cycles = find_cycles(build_validation_context(adventure))

        assert sorted(canonical_cycle(c) for c in cycles) == [("hub", "x"), ("hub", "y")]

    @pytest.mark.parametrize(
        ("cycle", "expected"),
        [
            (("b", "c", "a", "b"), ("a", "b", "c")),
            (("a", "b", "c", "a"), ("a", "b", "c")),
            (("z", "z"), ("z",)),
        ],
    )
    def test_canonical_cycle(self, cycle: tuple[str, ...], expected: tuple[str, ...]) -> None:
        assert canonical_cycle(cycle) == expected


class TestDeadEnds:
    def test_dead_end_membership(self) -> None:
        context = build_validation_context(make_adventure({"a": ["b", None], "b": [], "c": ["ghost"]}))

        dead_ends = find_dead_ends(context)

        assert dead_ends == {"b"}
        for sid, scene in context.nodes.items():
            assert (sid in dead_ends) == (not scene.choices)


class TestUsageScan:
    def test_collects_stats_and_flags(self) -> None:
        context = build_validation_context(make_stat_adventure())

        scan = scan_usage(context)

        assert scan.used_stats == {"courage", "luck"}
        assert scan.used_flags == {"has_key", "met_guide"}
        assert scan.set_flags == {"met_guide"}
        assert scan.stat_locations["luck"] == ["scenes.intro.choices.brave"]

    def test_run_analyzers_derives_stat_sets(self) -> None:
        context = run_analyzers(build_validation_context(make_stat_adventure()))

        assert context.undefined_stats_used == {"luck"}
        assert context.unused_stats == {"gold"}
        assert context.reachable == {"intro", "cave"}


class TestComplexity:
    def test_leaf_condition_weighs_one(self) -> None:
        assert condition_weight(Condition(type="stat", key="hp")) == 1.0

    def test_nested_group_multiplies(self) -> None:
        group = Condition(
            logic="and",
            conditions=[
                Condition(type="flag", key="a"),
                Condition(logic="or", conditions=[Condition(type="flag", key="b"), Condition(type="flag", key="c")]),
            ],
        )

        # 1.2 * (1 + 1.2 * 2)
        assert condition_weight(group) == pytest.approx(4.08)

    def test_score_scene(self) -> None:
        scene = Scene.model_validate(
            {
                "id": "s",
                "onEnter": [{"type": "set_flag", "key": "x"}],
                "choices": [
                    {"id": "c1", "conditions": [{"type": "stat", "key": "hp"}], "actions": [{"type": "add_stat"}]},
                    {"id": "c2"},
                ],
            }
        )

        # on_enter 0.5 + c1 (1 + 1 + 0.5) + c2 1
        assert score_scene(scene) == 4.0

    def test_choice_count_drives_score(self) -> None:
        scene = Scene(id="busy", choices=[Choice(id=f"c{i}") for i in range(12)])

        assert score_scene(scene) == 12.0
