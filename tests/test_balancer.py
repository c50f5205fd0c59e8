"""
Unit tests for core/trust_debt/balancer.py

Tests cover:
- Already-healthy sets pass through with zero adjustment passes
- Keyword partitioning for splits
- Split / merge / reassign steps of a single pass
- Termination, determinism and forest preservation of the full loop
"""
import numpy as np
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.trust_debt.balancer import _adjust, balance_categories, next_segment, partition_keywords
from core.trust_debt.categories import CategoryStore
from core.trust_debt.models import Category, EngineConfig
from core.trust_debt.orthogonality import validate_categories
from core.trust_debt.shortlex import validate_order


def _e(i, value, n=8):
    v = [0.0] * n
    v[i] = value
    return v


def _add(*vectors):
    return [sum(xs) for xs in zip(*vectors)]


class TestNextSegment:
    def test_first_child(self):
        assert next_segment([]) == "1"

    def test_numeric_siblings_count_up(self):
        assert next_segment(["1", "2", "10"]) == "11"

    def test_letters_step_through_alphabet(self):
        assert next_segment(["A", "B", "D"]) == "E"

    def test_after_z(self):
        assert next_segment(["A", "Z"]) == "Z1"
        assert next_segment(["Z", "Z1"]) == "Z2"

    def test_words(self):
        assert next_segment(["core", "ui"]) == "core1"


class TestPartitionKeywords:
    def test_co_occurring_keywords_stay_together(self, make_signal):
        signal = make_signal({
            "api": _add(_e(0, 3), _e(1, 3)),
            "http": _add(_e(0, 1), _e(1, 1)),
            "rest": _add(_e(0, 2), _e(1, 2)),
            "sql": _add(_e(2, 2), _e(3, 2)),
            "db": _add(_e(2, 1), _e(3, 1)),
        })
        g1, g2 = partition_keywords(["sql", "api", "db", "rest", "http"], signal)
        assert g1 == ("api", "http", "rest")
        assert g2 == ("db", "sql")

    def test_all_zero_keywords_still_split_in_two(self, make_signal):
        signal = make_signal({})
        g1, g2 = partition_keywords(["a", "b", "c", "d"], signal)
        assert set(g1) | set(g2) == {"a", "b", "c", "d"}
        assert g1 and g2

    def test_needs_two_keywords(self, make_signal):
        with pytest.raises(ValueError):
            partition_keywords(["solo"], make_signal({}))


class TestScenarioBalanced:
    """Five balanced, nearly independent categories need no adjustment"""

    def test_zero_passes(self, five_balanced):
        definitions, signal = five_balanced
        cats = [Category(**d) for d in definitions]
        result = balance_categories(cats, signal)

        assert result.unresolved is False
        assert result.passes == 0
        assert result.history == []
        assert [c.id for c in result.categories] == ["A", "B", "C", "D", "E"]
        assert result.report.orthogonality_score == pytest.approx(0.95, abs=1e-9)
        assert result.report.acceptable is True


class TestSplitPass:
    @pytest.fixture
    def setup(self, make_signal):
        signal = make_signal({
            "api": _add(_e(0, 3), _e(1, 3)),
            "http": _add(_e(0, 1), _e(1, 1)),
            "rest": _add(_e(0, 2), _e(1, 2)),
            "sql": _add(_e(2, 2), _e(3, 2)),
            "db": _add(_e(2, 1), _e(3, 1)),
            "ui": _add(_e(4, 2), _e(5, 2)),
            "ops": _add(_e(6, 2), _e(7, 2)),
            "docs": [1.0] * 8,
        })
        cats = (
            Category(id="A", display_name="API", keywords=["api", "http", "rest", "db", "sql"], weight=0.5),
            Category(id="B", keywords=["ui"], weight=0.2),
            Category(id="C", keywords=["ops"], weight=0.2),
            Category(id="D", keywords=["docs"], weight=0.1),
        )
        return cats, signal

    def test_overloaded_category_is_split(self, setup):
        cats, signal = setup
        config = EngineConfig()
        report = validate_categories(cats, signal, config)
        assert report.overloaded == ["A"]

        new, step = _adjust(cats, report, signal, config, 1)
        by_id = {c.id: c for c in new}

        assert step.splits == ["A->E"]
        assert step.merges == []
        assert [c.id for c in new] == ["A", "B", "C", "D", "E"]
        assert by_id["A"].keywords == ("api", "http", "rest")
        assert by_id["E"].keywords == ("db", "sql")
        assert by_id["E"].parent_id is None
        assert by_id["E"].depth == 0
        assert by_id["E"].display_name == "API / db"
        # weight apportioned by keyword-match mass: 12 vs 6
        assert by_id["A"].weight == pytest.approx(0.5 * 12 / 18)
        assert by_id["E"].weight == pytest.approx(0.5 * 6 / 18)

    def test_split_keeps_total_weight(self, setup):
        cats, signal = setup
        report = validate_categories(cats, signal)
        new, _ = _adjust(cats, report, signal, EngineConfig(), 1)
        assert sum(c.weight for c in new) == pytest.approx(sum(c.weight for c in cats))


class TestMergePass:
    @pytest.fixture
    def setup(self, make_signal):
        signal = make_signal({
            "platform": [5.0] * 8,
            "tiny": _e(0, 0.1),
            "tinier": _e(1, 0.1),
            "alpha": _add([1.0] * 8, _e(0, 2)),
            "beta": _add([1.0] * 8, _e(7, 2)),
        })
        cats = (
            Category(id="P", keywords=["platform"], weight=0.4),
            Category(id="P.1", parent_id="P", depth=1, keywords=["tiny"], weight=0.05),
            Category(id="P.1.1", parent_id="P.1", depth=2, keywords=["tinier"], weight=0.05),
            Category(id="P.2", parent_id="P", depth=1, keywords=["alpha"], weight=0.25),
            Category(id="P.3", parent_id="P", depth=1, keywords=["beta"], weight=0.25),
        )
        return cats, signal

    def test_underutilized_merges_into_most_correlated_sibling(self, setup):
        cats, signal = setup
        report = validate_categories(cats, signal)
        assert report.underutilized == ["P.1", "P.1.1"]

        new, step = _adjust(cats, report, signal, EngineConfig(), 1)
        by_id = {c.id: c for c in new}

        assert step.merges == ["P.1->P.2"]
        assert "P.1" not in by_id
        assert by_id["P.2"].keywords == ("alpha", "tiny")
        assert by_id["P.2"].weight == pytest.approx(0.30)

    def test_children_of_absorbed_category_are_rehomed(self, setup):
        cats, signal = setup
        report = validate_categories(cats, signal)
        new, _ = _adjust(cats, report, signal, EngineConfig(), 1)
        by_id = {c.id: c for c in new}

        assert [c.id for c in new] == ["P", "P.2", "P.2.1", "P.3"]
        assert by_id["P.2.1"].parent_id == "P.2"
        assert by_id["P.2.1"].depth == 2
        assert by_id["P.2.1"].keywords == ("tinier",)
        CategoryStore.from_definitions(new)


class TestReassignPass:
    def test_shared_keyword_moves_to_heavier_member(self, make_signal):
        signal = make_signal({
            "api": _e(0, 2),
            "shared": _add(_e(2, 2), _e(3, 2)),
            "ui": _e(7, 2),
        })
        cats = [
            Category(id="A", keywords=["api", "shared"], weight=0.6),
            Category(id="B", keywords=["shared", "ui"], weight=0.4),
        ]
        # coverage band wide open so only the orthogonality gate matters
        config = EngineConfig(min_share=0.0, max_share=1.0)

        result = balance_categories(cats, signal, config)
        by_id = {c.id: c for c in result.categories}

        assert result.unresolved is False
        assert result.passes == 1
        assert result.history[0].reassignments == ["B->A:shared"]
        assert by_id["A"].keywords == ("api", "shared")
        assert by_id["B"].keywords == ("ui",)
        assert result.report.max_pairwise_correlation <= 0.3

    def test_lighter_member_keeps_at_least_one_keyword(self, make_signal):
        signal = make_signal({
            "api": _e(0, 2),
            "shared": _add(_e(2, 2), _e(3, 2)),
        })
        cats = [
            Category(id="A", keywords=["api", "shared"], weight=0.6),
            Category(id="B", keywords=["shared"], weight=0.4),
        ]
        config = EngineConfig(min_share=0.0, max_share=1.0)

        result = balance_categories(cats, signal, config)

        assert result.unresolved is True
        assert result.passes == 1
        assert result.history[0].changed is False
        assert [c.keywords for c in result.categories] == [("api", "shared"), ("shared",)]


def _mix(offset, *terms):
    """offset + sum(coef * row) over (coef, row) terms."""
    out = [float(offset)] * 8
    for coef, row in terms:
        out = [x + coef * r for x, r in zip(out, row)]
    return out


class TestScenarioHighCorrelation:
    """Two categories correlated well above the reject threshold"""

    def test_overlapping_keyword_moves_and_resolves(self, make_signal, hadamard):
        """release tracks build; moving it off B leaves every pair uncorrelated"""
        h = hadamard
        signal = make_signal({
            "build": _mix(4, (3, h(1))),
            "api": _mix(1, (1, h(3))),
            "release": _mix(4, (3, h(1)), (1, h(2))),
            "ui": _mix(1, (1, h(4))),
            "ops": _mix(4, (1, h(5))),
            "docs": _mix(4, (1, h(6))),
            "deploy": _mix(5, (1, h(7))),
        })
        cats = [
            Category(id="A", keywords=["build", "api"], weight=0.3),
            Category(id="B", keywords=["release", "ui"], weight=0.2),
            Category(id="C", keywords=["ops"], weight=0.15),
            Category(id="D", keywords=["docs"], weight=0.15),
            Category(id="E", keywords=["deploy"], weight=0.2),
        ]
        config = EngineConfig()
        before = validate_categories(cats, signal, config)
        assert before.max_pairwise_correlation > 0.85
        assert before.balanced is True

        result = balance_categories(cats, signal, config)
        by_id = {c.id: c for c in result.categories}

        assert result.unresolved is False
        assert result.passes == 1
        assert result.history[0].reassignments == ["B->A:release"]
        assert result.report.max_pairwise_correlation <= 0.3
        assert result.report.balanced is True
        assert by_id["A"].keywords == ("api", "build", "release")
        assert by_id["B"].keywords == ("ui",)

    def test_unresolvable_pair_returns_best_set_seen(self, make_signal, make_correlated):
        """One heavy keyword each: no split, merge or move can decorrelate them"""
        v1, v2 = make_correlated(2, 0.89)
        signal = make_signal({
            "build": v1,
            "compile": _e(0, 0.5),
            "release": v2,
            "ship": _e(7, 0.5),
        })
        cats = [
            Category(id="A", keywords=["build", "compile"], weight=0.5),
            Category(id="B", keywords=["release", "ship"], weight=0.5),
        ]
        config = EngineConfig()
        assert validate_categories(cats, signal, config).max_pairwise_correlation > 0.85

        result = balance_categories(cats, signal, config)

        assert result.unresolved is True
        # a revisited category set ends the loop before the bound
        assert result.passes < config.max_iterations
        assert len(result.history) == result.passes

        best = result.report.orthogonality_score + result.report.coverage_score
        assert all(best >= p.orthogonality_score + p.coverage_score for p in result.history)
        assert validate_categories(result.categories, signal, config).model_dump() == result.report.model_dump()

        CategoryStore.from_definitions(result.categories)
        assert validate_order(result.categories)


class TestSplitThenReassign:
    def test_pair_is_rechecked_after_split(self, make_signal, hadamard):
        """A is split for load, then its surviving half still takes release from B"""
        h = hadamard
        signal = make_signal({
            "build": _mix(4, (3, h(1))),
            "store": _mix(3, (1, h(5))),
            "release": _mix(4, (3, h(1)), (1, h(2))),
            "ui": _mix(1, (1, h(4))),
            "ops": _mix(2, (1, h(6))),
        })
        cats = (
            Category(id="A", keywords=["build", "store"], weight=0.5),
            Category(id="B", keywords=["release", "ui"], weight=0.2),
            Category(id="C", keywords=["ops"], weight=0.3),
        )
        config = EngineConfig()
        report = validate_categories(cats, signal, config)
        assert report.overloaded == ["A"]
        assert len(report.flagged_pairs) == 1

        new, step = _adjust(cats, report, signal, config, 1)
        by_id = {c.id: c for c in new}

        assert step.splits == ["A->D"]
        assert step.reassignments == ["B->A:release"]
        assert by_id["A"].keywords == ("build", "release")
        assert by_id["B"].keywords == ("ui",)
        assert by_id["D"].keywords == ("store",)


class TestTieBreaks:
    """Deterministic tie-breaks of the adjustment rules"""

    def test_merge_tie_goes_to_shortlex_smaller_sibling(self, make_signal):
        """Both candidate siblings are constant (undefined r = 0): B sorts before AA"""
        signal = make_signal({
            "alpha": [5.0] * 8,
            "beta": [5.0] * 8,
            "tiny": _e(0, 0.1),
        })
        cats = (
            Category(id="B", keywords=["beta"], weight=0.45),
            Category(id="C", keywords=["tiny"], weight=0.1),
            Category(id="AA", keywords=["alpha"], weight=0.45),
        )
        config = EngineConfig(max_share=1.0)
        report = validate_categories(cats, signal, config)
        assert report.underutilized == ["C"]

        new, step = _adjust(cats, report, signal, config, 1)
        by_id = {c.id: c for c in new}

        assert step.merges == ["C->B"]
        assert by_id["B"].keywords == ("beta", "tiny")
        assert by_id["AA"].keywords == ("alpha",)

    def test_equal_weight_reassign_takes_from_shortlex_later(self, make_signal):
        signal = make_signal({
            "api": _e(0, 2),
            "shared": _add(_e(2, 2), _e(3, 2)),
            "ui": _e(7, 2),
        })
        cats = (
            Category(id="B", keywords=["api", "shared"], weight=0.5),
            Category(id="AA", keywords=["shared", "ui"], weight=0.5),
        )
        config = EngineConfig(min_share=0.0, max_share=1.0)
        report = validate_categories(cats, signal, config)

        new, step = _adjust(cats, report, signal, config, 1)
        by_id = {c.id: c for c in new}

        assert step.reassignments == ["AA->B:shared"]
        assert by_id["AA"].keywords == ("ui",)
        assert by_id["B"].keywords == ("api", "shared")

    def test_partition_tie_goes_to_lighter_group(self, make_signal):
        signal = make_signal({"alpha": _e(0, 4), "omega": _e(1, 1)})
        g1, g2 = partition_keywords(["alpha", "omega", "zero"], signal)
        assert g1 == ("alpha",)
        assert g2 == ("omega", "zero")

    def test_partition_tie_on_equal_mass_goes_to_smaller_seed(self, make_signal):
        signal = make_signal({"beta": _e(0, 2), "alpha": _e(1, 2)})
        g1, g2 = partition_keywords(["beta", "alpha", "gamma"], signal)
        assert g1 == ("alpha", "gamma")
        assert g2 == ("beta",)


class TestLoopProperties:
    @pytest.fixture
    def messy(self, make_signal):
        rng = np.random.default_rng(7)
        words = [f"w{i:02d}" for i in range(14)]
        signal = make_signal({w: list(rng.integers(0, 5, size=8).astype(float)) for w in words})
        cats = [
            Category(id="A", keywords=words[0:6], weight=0.4),
            Category(id="A.1", parent_id="A", depth=1, keywords=words[6:8], weight=0.1),
            Category(id="A.2", parent_id="A", depth=1, keywords=words[8:9], weight=0.05),
            Category(id="B", keywords=words[9:13], weight=0.4),
            Category(id="B.1", parent_id="B", depth=1, keywords=words[13:14], weight=0.05),
        ]
        return cats, signal

    @pytest.mark.parametrize("max_iterations", [0, 1, 3, 10])
    def test_terminates_within_bound(self, messy, max_iterations):
        cats, signal = messy
        config = EngineConfig(max_iterations=max_iterations)
        result = balance_categories(cats, signal, config)

        assert result.passes <= max_iterations
        assert len(result.history) == result.passes
        assert result.unresolved or (result.report.acceptable and result.report.balanced)

    def test_never_breaks_the_forest(self, messy):
        cats, signal = messy
        result = balance_categories(cats, signal)
        store = CategoryStore.from_definitions(result.categories)
        assert len(store) == len(result.categories)
        assert validate_order(result.categories)

    def test_deterministic(self, messy):
        cats, signal = messy
        first = balance_categories(cats, signal)
        second = balance_categories(list(reversed(cats)), signal)
        assert first.model_dump() == second.model_dump()

    def test_input_is_not_mutated(self, messy):
        cats, signal = messy
        before = [c.model_dump() for c in cats]
        balance_categories(cats, signal)
        assert [c.model_dump() for c in cats] == before

    def test_unresolved_returns_best_scoring_set(self, messy):
        cats, signal = messy
        result = balance_categories(cats, signal, EngineConfig(max_iterations=2))
        if result.unresolved:
            seen = [p.orthogonality_score + p.coverage_score for p in result.history]
            best = result.report.orthogonality_score + result.report.coverage_score
            assert all(best >= s for s in seen)

    def test_empty_set(self, make_signal):
        result = balance_categories([], make_signal({}))
        assert result.unresolved is False
        assert result.categories == ()
