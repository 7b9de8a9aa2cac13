"""
Tests for the IRT engine: probabilities, ability estimation, item
selection, stopping rule, metrics and the specialised selectors.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from factories import make_question, make_response

from exam_prep import adaptive_algorithms as irt
from exam_prep.models import AlgorithmType, DifficultyLevel, JourneyGoal

B, I, A, E = (DifficultyLevel.BEGINNER, DifficultyLevel.INTERMEDIATE,
              DifficultyLevel.ADVANCED, DifficultyLevel.EXPERT)


def _bank(levels=(B, I, A, E), subject="data_structures"):
    return [make_question(f"{subject}-{lvl.value}", subject, lvl) for lvl in levels]


class TestProbability:
    def test_midpoint(self):
        # at θ = b the logistic term is 1/2
        assert irt.response_probability(0.4, 0.4, 1.0, 0.2) == pytest.approx(0.6)

    def test_monotonic_in_ability(self):
        assert irt.response_probability(2, 0.4) > irt.response_probability(-2, 0.4)

    def test_clamped(self):
        assert irt.response_probability(50, 0.2, 3.0, 0.0) == 0.99
        assert irt.response_probability(-50, 0.2, 3.0, 0.0) == 0.01


class TestAbility:
    def test_no_responses(self):
        assert irt.estimate_ability([], []) == 0.0

    def test_correct_answers_raise_estimate(self):
        bank = _bank()
        up = irt.estimate_ability([make_response(q, True) for q in bank], bank)
        down = irt.estimate_ability([make_response(q, False) for q in bank], bank)
        assert up > 0 > down

    def test_estimate_is_bounded(self):
        bank = _bank() * 3
        theta = irt.estimate_ability([make_response(q, True) for q in bank], bank)
        assert -irt.THETA_BOUND <= theta <= irt.THETA_BOUND

    def test_standard_error_shrinks_with_more_items(self):
        bank = [make_question(f"q{i}", difficulty=I) for i in range(12)]
        few = [make_response(q, i % 2 == 0) for i, q in enumerate(bank[:3])]
        many = [make_response(q, i % 2 == 0) for i, q in enumerate(bank)]
        assert irt.standard_error(many, bank, 0.0) < irt.standard_error(few, bank, 0.0)

    def test_standard_error_without_items(self):
        assert irt.standard_error([], [], 0.0) == 1.0


class TestSelection:
    def test_empty_pool(self):
        assert irt.select_next_question([], 0.0, []) is None

    def test_prefers_most_informative_item(self):
        bank = _bank()
        # a²·p·(1−p) peaks where p is nearest 1/2
        assert irt.select_next_question(bank, 3.0, []).difficulty == E
        assert irt.select_next_question(bank, -1.0, []).difficulty == B

    def test_difficulty_constraints(self):
        chosen = irt.select_next_question(_bank(), -1.0, [], difficulty_constraints=[E])
        assert chosen.difficulty == E

    def test_subject_distribution_boosts_underrepresented(self):
        ds = make_question("ds", "data_structures", I)
        os_q = make_question("os", "operating_systems", I)
        chosen = irt.select_next_question([ds, os_q], 0.0, [],
                                          subject_distribution={"operating_systems": 1.0})
        assert chosen.id == "os"


class TestStoppingRule:
    def test_minimum_questions(self):
        bank = _bank()
        responses = [make_response(q, True) for q in bank]
        assert irt.should_continue_testing(responses, bank, 0.0, max_questions=3)

    def test_max_questions(self):
        bank = [make_question(f"q{i}") for i in range(6)]
        responses = [make_response(q, i % 2 == 0) for i, q in enumerate(bank)]
        assert not irt.should_continue_testing(responses, bank, 0.0, max_questions=6)

    def test_continues_while_uncertain(self):
        bank = [make_question(f"q{i}") for i in range(6)]
        responses = [make_response(q, i % 2 == 0) for i, q in enumerate(bank)]
        assert irt.should_continue_testing(responses, bank, 0.0, max_questions=20, target_se=0.01)

    def test_stops_once_standard_error_reaches_target(self):
        # six sharp items at their own difficulty carry enough information for SE < 0.3
        sharp = [make_question(f"q{i}", discrimination=5.0) for i in range(6)]
        responses = [make_response(q, i % 2 == 0) for i, q in enumerate(sharp)]
        theta = irt.DIFFICULTY_SCORES[I]
        assert irt.standard_error(responses, sharp, theta) <= 0.3
        assert not irt.should_continue_testing(responses, sharp, theta, max_questions=20, target_se=0.3)

        blunt = [make_question(f"q{i}") for i in range(6)]
        assert irt.standard_error(responses, blunt, theta) > 0.3
        assert irt.should_continue_testing(responses, blunt, theta, max_questions=20, target_se=0.3)

    def test_stops_once_estimate_is_stable(self):
        bank = [make_question(f"q{i}") for i in range(40)]
        responses = [make_response(q, i % 2 == 0) for i, q in enumerate(bank)]
        theta = irt.estimate_ability(responses, bank)
        assert irt.standard_error(responses, bank, theta) > 0.01
        assert not irt.should_continue_testing(responses, bank, theta, max_questions=50, target_se=0.01)

    def test_keeps_going_while_estimate_moves(self):
        bank = [make_question(f"q{i}") for i in range(10)]
        responses = [make_response(q, i >= 5) for i, q in enumerate(bank)]
        theta = irt.estimate_ability(responses, bank)
        assert irt.should_continue_testing(responses, bank, theta, max_questions=50, target_se=0.01)


class TestMetrics:
    def test_empty(self):
        metrics = irt.generate_adaptive_metrics([], [], 0.0)
        assert metrics.convergence_history == []
        assert metrics.algorithm_efficiency == 0

    def test_history_and_bounds(self):
        bank = _bank()
        responses = [make_response(q, True) for q in bank]
        theta = irt.estimate_ability(responses, bank)
        metrics = irt.generate_adaptive_metrics(responses, bank, theta, AlgorithmType.CAT)
        assert [h.question_number for h in metrics.convergence_history] == [1, 2, 3, 4]
        assert 0 < metrics.algorithm_efficiency <= 1
        impact = metrics.progress_impact
        assert -0.2 <= impact.mission_difficulty_adjustment <= 0.2
        assert impact.journey_goal_update == pytest.approx(1.0)


class TestSpecialisedSelectors:
    def test_mission_aligned(self):
        chosen = irt.mission_aligned_selection(_bank(), 0.0, [B])
        assert chosen.difficulty == B

    def test_mission_aligned_falls_back(self):
        assert irt.mission_aligned_selection(_bank((I,)), 0.0, [E]).difficulty == I

    def test_journey_focused_prefers_linked_subjects(self):
        pool = _bank((I,), "data_structures") + _bank((I,), "dbms")
        goals = [JourneyGoal(title="g", target_value=1, linked_subjects=["dbms"])]
        assert irt.journey_focused_selection(pool, 0.0, goals, []).subject == "dbms"
        as_dicts = [{"linked_subjects": ["dbms"]}]
        assert irt.journey_focused_selection(pool, 0.0, as_dicts, []).subject == "dbms"

    def test_progressive_starts_easy(self):
        assert irt.progressive_difficulty_selection(_bank(), 0.0, []).difficulty == B

    def test_progressive_steps_up(self):
        bank = _bank()
        previous = [make_response(bank[1], True)] * 3
        assert irt.progressive_difficulty_selection(bank, 0.0, previous).difficulty == A

    def test_progressive_steps_down(self):
        bank = _bank()
        previous = [make_response(bank[2], False)] * 3
        assert irt.progressive_difficulty_selection(bank, 0.0, previous).difficulty == I

    def test_fatigue_moves_easier(self):
        bank = _bank()
        previous = [make_response(bank[2], True)]
        slow_tail = [10000, 10000, 10000, 40000, 40000, 40000]
        chosen = irt.fatigue_aware_selection(bank, 3.0, previous, slow_tail)
        assert chosen.difficulty == I

    def test_no_fatigue_uses_full_pool(self):
        bank = _bank()
        assert irt.fatigue_aware_selection(bank, 3.0, [], [20000] * 5).difficulty == E

    def test_confidence_overconfident_gets_harder(self):
        bank = _bank()
        previous = [make_response(bank[0], False, confidence=5)]
        assert irt.confidence_based_selection(bank, 2.0, previous).difficulty in (A, E)

    def test_confidence_underconfident_gets_easier(self):
        bank = _bank()
        previous = [make_response(bank[0], True, confidence=1)]
        assert irt.confidence_based_selection(bank, -1.0, previous).difficulty in (B, I)


class TestOptimiser:
    def test_balanced_bank_has_no_recommendations(self):
        bank = ([make_question(f"b{i}", difficulty=B) for i in range(2)]
                + [make_question(f"i{i}", difficulty=I) for i in range(3)]
                + [make_question(f"a{i}", difficulty=A) for i in range(3)]
                + [make_question(f"e{i}", difficulty=E) for i in range(2)])
        assert irt.optimize_question_bank(bank).recommendations == []

    def test_skewed_bank(self):
        bank = [make_question(f"b{i}", difficulty=B) for i in range(8)] + [make_question("x", "dbms", E)]
        recs = irt.optimize_question_bank(bank).recommendations
        assert any("beginner" in r for r in recs)
        assert any("Insufficient questions for subject: dbms" in r for r in recs)

    def test_performance_report(self):
        q = make_question()
        report = irt.analyze_test_performance([make_response(q, True, 30000)] * 10)
        assert report.accuracy == 1.0
        assert any("too easy" in r for r in report.recommendations)
        assert irt.analyze_test_performance([]).efficiency == 0.0
