"""
adaptive_algorithms.py – Item Response Theory engine for adaptive tests
=======================================================================
Three-parameter logistic (3PL) model:

    P(correct | θ) = c + (1 − c) / (1 + e^(−a(θ − b)))

  θ  learner ability          b  item difficulty (DIFFICULTY_SCORES)
  a  discrimination index     c  guessing parameter

Ability is estimated by Newton-Raphson maximum likelihood; the next item
is the one with the most Fisher information at the current estimate;
testing stops when the standard error or the estimate itself settles.

Public API
----------
  response_probability(θ, b, a, c)
  estimate_ability(responses, questions)            → θ
  standard_error(responses, questions, θ)           → SE
  select_next_question(available, θ, previous, …)   → AdaptiveQuestion | None
  should_continue_testing(responses, questions, θ, max_questions, target_se)
  generate_adaptive_metrics(responses, questions, θ, algorithm)
  mission_aligned_selection / journey_focused_selection /
  progressive_difficulty_selection / fatigue_aware_selection /
  confidence_based_selection
  optimize_question_bank(questions) / analyze_test_performance(responses)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from statistics import fmean, pstdev
from typing import Any, Iterable, Optional

from exam_prep.models import (
    DIFFICULTY_ORDER,
    AbilityEstimate,
    AdaptiveMetrics,
    AdaptiveQuestion,
    AlgorithmType,
    DifficultyLevel,
    ProgressImpact,
    TestResponse,
    difficulty_from_number,
)

__all__ = [
    "DIFFICULTY_SCORES",
    "difficulty_from_number",
    "response_probability",
    "estimate_ability",
    "standard_error",
    "select_next_question",
    "should_continue_testing",
    "generate_adaptive_metrics",
    "mission_aligned_selection",
    "journey_focused_selection",
    "progressive_difficulty_selection",
    "fatigue_aware_selection",
    "confidence_based_selection",
    "optimize_question_bank",
    "analyze_test_performance",
]

DIFFICULTY_SCORES: dict[DifficultyLevel, float] = {
    DifficultyLevel.BEGINNER:     0.2,
    DifficultyLevel.INTERMEDIATE: 0.4,
    DifficultyLevel.ADVANCED:     0.6,
    DifficultyLevel.EXPERT:       0.8,
}

IDEAL_DIFFICULTY_MIX: dict[DifficultyLevel, float] = {
    DifficultyLevel.BEGINNER:     0.2,
    DifficultyLevel.INTERMEDIATE: 0.3,
    DifficultyLevel.ADVANCED:     0.3,
    DifficultyLevel.EXPERT:       0.2,
}

THETA_BOUND = 4.0
MAX_ITERATIONS = 50
TOLERANCE = 0.001
MIN_QUESTIONS = 5


# ─── IRT core ────────────────────────────────────────────────────────────────

def response_probability(theta: float, b: float, a: float = 1.0, c: float = 0.25) -> float:
    """3PL probability of a correct answer, clamped to [0.01, 0.99]."""
    p = c + (1 - c) / (1 + math.exp(-a * (theta - b)))
    return max(0.01, min(0.99, p))


def _item_terms(theta: float, question: AdaptiveQuestion) -> tuple[float, float, float]:
    """(probability, score term, Fisher information) of *question* at *theta*."""
    b = DIFFICULTY_SCORES[question.difficulty]
    a = question.discrimination_index
    c = question.guessing_parameter
    p = response_probability(theta, b, a, c)
    e = math.exp(-a * (theta - b))
    score = a * (1 - c) * e / (1 + e) ** 2
    info = score ** 2 / (p * (1 - p))
    return p, score, info


def _answered(responses: Iterable[TestResponse], questions: list[AdaptiveQuestion]):
    by_id = {q.id: q for q in questions}
    for r in responses:
        q = by_id.get(r.question_id)
        if q is not None:
            yield r, q


def estimate_ability(responses: list[TestResponse], questions: list[AdaptiveQuestion]) -> float:
    """Maximum-likelihood θ via Newton-Raphson, starting at 0 and clamped to ±4."""
    if not responses:
        return 0.0
    pairs = list(_answered(responses, questions))
    theta = 0.0
    for _ in range(MAX_ITERATIONS):
        derivative = 0.0
        information = 0.0
        for response, question in pairs:
            p, score, info = _item_terms(theta, question)
            derivative += score / p if response.is_correct else -score / (1 - p)
            information += info
        if information == 0:
            break
        step = derivative / information
        theta = max(-THETA_BOUND, min(THETA_BOUND, theta + step))
        if abs(step) < TOLERANCE:
            break
    return theta


def standard_error(responses: list[TestResponse], questions: list[AdaptiveQuestion], theta: float) -> float:
    information = sum(_item_terms(theta, q)[2] for _, q in _answered(responses, questions))
    return 1 / math.sqrt(information) if information > 0 else 1.0


def _subject_share(subject: str, responses: list[TestResponse], questions: list[AdaptiveQuestion]) -> float:
    if not responses:
        return 0.0
    matched = sum(1 for _, q in _answered(responses, questions) if q.subject == subject)
    return matched / len(responses)


def select_next_question(
    available: list[AdaptiveQuestion],
    theta: float,
    previous: list[TestResponse],
    subject_distribution: Optional[dict[str, float]] = None,
    difficulty_constraints: Optional[list[DifficultyLevel]] = None,
    avoid_recent_topics: Optional[list[str]] = None,
) -> Optional[AdaptiveQuestion]:
    """Maximum-information item, weighted towards under-represented subjects."""
    if not available:
        return None

    by_id = {q.id: q for q in available}
    recent_topics = {
        by_id[r.question_id].topic for r in previous[-3:] if r.question_id in by_id
    }

    best: Optional[AdaptiveQuestion] = None
    best_score = -1.0
    for question in available:
        if avoid_recent_topics and question.topic in avoid_recent_topics and question.topic in recent_topics:
            continue
        if difficulty_constraints and question.difficulty not in difficulty_constraints:
            continue

        p = response_probability(theta, DIFFICULTY_SCORES[question.difficulty],
                                 question.discrimination_index, question.guessing_parameter)
        information = question.discrimination_index ** 2 * p * (1 - p)

        weight = 1.0
        if subject_distribution is not None:
            desired = subject_distribution.get(question.subject, 0)
            current = _subject_share(question.subject, previous, available)
            weight = 1.5 if desired > current else 0.8

        if information * weight > best_score:
            best, best_score = question, information * weight
    return best


def should_continue_testing(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
    theta: float,
    max_questions: int,
    target_se: float = 0.3,
) -> bool:
    n = len(responses)
    if n < MIN_QUESTIONS:
        return True
    if n >= max_questions:
        return False
    if standard_error(responses, questions, theta) <= target_se:
        return False
    if n >= 10:
        trailing = [estimate_ability(responses[:n - 4 + i], questions) for i in range(5)]
        if pstdev(trailing) < 0.1:
            return False
    return True


# ─── Metrics ─────────────────────────────────────────────────────────────────

def _theoretical_optimal_questions(theta: float) -> float:
    return max(5.0, min(30.0, 15 - abs(theta) * 5))


def generate_adaptive_metrics(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
    final_theta: float,
    algorithm: AlgorithmType = AlgorithmType.HYBRID,
) -> AdaptiveMetrics:
    """Convergence history plus efficiency / utilisation / stability and progress impact.

    *algorithm* is accepted for symmetry with the test record; all three
    algorithms share the same metric definitions.
    """
    n = len(responses)
    if n == 0:
        return AdaptiveMetrics()

    history: list[AbilityEstimate] = []
    for i, response in enumerate(responses):
        partial = responses[: i + 1]
        estimate = estimate_ability(partial, questions)
        history.append(AbilityEstimate(
            timestamp=response.timestamp,
            estimate=estimate,
            standard_error=standard_error(partial, questions, estimate),
            question_number=i + 1,
        ))

    tail = [h.estimate for h in history[-3:]]
    accuracy = sum(1 for r in responses if r.is_correct) / n
    quality = sum((1 if r.is_correct else 0) + (0.1 if r.response_time < 30000 else 0) for r in responses)

    return AdaptiveMetrics(
        algorithm_efficiency=min(1.0, _theoretical_optimal_questions(final_theta) / n),
        question_utilization=sum(r.information_gained for r in responses) / (n * 2.0),
        ability_estimate_stability=1 - pstdev(tail) if len(tail) > 1 else 0,
        convergence_history=history,
        progress_impact=ProgressImpact(
            mission_difficulty_adjustment=max(-0.2, min(0.2, final_theta * 0.1)),
            journey_goal_update=max(0.0, min(1.0, accuracy * 1.2 - 0.1)),
            track_progress_contribution=quality / (n * 1.1),
        ),
    )


# ─── Specialised selectors ───────────────────────────────────────────────────

def _shift(difficulty: DifficultyLevel, steps: int) -> DifficultyLevel:
    index = DIFFICULTY_ORDER.index(difficulty) + steps
    return DIFFICULTY_ORDER[max(0, min(len(DIFFICULTY_ORDER) - 1, index))]


def mission_aligned_selection(
    available: list[AdaptiveQuestion],
    theta: float,
    target_difficulties: list[DifficultyLevel],
) -> Optional[AdaptiveQuestion]:
    aligned = [q for q in available if q.difficulty in target_difficulties]
    return select_next_question(aligned or available, theta, [])


def journey_focused_selection(
    available: list[AdaptiveQuestion],
    theta: float,
    journey_goals: list[Any],
    previous: list[TestResponse],
) -> Optional[AdaptiveQuestion]:
    """Prefer questions on subjects the journey's goals link to, spread evenly."""
    subjects: list[str] = []
    for goal in journey_goals:
        linked = goal.get("linked_subjects") if isinstance(goal, dict) else goal.linked_subjects
        subjects.extend(linked or [])
    aligned = [q for q in available if q.subject in subjects]
    distribution = {s: 1 / len(subjects) for s in subjects} if subjects else {}
    return select_next_question(aligned or available, theta, previous, subject_distribution=distribution)


def progressive_difficulty_selection(
    available: list[AdaptiveQuestion],
    theta: float,
    previous: list[TestResponse],
) -> Optional[AdaptiveQuestion]:
    """Step one level up after ≥80 % recent accuracy, one down after ≤40 %."""
    if not previous:
        beginner = [q for q in available if q.difficulty == DifficultyLevel.BEGINNER]
        return beginner[0] if beginner else (available[0] if available else None)

    recent = previous[-3:]
    accuracy = sum(1 for r in recent if r.is_correct) / len(recent)
    last = previous[-1].question_difficulty
    if accuracy >= 0.8:
        target = _shift(last, 1)
    elif accuracy <= 0.4:
        target = _shift(last, -1)
    else:
        target = last

    matching = [q for q in available if q.difficulty == target]
    return select_next_question(matching or available, theta, previous)


def fatigue_aware_selection(
    available: list[AdaptiveQuestion],
    theta: float,
    previous: list[TestResponse],
    fatigue_indicators: list[int],
) -> Optional[AdaptiveQuestion]:
    """Shift one level easier when recent response times run 30 % above the average.

    "Easier" is relative to the last answered question; only items at or
    below that level stay in the pool (the full pool if none do).
    """
    candidates = available
    if fatigue_indicators:
        overall = fmean(fatigue_indicators)
        recent = sum(fatigue_indicators[-3:]) / 3
        if overall > 0 and recent / overall > 1.3:
            last = previous[-1].question_difficulty if previous else DifficultyLevel.INTERMEDIATE
            ceiling = DIFFICULTY_ORDER.index(_shift(last, -1))
            candidates = [q for q in available if DIFFICULTY_ORDER.index(q.difficulty) <= ceiling] or available
    return select_next_question(candidates, theta, previous)


def confidence_based_selection(
    available: list[AdaptiveQuestion],
    theta: float,
    previous: list[TestResponse],
) -> Optional[AdaptiveQuestion]:
    rated = [r for r in previous if r.confidence is not None]
    if rated:
        over = sum(1 for r in rated if not r.is_correct and r.confidence >= 4)
        under = sum(1 for r in rated if r.is_correct and r.confidence <= 2)
        if over > under:
            return select_next_question(available, theta, previous, difficulty_constraints=[
                DifficultyLevel.ADVANCED, DifficultyLevel.EXPERT])
        if under > over:
            return select_next_question(available, theta, previous, difficulty_constraints=[
                DifficultyLevel.BEGINNER, DifficultyLevel.INTERMEDIATE])
    return select_next_question(available, theta, previous)


# ─── Optimiser ───────────────────────────────────────────────────────────────

@dataclass
class BankReport:
    questions:        list[AdaptiveQuestion]
    recommendations:  list[str] = field(default_factory=list)


@dataclass
class PerformanceReport:
    efficiency:       float
    accuracy:         float
    recommendations:  list[str] = field(default_factory=list)


def optimize_question_bank(questions: list[AdaptiveQuestion]) -> BankReport:
    report = BankReport(questions=list(questions))
    if not questions:
        return report
    total = len(questions)

    low = sum(1 for q in questions if q.discrimination_index < 0.5)
    if low > total * 0.2:
        report.recommendations.append(
            "Consider removing or improving questions with low discrimination index")

    for level, ideal in IDEAL_DIFFICULTY_MIX.items():
        actual = sum(1 for q in questions if q.difficulty == level) / total
        if abs(actual - ideal) > 0.1:
            report.recommendations.append(
                f"Adjust {level.value} question ratio: current {actual * 100:.1f}%, ideal {ideal * 100:.1f}%")

    counts: dict[str, int] = {}
    for q in questions:
        counts[q.subject] = counts.get(q.subject, 0) + 1
    mean = total / len(counts)
    for subject, count in counts.items():
        if count < mean * 0.5:
            report.recommendations.append(f"Insufficient questions for subject: {subject} ({count} questions)")
    return report


def analyze_test_performance(responses: list[TestResponse]) -> PerformanceReport:
    if not responses:
        return PerformanceReport(efficiency=0.0, accuracy=0.0)
    times = [r.response_time for r in responses]
    average = fmean(times)
    report = PerformanceReport(
        efficiency=max(0.0, 1 - (average - 60000) / 300000),
        accuracy=sum(1 for r in responses if r.is_correct) / len(responses),
    )
    if report.efficiency < 0.7:
        report.recommendations.append(
            "Consider optimizing question selection algorithm for better time efficiency")
    if report.accuracy < 0.6:
        report.recommendations.append(
            "Test may be too difficult - consider adjusting initial difficulty estimation")
    elif report.accuracy > 0.9:
        report.recommendations.append(
            "Test may be too easy - consider starting with higher difficulty questions")
    if average > 0 and pstdev(times) / average > 0.5:
        report.recommendations.append(
            "High response time variability detected - consider fatigue management strategies")
    return report
