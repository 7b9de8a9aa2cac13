"""
recommendation_engine.py — Which adaptive test to take next
===========================================================
Turns what we know about a learner (subject accuracy, active journeys,
recently completed tests) into a ranked list of ready-to-create test
configurations.

Candidates
----------
  weak area       one per weakest subject (up to 3), CAT, high priority
  journey         one per active journey with linked subjects (up to 2), HYBRID
  comprehensive   the 4 weakest subjects together, when there are 2 or more
  strength        an advanced challenge on the strongest subject, low priority

Each candidate is scored as a weighted sum of six signals (weak-area
overlap, journey alignment, journey progression, difficulty fit, variety,
freshness); the weights depend on the recommendation kind.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from statistics import fmean
from typing import Optional

from exam_prep.models import (
    AdaptiveTest,
    AlgorithmType,
    DifficultyLevel,
    DifficultyRange,
    JourneyPriority,
    SyllabusSubject,
    TopicProgress,
    UserJourney,
)
from exam_prep.syllabus_service import calculate_subject_mastery

logger = logging.getLogger(__name__)

WEAK_ACCURACY = 65
STRONG_ACCURACY = 85
MAX_WEAK_AREAS = 5
MAX_STRONG_AREAS = 3
DEFAULT_ACCURACY = 70
VARIETY_WINDOW = 5
FRESHNESS_WINDOW = 3


class RecommendationKind(str, Enum):
    ALL             = "all"
    WEAK_AREA       = "weak_area"
    JOURNEY_ALIGNED = "journey_aligned"
    QUICK           = "quick"


@dataclass(frozen=True)
class RecommendationWeights:
    weak_area_focus:         float = 0.4
    journey_alignment:       float = 0.25
    journey_progression:     float = 0.15
    difficulty_progression:  float = 0.1
    variety_bonus:           float = 0.05
    freshness_bonus:         float = 0.05


@dataclass(frozen=True)
class _KindProfile:
    weights:        RecommendationWeights
    limit:          int
    max_questions:  int = 25
    max_duration:   int = 45        # minutes


PROFILES: dict[RecommendationKind, _KindProfile] = {
    RecommendationKind.ALL: _KindProfile(RecommendationWeights(), limit=5),
    RecommendationKind.WEAK_AREA: _KindProfile(
        RecommendationWeights(weak_area_focus=0.7, journey_alignment=0.15,
                              journey_progression=0.1, difficulty_progression=0.05),
        limit=3,
    ),
    RecommendationKind.JOURNEY_ALIGNED: _KindProfile(
        RecommendationWeights(weak_area_focus=0.2, journey_alignment=0.5,
                              journey_progression=0.2, difficulty_progression=0.1),
        limit=3,
    ),
    RecommendationKind.QUICK: _KindProfile(
        RecommendationWeights(weak_area_focus=0.5, journey_alignment=0.2, journey_progression=0.1),
        limit=3, max_questions=15, max_duration=20,
    ),
}

_PROGRESSIVE = {
    DifficultyLevel.BEGINNER:     DifficultyLevel.INTERMEDIATE,
    DifficultyLevel.INTERMEDIATE: DifficultyLevel.INTERMEDIATE,
    DifficultyLevel.ADVANCED:     DifficultyLevel.ADVANCED,
}
_ADVANCED = {
    DifficultyLevel.BEGINNER:     DifficultyLevel.INTERMEDIATE,
    DifficultyLevel.INTERMEDIATE: DifficultyLevel.ADVANCED,
    DifficultyLevel.ADVANCED:     DifficultyLevel.EXPERT,
}
_DIFFICULTY_RANK = {level: rank for rank, level in enumerate(DifficultyLevel, start=1)}


@dataclass
class TestRecommendation:
    """A scored, ready-to-create adaptive test configuration."""
    id:                     str
    title:                  str
    description:            str
    subjects:               list[str]
    question_count:         int
    estimated_duration:     int                 # minutes
    difficulty:             DifficultyLevel
    priority:               JourneyPriority
    algorithm_type:         AlgorithmType
    difficulty_range:       DifficultyRange
    target_standard_error:  float
    expected_benefit:       str = ""
    reasons:                list[str] = field(default_factory=list)
    tags:                   list[str] = field(default_factory=list)
    journey_alignment:      float = 0.0
    estimated_accuracy:     float = DEFAULT_ACCURACY
    linked_journeys:        list[str] = field(default_factory=list)
    journey_id:             Optional[str] = None
    course_id:              Optional[str] = None
    score:                  float = 0.0
    confidence:             float = 0.0


@dataclass
class RecommendationContext:
    subject_accuracy:      dict[str, float]
    subject_names:         dict[str, str]
    active_journeys:       list[UserJourney]
    completed_tests:       list[AdaptiveTest]      # newest first
    weak_areas:            list[str]
    strong_areas:          list[str]
    preferred_difficulty:  DifficultyLevel

    def name_of(self, subject_id: str) -> str:
        return self.subject_names.get(subject_id) or subject_id.replace("_", " ").title()

    def accuracy_of(self, subject_id: str) -> float:
        return self.subject_accuracy.get(subject_id, DEFAULT_ACCURACY)

    def overall_accuracy(self) -> float:
        return fmean(self.subject_accuracy.values()) if self.subject_accuracy else DEFAULT_ACCURACY


def journey_subjects(journey: UserJourney) -> list[str]:
    return list(dict.fromkeys(s for goal in journey.custom_goals for s in goal.linked_subjects))


def build_context(
    subjects: list[SyllabusSubject],
    progress: dict[str, TopicProgress],
    tests: list[AdaptiveTest],
    journeys: list[UserJourney],
) -> RecommendationContext:
    """Subject accuracy comes from the newest completed test covering the
    subject, falling back to syllabus mastery for subjects with tracked topics."""
    completed = [t for t in tests if t.completed_at is not None]
    accuracy: dict[str, float] = {}
    for subject in subjects:
        if any(t.id in progress for t in subject.topics):
            accuracy[subject.id] = calculate_subject_mastery(subject, progress)
    seen: set[str] = set()
    for test in completed:
        for subject_id, perf in test.performance.subject_performance.items():
            if subject_id not in seen and perf.questions_answered:
                accuracy[subject_id] = perf.accuracy
                seen.add(subject_id)

    ranked = sorted(accuracy.items(), key=lambda item: item[1])
    weak = [s for s, score in ranked if score < WEAK_ACCURACY][:MAX_WEAK_AREAS]
    strong = [s for s, score in reversed(ranked) if score >= STRONG_ACCURACY][:MAX_STRONG_AREAS]

    if not completed:
        preferred = DifficultyLevel.INTERMEDIATE
    else:
        average = fmean(t.performance.accuracy for t in completed)
        if average >= STRONG_ACCURACY:
            preferred = DifficultyLevel.ADVANCED
        elif average >= DEFAULT_ACCURACY:
            preferred = DifficultyLevel.INTERMEDIATE
        else:
            preferred = DifficultyLevel.BEGINNER

    return RecommendationContext(
        subject_accuracy=accuracy,
        subject_names={s.id: s.name for s in subjects},
        active_journeys=journeys,
        completed_tests=completed,
        weak_areas=weak,
        strong_areas=strong,
        preferred_difficulty=preferred,
    )


# ─── Candidates ──────────────────────────────────────────────────────────────

def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _alignment(subjects: list[str], journeys: list[UserJourney]) -> float:
    if not journeys or not subjects:
        return 0.0
    linked = {s for j in journeys for s in journey_subjects(j)}
    return sum(1 for s in subjects if s in linked) / len(subjects)


def _related_journeys(subjects: list[str], journeys: list[UserJourney]) -> list[str]:
    return [j.id for j in journeys if set(subjects) & set(journey_subjects(j))][:3]


def generate_candidates(
    context: RecommendationContext,
    max_questions: int = 25,
    max_duration: int = 45,
) -> list[TestRecommendation]:
    candidates = []
    journeys = context.active_journeys
    preferred = context.preferred_difficulty

    for subject in context.weak_areas[:3]:
        name = context.name_of(subject)
        candidates.append(TestRecommendation(
            id=_new_id("weak"),
            title=f"Master {name}",
            description=f"Focused assessment to improve your {name} skills",
            subjects=[subject],
            question_count=min(max_questions, 20),
            estimated_duration=min(max_duration, 30),
            difficulty=_PROGRESSIVE.get(preferred, DifficultyLevel.INTERMEDIATE),
            priority=JourneyPriority.HIGH,
            algorithm_type=AlgorithmType.CAT,
            difficulty_range=DifficultyRange(min=DifficultyLevel.BEGINNER, max=preferred),
            target_standard_error=0.3,
            expected_benefit="Strengthen weak areas",
            reasons=[f"Identified weakness in {name}", "Targeted skill improvement"],
            tags=["weakness-focus", "skill-building"],
            journey_alignment=_alignment([subject], journeys),
            estimated_accuracy=context.accuracy_of(subject),
            linked_journeys=_related_journeys([subject], journeys),
        ))

    for journey in journeys[:2]:
        subjects = journey_subjects(journey)
        if not subjects:
            continue
        candidates.append(TestRecommendation(
            id=_new_id("journey"),
            title=f"{journey.title} Assessment",
            description=f"Test your readiness for the {journey.title} journey",
            subjects=subjects,
            question_count=min(max_questions, 18),
            estimated_duration=min(max_duration, 35),
            difficulty=preferred,
            priority=JourneyPriority.MEDIUM,
            algorithm_type=AlgorithmType.HYBRID,
            difficulty_range=DifficultyRange(min=DifficultyLevel.BEGINNER, max=DifficultyLevel.INTERMEDIATE),
            target_standard_error=0.25,
            expected_benefit="Journey readiness check",
            reasons=[f"Supports active journey: {journey.title}", "Goal preparation"],
            tags=["journey-prep", "goal-aligned"],
            journey_alignment=1.0,
            estimated_accuracy=context.accuracy_of(subjects[0]),
            linked_journeys=[journey.id],
            journey_id=journey.id,
        ))

    if len(context.weak_areas) >= 2:
        subjects = context.weak_areas[:4]
        candidates.append(TestRecommendation(
            id=_new_id("review"),
            title="Comprehensive Skills Assessment",
            description="Multi-subject assessment covering your key learning areas",
            subjects=subjects,
            question_count=max_questions,
            estimated_duration=max_duration,
            difficulty=preferred,
            priority=JourneyPriority.MEDIUM,
            algorithm_type=AlgorithmType.CAT,
            difficulty_range=DifficultyRange(min=DifficultyLevel.BEGINNER, max=DifficultyLevel.ADVANCED),
            target_standard_error=0.35,
            expected_benefit="Overall progress assessment",
            reasons=["Comprehensive skill evaluation", "Multi-subject integration"],
            tags=["comprehensive", "multi-subject"],
            journey_alignment=_alignment(context.weak_areas, journeys),
            estimated_accuracy=context.overall_accuracy(),
            linked_journeys=[j.id for j in journeys][:3],
        ))

    if context.strong_areas:
        subject = context.strong_areas[0]
        name = context.name_of(subject)
        candidates.append(TestRecommendation(
            id=_new_id("strength"),
            title=f"Advanced {name} Challenge",
            description=f"Challenge yourself with advanced {name} problems",
            subjects=[subject],
            question_count=min(max_questions, 15),
            estimated_duration=min(max_duration, 25),
            difficulty=_ADVANCED.get(preferred, DifficultyLevel.ADVANCED),
            priority=JourneyPriority.LOW,
            algorithm_type=AlgorithmType.CAT,
            difficulty_range=DifficultyRange(min=DifficultyLevel.INTERMEDIATE, max=DifficultyLevel.EXPERT),
            target_standard_error=0.2,
            expected_benefit="Strength reinforcement",
            reasons=[f"Build on strength in {name}", "Advanced skill development"],
            tags=["strength-building", "advanced"],
            journey_alignment=_alignment([subject], journeys),
            estimated_accuracy=min(100.0, context.accuracy_of(subject) + 10),
            linked_journeys=_related_journeys([subject], journeys),
        ))

    return candidates


# ─── Scoring ─────────────────────────────────────────────────────────────────

def _recent_subjects(context: RecommendationContext, window: int) -> set[str]:
    return {s for test in context.completed_tests[:window] for s in test.linked_subjects}


def score_candidate(
    candidate: TestRecommendation,
    context: RecommendationContext,
    weights: RecommendationWeights,
) -> TestRecommendation:
    subjects = candidate.subjects
    weak_overlap = sum(1 for s in subjects if s in context.weak_areas) / max(len(subjects), 1)
    gap = abs(_DIFFICULTY_RANK[candidate.difficulty] - _DIFFICULTY_RANK[context.preferred_difficulty])
    difficulty_fit = max(0.0, 1 - gap / 3)
    variety = 1.0 if any(s not in _recent_subjects(context, VARIETY_WINDOW) for s in subjects) else 0.3
    freshness = 0.2 if any(s in _recent_subjects(context, FRESHNESS_WINDOW) for s in subjects) else 1.0
    # journey progression has no per-candidate signal yet; every candidate gets the midpoint
    progression = 0.5

    score = (weak_overlap * weights.weak_area_focus
             + candidate.journey_alignment * weights.journey_alignment
             + progression * weights.journey_progression
             + difficulty_fit * weights.difficulty_progression
             + variety * weights.variety_bonus
             + freshness * weights.freshness_bonus)
    candidate.score = round(min(score, 1.0), 4)

    confidence = 0.7
    if len(context.completed_tests) >= 3:
        confidence += 0.1
    if context.active_journeys:
        confidence += 0.1
    if candidate.journey_alignment > 0.5:
        confidence += 0.1
    candidate.confidence = round(min(confidence, 1.0), 2)
    return candidate


def recommend(
    context: RecommendationContext,
    kind: RecommendationKind = RecommendationKind.ALL,
    limit: Optional[int] = None,
) -> list[TestRecommendation]:
    """Top candidates for *kind*, best first."""
    profile = PROFILES[RecommendationKind(kind)]
    candidates = generate_candidates(context, profile.max_questions, profile.max_duration)
    scored = [score_candidate(c, context, profile.weights) for c in candidates]
    scored.sort(key=lambda c: c.score, reverse=True)
    top = scored[: limit or profile.limit]
    logger.debug("Scored %d candidate test(s), kept %d", len(scored), len(top))
    return top
