"""
mock_test_logger.py – Logging external mock tests
=================================================
Turns the mock-test form into a ``MockTestLog``: section scores are
summed, every lost mark must be explained by one of the four error
categories, and saving feeds topic accuracy back into mastery
(see ``database.save_mock_test``).

Checks implemented
------------------
  M-01  Platform is required
  M-02  Test name is required
  M-03  At least one section
  M-04  Section score within 0..max, max score positive
  M-05  Section time not negative
  M-06  Mental-state ratings within 1..5
  M-07  Error categories add up to the marks lost
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from exam_prep.database import save_mock_test
from exam_prep.errors import FormValidationError
from exam_prep.models import (
    MentalState,
    MockTestLog,
    MockTestType,
    StudyTime,
    TestAnalysis,
    TestEnvironment,
    TopicPerformance,
    as_utc_datetime,
    utcnow,
)
from exam_prep.validation import ValidationLevel, ValidationResult, ValidationViolation

logger = logging.getLogger(__name__)


@dataclass
class MockSection:
    section_id:    str
    name:          str
    score:         float = 0
    max_score:     float = 0
    time_minutes:  float = 0


@dataclass
class MockTestForm:
    platform:             str = ""
    test_name:            str = ""
    stage:                str = ""
    type:                 MockTestType = MockTestType.FULL_LENGTH
    date:                 datetime = field(default_factory=utcnow)
    sections:             list[MockSection] = field(default_factory=list)

    # error analysis
    concept_gaps:         int = 0
    careless_errors:      int = 0
    intelligent_guesses:  int = 0
    time_pressures:       int = 0
    unattempted:          int = 0

    topic_performance:    list[TopicPerformance] = field(default_factory=list)

    # mental state, 1–5
    confidence:           int = 3
    anxiety:              int = 3
    focus:                int = 3

    location:             str = "home"
    distractions:         list[str] = field(default_factory=list)
    time_of_day:          StudyTime = StudyTime.MORNING

    feedback:             str = ""
    action_items:         list[str] = field(default_factory=list)

    @property
    def analysed_errors(self) -> int:
        return self.concept_gaps + self.careless_errors + self.intelligent_guesses + self.time_pressures


def compute_analysis(form: MockTestForm) -> TestAnalysis:
    """Score arithmetic for the whole test (one mark per question)."""
    total = sum(s.max_score for s in form.sections)
    correct = sum(s.score for s in form.sections)
    minutes = sum(s.time_minutes for s in form.sections)
    return TestAnalysis(
        concept_gaps=form.concept_gaps,
        careless_errors=form.careless_errors,
        intelligent_guesses=form.intelligent_guesses,
        time_pressures=form.time_pressures,
        total_questions=round(total),
        correct_answers=round(correct),
        wrong_answers=round(total - correct),
        unattempted=form.unattempted,
        accuracy=correct / total * 100 if total else 0,
        speed=total / minutes if minutes else 0,
    )


def validate_mock_test(form: MockTestForm) -> ValidationResult:
    v: list[ValidationViolation] = []

    if not form.platform.strip():
        v.append(ValidationViolation("M-01", ValidationLevel.BLOCK, "Platform is required", "platform"))
    if not form.test_name.strip():
        v.append(ValidationViolation("M-02", ValidationLevel.BLOCK, "Test name is required", "test_name"))
    if not form.sections:
        v.append(ValidationViolation("M-03", ValidationLevel.BLOCK,
                                     "Add at least one section score", "sections"))

    for s in form.sections:
        if s.max_score <= 0:
            v.append(ValidationViolation("M-04", ValidationLevel.BLOCK,
                                         f"{s.name}: maximum score must be positive",
                                         f"sections.{s.section_id}.max_score"))
        elif not 0 <= s.score <= s.max_score:
            v.append(ValidationViolation("M-04", ValidationLevel.BLOCK,
                                         f"{s.name}: score must be between 0 and {s.max_score:g}",
                                         f"sections.{s.section_id}.score"))
        if s.time_minutes < 0:
            v.append(ValidationViolation("M-05", ValidationLevel.BLOCK,
                                         f"{s.name}: time taken cannot be negative",
                                         f"sections.{s.section_id}.time_minutes"))

    for name in ("confidence", "anxiety", "focus"):
        if not 1 <= getattr(form, name) <= 5:
            v.append(ValidationViolation("M-06", ValidationLevel.BLOCK,
                                         f"{name.capitalize()} must be rated from 1 to 5", name))

    if form.sections:
        wrong = sum(s.max_score - s.score for s in form.sections)
        if not math.isclose(form.analysed_errors, wrong, abs_tol=1e-6):
            v.append(ValidationViolation(
                "M-07", ValidationLevel.BLOCK,
                f"Error analysis must add up to total wrong answers ({wrong:g})",
                "analysis",
            ))

    return ValidationResult.from_violations(v)


def build_mock_test_log(form: MockTestForm, course_id: Optional[str] = None) -> MockTestLog:
    return MockTestLog(
        id=f"test_{uuid.uuid4().hex[:12]}",
        date=as_utc_datetime(form.date),
        platform=form.platform.strip(),
        test_name=form.test_name.strip(),
        stage=form.stage,
        type=form.type,
        scores={s.section_id: s.score for s in form.sections},
        max_scores={s.section_id: s.max_score for s in form.sections},
        time_taken={s.section_id: s.time_minutes for s in form.sections},
        analysis=compute_analysis(form),
        topic_wise_performance=list(form.topic_performance),
        mental_state=MentalState(confidence=form.confidence, anxiety=form.anxiety, focus=form.focus),
        environment=TestEnvironment(
            location=form.location,
            distractions=list(form.distractions),
            time_of_day=form.time_of_day,
        ),
        feedback=form.feedback,
        action_items=list(form.action_items),
        course_id=course_id,
    )


def log_mock_test(user_id: str, form: MockTestForm, course_id: Optional[str] = None) -> MockTestLog:
    """Validate, build and store the log; mastery updates happen on save."""
    result = validate_mock_test(form)
    if result.blocked:
        raise FormValidationError(result.errors[0].message, result.violations)
    log = save_mock_test(user_id, build_mock_test_log(form, course_id), course_id)
    logger.info("Logged mock test %s for %s: %.1f%% accuracy", log.id, user_id, log.analysis.accuracy)
    return log


# ─── Summaries ───────────────────────────────────────────────────────────────

@dataclass
class MockTestSummary:
    count:             int
    average_accuracy:  float
    best_score:        float
    trend:             str          # improving | declining | stable | insufficient_data
    accuracy_series:   list[float] = field(default_factory=list)


TREND_MARGIN = 5.0


def summarize_mock_tests(logs: list[MockTestLog]) -> MockTestSummary:
    if not logs:
        return MockTestSummary(count=0, average_accuracy=0, best_score=0, trend="insufficient_data")

    ordered = sorted(logs, key=lambda log: as_utc_datetime(log.date))
    series = [log.analysis.accuracy for log in ordered]
    average = sum(series) / len(series)
    best = max(sum(log.scores.values()) for log in ordered)

    if len(series) < 2:
        trend = "insufficient_data"
    else:
        half = len(series) // 2
        earlier = sum(series[:half]) / half
        later = sum(series[half:]) / (len(series) - half)
        if later - earlier > TREND_MARGIN:
            trend = "improving"
        elif earlier - later > TREND_MARGIN:
            trend = "declining"
        else:
            trend = "stable"

    return MockTestSummary(
        count=len(logs),
        average_accuracy=round(average, 1),
        best_score=best,
        trend=trend,
        accuracy_series=series,
    )
