"""
journey_service.py – Goal-based study journeys
==============================================
A journey is a set of measurable goals with a deadline.  The service
creates journeys (manually, from onboarding, or from a template),
records goal progress, awards milestones and computes analytics.

Design decisions
----------------
- ``goal_completions`` holds the latest raw value per goal; the goal's
  ``current_value`` is kept in step with it.
- ``overall_completion`` is recomputed before milestones are checked so
  threshold milestones see the new value.
- Milestones are idempotent: each goal milestone and each threshold
  (25/50/75/100) is awarded once, keyed by a stable id.

Consumers
---------
  onboarding.py         — create_journey_from_onboarding() after setup
  adaptive_testing_service.py — create_test_from_journey() reads goals
  pages/2_Journeys.py   — everything else
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, Union

from exam_prep.database import (
    JOURNEY_ANALYTICS,
    USER_JOURNEYS,
    delete_document,
    get_document,
    list_documents,
    set_document,
    subscribe,
)
from exam_prep.errors import NotFoundError
from exam_prep.models import (
    CreateJourneyRequest,
    DifficultyLevel,
    GoalCategory,
    GoalTemplate,
    GoalUnit,
    GoalUpdate,
    JourneyAnalytics,
    JourneyGoal,
    JourneyPriority,
    JourneyProgressTracking,
    JourneySource,
    JourneyStatus,
    JourneyTemplate,
    JourneyTrack,
    MilestoneAchievement,
    SimilarUserComparison,
    UserJourney,
    WeeklyProgress,
    as_utc_datetime,
    get_exam_by_id,
    utcnow,
)

logger = logging.getLogger(__name__)

MILESTONE_THRESHOLDS = (25, 50, 75, 100)

CELEBRATION_MESSAGES = {
    25:  "🌱 Great start! You're making excellent progress on your journey.",
    50:  "⭐ Halfway there! Your dedication is paying off.",
    75:  "🚀 Outstanding progress! You're in the final stretch.",
    100: "🏆 Journey Complete! Congratulations on achieving your goals!",
}

LOW_WEEKLY_HOURS = 10
BEHIND_SCHEDULE_MARGIN = 10

JOURNEY_TEMPLATES: list[JourneyTemplate] = [
    JourneyTemplate(
        id="template-1",
        title="30-Day Sprint",
        description="Intensive 30-day preparation plan for quick results",
        category="exam_prep",
        default_duration=30,
        estimated_hours=120,
        goal_templates=[
            GoalTemplate("Complete Core Topics", "Master all tier 1 topics", 100,
                         GoalUnit.PERCENTAGE, GoalCategory.KNOWLEDGE, 20),
            GoalTemplate("Practice Tests", "Complete 10 practice tests", 10,
                         GoalUnit.TESTS, GoalCategory.SKILL, 30),
        ],
        difficulty_level=DifficultyLevel.INTERMEDIATE,
        popularity_score=85,
        success_rate=78,
        tags=["intensive", "short-term", "exam-prep"],
    ),
    JourneyTemplate(
        id="template-2",
        title="90-Day Comprehensive",
        description="Thorough preparation covering the whole syllabus with regular revision",
        category="exam_prep",
        default_duration=90,
        estimated_hours=300,
        goal_templates=[
            GoalTemplate("Study Hours", "Log 120 hours of focused study", 120,
                         GoalUnit.HOURS, GoalCategory.CONSISTENCY, 90),
            GoalTemplate("Topic Mastery", "Reach mastery on every syllabus topic", 100,
                         GoalUnit.PERCENTAGE, GoalCategory.KNOWLEDGE, 75),
        ],
        difficulty_level=DifficultyLevel.ADVANCED,
        popularity_score=92,
        success_rate=85,
        tags=["comprehensive", "long-term", "exam-prep"],
    ),
]


@dataclass
class JourneyStats:
    total:      int
    active:     int
    completed:  int
    planning:   int


# ─── Pure helpers ────────────────────────────────────────────────────────────

def journey_stats(journeys: list[UserJourney]) -> JourneyStats:
    return JourneyStats(
        total=len(journeys),
        active=sum(1 for j in journeys if j.status == JourneyStatus.ACTIVE),
        completed=sum(1 for j in journeys if j.status == JourneyStatus.COMPLETED),
        planning=sum(1 for j in journeys if j.status == JourneyStatus.PLANNING),
    )


def filter_journeys(
    journeys: list[UserJourney],
    query: str = "",
    status: Optional[JourneyStatus] = None,
) -> list[UserJourney]:
    """Title/description substring match (case-insensitive) plus an optional exact status."""
    q = query.strip().lower()
    return [
        j for j in journeys
        if (not q or q in j.title.lower() or q in j.description.lower())
        and (status is None or j.status == status)
    ]


def _for_course(journeys: list[UserJourney], course_id: Optional[str]) -> list[UserJourney]:
    """Journeys not tied to an exam are shown for every course."""
    if not course_id:
        return journeys
    return [j for j in journeys if not j.exam_id or j.exam_id == course_id]


def _newest_first(journeys: list[UserJourney]) -> list[UserJourney]:
    return sorted(journeys, key=lambda j: as_utc_datetime(j.updated_at), reverse=True)


def _days_between(start: datetime, end: datetime) -> int:
    return math.ceil((as_utc_datetime(end) - as_utc_datetime(start)).total_seconds() / 86400)


# ─── Service ─────────────────────────────────────────────────────────────────

class JourneyService:
    def __init__(self) -> None:
        self._subscriptions: dict[str, Callable[[], None]] = {}

    # ── creation ─────────────────────────────────────────────────────────
    def _persist_new(
        self,
        user_id: str,
        request: CreateJourneyRequest,
        created_from: JourneySource,
    ) -> UserJourney:
        goals = [
            g.model_copy(update={"id": str(uuid.uuid4()), "current_value": 0})
            for g in request.custom_goals
        ]
        now = utcnow()
        journey = UserJourney(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=request.title,
            description=request.description,
            exam_id=request.exam_id,
            custom_goals=goals,
            target_completion_date=as_utc_datetime(request.target_completion_date),
            priority=request.priority,
            status=JourneyStatus.PLANNING,
            track=request.track,
            progress_tracking=JourneyProgressTracking(
                goal_completions={g.id: 0 for g in goals},
                last_synced_at=now,
            ),
            created_at=now,
            updated_at=now,
            created_from=created_from,
        )
        set_document(USER_JOURNEYS, journey.id, journey)
        logger.info("Created journey %s (%s) for %s from %s",
                    journey.id, journey.title, user_id, created_from.value)
        return journey

    def create_journey(self, user_id: str, request: Union[CreateJourneyRequest, dict]) -> UserJourney:
        if not isinstance(request, CreateJourneyRequest):
            request = CreateJourneyRequest.model_validate(request)
        return self._persist_new(user_id, request, JourneySource.MANUAL)

    def create_journey_from_onboarding(
        self,
        user_id: str,
        exam_id: str,
        target_date: Union[datetime, date, str],
    ) -> UserJourney:
        exam = get_exam_by_id(exam_id)
        if exam is None:
            raise NotFoundError("Exam not found")
        request = CreateJourneyRequest(
            title=f"{exam.name} Preparation Journey",
            description=f"Your personalized journey to master {exam.name}",
            exam_id=exam_id,
            custom_goals=[],
            target_completion_date=as_utc_datetime(target_date),
            priority=JourneyPriority.HIGH,
            track=JourneyTrack.EXAM,
        )
        return self._persist_new(user_id, request, JourneySource.ONBOARDING)

    @staticmethod
    def get_journey_templates() -> list[JourneyTemplate]:
        return list(JOURNEY_TEMPLATES)

    def create_journey_from_template(
        self,
        user_id: str,
        template_id: str,
        title: Optional[str] = None,
        target_date: Optional[Union[datetime, date]] = None,
        priority: Optional[JourneyPriority] = None,
        exam_id: Optional[str] = None,
    ) -> UserJourney:
        template = next((t for t in JOURNEY_TEMPLATES if t.id == template_id), None)
        if template is None:
            raise NotFoundError("Template not found")
        now = utcnow()
        goals = [
            JourneyGoal(
                title=gt.title,
                description=gt.description,
                target_value=gt.target_value,
                unit=gt.unit,
                category=gt.category,
                deadline=now + timedelta(days=gt.estimated_time_to_complete),
            )
            for gt in template.goal_templates
        ]
        request = CreateJourneyRequest(
            title=title or template.title,
            description=template.description,
            exam_id=exam_id,
            custom_goals=goals,
            target_completion_date=(as_utc_datetime(target_date) if target_date
                                    else now + timedelta(days=template.default_duration)),
            priority=priority or JourneyPriority.MEDIUM,
            track=JourneyTrack.CERTIFICATION,
        )
        return self._persist_new(user_id, request, JourneySource.RECOMMENDATION)

    # ── reads ────────────────────────────────────────────────────────────
    def subscribe_to_user_journeys(
        self,
        user_id: str,
        callback: Callable[[list[UserJourney]], None],
        course_id: Optional[str] = None,
    ) -> Callable[[], None]:
        """Push the user's journeys (filtered to *course_id*) now and after every change."""
        def on_snapshot(docs: list[dict]) -> None:
            journeys = [UserJourney.model_validate(d) for d in docs]
            callback(_newest_first(_for_course(journeys, course_id)))

        previous = self._subscriptions.pop(user_id, None)
        if previous:
            previous()
        unsubscribe = subscribe(USER_JOURNEYS, on_snapshot, user_id=user_id)
        self._subscriptions[user_id] = unsubscribe
        return unsubscribe

    def get_user_journeys(self, user_id: str, course_id: Optional[str] = None) -> list[UserJourney]:
        journeys = [UserJourney.model_validate(d) for d in list_documents(USER_JOURNEYS, user_id=user_id)]
        return _newest_first(_for_course(journeys, course_id))

    def get_journey(self, journey_id: str) -> Optional[UserJourney]:
        doc = get_document(USER_JOURNEYS, journey_id)
        return UserJourney.model_validate(doc) if doc else None

    def _require(self, journey_id: str) -> UserJourney:
        journey = self.get_journey(journey_id)
        if journey is None:
            raise NotFoundError("Journey not found")
        return journey

    # ── progress ─────────────────────────────────────────────────────────
    def update_journey_progress(
        self,
        journey_id: str,
        goal_updates: list[Union[GoalUpdate, dict]],
        weekly_update: Optional[WeeklyProgress] = None,
    ) -> UserJourney:
        journey = self._require(journey_id)
        tracking = journey.progress_tracking
        goals = {g.id: g for g in journey.custom_goals}

        for raw in goal_updates:
            update = raw if isinstance(raw, GoalUpdate) else GoalUpdate.model_validate(raw)
            goal = goals.get(update.goal_id)
            if goal is None:
                raise NotFoundError(f"Goal {update.goal_id} not found in journey {journey_id}")
            tracking.goal_completions[update.goal_id] = update.new_value
            goal.current_value = update.new_value

        if weekly_update is not None:
            tracking.weekly_progress.append(weekly_update)

        values = list(tracking.goal_completions.values())
        tracking.overall_completion = round(sum(values) / len(values)) if values else 0
        tracking.last_synced_at = utcnow()

        for milestone in self._new_milestones(journey):
            tracking.milestone_achievements.append(milestone)
            logger.info("Journey %s milestone: %s", journey_id, milestone.title)

        journey.updated_at = utcnow()
        set_document(USER_JOURNEYS, journey.id, journey)
        return journey

    @staticmethod
    def _new_milestones(journey: UserJourney) -> list[MilestoneAchievement]:
        tracking = journey.progress_tracking
        achieved = {m.id for m in tracking.milestone_achievements}
        new: list[MilestoneAchievement] = []

        for goal in journey.custom_goals:
            milestone_id = f"goal-{goal.id}"
            completion = tracking.goal_completions.get(goal.id, 0)
            if completion >= goal.target_value and milestone_id not in achieved:
                new.append(MilestoneAchievement(
                    id=milestone_id,
                    title=f"Goal Completed: {goal.title}",
                    description=f"Successfully completed the goal: {goal.title}",
                    related_goals=[goal.id],
                    celebration_message=f"🎉 Congratulations! You've achieved your goal: {goal.title}",
                ))

        for threshold in MILESTONE_THRESHOLDS:
            milestone_id = f"milestone-{threshold}"
            if tracking.overall_completion >= threshold and milestone_id not in achieved:
                new.append(MilestoneAchievement(
                    id=milestone_id,
                    title=f"{threshold}% Journey Complete",
                    description=f"You've completed {threshold}% of your journey!",
                    related_goals=[g.id for g in journey.custom_goals],
                    celebration_message=CELEBRATION_MESSAGES[threshold],
                ))
        return new

    def update_journey_status(self, journey_id: str, status: JourneyStatus) -> UserJourney:
        journey = self._require(journey_id)
        journey.status = JourneyStatus(status)
        journey.updated_at = utcnow()
        set_document(USER_JOURNEYS, journey.id, journey)
        logger.info("Journey %s → %s", journey_id, journey.status.value)
        return journey

    _EDITABLE = {"title", "description", "exam_id", "custom_goals",
                 "target_completion_date", "priority", "track"}

    def update_journey(self, journey_id: str, **fields: Any) -> UserJourney:
        unknown = set(fields) - self._EDITABLE
        if unknown:
            raise ValueError(f"Cannot update journey field(s): {', '.join(sorted(unknown))}")
        journey = self._require(journey_id)
        data = journey.model_dump()
        data.update(fields)
        data["updated_at"] = utcnow()
        updated = UserJourney.model_validate(data)
        for goal in updated.custom_goals:
            if not goal.id:
                goal.id = str(uuid.uuid4())
            updated.progress_tracking.goal_completions.setdefault(goal.id, goal.current_value)
        set_document(USER_JOURNEYS, updated.id, updated)
        return updated

    def delete_journey(self, journey_id: str) -> bool:
        deleted = delete_document(USER_JOURNEYS, journey_id)
        delete_document(JOURNEY_ANALYTICS, journey_id)
        if deleted:
            logger.info("Deleted journey %s", journey_id)
        return deleted

    # ── analytics ────────────────────────────────────────────────────────
    def get_journey_analytics(self, journey_id: str, now: Optional[datetime] = None) -> JourneyAnalytics:
        journey = self._require(journey_id)
        now = as_utc_datetime(now) if now else utcnow()
        tracking = journey.progress_tracking

        total_days = max(1, _days_between(journey.created_at, journey.target_completion_date))
        elapsed_days = max(0, _days_between(journey.created_at, now))
        expected = elapsed_days / total_days * 100
        actual = tracking.overall_completion

        weekly = tracking.weekly_progress
        average_weekly_hours = sum(w.hours_studied for w in weekly) / max(len(weekly), 1)

        risk_factors: list[str] = []
        recommendations: list[str] = []
        if actual < expected - BEHIND_SCHEDULE_MARGIN:
            risk_factors.append("Behind schedule")
            recommendations.extend(["Increase daily study time", "Focus on high-priority goals"])
        if average_weekly_hours < LOW_WEEKLY_HOURS:
            risk_factors.append("Low study hours")

        completed_goals = sum(
            1 for g in journey.custom_goals
            if tracking.goal_completions.get(g.id, g.current_value) >= g.target_value
        )
        velocity = completed_goals / max(elapsed_days / 7, 1)
        predicted = as_utc_datetime(journey.created_at) + timedelta(days=total_days * (100 / max(actual, 1)))

        analytics = JourneyAnalytics(
            journey_id=journey_id,
            completion_rate=actual,
            average_weekly_hours=average_weekly_hours,
            goal_completion_velocity=velocity,
            predicted_completion_date=predicted,
            risk_factors=risk_factors,
            recommendations=recommendations,
            comparison_with_similar_users=SimilarUserComparison(
                percentile=min(95, max(5, 50 + actual - expected)),
                average_completion_time=total_days * 1.2,
            ),
        )
        set_document(JOURNEY_ANALYTICS, journey_id, analytics)
        return analytics

    def cleanup(self) -> None:
        """Drop every live subscription."""
        for unsubscribe in self._subscriptions.values():
            unsubscribe()
        self._subscriptions.clear()
