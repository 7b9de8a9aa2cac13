"""
Tests for journeys: creation paths, goal progress, milestones,
subscriptions and analytics.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import timedelta

import pytest
from pydantic import ValidationError

from exam_prep.database import JOURNEY_ANALYTICS, get_document
from exam_prep.errors import NotFoundError
from exam_prep.journey_service import filter_journeys, journey_stats
from exam_prep.models import (
    GoalUpdate,
    JourneyPriority,
    JourneySource,
    JourneyStatus,
    JourneyTrack,
    WeeklyProgress,
    utcnow,
)


def _request(title="Crack GATE", exam_id="gate_cse", goals=None, days=60):
    return {
        "title": title,
        "description": "Focused prep",
        "exam_id": exam_id,
        "custom_goals": goals if goals is not None else [
            {"title": "Mock tests", "target_value": 10, "unit": "tests", "linked_subjects": ["dbms"]},
            {"title": "Syllabus", "target_value": 100, "unit": "percentage"},
        ],
        "target_completion_date": (utcnow() + timedelta(days=days)).isoformat(),
    }


class TestCreation:
    def test_manual_journey(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        assert journey.status == JourneyStatus.PLANNING
        assert journey.created_from == JourneySource.MANUAL
        ids = [g.id for g in journey.custom_goals]
        assert all(ids) and len(set(ids)) == 2
        assert journey.progress_tracking.goal_completions == {i: 0 for i in ids}
        assert journey_service.get_journey(journey.id).title == "Crack GATE"

    def test_title_required(self, journey_service):
        with pytest.raises(ValidationError):
            journey_service.create_journey("u1", _request(title=""))

    def test_from_onboarding(self, journey_service):
        journey = journey_service.create_journey_from_onboarding("u1", "gate_cse", utcnow() + timedelta(days=90))
        assert journey.title == "GATE Computer Science Preparation Journey"
        assert journey.priority == JourneyPriority.HIGH
        assert journey.created_from == JourneySource.ONBOARDING
        assert journey.custom_goals == []

    def test_from_onboarding_unknown_exam(self, journey_service):
        with pytest.raises(NotFoundError, match="Exam not found"):
            journey_service.create_journey_from_onboarding("u1", "nope", utcnow())

    def test_templates(self, journey_service):
        templates = journey_service.get_journey_templates()
        assert [t.id for t in templates] == ["template-1", "template-2"]
        assert templates[0].default_duration == 30

    def test_from_template(self, journey_service):
        journey = journey_service.create_journey_from_template("u1", "template-1")
        assert journey.title == "30-Day Sprint"
        assert journey.track == JourneyTrack.CERTIFICATION
        assert journey.created_from == JourneySource.RECOMMENDATION
        assert len(journey.custom_goals) == 2
        days = (journey.target_completion_date - journey.created_at).days
        assert days in (29, 30)

    def test_unknown_template(self, journey_service):
        with pytest.raises(NotFoundError, match="Template not found"):
            journey_service.create_journey_from_template("u1", "template-x")


class TestReads:
    def test_course_filter_keeps_unlinked(self, journey_service):
        journey_service.create_journey("u1", _request("gate", exam_id="gate_cse"))
        journey_service.create_journey("u1", _request("general", exam_id=None))
        journey_service.create_journey("u1", _request("sql", exam_id="sql_mastery"))
        journey_service.create_journey("u2", _request("other user"))
        titles = {j.title for j in journey_service.get_user_journeys("u1", course_id="gate_cse")}
        assert titles == {"gate", "general"}
        assert len(journey_service.get_user_journeys("u1")) == 3

    def test_subscription_pushes_updates(self, journey_service):
        seen = []
        journey_service.subscribe_to_user_journeys("u1", lambda js: seen.append([j.title for j in js]))
        journey_service.create_journey("u1", _request("first"))
        assert seen == [[], ["first"]]
        journey_service.cleanup()
        journey_service.create_journey("u1", _request("second"))
        assert len(seen) == 2

    def test_resubscribe_replaces_previous(self, journey_service):
        first, second = [], []
        journey_service.subscribe_to_user_journeys("u1", first.append)
        journey_service.subscribe_to_user_journeys("u1", second.append)
        journey_service.create_journey("u1", _request())
        assert len(first) == 1
        assert len(second) == 2

    def test_stats_and_filter(self, journey_service):
        a = journey_service.create_journey("u1", _request("Alpha plan"))
        journey_service.create_journey("u1", _request("Beta plan"))
        journey_service.update_journey_status(a.id, JourneyStatus.ACTIVE)
        journeys = journey_service.get_user_journeys("u1")
        stats = journey_stats(journeys)
        assert (stats.total, stats.active, stats.planning, stats.completed) == (2, 1, 1, 0)
        assert [j.title for j in filter_journeys(journeys, "alpha")] == ["Alpha plan"]
        assert [j.title for j in filter_journeys(journeys, status=JourneyStatus.PLANNING)] == ["Beta plan"]


class TestProgress:
    def test_goal_update_and_overall_completion(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        g1, g2 = (g.id for g in journey.custom_goals)
        updated = journey_service.update_journey_progress(journey.id, [
            GoalUpdate(goal_id=g1, new_value=10),
            {"goal_id": g2, "new_value": 50},
        ])
        assert updated.progress_tracking.goal_completions == {g1: 10, g2: 50}
        assert updated.custom_goals[0].current_value == 10
        assert updated.progress_tracking.overall_completion == 30

    def test_milestones_awarded_once(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        g1, g2 = (g.id for g in journey.custom_goals)
        journey_service.update_journey_progress(journey.id, [GoalUpdate(goal_id=g1, new_value=10),
                                                             GoalUpdate(goal_id=g2, new_value=50)])
        again = journey_service.update_journey_progress(journey.id, [GoalUpdate(goal_id=g2, new_value=55)])
        ids = [m.id for m in again.progress_tracking.milestone_achievements]
        assert ids.count(f"goal-{g1}") == 1
        assert ids.count("milestone-25") == 1
        assert "milestone-50" not in ids

    def test_unknown_goal(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        with pytest.raises(NotFoundError):
            journey_service.update_journey_progress(journey.id, [GoalUpdate(goal_id="ghost", new_value=1)])

    def test_weekly_progress_appended(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        updated = journey_service.update_journey_progress(journey.id, [], WeeklyProgress(hours_studied=12))
        assert updated.progress_tracking.weekly_progress[0].hours_studied == 12

    def test_unknown_journey(self, journey_service):
        with pytest.raises(NotFoundError, match="Journey not found"):
            journey_service.update_journey_status("ghost", JourneyStatus.ACTIVE)


class TestEditing:
    def test_update_fields(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        updated = journey_service.update_journey(journey.id, title="Renamed", priority=JourneyPriority.CRITICAL)
        assert (updated.title, updated.priority) == ("Renamed", JourneyPriority.CRITICAL)

    def test_new_goals_get_ids(self, journey_service):
        journey = journey_service.create_journey("u1", _request(goals=[]))
        updated = journey_service.update_journey(journey.id, custom_goals=[{"title": "New", "target_value": 5}])
        goal = updated.custom_goals[0]
        assert goal.id
        assert updated.progress_tracking.goal_completions[goal.id] == 0

    def test_protected_fields(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        with pytest.raises(ValueError):
            journey_service.update_journey(journey.id, user_id="someone-else")

    def test_delete(self, journey_service):
        journey = journey_service.create_journey("u1", _request())
        journey_service.get_journey_analytics(journey.id)
        assert journey_service.delete_journey(journey.id)
        assert journey_service.get_journey(journey.id) is None
        assert get_document(JOURNEY_ANALYTICS, journey.id) is None
        assert not journey_service.delete_journey(journey.id)


class TestAnalytics:
    def test_behind_schedule(self, journey_service):
        journey = journey_service.create_journey("u1", _request(days=30))
        analytics = journey_service.get_journey_analytics(journey.id, now=journey.created_at + timedelta(days=20))
        assert analytics.completion_rate == 0
        assert "Behind schedule" in analytics.risk_factors
        assert "Low study hours" in analytics.risk_factors
        assert "Increase daily study time" in analytics.recommendations
        assert analytics.comparison_with_similar_users.percentile == 5
        assert get_document(JOURNEY_ANALYTICS, journey.id)["journey_id"] == journey.id

    def test_on_track(self, journey_service):
        journey = journey_service.create_journey("u1", _request(days=30))
        g1, g2 = (g.id for g in journey.custom_goals)
        journey_service.update_journey_progress(
            journey.id,
            [GoalUpdate(goal_id=g1, new_value=10), GoalUpdate(goal_id=g2, new_value=100)],
            WeeklyProgress(hours_studied=15),
        )
        analytics = journey_service.get_journey_analytics(journey.id, now=journey.created_at + timedelta(days=14))
        assert analytics.risk_factors == []
        assert analytics.average_weekly_hours == 15
        assert analytics.goal_completion_velocity == 1.0
