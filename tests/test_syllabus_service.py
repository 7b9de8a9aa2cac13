"""
Tests for syllabus CRUD, mastery calculation and spaced-revision scheduling.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import datetime, timedelta, timezone

import pytest

from exam_prep.database import create_user, update_user
from exam_prep.errors import ExamPrepError, FormValidationError, NotFoundError
from exam_prep.models import SyllabusSubject, SyllabusTopic, TopicProgress, TopicStatus
from exam_prep.syllabus_service import (
    SyllabusService,
    calculate_subject_mastery,
    filter_subjects,
    mastery_band,
)


def _subject(sid="s1", tier=1, topic_ids=("t1", "t2")):
    return SyllabusSubject(
        id=sid, name=f"Subject {sid}", tier=tier,
        topics=[SyllabusTopic(id=t, name=f"Topic {t}") for t in topic_ids],
    )


class TestMasteryHelpers:
    def test_missing_progress_counts_as_zero(self):
        progress = {"t1": TopicProgress(id="t1", topic_id="t1", mastery_score=81)}
        assert calculate_subject_mastery(_subject(), progress) == 40

    def test_no_topics(self):
        assert calculate_subject_mastery(_subject(topic_ids=()), {}) == 0

    @pytest.mark.parametrize("score,band", [(10, "low"), (50, "medium"), (79, "medium"), (80, "high")])
    def test_bands(self, score, band):
        assert mastery_band(score) == band

    def test_filter_by_query_tier_and_mastery(self):
        subjects = [_subject("s1", 1), _subject("s2", 2, ("t3",))]
        progress = {"t3": TopicProgress(id="t3", topic_id="t3", mastery_score=100)}
        assert [s.id for s in filter_subjects(subjects, progress, query="topic t3")] == ["s2"]
        assert [s.id for s in filter_subjects(subjects, progress, tier=1)] == ["s1"]
        assert [s.id for s in filter_subjects(subjects, progress, mastery="high")] == ["s2"]
        assert [s.id for s in filter_subjects(subjects, progress, hide_mastered=True)] == ["s1"]


class TestCourseResolution:
    def test_course_from_current_exam(self, gate_user):
        assert SyllabusService(gate_user).course_id == "gate_cse"

    def test_no_course_selected(self):
        create_user("u2", {})
        with pytest.raises(FormValidationError):
            SyllabusService("u2").subjects()


class TestSubjectAndTopicCrud:
    def test_add_subject(self, gate_user):
        service = SyllabusService(gate_user)
        subject = service.add_subject("Compiler Design", tier=3)
        assert subject.is_custom
        assert subject.id.startswith("custom-")
        assert service.subjects()[-1].name == "Compiler Design"

    def test_update_and_set_tier(self, gate_user):
        service = SyllabusService(gate_user)
        service.update_subject("dbms", name="Databases")
        updated = service.set_tier("dbms", 1)
        assert (updated.name, updated.tier) == ("Databases", 1)

    def test_update_rejects_unknown_fields(self, gate_user):
        with pytest.raises(ValueError):
            SyllabusService(gate_user).update_subject("dbms", topics=[])

    def test_remove_subject(self, gate_user):
        service = SyllabusService(gate_user)
        service.remove_subject("engineering_maths")
        assert "engineering_maths" not in [s.id for s in service.subjects()]
        with pytest.raises(NotFoundError):
            service.remove_subject("engineering_maths")

    def test_topic_crud(self, gate_user):
        service = SyllabusService(gate_user)
        topic = service.add_topic("dbms", "Indexing", estimated_hours=6)
        assert topic.id.startswith("dbms-topic-")
        service.update_topic("dbms", topic.id, name="B+ Tree Indexing")
        dbms = next(s for s in service.subjects() if s.id == "dbms")
        assert dbms.topics[-1].name == "B+ Tree Indexing"
        assert topic.id in dbms.topic_status

        service.remove_topic("dbms", topic.id)
        dbms = next(s for s in service.subjects() if s.id == "dbms")
        assert topic.id not in [t.id for t in dbms.topics]
        assert topic.id not in dbms.topic_status

    def test_unknown_topic(self, gate_user):
        with pytest.raises(NotFoundError):
            SyllabusService(gate_user).update_topic("dbms", "nope", name="x")

    def test_stale_subject_errors_are_recoverable(self, gate_user):
        service = SyllabusService(gate_user)
        service.remove_subject("dbms")
        with pytest.raises(ExamPrepError):
            service.add_topic("dbms", "Indexing")
        with pytest.raises(ExamPrepError):
            service.remove_subject("dbms")

    def test_no_course_errors_are_recoverable(self):
        create_user("u2", {})
        service = SyllabusService("u2")
        with pytest.raises(ExamPrepError):
            service.add_subject("Compiler Design")
        with pytest.raises(ExamPrepError):
            service.revision_queue()


class TestRecordStudy:
    NOW = datetime(2030, 1, 10, 9, 0, tzinfo=timezone.utc)

    def test_first_session_uses_first_interval(self, gate_user):
        progress = SyllabusService(gate_user).record_study("trees_graphs", 45, mastery_score=40, now=self.NOW)
        assert progress.revision_count == 1
        assert progress.total_study_time == 45
        assert progress.next_revision == self.NOW + timedelta(days=1)
        assert progress.subject_id == "data_structures"

    def test_intervals_follow_user_preferences(self, gate_user):
        update_user(gate_user, {"preferences": {"revision_intervals": [2, 4, 8]}})
        service = SyllabusService(gate_user)
        for _ in range(4):
            progress = service.record_study("trees_graphs", 30, now=self.NOW)
        assert progress.revision_count == 4
        assert progress.next_revision == self.NOW + timedelta(days=8)

    def test_topic_status_tracks_mastery(self, gate_user):
        service = SyllabusService(gate_user)
        service.record_study("trees_graphs", 30, mastery_score=50, now=self.NOW)
        subject = next(s for s in service.subjects() if s.id == "data_structures")
        assert subject.topic_status["trees_graphs"].status == TopicStatus.IN_PROGRESS

        service.record_study("trees_graphs", 30, mastery_score=120, now=self.NOW)
        subject = next(s for s in service.subjects() if s.id == "data_structures")
        status = subject.topic_status["trees_graphs"]
        assert status.status == TopicStatus.MASTERED
        assert status.time_spent == 60
        assert status.mastery_level == 100
        assert subject.subject_progress.mastered_topics == 1

    def test_score_improvement(self, gate_user):
        service = SyllabusService(gate_user)
        service.record_study("trees_graphs", 30, mastery_score=40, now=self.NOW)
        progress = service.record_study("trees_graphs", 30, mastery_score=65, now=self.NOW)
        assert progress.last_score_improvement == 25

    def test_negative_minutes(self, gate_user):
        with pytest.raises(ValueError):
            SyllabusService(gate_user).record_study("trees_graphs", -5)

    def test_unknown_topic(self, gate_user):
        with pytest.raises(NotFoundError):
            SyllabusService(gate_user).record_study("ghost", 10)

    def test_studied_topic_enters_revision_queue(self, gate_user):
        service = SyllabusService(gate_user)
        service.record_study("trees_graphs", 30, now=self.NOW)
        assert service.revision_queue(now=self.NOW) == []
        queue = service.revision_queue(now=self.NOW + timedelta(days=2))
        assert [item.topic_id for item in queue] == ["trees_graphs"]


class TestSummary:
    def test_summary(self, gate_user):
        service = SyllabusService(gate_user)
        service.record_study("trees_graphs", 30, mastery_score=90)
        summary = service.summary()
        assert summary.total_subjects == 5
        assert summary.total_topics == 13
        assert summary.mastered_topics == 1
        assert summary.tier_counts == {1: 2, 2: 2, 3: 1}
