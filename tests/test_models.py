"""
Tests for data models, helpers and the exam catalogue.
Run: python -m pytest tests/ -v
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from exam_prep.models import (
    EXAMS_DATA,
    AdaptiveQuestion,
    DifficultyLevel,
    SyllabusSubject,
    TestPerformance,
    TopicProgress,
    as_utc_datetime,
    calculate_total_study_hours,
    difficulty_from_number,
    get_exam_by_id,
    get_exam_categories,
    get_exams_by_category,
    search_exams,
)


class TestDatetimeHelpers:
    def test_naive_datetime_becomes_utc(self):
        dt = as_utc_datetime(datetime(2030, 5, 1, 10, 0))
        assert dt.tzinfo == timezone.utc
        assert dt.hour == 10

    def test_date_becomes_midnight_utc(self):
        dt = as_utc_datetime(date(2030, 5, 1))
        assert (dt.hour, dt.minute, dt.tzinfo) == (0, 0, timezone.utc)

    def test_iso_string(self):
        assert as_utc_datetime("2030-05-01").year == 2030


class TestDifficulty:
    @pytest.mark.parametrize("value,expected", [
        (1, DifficultyLevel.BEGINNER),
        (2, DifficultyLevel.INTERMEDIATE),
        (3, DifficultyLevel.ADVANCED),
        (4, DifficultyLevel.EXPERT),
        (7, DifficultyLevel.EXPERT),
    ])
    def test_numeric_mapping(self, value, expected):
        assert difficulty_from_number(value) == expected

    def test_question_accepts_numeric_difficulty(self):
        q = AdaptiveQuestion(id="q", question="?", correct_answer="A", subject="s", difficulty=3)
        assert q.difficulty == DifficultyLevel.ADVANCED

    def test_primary_topic_falls_back_to_topics(self):
        q = AdaptiveQuestion(id="q", question="?", correct_answer="A", subject="s", topics=["t1", "t2"])
        assert q.primary_topic == "t1"


class TestValidatedFields:
    def test_subject_tier_bounds(self):
        with pytest.raises(ValidationError):
            SyllabusSubject(id="s", name="S", tier=4)

    def test_topic_progress_difficulty_bounds(self):
        with pytest.raises(ValidationError):
            TopicProgress(id="t", topic_id="t", difficulty=6)

    def test_performance_defaults_cover_every_level(self):
        assert set(TestPerformance().difficulty_performance) == {d.value for d in DifficultyLevel}


class TestExamCatalogue:
    def test_ids_unique(self):
        ids = [e.id for e in EXAMS_DATA]
        assert len(ids) == len(set(ids))

    def test_every_subject_tier_in_range(self):
        for exam in EXAMS_DATA:
            assert exam.default_syllabus
            for subject in exam.default_syllabus:
                assert 1 <= subject.tier <= 3

    def test_lookup(self):
        assert get_exam_by_id("gate_cse").category == "Engineering"
        assert get_exam_by_id("nope") is None

    def test_categories_unique_in_order(self):
        categories = get_exam_categories()
        assert categories[0] == "Civil Services"
        assert len(categories) == len(set(categories))

    def test_by_category(self):
        assert [e.id for e in get_exams_by_category("Banking")] == ["sbi_po"]

    def test_search_case_insensitive(self):
        assert [e.id for e in search_exams("gate")] == ["gate_cse"]
        assert "upsc_cse_prelims" in [e.id for e in search_exams("civil")]

    def test_empty_search_returns_all(self):
        assert len(search_exams("  ")) == len(EXAMS_DATA)

    def test_total_study_hours(self):
        assert calculate_total_study_hours("sql_mastery") == 45
        assert calculate_total_study_hours("unknown") == 0
