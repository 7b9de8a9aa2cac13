"""
Tests for the onboarding validation rules (V-01..V-10).
Run: python -m pytest tests/ -v
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import timedelta

import pytest

from factories import future_iso, make_submission

from exam_prep.errors import FormValidationError
from exam_prep.models import utcnow
from exam_prep.validation import OnboardingValidator, ValidationLevel


def _codes(result):
    return [v.code for v in result.violations]


class TestSubmission:
    def setup_method(self):
        self.validator = OnboardingValidator()

    def test_valid_submission_passes(self):
        result = self.validator.validate_submission(make_submission())
        assert result.passed
        assert result.summary() == "✅ All checks passed."

    def test_short_name(self):
        result = self.validator.validate_submission(make_submission(display_name="A"))
        assert "V-01" in _codes(result)
        assert result.errors_by_field()["display_name"] == "Name must be at least 2 characters"

    def test_long_name(self):
        result = self.validator.validate_submission(make_submission(display_name="x" * 51))
        assert result.errors_by_field()["display_name"] == "Name must be less than 50 characters"

    def test_missing_exam(self):
        result = self.validator.validate_submission(make_submission(selected_exam_id=" "))
        assert result.errors_by_field()["selected_exam_id"] == "Please select an exam"

    def test_missing_date(self):
        result = self.validator.validate_submission(make_submission(exam_date=None))
        assert result.errors_by_field()["exam_date"] == "Please select your exam date"

    def test_past_date(self):
        past = (utcnow() - timedelta(days=1)).isoformat()
        result = self.validator.validate_submission(make_submission(exam_date=past))
        assert "V-03" in _codes(result)
        assert result.errors_by_field()["exam_date"] == "Exam date must be in the future"

    def test_empty_syllabus(self):
        result = self.validator.validate_submission(make_submission(syllabus=[]))
        assert result.errors_by_field()["syllabus"] == "Please select at least one subject"

    @pytest.mark.parametrize("minutes,message", [
        (30, "Minimum study goal is 1 hour"),
        (800, "Maximum study goal is 12 hours"),
    ])
    def test_goal_bounds(self, minutes, message):
        result = self.validator.validate_submission(make_submission(daily_minutes=minutes))
        assert "V-05" in _codes(result)
        assert message in result.summary()

    def test_missing_tier_definition(self):
        data = make_submission()
        data["preferences"]["tier_definitions"] = {1: "Core", 2: "", 3: "Extra"}
        result = self.validator.validate_submission(data)
        assert "V-06" in _codes(result)
        assert "Tier 2 definition is required" in result.summary()

    def test_too_few_intervals(self):
        data = make_submission()
        data["preferences"]["revision_intervals"] = [1, 3]
        assert "V-07" in _codes(self.validator.validate_submission(data))

    def test_several_errors_reported_together(self):
        result = self.validator.validate_submission(make_submission(display_name="", syllabus=[]))
        assert {"V-01", "V-04"} <= set(_codes(result))

    def test_short_runway_warns(self):
        result = self.validator.validate_submission(make_submission(days_until_exam=3))
        assert result.passed
        assert [v.code for v in result.warnings] == ["V-09"]

    def test_long_day_warns(self):
        result = self.validator.validate_submission(make_submission(daily_minutes=660))
        assert result.passed
        assert result.warnings[0].level == ValidationLevel.WARN
        assert result.warnings[0].code == "V-10"

    def test_parse_submission_raises_on_block(self):
        with pytest.raises(FormValidationError) as excinfo:
            self.validator.parse_submission(make_submission(display_name="A"))
        assert str(excinfo.value) == "Name must be at least 2 characters"
        assert excinfo.value.violations

    def test_parse_submission_returns_model_and_warnings(self):
        submission, result = self.validator.parse_submission(make_submission(days_until_exam=2))
        assert submission.display_name == "Asha Rao"
        assert submission.exam_date.tzinfo is not None
        assert result.warnings


class TestSteps:
    def setup_method(self):
        self.validator = OnboardingValidator()

    def test_step_one_needs_persona(self):
        assert not self.validator.validate_step(1, {"user_persona": {}}).passed
        assert self.validator.validate_step(1, {"user_persona": {"type": "student"}}).passed

    def test_step_two(self):
        result = self.validator.validate_step(2, {"display_name": "A", "selected_exam_id": "", "exam_date": None})
        assert _codes(result) == ["V-01", "V-02", "V-03"]
        ok = {"display_name": "Asha", "selected_exam_id": "gate_cse", "exam_date": future_iso(10)}
        assert self.validator.validate_step(2, ok).passed

    def test_step_three(self):
        assert not self.validator.validate_step(3, {"syllabus": []}).passed

    def test_step_four_accepts_string_tier_keys(self):
        prefs = {"daily_study_goal_minutes": 120, "tier_definitions": {"1": "a", "2": "b", "3": "c"}}
        assert self.validator.validate_step(4, {"preferences": prefs}).passed

    def test_step_four_flags_each_missing_tier(self):
        prefs = {"daily_study_goal_minutes": 120, "tier_definitions": {"1": "a"}}
        result = self.validator.validate_step(4, {"preferences": prefs})
        assert _codes(result) == ["V-06", "V-06"]
