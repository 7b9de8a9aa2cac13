"""
validation.py – Onboarding validation layer
===========================================
Checks the onboarding wizard's data, one step at a time and as a whole
submission, before anything is written to the store.

Validation levels
-----------------
BLOCK   – Hard-stop: the wizard does not proceed / the profile is not saved.
WARN    – Soft-stop: saving proceeds, the UI shows a warning.
INFO    – Advisory only.

Checks implemented
------------------
  V-01  Display name 2–50 characters
  V-02  An exam is selected
  V-03  Exam date present and in the future
  V-04  At least one syllabus subject
  V-05  Daily study goal between 1 and 12 hours
  V-06  Every tier (1–3) has a non-empty definition
  V-07  At least three positive revision intervals
  V-08  Any other schema error (persona, notifications, custom exam)
  V-09  Exam is less than a week away                         [WARN]
  V-10  Daily study goal above 10 hours                       [WARN]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from exam_prep.errors import FormValidationError
from exam_prep.models import (
    CustomExam,
    NotificationPreferences,
    StudyTime,
    SyllabusSubject,
    UserPersona,
    as_utc_datetime,
    utcnow,
)

MIN_STUDY_GOAL_MINUTES = 60
MAX_STUDY_GOAL_MINUTES = 720
LONG_STUDY_GOAL_MINUTES = 600
SHORT_RUNWAY_DAYS = 7


# ─── Result types ────────────────────────────────────────────────────────────

class ValidationLevel(str, Enum):
    BLOCK = "BLOCK"
    WARN  = "WARN"
    INFO  = "INFO"


@dataclass
class ValidationViolation:
    code:    str
    level:   ValidationLevel
    message: str
    field:   str = ""   # dotted path of the offending field


@dataclass
class ValidationResult:
    passed:     bool
    violations: list[ValidationViolation] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(v.level == ValidationLevel.BLOCK for v in self.violations)

    @property
    def errors(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.level == ValidationLevel.BLOCK]

    @property
    def warnings(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.level == ValidationLevel.WARN]

    @property
    def infos(self) -> list[ValidationViolation]:
        return [v for v in self.violations if v.level == ValidationLevel.INFO]

    def errors_by_field(self) -> dict[str, str]:
        """First blocking message per field, for inline form errors."""
        out: dict[str, str] = {}
        for v in self.errors:
            out.setdefault(v.field, v.message)
        return out

    def summary(self) -> str:
        if not self.violations:
            return "✅ All checks passed."
        icon = {ValidationLevel.BLOCK: "🚫", ValidationLevel.WARN: "⚠️", ValidationLevel.INFO: "ℹ️"}
        return "\n".join(f"{icon[v.level]} [{v.code}] {v.message}" for v in self.violations)

    @classmethod
    def from_violations(cls, violations: list[ValidationViolation]) -> "ValidationResult":
        return cls(
            passed=not any(v.level == ValidationLevel.BLOCK for v in violations),
            violations=violations,
        )


# ─── Submission schema ───────────────────────────────────────────────────────

class PreferencesInput(BaseModel):
    daily_study_goal_minutes:  int = Field(default=480, validate_default=True)
    preferred_study_time:      StudyTime = StudyTime.MORNING
    tier_definitions:          dict[int, str] = Field(default_factory=dict, validate_default=True)
    revision_intervals:        list[int] = Field(default_factory=list, validate_default=True)
    notifications:             NotificationPreferences = Field(default_factory=NotificationPreferences)

    @field_validator("daily_study_goal_minutes")
    @classmethod
    def _goal_bounds(cls, v: int) -> int:
        if v < MIN_STUDY_GOAL_MINUTES:
            raise ValueError("Minimum study goal is 1 hour")
        if v > MAX_STUDY_GOAL_MINUTES:
            raise ValueError("Maximum study goal is 12 hours")
        return v

    @field_validator("tier_definitions")
    @classmethod
    def _all_tiers_defined(cls, v: dict[int, str]) -> dict[int, str]:
        for tier in (1, 2, 3):
            if not (v.get(tier) or "").strip():
                raise ValueError(f"Tier {tier} definition is required")
        return v

    @field_validator("revision_intervals")
    @classmethod
    def _intervals(cls, v: list[int]) -> list[int]:
        if len(v) < 3:
            raise ValueError("At least 3 revision intervals are required")
        if any(i <= 0 for i in v):
            raise ValueError("Revision intervals must be positive")
        return v


class OnboardingSubmission(BaseModel):
    """Everything the wizard must hold before the profile can be created."""

    display_name:      str = Field(default="", validate_default=True)
    selected_exam_id:  str = Field(default="", validate_default=True)
    exam_date:         Optional[datetime] = Field(default=None, validate_default=True)
    is_custom_exam:    bool = False
    custom_exam:       Optional[CustomExam] = None
    syllabus:          list[SyllabusSubject] = Field(default_factory=list, validate_default=True)
    user_persona:      UserPersona = Field(default_factory=UserPersona)
    preferences:       PreferencesInput = Field(default_factory=PreferencesInput)

    @field_validator("display_name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(v) > 50:
            raise ValueError("Name must be less than 50 characters")
        return v

    @field_validator("selected_exam_id")
    @classmethod
    def _exam(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Please select an exam")
        return v.strip()

    @field_validator("exam_date", mode="before")
    @classmethod
    def _future_date(cls, v: Any) -> datetime:
        if v is None:
            raise ValueError("Please select your exam date")
        v = as_utc_datetime(v)
        if v <= utcnow():
            raise ValueError("Exam date must be in the future")
        return v

    @field_validator("syllabus")
    @classmethod
    def _non_empty(cls, v: list[SyllabusSubject]) -> list[SyllabusSubject]:
        if not v:
            raise ValueError("Please select at least one subject")
        return v


# ─── Validator ───────────────────────────────────────────────────────────────

_FIELD_CODES = {
    "display_name":                          "V-01",
    "selected_exam_id":                      "V-02",
    "exam_date":                             "V-03",
    "syllabus":                              "V-04",
    "preferences.daily_study_goal_minutes":  "V-05",
    "preferences.tier_definitions":          "V-06",
    "preferences.revision_intervals":        "V-07",
}


def _code_for(path: str) -> str:
    for prefix, code in _FIELD_CODES.items():
        if path == prefix or path.startswith(prefix + "."):
            return code
    return "V-08"


def _clean_message(msg: str) -> str:
    return msg.removeprefix("Value error, ")


def _get(data: Any, key: str, default: Any = None) -> Any:
    if isinstance(data, dict):
        return data.get(key, default)
    return getattr(data, key, default)


class OnboardingValidator:
    """Whole-submission and per-step checks for the onboarding wizard."""

    def validate_submission(self, data: dict[str, Any]) -> ValidationResult:
        result, _ = self._run(data)
        return result

    def parse_submission(self, data: dict[str, Any]) -> tuple[OnboardingSubmission, ValidationResult]:
        """Validate and return the parsed submission with its (non-blocking) result.

        Raises FormValidationError when any BLOCK violation is present.
        """
        result, submission = self._run(data)
        if result.blocked or submission is None:
            raise FormValidationError(result.errors[0].message, result.violations)
        return submission, result

    def _run(self, data: dict[str, Any]) -> tuple[ValidationResult, Optional[OnboardingSubmission]]:
        violations: list[ValidationViolation] = []
        try:
            submission = OnboardingSubmission.model_validate(data)
        except ValidationError as exc:
            for err in exc.errors():
                path = ".".join(str(p) for p in err["loc"])
                violations.append(ValidationViolation(
                    _code_for(path), ValidationLevel.BLOCK, _clean_message(err["msg"]), path,
                ))
            return ValidationResult.from_violations(violations), None

        if submission.exam_date - utcnow() < timedelta(days=SHORT_RUNWAY_DAYS):
            violations.append(ValidationViolation(
                "V-09", ValidationLevel.WARN,
                "Your exam is less than a week away. The plan will focus on revision.",
                "exam_date",
            ))
        if submission.preferences.daily_study_goal_minutes > LONG_STUDY_GOAL_MINUTES:
            violations.append(ValidationViolation(
                "V-10", ValidationLevel.WARN,
                "A daily goal above 10 hours is hard to sustain. Plan regular breaks.",
                "preferences.daily_study_goal_minutes",
            ))
        return ValidationResult.from_violations(violations), submission

    def validate_step(self, step: int, data: dict[str, Any]) -> ValidationResult:
        """Lightweight check used by the wizard's Next button."""
        v: list[ValidationViolation] = []

        if step == 1:
            if not _get(_get(data, "user_persona") or {}, "type"):
                v.append(ValidationViolation("V-08", ValidationLevel.BLOCK,
                                             "Please choose a persona", "user_persona.type"))

        elif step == 2:
            if len((_get(data, "display_name") or "").strip()) < 2:
                v.append(ValidationViolation("V-01", ValidationLevel.BLOCK,
                                             "Name must be at least 2 characters", "display_name"))
            if not (_get(data, "selected_exam_id") or "").strip():
                v.append(ValidationViolation("V-02", ValidationLevel.BLOCK,
                                             "Please select an exam", "selected_exam_id"))
            exam_date = _get(data, "exam_date")
            if not exam_date:
                v.append(ValidationViolation("V-03", ValidationLevel.BLOCK,
                                             "Please select your exam date", "exam_date"))
            elif as_utc_datetime(exam_date) <= utcnow():
                v.append(ValidationViolation("V-03", ValidationLevel.BLOCK,
                                             "Exam date must be in the future", "exam_date"))

        elif step == 3:
            if not _get(data, "syllabus"):
                v.append(ValidationViolation("V-04", ValidationLevel.BLOCK,
                                             "Please select at least one subject", "syllabus"))

        elif step == 4:
            prefs = _get(data, "preferences") or {}
            if (_get(prefs, "daily_study_goal_minutes") or 0) < MIN_STUDY_GOAL_MINUTES:
                v.append(ValidationViolation("V-05", ValidationLevel.BLOCK,
                                             "Minimum study goal is 1 hour",
                                             "preferences.daily_study_goal_minutes"))
            tiers = _get(prefs, "tier_definitions") or {}
            for tier in (1, 2, 3):
                label = tiers.get(tier, tiers.get(str(tier), ""))
                if not (label or "").strip():
                    v.append(ValidationViolation("V-06", ValidationLevel.BLOCK,
                                                 f"Tier {tier} definition is required",
                                                 f"preferences.tier_definitions.{tier}"))

        return ValidationResult.from_violations(v)
