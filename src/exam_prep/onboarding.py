"""
onboarding.py — Four-step onboarding wizard
===========================================
Persona → Exam & Personal Info → Syllabus → Preferences.

The wizard keeps its draft in ``OnboardingFormData`` and writes it to the
form store after every change, so a half-finished setup survives an app
restart.  ``complete()`` validates the whole submission, then writes the
user profile and the syllabus in parallel (ThreadPoolExecutor), retrying
the pair with a progressive backoff.  Creating the first journey is
best-effort: if it fails, setup still succeeds without custom goals.
"""

from __future__ import annotations

import concurrent.futures
import copy
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from exam_prep.config import get_settings
from exam_prep.database import create_user, save_syllabus, to_document
from exam_prep.errors import ExamPrepError, NotFoundError
from exam_prep.form_state import JsonFormStore, MultiStepForm
from exam_prep.journey_service import JourneyService
from exam_prep.models import (
    DEFAULT_REVISION_INTERVALS,
    DEFAULT_TIER_DEFINITIONS,
    CustomExam,
    Exam,
    NotificationPreferences,
    PersonaType,
    StudyPreferences,
    StudyTime,
    SyllabusSubject,
    UserPersona,
    as_utc_datetime,
    get_exam_by_id,
    search_exams,
)
from exam_prep.validation import OnboardingSubmission, OnboardingValidator, ValidationResult

logger = logging.getLogger(__name__)

FORM_DATA_KEY = "onboarding-form-data-v2"
PROGRESS_KEY = "onboarding-progress-v2"
STEP_TITLES = ["Persona", "Exam & Personal Info", "Syllabus", "Preferences"]
CUSTOM_EXAM_ID = "custom"


@dataclass
class OnboardingFormData:
    """The wizard's working draft."""
    user_persona:              UserPersona = field(default_factory=lambda: UserPersona(type=PersonaType.STUDENT))
    display_name:              str = ""
    selected_exam_id:          str = ""
    exam_date:                 Optional[datetime] = None
    is_custom_exam:            bool = False
    custom_exam:               Optional[CustomExam] = None
    syllabus:                  list[SyllabusSubject] = field(default_factory=list)
    daily_study_goal_minutes:  int = 480
    preferred_study_time:      StudyTime = StudyTime.MORNING
    tier_definitions:          dict[int, str] = field(default_factory=lambda: dict(DEFAULT_TIER_DEFINITIONS))
    revision_intervals:        list[int] = field(default_factory=lambda: list(DEFAULT_REVISION_INTERVALS))
    notifications:             NotificationPreferences = field(default_factory=NotificationPreferences)

    def as_submission(self) -> dict[str, Any]:
        """JSON-compatible dict in the shape ``OnboardingSubmission`` expects."""
        return to_document({
            "display_name":      self.display_name,
            "selected_exam_id":  self.selected_exam_id,
            "exam_date":         self.exam_date,
            "is_custom_exam":    self.is_custom_exam,
            "custom_exam":       self.custom_exam,
            "syllabus":          self.syllabus,
            "user_persona":      self.user_persona,
            "preferences": {
                "daily_study_goal_minutes": self.daily_study_goal_minutes,
                "preferred_study_time":     self.preferred_study_time,
                "tier_definitions":         self.tier_definitions,
                "revision_intervals":       self.revision_intervals,
                "notifications":            self.notifications,
            },
        })

    @classmethod
    def from_submission(cls, data: dict[str, Any]) -> "OnboardingFormData":
        prefs = data.get("preferences") or {}
        return cls(
            user_persona=UserPersona.model_validate(data.get("user_persona") or {}),
            display_name=data.get("display_name", ""),
            selected_exam_id=data.get("selected_exam_id", ""),
            exam_date=as_utc_datetime(data["exam_date"]) if data.get("exam_date") else None,
            is_custom_exam=bool(data.get("is_custom_exam", False)),
            custom_exam=CustomExam.model_validate(data["custom_exam"]) if data.get("custom_exam") else None,
            syllabus=[SyllabusSubject.model_validate(s) for s in data.get("syllabus") or []],
            daily_study_goal_minutes=int(prefs.get("daily_study_goal_minutes", 480)),
            preferred_study_time=StudyTime(prefs.get("preferred_study_time", StudyTime.MORNING.value)),
            tier_definitions={int(k): v for k, v in (prefs.get("tier_definitions")
                                                     or DEFAULT_TIER_DEFINITIONS).items()},
            revision_intervals=list(prefs.get("revision_intervals") or DEFAULT_REVISION_INTERVALS),
            notifications=NotificationPreferences.model_validate(prefs.get("notifications") or {}),
        )


@dataclass
class OnboardingOutcome:
    user_id:          str
    course_id:        str
    journey_id:       Optional[str]
    journey_created:  bool
    attempts:         int
    warnings:         list[str] = field(default_factory=list)


class OnboardingWizard:
    def __init__(
        self,
        user_id: str,
        store: Optional[JsonFormStore] = None,
        journey_service: Optional[JourneyService] = None,
    ) -> None:
        self.user_id = user_id
        self.store = store or JsonFormStore()
        self.journey_service = journey_service or JourneyService()
        self.validator = OnboardingValidator()
        self.data = self._load_draft()
        self.form = MultiStepForm(
            total_steps=len(STEP_TITLES),
            store=self.store,
            storage_key=PROGRESS_KEY,
            validators={n: self._step_passes for n in range(1, len(STEP_TITLES) + 1)},
        )

    def _load_draft(self) -> OnboardingFormData:
        saved = self.store.get(FORM_DATA_KEY)
        if not isinstance(saved, dict):
            return OnboardingFormData()
        try:
            return OnboardingFormData.from_submission(saved)
        except (ValidationError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Discarding unreadable onboarding draft: %s", exc)
            return OnboardingFormData()

    def _persist(self) -> None:
        self.store.set(FORM_DATA_KEY, self.data.as_submission())

    # ── field editing ────────────────────────────────────────────────────
    def update_field(self, name: str, value: Any) -> None:
        if name not in OnboardingFormData.__dataclass_fields__:
            raise ValueError(f"Unknown onboarding field: {name}")
        if name == "exam_date" and value is not None:
            value = as_utc_datetime(value)
        setattr(self.data, name, value)
        self._persist()

    def update_fields(self, **values: Any) -> None:
        for name, value in values.items():
            if name not in OnboardingFormData.__dataclass_fields__:
                raise ValueError(f"Unknown onboarding field: {name}")
            if name == "exam_date" and value is not None:
                value = as_utc_datetime(value)
            setattr(self.data, name, value)
        self._persist()

    # ── exam selection ───────────────────────────────────────────────────
    @staticmethod
    def filtered_exams(query: str = "") -> list[Exam]:
        return search_exams(query)

    def select_exam(self, exam_id: str) -> None:
        if exam_id == CUSTOM_EXAM_ID:
            self.data.selected_exam_id = CUSTOM_EXAM_ID
            self.data.is_custom_exam = True
            self.data.custom_exam = self.data.custom_exam or CustomExam()
            self.data.syllabus = []
        else:
            exam = get_exam_by_id(exam_id)
            if exam is None:
                raise NotFoundError("Exam not found")
            self.data.selected_exam_id = exam.id
            self.data.is_custom_exam = False
            self.data.custom_exam = None
            self.data.syllabus = copy.deepcopy(exam.default_syllabus)
        self._persist()

    # ── syllabus editing ─────────────────────────────────────────────────
    def _subject(self, subject_id: str) -> SyllabusSubject:
        for subject in self.data.syllabus:
            if subject.id == subject_id:
                return subject
        raise NotFoundError(f"Subject {subject_id} not found")

    def update_subject_tier(self, subject_id: str, tier: int) -> None:
        if tier not in (1, 2, 3):
            raise ValueError("Tier must be 1, 2 or 3")
        self._subject(subject_id).tier = tier
        self._persist()

    def rename_subject(self, subject_id: str, name: str) -> None:
        self._subject(subject_id).name = name
        self._persist()

    def add_custom_subject(self) -> SyllabusSubject:
        stamp = int(time.time() * 1000)
        taken = {s.id for s in self.data.syllabus}
        while f"custom-{stamp}" in taken:
            stamp += 1
        subject = SyllabusSubject(id=f"custom-{stamp}", name="New Subject", tier=2, topics=[], is_custom=True)
        self.data.syllabus.append(subject)
        self._persist()
        return subject

    def remove_subject(self, subject_id: str) -> None:
        self.data.syllabus = [s for s in self.data.syllabus if s.id != subject_id]
        self._persist()

    # ── navigation ───────────────────────────────────────────────────────
    def step_result(self, step: Optional[int] = None) -> ValidationResult:
        return self.validator.validate_step(step or self.form.current_step, self.data.as_submission())

    def _step_passes(self, step: int) -> bool:
        return self.step_result(step).passed

    @property
    def current_step(self) -> int:
        return self.form.current_step

    @property
    def step_title(self) -> str:
        return STEP_TITLES[self.form.current_step - 1]

    def next_step(self) -> bool:
        return self.form.go_to_next()

    def previous_step(self) -> bool:
        return self.form.go_to_previous()

    def go_to_step(self, step: int) -> bool:
        return self.form.go_to_step(step)

    # ── completion ───────────────────────────────────────────────────────
    def _user_payload(self, submission: OnboardingSubmission) -> dict[str, Any]:
        exam = get_exam_by_id(submission.selected_exam_id)
        if exam is not None:
            exam_name = exam.name
        elif submission.custom_exam and submission.custom_exam.name:
            exam_name = submission.custom_exam.name
        else:
            exam_name = "Custom Exam"
        return {
            "display_name":          submission.display_name,
            "selected_exam_id":      submission.selected_exam_id,
            "exam_date":             submission.exam_date,
            "current_exam": {
                "id":           submission.selected_exam_id,
                "name":         exam_name,
                "target_date":  submission.exam_date,
            },
            "onboarding_completed":  True,
            "is_custom_exam":        submission.is_custom_exam,
            "custom_exam":           submission.custom_exam,
            "user_persona":          submission.user_persona,
            "preferences":           StudyPreferences.model_validate(submission.preferences.model_dump()),
        }

    def _save_profile_and_syllabus(self, payload: dict[str, Any], submission: OnboardingSubmission) -> None:
        """Write both documents in parallel; raise the first failure once both have settled."""
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
            futures = [
                executor.submit(create_user, self.user_id, payload),
                executor.submit(save_syllabus, self.user_id, submission.syllabus,
                                submission.selected_exam_id),
            ]
            errors = [f.exception() for f in futures]
        failures = [e for e in errors if e is not None]
        if failures:
            raise failures[0]

    def complete(self) -> OnboardingOutcome:
        submission, result = self.validator.parse_submission(self.data.as_submission())
        payload = self._user_payload(submission)
        retry = get_settings().retry

        attempt = 0
        while True:
            attempt += 1
            try:
                self._save_profile_and_syllabus(payload, submission)
                break
            except ExamPrepError as exc:
                if attempt >= retry.attempts:
                    logger.error("Onboarding save failed after %d attempts: %s", attempt, exc)
                    raise
                delay = retry.delay_for(attempt)
                logger.warning("Onboarding save attempt %d failed (%s); retrying in %.1fs",
                               attempt, exc, delay)
                time.sleep(delay)

        warnings = [v.message for v in result.warnings]
        journey_id: Optional[str] = None
        try:
            journey = self.journey_service.create_journey_from_onboarding(
                self.user_id, submission.selected_exam_id, submission.exam_date,
            )
            journey_id = journey.id
        except ExamPrepError as exc:
            logger.warning("Journey creation failed for %s, continuing without custom goals: %s",
                           self.user_id, exc)
            warnings.append("Your study journey could not be created. Continuing without custom goals.")

        self.form.reset()
        self.store.remove(FORM_DATA_KEY)
        self.data = OnboardingFormData()
        logger.info("Onboarding complete for %s (%s) in %d attempt(s)",
                    self.user_id, submission.selected_exam_id, attempt)
        return OnboardingOutcome(
            user_id=self.user_id,
            course_id=submission.selected_exam_id,
            journey_id=journey_id,
            journey_created=journey_id is not None,
            attempts=attempt,
            warnings=warnings,
        )
