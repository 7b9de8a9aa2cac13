"""
exam_prep — Exam Strategy Engine
================================
Onboarding, syllabus tracking, study journeys, mock-test logging and
IRT-based adaptive testing for competitive-exam preparation.

Module map
----------
  models.py                      Pydantic documents, enums, dataclasses and the
                                 built-in exam catalogue.
  config.py                      Settings loaded from .env; logging setup.
  errors.py                      Exception hierarchy + user-facing messages.
  database.py                    SQLite document store (collections, listeners,
                                 TTL caches, user / syllabus / progress / mock APIs).
  form_state.py                  JSON draft store + multi-step form navigation.
  validation.py                  Onboarding validation rules V-01..V-10.
  onboarding.py                  Four-step onboarding wizard and completion.
  syllabus_service.py            Subject/topic CRUD, mastery, spaced revision.
  journey_service.py             Goal-based journeys, milestones, analytics.
  mock_test_logger.py            Mock-test form validation, analysis, summaries.
  adaptive_algorithms.py         3PL IRT engine and question selectors.
  adaptive_testing_service.py    Adaptive test + session lifecycle.
  recommendation_engine.py       Ranked suggestions for the next adaptive test.
  test_view.py                   State machine behind the adaptive test page.
  seed_demo_data.py              Question bank + demo learner seeding.

Flow
----
  OnboardingWizard.complete()
  ┌── create_user            ─┐  parallel via ThreadPoolExecutor
  └── save_syllabus          ─┘
  → JourneyService.create_journey_from_onboarding   (best-effort)
  → SyllabusService.record_study → revision queue
  → AdaptiveTestingService.create_adaptive_test → sessions → performance
    → mastery feedback → generate_test_recommendations
  → log_mock_test → mastery feedback
"""
__version__ = "0.1.0"
