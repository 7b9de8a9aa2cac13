"""
Shared pytest fixtures for the Exam Strategy Engine test suite.
Every test runs against its own temporary SQLite store and form-draft
file, so no test sees another's documents.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)


import pytest

from factories import make_question_bank

from exam_prep.adaptive_testing_service import AdaptiveTestingService
from exam_prep.database import clear_caches, clear_listeners, create_user
from exam_prep.form_state import JsonFormStore
from exam_prep.journey_service import JourneyService
from exam_prep.models import get_exam_by_id


# ─── isolation ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    monkeypatch.setenv("EXAM_PREP_DB_PATH", str(tmp_path / "store.db"))
    monkeypatch.setenv("EXAM_PREP_FORM_STORE", str(tmp_path / "forms.json"))
    monkeypatch.setenv("EXAM_PREP_SAVE_BACKOFF", "0")
    monkeypatch.setenv("EXAM_PREP_SAVE_RETRIES", "3")
    clear_caches()
    clear_listeners()
    yield tmp_path
    clear_caches()
    clear_listeners()


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def form_store(tmp_path):
    return JsonFormStore(str(tmp_path / "forms.json"))


@pytest.fixture
def gate_exam():
    return get_exam_by_id("gate_cse")


@pytest.fixture
def gate_user(gate_exam):
    """A user who picked GATE CSE, without a saved syllabus."""
    create_user("u1", {
        "display_name": "Asha",
        "selected_exam_id": gate_exam.id,
        "current_exam": {"id": gate_exam.id, "name": gate_exam.name, "target_date": "2030-01-01T00:00:00+00:00"},
        "onboarding_completed": True,
    })
    return "u1"


@pytest.fixture
def journey_service():
    service = JourneyService()
    yield service
    service.cleanup()


@pytest.fixture
def testing_service(journey_service):
    return AdaptiveTestingService(journey_service)


@pytest.fixture
def seeded_bank():
    bank = make_question_bank()
    AdaptiveTestingService.save_questions(bank)
    return bank
