"""
adaptive_testing_service.py — Adaptive test lifecycle
=====================================================
Creates adaptive tests from the stored question bank, runs test
sessions (start → answer → … → complete), and supports pause, resume
and recovery after a page reload.

Design decisions
----------------
- **In-memory sessions, store-backed** — active sessions live in a dict
  for fast access between answers; every change is also written to
  ``testSessions`` so a fresh service instance can pick them up.
- **Question bank** — system questions plus the user's own
  (``created_by``), filtered by the test's subjects and difficulty range,
  at most 3 × the test length.
- **Completion** — a test completes when the IRT stopping rule says so or
  when the pool runs out of unanswered questions. Per-subject accuracy
  then feeds the mastery of tracked topics.

Public API
----------
  AdaptiveTestingService.create_adaptive_test / create_test_from_journey /
      create_test_from_template / get_test / get_user_tests
  AdaptiveTestingService.generate_test_recommendations /
      create_test_from_recommendation
  AdaptiveTestingService.start_test_session / submit_response /
      pause_test_session / resume_test_session / recover_active_session
  AdaptiveTestingService.save_questions
  calculate_test_performance(responses, questions)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Union

from exam_prep import adaptive_algorithms as irt
from exam_prep.config import get_settings
from exam_prep.database import (
    ADAPTIVE_TESTS,
    QUESTION_BANK,
    TEST_RESPONSES,
    TEST_SESSIONS,
    apply_adaptive_test_results,
    get_document,
    list_documents,
    set_document,
)
from exam_prep.errors import FormValidationError, NotFoundError, PermissionDeniedError
from exam_prep.journey_service import JourneyService
from exam_prep.models import (
    DIFFICULTY_ORDER,
    AdaptiveQuestion,
    AdaptiveTest,
    AlgorithmType,
    BloomsLevel,
    CreateAdaptiveTestRequest,
    DifficultyLevel,
    DifficultyPerformance,
    JourneyStatus,
    SessionMetrics,
    SubjectPerformance,
    SubmissionResult,
    TestPerformance,
    TestResponse,
    TestSession,
    TestStatus,
    as_utc_datetime,
    utcnow,
)
from exam_prep.recommendation_engine import (
    RecommendationKind,
    TestRecommendation,
    build_context,
    recommend,
)
from exam_prep.syllabus_service import SyllabusService

logger = logging.getLogger(__name__)

NO_QUESTIONS_MESSAGE = "Unable to generate questions. Please try again later or contact support."
JOURNEY_TEST_QUESTIONS = 20
MINUTES_PER_QUESTION = 2
BANK_MULTIPLIER = 3
FATIGUE_WINDOW = 5


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _is_correct(question: AdaptiveQuestion, answer: Union[str, list[str]]) -> bool:
    """Multi-answer questions need the exact set; single answers compare case-insensitively."""
    answers = answer if isinstance(answer, list) else [answer]
    if question.correct_answers:
        return {str(a).strip() for a in answers} == {str(c).strip() for c in question.correct_answers}
    if len(answers) != 1:
        return False
    given = str(answers[0]).strip().lower()
    expected = question.correct_answer
    accepted = {str(expected).strip().lower()}
    if isinstance(expected, int) and not isinstance(expected, bool) and 0 <= expected < len(question.options):
        accepted.add(question.options[expected].strip().lower())
    return given in accepted


def calculate_test_performance(
    responses: list[TestResponse],
    questions: list[AdaptiveQuestion],
) -> TestPerformance:
    """Overall, per-subject, per-difficulty and per-Bloom-level results (accuracies in percent)."""
    if not responses:
        return TestPerformance()

    by_id = {q.id: q for q in questions}
    answered = [(r, by_id[r.question_id]) for r in responses if r.question_id in by_id]

    def _group(key) -> dict[str, list[TestResponse]]:
        groups: dict[str, list[TestResponse]] = {}
        for response, question in answered:
            k = key(question)
            if k is not None:
                groups.setdefault(k, []).append(response)
        return groups

    def _accuracy(rs: list[TestResponse]) -> float:
        return sum(1 for r in rs if r.is_correct) / len(rs) * 100

    def _avg_time(rs: list[TestResponse]) -> float:
        return sum(r.response_time for r in rs) / len(rs)

    subject_performance = {
        subject: SubjectPerformance(
            subject_id=subject,
            questions_answered=len(rs),
            correct_answers=sum(1 for r in rs if r.is_correct),
            accuracy=_accuracy(rs),
            average_time=_avg_time(rs),
        )
        for subject, rs in _group(lambda q: q.subject).items()
    }
    difficulty_groups = _group(lambda q: q.difficulty.value)
    difficulty_performance = {
        level.value: (
            DifficultyPerformance(
                difficulty=level,
                questions_answered=len(difficulty_groups[level.value]),
                correct_answers=sum(1 for r in difficulty_groups[level.value] if r.is_correct),
                accuracy=_accuracy(difficulty_groups[level.value]),
                average_time=_avg_time(difficulty_groups[level.value]),
            )
            if level.value in difficulty_groups else DifficultyPerformance(difficulty=level)
        )
        for level in DifficultyLevel
    }
    blooms_performance = {
        level: _accuracy(rs)
        for level, rs in _group(lambda q: q.blooms_level.value if q.blooms_level else None).items()
        if level in {b.value for b in BloomsLevel}
    }

    theta = irt.estimate_ability(responses, questions)
    se = irt.standard_error(responses, questions, theta)
    correct = sum(1 for r in responses if r.is_correct)
    total_time = sum(r.response_time for r in responses)
    return TestPerformance(
        total_questions=len(responses),
        correct_answers=correct,
        accuracy=correct / len(responses) * 100,
        average_response_time=total_time / len(responses),
        total_time=total_time,
        subject_performance=subject_performance,
        difficulty_performance=difficulty_performance,
        blooms_performance=blooms_performance,
        final_ability_estimate=theta,
        ability_confidence_interval=(theta - 1.96 * se, theta + 1.96 * se),
        standard_error=se,
    )


class AdaptiveTestingService:
    def __init__(self, journey_service: Optional[JourneyService] = None) -> None:
        self.journeys = journey_service or JourneyService()
        self._sessions: dict[str, TestSession] = {}

    # ─── Question bank ───────────────────────────────────────────────────
    @staticmethod
    def save_questions(questions: list[AdaptiveQuestion]) -> int:
        for question in questions:
            set_document(QUESTION_BANK, question.id, question)
        logger.info("Saved %d question(s) to the bank", len(questions))
        return len(questions)

    @staticmethod
    def _question_bank(test: AdaptiveTest) -> list[AdaptiveQuestion]:
        low = DIFFICULTY_ORDER.index(test.difficulty_range.min)
        high = DIFFICULTY_ORDER.index(test.difficulty_range.max)
        subjects = set(test.linked_subjects)
        bank = []
        for doc in list_documents(QUESTION_BANK):
            question = AdaptiveQuestion.model_validate(doc)
            if question.created_by not in ("system", test.user_id):
                continue
            if subjects and question.subject not in subjects:
                continue
            if not low <= DIFFICULTY_ORDER.index(question.difficulty) <= high:
                continue
            bank.append(question)
        bank = bank[: test.total_questions * BANK_MULTIPLIER]
        if not bank:
            logger.error("No questions in the bank for subjects %s", sorted(subjects) or "any")
            raise NotFoundError(NO_QUESTIONS_MESSAGE)
        if len(bank) < test.total_questions:
            logger.warning("Question bank has %d question(s) for a %d-question test",
                           len(bank), test.total_questions)
        return bank

    # ─── Test creation ───────────────────────────────────────────────────
    def _finalise_new_test(self, test: AdaptiveTest) -> AdaptiveTest:
        test.questions = self._question_bank(test)
        test.status = TestStatus.ACTIVE
        set_document(ADAPTIVE_TESTS, test.id, test)
        logger.info("Created adaptive test %s (%s) with a %d-question pool for %s",
                    test.id, test.title, len(test.questions), test.user_id)
        return test

    def create_adaptive_test(
        self,
        user_id: str,
        request: Union[CreateAdaptiveTestRequest, dict],
        created_from: str = "manual",
    ) -> AdaptiveTest:
        if not isinstance(request, CreateAdaptiveTestRequest):
            request = CreateAdaptiveTestRequest.model_validate(request)
        total = request.question_count or request.target_questions or get_settings().app.default_question_count
        test = AdaptiveTest(
            id=_new_id("test"),
            user_id=user_id,
            title=request.title,
            description=request.description,
            course_id=request.course_id,
            linked_journey_id=request.linked_journey_id,
            linked_subjects=list(request.subjects),
            linked_topics=list(request.topics),
            track=request.track,
            total_questions=total,
            estimated_duration=total * MINUTES_PER_QUESTION,
            difficulty_range=request.difficulty_range,
            algorithm_type=request.algorithm_type,
            convergence_threshold=request.convergence_threshold,
            initial_difficulty=request.difficulty or DifficultyLevel.INTERMEDIATE,
            created_from=created_from,
        )
        return self._finalise_new_test(test)

    def create_test_from_journey(
        self,
        user_id: str,
        journey_id: str,
        title: Optional[str] = None,
        target_questions: Optional[int] = None,
    ) -> AdaptiveTest:
        journey = self.journeys.get_journey(journey_id)
        if journey is None:
            raise NotFoundError("Journey not found")
        total = target_questions or JOURNEY_TEST_QUESTIONS
        subjects = list(dict.fromkeys(s for g in journey.custom_goals for s in g.linked_subjects))
        test = AdaptiveTest(
            id=_new_id("test"),
            user_id=user_id,
            title=title or f"{journey.title} - Adaptive Assessment",
            description=f"Adaptive test for {journey.title} journey",
            course_id=journey.exam_id,
            linked_journey_id=journey_id,
            linked_subjects=subjects,
            track=journey.track,
            total_questions=total,
            estimated_duration=total * MINUTES_PER_QUESTION,
            algorithm_type=AlgorithmType.CAT,
            created_from="journey",
        )
        return self._finalise_new_test(test)

    def create_test_from_template(self, user_id: str, original: AdaptiveTest) -> AdaptiveTest:
        """A fresh test with the same configuration as *original*."""
        return self.create_adaptive_test(user_id, CreateAdaptiveTestRequest(
            title=f"{original.title} (Retake)",
            description=original.description,
            subjects=original.linked_subjects,
            topics=original.linked_topics,
            course_id=original.course_id,
            linked_journey_id=original.linked_journey_id,
            track=original.track,
            target_questions=original.total_questions,
            algorithm_type=original.algorithm_type,
            difficulty_range=original.difficulty_range,
            convergence_threshold=original.convergence_threshold,
        ))

    # ─── Recommendations ─────────────────────────────────────────────────
    def generate_test_recommendations(
        self,
        user_id: str,
        kind: Union[RecommendationKind, str] = RecommendationKind.ALL,
        limit: Optional[int] = None,
        course_id: Optional[str] = None,
    ) -> list[TestRecommendation]:
        """Ranked test suggestions built from mastery, active journeys and past tests."""
        try:
            kind = RecommendationKind(kind)
        except ValueError:
            raise FormValidationError(f"Unknown recommendation kind: {kind}") from None
        syllabus = SyllabusService(user_id, course_id)
        snapshot = syllabus.load()
        course = syllabus.course_id
        journeys = [j for j in self.journeys.get_user_journeys(user_id, course)
                    if j.status == JourneyStatus.ACTIVE]
        tests = [t for t in self.get_user_tests(user_id)
                 if t.status == TestStatus.COMPLETED and t.course_id in (None, course)]
        context = build_context(snapshot.subjects, snapshot.progress, tests, journeys)
        recommendations = recommend(context, kind, limit)
        for recommendation in recommendations:
            recommendation.course_id = course
        logger.info("%d %s recommendation(s) for %s (weak: %s)", len(recommendations), kind.value,
                    user_id, ", ".join(context.weak_areas) or "none")
        return recommendations

    def create_test_from_recommendation(
        self,
        user_id: str,
        recommendation: TestRecommendation,
    ) -> AdaptiveTest:
        return self.create_adaptive_test(user_id, CreateAdaptiveTestRequest(
            title=recommendation.title,
            description=recommendation.description,
            subjects=recommendation.subjects,
            course_id=recommendation.course_id,
            linked_journey_id=recommendation.journey_id,
            target_questions=recommendation.question_count or JOURNEY_TEST_QUESTIONS,
            algorithm_type=recommendation.algorithm_type,
            difficulty_range=recommendation.difficulty_range,
            convergence_threshold=recommendation.target_standard_error,
        ), created_from="recommendation")

    # ─── Reads ───────────────────────────────────────────────────────────
    @staticmethod
    def get_test(test_id: str) -> Optional[AdaptiveTest]:
        doc = get_document(ADAPTIVE_TESTS, test_id)
        return AdaptiveTest.model_validate(doc) if doc else None

    @staticmethod
    def get_user_tests(user_id: Optional[str]) -> list[AdaptiveTest]:
        if not user_id:
            return []
        tests = [AdaptiveTest.model_validate(d) for d in list_documents(ADAPTIVE_TESTS, user_id=user_id)]
        return sorted(tests, key=lambda t: as_utc_datetime(t.created_at), reverse=True)

    def _require_test(self, test_id: str) -> AdaptiveTest:
        test = self.get_test(test_id)
        if test is None:
            raise NotFoundError("Test not found")
        return test

    def _load_session(self, session_id: str) -> Optional[TestSession]:
        session = self._sessions.get(session_id)
        if session is None:
            doc = get_document(TEST_SESSIONS, session_id)
            if doc is not None:
                session = TestSession.model_validate(doc)
                self._sessions[session.id] = session
        return session

    def _save_session(self, session: TestSession) -> None:
        self._sessions[session.id] = session
        set_document(TEST_SESSIONS, session.id, session)

    # ─── Sessions ────────────────────────────────────────────────────────
    def start_test_session(
        self,
        user_id: str,
        test_id: str,
        estimated_duration: Optional[int] = None,
    ) -> TestSession:
        test = self._require_test(test_id)
        if test.user_id != user_id:
            raise PermissionDeniedError("Unauthorized access to test")

        unanswered = self._unanswered(test)
        first = next((q for q in unanswered if q.difficulty == DifficultyLevel.INTERMEDIATE), None)
        if first is None and unanswered:
            first = unanswered[0]

        session = TestSession(
            id=_new_id("session"),
            test_id=test_id,
            user_id=user_id,
            current_question_index=test.current_question,
            time_remaining=(estimated_duration or test.estimated_duration) * 60 * 1000,
            current_ability_estimate=0.0,
            current_standard_error=1.0,
            next_question_preview=first,
            session_metrics=SessionMetrics(),
        )
        self._save_session(session)
        logger.info("Started session %s for test %s", session.id, test_id)
        return session

    def submit_response(
        self,
        user_id: str,
        session_id: str,
        question_id: str,
        answer: Union[str, list[str]],
        response_time: int,
        confidence: Optional[int] = None,
    ) -> SubmissionResult:
        session = self._load_session(session_id)
        if session is None or session.user_id != user_id:
            raise PermissionDeniedError("Invalid session")
        test = self._require_test(session.test_id)
        if test.status == TestStatus.COMPLETED:
            raise FormValidationError("This test has already been completed.")
        if session.is_completed:
            raise FormValidationError("This session has already been completed.")
        if session.is_paused:
            raise FormValidationError("This session is paused. Resume it to continue.")
        question = test.question_by_id(question_id)
        if question is None:
            raise NotFoundError("Question not found")
        if any(r.question_id == question_id for r in test.responses):
            raise FormValidationError("This question has already been answered.")

        is_correct = _is_correct(question, answer)
        response = TestResponse(
            user_id=user_id,
            test_id=test.id,
            session_id=session.id,
            question_id=question_id,
            user_answer=answer,
            is_correct=is_correct,
            response_time=response_time,
            confidence=confidence,
            estimated_ability=session.current_ability_estimate,
            question_difficulty=question.difficulty,
        )
        test.responses.append(response)

        theta = irt.estimate_ability(test.responses, test.questions)
        se = irt.standard_error(test.responses, test.questions, theta)
        response.information_gained = abs(theta - session.current_ability_estimate)

        now = utcnow()
        session.current_ability_estimate = theta
        session.current_standard_error = se
        session.last_activity = now
        session.current_question_index += 1
        metrics = session.session_metrics
        metrics.questions_answered += 1
        metrics.fatigue_indicators = (metrics.fatigue_indicators + [response_time])[-FATIGUE_WINDOW:]
        metrics.average_response_time = sum(metrics.fatigue_indicators) / len(metrics.fatigue_indicators)
        test.current_question = len(test.responses)

        next_question: Optional[AdaptiveQuestion] = None
        if irt.should_continue_testing(test.responses, test.questions, theta,
                                       test.total_questions, test.convergence_threshold):
            next_question = self._pick_next(test, theta)

        completed = next_question is None
        if completed:
            test.status = TestStatus.COMPLETED
            test.completed_at = now
            test.performance = calculate_test_performance(test.responses, test.questions)
            test.adaptive_metrics = irt.generate_adaptive_metrics(
                test.responses, test.questions, theta, test.algorithm_type)
            session.is_completed = True
            session.next_question_preview = None
            logger.info("Test %s completed: %.0f%% accuracy, θ=%.2f",
                        test.id, test.performance.accuracy, theta)
            apply_adaptive_test_results(user_id, test.performance.subject_performance, test.course_id)
            if test.linked_journey_id:
                logger.info("Journey %s progress impact %.2f", test.linked_journey_id,
                            test.adaptive_metrics.progress_impact.journey_goal_update)
        else:
            session.next_question_preview = next_question

        test.updated_at = now
        set_document(TEST_RESPONSES, _new_id("response"), response)
        set_document(ADAPTIVE_TESTS, test.id, test)
        self._save_session(session)

        return SubmissionResult(
            is_correct=is_correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            next_question=next_question,
            test_completed=completed,
            performance=test.performance if completed else None,
            adaptive_metrics=test.adaptive_metrics if completed else None,
        )

    @staticmethod
    def _unanswered(test: AdaptiveTest) -> list[AdaptiveQuestion]:
        answered = {r.question_id for r in test.responses}
        return [q for q in test.questions if q.id not in answered]

    def _pick_next(self, test: AdaptiveTest, theta: float) -> Optional[AdaptiveQuestion]:
        available = self._unanswered(test)
        if not available:
            return None
        if test.linked_journey_id:
            journey = self.journeys.get_journey(test.linked_journey_id)
            if journey is not None:
                chosen = irt.journey_focused_selection(available, theta, journey.custom_goals, test.responses)
                if chosen is not None:
                    return chosen
        return irt.select_next_question(available, theta, test.responses)

    def pause_test_session(self, session_id: str, reason: str) -> TestSession:
        session = self._load_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        session.is_paused = True
        session.pause_reasons.append(reason)
        session.last_activity = utcnow()
        self._save_session(session)
        self._set_test_status(session.test_id, TestStatus.PAUSED)
        logger.info("Paused session %s (%s)", session_id, reason)
        return session

    def resume_test_session(self, session_id: str) -> TestSession:
        session = self._load_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        session.is_paused = False
        session.last_activity = utcnow()
        self._save_session(session)
        self._set_test_status(session.test_id, TestStatus.ACTIVE)
        return session

    def _set_test_status(self, test_id: str, status: TestStatus) -> None:
        test = self.get_test(test_id)
        if test is None or test.status == TestStatus.COMPLETED:
            return
        test.status = status
        test.updated_at = utcnow()
        set_document(ADAPTIVE_TESTS, test.id, test)

    def recover_active_session(self, user_id: str, test_id: str) -> Optional[TestSession]:
        """Most recent unpaused, unfinished session of *user_id* on *test_id*."""
        candidates = [
            TestSession.model_validate(d) for d in list_documents(TEST_SESSIONS, user_id=user_id)
            if d.get("test_id") == test_id
        ]
        live = [s for s in candidates if not s.is_paused and not s.is_completed]
        if not live:
            return None
        session = max(live, key=lambda s: as_utc_datetime(s.last_activity))
        self._sessions[session.id] = session
        return session
