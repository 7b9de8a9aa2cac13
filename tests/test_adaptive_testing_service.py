"""
Tests for the adaptive test lifecycle: creation from the question bank,
sessions, answer submission through to completion, pause/resume and
recovery after a reload.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from factories import make_question, make_response

from exam_prep.adaptive_testing_service import (
    NO_QUESTIONS_MESSAGE,
    AdaptiveTestingService,
    _is_correct,
    calculate_test_performance,
)
from exam_prep.database import TEST_RESPONSES, get_topic_progress, list_documents, update_topic_progress
from exam_prep.errors import FormValidationError, NotFoundError, PermissionDeniedError
from exam_prep.models import AdaptiveQuestion, DifficultyLevel, JourneyStatus, TestStatus


def _ds_test(service, user_id="u1", count=5, **extra):
    request = {"title": "DS check", "subjects": ["data_structures"], "question_count": count}
    request.update(extra)
    return service.create_adaptive_test(user_id, request)


def _answer_all(service, session, user_id="u1", answer="A"):
    question = session.next_question_preview
    results = []
    while question is not None:
        result = service.submit_response(user_id, session.id, question.id, answer, 15000)
        results.append(result)
        question = result.next_question
    return results


class TestCreation:
    def test_pool_is_filtered_by_subject(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        assert test.status == TestStatus.ACTIVE
        assert test.total_questions == 5
        assert test.estimated_duration == 10
        assert 0 < len(test.questions) <= 15
        assert {q.subject for q in test.questions} == {"data_structures"}
        assert testing_service.get_test(test.id).title == "DS check"

    def test_pool_respects_difficulty_range(self, testing_service, seeded_bank):
        test = _ds_test(testing_service, difficulty_range={"min": "advanced", "max": "expert"})
        levels = {q.difficulty for q in test.questions}
        assert levels == {DifficultyLevel.ADVANCED, DifficultyLevel.EXPERT}

    def test_default_question_count(self, testing_service, seeded_bank):
        test = testing_service.create_adaptive_test("u1", {"title": "Quick"})
        assert test.total_questions == 5

    def test_other_users_questions_excluded(self, testing_service, seeded_bank):
        AdaptiveTestingService.save_questions([make_question("mine", "dbms", created_by="u2")])
        with pytest.raises(NotFoundError):
            testing_service.create_adaptive_test("u1", {"title": "x", "subjects": ["dbms"]})
        own = testing_service.create_adaptive_test("u2", {"title": "x", "subjects": ["dbms"]})
        assert [q.id for q in own.questions] == ["mine"]

    def test_empty_bank(self, testing_service):
        with pytest.raises(NotFoundError) as excinfo:
            _ds_test(testing_service)
        assert str(excinfo.value) == NO_QUESTIONS_MESSAGE

    def test_user_tests_listing(self, testing_service, seeded_bank):
        _ds_test(testing_service)
        _ds_test(testing_service)
        _ds_test(testing_service, user_id="u2")
        assert len(testing_service.get_user_tests("u1")) == 2
        assert testing_service.get_user_tests(None) == []

    def test_from_journey(self, testing_service, journey_service, seeded_bank):
        journey = journey_service.create_journey("u1", {
            "title": "DS sprint",
            "exam_id": "gate_cse",
            "custom_goals": [{"title": "Trees", "target_value": 10, "linked_subjects": ["data_structures"]}],
            "target_completion_date": "2031-01-01T00:00:00+00:00",
        })
        test = testing_service.create_test_from_journey("u1", journey.id)
        assert test.title == "DS sprint - Adaptive Assessment"
        assert test.linked_journey_id == journey.id
        assert test.linked_subjects == ["data_structures"]
        assert test.total_questions == 20
        assert test.created_from == "journey"

    def test_from_unknown_journey(self, testing_service, seeded_bank):
        with pytest.raises(NotFoundError, match="Journey not found"):
            testing_service.create_test_from_journey("u1", "ghost")

    def test_retake_copies_configuration(self, testing_service, seeded_bank):
        original = _ds_test(testing_service, count=7)
        retake = testing_service.create_test_from_template("u1", original)
        assert retake.id != original.id
        assert retake.title == "DS check (Retake)"
        assert retake.total_questions == 7
        assert retake.linked_subjects == ["data_structures"]
        assert retake.responses == []


class TestSessions:
    def test_start_picks_intermediate_first(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        assert session.next_question_preview.difficulty == DifficultyLevel.INTERMEDIATE
        assert session.time_remaining == 10 * 60 * 1000
        assert session.current_ability_estimate == 0.0

    def test_start_someone_elses_test(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        with pytest.raises(PermissionDeniedError, match="Unauthorized access to test"):
            testing_service.start_test_session("intruder", test.id)

    def test_start_unknown_test(self, testing_service):
        with pytest.raises(NotFoundError):
            testing_service.start_test_session("u1", "ghost")

    def test_submit_to_completion(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        results = _answer_all(testing_service, session)

        assert len(results) == 5
        assert all(r.is_correct for r in results)
        assert [r.test_completed for r in results] == [False] * 4 + [True]
        final = results[-1]
        assert final.performance.accuracy == 100
        assert final.performance.total_questions == 5
        assert len(final.adaptive_metrics.convergence_history) == 5

        stored = testing_service.get_test(test.id)
        assert stored.status == TestStatus.COMPLETED
        assert stored.completed_at is not None
        assert stored.performance.final_ability_estimate > 0
        assert len(list_documents(TEST_RESPONSES, user_id="u1")) == 5

    def test_completion_feeds_topic_mastery(self, testing_service, seeded_bank, gate_user):
        update_topic_progress("u1", "trees_graphs", {"mastery_score": 50}, "gate_cse")
        update_topic_progress("u1", "deadlocks", {"mastery_score": 50}, "gate_cse")
        test = _ds_test(testing_service, course_id="gate_cse")
        session = testing_service.start_test_session("u1", test.id)
        _answer_all(testing_service, session)

        trees = get_topic_progress("u1", "trees_graphs", "gate_cse")
        assert trees.mastery_score == 65
        assert trees.last_score_improvement == 15
        assert get_topic_progress("u1", "deadlocks", "gate_cse").mastery_score == 50

    def test_unfinished_test_leaves_mastery_alone(self, testing_service, seeded_bank, gate_user):
        update_topic_progress("u1", "trees_graphs", {"mastery_score": 50}, "gate_cse")
        test = _ds_test(testing_service, course_id="gate_cse")
        session = testing_service.start_test_session("u1", test.id)
        testing_service.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)
        assert get_topic_progress("u1", "trees_graphs", "gate_cse").mastery_score == 50

    def test_questions_are_not_repeated(self, testing_service, seeded_bank):
        test = _ds_test(testing_service, count=8)
        session = testing_service.start_test_session("u1", test.id)
        _answer_all(testing_service, session, answer="B")
        ids = [r.question_id for r in testing_service.get_test(test.id).responses]
        assert len(ids) == len(set(ids))

    def test_completes_when_pool_runs_out(self, testing_service, seeded_bank):
        test = _ds_test(testing_service, count=10, difficulty_range={"min": "beginner", "max": "beginner"})
        assert len(test.questions) == 3
        session = testing_service.start_test_session("u1", test.id)
        results = _answer_all(testing_service, session)
        assert len(results) == 3
        assert results[-1].test_completed

    def test_submit_after_completion(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        _answer_all(testing_service, session)
        with pytest.raises(FormValidationError):
            testing_service.submit_response("u1", session.id, test.questions[0].id, "A", 1000)

    def test_submit_with_foreign_session(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        with pytest.raises(PermissionDeniedError, match="Invalid session"):
            testing_service.submit_response("u2", session.id, test.questions[0].id, "A", 1000)

    def test_submit_unknown_question(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        with pytest.raises(NotFoundError, match="Question not found"):
            testing_service.submit_response("u1", session.id, "ghost", "A", 1000)

    def test_fresh_service_reads_stored_session(self, testing_service, journey_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        other = AdaptiveTestingService(journey_service)
        result = other.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)
        assert result.is_correct

    def test_same_question_cannot_be_answered_twice(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        first = session.next_question_preview
        testing_service.submit_response("u1", session.id, first.id, "A", 1000)
        with pytest.raises(FormValidationError, match="already been answered"):
            testing_service.submit_response("u1", session.id, first.id, "A", 1000)
        assert len(testing_service.get_test(test.id).responses) == 1

    def test_new_session_previews_an_unanswered_question(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        s1 = testing_service.start_test_session("u1", test.id)
        answered = s1.next_question_preview
        testing_service.submit_response("u1", s1.id, answered.id, "A", 1000)
        testing_service.pause_test_session(s1.id, "reload")

        s2 = testing_service.start_test_session("u1", test.id)
        assert s2.next_question_preview.id != answered.id
        assert s2.next_question_preview.difficulty == DifficultyLevel.INTERMEDIATE
        assert s2.current_question_index == 1
        with pytest.raises(FormValidationError):
            testing_service.submit_response("u1", s2.id, answered.id, "A", 1000)

    def test_preview_falls_back_when_intermediates_are_answered(self, testing_service, seeded_bank):
        test = _ds_test(testing_service, count=10)
        session = testing_service.start_test_session("u1", test.id)
        for question in [q for q in test.questions if q.difficulty == DifficultyLevel.INTERMEDIATE]:
            testing_service.submit_response("u1", session.id, question.id, "B", 1000)
        fresh = testing_service.start_test_session("u1", test.id)
        assert fresh.next_question_preview is not None
        assert fresh.next_question_preview.difficulty != DifficultyLevel.INTERMEDIATE


class TestPauseAndRecovery:
    def test_pause_and_resume(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)

        paused = testing_service.pause_test_session(session.id, "phone call")
        assert paused.is_paused
        assert paused.pause_reasons == ["phone call"]
        assert testing_service.get_test(test.id).status == TestStatus.PAUSED

        resumed = testing_service.resume_test_session(session.id)
        assert not resumed.is_paused
        assert testing_service.get_test(test.id).status == TestStatus.ACTIVE

    def test_paused_session_rejects_answers(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        testing_service.pause_test_session(session.id, "break")
        with pytest.raises(FormValidationError, match="paused"):
            testing_service.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)
        assert testing_service.get_test(test.id).responses == []

        testing_service.resume_test_session(session.id)
        result = testing_service.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)
        assert result.is_correct

    def test_completed_session_rejects_answers(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        session.is_completed = True
        testing_service._save_session(session)
        with pytest.raises(FormValidationError, match="session has already been completed"):
            testing_service.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)

    def test_pause_unknown_session(self, testing_service):
        with pytest.raises(NotFoundError):
            testing_service.pause_test_session("ghost", "x")

    def test_recover_active_session(self, testing_service, journey_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        testing_service.submit_response("u1", session.id, session.next_question_preview.id, "A", 1000)

        recovered = AdaptiveTestingService(journey_service).recover_active_session("u1", test.id)
        assert recovered.id == session.id
        assert recovered.current_question_index == 1
        assert recovered.next_question_preview is not None

    def test_paused_or_finished_sessions_not_recovered(self, testing_service, seeded_bank):
        test = _ds_test(testing_service)
        session = testing_service.start_test_session("u1", test.id)
        testing_service.pause_test_session(session.id, "break")
        assert testing_service.recover_active_session("u1", test.id) is None
        assert testing_service.recover_active_session("u1", "other-test") is None


class TestScoring:
    def test_single_answer_case_insensitive(self):
        question = make_question(correct="Stack")
        assert _is_correct(question, " stack ")
        assert not _is_correct(question, "Queue")
        assert not _is_correct(question, ["Stack", "Queue"])

    def test_index_answer_accepts_option_text(self):
        question = AdaptiveQuestion(id="q", question="?", options=["O(n)", "O(1)"],
                                    correct_answer=1, subject="dbms")
        assert _is_correct(question, "O(1)")
        assert _is_correct(question, "1")
        assert not _is_correct(question, "O(n)")

    def test_multi_answer_needs_exact_set(self):
        question = AdaptiveQuestion(id="q", question="?", options=["A", "B", "C"],
                                    correct_answer="A", correct_answers=["A", "C"], subject="dbms")
        assert _is_correct(question, ["C", "A"])
        assert not _is_correct(question, ["A"])
        assert not _is_correct(question, ["A", "B", "C"])

    def test_performance_breakdown(self):
        easy = make_question("e", "dbms", DifficultyLevel.BEGINNER)
        hard = make_question("h", "operating_systems", DifficultyLevel.EXPERT)
        responses = [make_response(easy, True, 10000), make_response(hard, False, 30000)]
        perf = calculate_test_performance(responses, [easy, hard])
        assert perf.accuracy == 50
        assert perf.total_time == 40000
        assert perf.subject_performance["dbms"].accuracy == 100
        assert perf.difficulty_performance["expert"].correct_answers == 0
        assert perf.difficulty_performance["advanced"].questions_answered == 0
        assert perf.blooms_performance == {"understand": 50}
        low, high = perf.ability_confidence_interval
        assert low < perf.final_ability_estimate < high

    def test_performance_without_responses(self):
        assert calculate_test_performance([], []).total_questions == 0


class TestRecommendations:
    def _gate_mastery(self):
        update_topic_progress("u1", "trees_graphs", {"mastery_score": 20}, "gate_cse")
        for topic in ("process_scheduling", "memory_management", "deadlocks"):
            update_topic_progress("u1", topic, {"mastery_score": 95}, "gate_cse")

    def test_built_from_syllabus_mastery(self, testing_service, seeded_bank, gate_user):
        self._gate_mastery()
        recommendations = testing_service.generate_test_recommendations("u1")
        titles = [r.title for r in recommendations]
        assert titles == ["Master Data Structures & Algorithms", "Advanced Operating Systems Challenge"]
        assert recommendations[0].score > recommendations[1].score
        assert {r.course_id for r in recommendations} == {"gate_cse"}

    def test_create_from_recommendation(self, testing_service, seeded_bank, gate_user):
        self._gate_mastery()
        weak = testing_service.generate_test_recommendations("u1", "weak_area")[0]
        test = testing_service.create_test_from_recommendation("u1", weak)

        assert test.created_from == "recommendation"
        assert test.title == "Master Data Structures & Algorithms"
        assert test.linked_subjects == ["data_structures"]
        assert test.course_id == "gate_cse"
        assert test.total_questions == 20
        assert test.convergence_threshold == 0.3
        assert {q.difficulty for q in test.questions} == {DifficultyLevel.BEGINNER, DifficultyLevel.INTERMEDIATE}
        assert testing_service.get_test(test.id).created_from == "recommendation"

    def test_active_journey_recommendation_links_the_journey(self, testing_service, journey_service,
                                                             seeded_bank, gate_user):
        journey = journey_service.create_journey("u1", {
            "title": "OS sprint",
            "exam_id": "gate_cse",
            "custom_goals": [{"title": "Paging", "target_value": 10, "linked_subjects": ["operating_systems"]}],
            "target_completion_date": "2031-01-01T00:00:00+00:00",
        })
        assert testing_service.generate_test_recommendations("u1", "journey_aligned") == []

        journey_service.update_journey_status(journey.id, JourneyStatus.ACTIVE)
        [recommendation] = testing_service.generate_test_recommendations("u1", "journey_aligned")
        assert recommendation.title == "OS sprint Assessment"
        test = testing_service.create_test_from_recommendation("u1", recommendation)
        assert test.linked_journey_id == journey.id
        assert test.algorithm_type.value == "HYBRID"
        assert test.convergence_threshold == 0.25

    def test_completed_tests_shape_recommendations(self, testing_service, seeded_bank, gate_user):
        test = _ds_test(testing_service, course_id="gate_cse")
        session = testing_service.start_test_session("u1", test.id)
        _answer_all(testing_service, session, answer="B")

        [weak] = testing_service.generate_test_recommendations("u1")
        assert weak.subjects == ["data_structures"]
        assert weak.estimated_accuracy == 0
        assert weak.difficulty_range.max == DifficultyLevel.BEGINNER

    def test_unknown_kind(self, testing_service, gate_user):
        with pytest.raises(FormValidationError, match="Unknown recommendation kind"):
            testing_service.generate_test_recommendations("u1", "someday")
