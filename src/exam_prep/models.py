"""
Data models for the Exam Strategy Engine.

Persisted documents (users, syllabus, progress, mock logs, journeys,
adaptive tests and sessions) are Pydantic models so they round-trip
through the document store with ``model_dump(mode="json")`` /
``model_validate``.  Transient working records are plain dataclasses.
The built-in exam catalogue lives at the bottom of this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc_datetime(value: Union[datetime, date, str]) -> datetime:
    """Coerce a date / datetime / ISO string to a timezone-aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


# ─── Enumerations ────────────────────────────────────────────────────────────

class PersonaType(str, Enum):
    STUDENT              = "student"
    WORKING_PROFESSIONAL = "working_professional"
    FREELANCER           = "freelancer"


class StudyTime(str, Enum):
    MORNING   = "morning"
    AFTERNOON = "afternoon"
    EVENING   = "evening"
    NIGHT     = "night"


class DifficultyLevel(str, Enum):
    """Question / mission difficulty, ordered easiest → hardest."""
    BEGINNER     = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED     = "advanced"
    EXPERT       = "expert"


DIFFICULTY_ORDER: list[DifficultyLevel] = list(DifficultyLevel)


class TopicStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    MASTERED    = "mastered"


class JourneyStatus(str, Enum):
    PLANNING  = "planning"
    ACTIVE    = "active"
    COMPLETED = "completed"
    PAUSED    = "paused"
    CANCELLED = "cancelled"


class JourneyPriority(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class JourneyTrack(str, Enum):
    EXAM          = "exam"
    COURSE_TECH   = "course_tech"
    CERTIFICATION = "certification"


class JourneySource(str, Enum):
    ONBOARDING     = "onboarding"
    MANUAL         = "manual"
    RECOMMENDATION = "recommendation"


class GoalUnit(str, Enum):
    PERCENTAGE = "percentage"
    HOURS      = "hours"
    TOPICS     = "topics"
    TESTS      = "tests"
    PROJECTS   = "projects"


class GoalCategory(str, Enum):
    KNOWLEDGE   = "knowledge"
    SKILL       = "skill"
    SPEED       = "speed"
    ACCURACY    = "accuracy"
    CONSISTENCY = "consistency"


class MockTestType(str, Enum):
    FULL_LENGTH   = "full_length"
    SECTIONAL     = "sectional"
    TOPIC_WISE    = "topic_wise"
    PREVIOUS_YEAR = "previous_year"


class TestStatus(str, Enum):
    DRAFT     = "draft"
    ACTIVE    = "active"
    COMPLETED = "completed"
    PAUSED    = "paused"
    ARCHIVED  = "archived"


class AlgorithmType(str, Enum):
    CAT    = "CAT"      # classic computer adaptive testing
    MAP    = "MAP"      # measures of academic progress
    HYBRID = "HYBRID"


class BloomsLevel(str, Enum):
    REMEMBER   = "remember"
    UNDERSTAND = "understand"
    APPLY      = "apply"
    ANALYZE    = "analyze"
    EVALUATE   = "evaluate"
    CREATE     = "create"


class RevisionPriority(str, Enum):
    OVERDUE   = "overdue"
    DUE_TODAY = "due_today"
    DUE_SOON  = "due_soon"
    SCHEDULED = "scheduled"


def difficulty_from_number(value: Union[int, float, str, DifficultyLevel]) -> DifficultyLevel:
    """Map a numeric difficulty (1–4 scale) onto ``DifficultyLevel``; strings pass through."""
    if isinstance(value, DifficultyLevel):
        return value
    if isinstance(value, str):
        return DifficultyLevel(value)
    if value <= 1:
        return DifficultyLevel.BEGINNER
    if value <= 2:
        return DifficultyLevel.INTERMEDIATE
    if value <= 3:
        return DifficultyLevel.ADVANCED
    return DifficultyLevel.EXPERT


class _Document(BaseModel):
    """Base for store documents: tolerate extra keys written by older versions."""
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


# ─── Exam catalogue ──────────────────────────────────────────────────────────

class ExamSection(_Document):
    id:                str
    name:              str
    max_marks:         float
    max_time:          int                    # minutes
    negative_marking:  Optional[float] = None


class ExamStage(_Document):
    id:           str
    name:         str
    sections:     list[ExamSection] = Field(default_factory=list)
    total_marks:  float = 0
    duration:     int = 0                     # minutes


class SyllabusTopic(_Document):
    id:               str
    name:             str
    subtopics:        list[str] = Field(default_factory=list)
    estimated_hours:  Optional[float] = None
    order:            int = 0


class TopicStatusInfo(_Document):
    """Per-topic tracking block stored on each saved subject."""
    status:           TopicStatus = TopicStatus.NOT_STARTED
    progress:         float = 0
    time_spent:       int = 0
    mastery_level:    float = 0
    attempts:         int = 0
    average_score:    float = 0
    difficulty:       str = "medium"
    estimated_hours:  float = 0


class SubjectProgress(_Document):
    total_topics:      int = 0
    completed_topics:  int = 0
    mastered_topics:   int = 0
    total_time_spent:  int = 0
    average_mastery:   float = 0
    status:            TopicStatus = TopicStatus.NOT_STARTED


class SyllabusSubject(_Document):
    id:                str
    name:              str
    tier:              int = Field(default=2, ge=1, le=3)
    topics:            list[SyllabusTopic] = Field(default_factory=list)
    estimated_hours:   Optional[float] = None
    is_custom:         bool = False

    # populated when the subject is saved for a user's course
    order:             int = 0
    user_id:           Optional[str] = None
    course_id:         Optional[str] = None
    topic_status:      dict[str, TopicStatusInfo] = Field(default_factory=dict)
    subject_progress:  Optional[SubjectProgress] = None

    def topic_by_id(self, topic_id: str) -> Optional[SyllabusTopic]:
        return next((t for t in self.topics if t.id == topic_id), None)


class Exam(_Document):
    id:                str
    name:              str
    description:       str
    category:          str
    stages:            list[ExamStage] = Field(default_factory=list)
    default_syllabus:  list[SyllabusSubject] = Field(default_factory=list)


# ─── Users ───────────────────────────────────────────────────────────────────

class WorkSchedule(_Document):
    working_hours_start:  str = "09:00"
    working_hours_end:    str = "18:00"
    working_days:         list[str] = Field(
        default_factory=lambda: ["monday", "tuesday", "wednesday", "thursday", "friday"]
    )
    commute_time:         int = 0              # minutes, one way
    flexibility:          str = "rigid"        # rigid | flexible | hybrid
    lunch_break_duration: int = 60


class CareerContext(_Document):
    current_role:  str = ""
    target_role:   str = ""
    industry:      str = ""
    urgency:       str = "short_term"         # immediate | short_term | long_term
    motivation:    list[str] = Field(default_factory=list)
    skill_gaps:    list[str] = Field(default_factory=list)


class UserPersona(_Document):
    type:            PersonaType = PersonaType.STUDENT
    work_schedule:   Optional[WorkSchedule] = None
    career_context:  Optional[CareerContext] = None


class NotificationPreferences(_Document):
    revision_reminders:      bool = True
    daily_goal_reminders:    bool = True
    health_check_reminders:  bool = True


DEFAULT_TIER_DEFINITIONS: dict[int, str] = {
    1: "High Priority - Core Topics",
    2: "Medium Priority - Important Topics",
    3: "Low Priority - Additional Topics",
}

DEFAULT_REVISION_INTERVALS: list[int] = [1, 3, 7, 16, 35]


class StudyPreferences(_Document):
    daily_study_goal_minutes:  int = 480
    preferred_study_time:      StudyTime = StudyTime.MORNING
    tier_definitions:          dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_TIER_DEFINITIONS))
    revision_intervals:        list[int] = Field(default_factory=lambda: list(DEFAULT_REVISION_INTERVALS))
    notifications:             NotificationPreferences = Field(default_factory=NotificationPreferences)


class UserStats(_Document):
    total_study_hours:  float = 0
    current_streak:     int = 0
    longest_streak:     int = 0
    total_mock_tests:   int = 0
    average_score:      float = 0
    topics_completed:   int = 0
    total_topics:       int = 0


class CurrentExam(_Document):
    id:           str
    name:         str
    target_date:  datetime


class CustomExam(_Document):
    name:         Optional[str] = None
    description:  Optional[str] = None
    category:     Optional[str] = None


class User(_Document):
    user_id:               str
    email:                 str = ""
    display_name:          str = ""
    current_exam:          Optional[CurrentExam] = None
    selected_exam_id:      Optional[str] = None
    exam_date:             Optional[datetime] = None
    onboarding_completed:  bool = False
    is_custom_exam:        bool = False
    custom_exam:           Optional[CustomExam] = None
    user_persona:          Optional[UserPersona] = None
    preferences:           Optional[StudyPreferences] = None
    stats:                 UserStats = Field(default_factory=UserStats)
    created_at:            Optional[datetime] = None
    updated_at:            Optional[datetime] = None


class UserCourse(BaseModel):
    """Per-course settings document (``users/{uid}/courses/{course}``); free-form."""
    model_config = ConfigDict(extra="allow")

    course_id:   str
    settings:    dict[str, Any] = Field(default_factory=dict)
    updated_at:  Optional[datetime] = None


# ─── Progress ────────────────────────────────────────────────────────────────

class TopicProgress(_Document):
    id:                      str
    topic_id:                str
    subject_id:              str = ""
    course_id:               Optional[str] = None
    mastery_score:           float = 0
    last_revised:            datetime = Field(default_factory=utcnow)
    next_revision:           datetime = Field(default_factory=utcnow)
    revision_count:          int = 0
    total_study_time:        int = 0           # minutes
    user_notes:              str = ""
    personal_context:        str = ""
    tags:                    list[str] = Field(default_factory=list)
    difficulty:              int = Field(default=3, ge=1, le=5)
    importance:              int = Field(default=3, ge=1, le=5)
    last_score_improvement:  float = 0


@dataclass
class RevisionItem:
    """One entry of the spaced-revision queue."""
    topic_id:                 str
    topic_name:               str
    subject_name:             str
    tier:                     int
    mastery_score:            float
    days_since_last_revision: int
    priority:                 RevisionPriority
    estimated_time:           float            # minutes
    last_revised:             datetime
    next_revision:            datetime


# ─── Mock tests ──────────────────────────────────────────────────────────────

class TopicPerformance(_Document):
    topic_id:           str
    topic_name:         str = ""
    questions_asked:    int = 0
    questions_correct:  int = 0
    questions_wrong:    int = 0
    accuracy:           float = 0              # fraction 0–1
    average_time:       float = 0
    difficulty_level:   str = "medium"         # easy | medium | hard


class TestAnalysis(_Document):
    concept_gaps:        int = 0
    careless_errors:     int = 0
    intelligent_guesses: int = 0
    time_pressures:      int = 0
    total_questions:     int = 0
    correct_answers:     int = 0
    wrong_answers:       int = 0
    unattempted:         int = 0
    accuracy:            float = 0             # percent
    speed:               float = 0             # marks per minute


class MentalState(_Document):
    confidence:  int = Field(default=3, ge=1, le=5)
    anxiety:     int = Field(default=3, ge=1, le=5)
    focus:       int = Field(default=3, ge=1, le=5)


class TestEnvironment(_Document):
    location:      str = "home"
    distractions:  list[str] = Field(default_factory=list)
    time_of_day:   StudyTime = StudyTime.MORNING


class MockTestLog(_Document):
    id:                      str
    date:                    datetime
    platform:                str
    test_name:               str
    stage:                   str = ""
    type:                    MockTestType = MockTestType.FULL_LENGTH
    scores:                  dict[str, float] = Field(default_factory=dict)
    max_scores:              dict[str, float] = Field(default_factory=dict)
    time_taken:              dict[str, float] = Field(default_factory=dict)   # minutes
    analysis:                TestAnalysis = Field(default_factory=TestAnalysis)
    topic_wise_performance:  list[TopicPerformance] = Field(default_factory=list)
    mental_state:            MentalState = Field(default_factory=MentalState)
    environment:             TestEnvironment = Field(default_factory=TestEnvironment)
    feedback:                str = ""
    action_items:            list[str] = Field(default_factory=list)
    course_id:               Optional[str] = None


# ─── Journeys ────────────────────────────────────────────────────────────────

class JourneyGoal(_Document):
    id:                str = ""
    title:             str
    description:       str = ""
    target_value:      float
    current_value:     float = 0
    unit:              GoalUnit = GoalUnit.PERCENTAGE
    category:          GoalCategory = GoalCategory.KNOWLEDGE
    is_specific:       bool = True
    is_measurable:     bool = True
    is_achievable:     bool = True
    is_relevant:       bool = True
    is_time_bound:     bool = True
    deadline:          datetime = Field(default_factory=utcnow)
    linked_subjects:   list[str] = Field(default_factory=list)
    linked_topics:     list[str] = Field(default_factory=list)
    auto_update_from:  str = "mixed"


class WeeklyProgress(_Document):
    week_starting:    datetime = Field(default_factory=utcnow)
    goals_completed:  int = 0
    hours_studied:    float = 0
    topics_mastered:  int = 0
    tests_taken:      int = 0
    average_score:    float = 0
    notes:            str = ""


class MilestoneAchievement(_Document):
    id:                   str
    title:                str
    description:          str
    achieved_at:          datetime = Field(default_factory=utcnow)
    related_goals:        list[str] = Field(default_factory=list)
    celebration_message:  str = ""


class JourneyProgressTracking(_Document):
    overall_completion:      float = 0
    goal_completions:        dict[str, float] = Field(default_factory=dict)
    weekly_progress:         list[WeeklyProgress] = Field(default_factory=list)
    milestone_achievements:  list[MilestoneAchievement] = Field(default_factory=list)
    last_synced_at:          datetime = Field(default_factory=utcnow)
    auto_sync_enabled:       bool = True


class UserJourney(_Document):
    id:                      str
    user_id:                 str
    title:                   str
    description:             str = ""
    exam_id:                 Optional[str] = None
    custom_goals:            list[JourneyGoal] = Field(default_factory=list)
    target_completion_date:  datetime
    priority:                JourneyPriority = JourneyPriority.MEDIUM
    status:                  JourneyStatus = JourneyStatus.PLANNING
    track:                   JourneyTrack = JourneyTrack.EXAM
    progress_tracking:       JourneyProgressTracking = Field(default_factory=JourneyProgressTracking)
    created_at:              datetime = Field(default_factory=utcnow)
    updated_at:              datetime = Field(default_factory=utcnow)
    created_from:            JourneySource = JourneySource.MANUAL


class CreateJourneyRequest(_Document):
    title:                   str = Field(min_length=1)
    description:             str = ""
    exam_id:                 Optional[str] = None
    custom_goals:            list[JourneyGoal] = Field(default_factory=list)
    target_completion_date:  datetime
    priority:                JourneyPriority = JourneyPriority.MEDIUM
    track:                   JourneyTrack = JourneyTrack.EXAM


class GoalUpdate(_Document):
    goal_id:    str
    new_value:  float


class SimilarUserComparison(_Document):
    percentile:               float
    average_completion_time:  float            # days


class JourneyAnalytics(_Document):
    journey_id:                      str
    completion_rate:                 float
    average_weekly_hours:            float
    goal_completion_velocity:        float     # goals per week
    predicted_completion_date:       datetime
    risk_factors:                    list[str] = Field(default_factory=list)
    recommendations:                 list[str] = Field(default_factory=list)
    comparison_with_similar_users:   SimilarUserComparison


@dataclass
class GoalTemplate:
    title:                       str
    description:                 str
    target_value:                float
    unit:                        GoalUnit
    category:                    GoalCategory
    estimated_time_to_complete:  int           # days
    difficulty:                  DifficultyLevel = DifficultyLevel.INTERMEDIATE


@dataclass
class JourneyTemplate:
    id:                str
    title:             str
    description:       str
    category:          str
    default_duration:  int                     # days
    estimated_hours:   int
    goal_templates:    list[GoalTemplate] = field(default_factory=list)
    difficulty_level:  DifficultyLevel = DifficultyLevel.INTERMEDIATE
    popularity_score:  int = 0
    success_rate:      int = 0
    tags:              list[str] = field(default_factory=list)


# ─── Adaptive testing ────────────────────────────────────────────────────────

class AdaptiveQuestion(_Document):
    id:                    str
    question:              str
    type:                  str = "multiple_choice"
    options:               list[str] = Field(default_factory=list)
    correct_answer:        Union[str, int, float]
    correct_answers:       Optional[list[str]] = None
    explanation:           str = ""
    difficulty:            DifficultyLevel = DifficultyLevel.INTERMEDIATE
    discrimination_index:  float = 1.0
    guessing_parameter:    float = 0.25
    subject:               str
    topics:                list[str] = Field(default_factory=list)
    topic:                 Optional[str] = None
    subtopic:              Optional[str] = None
    blooms_level:          Optional[BloomsLevel] = None
    time_limit:            Optional[int] = None   # seconds
    created_by:            str = "system"
    tags:                  list[str] = Field(default_factory=list)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _numeric_difficulty(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return difficulty_from_number(v)
        return v

    @property
    def primary_topic(self) -> Optional[str]:
        return self.topic or (self.topics[0] if self.topics else None)


class TestResponse(_Document):
    user_id:              str
    test_id:              str
    session_id:           str = ""
    question_id:          str
    user_answer:          Union[str, list[str]]
    is_correct:           bool
    response_time:        int                    # milliseconds
    confidence:           Optional[int] = Field(default=None, ge=1, le=5)
    timestamp:            datetime = Field(default_factory=utcnow)
    estimated_ability:    float = 0
    question_difficulty:  DifficultyLevel = DifficultyLevel.INTERMEDIATE
    information_gained:   float = 0


class SubjectPerformance(_Document):
    subject_id:          str
    questions_answered:  int = 0
    correct_answers:     int = 0
    accuracy:            float = 0
    average_time:        float = 0
    ability_estimate:    float = 0


class DifficultyPerformance(_Document):
    difficulty:          DifficultyLevel
    questions_answered:  int = 0
    correct_answers:     int = 0
    accuracy:            float = 0
    average_time:        float = 0


def _empty_difficulty_performance() -> dict[str, DifficultyPerformance]:
    return {d.value: DifficultyPerformance(difficulty=d) for d in DifficultyLevel}


class TestPerformance(_Document):
    total_questions:              int = 0
    correct_answers:              int = 0
    accuracy:                     float = 0
    average_response_time:        float = 0
    total_time:                   int = 0
    subject_performance:          dict[str, SubjectPerformance] = Field(default_factory=dict)
    difficulty_performance:       dict[str, DifficultyPerformance] = Field(
        default_factory=_empty_difficulty_performance
    )
    blooms_performance:           dict[str, float] = Field(default_factory=dict)
    final_ability_estimate:       float = 0
    ability_confidence_interval:  tuple[float, float] = (0.0, 0.0)
    standard_error:               float = 1.0


class AbilityEstimate(_Document):
    timestamp:        datetime
    estimate:         float
    standard_error:   float
    question_number:  int


class ProgressImpact(_Document):
    mission_difficulty_adjustment:  float = 0
    journey_goal_update:            float = 0
    track_progress_contribution:    float = 0


class AdaptiveMetrics(_Document):
    algorithm_efficiency:        float = 0
    question_utilization:        float = 0
    ability_estimate_stability:  float = 0
    convergence_history:         list[AbilityEstimate] = Field(default_factory=list)
    progress_impact:             ProgressImpact = Field(default_factory=ProgressImpact)


class DifficultyRange(_Document):
    min: DifficultyLevel = DifficultyLevel.BEGINNER
    max: DifficultyLevel = DifficultyLevel.EXPERT


class AdaptiveTest(_Document):
    id:                     str
    user_id:                str
    title:                  str
    description:            str = ""
    course_id:              Optional[str] = None
    linked_journey_id:      Optional[str] = None
    linked_subjects:        list[str] = Field(default_factory=list)
    linked_topics:          list[str] = Field(default_factory=list)
    track:                  JourneyTrack = JourneyTrack.EXAM
    total_questions:        int
    estimated_duration:     int                 # minutes
    difficulty_range:       DifficultyRange = Field(default_factory=DifficultyRange)
    algorithm_type:         AlgorithmType = AlgorithmType.HYBRID
    convergence_threshold:  float = 0.3
    initial_difficulty:     DifficultyLevel = DifficultyLevel.INTERMEDIATE
    status:                 TestStatus = TestStatus.DRAFT
    current_question:       int = 0
    questions:              list[AdaptiveQuestion] = Field(default_factory=list)
    responses:              list[TestResponse] = Field(default_factory=list)
    performance:            TestPerformance = Field(default_factory=TestPerformance)
    adaptive_metrics:       AdaptiveMetrics = Field(default_factory=AdaptiveMetrics)
    created_at:             datetime = Field(default_factory=utcnow)
    updated_at:             datetime = Field(default_factory=utcnow)
    completed_at:           Optional[datetime] = None
    created_from:           str = "manual"      # manual | journey | recommendation

    def question_by_id(self, question_id: str) -> Optional[AdaptiveQuestion]:
        return next((q for q in self.questions if q.id == question_id), None)


class SessionMetrics(_Document):
    questions_answered:     int = 0
    average_response_time:  float = 0
    peak_performance_time:  datetime = Field(default_factory=utcnow)
    fatigue_indicators:     list[int] = Field(default_factory=list)


class TestSession(_Document):
    id:                        str
    test_id:                   str
    user_id:                   str
    started_at:                datetime = Field(default_factory=utcnow)
    last_activity:             datetime = Field(default_factory=utcnow)
    current_question_index:    int = 0
    time_remaining:            int = 0          # milliseconds
    is_paused:                 bool = False
    is_completed:              bool = False
    pause_reasons:             list[str] = Field(default_factory=list)
    current_ability_estimate:  float = 0
    current_standard_error:    float = 1.0
    next_question_preview:     Optional[AdaptiveQuestion] = None
    session_metrics:           SessionMetrics = Field(default_factory=SessionMetrics)


class CreateAdaptiveTestRequest(_Document):
    title:             str = Field(min_length=1)
    description:       str = ""
    subjects:          list[str] = Field(default_factory=list)
    topics:            list[str] = Field(default_factory=list)
    course_id:         Optional[str] = None
    linked_journey_id: Optional[str] = None
    track:             JourneyTrack = JourneyTrack.EXAM
    difficulty:        Optional[DifficultyLevel] = None
    target_questions:  Optional[int] = Field(default=None, ge=1)
    question_count:    Optional[int] = Field(default=None, ge=1)
    algorithm_type:    AlgorithmType = AlgorithmType.HYBRID
    difficulty_range:  DifficultyRange = Field(default_factory=DifficultyRange)
    convergence_threshold: float = Field(default=0.3, gt=0)


@dataclass
class SubmissionResult:
    """What the test page receives after each answer."""
    is_correct:        bool
    correct_answer:    Union[str, int, float]
    test_completed:    bool
    explanation:       str = ""
    next_question:     Optional[AdaptiveQuestion] = None
    performance:       Optional[TestPerformance] = None
    adaptive_metrics:  Optional[AdaptiveMetrics] = None


# ─── Built-in exam catalogue ─────────────────────────────────────────────────

def _topic(tid: str, name: str, hours: float, subtopics: Optional[list[str]] = None) -> dict:
    return {"id": tid, "name": name, "estimated_hours": hours, "subtopics": subtopics or []}


_EXAM_BLUEPRINTS: list[dict] = [
    {
        "id":          "upsc_cse_prelims",
        "name":        "UPSC CSE - Prelims",
        "description": "Union Public Service Commission Civil Services Examination",
        "category":    "Civil Services",
        "stages": [{
            "id": "prelims", "name": "Preliminary Examination", "total_marks": 400, "duration": 240,
            "sections": [
                {"id": "gs_paper_1", "name": "General Studies Paper I", "max_marks": 200,
                 "max_time": 120, "negative_marking": 0.33},
                {"id": "csat", "name": "CSAT Paper II", "max_marks": 200,
                 "max_time": 120, "negative_marking": 0.33},
            ],
        }],
        "default_syllabus": [
            {"id": "modern_history", "name": "Modern History", "tier": 1, "estimated_hours": 120, "topics": [
                _topic("british_rule", "British Administration in India", 15,
                       ["East India Company", "Crown Rule"]),
                _topic("freedom_struggle", "Freedom Struggle", 30, ["Moderates", "Gandhian Era"]),
                _topic("socio_religious_reforms", "Socio-Religious Reform Movements", 12),
            ]},
            {"id": "indian_polity", "name": "Indian Polity", "tier": 1, "estimated_hours": 100, "topics": [
                _topic("constitution_basics", "Constitutional Framework", 20),
                _topic("parliament", "Parliament and State Legislatures", 15),
                _topic("judiciary", "Judiciary", 12),
            ]},
            {"id": "geography", "name": "Geography", "tier": 2, "estimated_hours": 90, "topics": [
                _topic("physical_geography", "Physical Geography", 25),
                _topic("indian_geography", "Indian Geography", 25),
            ]},
            {"id": "current_affairs", "name": "Current Affairs", "tier": 3, "estimated_hours": 60, "topics": [
                _topic("national_events", "National Events", 20),
                _topic("international_relations", "International Relations", 15),
            ]},
        ],
    },
    {
        "id":          "gate_cse",
        "name":        "GATE Computer Science",
        "description": "Graduate Aptitude Test in Engineering for Computer Science and IT",
        "category":    "Engineering",
        "stages": [{
            "id": "gate", "name": "GATE Paper", "total_marks": 100, "duration": 180,
            "sections": [
                {"id": "general_aptitude", "name": "General Aptitude", "max_marks": 15, "max_time": 30},
                {"id": "technical", "name": "Technical Section", "max_marks": 85,
                 "max_time": 150, "negative_marking": 0.33},
            ],
        }],
        "default_syllabus": [
            {"id": "data_structures", "name": "Data Structures & Algorithms", "tier": 1,
             "estimated_hours": 110, "topics": [
                _topic("arrays_lists", "Arrays and Linked Lists", 12),
                _topic("trees_graphs", "Trees and Graphs", 25),
                _topic("dynamic_programming", "Dynamic Programming", 20),
             ]},
            {"id": "operating_systems", "name": "Operating Systems", "tier": 1, "estimated_hours": 70, "topics": [
                _topic("process_scheduling", "Process Scheduling", 12),
                _topic("memory_management", "Memory Management", 15),
                _topic("deadlocks", "Deadlocks and Synchronization", 12),
            ]},
            {"id": "dbms", "name": "Database Management Systems", "tier": 2, "estimated_hours": 60, "topics": [
                _topic("er_model", "ER Model and Normalization", 15),
                _topic("sql_queries", "SQL and Relational Algebra", 15),
                _topic("transactions", "Transactions and Concurrency", 10),
            ]},
            {"id": "computer_networks", "name": "Computer Networks", "tier": 2, "estimated_hours": 55, "topics": [
                _topic("tcp_ip", "TCP/IP Stack", 15),
                _topic("routing", "Routing Algorithms", 12),
            ]},
            {"id": "engineering_maths", "name": "Engineering Mathematics", "tier": 3,
             "estimated_hours": 50, "topics": [
                _topic("discrete_maths", "Discrete Mathematics", 20),
                _topic("probability", "Probability and Statistics", 15),
             ]},
        ],
    },
    {
        "id":          "sbi_po",
        "name":        "SBI PO",
        "description": "State Bank of India Probationary Officer recruitment examination",
        "category":    "Banking",
        "stages": [{
            "id": "prelims", "name": "Preliminary Examination", "total_marks": 100, "duration": 60,
            "sections": [
                {"id": "english", "name": "English Language", "max_marks": 30, "max_time": 20,
                 "negative_marking": 0.25},
                {"id": "quant", "name": "Quantitative Aptitude", "max_marks": 35, "max_time": 20,
                 "negative_marking": 0.25},
                {"id": "reasoning", "name": "Reasoning Ability", "max_marks": 35, "max_time": 20,
                 "negative_marking": 0.25},
            ],
        }],
        "default_syllabus": [
            {"id": "quantitative_aptitude", "name": "Quantitative Aptitude", "tier": 1,
             "estimated_hours": 80, "topics": [
                _topic("data_interpretation", "Data Interpretation", 20),
                _topic("arithmetic", "Arithmetic", 25),
             ]},
            {"id": "reasoning_ability", "name": "Reasoning Ability", "tier": 1, "estimated_hours": 70, "topics": [
                _topic("puzzles", "Puzzles and Seating Arrangement", 25),
                _topic("syllogism", "Syllogism", 8),
            ]},
            {"id": "english_language", "name": "English Language", "tier": 2, "estimated_hours": 50, "topics": [
                _topic("reading_comprehension", "Reading Comprehension", 15),
                _topic("error_spotting", "Error Spotting", 10),
            ]},
            {"id": "banking_awareness", "name": "Banking Awareness", "tier": 3, "estimated_hours": 30, "topics": [
                _topic("rbi_policies", "RBI and Monetary Policy", 10),
            ]},
        ],
    },
    {
        "id":          "sql_mastery",
        "name":        "SQL Mastery",
        "description": "Hands-on SQL course from basics to query optimisation",
        "category":    "Computer Science",
        "stages": [{"id": "assessment", "name": "Final Assessment", "total_marks": 50, "duration": 90,
                    "sections": [{"id": "practical", "name": "Practical Queries", "max_marks": 50,
                                  "max_time": 90}]}],
        "default_syllabus": [
            {"id": "sql_basics", "name": "SQL Basics", "tier": 1, "estimated_hours": 20, "topics": [
                _topic("select_filtering", "SELECT and Filtering", 5),
                _topic("joins", "Joins", 8),
            ]},
            {"id": "advanced_sql", "name": "Advanced SQL", "tier": 2, "estimated_hours": 25, "topics": [
                _topic("window_functions", "Window Functions", 8),
                _topic("ctes", "Common Table Expressions", 5),
                _topic("query_optimisation", "Indexes and Query Optimisation", 10),
            ]},
        ],
    },
]

EXAMS_DATA: list[Exam] = [Exam.model_validate(bp) for bp in _EXAM_BLUEPRINTS]


def get_exam_by_id(exam_id: str) -> Optional[Exam]:
    return next((e for e in EXAMS_DATA if e.id == exam_id), None)


def get_exam_categories() -> list[str]:
    """Unique categories, in catalogue order."""
    return list(dict.fromkeys(e.category for e in EXAMS_DATA))


def get_exams_by_category(category: str) -> list[Exam]:
    return [e for e in EXAMS_DATA if e.category == category]


def search_exams(query: str) -> list[Exam]:
    """Case-insensitive match on exam name, category or description."""
    q = query.strip().lower()
    if not q:
        return list(EXAMS_DATA)
    return [
        e for e in EXAMS_DATA
        if q in e.name.lower() or q in e.category.lower() or q in e.description.lower()
    ]


def calculate_total_study_hours(exam_id: str) -> float:
    """Sum of subject estimated hours for *exam_id*; 0 for an unknown exam."""
    exam = get_exam_by_id(exam_id)
    if exam is None:
        return 0
    return sum(s.estimated_hours or 0 for s in exam.default_syllabus)
