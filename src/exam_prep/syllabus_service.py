"""
Syllabus management for one user and course.

Subjects and topics are edited in memory and written back as a whole
through ``save_syllabus_for_course``.  Mastery comes from the per-topic
progress records; ``record_study`` schedules the next revision from the
user's revision intervals (spaced repetition).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from exam_prep.database import (
    get_all_progress,
    get_revision_queue,
    get_syllabus_for_course,
    get_topic_progress,
    get_user,
    save_syllabus_for_course,
    update_topic_progress,
)
from exam_prep.errors import FormValidationError, NotFoundError
from exam_prep.models import (
    DEFAULT_REVISION_INTERVALS,
    RevisionItem,
    SyllabusSubject,
    SyllabusTopic,
    TopicProgress,
    TopicStatus,
    TopicStatusInfo,
    as_utc_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)

MASTERY_THRESHOLD = 80
MEDIUM_MASTERY_THRESHOLD = 50


def calculate_subject_mastery(subject: SyllabusSubject, progress: dict[str, TopicProgress]) -> int:
    """Rounded mean topic mastery; topics without progress count as 0."""
    if not subject.topics:
        return 0
    scores = [progress[t.id].mastery_score if t.id in progress else 0 for t in subject.topics]
    return round(sum(scores) / len(scores))


def mastery_band(score: float) -> str:
    if score >= MASTERY_THRESHOLD:
        return "high"
    if score >= MEDIUM_MASTERY_THRESHOLD:
        return "medium"
    return "low"


def filter_subjects(
    subjects: list[SyllabusSubject],
    progress: dict[str, TopicProgress],
    query: str = "",
    tier: Optional[int] = None,
    mastery: Optional[str] = None,
    hide_mastered: bool = False,
) -> list[SyllabusSubject]:
    q = query.strip().lower()
    out = []
    for subject in subjects:
        if q and q not in subject.name.lower() and not any(q in t.name.lower() for t in subject.topics):
            continue
        if tier is not None and subject.tier != tier:
            continue
        score = calculate_subject_mastery(subject, progress)
        if mastery is not None and mastery_band(score) != mastery:
            continue
        if hide_mastered and score >= 100:
            continue
        out.append(subject)
    return out


@dataclass
class SyllabusSnapshot:
    subjects:  list[SyllabusSubject]
    progress:  dict[str, TopicProgress]


@dataclass
class SyllabusSummary:
    total_subjects:   int
    total_topics:     int
    average_mastery:  int
    mastered_topics:  int
    tier_counts:      dict[int, int] = field(default_factory=dict)


class SyllabusService:
    _SUBJECT_FIELDS = {"name", "tier", "estimated_hours"}
    _TOPIC_FIELDS = {"name", "estimated_hours", "subtopics"}

    def __init__(self, user_id: str, course_id: Optional[str] = None) -> None:
        self.user_id = user_id
        self._course_id = course_id

    @property
    def course_id(self) -> str:
        if not self._course_id:
            user = get_user(self.user_id)
            if user is None or user.current_exam is None:
                raise FormValidationError("No course selected. Please select an exam first.")
            self._course_id = user.current_exam.id
        return self._course_id

    # ── reads ────────────────────────────────────────────────────────────
    def subjects(self) -> list[SyllabusSubject]:
        return get_syllabus_for_course(self.user_id, self.course_id)

    def progress_map(self) -> dict[str, TopicProgress]:
        return {p.topic_id: p for p in get_all_progress(self.user_id, self.course_id)}

    def load(self) -> SyllabusSnapshot:
        return SyllabusSnapshot(self.subjects(), self.progress_map())

    def revision_queue(self, now: Optional[datetime] = None) -> list[RevisionItem]:
        return get_revision_queue(self.user_id, self.course_id, now=now)

    def summary(self) -> SyllabusSummary:
        snapshot = self.load()
        topics = [t for s in snapshot.subjects for t in s.topics]
        scores = [snapshot.progress[t.id].mastery_score if t.id in snapshot.progress else 0 for t in topics]
        tiers = {1: 0, 2: 0, 3: 0}
        for subject in snapshot.subjects:
            tiers[subject.tier] += 1
        return SyllabusSummary(
            total_subjects=len(snapshot.subjects),
            total_topics=len(topics),
            average_mastery=round(sum(scores) / len(scores)) if scores else 0,
            mastered_topics=sum(1 for s in scores if s >= MASTERY_THRESHOLD),
            tier_counts=tiers,
        )

    # ── helpers ──────────────────────────────────────────────────────────
    @staticmethod
    def _find_subject(subjects: list[SyllabusSubject], subject_id: str) -> SyllabusSubject:
        for subject in subjects:
            if subject.id == subject_id:
                return subject
        raise NotFoundError(f"Subject {subject_id} not found")

    @staticmethod
    def _find_topic(subject: SyllabusSubject, topic_id: str) -> SyllabusTopic:
        topic = subject.topic_by_id(topic_id)
        if topic is None:
            raise NotFoundError(f"Topic {topic_id} not found")
        return topic

    def _save(self, subjects: list[SyllabusSubject]) -> list[SyllabusSubject]:
        return save_syllabus_for_course(self.user_id, self.course_id, subjects)

    @staticmethod
    def _unique_id(prefix: str, taken: set[str]) -> str:
        stamp = int(time.time() * 1000)
        while f"{prefix}-{stamp}" in taken:
            stamp += 1
        return f"{prefix}-{stamp}"

    # ── subject CRUD ─────────────────────────────────────────────────────
    def add_subject(self, name: Optional[str] = None, tier: int = 2) -> SyllabusSubject:
        subjects = self.subjects()
        subject = SyllabusSubject(
            id=self._unique_id("custom", {s.id for s in subjects}),
            name=name or "New Subject",
            tier=tier,
            is_custom=True,
        )
        subjects.append(subject)
        saved = self._save(subjects)
        logger.info("Added subject %s to %s/%s", subject.id, self.user_id, self.course_id)
        return saved[-1]

    def update_subject(self, subject_id: str, **fields: Any) -> SyllabusSubject:
        unknown = set(fields) - self._SUBJECT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update subject field(s): {', '.join(sorted(unknown))}")
        subjects = self.subjects()
        subject = self._find_subject(subjects, subject_id)
        index = subjects.index(subject)
        subjects[index] = SyllabusSubject.model_validate({**subject.model_dump(), **fields})
        return self._save(subjects)[index]

    def set_tier(self, subject_id: str, tier: int) -> SyllabusSubject:
        return self.update_subject(subject_id, tier=tier)

    def remove_subject(self, subject_id: str) -> None:
        subjects = self.subjects()
        self._find_subject(subjects, subject_id)
        self._save([s for s in subjects if s.id != subject_id])
        logger.info("Removed subject %s from %s/%s", subject_id, self.user_id, self.course_id)

    # ── topic CRUD ───────────────────────────────────────────────────────
    def add_topic(self, subject_id: str, name: str = "New Topic", estimated_hours: float = 5) -> SyllabusTopic:
        subjects = self.subjects()
        subject = self._find_subject(subjects, subject_id)
        topic = SyllabusTopic(
            id=self._unique_id(f"{subject_id}-topic", {t.id for t in subject.topics}),
            name=name,
            estimated_hours=estimated_hours,
            order=len(subject.topics),
        )
        subject.topics.append(topic)
        self._save(subjects)
        return topic

    def update_topic(self, subject_id: str, topic_id: str, **fields: Any) -> SyllabusTopic:
        unknown = set(fields) - self._TOPIC_FIELDS
        if unknown:
            raise ValueError(f"Cannot update topic field(s): {', '.join(sorted(unknown))}")
        subjects = self.subjects()
        subject = self._find_subject(subjects, subject_id)
        topic = self._find_topic(subject, topic_id)
        index = subject.topics.index(topic)
        subject.topics[index] = SyllabusTopic.model_validate({**topic.model_dump(), **fields})
        self._save(subjects)
        return subject.topics[index]

    def remove_topic(self, subject_id: str, topic_id: str) -> None:
        subjects = self.subjects()
        subject = self._find_subject(subjects, subject_id)
        self._find_topic(subject, topic_id)
        subject.topics = [t for t in subject.topics if t.id != topic_id]
        self._save(subjects)

    # ── study tracking ───────────────────────────────────────────────────
    def _revision_intervals(self) -> list[int]:
        user = get_user(self.user_id)
        if user and user.preferences and user.preferences.revision_intervals:
            return user.preferences.revision_intervals
        return list(DEFAULT_REVISION_INTERVALS)

    def record_study(
        self,
        topic_id: str,
        minutes: int,
        mastery_score: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> TopicProgress:
        """Log a study session and schedule the topic's next revision."""
        if minutes < 0:
            raise ValueError("Study minutes cannot be negative")
        subjects = self.subjects()
        subject = next((s for s in subjects if s.topic_by_id(topic_id)), None)
        if subject is None:
            raise NotFoundError(f"Topic {topic_id} not found")

        now = as_utc_datetime(now) if now else utcnow()
        existing = get_topic_progress(self.user_id, topic_id, self.course_id)
        count = (existing.revision_count if existing else 0) + 1
        intervals = self._revision_intervals()
        interval = intervals[min(count - 1, len(intervals) - 1)]

        updates: dict[str, Any] = {
            "subject_id":        subject.id,
            "course_id":         self.course_id,
            "revision_count":    count,
            "total_study_time":  (existing.total_study_time if existing else 0) + minutes,
            "last_revised":      now,
            "next_revision":     now + timedelta(days=interval),
        }
        if mastery_score is not None:
            score = max(0.0, min(100.0, float(mastery_score)))
            previous = existing.mastery_score if existing else 0
            updates["mastery_score"] = score
            updates["last_score_improvement"] = score - previous
        progress = update_topic_progress(self.user_id, topic_id, updates, self.course_id)

        status = subject.topic_status.get(topic_id) or TopicStatusInfo()
        status.time_spent += minutes
        status.attempts += 1
        status.mastery_level = progress.mastery_score
        status.progress = min(100.0, progress.mastery_score)
        status.status = (TopicStatus.MASTERED if progress.mastery_score >= MASTERY_THRESHOLD
                         else TopicStatus.IN_PROGRESS)
        subject.topic_status[topic_id] = status
        self._save(subjects)
        logger.info("Recorded %d min on %s; next revision in %d day(s)", minutes, topic_id, interval)
        return progress
