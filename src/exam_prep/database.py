"""
exam_prep/database.py — SQLite document store
=============================================
A small document database that keeps the collection layout of the
hosted store the app was first built on, so every service reads and
writes "documents" addressed by ``(collection, doc_id)``.

Design decisions
----------------
- **Single-table schema** — every document is a JSON blob in the
  ``documents`` table keyed by ``(collection, doc_id)``.  Sub-collections
  are plain collection strings such as ``users/u1/courses/gate_cse/syllabus``.
- **Owner column** — ``user_id`` is denormalised onto each row so
  top-level collections (journeys, adaptive tests, sessions) can be
  filtered per user with an index instead of scanning JSON.
- **WAL journal mode + check_same_thread=False** — the onboarding wizard
  writes the profile and the syllabus from two ThreadPoolExecutor
  workers at once; each call opens its own short-lived connection.
- **Listeners** — ``subscribe()`` gives the snapshot-listener behaviour the
  pages rely on: the callback fires once with the current documents and
  again after every write to the same collection.
- **TTL caches** — user (5 min), syllabus (10 min) and progress (2 min)
  reads are cached in-process; every write path invalidates its cache.

Collection layout
-----------------
  users/{uid}
  users/{uid}/courses/{course}
  users/{uid}/courses/{course}/syllabus/{subject}
  users/{uid}/progress/{topic}                      (no course selected)
  users/{uid}/courses/{course}/progress/{topic}
  users/{uid}/logs_mocks/{log}
  userJourneys/{id}   journeyAnalytics/{id}
  adaptiveTests/{id}  testSessions/{id}  testResponses/{id}  questionBank/{id}

Public API
----------
  init_db()                               create the table if needed
  set_document / get_document / update_document / delete_document
  list_documents(collection, user_id)     → list[dict]
  delete_collection(collection)
  subscribe(collection, cb, user_id)      → unsubscribe callable
  create_user / get_user / update_user
  save_syllabus / save_syllabus_for_course / get_syllabus / get_syllabus_for_course
  save_course_settings / get_course
  update_topic_progress / get_topic_progress / get_all_progress / get_revision_queue
  save_mock_test / get_mock_tests / apply_adaptive_test_results
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel

from exam_prep.config import get_settings
from exam_prep.errors import FormValidationError, NotFoundError, QuotaExceededError, StorageError
from exam_prep.models import (
    MockTestLog,
    RevisionItem,
    RevisionPriority,
    SubjectPerformance,
    SubjectProgress,
    SyllabusSubject,
    TopicProgress,
    TopicStatus,
    TopicStatusInfo,
    User,
    UserCourse,
    as_utc_datetime,
    get_exam_by_id,
    utcnow,
)

logger = logging.getLogger(__name__)

USERS = "users"
USER_JOURNEYS = "userJourneys"
JOURNEY_ANALYTICS = "journeyAnalytics"
ADAPTIVE_TESTS = "adaptiveTests"
TEST_SESSIONS = "testSessions"
TEST_RESPONSES = "testResponses"
QUESTION_BANK = "questionBank"

REVISION_QUEUE_LIMIT = 20
ADAPTIVE_MASTERY_WEIGHT = 0.3

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT NOT NULL,
    doc_id      TEXT NOT NULL,
    user_id     TEXT,
    data_json   TEXT NOT NULL,
    created_at  TEXT DEFAULT (datetime('now')),
    updated_at  TEXT DEFAULT (datetime('now')),
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents (collection, user_id);
"""

_ready_paths: set[str] = set()
_ready_lock = threading.Lock()


# ─── Collection paths ────────────────────────────────────────────────────────

def courses_path(user_id: str) -> str:
    return f"{USERS}/{user_id}/courses"


def syllabus_path(user_id: str, course_id: str) -> str:
    return f"{USERS}/{user_id}/courses/{course_id}/syllabus"


def progress_path(user_id: str, course_id: Optional[str] = None) -> str:
    if course_id:
        return f"{USERS}/{user_id}/courses/{course_id}/progress"
    return f"{USERS}/{user_id}/progress"


def mock_tests_path(user_id: str) -> str:
    return f"{USERS}/{user_id}/logs_mocks"


# ─── Connection handling ─────────────────────────────────────────────────────

def _db_path() -> str:
    return get_settings().storage.db_path


def _get_conn() -> sqlite3.Connection:
    """Return a connection with row_factory set; creates the schema on first use of a path."""
    path = _db_path()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    if path not in _ready_paths:
        with _ready_lock:
            conn.executescript(_SCHEMA)
            _ready_paths.add(path)
    return conn


def init_db() -> None:
    """Create tables if they don't exist."""
    with _session():
        logger.debug("Document store ready at %s", _db_path())


@contextmanager
def _session() -> Iterator[sqlite3.Connection]:
    """Open → yield → commit → close, mapping sqlite errors to store errors."""
    try:
        conn = _get_conn()
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc
    try:
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        if "full" in str(exc):
            raise QuotaExceededError(f"storage quota exceeded: {exc}") from exc
        raise StorageError(str(exc)) from exc
    finally:
        conn.close()


# ─── JSON encoding ───────────────────────────────────────────────────────────

def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_document(data: Any) -> dict:
    """Normalise a model / dict into a plain JSON-compatible dict."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    return json.loads(json.dumps(data, default=_json_default))


def _deep_merge(base: dict, updates: dict) -> dict:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _owner_of(collection: str, data: dict) -> Optional[str]:
    if collection.startswith(f"{USERS}/"):
        return collection.split("/")[1]
    owner = data.get("user_id")
    return str(owner) if owner is not None else None


def _write(conn: sqlite3.Connection, collection: str, doc_id: str, data: dict) -> None:
    conn.execute(
        """
        INSERT INTO documents (collection, doc_id, user_id, data_json)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (collection, doc_id) DO UPDATE SET
            user_id    = excluded.user_id,
            data_json  = excluded.data_json,
            updated_at = datetime('now')
        """,
        (collection, doc_id, _owner_of(collection, data), json.dumps(data, default=_json_default)),
    )


def _read(conn: sqlite3.Connection, collection: str, doc_id: str) -> Optional[dict]:
    row = conn.execute(
        "SELECT data_json FROM documents WHERE collection = ? AND doc_id = ?",
        (collection, doc_id),
    ).fetchone()
    return json.loads(row["data_json"]) if row else None


# ─── Document primitives ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ArrayUnion:
    """Update sentinel: append *values* to a list field, skipping ones already present."""
    values: list


def set_document(collection: str, doc_id: str, data: Any, merge: bool = False) -> dict:
    """Create or replace a document. ``merge=True`` deep-merges into the existing one."""
    doc = to_document(data)
    with _session() as conn:
        if merge:
            doc = _deep_merge(_read(conn, collection, doc_id) or {}, doc)
        _write(conn, collection, doc_id, doc)
    logger.debug("set %s/%s", collection, doc_id)
    _notify(collection)
    return doc


def get_document(collection: str, doc_id: str) -> Optional[dict]:
    with _session() as conn:
        return _read(conn, collection, doc_id)


def _apply_path(doc: dict, dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    node = doc
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if isinstance(value, ArrayUnion):
        current = list(node.get(leaf) or [])
        for item in to_document(value.values):
            if item not in current:
                current.append(item)
        node[leaf] = current
    else:
        node[leaf] = to_document({"v": value})["v"]


def update_document(collection: str, doc_id: str, updates: dict[str, Any]) -> dict:
    """Apply field updates (keys may be dotted paths; values may be ``ArrayUnion``).

    Raises NotFoundError when the document does not exist.
    """
    with _session() as conn:
        doc = _read(conn, collection, doc_id)
        if doc is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        for path, value in updates.items():
            _apply_path(doc, path, value)
        _write(conn, collection, doc_id, doc)
    _notify(collection)
    return doc


def delete_document(collection: str, doc_id: str) -> bool:
    with _session() as conn:
        cur = conn.execute(
            "DELETE FROM documents WHERE collection = ? AND doc_id = ?", (collection, doc_id)
        )
        deleted = cur.rowcount > 0
    if deleted:
        _notify(collection)
    return deleted


def list_documents(collection: str, user_id: Optional[str] = None) -> list[dict]:
    """All documents of *collection* (optionally only those owned by *user_id*), oldest first."""
    sql = "SELECT data_json FROM documents WHERE collection = ?"
    params: list[Any] = [collection]
    if user_id is not None:
        sql += " AND user_id = ?"
        params.append(user_id)
    sql += " ORDER BY created_at, rowid"
    with _session() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [json.loads(r["data_json"]) for r in rows]


def delete_collection(collection: str) -> int:
    with _session() as conn:
        count = conn.execute("DELETE FROM documents WHERE collection = ?", (collection,)).rowcount
    if count:
        _notify(collection)
    return count


# ─── Snapshot listeners ──────────────────────────────────────────────────────

_listeners: dict[str, list[tuple[int, Callable[[list[dict]], None], Optional[str]]]] = {}
_listeners_lock = threading.Lock()
_next_listener_id = 0


def subscribe(
    collection: str,
    callback: Callable[[list[dict]], None],
    user_id: Optional[str] = None,
) -> Callable[[], None]:
    """Register *callback*; it fires now and after every write to *collection*."""
    global _next_listener_id
    with _listeners_lock:
        _next_listener_id += 1
        listener_id = _next_listener_id
        _listeners.setdefault(collection, []).append((listener_id, callback, user_id))

    callback(list_documents(collection, user_id))

    def unsubscribe() -> None:
        with _listeners_lock:
            entries = _listeners.get(collection, [])
            _listeners[collection] = [e for e in entries if e[0] != listener_id]

    return unsubscribe


def _notify(collection: str) -> None:
    with _listeners_lock:
        entries = list(_listeners.get(collection, []))
    for _, callback, user_id in entries:
        try:
            callback(list_documents(collection, user_id))
        except Exception:
            logger.exception("Listener on %s failed", collection)


def clear_listeners() -> None:
    with _listeners_lock:
        _listeners.clear()


# ─── TTL caches ──────────────────────────────────────────────────────────────

class _TTLCache:
    """Tiny monotonic-clock cache; values are deep-copied in and out."""

    def __init__(self, name: str, ttl_attr: str) -> None:
        self.name = name
        self._ttl_attr = ttl_attr
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires, value = entry
            if time.monotonic() >= expires:
                del self._entries[key]
                return None
        logger.debug("%s cache hit: %s", self.name, key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        ttl = getattr(get_settings().cache, self._ttl_attr)
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, copy.deepcopy(value))

    def invalidate(self, prefix: str = "") -> None:
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_user_cache = _TTLCache("user", "user_ttl")
_syllabus_cache = _TTLCache("syllabus", "syllabus_ttl")
_progress_cache = _TTLCache("progress", "progress_ttl")


def clear_caches() -> None:
    for cache in (_user_cache, _syllabus_cache, _progress_cache):
        cache.clear()


# ─── Users ───────────────────────────────────────────────────────────────────

def create_user(user_id: str, data: Any) -> User:
    """Create (or overwrite) the user profile document."""
    now = utcnow()
    doc = {**to_document(data), "user_id": user_id, "created_at": now, "updated_at": now}
    user = User.model_validate(doc)
    set_document(USERS, user_id, user)
    _user_cache.invalidate(user_id)
    logger.info("Created user %s", user_id)
    return user


def get_user(user_id: str) -> Optional[User]:
    cached = _user_cache.get(user_id)
    if cached is not None:
        return cached
    doc = get_document(USERS, user_id)
    if doc is None:
        return None
    user = User.model_validate(doc)
    _user_cache.set(user_id, user)
    return user


def update_user(user_id: str, updates: dict[str, Any]) -> User:
    try:
        doc = update_document(USERS, user_id, {**updates, "updated_at": utcnow()})
    except NotFoundError:
        raise NotFoundError(f"User {user_id} not found") from None
    finally:
        _user_cache.invalidate(user_id)
    logger.info("Updated user %s (%s)", user_id, ", ".join(updates))
    return User.model_validate(doc)


# ─── Syllabus ────────────────────────────────────────────────────────────────

def _resolve_course(user_id: str, course_id: Optional[str]) -> Optional[str]:
    if course_id:
        return course_id
    user = get_user(user_id)
    if user and user.current_exam:
        return user.current_exam.id
    return None


def save_syllabus(user_id: str, syllabus: list[Any], course_id: Optional[str] = None) -> str:
    """Save the syllabus for *course_id* or, if omitted, the user's current exam."""
    resolved = _resolve_course(user_id, course_id)
    if not resolved:
        raise FormValidationError("No course selected. Please select an exam first.")
    save_syllabus_for_course(user_id, resolved, syllabus)
    return resolved


def _prepare_subject(subject: SyllabusSubject, index: int, user_id: str, course_id: str) -> SyllabusSubject:
    subject = subject.model_copy(deep=True)
    subject.order = index
    subject.user_id = user_id
    subject.course_id = course_id
    for t_index, topic in enumerate(subject.topics):
        topic.order = t_index
        if topic.id not in subject.topic_status:
            subject.topic_status[topic.id] = TopicStatusInfo(estimated_hours=topic.estimated_hours or 0)
    # drop tracking for topics that were removed
    live = {t.id for t in subject.topics}
    subject.topic_status = {k: v for k, v in subject.topic_status.items() if k in live}

    statuses = list(subject.topic_status.values())
    completed = sum(1 for s in statuses if s.status in (TopicStatus.COMPLETED, TopicStatus.MASTERED))
    mastered = sum(1 for s in statuses if s.status == TopicStatus.MASTERED)
    subject.subject_progress = SubjectProgress(
        total_topics=len(subject.topics),
        completed_topics=completed,
        mastered_topics=mastered,
        total_time_spent=sum(s.time_spent for s in statuses),
        average_mastery=round(sum(s.mastery_level for s in statuses) / len(statuses), 2) if statuses else 0,
        status=(subject.subject_progress.status if subject.subject_progress else TopicStatus.NOT_STARTED),
    )
    return subject


def save_syllabus_for_course(user_id: str, course_id: str, syllabus: list[Any]) -> list[SyllabusSubject]:
    """Replace every subject of the course syllabus in one transaction."""
    collection = syllabus_path(user_id, course_id)
    subjects = [
        _prepare_subject(
            s if isinstance(s, SyllabusSubject) else SyllabusSubject.model_validate(s),
            i, user_id, course_id,
        )
        for i, s in enumerate(syllabus)
    ]
    with _session() as conn:
        conn.execute("DELETE FROM documents WHERE collection = ?", (collection,))
        for subject in subjects:
            _write(conn, collection, subject.id, subject.model_dump(mode="json"))
    _syllabus_cache.invalidate(f"{user_id}:{course_id}")
    logger.info("Saved %d subjects for %s/%s", len(subjects), user_id, course_id)
    _notify(collection)
    return subjects


def get_syllabus(user_id: str, course_id: Optional[str] = None) -> list[SyllabusSubject]:
    resolved = _resolve_course(user_id, course_id)
    if not resolved:
        return []
    return get_syllabus_for_course(user_id, resolved)


def get_syllabus_for_course(user_id: str, course_id: str) -> list[SyllabusSubject]:
    """Saved subjects sorted by order; the exam's default syllabus when nothing is saved."""
    key = f"{user_id}:{course_id}"
    cached = _syllabus_cache.get(key)
    if cached is not None:
        return cached

    docs = list_documents(syllabus_path(user_id, course_id))
    if docs:
        subjects = sorted((SyllabusSubject.model_validate(d) for d in docs), key=lambda s: s.order)
        for subject in subjects:
            subject.topics.sort(key=lambda t: t.order)
    else:
        exam = get_exam_by_id(course_id)
        subjects = [s.model_copy(deep=True) for s in exam.default_syllabus] if exam else []
    _syllabus_cache.set(key, subjects)
    return subjects


# ─── Course settings ─────────────────────────────────────────────────────────

def save_course_settings(
    user_id: str,
    course_id: str,
    settings: dict[str, Any],
    additional: Optional[dict[str, Any]] = None,
) -> UserCourse:
    doc = {"course_id": course_id, "settings": settings, **(additional or {}), "updated_at": utcnow()}
    merged = set_document(courses_path(user_id), course_id, doc, merge=True)
    return UserCourse.model_validate(merged)


def get_course(user_id: str, course_id: str) -> Optional[UserCourse]:
    doc = get_document(courses_path(user_id), course_id)
    return UserCourse.model_validate(doc) if doc else None


# ─── Topic progress ──────────────────────────────────────────────────────────

def update_topic_progress(
    user_id: str,
    topic_id: str,
    updates: dict[str, Any],
    course_id: Optional[str] = None,
) -> TopicProgress:
    """Merge *updates* into the topic's progress record, creating it with defaults if needed."""
    collection = progress_path(user_id, course_id)
    changes = to_document(updates)
    with _session() as conn:
        existing = _read(conn, collection, topic_id)
        if existing is None:
            existing = TopicProgress(id=topic_id, topic_id=topic_id, course_id=course_id).model_dump(mode="json")
        progress = TopicProgress.model_validate({**existing, **changes})
        _write(conn, collection, topic_id, progress.model_dump(mode="json"))
    _progress_cache.invalidate(f"{user_id}:")
    _notify(collection)
    logger.info("Progress for %s/%s: mastery %.0f", user_id, topic_id, progress.mastery_score)
    return progress


def get_topic_progress(user_id: str, topic_id: str, course_id: Optional[str] = None) -> Optional[TopicProgress]:
    doc = get_document(progress_path(user_id, course_id), topic_id)
    return TopicProgress.model_validate(doc) if doc else None


def get_all_progress(user_id: str, course_id: Optional[str] = None) -> list[TopicProgress]:
    key = f"{user_id}:{course_id or ''}"
    cached = _progress_cache.get(key)
    if cached is not None:
        return cached
    progress = [TopicProgress.model_validate(d) for d in list_documents(progress_path(user_id, course_id))]
    _progress_cache.set(key, progress)
    return progress


def get_revision_queue(
    user_id: str,
    course_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[RevisionItem]:
    """Topics whose next revision is due, earliest first (at most 20)."""
    now = as_utc_datetime(now) if now else utcnow()
    due = sorted(
        (p for p in get_all_progress(user_id, course_id) if as_utc_datetime(p.next_revision) <= now),
        key=lambda p: as_utc_datetime(p.next_revision),
    )[:REVISION_QUEUE_LIMIT]

    lookup: dict[str, tuple[SyllabusSubject, Any]] = {}
    for subject in get_syllabus(user_id, course_id):
        for topic in subject.topics:
            lookup[topic.id] = (subject, topic)

    queue: list[RevisionItem] = []
    for p in due:
        subject, topic = lookup.get(p.topic_id, (None, None))
        days = (now - as_utc_datetime(p.last_revised)).days
        if days > 1:
            priority = RevisionPriority.OVERDUE
        elif days == 1:
            priority = RevisionPriority.DUE_TODAY
        else:
            priority = RevisionPriority.DUE_SOON
        queue.append(RevisionItem(
            topic_id=p.topic_id,
            topic_name=topic.name if topic else "Unknown Topic",
            subject_name=subject.name if subject else "Unknown Subject",
            tier=subject.tier if subject else 3,
            mastery_score=p.mastery_score,
            days_since_last_revision=days,
            priority=priority,
            estimated_time=(topic.estimated_hours * 60) if topic and topic.estimated_hours else 30,
            last_revised=p.last_revised,
            next_revision=p.next_revision,
        ))
    return queue


# ─── Mock tests ──────────────────────────────────────────────────────────────

def _mastery_factor(accuracy: float) -> int:
    if accuracy > 0.8:
        return 10
    if accuracy > 0.6:
        return 5
    return -5


def save_mock_test(user_id: str, log: MockTestLog, course_id: Optional[str] = None) -> MockTestLog:
    """Store *log* and nudge mastery for every topic that already has progress."""
    if course_id:
        log = log.model_copy(update={"course_id": course_id})
    set_document(mock_tests_path(user_id), log.id, log)
    logger.info("Saved mock test %s (%s) for %s", log.id, log.test_name, user_id)

    for perf in log.topic_wise_performance:
        progress = get_topic_progress(user_id, perf.topic_id, log.course_id)
        if progress is None:
            continue
        factor = _mastery_factor(perf.accuracy)
        new_score = max(0.0, min(100.0, progress.mastery_score + factor))
        update_topic_progress(
            user_id, perf.topic_id,
            {"mastery_score": new_score, "last_score_improvement": factor},
            log.course_id,
        )
    return log


def get_mock_tests(user_id: str, limit: int = 10, course_id: Optional[str] = None) -> list[MockTestLog]:
    logs = [MockTestLog.model_validate(d) for d in list_documents(mock_tests_path(user_id))]
    if course_id:
        logs = [log for log in logs if log.course_id == course_id]
    logs.sort(key=lambda log: as_utc_datetime(log.date), reverse=True)
    return logs[:limit]


# ─── Adaptive tests ──────────────────────────────────────────────────────────

def apply_adaptive_test_results(
    user_id: str,
    subject_performance: dict[str, SubjectPerformance],
    course_id: Optional[str] = None,
) -> list[TopicProgress]:
    """Blend each subject's test accuracy into the mastery of its tracked topics.

    Only topics that already have progress are touched; the new mastery is
    ``70 % old + 30 % accuracy``.
    """
    subject_of = {t.id: s.id for s in get_syllabus(user_id, course_id) for t in s.topics}
    updated = []
    for progress in get_all_progress(user_id, course_id):
        perf = subject_performance.get(progress.subject_id or subject_of.get(progress.topic_id, ""))
        if perf is None or not perf.questions_answered:
            continue
        new_score = round(progress.mastery_score * (1 - ADAPTIVE_MASTERY_WEIGHT)
                          + perf.accuracy * ADAPTIVE_MASTERY_WEIGHT, 2)
        updated.append(update_topic_progress(
            user_id, progress.topic_id,
            {"mastery_score": new_score,
             "last_score_improvement": round(new_score - progress.mastery_score, 2)},
            course_id,
        ))
    logger.info("Adaptive results for %s updated %d topic(s)", user_id, len(updated))
    return updated
