"""
config.py — Central settings for the Exam Strategy Engine
==========================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and adjust values as needed.

Settings are re-read from the environment on every ``get_settings()``
call so tests (and the Streamlit sidebar) can re-point the store at
runtime without reloading the module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)

_WORKSPACE_ROOT = Path(__file__).resolve().parent.parent.parent


# ─── Helpers ────────────────────────────────────────────────────────────────

def _is_placeholder(value: str) -> bool:
    """Return True if the value looks like an unfilled template placeholder."""
    return not value or "<" in value or value.startswith("your-") or value == "PLACEHOLDER"


# ─── Storage (SQLite document store + form draft store) ─────────────────────

@dataclass(frozen=True)
class StorageConfig:
    db_path:          str
    form_store_path:  str

    @property
    def is_configured(self) -> bool:
        return not _is_placeholder(self.db_path) and not _is_placeholder(self.form_store_path)


# ─── Read caches ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CacheConfig:
    user_ttl:      int   # seconds
    syllabus_ttl:  int
    progress_ttl:  int

    @property
    def is_configured(self) -> bool:
        return min(self.user_ttl, self.syllabus_ttl, self.progress_ttl) >= 0


# ─── Save retries ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryConfig:
    attempts:         int
    backoff_seconds:  float   # delay before retry n is backoff_seconds * n

    def delay_for(self, attempt: int) -> float:
        return max(0.0, self.backoff_seconds * attempt)


# ─── App-level settings ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    log_level:               str
    demo_user_id:            str
    default_question_count:  int


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    storage:  StorageConfig
    cache:    CacheConfig
    retry:    RetryConfig
    app:      AppConfig

    def status_summary(self) -> dict[str, str]:
        """Return a dict of setting → display value for the UI."""
        def badge(ok: bool) -> str:
            return "🟢 Ready" if ok else "⚪ Not configured"

        return {
            "Document store":  f"{badge(self.storage.is_configured)} · {Path(self.storage.db_path).name}",
            "Form drafts":     Path(self.storage.form_store_path).name,
            "Cache TTLs":      (f"user {self.cache.user_ttl}s · syllabus {self.cache.syllabus_ttl}s"
                                f" · progress {self.cache.progress_ttl}s"),
            "Save retries":    f"{self.retry.attempts} × {self.retry.backoff_seconds:g}s backoff",
            "Log level":       self.app.log_level,
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    _str   = lambda k, d="": os.getenv(k, d).strip()
    _int   = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _float = lambda k, d=0.0: float(os.getenv(k, str(d)) or d)

    return Settings(
        storage=StorageConfig(
            db_path         = _str("EXAM_PREP_DB_PATH", str(_WORKSPACE_ROOT / "exam_prep_data.db")),
            form_store_path = _str("EXAM_PREP_FORM_STORE", str(_WORKSPACE_ROOT / ".exam_prep_forms.json")),
        ),
        cache=CacheConfig(
            user_ttl     = _int("EXAM_PREP_USER_CACHE_TTL", 300),
            syllabus_ttl = _int("EXAM_PREP_SYLLABUS_CACHE_TTL", 600),
            progress_ttl = _int("EXAM_PREP_PROGRESS_CACHE_TTL", 120),
        ),
        retry=RetryConfig(
            attempts        = max(1, _int("EXAM_PREP_SAVE_RETRIES", 3)),
            backoff_seconds = _float("EXAM_PREP_SAVE_BACKOFF", 1.0),
        ),
        app=AppConfig(
            log_level              = _str("LOG_LEVEL", "INFO").upper(),
            demo_user_id           = _str("EXAM_PREP_DEMO_USER", "demo-user"),
            default_question_count = _int("EXAM_PREP_DEFAULT_QUESTIONS", 5),
        ),
    )


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for entry points (CLI, Streamlit). Libraries never call this."""
    lvl = (level or get_settings().app.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, lvl, logging.INFO),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
