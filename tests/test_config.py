"""
Smoke tests for config / settings loading.
Run: python -m pytest tests/ -v
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from exam_prep.config import RetryConfig, _is_placeholder, get_settings


class TestIsPlaceholder:
    def test_empty_string_is_placeholder(self):
        assert _is_placeholder("")

    def test_angle_bracket_is_placeholder(self):
        assert _is_placeholder("<path-to-db>")

    def test_your_prefix_is_placeholder(self):
        assert _is_placeholder("your-database.db")

    def test_real_path_not_placeholder(self):
        assert not _is_placeholder("/var/lib/exam_prep/data.db")


class TestSettingsLoading:
    def test_store_paths_follow_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EXAM_PREP_DB_PATH", str(tmp_path / "x.db"))
        s = get_settings()
        assert s.storage.db_path == str(tmp_path / "x.db")
        assert s.storage.is_configured

    def test_cache_defaults(self, monkeypatch):
        for key in ("EXAM_PREP_USER_CACHE_TTL", "EXAM_PREP_SYLLABUS_CACHE_TTL", "EXAM_PREP_PROGRESS_CACHE_TTL"):
            monkeypatch.delenv(key, raising=False)
        cache = get_settings().cache
        assert (cache.user_ttl, cache.syllabus_ttl, cache.progress_ttl) == (300, 600, 120)

    def test_retries_never_below_one(self, monkeypatch):
        monkeypatch.setenv("EXAM_PREP_SAVE_RETRIES", "0")
        assert get_settings().retry.attempts == 1

    def test_log_level_upper_cased(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert get_settings().app.log_level == "DEBUG"

    def test_status_summary_keys(self):
        summary = get_settings().status_summary()
        assert "Document store" in summary
        assert "Save retries" in summary
        assert "🟢" in summary["Document store"]


class TestRetryConfig:
    def test_backoff_grows_linearly(self):
        retry = RetryConfig(attempts=3, backoff_seconds=1.5)
        assert retry.delay_for(1) == 1.5
        assert retry.delay_for(2) == 3.0

    def test_zero_backoff(self):
        assert RetryConfig(attempts=3, backoff_seconds=0).delay_for(5) == 0
