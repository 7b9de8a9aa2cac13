"""
Tests for the exception hierarchy and the UI error mapping.
"""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from exam_prep.errors import (
    CONNECTION_MESSAGE,
    GENERIC_MESSAGE,
    PERMISSION_MESSAGE,
    QUOTA_MESSAGE,
    ExamPrepError,
    FormValidationError,
    NotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    StorageError,
    user_facing_message,
)


class TestHierarchy:
    def test_all_errors_share_base(self):
        for cls in (StorageError, PermissionDeniedError, QuotaExceededError, NotFoundError, FormValidationError):
            assert issubclass(cls, ExamPrepError)

    def test_builtin_compatibility(self):
        assert issubclass(NotFoundError, LookupError)
        assert issubclass(FormValidationError, ValueError)
        assert issubclass(PermissionDeniedError, PermissionError)

    def test_form_validation_error_keeps_violations(self):
        err = FormValidationError("bad", ["v1", "v2"])
        assert err.violations == ["v1", "v2"]
        assert FormValidationError("bad").violations == []


class TestUserFacingMessage:
    def test_storage_error_is_connection(self):
        assert user_facing_message(StorageError("disk I/O error")) == CONNECTION_MESSAGE

    def test_firebase_text_is_connection(self):
        assert user_facing_message(RuntimeError("Firebase unavailable")) == CONNECTION_MESSAGE

    def test_permission_text(self):
        assert user_facing_message(PermissionDeniedError()) == PERMISSION_MESSAGE

    def test_permission_error_with_custom_message(self):
        assert user_facing_message(PermissionDeniedError("Invalid session")) == PERMISSION_MESSAGE
        assert user_facing_message(PermissionDeniedError("Unauthorized access to test")) == PERMISSION_MESSAGE

    def test_permission_text_on_other_errors(self):
        assert user_facing_message(RuntimeError("missing permission for doc")) == PERMISSION_MESSAGE

    def test_quota(self):
        assert user_facing_message(QuotaExceededError()) == QUOTA_MESSAGE

    def test_other_messages_pass_through(self):
        assert user_facing_message(NotFoundError("Exam not found")) == "Exam not found"

    def test_empty_message_falls_back(self):
        assert user_facing_message(RuntimeError()) == GENERIC_MESSAGE
