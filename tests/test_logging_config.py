"""Tests for log record redaction."""
import logging

from app.logging_config import SecretRedactingFilter


def _record(msg, *args):
    return logging.LogRecord("app.test", logging.INFO, __file__, 1, msg, args, None)


def test_masks_tokens_passwords_and_keys():
    record = _record("GET %s with Bearer %s", "/hrv-service/hrv/2026-02-02", "abc.def-123")
    SecretRedactingFilter().filter(record)
    assert record.getMessage() == "GET /hrv-service/hrv/2026-02-02 with Bearer ***"

    record = _record('payload {"email": "a@b.c", "password": "hunter2"}')
    SecretRedactingFilter().filter(record)
    assert "hunter2" not in record.getMessage()

    record = _record("key sk-or-v1abcdefghijkl rejected")
    SecretRedactingFilter().filter(record)
    assert record.getMessage() == "key sk-or-*** rejected"


def test_plain_messages_keep_their_args():
    record = _record("Synced %d activities for user %s", 3, 7)

    assert SecretRedactingFilter().filter(record) is True
    assert record.args == (3, 7)
    assert record.getMessage() == "Synced 3 activities for user 7"
