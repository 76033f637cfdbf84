import json
import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError

from coupon_engine.logging_utils import JsonFormatter
from coupon_engine.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LOCK_DURATION", raising=False)

        settings = Settings(_env_file=None)

        assert settings.lock_duration == timedelta(minutes=10)
        assert settings.generation_max_rounds == 5
        assert settings.assign_max_attempts == 3

    def test_values_come_from_environment(self, monkeypatch):
        monkeypatch.setenv("LOCK_DURATION", "PT30S")
        monkeypatch.setenv("ASSIGN_MAX_ATTEMPTS", "7")

        settings = Settings(_env_file=None)

        assert settings.lock_duration == timedelta(seconds=30)
        assert settings.assign_max_attempts == 7

    def test_retry_budgets_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, generation_max_rounds=0)


class TestJsonFormatter:
    def test_extra_fields_become_keys(self):
        record = logging.LogRecord(
            name="coupon_engine.test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="assign rejected: %s",
            args=("quota_exceeded",),
            exc_info=None,
        )
        record.operation = "assign"
        record.books = ("b1", "b2")

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "assign rejected: quota_exceeded"
        assert payload["level"] == "INFO"
        assert payload["operation"] == "assign"
        assert payload["books"] == ["b1", "b2"]
        assert "msg" not in payload
