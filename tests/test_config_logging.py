"""Tests for settings validation and log configuration."""

import logging
import os
import time

import pytest
from pydantic import ValidationError

from catalog_bot.core.config import Settings, split_order
from catalog_bot.core.logging_config import SuppressPollingNoiseFilter, build_logging_config, cleanup_logs


def make_settings(**overrides):
    return Settings(_env_file=None, BOT_TOKEN="123:abc", **overrides)


def test_log_level_is_normalized():
    assert make_settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize("overrides", [{"LOG_LEVEL": "verbose"}, {"TEXT_RETRIES": 0}, {"RETRY_BACKOFF": -1}])
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        make_settings(**overrides)


def test_derived_settings():
    current = make_settings(
        ADMIN_IDS="1001, x, -5, 1002",
        GEMINI_API_KEYS="",
        GEMINI_API_KEY="single",
        READABILITY_PROXY="https://reader.example",
    )
    assert current.admin_ids == [1001, 1002]
    assert current.gemini_keys == ["single"]
    assert current.READABILITY_PROXY == "https://reader.example/"
    assert split_order(" Groq, ,GEMINI ") == ["groq", "gemini"]


def test_polling_noise_filter():
    noise = SuppressPollingNoiseFilter()

    def record(message):
        return logging.LogRecord("aiogram.event", logging.INFO, __file__, 1, message, None, None)

    assert noise.filter(record("Update id=42 is handled. Duration 12 ms by bot id=1")) is False
    assert noise.filter(record("[img] trying Brandfetch for netflix.com")) is True


def test_logging_config_routes_pipeline_to_its_own_file(tmp_path):
    config = build_logging_config("WARNING", tmp_path, debug=True)

    assert config["handlers"]["console"]["level"] == "DEBUG"
    assert config["handlers"]["app_file"]["filename"] == str(tmp_path / "app.log")
    assert config["handlers"]["pipeline_file"]["filename"] == str(tmp_path / "pipeline.log")
    assert config["loggers"]["catalog_bot.services"]["handlers"] == ["pipeline_file"]
    assert config["loggers"]["httpx"] == {"handlers": ["app_file"], "level": "WARNING", "propagate": False}
    assert config["root"]["level"] == "WARNING"


def test_cleanup_removes_expired_then_oldest_over_limit(tmp_path):
    now = time.time()
    ages = {"app.log": 0, "pipeline.log": 60, "app.log.1": 120, "pipeline.log.1": 40 * 86400}
    for name, age in ages.items():
        path = tmp_path / name
        path.write_bytes(b"x" * 10)
        os.utime(path, (now - age, now - age))
    (tmp_path / "notes.txt").write_text("keep")

    removed = cleanup_logs(tmp_path, retention_days=30, max_total_bytes=25)

    assert sorted(path.name for path in removed) == ["app.log.1", "pipeline.log.1"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["app.log", "notes.txt", "pipeline.log"]
