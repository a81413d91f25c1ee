"""Tests for configuration loading and validation."""

import os

import pytest

from birthdayworker.config import AppConfig, load_config, validate_config


ENV_VARS = [
    "BIRTHDAY_DB_PATH",
    "BIRTHDAY_DB_MAX_RETRIES",
    "BIRTHDAY_CHECK_INTERVAL",
    "BIRTHDAY_MAX_RETRIES",
    "BIRTHDAY_BASE_DELAY",
    "BIRTHDAY_MAX_DELAY",
    "BIRTHDAY_MAX_CONCURRENCY",
    "BIRTHDAY_SKIP_OVERLAPPING",
    "BIRTHDAY_DELIVERY_HOUR",
    "BIRTHDAY_DELIVERY_CHANNEL",
    "TELEGRAM_BOT_TOKEN",
    "BIRTHDAY_WEBHOOK_URL",
    "BIRTHDAY_WEBHOOK_TIMEOUT",
    "BIRTHDAY_LOG_LEVEL",
    "BIRTHDAY_LOG_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = load_config()

    assert config.scheduler.check_interval_seconds == 3600
    assert config.scheduler.max_retries == 5
    assert config.scheduler.base_delay_seconds == 1.0
    assert config.scheduler.max_concurrency is None
    assert config.scheduler.skip_overlapping is False
    assert config.scheduler.delivery_hour == 9
    assert config.delivery.channel == "log"
    assert validate_config(config)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BIRTHDAY_CHECK_INTERVAL", "600")
    monkeypatch.setenv("BIRTHDAY_MAX_RETRIES", "3")
    monkeypatch.setenv("BIRTHDAY_BASE_DELAY", "0.5")
    monkeypatch.setenv("BIRTHDAY_MAX_CONCURRENCY", "20")
    monkeypatch.setenv("BIRTHDAY_SKIP_OVERLAPPING", "yes")
    monkeypatch.setenv("BIRTHDAY_DELIVERY_HOUR", "none")
    monkeypatch.setenv("BIRTHDAY_DELIVERY_CHANNEL", "Webhook")
    monkeypatch.setenv("BIRTHDAY_WEBHOOK_URL", "https://example.com/hook")
    monkeypatch.setenv("BIRTHDAY_LOG_LEVEL", "debug")

    config = load_config()

    assert config.scheduler.check_interval_seconds == 600
    assert config.scheduler.max_retries == 3
    assert config.scheduler.base_delay_seconds == 0.5
    assert config.scheduler.max_concurrency == 20
    assert config.scheduler.skip_overlapping is True
    assert config.scheduler.delivery_hour is None
    assert config.delivery.channel == "webhook"
    assert config.logging.level == "DEBUG"
    assert validate_config(config)


def test_invalid_number_keeps_default(monkeypatch, caplog):
    monkeypatch.setenv("BIRTHDAY_MAX_RETRIES", "many")

    config = load_config()

    assert config.scheduler.max_retries == 5
    assert "BIRTHDAY_MAX_RETRIES" in caplog.text


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / "custom.env"
    env_file.write_text("BIRTHDAY_DELIVERY_HOUR=7\n")

    try:
        config = load_config(str(env_file))
    finally:
        # load_dotenv writes straight into os.environ
        os.environ.pop("BIRTHDAY_DELIVERY_HOUR", None)

    assert config.scheduler.delivery_hour == 7


@pytest.mark.parametrize(
    "mutate",
    [
        lambda c: setattr(c.scheduler, "check_interval_seconds", 0),
        lambda c: setattr(c.scheduler, "max_retries", -1),
        lambda c: setattr(c.scheduler, "base_delay_seconds", 0),
        lambda c: setattr(c.scheduler, "max_concurrency", 0),
        lambda c: setattr(c.scheduler, "delivery_hour", 24),
        lambda c: setattr(c.delivery, "channel", "pigeon"),
        lambda c: setattr(c.delivery, "channel", "telegram"),
        lambda c: setattr(c.delivery, "channel", "webhook"),
        lambda c: setattr(c.logging, "level", "LOUD"),
        lambda c: setattr(c.database, "max_retries", 0),
        lambda c: setattr(c.scheduler, "check_interval_seconds", 1800),
        lambda c: setattr(c.scheduler, "check_interval_seconds", 7200),
    ],
)
def test_validate_config_rejects(mutate):
    config = AppConfig()
    mutate(config)
    assert not validate_config(config)


def test_custom_interval_allowed_without_delivery_hour():
    config = AppConfig()
    config.scheduler.check_interval_seconds = 1800
    config.scheduler.delivery_hour = None
    assert validate_config(config)
