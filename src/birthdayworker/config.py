"""Configuration management for the birthday worker."""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DELIVERY_CHANNELS = ("log", "telegram", "webhook")

# Period the local delivery-hour gate is built for
HOURLY_INTERVAL_SECONDS = 3600


@dataclass
class DatabaseConfig:
    """Database configuration settings."""

    path: str = "birthdays.db"
    max_retries: int = 3
    timeout: float = 30.0


@dataclass
class SchedulerConfig:
    """Birthday cycle and retry settings."""

    check_interval_seconds: int = HOURLY_INTERVAL_SECONDS
    max_retries: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: Optional[float] = None
    max_concurrency: Optional[int] = None
    skip_overlapping: bool = False
    delivery_hour: Optional[int] = 9


@dataclass
class DeliveryConfig:
    """Delivery channel settings."""

    channel: str = "log"
    telegram_token: Optional[str] = None
    webhook_url: Optional[str] = None
    webhook_timeout: float = 10.0


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid {name} value: {value}")
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid {name} value: {value}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if not value:
        return default
    return value.lower() in ("true", "1", "yes")


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load configuration from environment variables and an optional .env file.

    Args:
        config_path: Optional path to a .env file. If None, the default
            lookup of python-dotenv is used.

    Returns:
        AppConfig with all settings loaded.
    """
    load_dotenv(config_path)
    config = AppConfig()

    database_path = os.environ.get("BIRTHDAY_DB_PATH")
    if database_path:
        config.database.path = os.path.expanduser(database_path)
    config.database.max_retries = _env_int(
        "BIRTHDAY_DB_MAX_RETRIES", config.database.max_retries
    )

    scheduler = config.scheduler
    scheduler.check_interval_seconds = _env_int(
        "BIRTHDAY_CHECK_INTERVAL", scheduler.check_interval_seconds
    )
    scheduler.max_retries = _env_int(
        "BIRTHDAY_MAX_RETRIES", scheduler.max_retries
    )
    scheduler.base_delay_seconds = _env_float(
        "BIRTHDAY_BASE_DELAY", scheduler.base_delay_seconds
    )
    scheduler.max_delay_seconds = _env_float(
        "BIRTHDAY_MAX_DELAY", scheduler.max_delay_seconds
    )
    scheduler.max_concurrency = _env_int(
        "BIRTHDAY_MAX_CONCURRENCY", scheduler.max_concurrency
    )
    scheduler.skip_overlapping = _env_bool(
        "BIRTHDAY_SKIP_OVERLAPPING", scheduler.skip_overlapping
    )

    delivery_hour = os.environ.get("BIRTHDAY_DELIVERY_HOUR")
    if delivery_hour and delivery_hour.lower() in ("none", "any", "off"):
        scheduler.delivery_hour = None
    else:
        scheduler.delivery_hour = _env_int(
            "BIRTHDAY_DELIVERY_HOUR", scheduler.delivery_hour
        )

    channel = os.environ.get("BIRTHDAY_DELIVERY_CHANNEL")
    if channel:
        config.delivery.channel = channel.lower()
    config.delivery.telegram_token = os.environ.get("TELEGRAM_BOT_TOKEN")
    config.delivery.webhook_url = os.environ.get("BIRTHDAY_WEBHOOK_URL")
    config.delivery.webhook_timeout = _env_float(
        "BIRTHDAY_WEBHOOK_TIMEOUT", config.delivery.webhook_timeout
    )

    log_level = os.environ.get("BIRTHDAY_LOG_LEVEL")
    if log_level:
        config.logging.level = log_level.upper()

    log_file = os.environ.get("BIRTHDAY_LOG_FILE")
    if log_file:
        config.logging.file = log_file

    return config


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging based on the provided configuration.

    Args:
        config: Logging configuration settings.
    """
    log_level = getattr(logging, config.level, logging.INFO)

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(config.format))
    handlers.append(console_handler)

    if config.file:
        try:
            file_handler = logging.FileHandler(config.file)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(config.format))
            handlers.append(file_handler)
        except OSError as e:
            logger.error(f"Failed to create log file {config.file}: {e}")

    logging.basicConfig(
        level=log_level,
        format=config.format,
        handlers=handlers,
    )

    logger.info(f"Logging configured with level: {config.level}")


def validate_config(config: AppConfig) -> bool:
    """Validate that the configuration is complete and valid.

    Args:
        config: Application configuration to validate.

    Returns:
        True if configuration is valid.
    """
    if config.database.max_retries < 1:
        logger.error("Database max_retries must be at least 1")
        return False

    scheduler = config.scheduler
    if scheduler.check_interval_seconds < 1:
        logger.error("Scheduler check interval must be at least 1 second")
        return False

    if scheduler.max_retries < 0:
        logger.error("max_retries must not be negative")
        return False

    if scheduler.base_delay_seconds <= 0:
        logger.error("base_delay_seconds must be positive")
        return False

    if scheduler.max_concurrency is not None and scheduler.max_concurrency < 1:
        logger.error("max_concurrency must be at least 1 when set")
        return False

    if scheduler.delivery_hour is not None and not 0 <= scheduler.delivery_hour <= 23:
        logger.error(f"Invalid delivery hour: {scheduler.delivery_hour}")
        return False

    if (
        scheduler.delivery_hour is not None
        and scheduler.check_interval_seconds != HOURLY_INTERVAL_SECONDS
    ):
        logger.error(
            f"BIRTHDAY_CHECK_INTERVAL must be {HOURLY_INTERVAL_SECONDS} while "
            "BIRTHDAY_DELIVERY_HOUR is set, otherwise members are greeted "
            "more than once or not at all"
        )
        return False

    delivery = config.delivery
    if delivery.channel not in DELIVERY_CHANNELS:
        logger.error(f"Unknown delivery channel: {delivery.channel}")
        return False

    if delivery.channel == "telegram" and not delivery.telegram_token:
        logger.error("TELEGRAM_BOT_TOKEN is required for the telegram channel")
        return False

    if delivery.channel == "webhook" and not delivery.webhook_url:
        logger.error("BIRTHDAY_WEBHOOK_URL is required for the webhook channel")
        return False

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.logging.level not in valid_log_levels:
        logger.error(f"Invalid log level: {config.logging.level}")
        return False

    return True
