"""Tests for settings and logging setup."""

import logging
import logging.handlers

import pytest

from inventory.core.config import Settings
from inventory.core.logger import configure_from_settings, setup_logger


class TestSettings:

    def test_cors_origins_list(self):
        settings = Settings(cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_celery_falls_back_to_redis(self):
        settings = Settings(redis_url="redis://cache:6379/2")
        assert settings.celery_broker == "redis://cache:6379/2"
        assert settings.celery_backend == "redis://cache:6379/2"

    def test_celery_override(self):
        settings = Settings(celery_broker_url="amqp://rabbit//")
        assert settings.celery_broker == "amqp://rabbit//"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CONSUMER_MAX_RETRIES", "5")
        monkeypatch.setenv("EXECUTOR_TIMEOUT", "2.5")
        settings = Settings()
        assert settings.consumer_max_retries == 5
        assert settings.executor_timeout == 2.5

    def test_defaults(self):
        settings = Settings()
        assert settings.events_exchange == "inventory-events"
        assert settings.dead_letter_exchange == "inventory-events.dlx"
        assert settings.admin_role_name == "Admin"


class TestLogger:

    def test_console_only(self):
        logger = setup_logger("inventory-test-console", level="debug")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_file_handler(self, tmp_path):
        logger = setup_logger("inventory-test-file", log_dir=str(tmp_path / "logs"))
        logger.info("written")
        assert (tmp_path / "logs" / "inventory-test-file.log").exists()
        assert len(logger.handlers) == 2

    def test_invalid_level(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger("inventory-test-invalid", level="LOUD")

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logger("inventory-test-repeat")
        logger = setup_logger("inventory-test-repeat")
        assert len(logger.handlers) == 1

    def test_configure_from_settings(self, tmp_path):
        settings = Settings(log_to_file=True, log_dir=str(tmp_path), log_level="WARNING")
        logger = configure_from_settings(settings, name="inventory-test-settings")
        assert logger.level == logging.WARNING
        assert any(isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers)
