"""Tests for angkor_offline.utils.logging module."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from angkor_offline.config import OfflineConfig
from angkor_offline.utils.logging import get_logger, setup_logging, setup_logging_from_dict


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_with_defaults(self):
        """Should setup logging with sensible defaults."""
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_setup_with_config(self):
        setup_logging(OfflineConfig(log_level="DEBUG"))
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        setup_logging(OfflineConfig(log_level="CHATTY"))
        assert logging.getLogger().level == logging.INFO

    def test_setup_with_file(self, tmp_path):
        """Should add a rotating file handler when log_file is set."""
        log_file = tmp_path / "offline.log"
        setup_logging(OfflineConfig(log_file=str(log_file), log_max_bytes=1000, log_backup_count=2))

        logging.getLogger("angkor_offline.test").info("queued 3 items")
        for handler in logging.getLogger().handlers:
            handler.flush()

        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1000
        assert file_handlers[0].backupCount == 2
        assert "queued 3 items" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1


class TestSetupLoggingFromDict:
    """Tests for setup_logging_from_dict function."""

    def test_level_from_dict(self):
        setup_logging_from_dict({"level": "warning"})
        assert logging.getLogger().level == logging.WARNING

    def test_file_from_dict(self, tmp_path):
        setup_logging_from_dict({"file": str(tmp_path / "x.log")})
        assert any(isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers)


def test_get_logger():
    assert get_logger("angkor_offline.cache").name == "angkor_offline.cache"
