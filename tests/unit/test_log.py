"""Unit tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from enginepack.log import setup_logging


@pytest.fixture
def root_logger():
    """Restore the root logger after each test."""
    logger = logging.getLogger()
    handlers = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_console_only(self, root_logger):
        setup_logging()

        ours = [h for h in root_logger.handlers if getattr(h, "_enginepack", False)]
        assert len(ours) == 1
        assert ours[0].level == logging.INFO

    def test_verbose_console(self, root_logger):
        setup_logging(verbose=True)

        ours = [h for h in root_logger.handlers if getattr(h, "_enginepack", False)]
        assert ours[0].level == logging.DEBUG

    def test_file_handler(self, root_logger, tmp_path):
        """Test that run messages reach the rotating log file."""
        log_file = tmp_path / "logs" / "enginepack.log"
        setup_logging(log_file)

        logging.getLogger("enginepack.test").debug("staging removed")
        for handler in root_logger.handlers:
            handler.flush()

        file_handlers = [h for h in root_logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10 * 1024 * 1024
        assert "enginepack.test - DEBUG - staging removed" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_replaces_handlers(self, root_logger, tmp_path):
        setup_logging(tmp_path / "a.log")
        setup_logging(tmp_path / "b.log")

        ours = [h for h in root_logger.handlers if getattr(h, "_enginepack", False)]
        assert len(ours) == 2
        assert [h.baseFilename for h in ours if isinstance(h, RotatingFileHandler)] == [
            str(tmp_path / "b.log")
        ]
