"""
Tests for logging setup.
"""

import logging
from logging.handlers import RotatingFileHandler

import pytest
from rich.logging import RichHandler

from schemamend.config import LoggingConfig
from schemamend.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("schemamend")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class TestConfigureLogging:

    def test_console_only(self):
        configure_logging(LoggingConfig(level="WARNING"))
        logger = logging.getLogger("schemamend")

        assert logger.level == logging.WARNING
        assert [type(h) for h in logger.handlers] == [RichHandler]

    def test_debug_overrides_level(self):
        configure_logging(LoggingConfig(level="ERROR"), debug=True)
        assert logging.getLogger("schemamend").level == logging.DEBUG

    def test_rotating_file(self, tmp_path):
        log_file = tmp_path / "logs" / "schemamend.log"
        configure_logging(LoggingConfig(file=str(log_file), max_size=1024, backup_count=2))

        logger = logging.getLogger("schemamend")
        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 1024
        assert file_handlers[0].backupCount == 2

        logging.getLogger("schemamend.schema.reconciler").info("probe finished")
        file_handlers[0].flush()
        assert "probe finished" in log_file.read_text()

    def test_reconfigure_replaces_handlers(self):
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())

        assert len(logging.getLogger("schemamend").handlers) == 1
