"""
Tests for extman logging setup.
"""

import logging

import pytest

from extman.core.config import LoggingConfig
from extman.core.logging import get_logger, log_structured, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    root_handlers, root_level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in root_handlers:
            handler.close()
            root.removeHandler(handler)
    for handler in root_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(root_level)
    extman_logger = logging.getLogger("extman")
    for handler in list(extman_logger.handlers):
        handler.close()
        extman_logger.removeHandler(handler)
    extman_logger.propagate = True
    extman_logger.setLevel(logging.NOTSET)


class TestSetupLogging:
    """Tests for console and file logging."""

    def test_file_handler_from_config(self, temp_dir):
        log_file = temp_dir / "logs" / "extman.log"
        setup_logging(LoggingConfig(level="INFO", file_path=str(log_file)))

        get_logger("extman.test").info("installed owner/demo@v1.0")

        assert "installed owner/demo@v1.0" in log_file.read_text()

    def test_log_level_override(self, temp_dir):
        log_file = temp_dir / "extman.log"
        setup_logging(LoggingConfig(level="DEBUG", file_path=str(log_file)), log_level="error")

        logger = get_logger("extman.test")
        logger.info("hidden")
        logger.error("shown")

        text = log_file.read_text()
        assert "shown" in text
        assert "hidden" not in text

    def test_structured_data_is_appended_once(self, temp_dir):
        log_file = temp_dir / "extman.log"
        setup_logging(LoggingConfig(level="INFO", file_path=str(log_file)))

        log_structured(
            get_logger("extman.test"), logging.INFO, "install finished", target="owner/demo"
        )

        lines = [line for line in log_file.read_text().splitlines() if "install finished" in line]
        assert len(lines) == 1
        assert lines[0].count("| Data:") == 1
        assert "'target': 'owner/demo'" in lines[0]
