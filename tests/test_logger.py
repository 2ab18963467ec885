"""
Tests for logging setup.
"""

import logging

import pytest

from gazeheat.utils.logger import get_logger, setup_logger


@pytest.fixture
def logger_name(request):
    name = f"gazeheat.test_{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestGetLogger:
    def test_package_default(self):
        assert get_logger().name == "gazeheat"

    def test_module_names_unchanged(self):
        assert get_logger("gazeheat.analytics.heatmap").name == "gazeheat.analytics.heatmap"

    def test_foreign_names_nested(self):
        assert get_logger("scripts.replay").name == "gazeheat.scripts.replay"


class TestSetupLogger:
    def test_level_and_no_propagation(self, logger_name):
        logger = setup_logger(logger_name, level="debug")

        assert logger.level == logging.DEBUG
        assert not logger.propagate
        assert len(logger.handlers) == 1

    def test_repeated_setup_updates_level(self, logger_name):
        setup_logger(logger_name, level="WARNING")
        logger = setup_logger(logger_name, level="INFO")

        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.INFO

    def test_unknown_level_falls_back_to_warning(self, logger_name):
        assert setup_logger(logger_name, level="chatty").level == logging.WARNING

    def test_file_logging(self, logger_name, tmp_path):
        log_file = tmp_path / "logs" / "gazeheat.log"

        logger = setup_logger(logger_name, level="INFO", log_file=log_file, enable_file_logging=True)
        logger.info("session saved")
        for handler in logger.handlers:
            handler.flush()

        assert "session saved" in log_file.read_text(encoding="utf-8")

    def test_file_logging_off_by_default(self, logger_name, tmp_path):
        log_file = tmp_path / "gazeheat.log"

        setup_logger(logger_name, log_file=log_file)

        assert not log_file.exists()
