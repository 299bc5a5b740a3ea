"""
Tests for xau_backtester/utils/logging.py
"""

from loguru import logger

from xau_backtester.config.settings import LoggingSettings
from xau_backtester.utils import logging as logging_utils
from xau_backtester.utils.logging import ProgressReporter, configure_logging


def capture():
    messages = []
    logger.add(lambda message: messages.append(message.record["message"]), level="INFO")
    return messages


def test_progress_reporter_throttles_and_always_logs_completion():
    messages = capture()
    reporter = ProgressReporter("Grid search", total=100, every=0.25)
    callback = reporter.as_callback()
    for i in range(1, 101):
        callback(i / 100, {"fast_period": i}, None)
    reporter.finish()

    progress = [m for m in messages if m.startswith("[Progress]")]
    assert messages[0] == "[Grid search] START total=100 runs"
    assert 1 < len(progress) <= 5
    assert "100/100" in progress[-1]
    assert messages[-1].startswith("[Grid search] DONE")


def test_configure_logging_once_unless_forced(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_utils, "_LOGGER_CONFIGURED", False)
    settings = LoggingSettings(level="DEBUG", log_dir=str(tmp_path / "logs"), to_file=True)

    configure_logging(settings)
    assert (tmp_path / "logs").is_dir()
    assert logging_utils._LOGGER_CONFIGURED

    other_dir = tmp_path / "other"
    configure_logging(LoggingSettings(log_dir=str(other_dir), to_file=True))
    assert not other_dir.exists()

    configure_logging(LoggingSettings(log_dir=str(other_dir), to_file=True), force=True)
    assert other_dir.is_dir()
    logger.remove()
