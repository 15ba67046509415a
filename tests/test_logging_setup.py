"""Unit tests for loguru sink configuration."""

from loguru import logger
from playlist_curator.logging_setup import LOG_FILENAME, configure_logging


def test_log_file_created(tmp_path):
    log_path = configure_logging(log_dir=tmp_path / "logs")
    try:
        assert log_path == tmp_path / "logs" / LOG_FILENAME
        logger.info("hello from the curator")
        logger.debug("not at info level")
        content = log_path.read_text()
        assert "hello from the curator" in content
        assert "not at info level" not in content
    finally:
        logger.remove()


def test_verbose_logs_debug(tmp_path):
    log_path = configure_logging(verbose=True, log_dir=tmp_path)
    try:
        logger.debug("debug detail")
        assert "debug detail" in log_path.read_text()
    finally:
        logger.remove()


def test_unwritable_dir(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    try:
        assert configure_logging(log_dir=blocker / "logs") is None
    finally:
        logger.remove()
