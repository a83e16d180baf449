import logging

import pytest

from glmrouter.logconfig import LOG_FORMAT, configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("glmrouter")
    saved = (logger.level, list(logger.handlers))
    yield logger
    logger.setLevel(saved[0])
    for handler in logger.handlers[:]:
        if handler not in saved[1]:
            logger.removeHandler(handler)
            handler.close()


def test_installs_stream_handler(package_logger):
    configure_logging(logging.DEBUG)
    assert package_logger.level == logging.DEBUG
    handler = package_logger.handlers[-1]
    assert isinstance(handler, logging.StreamHandler)
    assert handler.formatter._fmt == LOG_FORMAT


def test_optional_log_file(package_logger, tmp_path):
    log_file = tmp_path / "glmrouter.log"
    configure_logging(log_file=str(log_file))
    logging.getLogger("glmrouter.decoder").info("hello")
    for handler in package_logger.handlers:
        handler.flush()
    assert ":glmrouter.decoder:INFO:hello" in log_file.read_text()


def test_repeated_calls_replace_handlers(package_logger, tmp_path):
    before = len(package_logger.handlers)
    configure_logging(log_file=str(tmp_path / "first.log"))
    configure_logging(logging.WARNING)
    assert len(package_logger.handlers) == before + 1
    assert not any(
        isinstance(h, logging.FileHandler) for h in package_logger.handlers
    )
    assert package_logger.level == logging.WARNING
