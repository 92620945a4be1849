import logging

import pytest

from pacedreq.utils import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_writes_to_file(restore_root_logger, tmp_path):
    log_file = tmp_path / "requests.log"

    root = setup_logging(logging.DEBUG, log_file=str(log_file))
    logging.getLogger("pacedreq.core.executors").warning("Retryable error on attempt %d", 1)
    for handler in root.handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "pacedreq.core.executors - WARNING - Retryable error on attempt 1" in text
    assert root.level == logging.DEBUG


def test_setup_logging_replaces_previous_handlers(restore_root_logger):
    setup_logging()
    root = setup_logging(logging.WARNING)

    assert len(root.handlers) == 1
    assert root.handlers[0].level == logging.WARNING
