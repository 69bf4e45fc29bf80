import logging
from pathlib import Path

from agentic_workflows.foundation.logging_utils import LOG_FORMAT, setup_compiler_logger


def test_file_handler_writes_utf8_debug(tmp_path: Path):
    log_path = tmp_path / "logs" / "compile.log"
    logger = setup_compiler_logger(log_file=str(log_path), logger_name="test_aw_file")

    logger.debug("Compiled triage \u2192 triage.lock.yml")
    for handler in logger.handlers:
        handler.flush()

    content = log_path.read_text(encoding="utf-8")
    assert "| DEBUG | Compiled triage \u2192 triage.lock.yml" in content

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_stream_level_follows_verbose():
    quiet = setup_compiler_logger(logger_name="test_aw_quiet")
    loud = setup_compiler_logger(verbose=True, logger_name="test_aw_loud")

    assert [h.level for h in quiet.handlers] == [logging.INFO]
    assert [h.level for h in loud.handlers] == [logging.DEBUG]
    assert quiet.propagate is False
    assert quiet.handlers[0].formatter._fmt == LOG_FORMAT


def test_setup_is_idempotent():
    first = setup_compiler_logger(logger_name="test_aw_twice")
    second = setup_compiler_logger(logger_name="test_aw_twice")
    assert first is second
    assert len(second.handlers) == 1
