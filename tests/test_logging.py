import json
import logging

from loguru import logger

from app.core.logging import configure_logging, security_logger


def test_configure_logging_sets_intercept_handler():
    configure_logging("INFO")
    assert logging.root.handlers, "expected root handlers to be configured"
    handler = logging.root.handlers[0]
    assert handler.__class__.__name__ == "_InterceptHandler"
    assert logging.root.level == logging.INFO


def test_security_sink_only_receives_security_events(tmp_path):
    path = tmp_path / "security.log"
    configure_logging("INFO", security_log_path=str(path))
    try:
        logger.info("ordinary event")
        security_logger.warning("reuse detected for user-1")
        logger.complete()
    finally:
        configure_logging("INFO")

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]
    assert [line["record"]["message"] for line in lines] == ["reuse detected for user-1"]
    assert lines[0]["record"]["extra"]["channel"] == "security"
