import logging
import sys
from typing import Optional

from loguru import logger

SECURITY_CHANNEL = 'security'

security_logger = logger.bind(channel=SECURITY_CHANNEL)


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _is_security_record(record) -> bool:
    return record['extra'].get('channel') == SECURITY_CHANNEL


def configure_logging(level: str, security_log_path: Optional[str] = None) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    if security_log_path:
        logger.add(
            security_log_path,
            level='INFO',
            filter=_is_security_record,
            enqueue=True,
            serialize=True,
        )
    logging.root.handlers = [_InterceptHandler()]
    logging.root.setLevel(level)
    for name in ('uvicorn', 'uvicorn.error', 'uvicorn.access'):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
