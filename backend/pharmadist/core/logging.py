"""
Loguru setup for the API process.

Three sinks: the console, the application log file, and a ledger audit file
that only receives records bound with ``audit=True`` (postings and
reversals). Records from the standard ``logging`` module (uvicorn,
SQLAlchemy, watchdog) are forwarded into loguru so everything shares one
format.
"""
import logging
import sys

from loguru import logger

from pharmadist.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
AUDIT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}"

FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine", "watchdog")


class InterceptHandler(logging.Handler):
    """Hands stdlib log records to loguru, keeping the caller's location."""

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


def _is_audit(record) -> bool:
    return record["extra"].get("audit", False)


def setup_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT, colorize=True)
    if settings.LOG_FILE:
        logger.add(
            settings.LOG_FILE,
            level=settings.LOG_LEVEL,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
        )
    if settings.AUDIT_LOG_FILE:
        # ledger history is kept much longer than the application log
        logger.add(
            settings.AUDIT_LOG_FILE,
            level="INFO",
            format=AUDIT_FORMAT,
            filter=_is_audit,
            rotation="1 month",
            retention="7 years",
            compression="zip",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in FORWARDED_LOGGERS:
        std = logging.getLogger(name)
        std.handlers = [InterceptHandler()]
        std.propagate = False
