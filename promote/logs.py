"""
Usage:
from promote.logs import promote_logger

promote_logger.<loglevel>(msg)

promote_logger accepts an "extra" dictionary with the following keys:
- label: the environment the message is about, e.g. "stage2"
- function: overrides the name of the calling function

Examples:
promote_logger.info("mirroring static files")
promote_logger.error("sql-sync failed", extra={"label": "stage2"})

Lines are written to stderr as
"{time} {level} [{file}:{caller}#L{line}]: {function} | {label} | {message}"
so that they never mix with the progress output on stdout.
"""
import logging
import sys

LOG_FORMAT = (
    "%(asctime)s %(levelname)s [%(filename)s:%(funcName)s#L%(lineno)d]: "
    "%(function)s | %(label)s | %(message)s"
)
DATE_FORMAT = "%b %d %H:%M:%S"


class _ExtraFilter(logging.Filter):
    """Fills in the "extra" fields a log call left out: "function" defaults
    to the calling function and "label" to "-"."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "function"):
            record.function = record.funcName
        if not hasattr(record, "label"):
            record.label = "-"
        return True


def _create_promote_logger() -> logging.Logger:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(_ExtraFilter())

    logger = logging.getLogger("promote")
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def set_verbose(verbose: bool) -> None:
    """--verbose logs every query and command, at DEBUG."""
    promote_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


promote_logger = _create_promote_logger()
