"""Console logging for the processor.

Info and debug records go to stdout, warnings and errors to stderr, so the
JSON error document on stderr is never interleaved with progress output.
"""
import logging
import sys

LOGGER_NAME = "gp_config_mcp"
LOG_FMT = "[%(levelname)s] %(message)s"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
}


class _BelowWarning(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def configure_logging(level: str = "info") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(LEVELS.get(level, logging.INFO))
    # Reset handlers to avoid duplication across repeated runs in one process
    logger.handlers = []
    logger.propagate = False

    out = logging.StreamHandler(sys.stdout)
    out.addFilter(_BelowWarning())
    out.setFormatter(logging.Formatter(LOG_FMT))
    logger.addHandler(out)

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(logging.Formatter(LOG_FMT))
    logger.addHandler(err)
    return logger
