"""
Console logging.

Diagnostics go to stderr through the logging module; results and progress
are printed with click.echo.
"""

import logging
from logging.config import dictConfig

VERBOSITY_LEVELS = {0: "WARNING", 1: "INFO", 2: "DEBUG"}


def setup_logging(verbosity: int = 0) -> None:
    """Console logging on stderr; -v for INFO, -vv for DEBUG"""
    level = VERBOSITY_LEVELS.get(verbosity, "DEBUG")
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "stream": "ext://sys.stderr",
                },
            },
            "root": {
                "level": level,
                "handlers": ["console"],
            },
            "loggers": {
                # wire-level logs only at -vvv
                "botocore": {"level": "DEBUG" if verbosity > 2 else "WARNING"},
                "boto3": {"level": "DEBUG" if verbosity > 2 else "WARNING"},
                "s3transfer": {"level": "DEBUG" if verbosity > 2 else "WARNING"},
                "urllib3": {"level": "DEBUG" if verbosity > 2 else "WARNING"},
            },
        }
    )
    logging.getLogger(__name__).debug("logging at %s", level)
