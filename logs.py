import logging
import sys
from typing import NamedTuple

DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


class Loggers(NamedTuple):
    info: logging.Logger
    error: logging.Logger


def _build(name, stream, fmt, level):
    logger = logging.getLogger(name)
    logger.handlers.clear()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def new_loggers(debug=False):
    """
    Builds the info logger (stdout) and the error logger (stderr).
    Both are handed to components explicitly through the Application.
    """
    info = _build(
        "snippetbox.info",
        sys.stdout,
        "INFO\t%(asctime)s %(message)s",
        logging.DEBUG if debug else logging.INFO,
    )
    error = _build(
        "snippetbox.error",
        sys.stderr,
        "ERROR\t%(asctime)s %(filename)s:%(lineno)d: %(message)s",
        logging.ERROR,
    )
    return Loggers(info=info, error=error)
