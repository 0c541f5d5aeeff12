"""
Logging helpers shared by every module of the facilitator.

    from x402_facilitator.utils import logger, setup_logger, error_context

    setup_logger(level="DEBUG")
    logger.info("Settlement started")
"""

import logging
import sys
import traceback
from typing import Optional, Union

LOGGER_NAME = "x402_facilitator"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def setup_logger(level: Union[str, int] = "INFO", fmt: Optional[str] = None) -> logging.Logger:
    """
    Attach a single stream handler to the package logger.

    Calling this more than once replaces the previous handler instead of
    stacking duplicates.

    Args:
        level: Logging level name ("DEBUG", "INFO", ...) or numeric level.
        fmt: Optional format string, defaults to ``LOG_FORMAT``.

    Returns:
        logging.Logger: The configured package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for handler in list(logger.handlers):
        if getattr(handler, "_x402_stream", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or LOG_FORMAT))
    handler._x402_stream = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def error_context() -> str:
    """
    Describe where the exception currently being handled was raised.

    Returns:
        str: ``"<file>:<line> in <function>"`` of the innermost frame, or
        ``"no active exception"`` when called outside an ``except`` block.
    """
    _, _, tb = sys.exc_info()
    if tb is None:
        return "no active exception"
    frame = traceback.extract_tb(tb)[-1]
    return f"{frame.filename}:{frame.lineno} in {frame.name}"
