"""
Logging configuration for polyavg.

All library loggers live under the ``polyavg`` namespace. ``setup_logging``
attaches a single handler to that package logger and leaves the root logger
alone, so applications embedding polyavg keep their own logging setup.
"""

import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "polyavg"
DEFAULT_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "INFO", format_string: Optional[str] = None, stream: Optional[object] = None
) -> logging.Logger:
    """
    Configure the ``polyavg`` package logger.

    Calling this again replaces the previous handler rather than adding a
    second one.

    Parameters
    ----------
    level : str
        Logging level: 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'
    format_string : str, optional
        Custom format string. If None, uses ``DEFAULT_FORMAT``.
    stream : file-like object, optional
        Stream to write logs to. If None, uses sys.stderr.

    Returns
    -------
    logging.Logger
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger namespaced under ``polyavg``.

    Parameters
    ----------
    name : str
        Dotted module path relative to the package, e.g. ``"quadrature.cubature"``;
        a full ``__name__`` such as ``"polyavg.quadrature.cubature"`` also works

    Returns
    -------
    logging.Logger
        Logger instance
    """
    if name == PACKAGE_LOGGER or name.startswith(f"{PACKAGE_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")
