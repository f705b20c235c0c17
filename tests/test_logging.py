"""
Tests for logging configuration module.
"""

import pytest
import logging
from io import StringIO

from polyavg.core.logging_config import DEFAULT_FORMAT, PACKAGE_LOGGER, get_logger, setup_logging


def test_setup_logging_default():
    """Test setting up logging with default parameters."""
    stream = StringIO()
    setup_logging(level="INFO", stream=stream)

    logger = logging.getLogger("polyavg.test")
    logger.info("Test message")

    output = stream.getvalue()
    assert "Test message" in output
    assert "INFO" in output


def test_setup_logging_custom_level():
    """Test setting up logging with custom level."""
    stream = StringIO()
    setup_logging(level="DEBUG", stream=stream)

    logger = logging.getLogger("polyavg.test")
    logger.debug("Debug message")

    output = stream.getvalue()
    assert "Debug message" in output


def test_setup_logging_filters_below_level():
    """Messages below the configured level are dropped."""
    stream = StringIO()
    setup_logging(level="WARNING", stream=stream)

    logger = logging.getLogger("polyavg.test")
    logger.info("Quiet message")
    logger.warning("Loud message")

    output = stream.getvalue()
    assert "Quiet message" not in output
    assert "Loud message" in output


def test_setup_logging_custom_format():
    """Test setting up logging with custom format."""
    stream = StringIO()
    custom_format = "%(levelname)s - %(message)s"
    setup_logging(level="INFO", format_string=custom_format, stream=stream)

    logger = logging.getLogger("polyavg.test")
    logger.info("Test message")

    output = stream.getvalue()
    assert "INFO - Test message" in output


def test_get_logger():
    """Test getting a logger instance."""
    logger = get_logger("quadrature.cubature")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "polyavg.quadrature.cubature"


def test_logger_hierarchy():
    """Test that loggers follow proper hierarchy."""
    parent_logger = get_logger("parent")
    child_logger = get_logger("parent.child")

    assert child_logger.parent == parent_logger


def test_cubature_warns_on_budget_exhaustion():
    """Non-convergence is logged at WARNING by the engine."""
    import numpy as np
    from polyavg.quadrature.cubature import integrate

    stream = StringIO()
    setup_logging(level="WARNING", stream=stream)

    integrate(lambda x: [np.sin(50.0 * x[0])], [0.0], [1.0], relative_tol=1e-12, max_evals=45)

    assert "Tolerance not met" in stream.getvalue()



def test_setup_logging_leaves_root_alone():
    """Only the package logger gets a handler."""
    root_handlers = list(logging.getLogger().handlers)
    logger = setup_logging(level="INFO", stream=StringIO())

    assert logger.name == PACKAGE_LOGGER
    assert len(logger.handlers) == 1
    assert logging.getLogger().handlers == root_handlers


def test_setup_logging_twice_does_not_duplicate():
    stream = StringIO()
    setup_logging(level="INFO", stream=StringIO())
    setup_logging(level="INFO", stream=stream)

    get_logger("test").info("Once")
    assert stream.getvalue().count("Once") == 1


def test_default_format_names_module():
    stream = StringIO()
    setup_logging(level="INFO", stream=stream)

    get_logger("averaging.driver").info("Hello")
    assert "polyavg.averaging.driver - INFO - Hello" in stream.getvalue()
    assert DEFAULT_FORMAT.startswith("[%(asctime)s]")


def test_get_logger_accepts_full_module_name():
    assert get_logger("polyavg.core.cache").name == "polyavg.core.cache"
    assert get_logger("polyavg").name == "polyavg"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
