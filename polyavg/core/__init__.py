"""
Core utilities.

This module provides:
- Numerical defaults
- Exception hierarchy
- Configuration and logging
- Caching of model evaluations
- Protocols for external collaborators

The transform factory lives in ``polyavg.core.factory`` and is imported on
demand.
"""

from polyavg.core import constants
from polyavg.core import exceptions
from polyavg.core import config
from polyavg.core import logging_config
from polyavg.core.cache import LRUCache, ModelCache, parameter_key
from polyavg.core.abc import SpectrumModel, WeightFunction

__all__ = [
    # Modules
    "constants",
    "exceptions",
    "config",
    "logging_config",
    # Caching
    "LRUCache",
    "ModelCache",
    "parameter_key",
    # Protocols
    "SpectrumModel",
    "WeightFunction",
]
