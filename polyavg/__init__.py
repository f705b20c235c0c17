"""
polyavg: ensemble-averaged optical spectra

A Python library for averaging the spectra of a black-box physical model over
probability distributions of its geometric parameters, using adaptive vector
cubature with error control and a naive grid reference for validation.
"""

__version__ = "0.1.0"
__author__ = "polyavg contributors"

# Core imports for convenience
from polyavg.core import constants
from polyavg.core import exceptions

__all__ = [
    "constants",
    "exceptions",
]
