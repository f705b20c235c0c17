"""
Exception hierarchy for polyavg.

Every error raised here is fatal to the integration call that hit it.
Non-convergence of the cubature engine is not an error; it is reported on
the result object.
"""


class PolyavgError(Exception):
    """Base error for all polyavg exceptions."""


class InvalidDomainError(PolyavgError):
    """Raised when an integration domain or transform is malformed."""


class InvalidWeightError(PolyavgError):
    """Raised when a weight function is negative or not normalized."""


class WeightNotFoundError(InvalidWeightError, KeyError):
    """Raised when no weight is registered for a requested parameter."""


class ModelEvaluationError(PolyavgError):
    """Raised when the external model fails or changes its output shape."""


class DimensionMismatchError(PolyavgError):
    """Raised when an integrand returns the wrong number of components."""


class ConfigurationError(PolyavgError, ValueError):
    """Raised when an averaging configuration is invalid."""
