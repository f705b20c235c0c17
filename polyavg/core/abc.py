"""
Protocols for the external collaborators of an averaging run.

The physical model and the weight functions are supplied by the caller; any
callable with the right signature satisfies these protocols without
inheriting from them.
"""

from typing import Any, Mapping, Protocol, runtime_checkable


@runtime_checkable
class SpectrumModel(Protocol):
    """
    Protocol for the physical model (structural typing).

    The model must be pure and deterministic, and return the same wavelength
    grid and channel set for every call with a given configuration. It may
    return a ``SpectrumSample`` or a long-format ``pandas.DataFrame`` with
    columns ``wavelength, quantity, variable, value``.
    """

    def __call__(self, parameters: Mapping[str, float], configuration: Any) -> Any:
        """Simulate a spectrum for one parameter vector."""
        ...


@runtime_checkable
class WeightFunction(Protocol):
    """Protocol for a scalar probability density."""

    def __call__(self, value: float) -> float:
        """Density at ``value`` (non-negative)."""
        ...
