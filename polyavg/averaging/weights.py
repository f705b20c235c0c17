"""
Registry of per-parameter probability densities.

Parameters are modeled as mutually independent: the joint density of a
parameter vector is the product of the registered 1-D densities. Every
density is checked at registration time:

- it must be non-negative and finite on a deterministic probe grid of its
  support
- it must integrate to 1 over its support within ``normalization_tol``

The 1-D checks use ``scipy.integrate.quad``, independently of the vector
cubature engine that performs the averaging itself.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from scipy import integrate

from polyavg.core.abc import WeightFunction
from polyavg.core.constants import (
    NORMALIZATION_PROBE_POINTS,
    NORMALIZATION_TOL,
    NORMALIZATION_WARN_TOL,
)
from polyavg.core.exceptions import InvalidWeightError, WeightNotFoundError
from polyavg.core.logging_config import get_logger
from polyavg.quadrature.transforms import Domain, transform_for_domain

logger = get_logger("averaging.weights")

DensityFunction = Callable[[float], float]


@dataclass(frozen=True)
class WeightSpec:
    """
    A probability density over one parameter.

    Attributes
    ----------
    density : callable
        Scalar -> non-negative density
    support : Domain
        Mathematical support over which the density integrates to 1
    description : str
        Free text, e.g. "lognormal(median=20, sigma=0.2)"
    location : float, optional
        A point in the bulk of the mass (mean, median, mode). Used as a
        breakpoint by the 1-D normalization quadrature so narrow densities
        far from the origin are not missed.
    """

    density: DensityFunction
    support: Domain = Domain()
    description: str = ""
    location: Optional[float] = None

    def __call__(self, value: float) -> float:
        if not self.support.contains(value):
            return 0.0
        return float(self.density(value))


@dataclass(frozen=True)
class NormalizationReport:
    """
    Mass of a density over its support and over the integration bounds.

    Attributes
    ----------
    name : str
        Parameter name
    total_mass : float
        Integral over the full support (ideally 1)
    captured_mass : float
        Integral over the bounds actually used for averaging
    bounds : Tuple[float, float]
        Integration bounds used for ``captured_mass``
    """

    name: str
    total_mass: float
    captured_mass: float
    bounds: Tuple[float, float]

    @property
    def deviation(self) -> float:
        return abs(self.total_mass - 1.0)

    @property
    def lost_mass(self) -> float:
        return max(self.total_mass - self.captured_mass, 0.0)


def _quad_mass(spec: WeightSpec, lower: float, upper: float) -> float:
    """Integrate a density over [lower, upper], split at its location hint."""
    split = spec.location
    if split is None and np.isinf(lower) and np.isinf(upper):
        split = 0.0
    if split is not None and lower < split < upper:
        left, _ = integrate.quad(spec, lower, split, limit=200)
        right, _ = integrate.quad(spec, split, upper, limit=200)
        return float(left + right)
    mass, _ = integrate.quad(spec, lower, upper, limit=200)
    return float(mass)


class WeightRegistry:
    """
    Named, independent probability densities.

    Parameters
    ----------
    normalization_tol : float
        Maximum allowed |mass - 1| over the support (default 1%)
    warn_tol : float
        Deviations above this (but within ``normalization_tol``) are reported
        as warnings
    """

    def __init__(
        self, normalization_tol: float = NORMALIZATION_TOL, warn_tol: float = NORMALIZATION_WARN_TOL
    ):
        if normalization_tol <= 0:
            raise ValueError("normalization_tol must be positive")
        self.normalization_tol = normalization_tol
        self.warn_tol = warn_tol
        self._weights: Dict[str, WeightSpec] = {}
        self._total_mass: Dict[str, float] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._weights

    def __len__(self) -> int:
        return len(self._weights)

    @property
    def names(self) -> List[str]:
        return list(self._weights.keys())

    def get(self, name: str) -> WeightSpec:
        try:
            return self._weights[name]
        except KeyError:
            raise WeightNotFoundError(f"No weight registered for parameter '{name}'") from None

    def register(
        self,
        name: str,
        density: Union[WeightSpec, DensityFunction],
        support: Optional[Domain] = None,
        description: str = "",
        check: bool = True,
        location: Optional[float] = None,
    ) -> WeightSpec:
        """
        Register a density for a parameter.

        Parameters
        ----------
        name : str
            Parameter name
        density : WeightSpec or callable
            Density, or a ready-made spec (other arguments ignored)
        support : Domain, optional
            Support of a bare callable; defaults to the whole real line
        description : str
            Free text for reports
        check : bool
            Probe for negative values and verify normalization
        location : float, optional
            Point in the bulk of the mass of a bare callable

        Returns
        -------
        WeightSpec

        Raises
        ------
        InvalidWeightError
            If the density is negative/non-finite where probed, or does not
            integrate to 1 within ``normalization_tol``
        """
        if isinstance(density, WeightSpec):
            spec = density
        elif not isinstance(density, WeightFunction):
            raise InvalidWeightError(f"Weight '{name}' is not callable")
        else:
            spec = WeightSpec(
                density,
                support if support is not None else Domain(),
                description,
                location,
            )

        if check:
            self._probe(name, spec)
            mass = _quad_mass(spec, spec.support.lower, spec.support.upper)
            if abs(mass - 1.0) > self.normalization_tol:
                raise InvalidWeightError(
                    f"Weight '{name}' integrates to {mass:.6g} over "
                    f"[{spec.support.lower}, {spec.support.upper}], "
                    f"outside tolerance {self.normalization_tol:g} of 1"
                )
            self._total_mass[name] = mass
            logger.debug(f"Registered weight '{name}' (mass={mass:.6f})")
        else:
            logger.debug(f"Registered weight '{name}' without normalization check")

        self._weights[name] = spec
        return spec

    def _probe(self, name: str, spec: WeightSpec) -> None:
        """Sample the density on a deterministic grid of its support."""
        transform = transform_for_domain(spec.support)
        a, b = transform.canonical_bounds
        # open grid, endpoints excluded
        t = np.linspace(a, b, NORMALIZATION_PROBE_POINTS + 2)[1:-1]
        for p in np.atleast_1d(transform.to_physical(t)):
            value = spec.density(float(p))
            if not np.isfinite(value):
                raise InvalidWeightError(f"Weight '{name}' is not finite at {p:g}: {value}")
            if value < 0:
                raise InvalidWeightError(f"Weight '{name}' is negative at {p:g}: {value}")

    def density(self, name: str, value: float) -> float:
        """Evaluate one density; negative values raise ``InvalidWeightError``."""
        result = self.get(name)(value)
        if result < 0:
            raise InvalidWeightError(f"Weight '{name}' is negative at {value:g}: {result}")
        return result

    def joint_density(self, parameters: Mapping[str, float]) -> float:
        """
        Product of the registered densities at a parameter vector.

        Parameters
        ----------
        parameters : mapping
            Parameter name -> physical value (``ParameterVector`` works too)

        Returns
        -------
        float
        """
        joint = 1.0
        for name in parameters.keys():
            joint *= self.density(name, parameters[name])
            if joint == 0.0:
                break
        return joint

    def check_normalization(
        self, name: str, bounds: Optional[Tuple[float, float]] = None
    ) -> NormalizationReport:
        """
        Report total mass and mass captured inside integration bounds.

        Parameters
        ----------
        name : str
            Parameter name
        bounds : tuple, optional
            Integration bounds; defaults to the full support

        Returns
        -------
        NormalizationReport
        """
        spec = self.get(name)
        support = spec.support
        if name not in self._total_mass:
            self._total_mass[name] = _quad_mass(spec, support.lower, support.upper)
        total = self._total_mass[name]

        if bounds is None:
            lower, upper = support.lower, support.upper
        else:
            lower = max(float(bounds[0]), support.lower)
            upper = min(float(bounds[1]), support.upper)
        captured = _quad_mass(spec, lower, upper) if lower < upper else 0.0
        return NormalizationReport(name, total, captured, (lower, upper))

    def warnings_for(self, reports: List[NormalizationReport]) -> List[str]:
        """Warnings for drift within tolerance and mass lost by truncation."""
        messages = []
        for report in reports:
            if report.deviation > self.warn_tol:
                messages.append(
                    f"Weight '{report.name}' integrates to {report.total_mass:.6f} over its support"
                )
            if report.lost_mass > self.warn_tol:
                lower, upper = report.bounds
                messages.append(
                    f"Weight '{report.name}' captures {report.captured_mass:.2%} of its mass "
                    f"within [{lower:g}, {upper:g}]"
                )
        for message in messages:
            logger.warning(message)
        return messages
