"""
Ready-made weight specs backed by ``scipy.stats`` frozen distributions.

Typical particle-ensemble parameters:

- radius / length: lognormal or gamma (positive support)
- aspect ratio / separation: truncated normal or uniform
- orientation angle: uniform
"""

from typing import Any, Callable, Dict

import numpy as np
from scipy import stats

from polyavg.core.exceptions import ConfigurationError, InvalidDomainError
from polyavg.averaging.weights import WeightSpec
from polyavg.quadrature.transforms import Domain


def _from_frozen(frozen, support: Domain, description: str) -> WeightSpec:
    return WeightSpec(
        density=lambda x: float(frozen.pdf(x)),
        support=support,
        description=description,
        location=float(frozen.median()),
    )


def normal_weight(mean: float, std: float) -> WeightSpec:
    """Gaussian density on the real line."""
    if std <= 0:
        raise ValueError("std must be positive")
    return _from_frozen(
        stats.norm(loc=mean, scale=std), Domain(), f"normal(mean={mean:g}, std={std:g})"
    )


def lognormal_weight(median: float, sigma: float) -> WeightSpec:
    """
    Lognormal density on [0, inf).

    Parameters
    ----------
    median : float
        Median of the distribution (exp of the log-mean)
    sigma : float
        Standard deviation of the log
    """
    if median <= 0 or sigma <= 0:
        raise ValueError("median and sigma must be positive")
    return _from_frozen(
        stats.lognorm(s=sigma, scale=median),
        Domain(0.0, np.inf),
        f"lognormal(median={median:g}, sigma={sigma:g})",
    )


def gamma_weight(shape: float, scale: float) -> WeightSpec:
    """Gamma density on [0, inf) (Schulz-Zimm size distributions)."""
    if shape <= 0 or scale <= 0:
        raise ValueError("shape and scale must be positive")
    return _from_frozen(
        stats.gamma(a=shape, scale=scale),
        Domain(0.0, np.inf),
        f"gamma(shape={shape:g}, scale={scale:g})",
    )


def uniform_weight(lower: float, upper: float) -> WeightSpec:
    """Flat density 1/(upper-lower) on [lower, upper]."""
    support = Domain(lower, upper)
    return _from_frozen(
        stats.uniform(loc=lower, scale=support.width),
        support,
        f"uniform({lower:g}, {upper:g})",
    )


def truncated_normal_weight(mean: float, std: float, lower: float, upper: float) -> WeightSpec:
    """Gaussian renormalized to [lower, upper]; either bound may be infinite."""
    if std <= 0:
        raise ValueError("std must be positive")
    support = Domain(lower, upper)
    a = (support.lower - mean) / std
    b = (support.upper - mean) / std
    return _from_frozen(
        stats.truncnorm(a, b, loc=mean, scale=std),
        support,
        f"truncated_normal(mean={mean:g}, std={std:g}, [{lower:g}, {upper:g}])",
    )


_BUILDERS: Dict[str, Callable[..., WeightSpec]] = {
    "normal": normal_weight,
    "lognormal": lognormal_weight,
    "gamma": gamma_weight,
    "uniform": uniform_weight,
    "truncated_normal": truncated_normal_weight,
}


def weight_from_config(config: Dict[str, Any]) -> WeightSpec:
    """
    Build a weight spec from a config mapping.

    Parameters
    ----------
    config : dict
        ``{"distribution": name, **parameters}``, e.g.
        ``{"distribution": "lognormal", "median": 20.0, "sigma": 0.2}``

    Returns
    -------
    WeightSpec

    Raises
    ------
    ConfigurationError
        If the distribution is unknown or its parameters are invalid
    """
    params = dict(config)
    name = params.pop("distribution", None)
    if name not in _BUILDERS:
        raise ConfigurationError(
            f"Invalid weight distribution: {name}. Must be one of: {sorted(_BUILDERS)}"
        )
    try:
        return _BUILDERS[name](**params)
    except (TypeError, ValueError, InvalidDomainError) as e:
        raise ConfigurationError(f"Invalid parameters for '{name}' weight: {e}") from e
