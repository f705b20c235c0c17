"""
Domain transforms for integrating over bounded and unbounded parameters.

The cubature engine only integrates over finite hyper-rectangles. A parameter
whose physical domain is open on one or both sides is mapped onto a bounded
canonical interval, and the integrand is multiplied by the Jacobian dp/dt of
the map:

    ∫_lo^∞ g(p) dp = ∫_0^1 g(lo + t/(1-t)) / (1-t)^2 dt

    ∫_-∞^∞ g(p) dp = ∫_-1^1 g(t/(1-t^2)) (1+t^2)/(1-t^2)^2 dt

All transforms are pure and accept scalars or numpy arrays.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from polyavg.core.constants import T_OPEN_MAX
from polyavg.core.exceptions import InvalidDomainError

ArrayLike = Union[float, np.ndarray]


@dataclass(frozen=True)
class Domain:
    """
    Interval of a physical parameter; either bound may be infinite.

    Attributes
    ----------
    lower : float
        Lower bound (may be ``-inf``)
    upper : float
        Upper bound (may be ``+inf``)
    """

    lower: float = -np.inf
    upper: float = np.inf

    def __post_init__(self):
        lower = float(self.lower)
        upper = float(self.upper)
        if np.isnan(lower) or np.isnan(upper):
            raise InvalidDomainError(f"Domain bounds must not be NaN: [{lower}, {upper}]")
        if not lower < upper:
            raise InvalidDomainError(f"Domain lower bound must be below upper: [{lower}, {upper}]")
        if lower == np.inf or upper == -np.inf:
            raise InvalidDomainError(f"Domain is empty: [{lower}, {upper}]")
        object.__setattr__(self, "lower", lower)
        object.__setattr__(self, "upper", upper)

    @property
    def kind(self) -> str:
        """One of 'finite', 'semi_infinite_upper', 'semi_infinite_lower', 'infinite'."""
        lower_open = np.isinf(self.lower)
        upper_open = np.isinf(self.upper)
        if lower_open and upper_open:
            return "infinite"
        if upper_open:
            return "semi_infinite_upper"
        if lower_open:
            return "semi_infinite_lower"
        return "finite"

    @property
    def is_finite(self) -> bool:
        return self.kind == "finite"

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper

    @classmethod
    def from_bounds(cls, bounds) -> "Domain":
        """Build from a 2-sequence; ``None`` entries mean unbounded."""
        if len(bounds) != 2:
            raise InvalidDomainError(f"Domain needs exactly two bounds, got {bounds!r}")
        lower, upper = bounds
        return cls(
            -np.inf if lower is None else float(lower),
            np.inf if upper is None else float(upper),
        )


class DomainTransform(ABC):
    """
    Bijection between a bounded canonical variable t and a physical parameter p.
    """

    #: domain kinds this transform accepts
    supported_kinds: Tuple[str, ...] = ()

    def __init__(self, domain: Domain):
        if domain.kind not in self.supported_kinds:
            raise InvalidDomainError(
                f"{type(self).__name__} cannot be used on a {domain.kind} domain "
                f"[{domain.lower}, {domain.upper}]"
            )
        self.domain = domain

    @property
    @abstractmethod
    def canonical_bounds(self) -> Tuple[float, float]:
        """Bounds of the canonical variable."""
        pass

    @abstractmethod
    def to_physical(self, t: ArrayLike) -> ArrayLike:
        """Map canonical t to physical p."""
        pass

    @abstractmethod
    def to_canonical(self, p: ArrayLike) -> ArrayLike:
        """Map physical p to canonical t."""
        pass

    @abstractmethod
    def jacobian(self, t: ArrayLike) -> ArrayLike:
        """dp/dt at canonical t (always positive)."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}([{self.domain.lower}, {self.domain.upper}])"


class IdentityTransform(DomainTransform):
    """Finite domain; the canonical variable is the physical value itself."""

    supported_kinds = ("finite",)

    @property
    def canonical_bounds(self) -> Tuple[float, float]:
        return (self.domain.lower, self.domain.upper)

    def to_physical(self, t: ArrayLike) -> ArrayLike:
        return t

    def to_canonical(self, p: ArrayLike) -> ArrayLike:
        return p

    def jacobian(self, t: ArrayLike) -> ArrayLike:
        if np.ndim(t) == 0:
            return 1.0
        return np.ones_like(t, dtype=float)


class SemiInfiniteTransform(DomainTransform):
    """
    Half-line domain mapped onto t in [0, 1).

    For ``[lo, inf)``: p = lo + t/(1-t). For ``(-inf, hi]``: p = hi - t/(1-t).
    The Jacobian is 1/(1-t)^2 in both cases. The open endpoint t = 1 is
    clamped to the largest float below 1.
    """

    supported_kinds = ("semi_infinite_upper", "semi_infinite_lower")

    def __init__(self, domain: Domain):
        super().__init__(domain)
        if domain.kind == "semi_infinite_upper":
            self._anchor = domain.lower
            self._sign = 1.0
        else:
            self._anchor = domain.upper
            self._sign = -1.0

    @property
    def canonical_bounds(self) -> Tuple[float, float]:
        return (0.0, 1.0)

    @staticmethod
    def _clamp(t: ArrayLike) -> ArrayLike:
        return np.minimum(t, T_OPEN_MAX)

    def to_physical(self, t: ArrayLike) -> ArrayLike:
        t = self._clamp(t)
        return self._anchor + self._sign * t / (1.0 - t)

    def to_canonical(self, p: ArrayLike) -> ArrayLike:
        distance = self._sign * (np.asarray(p, dtype=float) - self._anchor)
        if np.any(distance < 0):
            raise InvalidDomainError(f"Value {p} lies outside domain {self.domain}")
        t = distance / (1.0 + distance)
        return float(t) if np.ndim(t) == 0 else t

    def jacobian(self, t: ArrayLike) -> ArrayLike:
        t = self._clamp(t)
        return 1.0 / (1.0 - t) ** 2


class InfiniteTransform(DomainTransform):
    """
    Full real line mapped onto t in (-1, 1) via p = t/(1-t^2).

    Jacobian: (1+t^2)/(1-t^2)^2.
    """

    supported_kinds = ("infinite",)

    @property
    def canonical_bounds(self) -> Tuple[float, float]:
        return (-1.0, 1.0)

    @staticmethod
    def _clamp(t: ArrayLike) -> ArrayLike:
        return np.clip(t, -T_OPEN_MAX, T_OPEN_MAX)

    def to_physical(self, t: ArrayLike) -> ArrayLike:
        t = self._clamp(t)
        return t / (1.0 - t * t)

    def to_canonical(self, p: ArrayLike) -> ArrayLike:
        p = np.asarray(p, dtype=float)
        # positive root of p t^2 + t - p = 0, written to avoid cancellation
        t = 2.0 * p / (1.0 + np.sqrt(1.0 + 4.0 * p * p))
        return float(t) if np.ndim(t) == 0 else t

    def jacobian(self, t: ArrayLike) -> ArrayLike:
        t = self._clamp(t)
        t2 = t * t
        return (1.0 + t2) / (1.0 - t2) ** 2


def transform_for_domain(domain: Domain, kind: str = None) -> DomainTransform:
    """
    Pick the transform for a domain.

    Parameters
    ----------
    domain : Domain
        Physical domain of the parameter
    kind : str, optional
        Registered transform name ('identity', 'semi_infinite', 'infinite').
        If None, chosen from the domain shape.

    Returns
    -------
    DomainTransform
    """
    from polyavg.core.factory import TransformFactory

    if kind is None:
        return TransformFactory.for_domain(domain)
    return TransformFactory.create(kind, domain)
