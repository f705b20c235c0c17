"""
Embedded quadrature rules for adaptive cubature.

Each rule evaluates a higher-order and a lower-order estimate on a shared set
of sample points; the difference of the two is the local error estimate.

- GaussKronrodRule: 7-point Gauss embedded in the 15-point Kronrod rule (1-D)
- GenzMalikRule: degree-7 / degree-5 pair for D >= 2

References:
- Piessens et al., "QUADPACK" (1983), qk15
- Genz & Malik, "An adaptive algorithm for numerical integration over an
  n-dimensional rectangular region", J. Comput. Appl. Math. 6 (1980)
- Berntsen, Espelid & Genz, "An adaptive algorithm for the approximate
  calculation of multiple integrals", ACM TOMS 17 (1991)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from itertools import combinations, product

import numpy as np


@dataclass(frozen=True)
class RuleEstimate:
    """
    Result of applying an embedded rule to one region.

    Attributes
    ----------
    integral : np.ndarray
        Higher-order estimate, one entry per output component
    error : np.ndarray
        |higher - lower| per output component
    split_dim : int
        Dimension along which the region should be bisected
    """

    integral: np.ndarray
    error: np.ndarray
    split_dim: int


class EmbeddedRule(ABC):
    """Interface for a fixed-order embedded rule on a hyper-rectangle."""

    @abstractmethod
    def n_points(self, ndim: int) -> int:
        """Number of sample points for a region of dimension ndim."""
        pass

    @abstractmethod
    def points(self, center: np.ndarray, halfwidth: np.ndarray) -> np.ndarray:
        """Sample points, shape (n_points, ndim)."""
        pass

    @abstractmethod
    def estimate(self, values: np.ndarray, halfwidth: np.ndarray) -> RuleEstimate:
        """
        Combine integrand values into integral and error estimates.

        Parameters
        ----------
        values : np.ndarray
            Shape (n_points, output_dim), in the order returned by ``points``
        halfwidth : np.ndarray
            Half-widths of the region, shape (ndim,)
        """
        pass


# QUADPACK qk15 abscissae (positive half, last entry is the center)
_XGK = np.array(
    [
        0.991455371120812639206854697526329,
        0.949107912342758524526189684047851,
        0.864864423359769072789712788640926,
        0.741531185599394439863864773280788,
        0.586087235467691130294144845693013,
        0.405845151377397166906606412076961,
        0.207784955007898467600689403773245,
        0.000000000000000000000000000000000,
    ]
)
_WGK = np.array(
    [
        0.022935322010529224963732008058970,
        0.063092092629978553290700663189204,
        0.104790010322250183839876322541518,
        0.140653259715525918745189590510238,
        0.169004726639267902826583426598550,
        0.190350578064785409913256402421014,
        0.204432940075298892414161999234649,
        0.209482141084727828012999174891714,
    ]
)
# 7-point Gauss weights live on the odd-indexed Kronrod nodes
_WG = np.array(
    [
        0.0,
        0.129484966168869693270611432679082,
        0.0,
        0.279705391489276667901467771423780,
        0.0,
        0.381830050505118944950369775488975,
        0.0,
        0.417959183673469387755102040816327,
    ]
)


def _mirror(half: np.ndarray, sign: float) -> np.ndarray:
    return np.concatenate([sign * half[:-1], half[::-1]])


class GaussKronrodRule(EmbeddedRule):
    """G7/K15 embedded pair for one-dimensional regions."""

    nodes = _mirror(_XGK, -1.0)
    kronrod_weights = _mirror(_WGK, 1.0)
    gauss_weights = _mirror(_WG, 1.0)

    def n_points(self, ndim: int) -> int:
        return len(self.nodes)

    def points(self, center: np.ndarray, halfwidth: np.ndarray) -> np.ndarray:
        if len(center) != 1:
            raise ValueError("GaussKronrodRule only handles one-dimensional regions")
        return (center[0] + halfwidth[0] * self.nodes)[:, np.newaxis]

    def estimate(self, values: np.ndarray, halfwidth: np.ndarray) -> RuleEstimate:
        h = halfwidth[0]
        kronrod = h * (self.kronrod_weights @ values)
        gauss = h * (self.gauss_weights @ values)
        return RuleEstimate(integral=kronrod, error=np.abs(kronrod - gauss), split_dim=0)


class GenzMalikRule(EmbeddedRule):
    """
    Genz-Malik degree-7 rule with embedded degree-5 rule, for ndim >= 2.

    Point layout (offsets in units of the half-widths):
    center; ±λ2 e_i; ±λ4 e_i; ±λ4 e_i ±λ4 e_j (i < j); all 2^n corners ±λ5.
    """

    lambda2 = np.sqrt(9.0 / 70.0)
    lambda4 = np.sqrt(9.0 / 10.0)
    lambda5 = np.sqrt(9.0 / 19.0)
    # λ2² / λ4², used by the fourth-difference curvature estimate
    ratio = (9.0 / 70.0) / (9.0 / 10.0)

    def n_points(self, ndim: int) -> int:
        return 1 + 4 * ndim + 2 * ndim * (ndim - 1) + 2**ndim

    def points(self, center: np.ndarray, halfwidth: np.ndarray) -> np.ndarray:
        return center + self._offsets(len(center)) * halfwidth

    @staticmethod
    @lru_cache(maxsize=None)
    def _offsets(ndim: int) -> np.ndarray:
        if ndim < 2:
            raise ValueError("GenzMalikRule needs at least two dimensions")
        l2, l4, l5 = GenzMalikRule.lambda2, GenzMalikRule.lambda4, GenzMalikRule.lambda5
        eye = np.eye(ndim)
        rows = [np.zeros(ndim)]
        for i in range(ndim):
            rows.extend([l2 * eye[i], -l2 * eye[i]])
        for i in range(ndim):
            rows.extend([l4 * eye[i], -l4 * eye[i]])
        for i, j in combinations(range(ndim), 2):
            for si, sj in product((1.0, -1.0), repeat=2):
                rows.append(si * l4 * eye[i] + sj * l4 * eye[j])
        for signs in product((1.0, -1.0), repeat=ndim):
            rows.append(l5 * np.array(signs))
        offsets = np.array(rows)
        offsets.setflags(write=False)
        return offsets

    def estimate(self, values: np.ndarray, halfwidth: np.ndarray) -> RuleEstimate:
        n = len(halfwidth)
        volume = np.prod(2.0 * halfwidth)

        f0 = values[0]
        axis2 = values[1 : 1 + 2 * n].reshape(n, 2, -1)
        axis4 = values[1 + 2 * n : 1 + 4 * n].reshape(n, 2, -1)
        n_pairs = 2 * n * (n - 1)
        pairs = values[1 + 4 * n : 1 + 4 * n + n_pairs]
        corners = values[1 + 4 * n + n_pairs :]

        sum2 = axis2.sum(axis=(0, 1))
        sum4 = axis4.sum(axis=(0, 1))
        sum_pairs = pairs.sum(axis=0)
        sum_corners = corners.sum(axis=0)

        w1 = (12824.0 - 9120.0 * n + 400.0 * n * n) / 19683.0
        w2 = 980.0 / 6561.0
        w3 = (1820.0 - 400.0 * n) / 19683.0
        w4 = 200.0 / 19683.0
        w5 = 6859.0 / 19683.0 / 2**n
        e1 = (729.0 - 950.0 * n + 50.0 * n * n) / 729.0
        e2 = 245.0 / 486.0
        e3 = (265.0 - 100.0 * n) / 1458.0
        e4 = 25.0 / 729.0

        degree7 = volume * (w1 * f0 + w2 * sum2 + w3 * sum4 + w4 * sum_pairs + w5 * sum_corners)
        degree5 = volume * (e1 * f0 + e2 * sum2 + e3 * sum4 + e4 * sum_pairs)

        # fourth divided difference along each axis, summed over components
        second2 = axis2.sum(axis=1) - 2.0 * f0
        second4 = axis4.sum(axis=1) - 2.0 * f0
        curvature = np.abs(second2 - self.ratio * second4).sum(axis=1)

        return RuleEstimate(
            integral=degree7,
            error=np.abs(degree7 - degree5),
            split_dim=_pick_split(curvature, halfwidth),
        )


def _pick_split(curvature: np.ndarray, halfwidth: np.ndarray) -> int:
    """Axis of largest curvature; near-ties go to the widest axis."""
    top = curvature.max()
    if not np.isfinite(top) or top <= 0.0:
        return int(np.argmax(halfwidth))
    near = curvature >= top * (1.0 - 1e-10)
    return int(np.argmax(np.where(near, halfwidth, -np.inf)))


def default_rule(ndim: int) -> EmbeddedRule:
    """Gauss-Kronrod for one dimension, Genz-Malik otherwise."""
    if ndim < 1:
        raise ValueError("ndim must be >= 1")
    return GaussKronrodRule() if ndim == 1 else GenzMalikRule()
