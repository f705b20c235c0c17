"""
Averaging driver: weighted spectra over parameter distributions.

Assembles transforms, weights and the integrand adapter for one averaging
problem, runs the adaptive cubature engine and formats the averaged spectrum.
A naive grid average is available alongside as a validation reference.

Two modes:

- ``expectation``: ∫ S(p) w(p) dp with a normalized joint density w
- ``mean``: (1/|Ω|) ∫_Ω S(p) dp, a plain mean over a finite box Ω
"""

from dataclasses import dataclass, field
from itertools import product
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from polyavg.core.abc import SpectrumModel
from polyavg.core.cache import ModelCache
from polyavg.core.constants import (
    DEFAULT_ABSOLUTE_TOL,
    DEFAULT_MAX_EVALS,
    DEFAULT_NAIVE_POINTS,
    DEFAULT_RELATIVE_TOL,
)
from polyavg.core.exceptions import InvalidDomainError, InvalidWeightError
from polyavg.core.logging_config import get_logger
from polyavg.averaging.integrand import (
    Channel,
    ChannelSelection,
    IntegrandAdapter,
    ParameterVector,
    SpectrumSample,
)
from polyavg.averaging.weights import NormalizationReport, WeightRegistry
from polyavg.quadrature.cubature import AdaptiveCubature, CubatureResult, ErrorNorm
from polyavg.quadrature.transforms import Domain, transform_for_domain

logger = get_logger("averaging.driver")

MODES = ("expectation", "mean")

TABLE_WIDTH = 70
TABLE_SEP = "-" * TABLE_WIDTH
TABLE_HEADER = "=" * TABLE_WIDTH


@dataclass(frozen=True)
class ParameterSpec:
    """
    One averaged parameter.

    Attributes
    ----------
    name : str
        Parameter name passed to the model
    domain : Domain
        Physical integration domain
    transform : str, optional
        Transform name; chosen from the domain shape if None
    description : str
        Physical meaning (size, aspect ratio, gap, angle, ...)
    grid_bounds : Tuple[float, float], optional
        Finite range for the naive reference grid on unbounded domains
    """

    name: str
    domain: Domain
    transform: Optional[str] = None
    description: str = ""
    grid_bounds: Optional[Tuple[float, float]] = None

    def naive_range(self) -> Tuple[float, float]:
        if self.domain.is_finite:
            return (self.domain.lower, self.domain.upper)
        if self.grid_bounds is None:
            raise InvalidDomainError(
                f"Parameter '{self.name}' has an unbounded domain; "
                "set grid_bounds for the naive reference grid"
            )
        grid = Domain(*self.grid_bounds)
        return (grid.lower, grid.upper)


@dataclass
class AveragingResult:
    """
    Weighted-average spectrum from adaptive cubature.

    Attributes
    ----------
    wavelength : np.ndarray
        Shared wavelength grid
    spectra : Dict[Channel, np.ndarray]
        Averaged values per ``(quantity, variable)``
    errors : Dict[Channel, np.ndarray]
        Error estimates per channel (same scaling as ``spectra``)
    cubature : CubatureResult
        Raw engine result
    mode : str
        'expectation' or 'mean'
    normalization : List[NormalizationReport]
        Weight mass checks (expectation mode)
    warnings : List[str]
        Non-fatal issues: non-convergence, weight drift, truncated mass
    """

    wavelength: np.ndarray
    spectra: Dict[Channel, np.ndarray]
    errors: Dict[Channel, np.ndarray]
    cubature: CubatureResult
    mode: str
    normalization: List[NormalizationReport] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.cubature.converged

    @property
    def n_evals(self) -> int:
        return self.cubature.n_evals

    @property
    def relative_tol(self) -> float:
        return self.cubature.relative_tol

    def to_frame(self) -> pd.DataFrame:
        """Long-format frame with ``value`` and ``error`` columns."""
        frames = [
            pd.DataFrame(
                {
                    "wavelength": self.wavelength,
                    "quantity": quantity,
                    "variable": variable,
                    "value": values,
                    "error": self.errors[(quantity, variable)],
                }
            )
            for (quantity, variable), values in self.spectra.items()
        ]
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> str:
        """Human-readable report of the run."""
        status = "CONVERGED" if self.converged else "NOT CONVERGED"
        if len(self.wavelength):
            span = f" [{self.wavelength.min():g}, {self.wavelength.max():g}]"
        else:
            span = ""
        lines = [
            TABLE_HEADER,
            f"Averaged spectrum ({self.mode}): {status}",
            TABLE_HEADER,
            f"  Evaluations: {self.n_evals} ({self.cubature.n_regions} regions)",
            f"  Tolerance:   rel={self.cubature.relative_tol:g} "
            f"abs={self.cubature.absolute_tol:g} ({self.cubature.error_norm.value} norm)",
            f"  Wavelengths: {len(self.wavelength)}{span}",
            TABLE_SEP,
            f"{'Channel':<36} {'Mean value':>15} {'Max error':>15}",
            TABLE_SEP,
        ]
        for (quantity, variable), values in self.spectra.items():
            label = f"{quantity}/{variable}"
            if len(values) == 0:
                lines.append(f"{label:<36} {'-':>15} {'-':>15}")
                continue
            max_err = float(np.max(self.errors[(quantity, variable)]))
            lines.append(f"{label:<36} {np.mean(values):>15.6e} {max_err:>15.3e}")
        if self.normalization:
            lines.append(TABLE_SEP)
            for report in self.normalization:
                lines.append(
                    f"  weight '{report.name}': mass {report.total_mass:.6f}, "
                    f"captured {report.captured_mass:.6f}"
                )
        for message in self.warnings:
            lines.append(f"  WARNING: {message}")
        lines.append(TABLE_HEADER)
        return "\n".join(lines)


@dataclass
class NaiveAverageResult:
    """
    Reference average over a deterministic parameter grid.

    Attributes
    ----------
    wavelength : np.ndarray
        Shared wavelength grid
    spectra : Dict[Channel, np.ndarray]
        Averaged values per channel
    grid : Dict[str, np.ndarray]
        Grid points per parameter
    n_calls : int
        Model evaluations used
    """

    wavelength: np.ndarray
    spectra: Dict[Channel, np.ndarray]
    grid: Dict[str, np.ndarray]
    n_calls: int

    def to_frame(self) -> pd.DataFrame:
        return SpectrumSample(self.wavelength, self.spectra).to_frame()


class AveragingDriver:
    """
    Averages a spectrum model over parameter distributions.

    Parameters
    ----------
    model : callable
        ``model(ParameterVector, configuration) -> SpectrumSample | DataFrame``
    parameters : sequence of ParameterSpec
        Averaged parameters, in integration order
    weights : WeightRegistry, optional
        One density per parameter (expectation mode)
    selection : ChannelSelection, optional
        Channels to integrate; all channels, unpaired, if None
    configuration : Any
        Model configuration (e.g. dielectric data), fixed for the run
    mode : str
        'expectation' or 'mean'
    relative_tol, absolute_tol : float
        Cubature tolerances
    max_evals : int
        Cubature evaluation budget
    error_norm : ErrorNorm or str, optional
        Defaults to PAIRED for paired multi-quantity selections, else INDIVIDUAL
    n_workers : int, optional
        Thread pool size for sample-point evaluation
    cache : ModelCache, optional
        Shared memo of model evaluations across runs
    """

    def __init__(
        self,
        model: Callable,
        parameters: Sequence[ParameterSpec],
        weights: Optional[WeightRegistry] = None,
        selection: Optional[ChannelSelection] = None,
        configuration: Any = None,
        mode: str = "expectation",
        relative_tol: float = DEFAULT_RELATIVE_TOL,
        absolute_tol: float = DEFAULT_ABSOLUTE_TOL,
        max_evals: int = DEFAULT_MAX_EVALS,
        error_norm: Optional[Union[ErrorNorm, str]] = None,
        n_workers: Optional[int] = None,
        cache: Optional[ModelCache] = None,
    ):
        if mode not in MODES:
            raise ValueError(f"Invalid mode: {mode}. Must be one of: {list(MODES)}")
        if not isinstance(model, SpectrumModel):
            raise TypeError(f"model must be callable, got {type(model).__name__}")
        if not parameters:
            raise InvalidDomainError("At least one parameter is required")
        names = [p.name for p in parameters]
        if len(set(names)) != len(names):
            raise InvalidDomainError(f"Parameter names must be unique: {names}")

        self.model = model
        self.parameters = list(parameters)
        self.weights = weights
        self.selection = selection
        self.configuration = configuration
        self.mode = mode
        self.relative_tol = relative_tol
        self.absolute_tol = absolute_tol
        self.max_evals = max_evals
        self.n_workers = n_workers
        self.cache = cache

        if error_norm is None:
            paired = selection is not None and selection.paired and selection.group_size > 1
            error_norm = ErrorNorm.PAIRED if paired else ErrorNorm.INDIVIDUAL
        self.error_norm = ErrorNorm.parse(error_norm)

        self.transforms = [transform_for_domain(p.domain, p.transform) for p in self.parameters]
        self._validate_mode()

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def _validate_mode(self) -> None:
        if self.mode == "mean":
            unbounded = [p.name for p in self.parameters if not p.domain.is_finite]
            if unbounded:
                raise InvalidDomainError(
                    f"Mean mode needs finite domains; unbounded parameters: {unbounded}"
                )
            return
        if self.weights is None:
            raise InvalidWeightError("Expectation mode needs a WeightRegistry")
        missing = [name for name in self.names if name not in self.weights]
        if missing:
            raise InvalidWeightError(f"No weight registered for parameters: {missing}")

    def _model(self) -> Callable:
        return self.cache if self.cache is not None else self.model

    def measure(self) -> float:
        """Volume of the (finite) integration box."""
        return float(np.prod([p.domain.width for p in self.parameters]))

    def check_weights(self) -> List[NormalizationReport]:
        """Normalization reports for every weight over its integration domain."""
        if self.mode == "mean":
            return []
        return [
            self.weights.check_normalization(p.name, (p.domain.lower, p.domain.upper))
            for p in self.parameters
        ]

    def build_integrand(self) -> IntegrandAdapter:
        return IntegrandAdapter(
            model=self._model(),
            names=self.names,
            transforms=self.transforms,
            weights=self.weights if self.mode == "expectation" else None,
            selection=self.selection,
            configuration=self.configuration,
            mode=self.mode,
        )

    def average(self) -> AveragingResult:
        """
        Run adaptive cubature and return the averaged spectrum.

        Returns
        -------
        AveragingResult

        Raises
        ------
        InvalidDomainError, InvalidWeightError, ModelEvaluationError,
        DimensionMismatchError
            Fatal configuration or model problems
        """
        reports = self.check_weights()
        warnings = self.weights.warnings_for(reports) if reports else []

        integrand = self.build_integrand()
        engine = AdaptiveCubature(
            relative_tol=self.relative_tol,
            max_evals=self.max_evals,
            error_norm=self.error_norm,
            absolute_tol=self.absolute_tol,
            group_size=integrand.selection.group_size if integrand.selection else 1,
            n_workers=self.n_workers,
        )
        logger.info(
            f"Averaging over {self.names} ({self.mode}, transforms: "
            f"{[type(t).__name__ for t in self.transforms]})"
        )
        result = engine.integrate(integrand, integrand.lower, integrand.upper)

        scale = 1.0 / self.measure() if self.mode == "mean" else 1.0
        warnings.extend(result.warnings)

        return AveragingResult(
            wavelength=integrand.wavelength,
            spectra={k: v * scale for k, v in integrand.unpack(result.integral).items()},
            errors={k: v * scale for k, v in integrand.unpack(result.error).items()},
            cubature=result,
            mode=self.mode,
            normalization=reports,
            warnings=warnings,
        )

    def _grid(self, points: Union[int, Sequence[int]]) -> Dict[str, np.ndarray]:
        if np.ndim(points) == 0:
            points = [int(points)] * len(self.parameters)
        if len(points) != len(self.parameters):
            raise ValueError("points must be an int or one count per parameter")
        grid = {}
        for spec, n in zip(self.parameters, points):
            if n < 1:
                raise ValueError("Each grid needs at least one point")
            lower, upper = spec.naive_range()
            if n == 1:
                grid[spec.name] = np.array([0.5 * (lower + upper)])
            else:
                grid[spec.name] = np.linspace(lower, upper, n)
        return grid

    def naive_average(
        self, points: Union[int, Sequence[int]] = DEFAULT_NAIVE_POINTS, weighted: bool = False
    ) -> NaiveAverageResult:
        """
        Average model outputs over a deterministic grid.

        By default every grid point counts equally. With ``weighted=True``
        (expectation mode only) each point is weighted by the joint density
        and the weights are normalized to sum to one.

        Parameters
        ----------
        points : int or sequence of int
            Grid points per parameter (``linspace`` including the endpoints)
        weighted : bool
            Weight grid points by the joint density

        Returns
        -------
        NaiveAverageResult
        """
        if weighted and self.mode != "expectation":
            raise ValueError("A density-weighted naive average needs expectation mode")
        grid = self._grid(points)
        # used only for its shape checks and layout
        integrand = self.build_integrand()

        total = None
        weight_sum = 0.0
        for combo in product(*grid.values()):
            parameters = ParameterVector(tuple(self.names), combo)
            flat = integrand.flatten(integrand.evaluate_model(parameters))
            weight = self.weights.joint_density(parameters) if weighted else 1.0
            total = flat * weight if total is None else total + flat * weight
            weight_sum += weight

        if weight_sum <= 0.0:
            raise InvalidWeightError("Joint density vanishes on every naive grid point")

        logger.info(f"Naive average over {integrand.n_calls} grid points")
        return NaiveAverageResult(
            wavelength=integrand.wavelength,
            spectra=integrand.unpack(total / weight_sum),
            grid=grid,
            n_calls=integrand.n_calls,
        )

    def compare(
        self,
        points: Union[int, Sequence[int]] = DEFAULT_NAIVE_POINTS,
        result: Optional[AveragingResult] = None,
        weighted: bool = False,
    ) -> pd.DataFrame:
        """
        Side-by-side quadrature and naive averages.

        Returns
        -------
        pd.DataFrame
            Columns: wavelength, quantity, variable, quadrature, error, naive,
            difference
        """
        if result is None:
            result = self.average()
        naive = self.naive_average(points, weighted=weighted)
        frame = result.to_frame().rename(columns={"value": "quadrature"})
        reference = naive.to_frame().rename(columns={"value": "naive"})
        merged = frame.merge(reference, on=["wavelength", "quantity", "variable"], how="left")
        merged["difference"] = merged["quadrature"] - merged["naive"]
        return merged
