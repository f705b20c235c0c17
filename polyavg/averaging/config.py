"""
Configuration for an averaging run.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from polyavg.core.config import (
    coerce_integration_settings,
    load_config,
    validate_averaging_config,
)
from polyavg.core.constants import (
    DEFAULT_ABSOLUTE_TOL,
    DEFAULT_MAX_EVALS,
    DEFAULT_NAIVE_POINTS,
    DEFAULT_RELATIVE_TOL,
    NORMALIZATION_TOL,
)
from polyavg.core.exceptions import ConfigurationError
from polyavg.core.logging_config import get_logger
from polyavg.averaging.distributions import weight_from_config
from polyavg.averaging.driver import AveragingDriver, ParameterSpec
from polyavg.averaging.integrand import ChannelSelection
from polyavg.averaging.weights import WeightRegistry, WeightSpec
from polyavg.quadrature.transforms import Domain

logger = get_logger("averaging.config")


@dataclass
class AveragingConfig:
    """
    Everything needed to set up an ``AveragingDriver`` except the model.

    Attributes
    ----------
    parameters : List[ParameterSpec]
        Averaged parameters
    weights : Dict[str, WeightSpec]
        Density per parameter name (expectation mode)
    selection : ChannelSelection, optional
        Channels to integrate
    mode : str
        'expectation' or 'mean'
    relative_tol : float
        Cubature relative tolerance
    absolute_tol : float
        Cubature absolute tolerance
    max_evals : int
        Cubature evaluation budget
    error_norm : str, optional
        Error norm name; driver default if None
    normalization_tol : float
        Allowed weight normalization error
    n_workers : int, optional
        Thread pool size
    naive_points : int
        Grid points per parameter for the naive reference
    model_configuration : dict
        Passed to the model unchanged
    """

    parameters: List[ParameterSpec]
    weights: Dict[str, WeightSpec] = field(default_factory=dict)
    selection: Optional[ChannelSelection] = None
    mode: str = "expectation"
    relative_tol: float = DEFAULT_RELATIVE_TOL
    absolute_tol: float = DEFAULT_ABSOLUTE_TOL
    max_evals: int = DEFAULT_MAX_EVALS
    error_norm: Optional[str] = None
    normalization_tol: float = NORMALIZATION_TOL
    n_workers: Optional[int] = None
    naive_points: int = DEFAULT_NAIVE_POINTS
    model_configuration: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "AveragingConfig":
        """Build from a configuration mapping (see ``validate_averaging_config``)."""
        validate_averaging_config(config)
        averaging = config["averaging"]
        integration = coerce_integration_settings(config.get("integration"))

        parameters = []
        weights = {}
        for param in averaging["parameters"]:
            grid_bounds = param.get("grid_bounds")
            parameters.append(
                ParameterSpec(
                    name=param["name"],
                    domain=Domain.from_bounds(param["domain"]),
                    transform=param.get("transform"),
                    description=param.get("description", ""),
                    grid_bounds=tuple(grid_bounds) if grid_bounds is not None else None,
                )
            )
            if "weight" in param:
                weights[param["name"]] = weight_from_config(param["weight"])

        selection = None
        if "channels" in averaging:
            channels = averaging["channels"]
            selection = ChannelSelection(
                quantities=channels["quantities"],
                variables=channels["variables"],
                paired=channels.get("paired", True),
            )

        result = cls(
            parameters=parameters,
            weights=weights,
            selection=selection,
            mode=averaging.get("mode", "expectation"),
            relative_tol=integration.get("relative_tol", DEFAULT_RELATIVE_TOL),
            absolute_tol=integration.get("absolute_tol", DEFAULT_ABSOLUTE_TOL),
            max_evals=integration.get("max_evals", DEFAULT_MAX_EVALS),
            error_norm=integration.get("error_norm"),
            normalization_tol=integration.get("normalization_tol", NORMALIZATION_TOL),
            n_workers=integration.get("n_workers"),
            naive_points=integration.get("naive_points", DEFAULT_NAIVE_POINTS),
            model_configuration=config.get("model", {}),
        )
        result.validate()
        return result

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "AveragingConfig":
        """
        Load averaging configuration from a YAML or JSON file.

        Parameters
        ----------
        config_path : str or Path
            Path to configuration file

        Returns
        -------
        AveragingConfig
        """
        return cls.from_dict(load_config(config_path))

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises
        ------
        ConfigurationError
            If any setting is out of range or inconsistent with the mode
        """
        if self.mode not in ("expectation", "mean"):
            raise ConfigurationError(f"Invalid averaging mode: {self.mode}")
        if not self.parameters:
            raise ConfigurationError("At least one parameter is required")
        if self.relative_tol <= 0:
            raise ConfigurationError("relative_tol must be positive")
        if self.absolute_tol < 0:
            raise ConfigurationError("absolute_tol must be non-negative")
        if self.normalization_tol <= 0:
            raise ConfigurationError("normalization_tol must be positive")
        if self.max_evals < 1:
            raise ConfigurationError("max_evals must be >= 1")
        if self.naive_points < 1:
            raise ConfigurationError("naive_points must be >= 1")
        if self.n_workers is not None and self.n_workers < 1:
            raise ConfigurationError("n_workers must be >= 1")
        if self.mode == "expectation":
            missing = [p.name for p in self.parameters if p.name not in self.weights]
            if missing:
                raise ConfigurationError(f"No weight configured for parameters: {missing}")
        else:
            unbounded = [p.name for p in self.parameters if not p.domain.is_finite]
            if unbounded:
                raise ConfigurationError(
                    f"Mean mode needs finite domains; unbounded parameters: {unbounded}"
                )

    def build_registry(self) -> WeightRegistry:
        """Register (and normalization-check) every configured weight."""
        registry = WeightRegistry(normalization_tol=self.normalization_tol)
        for name, spec in self.weights.items():
            registry.register(name, spec)
        return registry

    def build_driver(self, model: Callable, cache=None) -> AveragingDriver:
        """
        Create the driver for a model.

        Parameters
        ----------
        model : callable
            ``model(ParameterVector, configuration)``; receives
            ``model_configuration`` as its configuration
        cache : ModelCache, optional
            Shared evaluation cache

        Returns
        -------
        AveragingDriver
        """
        registry = self.build_registry() if self.mode == "expectation" else None
        logger.info(
            f"Building {self.mode} driver over {[p.name for p in self.parameters]} "
            f"(rel_tol={self.relative_tol:g}, max_evals={self.max_evals})"
        )
        return AveragingDriver(
            model=model,
            parameters=self.parameters,
            weights=registry,
            selection=self.selection,
            configuration=self.model_configuration,
            mode=self.mode,
            relative_tol=self.relative_tol,
            absolute_tol=self.absolute_tol,
            max_evals=self.max_evals,
            error_norm=self.error_norm,
            n_workers=self.n_workers,
            cache=cache,
        )
