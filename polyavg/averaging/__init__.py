"""
Ensemble averaging of model spectra.

This module provides:
- Weight registry and scipy.stats-backed distributions
- Integrand adapter between the model and the cubature engine
- Averaging driver with a naive grid reference
- File-based averaging configuration
"""

from polyavg.averaging.weights import NormalizationReport, WeightRegistry, WeightSpec
from polyavg.averaging.distributions import (
    gamma_weight,
    lognormal_weight,
    normal_weight,
    truncated_normal_weight,
    uniform_weight,
    weight_from_config,
)
from polyavg.averaging.integrand import (
    ChannelSelection,
    IntegrandAdapter,
    ParameterVector,
    SpectrumSample,
)
from polyavg.averaging.driver import (
    AveragingDriver,
    AveragingResult,
    NaiveAverageResult,
    ParameterSpec,
)
from polyavg.averaging.config import AveragingConfig

__all__ = [
    "NormalizationReport",
    "WeightRegistry",
    "WeightSpec",
    "gamma_weight",
    "lognormal_weight",
    "normal_weight",
    "truncated_normal_weight",
    "uniform_weight",
    "weight_from_config",
    "ChannelSelection",
    "IntegrandAdapter",
    "ParameterVector",
    "SpectrumSample",
    "AveragingDriver",
    "AveragingResult",
    "NaiveAverageResult",
    "ParameterSpec",
    "AveragingConfig",
]
