"""
Tests for scipy.stats-backed weight builders.
"""

import numpy as np
import pytest

from polyavg.core.exceptions import ConfigurationError
from polyavg.averaging.distributions import (
    gamma_weight,
    lognormal_weight,
    normal_weight,
    truncated_normal_weight,
    uniform_weight,
    weight_from_config,
)
from polyavg.averaging.weights import WeightRegistry


@pytest.mark.parametrize(
    "spec",
    [
        normal_weight(5.0, 2.0),
        lognormal_weight(20.0, 0.2),
        gamma_weight(4.0, 5.0),
        uniform_weight(-1.0, 3.0),
        truncated_normal_weight(1.0, 2.0, 0.0, np.inf),
        truncated_normal_weight(0.0, 1.0, -0.5, 0.5),
    ],
)
def test_builders_are_normalized(spec):
    registry = WeightRegistry()
    registry.register("p", spec)
    report = registry.check_normalization("p")
    assert np.isclose(report.total_mass, 1.0, atol=1e-6)


def test_supports():
    assert lognormal_weight(20.0, 0.2).support.kind == "semi_infinite_upper"
    assert gamma_weight(2.0, 1.0).support.lower == 0.0
    assert normal_weight(0.0, 1.0).support.kind == "infinite"
    assert uniform_weight(1.0, 2.0).support.is_finite


def test_lognormal_location_is_median():
    spec = lognormal_weight(20.0, 0.2)
    assert spec.location == pytest.approx(20.0)
    assert "lognormal" in spec.description


def test_density_is_zero_outside_support():
    assert truncated_normal_weight(0.0, 1.0, -0.5, 0.5)(1.0) == 0.0
    assert lognormal_weight(20.0, 0.2)(-1.0) == 0.0


@pytest.mark.parametrize(
    "builder, args",
    [
        (normal_weight, (0.0, 0.0)),
        (lognormal_weight, (-1.0, 0.2)),
        (gamma_weight, (1.0, -1.0)),
        (truncated_normal_weight, (0.0, -1.0, 0.0, 1.0)),
    ],
)
def test_invalid_parameters(builder, args):
    with pytest.raises(ValueError):
        builder(*args)


def test_weight_from_config():
    spec = weight_from_config({"distribution": "gamma", "shape": 3.0, "scale": 2.0})
    assert spec.support.kind == "semi_infinite_upper"
    assert spec(6.0) > 0.0


def test_weight_from_config_does_not_mutate_input():
    config = {"distribution": "uniform", "lower": 0.0, "upper": 1.0}
    weight_from_config(config)
    assert config["distribution"] == "uniform"


def test_weight_from_config_unknown():
    with pytest.raises(ConfigurationError, match="Invalid weight distribution"):
        weight_from_config({"distribution": "cauchy"})


def test_weight_from_config_bad_parameters():
    with pytest.raises(ConfigurationError, match="Invalid parameters for 'normal'"):
        weight_from_config({"distribution": "normal", "mean": 0.0})
    with pytest.raises(ConfigurationError, match="Invalid parameters for 'uniform'"):
        weight_from_config({"distribution": "uniform", "lower": 2.0, "upper": 1.0})
