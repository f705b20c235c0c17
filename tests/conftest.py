"""
Pytest configuration and shared fixtures for polyavg tests.

This module provides:
- Toy spectrum models with closed-form averages
- Channel selections and weight registries
- Sample averaging configurations (dict and temporary YAML file)
"""

import os
import tempfile
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from polyavg.averaging.distributions import uniform_weight
from polyavg.averaging.integrand import ChannelSelection, SpectrumSample
from polyavg.averaging.weights import WeightRegistry

WAVELENGTHS = np.array([400.0, 500.0, 600.0])


def polynomial_spectrum(parameters, configuration=None):
    """
    Toy dimer model, polynomial in the radius.

    cross_section ~ r^2 and dichroism ~ r, so uniform averages over
    [a, b] are (b^3 - a^3) / (3 (b - a)) and (a + b) / 2 times the
    wavelength factors below.
    """
    r = parameters["radius"]
    scale = 1.0 + parameters["gap"] if "gap" in parameters else 1.0
    return SpectrumSample(
        wavelength=WAVELENGTHS,
        channels={
            ("cross_section", "extinction"): scale * r**2 * WAVELENGTHS / 500.0,
            ("dichroism", "extinction"): 0.1 * r * (1.0 - WAVELENGTHS / 1000.0),
            ("cross_section", "absorption"): 0.5 * scale * r**2 * np.ones_like(WAVELENGTHS),
            ("dichroism", "absorption"): 0.01 * r * np.ones_like(WAVELENGTHS),
        },
    )


def constant_spectrum(parameters, configuration=None):
    """Returns [1, 1] for every parameter vector, as a long-format frame."""
    return pd.DataFrame(
        {
            "wavelength": [500.0, 500.0],
            "quantity": ["cross_section", "dichroism"],
            "variable": ["extinction", "extinction"],
            "value": [1.0, 1.0],
        }
    )


@pytest.fixture
def polynomial_model():
    """Polynomial toy model (see ``polynomial_spectrum``)."""
    return polynomial_spectrum


@pytest.fixture
def constant_model():
    """Constant [1, 1] model returning a DataFrame."""
    return constant_spectrum


@pytest.fixture
def wavelengths():
    """Wavelength grid of the polynomial model."""
    return WAVELENGTHS.copy()


@pytest.fixture
def extinction_selection():
    """Cross-section and dichroism of extinction, paired."""
    return ChannelSelection(("cross_section", "dichroism"), ("extinction",), paired=True)


@pytest.fixture
def uniform_registry():
    """Uniform radius weight on [10, 30]."""
    registry = WeightRegistry()
    registry.register("radius", uniform_weight(10.0, 30.0))
    return registry


@pytest.fixture
def sample_config_dict():
    """Create a sample averaging configuration dictionary."""
    return {
        "averaging": {
            "mode": "expectation",
            "parameters": [
                {
                    "name": "radius",
                    "domain": [10.0, 30.0],
                    "weight": {"distribution": "uniform", "lower": 10.0, "upper": 30.0},
                    "description": "particle radius (nm)",
                }
            ],
            "channels": {
                "quantities": ["cross_section", "dichroism"],
                "variables": ["extinction"],
                "paired": True,
            },
        },
        "integration": {
            "relative_tol": 1.0e-6,
            "max_evals": 5000,
            "error_norm": "paired",
        },
    }


@pytest.fixture
def temp_config_file(sample_config_dict):
    """Create a temporary YAML config file."""
    import yaml

    config_fd, config_path = tempfile.mkstemp(suffix=".yaml")
    os.close(config_fd)  # Close file descriptor to prevent leaks

    with open(config_path, "w") as f:
        yaml.dump(sample_config_dict, f)

    yield config_path

    Path(config_path).unlink()
