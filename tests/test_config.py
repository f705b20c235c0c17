"""
Tests for configuration management module.
"""

import copy
import json
import os
import tempfile
from pathlib import Path

import numpy as np
import pytest

from polyavg.core.config import (
    coerce_integration_settings,
    load_config,
    save_config,
    validate_averaging_config,
)
from polyavg.core.exceptions import ConfigurationError, InvalidWeightError
from polyavg.averaging.config import AveragingConfig
from polyavg.averaging.driver import AveragingDriver
from polyavg.averaging.weights import WeightSpec
from polyavg.quadrature.cubature import ErrorNorm
from polyavg.quadrature.transforms import Domain


def test_load_config_yaml(temp_config_file):
    """Test loading YAML configuration."""
    config = load_config(temp_config_file)
    assert "averaging" in config
    assert "integration" in config
    assert config["averaging"]["parameters"][0]["name"] == "radius"


def test_load_config_json(sample_config_dict):
    """Test loading JSON configuration."""
    config_fd, config_path = tempfile.mkstemp(suffix=".json")
    os.close(config_fd)

    try:
        with open(config_path, "w") as f:
            json.dump(sample_config_dict, f)

        config = load_config(config_path)
        assert config["integration"]["max_evals"] == 5000
    finally:
        Path(config_path).unlink()


def test_load_config_not_found():
    """Test loading non-existent config file."""
    with pytest.raises(FileNotFoundError):
        load_config("nonexistent.yaml")


def test_load_config_invalid_format():
    """Test loading invalid file format."""
    config_fd, config_path = tempfile.mkstemp(suffix=".txt")
    os.close(config_fd)

    try:
        with open(config_path, "w") as f:
            f.write("not yaml or json")

        with pytest.raises(ValueError, match="Unsupported config file format"):
            load_config(config_path)
    finally:
        Path(config_path).unlink()


def test_load_config_non_mapping_root(tmp_path):
    """A YAML list at the root is rejected."""
    config_path = tmp_path / "list.yaml"
    config_path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError, match="root must be a mapping"):
        load_config(config_path)


def test_save_config_yaml(sample_config_dict, tmp_path):
    """Test saving YAML configuration."""
    config_path = tmp_path / "config.yaml"
    save_config(sample_config_dict, config_path)
    assert config_path.exists()

    loaded = load_config(config_path)
    assert loaded == sample_config_dict


def test_save_config_json(sample_config_dict, tmp_path):
    """Test saving JSON configuration."""
    config_path = tmp_path / "config.json"
    save_config(sample_config_dict, config_path)

    loaded = load_config(config_path)
    assert loaded["averaging"]["mode"] == "expectation"


def test_save_config_unknown_suffix_writes_yaml(sample_config_dict, tmp_path):
    """Unknown suffixes fall back to YAML."""
    save_config(sample_config_dict, tmp_path / "config.cfg")
    assert (tmp_path / "config.yaml").exists()


def test_yaml_infinite_bounds_round_trip(sample_config_dict, tmp_path):
    """``.inf`` bounds survive a YAML round trip."""
    config = copy.deepcopy(sample_config_dict)
    config["averaging"]["parameters"][0]["domain"] = [0.0, float("inf")]
    save_config(config, tmp_path / "inf.yaml")

    loaded = load_config(tmp_path / "inf.yaml")
    assert np.isinf(loaded["averaging"]["parameters"][0]["domain"][1])


def test_validate_averaging_config_valid(sample_config_dict):
    """Test validating valid averaging configuration."""
    assert validate_averaging_config(sample_config_dict) is True


def test_validate_averaging_config_missing_section():
    """Test validating config without averaging section."""
    with pytest.raises(ConfigurationError, match="must contain 'averaging' section"):
        validate_averaging_config({"integration": {}})


def test_validate_averaging_config_is_value_error():
    """Configuration errors are also ValueErrors."""
    with pytest.raises(ValueError):
        validate_averaging_config({})


def test_validate_averaging_config_invalid_mode(sample_config_dict):
    """Test validating config with invalid mode."""
    sample_config_dict["averaging"]["mode"] = "median"
    with pytest.raises(ConfigurationError, match="Invalid averaging mode"):
        validate_averaging_config(sample_config_dict)


def test_validate_averaging_config_missing_fields(sample_config_dict):
    """Test validating config with missing required fields."""
    del sample_config_dict["averaging"]["parameters"][0]["domain"]
    with pytest.raises(ConfigurationError, match="missing required field"):
        validate_averaging_config(sample_config_dict)


def test_validate_averaging_config_missing_weight(sample_config_dict):
    """Expectation mode requires a weight per parameter."""
    del sample_config_dict["averaging"]["parameters"][0]["weight"]
    with pytest.raises(ConfigurationError, match="needs a 'weight'"):
        validate_averaging_config(sample_config_dict)


def test_validate_averaging_config_duplicate_names(sample_config_dict):
    """Parameter names must be unique."""
    params = sample_config_dict["averaging"]["parameters"]
    params.append(copy.deepcopy(params[0]))
    with pytest.raises(ConfigurationError, match="unique"):
        validate_averaging_config(sample_config_dict)


def test_validate_averaging_config_invalid_tolerance(sample_config_dict):
    """Test validating config with non-positive relative tolerance."""
    sample_config_dict["integration"]["relative_tol"] = 0.0
    with pytest.raises(ConfigurationError, match="relative_tol must be positive"):
        validate_averaging_config(sample_config_dict)


def test_validate_averaging_config_invalid_norm(sample_config_dict):
    """Test validating config with unknown error norm."""
    sample_config_dict["integration"]["error_norm"] = "l3"
    with pytest.raises(ConfigurationError, match="Invalid error norm"):
        validate_averaging_config(sample_config_dict)


def test_averaging_config_from_file(temp_config_file):
    """AveragingConfig parses parameters, weights and integration settings."""
    config = AveragingConfig.from_file(temp_config_file)

    assert [p.name for p in config.parameters] == ["radius"]
    assert config.parameters[0].domain.lower == 10.0
    assert config.parameters[0].description == "particle radius (nm)"
    assert "radius" in config.weights
    assert config.selection.group_size == 2
    assert config.relative_tol == 1.0e-6
    assert config.max_evals == 5000
    assert config.error_norm == "paired"


def test_averaging_config_null_bound_is_unbounded(sample_config_dict):
    """A null bound means an open domain."""
    param = sample_config_dict["averaging"]["parameters"][0]
    param["domain"] = [0.0, None]
    param["weight"] = {"distribution": "lognormal", "median": 20.0, "sigma": 0.2}

    config = AveragingConfig.from_dict(sample_config_dict)
    assert config.parameters[0].domain.kind == "semi_infinite_upper"


def test_averaging_config_mean_mode_rejects_unbounded(sample_config_dict):
    """Mean mode needs finite domains."""
    sample_config_dict["averaging"]["mode"] = "mean"
    sample_config_dict["averaging"]["parameters"][0]["domain"] = [0.0, None]
    with pytest.raises(ConfigurationError, match="finite domains"):
        AveragingConfig.from_dict(sample_config_dict)


def test_averaging_config_unknown_distribution(sample_config_dict):
    """Unknown weight distributions are configuration errors."""
    sample_config_dict["averaging"]["parameters"][0]["weight"] = {"distribution": "cauchy"}
    with pytest.raises(ConfigurationError, match="Invalid weight distribution"):
        AveragingConfig.from_dict(sample_config_dict)


def test_averaging_config_build_driver(temp_config_file, polynomial_model):
    """build_driver wires the configuration into an AveragingDriver."""
    config = AveragingConfig.from_file(temp_config_file)
    driver = config.build_driver(polynomial_model)

    assert isinstance(driver, AveragingDriver)
    assert driver.error_norm is ErrorNorm.PAIRED
    assert driver.names == ["radius"]

    result = driver.average()
    assert result.converged
    mean_r2 = (30.0**3 - 10.0**3) / (3.0 * 20.0)
    assert np.isclose(result.spectra[("cross_section", "extinction")][1], mean_r2, rtol=1e-6)


def test_averaging_config_build_registry_rejects_bad_weight(sample_config_dict):
    """Weights are normalization-checked when the registry is built."""
    config = AveragingConfig.from_dict(sample_config_dict)
    config.weights["radius"] = WeightSpec(lambda x: 0.075, Domain(10.0, 30.0))
    with pytest.raises(InvalidWeightError, match="integrates to"):
        config.build_registry()


def test_averaging_config_hand_written_exponents(tmp_path):
    """Exponents without a dot load as strings in YAML and are converted."""
    config_path = tmp_path / "hand_written.yaml"
    config_path.write_text(
        "averaging:\n"
        "  mode: expectation\n"
        "  parameters:\n"
        "    - name: radius\n"
        "      domain: [1e1, 3e1]\n"
        "      weight: {distribution: uniform, lower: 10.0, upper: 30.0}\n"
        "integration:\n"
        "  relative_tol: 1e-4\n"
        "  absolute_tol: 0\n"
        "  max_evals: 5e4\n"
        "  normalization_tol: 1e-2\n"
    )

    config = AveragingConfig.from_file(config_path)
    assert config.relative_tol == 1e-4
    assert isinstance(config.relative_tol, float)
    assert config.max_evals == 50000
    assert isinstance(config.max_evals, int)
    assert config.normalization_tol == 1e-2
    assert config.parameters[0].domain.upper == 30.0


def test_validate_averaging_config_non_numeric_setting(sample_config_dict):
    """Non-numeric integration settings are configuration errors."""
    sample_config_dict["integration"]["relative_tol"] = "tight"
    with pytest.raises(ConfigurationError, match="relative_tol"):
        validate_averaging_config(sample_config_dict)

    sample_config_dict["integration"]["relative_tol"] = "1e-4"
    sample_config_dict["integration"]["max_evals"] = 1.5e3 + 0.5
    with pytest.raises(ConfigurationError, match="max_evals must be an integer"):
        validate_averaging_config(sample_config_dict)


def test_coerce_integration_settings():
    settings = coerce_integration_settings(
        {"relative_tol": "1e-3", "n_workers": None, "error_norm": "paired"}
    )
    assert settings == {"relative_tol": 1e-3, "n_workers": None, "error_norm": "paired"}
    assert coerce_integration_settings(None) == {}
    with pytest.raises(ConfigurationError, match="mapping"):
        coerce_integration_settings([1e-3])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
