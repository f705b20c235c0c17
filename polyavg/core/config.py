"""
Configuration management for polyavg.

Provides utilities for loading and validating YAML/JSON configuration files
describing averaged parameters, their weights, channel selection and
integration settings.
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from polyavg.core.exceptions import ConfigurationError
from polyavg.core.logging_config import get_logger

logger = get_logger("core.config")

VALID_MODES = ["expectation", "mean"]
VALID_NORMS = ["individual", "paired", "l1", "l2", "linf"]

# numeric settings of the 'integration' section and their types
INTEGRATION_SETTINGS = {
    "relative_tol": float,
    "absolute_tol": float,
    "normalization_tol": float,
    "max_evals": int,
    "n_workers": int,
    "naive_points": int,
}


def _as_number(key: str, value: Any, kind: type) -> Any:
    # PyYAML reads exponents without a dot (1e-4) as strings
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}") from exc
    if kind is int:
        if not number.is_integer():
            raise ConfigurationError(f"'{key}' must be an integer, got {value!r}")
        return int(number)
    return number


def coerce_integration_settings(integration: Any) -> Dict[str, Any]:
    """
    Convert the numeric entries of an 'integration' section to numbers.

    Parameters
    ----------
    integration : dict or None
        Raw 'integration' section as loaded from file

    Returns
    -------
    dict
        Copy with every known numeric setting cast to float or int;
        ``None`` values are kept

    Raises
    ------
    ConfigurationError
        If the section is not a mapping or a setting is not numeric
    """
    if integration is None:
        return {}
    if not isinstance(integration, dict):
        raise ConfigurationError("'integration' section must be a mapping")
    settings = dict(integration)
    for key, kind in INTEGRATION_SETTINGS.items():
        if settings.get(key) is not None:
            settings[key] = _as_number(key, settings[key], kind)
    return settings


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters
    ----------
    config_path : str or Path
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    dict
        Configuration dictionary

    Raises
    ------
    FileNotFoundError
        If config file does not exist
    ValueError
        If file format is not supported
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    suffix = config_path.suffix.lower()

    with open(config_path, "r") as f:
        if suffix in [".yaml", ".yml"]:
            config = yaml.safe_load(f)
        elif suffix == ".json":
            config = json.load(f)
        else:
            raise ValueError(
                f"Unsupported config file format: {suffix}. " "Use .yaml, .yml, or .json"
            )

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    logger.info(f"Loaded configuration from {config_path}")
    return config


def save_config(config: Dict[str, Any], config_path: Union[str, Path]) -> None:
    """
    Save configuration to YAML or JSON file.

    Unknown suffixes are written as YAML with a ``.yaml`` suffix.

    Parameters
    ----------
    config : dict
        Configuration dictionary
    config_path : str or Path
        Path to output file
    """
    config_path = Path(config_path)
    suffix = config_path.suffix.lower()

    if suffix == ".json":
        with open(config_path, "w") as f:
            json.dump(config, f, indent=2)
    else:
        if suffix not in [".yaml", ".yml"]:
            config_path = config_path.with_suffix(".yaml")
        with open(config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Saved configuration to {config_path}")


def validate_averaging_config(config: Dict[str, Any]) -> bool:
    """
    Validate averaging configuration structure.

    Parameters
    ----------
    config : dict
        Configuration dictionary

    Returns
    -------
    bool
        True if valid

    Raises
    ------
    ConfigurationError
        If configuration is invalid
    """
    if "averaging" not in config:
        raise ConfigurationError("Configuration must contain 'averaging' section")

    averaging = config["averaging"]

    mode = averaging.get("mode", "expectation")
    if mode not in VALID_MODES:
        raise ConfigurationError(f"Invalid averaging mode: {mode}. Must be one of: {VALID_MODES}")

    parameters = averaging.get("parameters")
    if not isinstance(parameters, list) or not parameters:
        raise ConfigurationError("'parameters' must be a non-empty list")

    names = []
    for param in parameters:
        for field in ["name", "domain"]:
            if field not in param:
                raise ConfigurationError(f"Parameter config missing required field: {field}")
        if not isinstance(param["domain"], (list, tuple)) or len(param["domain"]) != 2:
            raise ConfigurationError(f"Parameter '{param['name']}' domain must be [lower, upper]")
        if mode == "expectation" and "weight" not in param:
            raise ConfigurationError(
                f"Parameter '{param['name']}' needs a 'weight' in expectation mode"
            )
        if "weight" in param and "distribution" not in param["weight"]:
            raise ConfigurationError(f"Weight of '{param['name']}' missing 'distribution'")
        names.append(param["name"])

    if len(set(names)) != len(names):
        raise ConfigurationError(f"Parameter names must be unique: {names}")

    if "channels" in averaging:
        channels = averaging["channels"]
        for field in ["quantities", "variables"]:
            if not channels.get(field):
                raise ConfigurationError(f"Channel config missing '{field}'")

    integration = coerce_integration_settings(config.get("integration"))
    if integration.get("relative_tol", 1.0) <= 0:
        raise ConfigurationError("relative_tol must be positive")
    if integration.get("absolute_tol", 0.0) < 0:
        raise ConfigurationError("absolute_tol must be non-negative")
    if integration.get("normalization_tol", 1.0) <= 0:
        raise ConfigurationError("normalization_tol must be positive")
    if integration.get("max_evals", 1) < 1:
        raise ConfigurationError("max_evals must be >= 1")
    norm = integration.get("error_norm")
    if norm is not None and str(norm).lower() not in VALID_NORMS:
        raise ConfigurationError(f"Invalid error norm: {norm}. Must be one of: {VALID_NORMS}")

    return True
