"""
Main CLI entry point for polyavg.
"""

import argparse
import importlib
import sys
from typing import Callable

from polyavg import __version__
from polyavg.core.logging_config import setup_logging, get_logger

logger = get_logger("cli.main")


def load_model(path: str) -> Callable:
    """
    Import a model callable from ``module:function``.

    Parameters
    ----------
    path : str
        Import path, e.g. ``mypackage.models:dimer_spectrum``

    Returns
    -------
    callable
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Model must be given as module:function, got '{path}'")
    module = importlib.import_module(module_name)
    model = module
    for part in attr.split("."):
        model = getattr(model, part)
    if not callable(model):
        raise TypeError(f"'{path}' is not callable")
    return model


def average_cmd(args):
    """Averaging command."""
    from polyavg.averaging.config import AveragingConfig

    logger.info(f"Loading configuration from {args.config}")
    config = AveragingConfig.from_file(args.config)
    model = load_model(args.model)

    driver = config.build_driver(model)
    result = driver.average()
    print(result.summary())

    points = args.naive
    if points is None and args.compare:
        points = config.naive_points
    if points:
        comparison = driver.compare(points=points, result=result)
        print("\nNaive grid comparison:")
        print(comparison.to_string(index=False, float_format=lambda v: f"{v:.6e}"))

    logger.info("Averaging complete")


def check_weights_cmd(args):
    """Weight normalization command."""
    from polyavg.averaging.config import AveragingConfig

    logger.info(f"Loading configuration from {args.config}")
    config = AveragingConfig.from_file(args.config)
    if config.mode != "expectation":
        print(f"No weights to check in {config.mode} mode.")
        return

    registry = config.build_registry()
    reports = [
        registry.check_normalization(p.name, (p.domain.lower, p.domain.upper))
        for p in config.parameters
    ]

    print(f"{'Parameter':<20} {'Weight':<40} {'Mass':>10} {'Captured':>10}")
    for report in reports:
        description = registry.get(report.name).description
        print(
            f"{report.name:<20} {description:<40} "
            f"{report.total_mass:>10.6f} {report.captured_mass:>10.6f}"
        )
    for message in registry.warnings_for(reports):
        print(f"WARNING: {message}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="polyavg: ensemble-averaged spectra by adaptive cubature",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Averaging command
    average_parser = subparsers.add_parser(
        "average", help="Average a model spectrum over parameter distributions"
    )
    average_parser.add_argument(
        "config", type=str, help="Path to configuration file (YAML or JSON)"
    )
    average_parser.add_argument(
        "--model", type=str, required=True, help="Model callable as module:function"
    )
    average_parser.add_argument(
        "--naive",
        type=int,
        default=None,
        help="Also compare against a naive grid with this many points per parameter",
    )
    average_parser.add_argument(
        "--compare",
        action="store_true",
        help="Compare against a naive grid using the configured naive_points",
    )
    average_parser.set_defaults(func=average_cmd)

    # Weight check command
    weights_parser = subparsers.add_parser(
        "check-weights", help="Report normalization of configured weights"
    )
    weights_parser.add_argument(
        "config", type=str, help="Path to configuration file (YAML or JSON)"
    )
    weights_parser.set_defaults(func=check_weights_cmd)

    args = parser.parse_args()

    # Setup logging
    setup_logging(level=args.log_level)

    # Execute command
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except Exception as e:
        logger.error(f"Error executing command: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
