#!/usr/bin/env python3
"""
Main entry point for the count-model LOO analysis.

This script provides a unified interface to the analysis:
1. Fit the Poisson and negative-binomial model grids and compare them
   with PSIS-LOO (``--run full``)
2. Describe a dataset without fitting anything (``--run describe``)
3. Write a simulated roach dataset to CSV (``--run simulate``)

Usage:
    count-loo --run full --dataset roaches
    count-loo --run full --dataset simulated_roaches --draws 500 --chains 2
    count-loo --run describe --dataset roaches
    count-loo --run simulate --output data/datasets/simulated.csv
"""
import argparse
import sys
from typing import List, Optional

from config.config_manager import ConfigManager
from data.data_loader import DataLoader
from data.simulation import simulate_roach_data
from model.exceptions import AnalysisError, ConfigurationError
from model.model_runner import ModelRunner
from utils.logging_utils import get_logger, LoggingManager, APP_LOGGER_NAME

# Get logger for this module
logger = get_logger()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the count-model LOO analysis."""
    args = parse_arguments(argv)

    try:
        config_manager = setup_config(args)
    except ConfigurationError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"Invalid configuration: {str(e)}")
        return 2

    cfg = config_manager.app_config
    setup_logging(cfg.log_level, cfg.log_file if cfg.log_to_file else None)

    try:
        if args.run == "full":
            return run_full_analysis_handler(config_manager)
        elif args.run == "describe":
            return run_describe_handler(config_manager)
        elif args.run == "simulate":
            return run_simulate_handler(args, config_manager)
        else:
            logger.error(f"Unknown run type: {args.run}")
            return 1
    except AnalysisError as e:
        logger.error(f"Error running {args.run}: {str(e)}")
        logger.error("Analysis failed")
        return 1


def run_full_analysis_handler(config_manager: ConfigManager) -> int:
    """Handler for running the full model comparison."""
    runner = ModelRunner(config_manager=config_manager)
    results = runner.run_analysis()

    if not results["comparison_table"].empty:
        logger.info(f"Model ranking:\n{results['comparison_table'].to_string(float_format='%.1f')}")
    for comparison in results["comparisons"]:
        caveat = "" if comparison.is_reliable else " (unreliable: high Pareto k)"
        logger.info(f"{comparison}{caveat}")

    LoggingManager.log_dict(logger, "Run summary", {
        "models fitted": len(results["fits"]),
        "reliability warnings": len(results["warnings"]),
        "results directory": results["results_dir"],
    })
    return 0


def run_describe_handler(config_manager: ConfigManager) -> int:
    """Handler for describing a dataset."""
    cfg = config_manager.app_config
    loader = DataLoader(
        data_dir=cfg.data_dir or None,
        random_seed=cfg.data_random_seed,
        download=cfg.data_download,
    )
    data = loader.load_dataset(cfg.data_dataset)
    LoggingManager.log_dataframe_info(logger, cfg.data_dataset, data, include_stats=True)
    LoggingManager.log_dict(logger, f"Dataset '{cfg.data_dataset}'", loader.describe(data))
    return 0


def run_simulate_handler(args: argparse.Namespace, config_manager: ConfigManager) -> int:
    """Handler for writing a simulated dataset."""
    if not args.output:
        logger.error("--run simulate needs --output")
        return 1
    simulate_roach_data(
        n_observations=args.n_observations,
        random_seed=config_manager.app_config.data_random_seed,
        output_file=args.output,
    )
    logger.info(f"Simulated dataset written to {args.output}")
    return 0


def setup_config(args: argparse.Namespace) -> ConfigManager:
    """
    Set up and validate configuration.

    Command line values override the configuration file and environment.

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    config_manager = ConfigManager(config_path=args.config)
    config_manager.update(
        data_dataset=args.dataset,
        data_dir=args.data_dir,
        data_download=False if args.no_download else None,
        results_dir=args.results_dir,
        log_level=args.log_level,
        model_n_draws=args.draws,
        model_n_tune=args.tune,
        model_n_chains=args.chains,
        model_cores=args.cores,
        model_random_seed=args.seed,
        model_target_accept=args.target_accept,
        create_plots=False if args.no_plots else None,
        save_traces=True if args.save_traces else None,
    )
    return config_manager


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Options left unset fall back to the configuration file, then to
    ``COUNTLOO_*`` environment variables, then to the defaults.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description="PSIS-LOO comparison of Poisson and negative-binomial count models")

    # General options
    parser.add_argument("--config", type=str, help="Path to configuration file")
    parser.add_argument("--results-dir", type=str, help="Directory to store results")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    parser.add_argument("--run", choices=["full", "describe", "simulate"], default="full",
                        help="Operation to perform")

    # Data options
    parser.add_argument("--dataset", type=str, help=f"Dataset name, one of {DataLoader.available_datasets()}")
    parser.add_argument("--data-dir", type=str, help="Directory holding dataset CSV files")
    parser.add_argument("--no-download", action="store_true",
                        help="Do not download a missing roaches.csv")
    parser.add_argument("--output", type=str, help="Output CSV for --run simulate")
    parser.add_argument("--n-observations", type=int, default=262,
                        help="Number of rows for --run simulate")

    # Sampling options
    parser.add_argument("--draws", type=int, help="Number of retained draws per chain")
    parser.add_argument("--tune", type=int, help="Number of warm-up steps per chain")
    parser.add_argument("--chains", type=int, help="Number of MCMC chains")
    parser.add_argument("--cores", type=int, help="Parallel worker processes (0: all processors)")
    parser.add_argument("--seed", type=int, help="Random seed for sampling")
    parser.add_argument("--target-accept", type=float, help="Target acceptance rate for NUTS")

    # Output options
    parser.add_argument("--no-plots", action="store_true", help="Skip diagnostic plots")
    parser.add_argument("--save-traces", action="store_true", help="Save posterior traces as netCDF")

    return parser.parse_args(argv)


def setup_logging(log_level: str, log_file: Optional[str] = None) -> None:
    """
    Set up logging based on the specified log level.

    Args:
        log_level: Log level name
        log_file: Optional log file in addition to the console
    """
    LoggingManager.setup_logging(
        logger_name=APP_LOGGER_NAME,
        log_level=log_level,
        log_file=log_file,
    )


if __name__ == "__main__":
    sys.exit(main())
