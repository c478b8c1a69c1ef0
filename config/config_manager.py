"""
Configuration manager for the count-model LOO analysis.

This module provides a centralized configuration management system with
a structured configuration class using dataclasses.
"""
import json
import os
from typing import Dict, Any, Optional, List, Union
from pathlib import Path
from dataclasses import dataclass, asdict, field, fields

from utils.logging_utils import get_logger
from config.default_config import (
    DEFAULT_DATA_SEED,
    DEFAULT_DATASET,
    DEFAULT_FAMILIES,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PPC_SEED,
    DEFAULT_RESULTS_DIR,
    DEFAULT_SAMPLING_PARAMS,
)
from model.constants import (
    COVARIATES,
    DEFAULT_DISPERSION_PRIOR_RATE,
    DEFAULT_INTERCEPT_PRIOR_SD,
    DEFAULT_PPC_INTERVAL,
    DEFAULT_PPC_STATISTIC,
    DEFAULT_SLOPE_PRIOR_SD,
    KHAT_THRESHOLD,
    MIN_PSIS_DRAWS,
)
from model.exceptions import ConfigurationError, ModelSpecError
from model.specification import Family, PriorSpec

# Get logger for this module
logger = get_logger()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppConfig:
    """Unified application configuration parameters with prefixed attributes"""
    # App settings
    results_dir: str = DEFAULT_RESULTS_DIR
    create_plots: bool = True
    save_traces: bool = False
    log_level: str = DEFAULT_LOG_LEVEL
    log_to_file: bool = True
    log_file: str = DEFAULT_LOG_FILE

    # Data settings (with data_ prefix)
    data_dataset: str = DEFAULT_DATASET
    data_dir: str = ""  # empty: the package's bundled datasets directory
    data_random_seed: int = DEFAULT_DATA_SEED
    data_download: bool = True  # fetch a missing roaches.csv from its public mirror

    # Model settings (with model_ prefix)
    model_families: List[str] = field(default_factory=lambda: list(DEFAULT_FAMILIES))
    model_covariates: List[str] = field(default_factory=lambda: list(COVARIATES))
    model_n_draws: int = DEFAULT_SAMPLING_PARAMS["draws"]
    model_n_tune: int = DEFAULT_SAMPLING_PARAMS["tune"]
    model_n_chains: int = DEFAULT_SAMPLING_PARAMS["chains"]
    model_cores: int = DEFAULT_SAMPLING_PARAMS["cores"]
    model_target_accept: float = DEFAULT_SAMPLING_PARAMS["target_accept"]
    model_random_seed: int = DEFAULT_SAMPLING_PARAMS["random_seed"]

    # Prior settings (with prior_ prefix)
    prior_intercept_sd: float = DEFAULT_INTERCEPT_PRIOR_SD
    prior_slope_sd: float = DEFAULT_SLOPE_PRIOR_SD
    prior_dispersion_rate: float = DEFAULT_DISPERSION_PRIOR_RATE

    # PSIS-LOO settings (with loo_ prefix)
    loo_khat_threshold: float = KHAT_THRESHOLD
    loo_min_draws: int = MIN_PSIS_DRAWS

    # Posterior predictive check settings (with ppc_ prefix)
    ppc_statistic: str = DEFAULT_PPC_STATISTIC
    ppc_interval: float = DEFAULT_PPC_INTERVAL
    ppc_random_seed: int = DEFAULT_PPC_SEED

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value with fallback to default."""
        return getattr(self, key, default)

    def priors(self) -> PriorSpec:
        return PriorSpec(
            intercept_sd=self.prior_intercept_sd,
            slope_sd=self.prior_slope_sd,
            dispersion_rate=self.prior_dispersion_rate,
        )

    def sampler_settings(self) -> Dict[str, Any]:
        """Keyword arguments for ``CountModelSampler``."""
        return {
            "n_draws": self.model_n_draws,
            "n_tune": self.model_n_tune,
            "n_chains": self.model_n_chains,
            "cores": self.model_cores or None,
            "target_accept": self.model_target_accept,
            "random_seed": self.model_random_seed,
        }


class ConfigManager:
    """
    Configuration manager with a typed configuration object.

    Values are resolved in order: dataclass defaults, JSON file,
    ``COUNTLOO_<FIELD>`` environment variables, explicit ``update`` calls
    (the CLI).
    """

    # Environment variable prefix for overrides
    ENV_PREFIX = "COUNTLOO_"

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to a JSON configuration file.

        Raises:
            ConfigurationError: If the file is malformed or a value is invalid
        """
        self.app_config = AppConfig()

        if config_path:
            self.load_config(config_path)

        self._apply_env_overrides()
        self.validate()

    @staticmethod
    def field_names() -> List[str]:
        return [f.name for f in fields(AppConfig)]

    def load_config(self, config_path: Union[str, Path]) -> None:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to a JSON configuration file.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            logger.warning(f"Configuration file not found: {config_path}")
            return

        try:
            with open(config_path, 'r') as f:
                config_dict = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file {config_path}", details=str(e)) from e

        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a JSON object")

        app_fields = set(self.field_names())
        for key, value in config_dict.items():
            if key in app_fields:
                setattr(self.app_config, key, value)
            else:
                logger.warning(f"Ignoring unknown configuration key '{key}' in {config_path}")

        logger.info(f"Loaded configuration from {config_path}")

    def _convert(self, field_name: str, raw: str) -> Any:
        field_type = type(getattr(self.app_config, field_name))
        if field_type == bool:
            return raw.lower() in ('true', 'yes', '1')
        if field_type == list:
            return [item.strip() for item in raw.split(',') if item.strip()]
        return field_type(raw)

    def _apply_env_overrides(self) -> None:
        """Apply configuration overrides from environment variables."""
        for field_name in self.field_names():
            env_name = f"{self.ENV_PREFIX}{field_name.upper()}"
            if env_name not in os.environ:
                continue
            try:
                value = self._convert(field_name, os.environ[env_name])
            except (ValueError, TypeError) as e:
                raise ConfigurationError(f"Invalid value in {env_name}", details=str(e)) from e
            setattr(self.app_config, field_name, value)
            logger.debug(f"Applied env override for {field_name}: {value}")

    def update(self, **overrides: Any) -> None:
        """
        Override configuration values; ``None`` values are ignored.

        Raises:
            ConfigurationError: For unknown keys or invalid resulting values
        """
        app_fields = set(self.field_names())
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in app_fields:
                raise ConfigurationError(f"Unknown configuration key '{key}'")
            setattr(self.app_config, key, value)
        self.validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self.app_config)

    def save_config(self, filepath: Union[str, Path]) -> None:
        """
        Save the current configuration to a JSON file.

        Args:
            filepath: Path to save the configuration to.
        """
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)

        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=4)

        logger.info(f"Saved configuration to {filepath}")

    def validate(self) -> bool:
        """
        Validate the current configuration.

        Returns:
            True if configuration is valid

        Raises:
            ConfigurationError: Describing every invalid value found
        """
        cfg = self.app_config
        problems = []

        if not cfg.results_dir:
            problems.append("results_dir must not be empty")
        if str(cfg.log_level).upper() not in LOG_LEVELS:
            problems.append(f"log_level must be one of {LOG_LEVELS}, got {cfg.log_level!r}")
        if not cfg.data_dataset:
            problems.append("data_dataset must not be empty")

        if not cfg.model_families:
            problems.append("model_families must name at least one family")
        for family in cfg.model_families:
            try:
                Family.parse(family)
            except ModelSpecError as e:
                problems.append(str(e))
        unknown = [c for c in cfg.model_covariates if c not in COVARIATES]
        if unknown:
            problems.append(f"model_covariates contains unknown covariates {unknown}")
        if len(set(cfg.model_covariates)) != len(cfg.model_covariates):
            problems.append("model_covariates contains duplicates")

        if cfg.model_n_draws < 1:
            problems.append(f"model_n_draws must be positive, got {cfg.model_n_draws}")
        if cfg.model_n_tune < 0:
            problems.append(f"model_n_tune must be non-negative, got {cfg.model_n_tune}")
        if cfg.model_n_chains < 1:
            problems.append(f"model_n_chains must be positive, got {cfg.model_n_chains}")
        if cfg.model_cores < 0:
            problems.append(f"model_cores must be non-negative, got {cfg.model_cores}")
        if not 0 < cfg.model_target_accept < 1:
            problems.append(f"model_target_accept must be in (0, 1), got {cfg.model_target_accept}")

        for name in ("prior_intercept_sd", "prior_slope_sd", "prior_dispersion_rate"):
            if not getattr(cfg, name) > 0:
                problems.append(f"{name} must be positive, got {getattr(cfg, name)}")

        if not cfg.loo_khat_threshold > 0:
            problems.append(f"loo_khat_threshold must be positive, got {cfg.loo_khat_threshold}")
        if cfg.loo_min_draws < 1:
            problems.append(f"loo_min_draws must be positive, got {cfg.loo_min_draws}")
        if not 0 < cfg.ppc_interval < 1:
            problems.append(f"ppc_interval must be in (0, 1), got {cfg.ppc_interval}")

        if problems:
            raise ConfigurationError("Invalid configuration", details="; ".join(problems))

        if cfg.model_n_chains * cfg.model_n_draws < cfg.loo_min_draws:
            logger.warning(
                f"{cfg.model_n_chains} chains x {cfg.model_n_draws} draws is below the "
                f"{cfg.loo_min_draws} draws PSIS-LOO needs; LOO will fail for every model"
            )
        return True
