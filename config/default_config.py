#!/usr/bin/env python3
"""
Default configuration for the count-model LOO analysis.
This module contains default values for run settings, sampling and plots.
"""
import os
from typing import Any, Dict, Optional

from model.constants import (
    DEFAULT_CHAINS,
    DEFAULT_DRAWS,
    DEFAULT_RANDOM_SEED,
    DEFAULT_TARGET_ACCEPT,
    DEFAULT_TUNE,
)

# Define the base directory for the project (1 level up from this file)
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))

# Data defaults
DEFAULT_DATASET = "roaches"
DEFAULT_DATA_SEED = 2017

# Results and output defaults
DEFAULT_RESULTS_DIR = "results"
DEFAULT_LOG_FILE = os.path.join("logs", "count_loo.log")
DEFAULT_LOG_LEVEL = "INFO"

# Model defaults
DEFAULT_FAMILIES = ["poisson", "negative_binomial"]
DEFAULT_SAMPLING_PARAMS = {
    "draws": DEFAULT_DRAWS,
    "tune": DEFAULT_TUNE,
    "chains": DEFAULT_CHAINS,
    "cores": 0,  # 0: all available processors
    "target_accept": DEFAULT_TARGET_ACCEPT,
    "random_seed": DEFAULT_RANDOM_SEED,
}

# Posterior predictive check defaults
DEFAULT_PPC_SEED = 2024

# Visualization settings
VISUALIZATION_SETTINGS = {
    "plot_dpi": 150,
    "style": "whitegrid",
    "save_format": "png",
}

DEFAULT_CONFIG = {
    "directories": {
        "results_dir": DEFAULT_RESULTS_DIR,
        "logs_dir": os.path.dirname(DEFAULT_LOG_FILE),
    },
    "sampling": DEFAULT_SAMPLING_PARAMS,
    "visualization": VISUALIZATION_SETTINGS,
}


def get_config(section: Optional[str] = None) -> Dict[str, Any]:
    """
    Get default configuration settings.

    Args:
        section: Optional section name to retrieve only a subset of the config

    Returns:
        Dictionary containing configuration settings
    """
    if section is not None:
        if section in DEFAULT_CONFIG:
            return DEFAULT_CONFIG[section]
        else:
            raise ValueError(f"Config section '{section}' not found")
    return DEFAULT_CONFIG
