"""
Constants for the count-regression LOO analysis.

This module centralizes constants and default configuration values used
throughout the codebase.
"""
from typing import Tuple

# =======================================================
# Dataset
# =======================================================

RESPONSE_COL = "y"
OFFSET_COL = "exposure2"
COVARIATES: Tuple[str, ...] = ("roach1", "treatment", "senior")
REQUIRED_COLUMNS: Tuple[str, ...] = (RESPONSE_COL,) + COVARIATES + (OFFSET_COL,)

# roach1 is divided by this once at load time
ROACH1_SCALE = 100.0

# =======================================================
# Priors
# =======================================================

DEFAULT_INTERCEPT_PRIOR_SD = 5.0
DEFAULT_SLOPE_PRIOR_SD = 2.5
DEFAULT_DISPERSION_PRIOR_RATE = 1.0

INTERCEPT_NAME = "Intercept"
DISPERSION_NAME = "reciprocal_dispersion"

# =======================================================
# MCMC sampling parameters
# =======================================================

DEFAULT_DRAWS = 1000
DEFAULT_TUNE = 1000
DEFAULT_CHAINS = 4
DEFAULT_TARGET_ACCEPT = 0.9
DEFAULT_RANDOM_SEED = 12345

# Convergence thresholds for diagnostic warnings
RHAT_THRESHOLD = 1.01
MIN_ESS_PER_CHAIN = 100

# =======================================================
# PSIS-LOO
# =======================================================

# Pareto k categories (Vehtari et al. 2017)
KHAT_GOOD = 0.5
KHAT_THRESHOLD = 0.7
KHAT_VERY_BAD = 1.0

# Smallest number of posterior draws k-hat is computed from
MIN_PSIS_DRAWS = 100

# =======================================================
# Posterior predictive checks
# =======================================================

DEFAULT_PPC_STATISTIC = "prop_zero"
DEFAULT_PPC_INTERVAL = 0.95
