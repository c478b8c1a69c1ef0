"""
Synthetic roach-infestation data for validation and testing.

This module generates count data with the same schema as the reference
roaches dataset (``y, roach1, treatment, senior, exposure2``) from a known
negative-binomial data-generating process, so that model fits and
cross-validation diagnostics can be checked against ground truth.

DATA GENERATION MODEL:
    log(mu_i) = intercept + b_roach1 * roach1_i / 100 + b_treatment * treatment_i
                + b_senior * senior_i + log(exposure2_i)
    y_i ~ NegativeBinomial(mean=mu_i, reciprocal_dispersion=phi)

A small phi gives the two features that make a Poisson fit misbehave on
this kind of data: a large share of zeros and a long right tail.

EDGE CASES:
- ``roach1`` is produced on the raw (unscaled) count scale; the loader
  applies the /100 rescaling, exactly as for the reference dataset
- Exposure is strictly positive by construction
"""

import logging
import os
from typing import Dict, Optional

import numpy as np
import pandas as pd

from model.constants import ROACH1_SCALE
from utils.file_utils import ensure_dir_exists

logger = logging.getLogger(__name__)

# Posterior means of the full negative-binomial model on the reference data
DEFAULT_TRUE_PARAMS: Dict[str, float] = {
    "Intercept": 2.84,
    "roach1": 1.31,
    "treatment": -0.78,
    "senior": -0.34,
    "reciprocal_dispersion": 0.27,
}


def simulate_roach_data(
    n_observations: int = 262,
    treatment_share: float = 0.6,
    senior_share: float = 0.3,
    pre_zero_share: float = 0.3,
    true_params: Optional[Dict[str, float]] = None,
    random_seed: int = 2017,
    output_file: Optional[str] = None,
) -> pd.DataFrame:
    """
    Generate a synthetic roaches-style dataset with known coefficients.

    Args:
        n_observations: Number of apartments
        treatment_share: Probability an apartment received the treatment
        senior_share: Probability an apartment is in a senior building
        pre_zero_share: Probability of a zero pre-treatment count
        true_params: Coefficients of the data-generating process
            (defaults to ``DEFAULT_TRUE_PARAMS``)
        random_seed: Seed for the numpy Generator
        output_file: Optional CSV path to write the data to

    Returns:
        DataFrame with columns y, roach1, treatment, senior, exposure2
    """
    if n_observations <= 0:
        raise ValueError(f"n_observations must be positive, got {n_observations}")

    params = dict(DEFAULT_TRUE_PARAMS)
    if true_params:
        params.update(true_params)

    rng = np.random.default_rng(random_seed)

    treatment = rng.binomial(1, treatment_share, size=n_observations)
    senior = rng.binomial(1, senior_share, size=n_observations)

    # Pre-treatment counts: zero-inflated log-normal with a heavy right tail
    roach1 = np.round(rng.lognormal(mean=3.0, sigma=1.4, size=n_observations), 2)
    roach1[rng.random(n_observations) < pre_zero_share] = 0.0
    roach1 = np.minimum(roach1, 450.0)

    # Most apartments were trapped for the nominal period
    exposure2 = np.where(
        rng.random(n_observations) < 0.75,
        1.0,
        np.round(rng.uniform(0.2, 1.6, size=n_observations), 3),
    )

    eta = (
        params["Intercept"]
        + params["roach1"] * roach1 / ROACH1_SCALE
        + params["treatment"] * treatment
        + params["senior"] * senior
        + np.log(exposure2)
    )
    mu = np.exp(eta)
    phi = params["reciprocal_dispersion"]
    y = rng.negative_binomial(n=phi, p=phi / (phi + mu))

    data = pd.DataFrame({
        "y": y.astype(int),
        "roach1": roach1,
        "treatment": treatment.astype(int),
        "senior": senior.astype(int),
        "exposure2": exposure2,
    })

    logger.info(
        f"Simulated {n_observations} observations "
        f"({int(treatment.sum())} treatment, zero share {np.mean(y == 0):.2f})"
    )

    if output_file:
        ensure_dir_exists(os.path.dirname(os.path.abspath(output_file)))
        data.to_csv(output_file, index=False)
        logger.info(f"Saved simulated data to {output_file}")

    return data
