"""
Synthetic posterior draws for fast tests.

Log-likelihood matrices are built directly so that PSIS behaviour is
known in advance: well-behaved observations have a narrow, light-tailed
log-likelihood across draws, while a "heavy" observation gets
log-likelihood 2 * log(U), which makes the importance ratios Pareto
distributed with tail index 0.5 (true k = 2).
"""
import os
import sys
from typing import Dict, Optional, Sequence

import arviz as az
import numpy as np

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from model.results import FittedModel
from model.specification import Family, ModelSpec


def make_log_likelihood(
    n_obs: int = 30,
    n_chains: int = 2,
    n_draws: int = 500,
    heavy: Sequence[int] = (),
    level: float = -1.5,
    seed: int = 1,
) -> np.ndarray:
    """(chains, draws, observations) log-likelihood array."""
    rng = np.random.default_rng(seed)
    offsets = rng.normal(0.0, 0.3, size=n_obs)
    ll = level + offsets + rng.normal(0.0, 0.05, size=(n_chains, n_draws, n_obs))
    for i in heavy:
        ll[:, :, i] = 2.0 * np.log(rng.uniform(size=(n_chains, n_draws)))
    return ll


def make_posterior(
    spec: ModelSpec,
    n_chains: int = 2,
    n_draws: int = 500,
    seed: int = 2,
) -> Dict[str, np.ndarray]:
    rng = np.random.default_rng(seed)
    posterior = {}
    for i, name in enumerate(spec.parameter_names):
        posterior[name] = rng.normal(loc=float(i), scale=0.5, size=(n_chains, n_draws))
    if "reciprocal_dispersion" in posterior:
        posterior["reciprocal_dispersion"] = np.abs(posterior["reciprocal_dispersion"]) + 0.1
    return posterior


def make_fitted(
    spec: Optional[ModelSpec] = None,
    log_lik: Optional[np.ndarray] = None,
    observed: Optional[np.ndarray] = None,
    include_log_likelihood: bool = True,
    seed: int = 3,
) -> FittedModel:
    """FittedModel backed by ``az.from_dict`` instead of a sampler run."""
    spec = spec or ModelSpec(Family.POISSON)
    if log_lik is None:
        log_lik = make_log_likelihood(seed=seed)
    n_chains, n_draws, n_obs = log_lik.shape

    groups = {
        "posterior": make_posterior(spec, n_chains, n_draws, seed=seed),
        "sample_stats": {"diverging": np.zeros((n_chains, n_draws), dtype=bool)},
    }
    if include_log_likelihood:
        groups["log_likelihood"] = {spec.response: log_lik}
    idata = az.from_dict(**groups)

    if observed is None:
        observed = np.random.default_rng(seed).poisson(3.0, size=n_obs)
    return FittedModel(spec=spec, idata=idata, observed=np.asarray(observed))
