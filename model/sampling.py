"""
MCMC sampling component.

This module runs NUTS on a PyMC count model and packages the draws,
pointwise log-likelihood and convergence diagnostics into a
``FittedModel``.
"""
import os
from typing import Any, Dict, Optional

import numpy as np
import pymc as pm

from utils.logging_utils import logger, log_step
from model.constants import (
    DEFAULT_CHAINS,
    DEFAULT_DRAWS,
    DEFAULT_RANDOM_SEED,
    DEFAULT_TARGET_ACCEPT,
    DEFAULT_TUNE,
)
from model.diagnostics import ConvergenceDiagnostics
from model.exceptions import SamplingError
from model.results import FittedModel
from model.specification import ModelSpec


def resolve_cores(cores: Optional[int]) -> int:
    """Number of worker processes; ``None`` or 0 means all available processors."""
    if not cores:
        return os.cpu_count() or 1
    if cores < 0:
        raise SamplingError(f"cores must be positive, got {cores}")
    return int(cores)


class CountModelSampler:
    """
    Handles MCMC sampling for count regression models.

    This component is responsible for:
    - Running the NUTS sampler with explicit chain / core settings
    - Storing the pointwise log-likelihood needed for PSIS-LOO
    - Attaching convergence warnings to the result (never failing on them)
    """

    def __init__(
        self,
        n_draws: int = DEFAULT_DRAWS,
        n_tune: int = DEFAULT_TUNE,
        n_chains: int = DEFAULT_CHAINS,
        cores: Optional[int] = None,
        target_accept: float = DEFAULT_TARGET_ACCEPT,
        random_seed: Optional[int] = DEFAULT_RANDOM_SEED,
        progressbar: bool = False,
        diagnostics: Optional[ConvergenceDiagnostics] = None,
    ):
        """
        Initialize the sampler.

        Args:
            n_draws: Number of retained draws per chain
            n_tune: Number of warm-up steps per chain (discarded)
            n_chains: Number of MCMC chains to run
            cores: Parallel worker processes (None: all available processors)
            target_accept: Target acceptance rate for NUTS
            random_seed: Seed for reproducible sampling
            progressbar: Whether PyMC shows a progress bar
            diagnostics: Convergence checker (a default one is created if omitted)
        """
        if n_draws <= 0 or n_chains <= 0:
            raise SamplingError(
                f"n_draws and n_chains must be positive, got draws={n_draws}, chains={n_chains}"
            )
        if n_tune < 0:
            raise SamplingError(f"n_tune must be non-negative, got {n_tune}")

        self.n_draws = n_draws
        self.n_tune = n_tune
        self.n_chains = n_chains
        self.cores = resolve_cores(cores)
        self.target_accept = target_accept
        self.random_seed = random_seed
        self.progressbar = progressbar
        self.diagnostics = diagnostics or ConvergenceDiagnostics()

    @property
    def settings(self) -> Dict[str, Any]:
        return {
            "draws": self.n_draws,
            "tune": self.n_tune,
            "chains": self.n_chains,
            "cores": self.cores,
            "target_accept": self.target_accept,
            "random_seed": self.random_seed,
        }

    @log_step("Running MCMC sampling")
    def sample(self, model: pm.Model, spec: ModelSpec, observed: np.ndarray) -> FittedModel:
        """
        Run NUTS on the given PyMC model.

        Args:
            model: PyMC model built for ``spec``
            spec: Model specification
            observed: Observed responses, kept for predictive checks

        Returns:
            FittedModel with posterior, sample_stats and log_likelihood groups

        Raises:
            SamplingError: If the sampler itself fails
        """
        logger.info(f"Sampling model '{spec.name}' with {self.settings}")

        try:
            with model:
                idata = pm.sample(
                    draws=self.n_draws,
                    tune=self.n_tune,
                    chains=self.n_chains,
                    cores=self.cores,
                    target_accept=self.target_accept,
                    random_seed=self.random_seed,
                    progressbar=self.progressbar,
                    idata_kwargs={"log_likelihood": True},
                )
        except (ValueError, RuntimeError, FloatingPointError) as e:
            raise SamplingError(f"Sampling failed for model {spec.name}: {str(e)}") from e

        convergence, warnings = self.diagnostics.check(idata, spec.parameter_names)
        for warning in warnings:
            logger.warning(f"Model {spec.name}: {warning}")

        fitted = FittedModel(
            spec=spec,
            idata=idata,
            observed=np.asarray(observed),
            model=model,
            diagnostics=tuple(warnings),
            convergence=convergence,
        )

        logger.info(
            f"Completed sampling for '{spec.name}': {fitted.n_samples} draws "
            f"({fitted.n_chains} chains x {fitted.n_draws})"
        )
        return fitted
