"""
Approximate leave-one-out cross-validation with Pareto-smoothed
importance sampling (PSIS-LOO).

For each observation i the full-posterior draws are reweighted by
1 / p(y_i | theta_s) to mimic a posterior that never saw y_i. The largest
weights are replaced by expected order statistics of a generalized Pareto
distribution fitted to the tail, which stabilises the estimate; the fitted
shape parameter k-hat tells how far the estimate can be trusted:

    k < 0.5         good
    0.5 <= k < 0.7  ok
    0.7 <= k < 1    bad: the importance sampling estimate is unreliable
    k >= 1          very bad: the estimator variance may be infinite

Every observation is kept and reported, whatever its k-hat.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import arviz as az
import numpy as np
import pandas as pd
import xarray as xr
from scipy.special import logsumexp

from utils.logging_utils import logger, log_step
from model.constants import KHAT_GOOD, KHAT_THRESHOLD, KHAT_VERY_BAD, MIN_PSIS_DRAWS
from model.exceptions import ModelEvaluationError
from model.results import DiagnosticWarning, FittedModel


@dataclass(frozen=True, eq=False)
class LooResult:
    """PSIS-LOO estimate for one fitted model."""
    model_name: str
    elpd_loo: float
    se: float
    p_loo: float
    lppd: float
    pointwise_elpd: np.ndarray
    pareto_k: np.ndarray
    n_samples: int
    reff: float
    khat_threshold: float = KHAT_THRESHOLD
    diagnostics: Tuple[DiagnosticWarning, ...] = ()

    @property
    def n_observations(self) -> int:
        return int(len(self.pointwise_elpd))

    @property
    def looic(self) -> float:
        return -2.0 * self.elpd_loo

    @property
    def looic_se(self) -> float:
        return 2.0 * self.se

    @property
    def flagged_observations(self) -> np.ndarray:
        """Indices of observations whose k-hat exceeds the threshold."""
        return np.flatnonzero(self.pareto_k > self.khat_threshold)

    @property
    def n_high_k(self) -> int:
        return int(len(self.flagged_observations))

    @property
    def is_reliable(self) -> bool:
        return self.n_high_k == 0

    def pareto_k_counts(self) -> Dict[str, int]:
        return summarize_pareto_k(self.pareto_k)

    def pointwise_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "elpd_loo": self.pointwise_elpd,
            "pareto_k": self.pareto_k,
            "flagged": self.pareto_k > self.khat_threshold,
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "elpd_loo": self.elpd_loo,
            "se": self.se,
            "p_loo": self.p_loo,
            "looic": self.looic,
            "n_observations": self.n_observations,
            "n_samples": self.n_samples,
            "reff": self.reff,
            "pareto_k_counts": self.pareto_k_counts(),
            "flagged_observations": self.flagged_observations.tolist(),
            "warnings": [w.to_dict() for w in self.diagnostics],
        }


def summarize_pareto_k(pareto_k: np.ndarray) -> Dict[str, int]:
    """Count observations in each Pareto k diagnostic category."""
    k = np.asarray(pareto_k, dtype=float)
    return {
        "good": int(np.sum(k < KHAT_GOOD)),
        "ok": int(np.sum((k >= KHAT_GOOD) & (k < KHAT_THRESHOLD))),
        "bad": int(np.sum((k >= KHAT_THRESHOLD) & (k < KHAT_VERY_BAD))),
        "very_bad": int(np.sum(k >= KHAT_VERY_BAD)),
        "total": int(len(k)),
    }


def relative_efficiency(fitted: FittedModel) -> float:
    """
    Relative MCMC efficiency used to size the Pareto tail.

    Mean-ESS of the posterior divided by the number of draws; 1 for a
    single chain.
    """
    if fitted.n_chains == 1:
        return 1.0
    ess = az.ess(fitted.idata.posterior, method="mean")
    values = np.hstack([ess[v].values.ravel() for v in ess.data_vars])
    values = values[np.isfinite(values)]
    if values.size == 0:
        return 1.0
    return float(values.mean() / fitted.n_samples)


class PsisLoo:
    """
    Computes PSIS-LOO for fitted models.

    Args:
        khat_threshold: k-hat above which an observation is flagged
        min_draws: Smallest number of pooled draws PSIS is run on
    """

    def __init__(self, khat_threshold: float = KHAT_THRESHOLD, min_draws: int = MIN_PSIS_DRAWS):
        self.khat_threshold = khat_threshold
        self.min_draws = min_draws

    def compute(self, fitted: FittedModel, reff: Optional[float] = None) -> LooResult:
        """
        Estimate the expected log predictive density of ``fitted``.

        Raises:
            ModelEvaluationError: If the model has no log-likelihood or too few draws
        """
        try:
            log_lik = fitted.log_likelihood_matrix()
        except KeyError as e:
            raise ModelEvaluationError(str(e)) from e

        n_obs, n_samples = log_lik.shape
        if n_samples < self.min_draws:
            raise ModelEvaluationError(
                f"PSIS-LOO for {fitted.name} needs at least {self.min_draws} draws, got {n_samples}"
            )
        if not np.all(np.isfinite(log_lik)):
            raise ModelEvaluationError(f"Non-finite log-likelihood values in model {fitted.name}")

        if reff is None:
            reff = relative_efficiency(fitted)

        log_ratios = xr.DataArray(-log_lik, dims=("obs_id", "__sample__"))
        log_weights, pareto_k = az.psislw(log_ratios, reff)
        log_weights = np.asarray(log_weights)
        pareto_k = np.asarray(pareto_k, dtype=float)

        pointwise_elpd = logsumexp(log_weights + log_lik, axis=1)
        pointwise_lppd = logsumexp(log_lik, axis=1) - np.log(n_samples)

        elpd = float(pointwise_elpd.sum())
        se = float(np.sqrt(n_obs * np.var(pointwise_elpd)))
        lppd = float(pointwise_lppd.sum())

        diagnostics = self._khat_warnings(fitted.name, pareto_k)

        result = LooResult(
            model_name=fitted.name,
            elpd_loo=elpd,
            se=se,
            p_loo=lppd - elpd,
            lppd=lppd,
            pointwise_elpd=pointwise_elpd,
            pareto_k=pareto_k,
            n_samples=n_samples,
            reff=float(reff),
            khat_threshold=self.khat_threshold,
            diagnostics=tuple(diagnostics),
        )

        logger.info(
            f"LOO for '{fitted.name}': elpd_loo = {elpd:.1f} (SE {se:.1f}), "
            f"p_loo = {result.p_loo:.1f}, {result.n_high_k} of {n_obs} observations with k > {self.khat_threshold}"
        )
        for warning in diagnostics:
            logger.warning(f"Model {fitted.name}: {warning}")

        return result

    def _khat_warnings(self, model_name: str, pareto_k: np.ndarray):
        warnings = []
        n_obs = len(pareto_k)
        high = np.flatnonzero(pareto_k > self.khat_threshold)
        if high.size:
            warnings.append(DiagnosticWarning(
                source="loo",
                code="high_pareto_k",
                message=(
                    f"{high.size} of {n_obs} observations have Pareto k > {self.khat_threshold}; "
                    f"the PSIS-LOO estimate for {model_name} is unreliable"
                ),
                details={"observations": high.tolist(), "max_k": float(np.max(pareto_k))},
            ))
        very_high = np.flatnonzero(pareto_k > KHAT_VERY_BAD)
        if very_high.size:
            warnings.append(DiagnosticWarning(
                source="loo",
                code="very_high_pareto_k",
                message=(
                    f"{very_high.size} observations have Pareto k > {KHAT_VERY_BAD}; "
                    "importance sampling variance may be infinite"
                ),
                details={"observations": very_high.tolist()},
            ))
        return warnings


@log_step("Computing PSIS-LOO")
def compute_loo(
    fitted: FittedModel,
    reff: Optional[float] = None,
    khat_threshold: float = KHAT_THRESHOLD,
    min_draws: int = MIN_PSIS_DRAWS,
) -> LooResult:
    """Compute PSIS-LOO for one fitted model."""
    return PsisLoo(khat_threshold=khat_threshold, min_draws=min_draws).compute(fitted, reff=reff)
