"""
Posterior predictive checks.

One replicate dataset is drawn per posterior draw, a test statistic is
computed on every replicate and on the observed data, and the position
of the observed value within the replicated distribution is summarised
with tail probabilities.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
import pymc as pm

from utils.logging_utils import logger, log_step
from model.constants import DEFAULT_PPC_INTERVAL, DEFAULT_PPC_STATISTIC
from model.exceptions import ModelEvaluationError
from model.results import FittedModel


def prop_zero(y: np.ndarray) -> np.ndarray:
    """Proportion of zero counts along the last axis."""
    return np.mean(np.asarray(y) == 0, axis=-1)


# Statistics operate on the last axis so a (replicates, observations)
# array is reduced in one call
STATISTICS: Dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "prop_zero": prop_zero,
    "mean": lambda y: np.mean(y, axis=-1),
    "sd": lambda y: np.std(y, axis=-1, ddof=1),
    "max": lambda y: np.max(y, axis=-1),
}


def get_statistic(name: str) -> Callable[[np.ndarray], np.ndarray]:
    if name not in STATISTICS:
        raise ModelEvaluationError(f"Unknown test statistic '{name}'", details=f"available: {sorted(STATISTICS)}")
    return STATISTICS[name]


@dataclass(frozen=True, eq=False)
class PPCResult:
    """
    Observed statistic against its posterior predictive distribution.

    Tail probabilities of a non-degenerate replicate set use the add-one
    rank estimate ``(count + 1) / (S + 2)``, so they stay strictly inside
    (0, 1) however far the observed value lies from every replicate.
    Only a degenerate set (all replicates equal) yields exactly 0 or 1.
    """
    model_name: str
    statistic: str
    observed: float
    replicated: np.ndarray

    @property
    def n_replicates(self) -> int:
        return int(len(self.replicated))

    def _tail(self, count: int) -> float:
        if self.is_degenerate:
            return float(count) / self.n_replicates
        return (count + 1.0) / (self.n_replicates + 2.0)

    @property
    def p_upper(self) -> float:
        """Tail probability of replicates at least as large as the observed value."""
        return self._tail(int(np.sum(self.replicated >= self.observed)))

    @property
    def p_lower(self) -> float:
        """Tail probability of replicates at most as large as the observed value."""
        return self._tail(int(np.sum(self.replicated <= self.observed)))

    @property
    def p_two_sided(self) -> float:
        return float(min(1.0, 2.0 * min(self.p_upper, self.p_lower)))

    @property
    def is_degenerate(self) -> bool:
        """All replicates share one value."""
        return bool(np.ptp(self.replicated) == 0)

    def interval(self, prob: float = DEFAULT_PPC_INTERVAL) -> Tuple[float, float]:
        """Central interval of the replicated statistic."""
        if not 0 < prob < 1:
            raise ValueError(f"prob must be in (0, 1), got {prob}")
        tail = (1.0 - prob) / 2.0
        lo, hi = np.quantile(self.replicated, [tail, 1.0 - tail])
        return float(lo), float(hi)

    def observed_in_interval(self, prob: float = DEFAULT_PPC_INTERVAL) -> bool:
        lo, hi = self.interval(prob)
        return bool(lo <= self.observed <= hi)

    def to_dict(self) -> Dict[str, Any]:
        lo, hi = self.interval()
        return {
            "model": self.model_name,
            "statistic": self.statistic,
            "observed": self.observed,
            "replicated_mean": float(np.mean(self.replicated)),
            "replicated_interval": [lo, hi],
            "n_replicates": self.n_replicates,
            "p_upper": self.p_upper,
            "p_lower": self.p_lower,
            "p_two_sided": self.p_two_sided,
            "observed_in_interval": self.observed_in_interval(),
        }


def summarize_replicates(
    observed: np.ndarray,
    replicates: np.ndarray,
    statistic: str = DEFAULT_PPC_STATISTIC,
    model_name: str = "model",
) -> PPCResult:
    """
    Apply a statistic to observed data and to replicate datasets.

    Args:
        observed: Observed responses, shape (n_observations,)
        replicates: Replicated responses, shape (n_replicates, n_observations)
        statistic: Name of a registered statistic
        model_name: Label for the result
    """
    func = get_statistic(statistic)
    observed = np.asarray(observed)
    replicates = np.asarray(replicates)
    if replicates.ndim != 2 or replicates.shape[1] != observed.shape[0]:
        raise ModelEvaluationError(
            f"Replicates of shape {replicates.shape} do not match {observed.shape[0]} observations"
        )
    return PPCResult(
        model_name=model_name,
        statistic=statistic,
        observed=float(func(observed)),
        replicated=np.asarray(func(replicates), dtype=float),
    )


class PosteriorPredictiveChecker:
    """Draws replicate datasets from a FittedModel with PyMC."""

    def __init__(self, random_seed: Optional[int] = None):
        self.random_seed = random_seed

    def draw_replicates(self, fitted: FittedModel) -> np.ndarray:
        """One replicate dataset per posterior draw, shape (n_samples, n_observations)."""
        if fitted.model is None:
            raise ModelEvaluationError(f"Model {fitted.name} has no PyMC model attached")

        try:
            ppc = pm.sample_posterior_predictive(
                fitted.idata,
                model=fitted.model,
                var_names=[fitted.spec.response],
                random_seed=self.random_seed,
                progressbar=False,
                extend_inferencedata=False,
            )
        except (ValueError, RuntimeError) as e:
            raise ModelEvaluationError(f"Posterior predictive sampling failed for {fitted.name}: {str(e)}") from e

        values = ppc.posterior_predictive[fitted.spec.response].transpose("chain", "draw", ...).values
        return values.reshape(-1, values.shape[-1])

    @log_step("Posterior predictive check")
    def check(self, fitted: FittedModel, statistic: str = DEFAULT_PPC_STATISTIC) -> PPCResult:
        get_statistic(statistic)
        replicates = self.draw_replicates(fitted)
        result = summarize_replicates(fitted.observed, replicates, statistic, model_name=fitted.name)

        lo, hi = result.interval()
        logger.info(
            f"PPC '{statistic}' for {fitted.name}: observed {result.observed:.3f}, "
            f"replicated 95% interval [{lo:.3f}, {hi:.3f}], p_upper = {result.p_upper:.3f}"
        )
        if not result.observed_in_interval():
            logger.warning(
                f"Observed {statistic} for {fitted.name} lies outside the central 95% "
                "of its posterior predictive distribution"
            )
        return result


def posterior_predictive_check(
    fitted: FittedModel,
    statistic: str = DEFAULT_PPC_STATISTIC,
    random_seed: Optional[int] = None,
) -> PPCResult:
    """Run a posterior predictive check for one statistic."""
    return PosteriorPredictiveChecker(random_seed=random_seed).check(fitted, statistic)
