"""
Convergence diagnostics for MCMC fits.

Non-convergence is reported, never raised: ``check`` returns the summary
numbers together with a list of ``DiagnosticWarning`` records that the
sampler attaches to the ``FittedModel``.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

import arviz as az
import numpy as np

from utils.logging_utils import logger
from model.constants import MIN_ESS_PER_CHAIN, RHAT_THRESHOLD
from model.results import DiagnosticWarning


class ConvergenceDiagnostics:
    """
    Computes R-hat, bulk/tail ESS and divergence counts for a trace.

    Thresholds follow current practice: R-hat below 1.01 and at least
    100 effective draws per chain.
    """

    def __init__(self, rhat_threshold: float = RHAT_THRESHOLD, min_ess_per_chain: int = MIN_ESS_PER_CHAIN):
        self.rhat_threshold = rhat_threshold
        self.min_ess_per_chain = min_ess_per_chain

    def compute_diagnostics(
        self,
        idata: az.InferenceData,
        var_names: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Compute diagnostic metrics for the trace.

        Args:
            idata: InferenceData with posterior (and sample_stats) groups
            var_names: Parameters to check (all posterior variables if None)

        Returns:
            Dictionary of diagnostic metrics
        """
        summary = az.summary(idata, var_names=list(var_names) if var_names else None, kind="diagnostics")

        n_chains = int(idata.posterior.sizes["chain"])
        n_divergent = 0
        if "sample_stats" in idata.groups() and "diverging" in idata.sample_stats:
            n_divergent = int(idata.sample_stats["diverging"].values.sum())

        rhat = summary["r_hat"].to_numpy(dtype=float)
        ess_bulk = summary["ess_bulk"].to_numpy(dtype=float)
        ess_tail = summary["ess_tail"].to_numpy(dtype=float)

        diagnostics = {
            "n_chains": n_chains,
            "n_parameters": len(summary),
            "rhat_max": float(np.nanmax(rhat)) if n_chains > 1 else float("nan"),
            "ess_bulk_min": float(np.nanmin(ess_bulk)),
            "ess_tail_min": float(np.nanmin(ess_tail)),
            "n_divergent": n_divergent,
            "high_rhat": [str(i) for i in summary.index[rhat > self.rhat_threshold]] if n_chains > 1 else [],
            "low_ess": [
                str(i) for i in summary.index[
                    np.minimum(ess_bulk, ess_tail) < self.min_ess_per_chain * n_chains
                ]
            ],
        }
        diagnostics["converged"] = bool(
            not diagnostics["high_rhat"] and not diagnostics["low_ess"] and n_divergent == 0
        )

        logger.debug(
            f"Computed diagnostics: max Rhat = {diagnostics['rhat_max']:.3f}, "
            f"min bulk ESS = {diagnostics['ess_bulk_min']:.1f}, "
            f"n_divergent = {n_divergent}"
        )
        return diagnostics

    def check(
        self,
        idata: az.InferenceData,
        var_names: Optional[Sequence[str]] = None,
    ) -> Tuple[Dict[str, Any], List[DiagnosticWarning]]:
        """
        Compute diagnostics and turn threshold violations into warnings.

        Returns:
            (diagnostics dictionary, list of DiagnosticWarning)
        """
        diagnostics = self.compute_diagnostics(idata, var_names)
        warnings = []

        if diagnostics["high_rhat"]:
            warnings.append(DiagnosticWarning(
                source="sampler",
                code="high_rhat",
                message=(
                    f"R-hat above {self.rhat_threshold} for {diagnostics['high_rhat']} "
                    f"(max {diagnostics['rhat_max']:.3f}); chains may not have mixed"
                ),
                details={"parameters": diagnostics["high_rhat"], "rhat_max": diagnostics["rhat_max"]},
            ))
        if diagnostics["low_ess"]:
            warnings.append(DiagnosticWarning(
                source="sampler",
                code="low_ess",
                message=(
                    f"Effective sample size below {self.min_ess_per_chain} per chain "
                    f"for {diagnostics['low_ess']}"
                ),
                details={"parameters": diagnostics["low_ess"], "ess_bulk_min": diagnostics["ess_bulk_min"]},
            ))
        if diagnostics["n_divergent"] > 0:
            warnings.append(DiagnosticWarning(
                source="sampler",
                code="divergences",
                message=f"{diagnostics['n_divergent']} divergent transitions after warm-up",
                details={"n_divergent": diagnostics["n_divergent"]},
            ))

        return diagnostics, warnings
