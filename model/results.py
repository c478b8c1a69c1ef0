"""
Result containers shared by the fitting, cross-validation and checking stages.

All containers are frozen dataclasses: downstream stages read them and
derive new values, they never modify them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import arviz as az

from model.specification import ModelSpec


@dataclass(frozen=True)
class DiagnosticWarning:
    """
    A statistical reliability problem attached to a result.

    These are not errors: the result they are attached to is still usable,
    but a human should look at it before trusting it.
    """
    source: str  # "sampler", "loo", "comparison", ...
    code: str  # machine-readable short name, e.g. "high_pareto_k"
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"[{self.source}:{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Posterior draws for one ``ModelSpec`` fitted to one dataset.

    ``idata`` holds the ``posterior``, ``sample_stats`` and
    ``log_likelihood`` groups; the log-likelihood variable is named after
    the response column.
    """
    spec: ModelSpec
    idata: az.InferenceData
    observed: np.ndarray
    model: Any = None  # pm.Model, needed for posterior predictive sampling
    diagnostics: Tuple[DiagnosticWarning, ...] = ()
    convergence: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def n_chains(self) -> int:
        return int(self.idata.posterior.sizes["chain"])

    @property
    def n_draws(self) -> int:
        """Retained draws per chain (after warm-up)."""
        return int(self.idata.posterior.sizes["draw"])

    @property
    def n_samples(self) -> int:
        return self.n_chains * self.n_draws

    @property
    def n_observations(self) -> int:
        return int(len(self.observed))

    @property
    def has_warnings(self) -> bool:
        return len(self.diagnostics) > 0

    def log_likelihood_matrix(self) -> np.ndarray:
        """
        Pointwise log-likelihood as an (observations, samples) array.

        Chains are pooled; sample order is chain-major.
        """
        if "log_likelihood" not in self.idata.groups():
            raise KeyError(f"Model {self.name} has no log_likelihood group")
        values = self.idata.log_likelihood[self.spec.response].transpose("chain", "draw", ...).values
        return values.reshape(self.n_samples, -1).T

    def posterior_frame(self, var_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Posterior draws of scalar parameters, one column per parameter."""
        var_names = list(var_names) if var_names is not None else self.spec.parameter_names
        posterior = self.idata.posterior
        return pd.DataFrame({
            name: posterior[name].values.reshape(-1) for name in var_names
        })

    def with_diagnostics(self, extra: Sequence[DiagnosticWarning]) -> "FittedModel":
        """Return a copy with additional diagnostic warnings."""
        return FittedModel(
            spec=self.spec,
            idata=self.idata,
            observed=self.observed,
            model=self.model,
            diagnostics=self.diagnostics + tuple(extra),
            convergence=dict(self.convergence),
        )


def warnings_to_list(warnings: Sequence[DiagnosticWarning]) -> List[Dict[str, Any]]:
    return [w.to_dict() for w in warnings]
