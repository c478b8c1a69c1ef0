"""
Posterior summaries of fitted count models.

Every method only reads from the ``FittedModel``; nothing is cached on it
or modified.
"""
from typing import Any, Dict, List, Optional, Sequence

import arviz as az
import numpy as np
import pandas as pd

from utils.logging_utils import logger
from model.exceptions import ModelEvaluationError
from model.results import FittedModel


class PosteriorSummarizer:
    """
    Summary tables, marginal densities and joint draws for fitted models.

    Args:
        hdi_prob: Probability mass of the highest-density intervals
    """

    def __init__(self, hdi_prob: float = 0.94):
        if not 0 < hdi_prob < 1:
            raise ValueError(f"hdi_prob must be in (0, 1), got {hdi_prob}")
        self.hdi_prob = hdi_prob

    def _var_names(self, fitted: FittedModel, var_names: Optional[Sequence[str]]) -> List[str]:
        names = list(var_names) if var_names is not None else fitted.spec.parameter_names
        missing = [n for n in names if n not in fitted.idata.posterior]
        if missing:
            raise ModelEvaluationError(
                f"Parameters {missing} not found in posterior of {fitted.name}",
                details=f"available: {list(fitted.idata.posterior.data_vars)}",
            )
        return names

    def summary(self, fitted: FittedModel, var_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Mean, sd, HDI, MCSE, ESS and R-hat per parameter."""
        names = self._var_names(fitted, var_names)
        table = az.summary(fitted.idata, var_names=names, hdi_prob=self.hdi_prob)
        logger.debug(f"Posterior summary for {fitted.name}:\n{table}")
        return table

    def marginal_densities(
        self,
        fitted: FittedModel,
        var_names: Optional[Sequence[str]] = None,
    ) -> Dict[str, Dict[str, np.ndarray]]:
        """
        Kernel density estimate of each parameter's marginal posterior.

        Returns:
            {parameter: {"grid": x values, "density": density values}}
        """
        names = self._var_names(fitted, var_names)
        densities = {}
        for name in names:
            draws = fitted.idata.posterior[name].values.reshape(-1)
            grid, density = az.kde(draws)
            densities[name] = {"grid": np.asarray(grid), "density": np.asarray(density)}
        return densities

    def joint_summary(self, fitted: FittedModel, var_names: Sequence[str]) -> Dict[str, Any]:
        """
        Joint posterior draws of a parameter subset, for pairs plots.

        Returns:
            Dictionary with ``draws`` (DataFrame, one column per parameter),
            ``correlation`` and ``covariance`` (DataFrames)

        Raises:
            ModelEvaluationError: If fewer than two parameters are requested
        """
        names = self._var_names(fitted, var_names)
        if len(names) < 2:
            raise ModelEvaluationError(f"A joint summary needs at least two parameters, got {names}")

        draws = fitted.posterior_frame(names)
        return {
            "draws": draws,
            "correlation": draws.corr(),
            "covariance": draws.cov(),
        }
