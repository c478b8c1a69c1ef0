"""
Visualization module for count-model diagnostics.

This module renders the plots a reader needs to judge the LOO and
posterior predictive results: Pareto k per observation, replicated test
statistics against the observed value, and posterior marginals / pairs.
"""
from pathlib import Path
from typing import Optional, Sequence

import arviz as az
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from utils.logging_utils import logger
from model.constants import KHAT_GOOD, KHAT_VERY_BAD
from model.exceptions import VisualizationError
from model.loo import LooResult
from model.ppc import PPCResult
from model.results import FittedModel


class DiagnosticVisualizer:
    """
    Diagnostic plots for fitted count models.

    Responsibilities:
    - Pareto k scatter plots with the diagnostic thresholds
    - Posterior predictive histograms of a test statistic
    - Posterior marginal and pair plots
    - Pointwise elpd difference plots between two models
    """

    def __init__(self, results_dir: Optional[Path] = None, dpi: int = 150):
        """
        Initialize the visualizer.

        Args:
            results_dir: Directory to save visualization outputs
            dpi: Resolution of the saved PNG files
        """
        self.results_dir = Path(results_dir) if results_dir is not None else None
        self.dpi = dpi

        if self.results_dir is not None:
            self.viz_dir = self.results_dir / "visualizations"
            self.viz_dir.mkdir(parents=True, exist_ok=True)
        else:
            self.viz_dir = None

        sns.set_style("whitegrid")

    def _save(self, fig, filename: str) -> Optional[Path]:
        if self.viz_dir is None:
            logger.warning("No visualization directory specified")
            plt.close(fig)
            return None
        output_path = self.viz_dir / filename
        fig.savefig(output_path, dpi=self.dpi, bbox_inches="tight")
        plt.close(fig)
        logger.info(f"Saved plot to {output_path}")
        return output_path

    def plot_pareto_k(self, loo: LooResult, filename: Optional[str] = None) -> Optional[Path]:
        """
        Scatter plot of Pareto k against observation index.

        Observations above the reliability threshold are highlighted.
        """
        try:
            fig, ax = plt.subplots(figsize=(10, 5))
            k = loo.pareto_k
            index = np.arange(len(k))
            flagged = k > loo.khat_threshold

            ax.scatter(index[~flagged], k[~flagged], s=12, color="steelblue", alpha=0.7, label="k <= threshold")
            ax.scatter(index[flagged], k[flagged], s=24, color="crimson", marker="x", label="k > threshold")
            for level, style in ((KHAT_GOOD, ":"), (loo.khat_threshold, "--"), (KHAT_VERY_BAD, "-")):
                ax.axhline(level, color="gray", linestyle=style, alpha=0.7)

            ax.set_xlabel("Observation")
            ax.set_ylabel("Pareto k")
            ax.set_title(f"PSIS diagnostic for {loo.model_name} ({loo.n_high_k} of {loo.n_observations} flagged)")
            ax.legend(loc="upper right")

            return self._save(fig, filename or f"pareto_k_{loo.model_name}.png")
        except (ValueError, TypeError, OSError) as e:
            raise VisualizationError(f"Pareto k plotting failed for {loo.model_name}: {str(e)}") from e

    def plot_ppc(self, ppc: PPCResult, filename: Optional[str] = None) -> Optional[Path]:
        """Histogram of the replicated statistic with the observed value marked."""
        try:
            fig, ax = plt.subplots(figsize=(8, 5))
            sns.histplot(ppc.replicated, bins=30, color="steelblue", ax=ax)
            ax.axvline(ppc.observed, color="crimson", linestyle="--",
                       label=f"observed = {ppc.observed:.3f}")

            ax.set_xlabel(ppc.statistic)
            ax.set_ylabel("Replicates")
            ax.set_title(f"Posterior predictive check: {ppc.statistic} ({ppc.model_name}), "
                         f"p_upper = {ppc.p_upper:.3f}")
            ax.legend()

            return self._save(fig, filename or f"ppc_{ppc.statistic}_{ppc.model_name}.png")
        except (ValueError, TypeError, OSError) as e:
            raise VisualizationError(f"PPC plotting failed for {ppc.model_name}: {str(e)}") from e

    def plot_posterior(self, fitted: FittedModel, filename: Optional[str] = None) -> Optional[Path]:
        """Marginal posterior of every parameter."""
        try:
            axes = az.plot_posterior(fitted.idata, var_names=fitted.spec.parameter_names)
            fig = np.atleast_1d(axes).ravel()[0].get_figure()
            fig.suptitle(f"Posterior marginals: {fitted.name}")
            return self._save(fig, filename or f"posterior_{fitted.name}.png")
        except (ValueError, TypeError, KeyError, OSError) as e:
            raise VisualizationError(f"Posterior plotting failed for {fitted.name}: {str(e)}") from e

    def plot_pair(
        self,
        fitted: FittedModel,
        var_names: Optional[Sequence[str]] = None,
        filename: Optional[str] = None,
    ) -> Optional[Path]:
        """Pairs plot of the joint posterior of a parameter subset."""
        names = list(var_names) if var_names is not None else fitted.spec.parameter_names
        if len(names) < 2:
            raise VisualizationError(f"A pairs plot needs at least two parameters, got {names}")
        try:
            axes = az.plot_pair(fitted.idata, var_names=names, kind="kde", marginals=True)
            fig = np.atleast_1d(axes).ravel()[0].get_figure()
            return self._save(fig, filename or f"pairs_{fitted.name}.png")
        except (ValueError, TypeError, KeyError, OSError) as e:
            raise VisualizationError(f"Pairs plotting failed for {fitted.name}: {str(e)}") from e

    def plot_elpd_difference(
        self,
        first: LooResult,
        second: LooResult,
        filename: Optional[str] = None,
    ) -> Optional[Path]:
        """Pointwise elpd difference between two models, coloured by the larger k."""
        if first.n_observations != second.n_observations:
            raise VisualizationError(
                f"Cannot plot {first.model_name} against {second.model_name}: different observation counts"
            )
        try:
            fig, ax = plt.subplots(figsize=(10, 5))
            diff = first.pointwise_elpd - second.pointwise_elpd
            k_max = np.maximum(first.pareto_k, second.pareto_k)
            points = ax.scatter(np.arange(len(diff)), diff, c=k_max, cmap="viridis", s=14)
            fig.colorbar(points, ax=ax, label="max Pareto k")
            ax.axhline(0.0, color="gray", linestyle="--")

            ax.set_xlabel("Observation")
            ax.set_ylabel(f"elpd({first.model_name}) - elpd({second.model_name})")
            ax.set_title(f"Pointwise elpd difference, total {diff.sum():.1f}")

            return self._save(fig, filename or f"elpd_diff_{first.model_name}_vs_{second.model_name}.png")
        except (ValueError, TypeError, OSError) as e:
            raise VisualizationError(f"elpd difference plotting failed: {str(e)}") from e
