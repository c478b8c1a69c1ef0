#!/usr/bin/env python3
"""
Model Runner for the count-model LOO analysis.

This orchestration module runs the complete workflow, from loading the
data to saving the comparison tables.

EXECUTION FLOW:
1. Load the dataset (DataLoader)
2. Build the model grid: full and drop-one models per family
3. Fit every specification (BayesianCountModel)
4. Compute PSIS-LOO for every fit (PsisLoo)
5. Compare each full model with its reduced models, and the two full
   models with each other (compare_loo)
6. Posterior predictive check of every full model (PosteriorPredictiveChecker)
7. Joint posterior of the covariate coefficients of every full model
   (PosteriorSummarizer)
8. Optional diagnostic plots, including pairs plots (DiagnosticVisualizer)
9. Save tables, JSON records and metadata (ResultsManager)

EDGE CASES:
- Configuration-class errors for one model (build or sampling failure,
  LOO impossible) abort that model only; the rest of the grid continues
- A dataset that cannot be loaded aborts the run
- Reliability problems (convergence, high Pareto k) never abort; they are
  collected into ``warnings.json``
"""
from typing import Any, Dict, List, Optional

import pandas as pd

from utils.logging_utils import get_logger, log_step, LoggingManager
from utils.decorators import log_errors, timed
from utils.results_manager import ResultsManager
from config.config_manager import ConfigManager
from data.data_loader import DataLoader
from model.bayesian_model import BayesianCountModel
from model.comparison import ComparisonResult, compare_loo, comparison_table
from model.exceptions import DataError, ModelError, ModelEvaluationError, VisualizationError
from model.loo import LooResult, PsisLoo
from model.ppc import PPCResult, PosteriorPredictiveChecker
from model.results import DiagnosticWarning, FittedModel, warnings_to_list
from model.sampling import CountModelSampler
from model.specification import Family, ModelSpec, build_model_grid
from model.summarizer import PosteriorSummarizer

# Get logger for this module
logger = get_logger()


class ModelRunner:
    """Main runner class for the count-model LOO analysis"""

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        experiment_name: Optional[str] = None,
        data_loader: Optional[DataLoader] = None,
        fitter: Optional[BayesianCountModel] = None,
        loo_engine: Optional[PsisLoo] = None,
        ppc_checker: Optional[PosteriorPredictiveChecker] = None,
        summarizer: Optional[PosteriorSummarizer] = None,
    ):
        """
        Initialize the model runner.

        Components not passed in are created from the configuration.

        Args:
            config_manager: Configuration manager (defaults if omitted)
            experiment_name: Name of the results subdirectory (timestamped if omitted)
        """
        self.config_manager = config_manager or ConfigManager()
        self.config = self.config_manager.app_config
        self.experiment_name = experiment_name

        cfg = self.config
        self.data_loader = data_loader or DataLoader(
            data_dir=cfg.data_dir or None,
            random_seed=cfg.data_random_seed,
            download=cfg.data_download,
        )
        self.fitter = fitter or BayesianCountModel(sampler=CountModelSampler(**cfg.sampler_settings()))
        self.loo_engine = loo_engine or PsisLoo(
            khat_threshold=cfg.loo_khat_threshold,
            min_draws=cfg.loo_min_draws,
        )
        self.ppc_checker = ppc_checker or PosteriorPredictiveChecker(random_seed=cfg.ppc_random_seed)
        self.summarizer = summarizer or PosteriorSummarizer()

        self.results_manager: Optional[ResultsManager] = None

    @timed("Full analysis")
    @log_errors((DataError, ModelError), msg="Error running analysis")
    def run_analysis(self, dataset: Optional[str] = None) -> Dict[str, Any]:
        """
        Run the complete analysis on one dataset.

        Args:
            dataset: Dataset name (the configured one if omitted)

        Returns:
            Dictionary with the data summary, fitted models, LOO results,
            comparisons, predictive checks, joint posterior summaries,
            collected warnings and the results directory

        Raises:
            DataError: If the dataset cannot be loaded
            ModelError: If no model in the grid could be fitted
        """
        cfg = self.config
        dataset = dataset or cfg.data_dataset

        data = self._load_data(dataset)
        data_summary = self.data_loader.describe(data)
        LoggingManager.log_dict(logger, f"Dataset '{dataset}'", data_summary)

        specs = build_model_grid(cfg.model_families, cfg.model_covariates, cfg.priors())
        logger.info(f"Model grid: {[s.name for s in specs]}")

        fits = self._fit_models(specs, data)
        if not fits:
            raise ModelError("No model in the grid could be fitted", details=f"dataset: {dataset}")

        loo_results = self._compute_loo(fits)
        comparisons = self._compare_models(fits, loo_results)
        ppc_results = self._check_predictions(fits)
        joint = self._summarize_joint(fits)

        warnings = self._collect_warnings(fits, loo_results, comparisons)
        LoggingManager.log_warnings(logger, "Reliability warnings", warnings)

        results = {
            "dataset": dataset,
            "data_summary": data_summary,
            "specs": {spec.name: spec for spec in specs},
            "fits": fits,
            "loo": loo_results,
            "comparisons": comparisons,
            "comparison_table": comparison_table(loo_results) if loo_results else pd.DataFrame(),
            "ppc": ppc_results,
            "joint": joint,
            "warnings": warnings,
        }

        self.results_manager = ResultsManager(cfg.results_dir, experiment_name=self.experiment_name)
        if cfg.create_plots:
            self._create_plots(results)
        self._save_results(results)
        results["results_dir"] = self.results_manager.results_dir

        logger.info(f"Analysis of '{dataset}' complete; results in {results['results_dir']}")
        return results

    @log_step("Loading data")
    def _load_data(self, dataset: str) -> pd.DataFrame:
        return self.data_loader.load_dataset(dataset)

    @log_step("Fitting model grid")
    def _fit_models(self, specs: List[ModelSpec], data: pd.DataFrame) -> Dict[str, FittedModel]:
        return self.fitter.fit_all(specs, data)

    @log_step("Computing PSIS-LOO for all models")
    def _compute_loo(self, fits: Dict[str, FittedModel]) -> Dict[str, LooResult]:
        loo_results = {}
        for name, fitted in fits.items():
            try:
                loo_results[name] = self.loo_engine.compute(fitted)
            except ModelEvaluationError as e:
                logger.error(f"Skipping LOO for model '{name}': {str(e)}")
        return loo_results

    @staticmethod
    def _full_models(fits: Dict[str, FittedModel]) -> Dict[Family, str]:
        return {fitted.spec.family: name for name, fitted in fits.items() if fitted.spec.is_full}

    @log_step("Comparing models")
    def _compare_models(
        self,
        fits: Dict[str, FittedModel],
        loo_results: Dict[str, LooResult],
    ) -> List[ComparisonResult]:
        """Full vs reduced within each family, then full NB vs full Poisson."""
        comparisons = []
        full = self._full_models(fits)

        for family, full_name in full.items():
            if full_name not in loo_results:
                continue
            for name, fitted in fits.items():
                if fitted.spec.family is not family or fitted.spec.is_full or name not in loo_results:
                    continue
                comparisons.append(compare_loo(loo_results[full_name], loo_results[name]))

        nb = full.get(Family.NEGATIVE_BINOMIAL)
        pois = full.get(Family.POISSON)
        if nb in loo_results and pois in loo_results:
            comparisons.append(compare_loo(loo_results[nb], loo_results[pois]))

        return comparisons

    @log_step("Posterior predictive checks")
    def _check_predictions(self, fits: Dict[str, FittedModel]) -> Dict[str, PPCResult]:
        ppc_results = {}
        for name in self._full_models(fits).values():
            try:
                ppc_results[name] = self.ppc_checker.check(fits[name], statistic=self.config.ppc_statistic)
            except ModelEvaluationError as e:
                logger.error(f"Skipping posterior predictive check for '{name}': {str(e)}")
        return ppc_results

    @log_step("Summarizing joint posteriors")
    def _summarize_joint(self, fits: Dict[str, FittedModel]) -> Dict[str, Dict[str, Any]]:
        """Joint summary and marginal densities of the covariate coefficients."""
        joint = {}
        for name in self._full_models(fits).values():
            fitted = fits[name]
            var_names = list(fitted.spec.covariates)
            if len(var_names) < 2:
                logger.info(f"Model '{name}' has fewer than two covariates; no joint summary")
                continue
            try:
                summary = self.summarizer.joint_summary(fitted, var_names)
                summary["marginals"] = self.summarizer.marginal_densities(fitted, var_names)
            except ModelEvaluationError as e:
                logger.error(f"Skipping joint summary for '{name}': {str(e)}")
                continue
            joint[name] = summary
        return joint

    @staticmethod
    def _collect_warnings(
        fits: Dict[str, FittedModel],
        loo_results: Dict[str, LooResult],
        comparisons: List[ComparisonResult],
    ) -> List[DiagnosticWarning]:
        warnings: List[DiagnosticWarning] = []
        for name, fitted in fits.items():
            warnings.extend(_tag(w, name) for w in fitted.diagnostics)
        for name, loo in loo_results.items():
            warnings.extend(_tag(w, name) for w in loo.diagnostics)
        for comparison in comparisons:
            warnings.extend(
                _tag(w, f"{comparison.first} vs {comparison.second}") for w in comparison.diagnostics
            )
        return warnings

    @log_step("Creating diagnostic plots")
    def _create_plots(self, results: Dict[str, Any]) -> None:
        # Imported here so runs without plots never load matplotlib
        from model.visualization import DiagnosticVisualizer

        visualizer = DiagnosticVisualizer(results_dir=self.results_manager.results_dir)
        figures = []
        try:
            for loo in results["loo"].values():
                figures.append(visualizer.plot_pareto_k(loo))
            for ppc in results["ppc"].values():
                figures.append(visualizer.plot_ppc(ppc))
            for name in self._full_models(results["fits"]).values():
                figures.append(visualizer.plot_posterior(results["fits"][name]))
            for name in results["joint"]:
                fitted = results["fits"][name]
                figures.append(visualizer.plot_pair(fitted, list(fitted.spec.covariates)))
            for comparison in results["comparisons"]:
                figures.append(visualizer.plot_elpd_difference(
                    results["loo"][comparison.first], results["loo"][comparison.second]
                ))
        except VisualizationError as e:
            logger.warning(f"Plotting stopped early: {str(e)}")

        for path in figures:
            if path is not None:
                self.results_manager.record_figure(path.stem, str(path))

    @log_step("Saving results")
    def _save_results(self, results: Dict[str, Any]) -> None:
        rm = self.results_manager

        rm.save_dict(results["data_summary"], "data_summary")
        rm.save_dict({name: spec.to_dict() for name, spec in results["specs"].items()}, "models")

        if results["loo"]:
            rm.save_dataframe(loo_summary_frame(results["loo"]), "loo_summary")
            rm.save_dataframe(results["comparison_table"], "comparison")
            for name, loo in results["loo"].items():
                rm.save_dataframe(loo.pointwise_frame(), name, subdirectory="pointwise")

        rm.save_dict([c.to_dict() for c in results["comparisons"]], "comparisons")
        rm.save_dict({name: ppc.to_dict() for name, ppc in results["ppc"].items()}, "ppc")
        for name, joint in results["joint"].items():
            rm.save_dataframe(joint["correlation"], name, subdirectory="correlation")
            rm.save_dict(joint["marginals"], name, subdirectory="marginals")
        rm.save_dict(warnings_to_list(results["warnings"]), "warnings")

        for name, fitted in results["fits"].items():
            rm.save_dataframe(self.summarizer.summary(fitted), name, subdirectory="posterior")
            if self.config.save_traces:
                rm.save_inference_data(fitted.idata, name, subdirectory="traces")

        rm.save_dict({
            "config": self.config_manager.to_dict(),
            "sampler": self.fitter.sampler.settings,
        }, "config")
        rm.save_metadata()


def _tag(warning: DiagnosticWarning, model: str) -> DiagnosticWarning:
    """Copy of a warning with the model it belongs to recorded in its details."""
    return DiagnosticWarning(
        source=warning.source,
        code=warning.code,
        message=f"{model}: {warning.message}",
        details={"model": model, **warning.details},
    )


def loo_summary_frame(loo_results: Dict[str, LooResult]) -> pd.DataFrame:
    """One row per model: elpd, SE, p_loo, looic and Pareto k counts."""
    rows = []
    for name, loo in loo_results.items():
        counts = loo.pareto_k_counts()
        rows.append({
            "model": name,
            "elpd_loo": loo.elpd_loo,
            "se": loo.se,
            "p_loo": loo.p_loo,
            "looic": loo.looic,
            "n_samples": loo.n_samples,
            "reff": loo.reff,
            "k_good": counts["good"],
            "k_ok": counts["ok"],
            "k_bad": counts["bad"],
            "k_very_bad": counts["very_bad"],
            "n_high_k": loo.n_high_k,
        })
    return pd.DataFrame(rows).set_index("model")
