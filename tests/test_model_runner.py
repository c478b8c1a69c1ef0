#!/usr/bin/env python3
"""
Tests for the ModelRunner class.

The sampler is replaced by canned fits so the orchestration (grid,
LOO, comparisons, warnings and saved outputs) runs in seconds.
"""
import os
import sys
import tempfile
import unittest
from unittest.mock import Mock, patch

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fixtures import make_fitted, make_log_likelihood
from config.config_manager import ConfigManager
from data.data_loader import DataLoader
from model.exceptions import DataError, DatasetNotFoundError, ModelError
from model.model_runner import ModelRunner, loo_summary_frame
from model.ppc import PPCResult
from model.specification import build_model_grid


class TestModelRunner(unittest.TestCase):
    """Essential tests for ModelRunner class."""

    def setUp(self):
        """Set up test fixtures."""
        env = {k: v for k, v in os.environ.items() if not k.startswith(ConfigManager.ENV_PREFIX)}
        patcher = patch.dict(os.environ, env, clear=True)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

        self.config_manager = ConfigManager()
        self.config_manager.update(
            results_dir=self.tmp.name,
            data_dataset="simulated_roaches",
            create_plots=False,
        )
        self.data = DataLoader(random_seed=7).load_dataset("simulated_roaches")
        self.specs = build_model_grid(
            self.config_manager.app_config.model_families,
            self.config_manager.app_config.model_covariates,
        )

        self.fitter = Mock()
        self.fitter.fit_all.return_value = self.canned_fits()
        self.fitter.sampler.settings = {"draws": 500, "tune": 500, "chains": 2, "cores": 1}

        self.ppc_checker = Mock()
        self.ppc_checker.check.side_effect = lambda fitted, statistic: PPCResult(
            model_name=fitted.name,
            statistic=statistic,
            observed=0.36,
            replicated=np.linspace(0.0, 0.1, 200),
        )

    def canned_fits(self):
        n_obs = len(self.data)
        observed = self.data["y"].to_numpy()
        fits = {}
        for i, spec in enumerate(self.specs):
            # Poisson fits get a few observations with heavy-tailed importance ratios
            heavy = (0, 1, 2) if spec.family.short_name == "pois" else ()
            ll = make_log_likelihood(n_obs=n_obs, heavy=heavy, seed=10 + i)
            fits[spec.name] = make_fitted(spec, log_lik=ll, observed=observed, seed=10 + i)
        return fits

    def make_runner(self, **kwargs):
        params = {
            "config_manager": self.config_manager,
            "experiment_name": "unit",
            "data_loader": DataLoader(random_seed=7),
            "fitter": self.fitter,
            "ppc_checker": self.ppc_checker,
        }
        params.update(kwargs)
        return ModelRunner(**params)

    def test_pipeline_execution(self):
        """Full pipeline with canned fits."""
        results = self.make_runner().run_analysis()

        self.assertEqual(results["dataset"], "simulated_roaches")
        self.assertEqual(len(results["fits"]), 8)
        self.assertEqual(set(results["loo"]), set(results["fits"]))
        self.fitter.fit_all.assert_called_once()

        # 3 + 3 full-vs-reduced comparisons and the NB vs Poisson comparison
        comparisons = results["comparisons"]
        self.assertEqual(len(comparisons), 7)
        self.assertEqual((comparisons[-1].first, comparisons[-1].second), ("nb", "pois"))

        self.assertEqual(sorted(results["ppc"]), ["nb", "pois"])
        table = results["comparison_table"]
        self.assertEqual(len(table), 8)
        self.assertEqual(table["elpd_diff"].iloc[0], 0.0)

    def test_high_pareto_k_warnings(self):
        results = self.make_runner().run_analysis()

        self.assertGreater(results["loo"]["pois"].n_high_k, 0)
        self.assertEqual(results["loo"]["nb"].n_high_k, 0)

        high_k = [w for w in results["warnings"] if w.code == "high_pareto_k"]
        self.assertTrue(high_k)
        self.assertTrue(all(w.details["model"].startswith("pois") for w in high_k))

    def test_saved_outputs(self):
        results = self.make_runner().run_analysis()
        run_dir = results["results_dir"]

        self.assertEqual(run_dir, os.path.join(self.tmp.name, "unit"))
        for filename in ("data_summary.json", "models.json", "loo_summary.csv", "comparison.csv",
                         "comparisons.json", "ppc.json", "warnings.json", "config.json", "metadata.json"):
            with self.subTest(filename=filename):
                self.assertTrue(os.path.exists(os.path.join(run_dir, filename)))
        self.assertTrue(os.path.exists(os.path.join(run_dir, "pointwise", "pois.csv")))
        self.assertTrue(os.path.exists(os.path.join(run_dir, "posterior", "nb.csv")))
        self.assertTrue(os.path.exists(os.path.join(run_dir, "correlation", "nb.csv")))
        self.assertTrue(os.path.exists(os.path.join(run_dir, "marginals", "pois.json")))
        self.assertFalse(os.path.exists(os.path.join(run_dir, "traces")))

    def test_joint_posterior_of_full_models(self):
        results = self.make_runner().run_analysis()

        self.assertEqual(sorted(results["joint"]), ["nb", "pois"])
        correlation = results["joint"]["nb"]["correlation"]
        self.assertEqual(list(correlation.columns), ["roach1", "treatment", "senior"])
        np.testing.assert_allclose(np.diag(correlation), 1.0)
        self.assertEqual(sorted(results["joint"]["pois"]["marginals"]), ["roach1", "senior", "treatment"])

    def test_plots_include_pairs(self):
        self.config_manager.update(create_plots=True)
        with patch("model.visualization.DiagnosticVisualizer") as visualizer_cls:
            visualizer = visualizer_cls.return_value
            for method in ("plot_pareto_k", "plot_ppc", "plot_posterior", "plot_pair", "plot_elpd_difference"):
                getattr(visualizer, method).return_value = None

            results = self.make_runner().run_analysis()

        paired = {call.args[0].name: call.args[1] for call in visualizer.plot_pair.call_args_list}
        self.assertEqual(paired, {
            "nb": ["roach1", "treatment", "senior"],
            "pois": ["roach1", "treatment", "senior"],
        })
        self.assertEqual(visualizer.plot_pareto_k.call_count, len(results["loo"]))

    def test_empty_grid_raises(self):
        self.fitter.fit_all.return_value = {}
        with self.assertRaises(ModelError):
            self.make_runner().run_analysis()

    def test_data_errors_propagate(self):
        loader = Mock()
        loader.load_dataset.side_effect = DatasetNotFoundError("Dataset file not found")
        with self.assertRaises(DataError):
            self.make_runner(data_loader=loader).run_analysis("roaches")
        self.fitter.fit_all.assert_not_called()

    def test_loo_summary_frame(self):
        results = self.make_runner().run_analysis()
        frame = loo_summary_frame(results["loo"])
        self.assertEqual(len(frame), 8)
        for column in ("elpd_loo", "se", "p_loo", "looic", "n_high_k"):
            self.assertIn(column, frame.columns)
        np.testing.assert_allclose(frame["looic"], -2 * frame["elpd_loo"])


if __name__ == "__main__":
    unittest.main()
