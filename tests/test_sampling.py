#!/usr/bin/env python3
"""
Tests for sampler settings, convergence diagnostics and FittedModel.
"""
import os
import sys
import unittest
from unittest.mock import patch

import arviz as az
import numpy as np

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fixtures import make_fitted, make_log_likelihood
from model.diagnostics import ConvergenceDiagnostics
from model.exceptions import SamplingError
from model.results import DiagnosticWarning
from model.sampling import CountModelSampler, resolve_cores


class TestSamplerSettings(unittest.TestCase):

    def test_resolve_cores(self):
        with patch("model.sampling.os.cpu_count", return_value=6):
            self.assertEqual(resolve_cores(None), 6)
            self.assertEqual(resolve_cores(0), 6)
        self.assertEqual(resolve_cores(2), 2)
        with self.assertRaises(SamplingError):
            resolve_cores(-1)

    def test_defaults(self):
        sampler = CountModelSampler(cores=1)
        self.assertEqual(sampler.settings["chains"], 4)
        self.assertEqual(sampler.settings["draws"], 1000)
        self.assertEqual(sampler.settings["cores"], 1)

    def test_invalid_settings(self):
        with self.assertRaises(SamplingError):
            CountModelSampler(n_draws=0)
        with self.assertRaises(SamplingError):
            CountModelSampler(n_chains=0)
        with self.assertRaises(SamplingError):
            CountModelSampler(n_tune=-5)


class TestConvergenceDiagnostics(unittest.TestCase):

    def test_well_mixed_chains(self):
        rng = np.random.default_rng(0)
        idata = az.from_dict(
            posterior={"a": rng.normal(size=(4, 500)), "b": rng.normal(size=(4, 500))},
            sample_stats={"diverging": np.zeros((4, 500), dtype=bool)},
        )
        metrics, warnings = ConvergenceDiagnostics().check(idata)
        self.assertTrue(metrics["converged"])
        self.assertEqual(warnings, [])
        self.assertEqual(metrics["n_chains"], 4)

    def test_stuck_chains_and_divergences(self):
        rng = np.random.default_rng(0)
        a = rng.normal(size=(4, 500)) + np.array([0.0, 0.0, 0.0, 5.0])[:, None]
        diverging = np.zeros((4, 500), dtype=bool)
        diverging[1, :3] = True
        idata = az.from_dict(
            posterior={"a": a, "b": rng.normal(size=(4, 500))},
            sample_stats={"diverging": diverging},
        )

        metrics, warnings = ConvergenceDiagnostics().check(idata)

        self.assertFalse(metrics["converged"])
        self.assertIn("a", metrics["high_rhat"])
        self.assertEqual(metrics["n_divergent"], 3)
        codes = [w.code for w in warnings]
        self.assertIn("high_rhat", codes)
        self.assertIn("divergences", codes)
        self.assertTrue(all(isinstance(w, DiagnosticWarning) for w in warnings))

    def test_low_ess(self):
        # a random walk has very few effective draws
        rng = np.random.default_rng(1)
        walk = np.cumsum(rng.normal(size=(2, 300)), axis=1)
        idata = az.from_dict(posterior={"a": walk})
        metrics, warnings = ConvergenceDiagnostics().check(idata)
        self.assertIn("a", metrics["low_ess"])
        self.assertIn("low_ess", [w.code for w in warnings])


class TestFittedModel(unittest.TestCase):

    def test_counts_and_log_likelihood_layout(self):
        ll = make_log_likelihood(n_obs=7, n_chains=3, n_draws=200)
        fitted = make_fitted(log_lik=ll)

        self.assertEqual(fitted.n_chains, 3)
        self.assertEqual(fitted.n_draws, 200)
        self.assertEqual(fitted.n_samples, 600)
        self.assertEqual(fitted.n_observations, 7)

        matrix = fitted.log_likelihood_matrix()
        self.assertEqual(matrix.shape, (7, 600))
        # chain-major pooling
        np.testing.assert_array_equal(matrix[:, 0], ll[0, 0, :])
        np.testing.assert_array_equal(matrix[:, 200], ll[1, 0, :])

    def test_missing_log_likelihood(self):
        with self.assertRaises(KeyError):
            make_fitted(include_log_likelihood=False).log_likelihood_matrix()

    def test_with_diagnostics_returns_copy(self):
        fitted = make_fitted()
        warning = DiagnosticWarning("sampler", "low_ess", "low")
        updated = fitted.with_diagnostics([warning])
        self.assertEqual(fitted.diagnostics, ())
        self.assertEqual(updated.diagnostics, (warning,))
        self.assertTrue(updated.has_warnings)

    def test_posterior_frame(self):
        fitted = make_fitted()
        frame = fitted.posterior_frame()
        self.assertEqual(list(frame.columns), fitted.spec.parameter_names)
        self.assertEqual(len(frame), fitted.n_samples)


if __name__ == "__main__":
    unittest.main()
