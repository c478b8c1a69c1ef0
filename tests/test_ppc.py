#!/usr/bin/env python3
"""
Tests for posterior predictive checks.
"""
import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fixtures import make_fitted
from model.exceptions import ModelEvaluationError
from model.ppc import (
    PPCResult,
    PosteriorPredictiveChecker,
    STATISTICS,
    get_statistic,
    prop_zero,
    summarize_replicates,
)


class TestStatistics(unittest.TestCase):

    def test_prop_zero(self):
        self.assertAlmostEqual(float(prop_zero(np.array([0, 0, 3, 1]))), 0.5)
        np.testing.assert_allclose(prop_zero(np.array([[0, 1], [0, 0]])), [0.5, 1.0])

    def test_registry(self):
        self.assertEqual(sorted(STATISTICS), ["max", "mean", "prop_zero", "sd"])
        y = np.array([[1, 2, 3], [0, 0, 9]])
        np.testing.assert_allclose(get_statistic("max")(y), [3, 9])
        np.testing.assert_allclose(get_statistic("mean")(y), [2, 3])

    def test_unknown_statistic(self):
        with self.assertRaises(ModelEvaluationError):
            get_statistic("median_of_medians")


class TestSummarizeReplicates(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(11)
        self.observed = np.array([0] * 12 + [1, 2, 5, 9, 14, 30, 2, 0])
        self.poisson_like = rng.poisson(5.0, size=(400, len(self.observed)))
        self.zero_heavy = rng.negative_binomial(0.2, 0.2 / 5.2, size=(400, len(self.observed)))

    def test_p_values_in_unit_interval(self):
        for replicates in (self.poisson_like, self.zero_heavy):
            for statistic in STATISTICS:
                result = summarize_replicates(self.observed, replicates, statistic)
                for p in (result.p_upper, result.p_lower, result.p_two_sided):
                    self.assertGreaterEqual(p, 0.0)
                    self.assertLessEqual(p, 1.0)

    def test_too_many_zeros_for_poisson(self):
        result = summarize_replicates(self.observed, self.poisson_like, "prop_zero", model_name="pois")
        self.assertAlmostEqual(result.observed, 13 / 20)
        self.assertEqual(result.n_replicates, 400)
        # no replicate reaches the observed share, yet the tails stay inside (0, 1)
        self.assertAlmostEqual(result.p_upper, 1 / 402)
        self.assertAlmostEqual(result.p_lower, 401 / 402)
        self.assertFalse(result.is_degenerate)
        self.assertFalse(result.observed_in_interval())

    def test_negative_binomial_replicates_cover_zeros(self):
        result = summarize_replicates(self.observed, self.zero_heavy, "prop_zero", model_name="nb")
        self.assertTrue(result.observed_in_interval(0.99))
        self.assertGreater(result.p_two_sided, 0.01)

    def test_shape_mismatch(self):
        with self.assertRaises(ModelEvaluationError):
            summarize_replicates(self.observed, self.poisson_like[:, :5])

    def test_to_dict(self):
        record = summarize_replicates(self.observed, self.zero_heavy).to_dict()
        self.assertEqual(record["statistic"], "prop_zero")
        self.assertEqual(len(record["replicated_interval"]), 2)
        self.assertIn("observed_in_interval", record)


class TestPPCResult(unittest.TestCase):

    def test_tail_probabilities(self):
        result = PPCResult("m", "mean", observed=2.0, replicated=np.array([1.0, 2.0, 3.0, 4.0]))
        self.assertAlmostEqual(result.p_upper, 4 / 6)
        self.assertAlmostEqual(result.p_lower, 3 / 6)
        self.assertAlmostEqual(result.p_two_sided, 1.0)

    def test_interval_validation(self):
        result = PPCResult("m", "mean", observed=2.0, replicated=np.arange(10.0))
        with self.assertRaises(ValueError):
            result.interval(1.5)

    def test_degenerate(self):
        result = PPCResult("m", "prop_zero", observed=0.0, replicated=np.zeros(50))
        self.assertTrue(result.is_degenerate)
        self.assertTrue(result.observed_in_interval())
        self.assertEqual(result.p_upper, 1.0)
        self.assertEqual(result.p_lower, 1.0)

    def test_degenerate_tails_reach_bounds(self):
        result = PPCResult("m", "prop_zero", observed=0.4, replicated=np.zeros(50))
        self.assertEqual(result.p_upper, 0.0)
        self.assertEqual(result.p_lower, 1.0)
        self.assertEqual(result.p_two_sided, 0.0)

    def test_non_degenerate_tails_stay_inside_unit_interval(self):
        far_above = PPCResult("m", "mean", observed=100.0, replicated=np.arange(10.0))
        far_below = PPCResult("m", "mean", observed=-100.0, replicated=np.arange(10.0))
        for result in (far_above, far_below):
            for p in (result.p_upper, result.p_lower, result.p_two_sided):
                self.assertGreater(p, 0.0)
                self.assertLess(p, 1.0)


class TestPosteriorPredictiveChecker(unittest.TestCase):

    def test_requires_pymc_model(self):
        fitted = make_fitted()
        with self.assertRaises(ModelEvaluationError):
            PosteriorPredictiveChecker(random_seed=1).check(fitted)


if __name__ == "__main__":
    unittest.main()
