#!/usr/bin/env python3
"""
Tests for the model comparator.
"""
import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from model.comparison import compare_loo, comparison_table, paired_difference
from model.exceptions import ComparisonError
from model.loo import LooResult


def make_loo(name, pointwise, pareto_k=None):
    pointwise = np.asarray(pointwise, dtype=float)
    n = len(pointwise)
    if pareto_k is None:
        pareto_k = np.full(n, 0.2)
    return LooResult(
        model_name=name,
        elpd_loo=float(pointwise.sum()),
        se=float(np.sqrt(n * np.var(pointwise))),
        p_loo=3.0,
        lppd=float(pointwise.sum()) + 3.0,
        pointwise_elpd=pointwise,
        pareto_k=np.asarray(pareto_k, dtype=float),
        n_samples=4000,
        reff=1.0,
    )


class TestCompareLoo(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(7)
        base = rng.normal(-3.0, 1.0, size=50)
        self.nb = make_loo("nb", base + rng.normal(0.5, 0.3, size=50))
        self.pois = make_loo("pois", base)

    def test_paired_difference_by_hand(self):
        a = make_loo("a", [-1.0, -2.0, -3.0, -4.0])
        b = make_loo("b", [-1.5, -2.0, -2.5, -5.0])
        diff, se = paired_difference(a, b)
        d = np.array([0.5, 0.0, -0.5, 1.0])
        self.assertAlmostEqual(diff, 1.0)
        self.assertAlmostEqual(se, np.sqrt(4 * np.var(d)))

    def test_antisymmetric(self):
        forward = compare_loo(self.nb, self.pois)
        backward = compare_loo(self.pois, self.nb)
        self.assertAlmostEqual(forward.elpd_diff, -backward.elpd_diff)
        self.assertAlmostEqual(forward.se_diff, backward.se_diff)
        self.assertEqual(forward.preferred, "nb")
        self.assertEqual(backward.preferred, "nb")

    def test_reversed_matches_swapped_comparison(self):
        forward = compare_loo(self.nb, self.pois)
        swapped = forward.reversed()
        self.assertEqual((swapped.first, swapped.second), ("pois", "nb"))
        self.assertAlmostEqual(swapped.elpd_diff, compare_loo(self.pois, self.nb).elpd_diff)

    def test_paired_se_smaller_than_unpaired(self):
        result = compare_loo(self.nb, self.pois)
        unpaired = np.sqrt(self.nb.se ** 2 + self.pois.se ** 2)
        self.assertLess(result.se_diff, unpaired)

    def test_ratio(self):
        result = compare_loo(self.nb, self.pois)
        self.assertAlmostEqual(result.ratio, abs(result.elpd_diff) / result.se_diff)
        self.assertGreater(result.ratio, 2.0)

    def test_identical_models(self):
        result = compare_loo(self.pois, self.pois)
        self.assertEqual(result.elpd_diff, 0.0)
        self.assertEqual(result.se_diff, 0.0)
        self.assertEqual(result.ratio, 0.0)

    def test_reliable_comparison_has_no_caveat(self):
        result = compare_loo(self.nb, self.pois)
        self.assertTrue(result.is_reliable)
        self.assertEqual(result.diagnostics, ())

    def test_high_k_adds_caveat(self):
        k = np.full(50, 0.2)
        k[[3, 17]] = [0.9, 1.4]
        pois = make_loo("pois", self.pois.pointwise_elpd, pareto_k=k)

        result = compare_loo(self.nb, pois)
        self.assertFalse(result.is_reliable)
        self.assertEqual(len(result.diagnostics), 1)
        warning = result.diagnostics[0]
        self.assertEqual(warning.code, "unreliable_comparison")
        self.assertEqual(warning.details["models"], ["pois"])
        self.assertEqual(warning.details["n_high_k"]["pois"], 2)
        # the estimate itself is still computed
        self.assertAlmostEqual(result.elpd_diff, compare_loo(self.nb, self.pois).elpd_diff)

    def test_different_observation_counts(self):
        short = make_loo("short", self.pois.pointwise_elpd[:40])
        with self.assertRaises(ComparisonError):
            compare_loo(self.nb, short)

    def test_to_dict_and_str(self):
        result = compare_loo(self.nb, self.pois)
        record = result.to_dict()
        self.assertEqual(record["first"], "nb")
        self.assertEqual(record["warnings"], [])
        self.assertIn("elpd(nb) - elpd(pois)", str(result))


class TestComparisonTable(unittest.TestCase):

    def test_ranked_best_first(self):
        rng = np.random.default_rng(3)
        base = rng.normal(-2.0, 0.5, size=20)
        k_bad = np.full(20, 0.2)
        k_bad[0] = 0.8
        results = {
            "pois": make_loo("pois", base - 1.0, pareto_k=k_bad),
            "nb": make_loo("nb", base),
            "nb-no_senior": make_loo("nb-no_senior", base - 0.1),
        }

        table = comparison_table(results)

        self.assertEqual(list(table.index), ["nb", "nb-no_senior", "pois"])
        self.assertEqual(table.loc["nb", "elpd_diff"], 0.0)
        self.assertEqual(table.loc["nb", "se_diff"], 0.0)
        self.assertAlmostEqual(table.loc["pois", "elpd_diff"], -20.0)
        self.assertTrue(table.loc["pois", "warning"])
        self.assertFalse(table.loc["nb", "warning"])
        self.assertEqual(table.loc["pois", "n_high_k"], 1)
        self.assertEqual(list(table["rank"]), [0, 1, 2])

    def test_empty(self):
        with self.assertRaises(ComparisonError):
            comparison_table({})


if __name__ == "__main__":
    unittest.main()
