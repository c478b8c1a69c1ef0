#!/usr/bin/env python3
"""
Tests for the PyMC count model builder (no sampling).
"""
import os
import sys
import unittest

import numpy as np
import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.dirname(os.path.dirname(__file__))))

from model.bayesian.model_builder import CountModelBuilder
from model.exceptions import ModelBuildError
from model.specification import Family, ModelSpec


def small_table():
    return pd.DataFrame({
        "y": [0, 3, 12, 0, 1, 40],
        "roach1": [0.0, 0.2, 1.5, 0.0, 0.05, 2.4],
        "treatment": [1, 0, 1, 1, 0, 0],
        "senior": [0, 0, 1, 0, 1, 0],
        "exposure2": [1.0, 0.8, 1.0, 1.4, 1.0, 0.6],
    })


class TestCountModelBuilder(unittest.TestCase):

    def setUp(self):
        self.builder = CountModelBuilder()
        self.data = small_table()

    def test_prepare_data(self):
        spec = ModelSpec(Family.POISSON).without("senior")
        prepared = self.builder.prepare_data(spec, self.data)
        self.assertEqual(prepared.n_observations, 6)
        self.assertEqual(sorted(prepared.covariates), ["roach1", "treatment"])
        np.testing.assert_allclose(prepared.log_offset, np.log(self.data["exposure2"]))
        self.assertEqual(prepared.y.dtype, np.int64)

    def test_poisson_model_variables(self):
        model = self.builder.build_model(ModelSpec(Family.POISSON), self.data)
        self.assertEqual(
            sorted(self.builder.free_parameter_names(model)),
            sorted(["Intercept", "roach1", "treatment", "senior"]),
        )
        self.assertIn("y", model.named_vars)
        self.assertEqual(len(model.coords["obs_id"]), 6)

    def test_negative_binomial_model_variables(self):
        spec = ModelSpec(Family.NEGATIVE_BINOMIAL).without("roach1")
        model = self.builder.build_model(spec, self.data)
        self.assertEqual(
            sorted(self.builder.free_parameter_names(model)),
            sorted(["Intercept", "treatment", "senior", "reciprocal_dispersion"]),
        )

    def test_log_probability_is_finite_at_initial_point(self):
        model = self.builder.build_model(ModelSpec(Family.NEGATIVE_BINOMIAL), self.data)
        logp = model.compile_logp()(model.initial_point())
        self.assertTrue(np.isfinite(logp))

    def test_zero_exposure(self):
        data = self.data.copy()
        data.loc[2, "exposure2"] = 0.0
        with self.assertRaises(ModelBuildError) as ctx:
            self.builder.build_model(ModelSpec(Family.POISSON), data)
        self.assertIn("exposure2", str(ctx.exception))

    def test_missing_exposure(self):
        data = self.data.copy()
        data.loc[0, "exposure2"] = np.nan
        with self.assertRaises(ModelBuildError):
            self.builder.build_model(ModelSpec(Family.POISSON), data)

    def test_negative_response(self):
        data = self.data.copy()
        data.loc[0, "y"] = -1
        with self.assertRaises(ModelBuildError):
            self.builder.build_model(ModelSpec(Family.NEGATIVE_BINOMIAL), data)

    def test_non_integer_response(self):
        data = self.data.astype({"y": float})
        data.loc[1, "y"] = 2.5
        with self.assertRaises(ModelBuildError):
            self.builder.build_model(ModelSpec(Family.POISSON), data)

    def test_missing_column(self):
        with self.assertRaises(ModelBuildError):
            self.builder.build_model(ModelSpec(Family.POISSON), self.data.drop(columns=["senior"]))

    def test_reduced_model_does_not_need_dropped_column(self):
        spec = ModelSpec(Family.POISSON).without("senior")
        model = self.builder.build_model(spec, self.data.drop(columns=["senior"]))
        self.assertNotIn("senior", model.named_vars)


if __name__ == "__main__":
    unittest.main()
