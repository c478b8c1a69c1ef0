"""
Bayesian model builder for count regression with an exposure offset.

This module turns a ``ModelSpec`` and an Observation table into a PyMC
model graph.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd
import pymc as pm

from model.constants import DISPERSION_NAME, INTERCEPT_NAME
from model.exceptions import ModelBuildError
from model.specification import Family, ModelSpec

logger = logging.getLogger(__name__)


@dataclass
class ModelData:
    """
    Container for prepared model data.

    ASSUMPTIONS:
    - y holds non-negative integer counts
    - log_offset is finite (exposure strictly positive)
    - every covariate column is numeric and free of missing values
    """
    y: np.ndarray
    covariates: Dict[str, np.ndarray]
    log_offset: np.ndarray

    @property
    def n_observations(self) -> int:
        return len(self.y)


class CountModelBuilder:
    """
    Builds PyMC model graphs for Poisson and negative-binomial regression.

    MODELING CHOICES:
    - Linear predictor eta = Intercept + sum_j coef_j * x_j + log(exposure)
    - Log link: mean = exp(eta)
    - Independent normal priors on the intercept and the slopes
    - Exponential prior on the negative-binomial reciprocal dispersion

    EDGE CASES:
    - Zero, negative or missing exposure makes the offset undefined and is
      rejected before any graph is built
    - Negative or non-integer responses are rejected
    """

    def prepare_data(self, spec: ModelSpec, data: pd.DataFrame) -> ModelData:
        """
        Validate the columns a specification needs and extract arrays.

        Raises:
            ModelBuildError: If a column is missing or a value is invalid
        """
        needed = [spec.response, spec.offset] + list(spec.covariates)
        missing = [col for col in needed if col not in data.columns]
        if missing:
            raise ModelBuildError(f"Missing required columns for model {spec.name}: {missing}")

        for col in needed:
            if data[col].isnull().any():
                raise ModelBuildError(f"Column '{col}' contains missing values")

        exposure = data[spec.offset].to_numpy(dtype=float)
        bad_exposure = np.flatnonzero(~(exposure > 0))
        if bad_exposure.size:
            raise ModelBuildError(
                f"Offset log({spec.offset}) is undefined for {bad_exposure.size} observations",
                details=f"non-positive exposure at rows {bad_exposure[:10].tolist()}",
            )

        y = data[spec.response].to_numpy()
        if np.any(y < 0) or not np.all(np.equal(np.mod(y, 1), 0)):
            raise ModelBuildError(f"Response '{spec.response}' must hold non-negative integer counts")

        return ModelData(
            y=y.astype(np.int64),
            covariates={c: data[c].to_numpy(dtype=float) for c in spec.covariates},
            log_offset=np.log(exposure),
        )

    def build_model(self, spec: ModelSpec, data: pd.DataFrame) -> pm.Model:
        """
        Build the PyMC model for one specification.

        Args:
            spec: Model specification
            data: Observation table

        Returns:
            PyMC model whose observed variable is named after the response
        """
        model_data = self.prepare_data(spec, data)
        priors = spec.priors

        logger.info(
            f"Building {spec.family.value} model '{spec.name}' with "
            f"{model_data.n_observations} observations and covariates {list(spec.covariates)}"
        )

        coords = {"obs_id": np.arange(model_data.n_observations)}
        try:
            with pm.Model(coords=coords) as model:
                intercept = pm.Normal(INTERCEPT_NAME, mu=0.0, sigma=priors.intercept_sd)
                eta = intercept + model_data.log_offset

                for name, values in model_data.covariates.items():
                    coef = pm.Normal(name, mu=0.0, sigma=priors.slope_sd)
                    eta = eta + coef * values

                mu = pm.math.exp(eta)

                if spec.family is Family.POISSON:
                    pm.Poisson(spec.response, mu=mu, observed=model_data.y, dims="obs_id")
                else:
                    phi = pm.Exponential(DISPERSION_NAME, lam=priors.dispersion_rate)
                    pm.NegativeBinomial(
                        spec.response, mu=mu, alpha=phi, observed=model_data.y, dims="obs_id"
                    )
        except (ValueError, TypeError) as e:
            raise ModelBuildError(f"Error building model {spec.name}: {str(e)}") from e

        return model

    @staticmethod
    def free_parameter_names(model: pm.Model) -> List[str]:
        return [rv.name for rv in model.free_RVs]
