"""
Bayesian count model fitting.

This module assembles the builder and sampler components into a single
fitter: a ``ModelSpec`` and a dataset go in, an immutable ``FittedModel``
comes out. It handles the interaction between the components so callers
never touch PyMC directly.
"""

from typing import Dict, Iterable, Optional

import pandas as pd

from utils.logging_utils import get_logger
from utils.decorators import log_errors
from model.bayesian.model_builder import CountModelBuilder
from model.exceptions import ModelBuildError, SamplingError
from model.results import FittedModel
from model.sampling import CountModelSampler
from model.specification import ModelSpec

# Setup logging
logger = get_logger()


class BayesianCountModel:
    """
    Fits count-regression specifications by MCMC.

    This class orchestrates the lifecycle of a single fit:
    1. Data validation and model building (CountModelBuilder)
    2. MCMC sampling with log-likelihood storage (CountModelSampler)
    3. Convergence diagnostics attached to the result
    """

    def __init__(
        self,
        sampler: Optional[CountModelSampler] = None,
        builder: Optional[CountModelBuilder] = None,
    ):
        """
        Initialize the fitter.

        Args:
            sampler: Configured sampler (default settings if omitted)
            builder: Model builder (a default one is created if omitted)
        """
        self.sampler = sampler or CountModelSampler()
        self.builder = builder or CountModelBuilder()

    @log_errors((ModelBuildError, SamplingError), msg="Error fitting model")
    def fit(self, spec: ModelSpec, data: pd.DataFrame) -> FittedModel:
        """
        Build and sample one model.

        Args:
            spec: Model specification
            data: Observation table with the response, covariates and offset

        Returns:
            FittedModel holding the posterior and pointwise log-likelihood

        Raises:
            ModelBuildError: If the data cannot support the model
            SamplingError: If the sampler fails
        """
        logger.info(f"Fitting model '{spec.name}' ({spec.family.value}, covariates={list(spec.covariates)})")
        model = self.builder.build_model(spec, data)
        observed = data[spec.response].to_numpy()
        return self.sampler.sample(model, spec, observed)

    def fit_all(self, specs: Iterable[ModelSpec], data: pd.DataFrame) -> Dict[str, FittedModel]:
        """
        Fit several specifications to the same data.

        A model that fails to build or sample is logged and left out; the
        remaining models are still fitted.
        """
        fits: Dict[str, FittedModel] = {}
        for spec in specs:
            try:
                fits[spec.name] = self.fit(spec, data)
            except (ModelBuildError, SamplingError) as e:
                logger.error(f"Skipping model '{spec.name}': {str(e)}")
        logger.info(f"Fitted {len(fits)} models: {list(fits)}")
        return fits
